"""Core chat components for WarpMind."""

from warpmind.core.conversation import Conversation
from warpmind.core.executor import ToolCallbacks, ToolExecutor
from warpmind.core.orchestrator import MAX_TOOL_CALL_DEPTH, ChatOrchestrator

__all__ = [
    "ChatOrchestrator",
    "Conversation",
    "MAX_TOOL_CALL_DEPTH",
    "ToolCallbacks",
    "ToolExecutor",
]
