"""Tool system for WarpMind."""

from warpmind.tools.base import RegisteredTool
from warpmind.tools.registry import ToolRegistry
from warpmind.tools.tracker import ToolCallTracker

__all__ = ["RegisteredTool", "ToolCallTracker", "ToolRegistry"]
