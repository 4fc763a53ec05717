"""Shared data types for WarpMind."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Retry types
# ---------------------------------------------------------------------------

class RetryReason(enum.Enum):
    """Why a failed attempt is eligible for another try."""

    RATE_LIMITED = "rate-limited"
    BAD_GATEWAY = "bad-gateway"
    SERVICE_UNAVAILABLE = "service-unavailable"
    GATEWAY_TIMEOUT = "gateway-timeout"
    NETWORK_ERROR = "network-error"


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of evaluating one failed attempt."""

    should_retry: bool
    delay_ms: float = 0
    reason: RetryReason | None = None


@dataclass
class RequestAttempt:
    """One physical HTTP call within a logical request."""

    attempt_number: int
    started_at: float = field(default_factory=time.monotonic)


# ---------------------------------------------------------------------------
# Streaming types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolCallFragment:
    """Partial tool-call data carried by one streaming delta."""

    index: int = 0
    id: str | None = None
    type: str | None = None
    function_name: str | None = None
    arguments_chunk: str | None = None

    @classmethod
    def from_delta(cls, raw: dict[str, Any]) -> ToolCallFragment | None:
        """Build a fragment, or return None when a field has the wrong type."""
        func = raw.get("function")
        if func is None:
            func = {}
        elif not isinstance(func, dict):
            return None
        index = raw.get("index", 0)
        if not isinstance(index, int) or isinstance(index, bool):
            return None
        fields = (raw.get("id"), raw.get("type"), func.get("name"), func.get("arguments"))
        if any(value is not None and not isinstance(value, str) for value in fields):
            return None
        call_id, call_type, name, arguments = fields
        return cls(
            index=index,
            id=call_id or None,
            type=call_type or None,
            function_name=name or None,
            arguments_chunk=arguments or None,
        )


@dataclass(frozen=True)
class StreamEvent:
    """One decoded server-sent frame.

    ``delta`` is the text increment for content frames; ``tool_calls`` holds
    the fragments for tool-call frames.  Either may be set, or both.
    """

    role: str = "assistant"
    delta: str | None = None
    tool_calls: tuple[ToolCallFragment, ...] = ()


@dataclass
class DecodeResult:
    """Accumulated outcome of decoding a whole SSE stream."""

    text: str = ""
    id: str | None = None
    usage: dict[str, Any] | None = None


@dataclass(frozen=True)
class StreamChunk:
    """Incremental text delivered to a ``stream_chat`` caller."""

    content: str
    type: str = "chunk"


# ---------------------------------------------------------------------------
# Tool-calling types
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    """A complete tool call requested by the model.

    ``arguments`` is the raw JSON string exactly as the model produced it;
    parsing happens at execution time so that bad JSON becomes a tool error.
    """

    id: str
    name: str
    arguments: str = ""
    type: str = "function"

    def to_message_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ToolCall:
        func = raw.get("function")
        if not isinstance(func, dict):
            func = {}

        def _text(value: Any) -> str:
            return value if isinstance(value, str) else ""

        return cls(
            id=_text(raw.get("id")),
            name=_text(func.get("name")),
            arguments=_text(func.get("arguments")),
            type=_text(raw.get("type")) or "function",
        )


@dataclass
class ChatMessage:
    """Assistant message parsed from a non-streaming completion."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: dict[str, Any] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@dataclass
class TrackedCall:
    """Lifecycle record of one tool invocation."""

    call_id: str
    name: str
    parameters: Any
    timestamp: str
    start_time: float
    status: str = "started"  # started | completed | error
    result: Any = None
    error: str | None = None
    duration: int | None = None


@dataclass
class ToolCallRecord:
    """Tool invocation summary exposed through ``return_metadata``."""

    id: str
    name: str
    parameters: Any
    timestamp: str
    success: bool
    duration: int | None = None
    result: Any = None
    error: str | None = None


@dataclass
class ChatMetadata:
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    total_duration: int = 0
    tokens_used: int | None = None


@dataclass
class ChatResult:
    """Top-level chat result when metadata was requested."""

    response: str
    metadata: ChatMetadata


@dataclass
class ResponseResult:
    """Simplified Responses API result."""

    text: str = ""
    id: str | None = None
    usage: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Events emitted on the client's EventBus."""

    REQUEST_RETRY = "request.retry"
    REQUEST_FAILED = "request.failed"

    STREAM_CHUNK = "stream.chunk"
    CHAT_DONE = "chat.done"

    TOOL_CALL = "tool.call"
    TOOL_RESULT = "tool.result"
    TOOL_ERROR = "tool.error"


@dataclass
class ClientEvent:
    """Event emitted by the client via the EventBus."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
