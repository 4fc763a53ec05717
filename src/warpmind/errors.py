"""Exception hierarchy for WarpMind."""

from __future__ import annotations

from typing import Any


class WarpMindError(Exception):
    """Base exception for all WarpMind errors."""


class ConfigurationError(WarpMindError):
    """Client configuration is missing or invalid (e.g. no API key)."""


# ---------------------------------------------------------------------------
# Request errors
# ---------------------------------------------------------------------------

class RequestTimeoutError(WarpMindError, TimeoutError):
    """A single request attempt exceeded its deadline.

    Timeouts are never retried; they surface directly to the caller.
    """

    def __init__(self, timeout_ms: float) -> None:
        super().__init__(f"Request timed out after {int(timeout_ms)}ms")
        self.timeout_ms = timeout_ms


class APIError(WarpMindError):
    """The API answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        status_text: str = "",
        api_message: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.status_text = status_text
        self.api_message = api_message


class RetryableAPIError(APIError):
    """Retryable status (429/502/503/524) that outlived every retry."""

    def __init__(self, message: str, *, attempts: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts


class NonRetryableAPIError(APIError):
    """Any other non-2xx status; raised on the first occurrence."""


class NetworkError(WarpMindError):
    """Transport-level failure with no HTTP response, after all retries."""

    def __init__(self, message: str, *, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class StreamDecodeError(WarpMindError):
    """The underlying byte source failed while decoding an SSE stream."""


class ResponseFailedError(WarpMindError):
    """A Responses API object ended as failed/cancelled or never completed."""

    def __init__(self, message: str, *, response_id: str | None = None) -> None:
        super().__init__(message)
        self.response_id = response_id


# ---------------------------------------------------------------------------
# Tool errors
# ---------------------------------------------------------------------------

class ToolRegistrationError(WarpMindError, ValueError):
    """Invalid tool definition or duplicate tool name."""


class ToolError(WarpMindError):
    """Base class for failures while executing a model-requested tool.

    These never escape the orchestrator; they become tool-result messages.
    """

    def __init__(self, message: str, *, tool_name: str = "") -> None:
        super().__init__(message)
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """The model asked for a tool that is not registered."""


class ToolArgumentParseError(ToolError):
    """The tool-call arguments were not valid JSON."""


class ToolHandlerError(ToolError):
    """The registered handler raised."""
