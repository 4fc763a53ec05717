"""WarpMind: async Python client for OpenAI-compatible APIs with tool calling."""

from warpmind.client import WarpMind
from warpmind.config import ClientConfig, load_config
from warpmind.core.conversation import Conversation
from warpmind.errors import (
    APIError,
    ConfigurationError,
    NetworkError,
    NonRetryableAPIError,
    RequestTimeoutError,
    ResponseFailedError,
    RetryableAPIError,
    StreamDecodeError,
    ToolRegistrationError,
    WarpMindError,
)
from warpmind.types import ChatMetadata, ChatResult, EventType, ResponseResult, StreamChunk

__version__ = "0.3.0"

__all__ = [
    "APIError",
    "ChatMetadata",
    "ChatResult",
    "ClientConfig",
    "ConfigurationError",
    "Conversation",
    "EventType",
    "NetworkError",
    "NonRetryableAPIError",
    "RequestTimeoutError",
    "ResponseFailedError",
    "ResponseResult",
    "RetryableAPIError",
    "StreamChunk",
    "StreamDecodeError",
    "ToolRegistrationError",
    "WarpMind",
    "WarpMindError",
    "load_config",
]
