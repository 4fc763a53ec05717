"""HTTP transport, retry policy and stream decoding for WarpMind."""

from warpmind.llm.response_parser import ToolCallAccumulator, parse_chat_message
from warpmind.llm.sse import SSEFrameParser, decode
from warpmind.llm.transport import RequestExecutor

__all__ = [
    "RequestExecutor",
    "SSEFrameParser",
    "ToolCallAccumulator",
    "decode",
    "parse_chat_message",
]
