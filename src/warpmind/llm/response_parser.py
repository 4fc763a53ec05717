"""Tool-call extraction from chat completion responses.

``ToolCallAccumulator`` reassembles streamed tool calls from indexed
fragments; ``parse_chat_message`` reads the non-streaming shape.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from warpmind.errors import APIError
from warpmind.types import ChatMessage, ToolCall, ToolCallFragment

_logger = logging.getLogger(__name__)


@dataclass
class _PartialToolCall:
    id: str | None = None
    type: str = "function"
    name: str = ""
    arguments: str = ""


class ToolCallAccumulator:
    """Accumulate streamed tool-call fragments keyed by ``index``.

    Providers send the id and function name on the first fragment of each
    call and the arguments as string pieces that must be concatenated.
    Indices may arrive sparse or out of order.
    """

    def __init__(self) -> None:
        self._calls: dict[int, _PartialToolCall] = {}

    def feed(self, fragments: Iterable[ToolCallFragment]) -> None:
        for frag in fragments:
            partial = self._calls.setdefault(frag.index, _PartialToolCall())
            if frag.id:
                partial.id = frag.id
            if frag.type:
                partial.type = frag.type
            if frag.function_name:
                partial.name += frag.function_name
            if frag.arguments_chunk:
                partial.arguments += frag.arguments_chunk

    def has_calls(self) -> bool:
        return bool(self._calls)

    def finalize(self) -> list[ToolCall]:
        """Return complete calls in index order; incomplete entries are dropped.

        A call is complete once it has an id, a function name and arguments
        that decode as JSON (an empty argument string counts as ``{}``).
        """
        result: list[ToolCall] = []
        for idx in sorted(self._calls):
            partial = self._calls[idx]
            if not partial.id or not partial.name:
                _logger.debug("Dropping incomplete streamed tool call at index %d", idx)
                continue
            try:
                parse_arguments(partial.arguments)
            except json.JSONDecodeError:
                _logger.warning(
                    "Dropping streamed tool call %s (%s): arguments are not valid JSON",
                    partial.id, partial.name,
                )
                continue
            result.append(ToolCall(
                id=partial.id,
                name=partial.name,
                arguments=partial.arguments,
                type=partial.type,
            ))
        return result


def parse_chat_message(data: Any) -> ChatMessage:
    """Extract the assistant message from a chat completion body."""
    choices = data.get("choices") if isinstance(data, dict) else None
    message = None
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
    if not isinstance(message, dict):
        raise APIError("No message in response")

    tool_calls = [
        ToolCall.from_dict(tc)
        for tc in message.get("tool_calls") or []
        if isinstance(tc, dict)
    ]
    usage = data.get("usage")
    return ChatMessage(
        content=message.get("content") or "",
        tool_calls=tool_calls,
        usage=usage if isinstance(usage, dict) else {},
    )


def parse_arguments(raw: str) -> Any:
    """Decode tool-call arguments; an empty string means no arguments."""
    if not raw or not raw.strip():
        return {}
    return json.loads(raw)
