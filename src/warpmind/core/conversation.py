"""Multi-turn conversation over the Responses API.

Turns are chained server-side with ``previous_response_id``; a client-side
copy of the exchanged text is kept for display and export.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

from warpmind.types import ResponseResult, StreamChunk

_logger = logging.getLogger(__name__)


def _input_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


class Conversation:
    """Stateful conversation bound to a client exposing ``respond`` / ``stream_respond``.

    Usage::

        conv = client.create_conversation(instructions="Be brief.")
        await conv.respond("Hi")
        await conv.respond("And again?")   # chained to the first turn
    """

    def __init__(
        self,
        client: Any,
        instructions: str | None = None,
        model: str | None = None,
    ) -> None:
        self._client = client
        self.instructions = instructions
        self.model = model
        self.previous_response_id: str | None = None
        self._history: list[dict[str, Any]] = []

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def respond(self, value: Any, **options: Any) -> ResponseResult:
        response = await self._client.respond(value, **self._request_options(options))
        self._record_turn(value, response)
        return response

    async def stream_respond(
        self,
        value: Any,
        on_chunk: Callable[[StreamChunk], Any] | None = None,
        **options: Any,
    ) -> ResponseResult:
        response = await self._client.stream_respond(
            value, on_chunk, **self._request_options(options),
        )
        self._record_turn(value, response)
        return response

    def _request_options(self, options: dict[str, Any]) -> dict[str, Any]:
        merged = dict(options)
        model = self.model or options.get("model")
        if model:
            merged["model"] = model
        instructions = self.instructions or options.get("instructions")
        if instructions:
            merged["instructions"] = instructions
        if self.previous_response_id:
            merged["previous_response_id"] = self.previous_response_id
        return merged

    def _record_turn(self, value: Any, response: ResponseResult) -> None:
        if response.id:
            self.previous_response_id = response.id
        now = int(time.time() * 1000)
        self._history.append({"role": "user", "content": _input_text(value), "timestamp": now})
        self._history.append({"role": "assistant", "content": response.text, "timestamp": now})

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Forget the history and start a fresh server-side chain."""
        self._history = []
        self.previous_response_id = None

    def get_history(self) -> list[dict[str, Any]]:
        return list(self._history)

    @property
    def message_count(self) -> int:
        return len(self._history)

    @property
    def last_message(self) -> dict[str, Any] | None:
        return self._history[-1] if self._history else None

    def export_history(self) -> str:
        return json.dumps({
            "history": self._history,
            "previous_response_id": self.previous_response_id,
            "instructions": self.instructions,
            "model": self.model,
        })

    def import_history(self, data: str) -> bool:
        """Restore state written by ``export_history``.

        Malformed data is logged and leaves the conversation untouched;
        the return value tells whether the import happened.
        """
        try:
            parsed = json.loads(data)
        except (TypeError, ValueError) as e:
            _logger.error("Failed to import conversation history: %s", e)
            return False
        if not isinstance(parsed, dict) or not isinstance(parsed.get("history", []), list):
            _logger.error("Failed to import conversation history: unexpected structure")
            return False

        self._history = list(parsed.get("history") or [])
        self.previous_response_id = parsed.get("previous_response_id") or None
        self.instructions = parsed.get("instructions") or self.instructions
        self.model = parsed.get("model") or self.model
        return True
