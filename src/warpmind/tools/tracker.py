"""Tool call lifecycle tracking.

Every executed tool call is recorded as active on start and moved to the
history on completion or error.  Parameters and results are sanitised so
that huge or unserialisable values cannot bloat memory or logs.
"""

from __future__ import annotations

import itertools
import json
import logging
import random
import string
import time
from collections import deque
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from warpmind.types import TrackedCall

_logger = logging.getLogger(__name__)

# Serialised size above which values are replaced by a preview
MAX_SERIALIZED_SIZE = 10000
PREVIEW_LENGTH = 1000

_ID_ALPHABET = string.ascii_lowercase + string.digits


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ToolCallTracker:
    """Track active tool calls and keep a history of finished ones.

    Parameters
    ----------
    history_limit:
        Maximum number of finished calls kept.  ``None`` (default) keeps
        every call, which grows without bound in long-lived sessions; call
        ``clear_history()`` or set a limit for those.
    """

    def __init__(self, history_limit: int | None = None) -> None:
        self._active: dict[str, TrackedCall] = {}
        self._history: deque[TrackedCall] = deque(maxlen=history_limit)
        self._counter = itertools.count(1)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def generate_call_id(self) -> str:
        """``call_<epoch ms>_<counter>_<9 random chars>``."""
        suffix = "".join(random.choices(_ID_ALPHABET, k=9))
        return f"call_{int(time.time() * 1000)}_{next(self._counter)}_{suffix}"

    def start_call(self, name: str, parameters: Any) -> TrackedCall:
        call = TrackedCall(
            call_id=self.generate_call_id(),
            name=name,
            parameters=self._sanitize_parameters(parameters),
            timestamp=now_iso(),
            start_time=time.monotonic(),
        )
        self._active[call.call_id] = call
        return call

    def complete_call(self, call_id: str, result: Any) -> TrackedCall | None:
        """Mark a call completed.  Unknown or already-finished ids are a no-op."""
        call = self._active.pop(call_id, None)
        if call is None:
            return None
        finished = replace(
            call,
            status="completed",
            result=self._sanitize_result(result),
            duration=self._elapsed_ms(call),
        )
        self._history.append(finished)
        return finished

    def error_call(self, call_id: str, error: BaseException | str) -> TrackedCall | None:
        """Mark a call failed, storing only the error message."""
        call = self._active.pop(call_id, None)
        if call is None:
            return None
        finished = replace(
            call,
            status="error",
            error=str(error),
            duration=self._elapsed_ms(call),
        )
        self._history.append(finished)
        return finished

    @staticmethod
    def _elapsed_ms(call: TrackedCall) -> int:
        return max(0, round((time.monotonic() - call.start_time) * 1000))

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_active_calls(self) -> list[TrackedCall]:
        return list(self._active.values())

    def get_call_history(self, limit: int = 50) -> list[TrackedCall]:
        """Most recent finished calls, oldest first."""
        if limit <= 0:
            return []
        return list(self._history)[-limit:]

    def clear_history(self) -> None:
        self._history.clear()

    # ------------------------------------------------------------------
    # Sanitising
    # ------------------------------------------------------------------

    def _sanitize_parameters(self, parameters: Any) -> Any:
        return self._sanitize(parameters, "parameters")

    def _sanitize_result(self, result: Any) -> Any:
        return self._sanitize(result, "result")

    @staticmethod
    def _sanitize(value: Any, what: str) -> Any:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            return {
                "_error": f"Failed to serialize {what}",
                "_type": type(value).__name__,
                "_message": str(e),
            }
        if len(encoded) > MAX_SERIALIZED_SIZE:
            return {
                "_truncated": True,
                "_originalSize": len(encoded),
                "_preview": encoded[:PREVIEW_LENGTH] + "...",
            }
        # Round-trip detaches the stored copy from the caller's objects
        return json.loads(encoded)
