"""Server-Sent Events decoding for streaming completions.

Two layers:

* ``SSEFrameParser`` turns arbitrary text chunks into complete frames,
  buffering partial lines across reads.
* ``parse_payload`` maps one frame's data into a typed payload
  (``DoneSignal`` / ``ContentDelta`` / ``ToolCallDelta`` /
  ``StreamCompleted``), returning None for shapes it does not recognise.

``decode()`` drives both over an async byte source and reports one
``StreamEvent`` per content or tool-call frame.
"""

from __future__ import annotations

import codecs
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Callable, Union

from warpmind.errors import StreamDecodeError
from warpmind.types import DecodeResult, StreamEvent, ToolCallFragment

_logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"

EventCallback = Callable[[StreamEvent], Any]


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------

@dataclass
class SSEFrame:
    """One dispatched server-sent event."""

    data: str
    event: str = "message"
    id: str | None = None


class SSEFrameParser:
    """Incremental SSE line parser.

    Lines may end with ``\\n``, ``\\r\\n`` or ``\\r``; a blank line dispatches
    the pending frame.  Multiple ``data:`` lines are joined with ``\\n``.
    Comment lines (leading ``:``) and unknown fields are ignored.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._data: list[str] = []
        self._event = ""
        self._id: str | None = None

    def feed(self, text: str) -> list[SSEFrame]:
        """Consume a chunk of text and return every frame it completed."""
        self._buffer += text
        frames: list[SSEFrame] = []
        while True:
            idx = self._find_line_end()
            if idx < 0:
                break
            line = self._buffer[:idx]
            # Treat \r\n as a single terminator
            if self._buffer[idx] == "\r" and self._buffer[idx + 1:idx + 2] == "\n":
                self._buffer = self._buffer[idx + 2:]
            else:
                self._buffer = self._buffer[idx + 1:]
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[SSEFrame]:
        """Dispatch whatever is buffered when the stream ends without a blank line."""
        frames: list[SSEFrame] = []
        if self._buffer:
            line, self._buffer = self._buffer.rstrip("\r"), ""
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        frame = self._dispatch()
        if frame is not None:
            frames.append(frame)
        return frames

    def _find_line_end(self) -> int:
        lf = self._buffer.find("\n")
        cr = self._buffer.find("\r")
        if cr >= 0 and cr == len(self._buffer) - 1:
            # A trailing \r may be the first half of \r\n; wait for more input
            cr = -1 if lf < 0 else cr
        candidates = [i for i in (lf, cr) if i >= 0]
        return min(candidates) if candidates else -1

    def _process_line(self, line: str) -> SSEFrame | None:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None
        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            self._id = value
        return None

    def _dispatch(self) -> SSEFrame | None:
        if not self._data:
            self._event = ""
            return None
        frame = SSEFrame(
            data="\n".join(self._data),
            event=self._event or "message",
            id=self._id,
        )
        self._data = []
        self._event = ""
        return frame


# ---------------------------------------------------------------------------
# Typed payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DoneSignal:
    """Terminal ``[DONE]`` marker."""


@dataclass(frozen=True)
class ContentDelta:
    """Text increment; ``text`` is None for role-only deltas."""

    text: str | None
    role: str = "assistant"
    id: str | None = None
    usage: dict[str, Any] | None = None


@dataclass(frozen=True)
class ToolCallDelta:
    fragments: tuple[ToolCallFragment, ...]
    role: str = "assistant"
    text: str | None = None
    id: str | None = None
    usage: dict[str, Any] | None = None


@dataclass(frozen=True)
class StreamCompleted:
    """Control frame carrying the response id and/or token usage."""

    id: str | None = None
    usage: dict[str, Any] | None = field(default=None)


StreamPayload = Union[DoneSignal, ContentDelta, ToolCallDelta, StreamCompleted]


def parse_payload(data: str) -> StreamPayload | None:
    """Parse one frame's data string.

    Raises ``json.JSONDecodeError`` for malformed JSON; returns None when the
    JSON is valid but matches no known shape.
    """
    if data.strip() == DONE_MARKER:
        return DoneSignal()

    obj = json.loads(data)
    if not isinstance(obj, dict):
        return None

    event_type = obj.get("type")
    if isinstance(event_type, str) and event_type.startswith("response."):
        return _parse_responses_event(event_type, obj)
    return _parse_chat_chunk(obj)


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _dict_or_none(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


def _parse_chat_chunk(obj: dict[str, Any]) -> StreamPayload | None:
    choices = obj.get("choices")
    delta: dict[str, Any] | None = None
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        delta = _dict_or_none(choices[0].get("delta"))

    chunk_id = _str_or_none(obj.get("id"))
    usage = _dict_or_none(obj.get("usage"))
    if delta is None:
        # Final usage-only chunk (stream_options.include_usage)
        if usage is not None:
            return StreamCompleted(id=chunk_id, usage=usage)
        return None

    role = _str_or_none(delta.get("role")) or "assistant"
    text = _str_or_none(delta.get("content"))
    raw_calls = delta.get("tool_calls")
    if isinstance(raw_calls, list) and raw_calls:
        fragments = []
        for raw in raw_calls:
            frag = ToolCallFragment.from_delta(raw) if isinstance(raw, dict) else None
            if frag is None:
                _logger.warning("Skipping malformed tool-call fragment: %r", raw)
                continue
            fragments.append(frag)
        if fragments:
            return ToolCallDelta(
                fragments=tuple(fragments), role=role, text=text, id=chunk_id, usage=usage,
            )
    return ContentDelta(text=text, role=role, id=chunk_id, usage=usage)


def _parse_responses_event(event_type: str, obj: dict[str, Any]) -> StreamPayload | None:
    if event_type == "response.output_text.delta":
        delta = _str_or_none(obj.get("delta"))
        return ContentDelta(text=delta) if delta is not None else None
    if event_type in ("response.completed", "response.done"):
        response = _dict_or_none(obj.get("response"))
        if response is None:
            return None
        return StreamCompleted(
            id=_str_or_none(response.get("id")),
            usage=_dict_or_none(response.get("usage")),
        )
    return None


# ---------------------------------------------------------------------------
# Stream decoding
# ---------------------------------------------------------------------------

async def _notify(on_event: EventCallback | None, event: StreamEvent) -> None:
    if on_event is None:
        return
    result = on_event(event)
    if inspect.isawaitable(result):
        await result


async def decode(
    byte_source: AsyncIterable[bytes | str],
    on_event: EventCallback | None = None,
) -> DecodeResult:
    """Decode an SSE byte stream.

    Parameters
    ----------
    byte_source:
        Async iterable of raw chunks, e.g. ``httpx.Response.aiter_bytes()``.
        Chunk boundaries need not align with frame boundaries.
    on_event:
        Sync or async callback invoked once per content/tool-call frame.

    Returns
    -------
    DecodeResult
        Concatenated text plus id/usage when the stream carried them.
    """
    utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
    parser = SSEFrameParser()
    result = DecodeResult()
    done = False

    async def _handle(frames: list[SSEFrame]) -> bool:
        for frame in frames:
            try:
                payload = parse_payload(frame.data)
            except json.JSONDecodeError as e:
                _logger.warning("Failed to parse SSE event: %s", e)
                continue

            if isinstance(payload, DoneSignal):
                return True
            if isinstance(payload, StreamCompleted):
                result.id = payload.id or result.id
                if payload.usage:
                    result.usage = payload.usage
                continue
            if payload is None:
                continue

            if result.id is None and payload.id:
                result.id = payload.id
            if payload.usage:
                result.usage = payload.usage
            if isinstance(payload, ContentDelta):
                if payload.text:
                    result.text += payload.text
                await _notify(on_event, StreamEvent(role=payload.role, delta=payload.text))
            elif isinstance(payload, ToolCallDelta):
                if payload.text:
                    result.text += payload.text
                await _notify(on_event, StreamEvent(
                    role=payload.role,
                    delta=payload.text,
                    tool_calls=payload.fragments,
                ))
        return False

    iterator = byte_source.__aiter__()
    while not done:
        try:
            chunk = await iterator.__anext__()
        except StopAsyncIteration:
            break
        except Exception as e:
            raise StreamDecodeError(f"SSE parsing failed: {e}") from e

        text = chunk if isinstance(chunk, str) else utf8.decode(chunk)
        done = await _handle(parser.feed(text))

    if not done:
        tail = utf8.decode(b"", final=True)
        frames = parser.feed(tail) if tail else []
        await _handle(frames + parser.flush())

    return result
