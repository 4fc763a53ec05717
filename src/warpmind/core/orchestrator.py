"""Orchestrator: the depth-limited chat / tool-calling loop.

    request → tool calls? → executor → request (depth + 1) → ... → text

Tools are attached to the outgoing request only while the depth is below
``MAX_TOOL_CALL_DEPTH``; the last request goes out without them, which
forces the model to answer in plain text.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from warpmind.config import ClientConfig
from warpmind.core.executor import Callback, ToolCallbacks, ToolExecutor
from warpmind.events.bus import EventBus
from warpmind.llm import sse
from warpmind.llm.response_parser import ToolCallAccumulator, parse_chat_message
from warpmind.llm.transport import RequestExecutor
from warpmind.tools.registry import ToolRegistry
from warpmind.types import (
    ChatMetadata,
    ChatResult,
    EventType,
    StreamChunk,
    StreamEvent,
    ToolCall,
    ToolCallRecord,
)

_logger = logging.getLogger(__name__)

MAX_TOOL_CALL_DEPTH = 2

CHAT_ENDPOINT = "/chat/completions"

COMPLETION_INSTRUCTION = (
    "Complete the text directly and concisely without explanation "
    "or additional commentary."
)

# Receives each StreamChunk; may be sync or async
ChunkCallback = Callable[[StreamChunk], Any]


@dataclass
class _ChatRun:
    """Per top-level call state shared by every recursion level."""

    model: str
    temperature: float
    timeout_ms: float | None
    callbacks: ToolCallbacks
    extra: dict[str, Any]
    records: list[ToolCallRecord] = field(default_factory=list)
    usage: dict[str, Any] | None = None
    started_at: float = field(default_factory=time.monotonic)

    def metadata(self) -> ChatMetadata:
        tokens = (self.usage or {}).get("total_tokens")
        return ChatMetadata(
            tool_calls=list(self.records),
            total_duration=round((time.monotonic() - self.started_at) * 1000),
            tokens_used=tokens if tokens else None,
        )


def normalize_messages(messages: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    """A bare string becomes a single user message."""
    if isinstance(messages, str):
        return [{"role": "user", "content": messages}]
    return list(messages)


def _assistant_message(content: str | None, tool_calls: list[ToolCall]) -> dict[str, Any]:
    return {
        "role": "assistant",
        "content": content,
        "tool_calls": [tc.to_message_dict() for tc in tool_calls],
    }


class ChatOrchestrator:
    """Drive chat completions with automatic tool execution.

    Usage::

        orch = ChatOrchestrator(transport, registry, executor, config)
        text = await orch.chat("What's the weather in Paris?")

    Request failures (timeouts, API and network errors) propagate to the
    caller.  Tool failures never do; they are fed back to the model as
    error results.
    """

    def __init__(
        self,
        transport: RequestExecutor,
        registry: ToolRegistry,
        executor: ToolExecutor,
        config: ClientConfig,
        event_bus: EventBus | None = None,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._executor = executor
        self._config = config
        self._event_bus = event_bus

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def chat(
        self,
        messages: str | list[dict[str, Any]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        timeout_ms: float | None = None,
        on_tool_call: Callback | None = None,
        on_tool_result: Callback | None = None,
        on_tool_error: Callback | None = None,
        return_metadata: bool = False,
        **extra: Any,
    ) -> str | ChatResult:
        """Send a chat request, executing tool calls until a text answer arrives.

        Extra keyword arguments (``max_tokens``, ``top_p`` ...) are merged
        into the request body.  With ``return_metadata=True`` the result is
        a ``ChatResult`` describing every tool call of the whole chain.
        """
        run = self._new_run(
            model, temperature, timeout_ms,
            on_tool_call, on_tool_result, on_tool_error, extra,
        )
        text = await self._chat_with_tools(normalize_messages(messages), run, depth=0)
        await self._publish(EventType.CHAT_DONE, {
            "streaming": False, "tool_calls": len(run.records),
        })
        if return_metadata:
            return ChatResult(response=text, metadata=run.metadata())
        return text

    async def stream_chat(
        self,
        messages: str | list[dict[str, Any]],
        on_chunk: ChunkCallback | None = None,
        *,
        model: str | None = None,
        temperature: float | None = None,
        timeout_ms: float | None = None,
        on_tool_call: Callback | None = None,
        on_tool_result: Callback | None = None,
        on_tool_error: Callback | None = None,
        return_metadata: bool = False,
        **extra: Any,
    ) -> str | ChatResult:
        """Streaming variant of ``chat``.

        Text deltas reach ``on_chunk`` as soon as they are decoded.  Tool-call
        fragments are never shown to the caller; once a streamed response
        completes with tool calls they are executed and a follow-up stream
        with ``tool_choice="none"`` produces the textual finish.  The return
        value is the text of every level concatenated.
        """
        extra.pop("stream", None)
        run = self._new_run(
            model, temperature, timeout_ms,
            on_tool_call, on_tool_result, on_tool_error, extra,
        )
        text = await self._stream_with_tools(
            normalize_messages(messages), on_chunk, run, depth=0,
        )
        await self._publish(EventType.CHAT_DONE, {
            "streaming": True, "tool_calls": len(run.records),
        })
        if return_metadata:
            return ChatResult(response=text, metadata=run.metadata())
        return text

    async def complete(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_ms: float | None = None,
        **extra: Any,
    ) -> str:
        """Completion-style request: short, low-temperature, no tools."""
        payload: dict[str, Any] = {
            "model": model or self._config.model,
            "messages": [
                {"role": "system", "content": COMPLETION_INSTRUCTION},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.1 if temperature is None else temperature,
            "max_tokens": 50 if max_tokens is None else max_tokens,
        }
        payload.update(extra)
        data = await self._transport.execute(CHAT_ENDPOINT, payload, timeout_ms=timeout_ms)
        return parse_chat_message(data).content

    async def ask(self, question: str, **options: Any) -> str | ChatResult:
        """Single question; same as ``chat(question, ...)``."""
        return await self.chat(question, **options)

    # ------------------------------------------------------------------
    # Non-streaming loop
    # ------------------------------------------------------------------

    async def _chat_with_tools(
        self,
        messages: list[dict[str, Any]],
        run: _ChatRun,
        depth: int,
    ) -> str:
        payload = self._build_payload(messages, run, depth)
        data = await self._transport.execute(
            CHAT_ENDPOINT, payload, timeout_ms=run.timeout_ms,
        )
        message = parse_chat_message(data)
        if message.usage:
            run.usage = message.usage

        if not message.has_tool_calls or depth >= MAX_TOOL_CALL_DEPTH:
            return message.content

        _logger.debug(
            "Depth %d: executing %d tool call(s)", depth, len(message.tool_calls),
        )
        batch = await self._executor.execute(message.tool_calls, run.callbacks)
        run.records.extend(batch.records)

        follow_up = [
            *messages,
            _assistant_message(message.content or None, message.tool_calls),
            *batch.messages,
        ]
        return await self._chat_with_tools(follow_up, run, depth + 1)

    # ------------------------------------------------------------------
    # Streaming loop
    # ------------------------------------------------------------------

    async def _stream_with_tools(
        self,
        messages: list[dict[str, Any]],
        on_chunk: ChunkCallback | None,
        run: _ChatRun,
        depth: int,
        *,
        force_text: bool = False,
    ) -> str:
        payload = self._build_payload(messages, run, depth)
        payload["stream"] = True
        if force_text and "tools" in payload:
            payload["tool_choice"] = "none"

        accumulator = ToolCallAccumulator()

        async def _on_event(event: StreamEvent) -> None:
            if event.delta:
                chunk = StreamChunk(content=event.delta)
                if on_chunk is not None:
                    outcome = on_chunk(chunk)
                    if inspect.isawaitable(outcome):
                        await outcome
                await self._publish(EventType.STREAM_CHUNK, {"content": event.delta})
            if event.tool_calls:
                accumulator.feed(event.tool_calls)

        async with self._transport.stream(
            CHAT_ENDPOINT, payload, timeout_ms=run.timeout_ms,
        ) as resp:
            result = await sse.decode(resp.aiter_bytes(), _on_event)
        if result.usage:
            run.usage = result.usage

        if not accumulator.has_calls() or depth >= MAX_TOOL_CALL_DEPTH:
            return result.text

        tool_calls = accumulator.finalize()
        if not tool_calls:
            _logger.warning("Streamed response carried no complete tool calls")
            return result.text

        _logger.debug(
            "Depth %d: executing %d streamed tool call(s)", depth, len(tool_calls),
        )
        batch = await self._executor.execute(tool_calls, run.callbacks)
        run.records.extend(batch.records)

        follow_up = [
            *messages,
            _assistant_message(result.text or None, tool_calls),
            *batch.messages,
        ]
        rest = await self._stream_with_tools(
            follow_up, on_chunk, run, depth + 1, force_text=True,
        )
        return result.text + rest

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _new_run(
        self,
        model: str | None,
        temperature: float | None,
        timeout_ms: float | None,
        on_tool_call: Callback | None,
        on_tool_result: Callback | None,
        on_tool_error: Callback | None,
        extra: dict[str, Any],
    ) -> _ChatRun:
        return _ChatRun(
            model=model or self._config.model,
            temperature=self._config.temperature if temperature is None else temperature,
            timeout_ms=timeout_ms,
            callbacks=ToolCallbacks(
                on_tool_call=on_tool_call,
                on_tool_result=on_tool_result,
                on_tool_error=on_tool_error,
            ),
            extra=extra,
        )

    def _build_payload(
        self,
        messages: list[dict[str, Any]],
        run: _ChatRun,
        depth: int,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": run.model,
            "messages": messages,
            "temperature": run.temperature,
        }
        if len(self._registry) > 0 and depth < MAX_TOOL_CALL_DEPTH:
            payload["tools"] = self._registry.get_openai_schemas()
            payload["tool_choice"] = "auto"
        payload.update(run.extra)
        return payload

    async def _publish(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self._event_bus:
            await self._event_bus.publish(event_type, data)
