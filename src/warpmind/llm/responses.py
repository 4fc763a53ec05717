"""Client for the ``/responses`` endpoint.

The module-level helpers translate between Chat Completions style input
and Responses API items and pick apart response ``output`` arrays.
``ResponsesClient`` runs the request/tool loop on top of the shared
``RequestExecutor`` and ``ToolExecutor``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Callable

from warpmind.config import ClientConfig
from warpmind.core.executor import ToolExecutor
from warpmind.errors import ResponseFailedError
from warpmind.llm import sse
from warpmind.llm.transport import RequestExecutor
from warpmind.tools.registry import ToolRegistry
from warpmind.types import ResponseResult, StreamChunk, StreamEvent, ToolCall

_logger = logging.getLogger(__name__)

RESPONSES_ENDPOINT = "/responses"

# Polling backoff ceiling
MAX_POLL_DELAY_MS = 10000


# ---------------------------------------------------------------------------
# Input conversion
# ---------------------------------------------------------------------------

def _text_content(content: Any) -> Any:
    if isinstance(content, str):
        return [{"type": "input_text", "text": content}]
    return content


def _message_item(message: dict[str, Any]) -> dict[str, Any]:
    role = message.get("role")
    return {
        "type": "message",
        "role": "user" if role == "system" else role,
        "content": _text_content(message.get("content")),
    }


def convert_input(value: Any) -> list[dict[str, Any]]:
    """Convert caller input into a list of Responses API input items.

    - a string becomes one user message;
    - a list whose first element has a ``type`` is passed through;
    - a Chat Completions message list is converted item by item, dropping
      ``developer`` messages (see ``extract_instructions``) and mapping
      ``system`` to ``user``;
    - a single message dict is converted the same way;
    - anything else is stringified.
    """
    if isinstance(value, str):
        return [_message_item({"role": "user", "content": value})]

    if isinstance(value, list) and value and isinstance(value[0], dict):
        if value[0].get("type"):
            return value
        if value[0].get("role"):
            return [
                _message_item(msg)
                for msg in value
                if isinstance(msg, dict) and msg.get("role") != "developer"
            ]

    if isinstance(value, dict) and value.get("role") and value.get("content"):
        return [_message_item(value)]

    return [_message_item({"role": "user", "content": str(value)})]


def extract_instructions(messages: Any) -> str | None:
    """Content of the first ``developer`` message, if any."""
    if not isinstance(messages, list):
        return None
    for msg in messages:
        if isinstance(msg, dict) and msg.get("role") == "developer":
            content = msg.get("content")
            if isinstance(content, str):
                return content
            if isinstance(content, list) and content and isinstance(content[0], dict):
                return content[0].get("text")
            return None
    return None


# ---------------------------------------------------------------------------
# Output inspection
# ---------------------------------------------------------------------------

def _items(output: Any) -> list[dict[str, Any]]:
    if not isinstance(output, list):
        return []
    return [item for item in output if isinstance(item, dict)]


def _contents(item: dict[str, Any]) -> list[dict[str, Any]]:
    content = item.get("content")
    if not isinstance(content, list):
        return []
    return [c for c in content if isinstance(c, dict)]


def extract_text(output: Any) -> str:
    """Join every ``output_text`` part of every message item with newlines."""
    texts = [
        c.get("text") or ""
        for item in _items(output)
        if item.get("type") == "message"
        for c in _contents(item)
        if c.get("type") == "output_text"
    ]
    return "\n".join(texts)


def has_tool_calls(output: Any) -> bool:
    for item in _items(output):
        if item.get("type") == "function_call":
            return True
        if item.get("type") == "message" and any(
            c.get("type") == "function_call" for c in _contents(item)
        ):
            return True
    return False


def extract_tool_calls(output: Any) -> list[ToolCall]:
    """Function calls from top-level items and from message content parts."""
    calls: list[ToolCall] = []
    for item in _items(output):
        if item.get("type") == "function_call":
            calls.append(ToolCall(
                id=item.get("call_id") or "",
                name=item.get("name") or "",
                arguments=item.get("arguments") or "",
            ))
        elif item.get("type") == "message":
            for c in _contents(item):
                if c.get("type") == "function_call":
                    calls.append(ToolCall(
                        id=c.get("call_id") or c.get("id") or "",
                        name=c.get("name") or "",
                        arguments=c.get("arguments") or "",
                    ))
    return calls


def _error_message(response: dict[str, Any]) -> str:
    error = response.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return "Unknown error"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class ResponsesClient:
    """Responses API operations sharing the client's transport and tools."""

    def __init__(
        self,
        transport: RequestExecutor,
        registry: ToolRegistry,
        executor: ToolExecutor,
        config: ClientConfig,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._executor = executor
        self._config = config

    def _build_payload(
        self, value: Any, options: dict[str, Any],
    ) -> tuple[dict[str, Any], float | None]:
        """Request body plus the per-attempt timeout popped from the options."""
        options = dict(options)
        timeout_ms = options.pop("timeout_ms", None)
        payload: dict[str, Any] = {
            "model": options.pop("model", None) or self._config.model,
            "input": convert_input(value),
            **options,
        }
        instructions = extract_instructions(value)
        if instructions:
            payload["instructions"] = instructions
        if len(self._registry) > 0:
            payload["tools"] = self._registry.get_responses_schemas()
        return payload, timeout_ms

    async def respond(self, value: Any, **options: Any) -> ResponseResult:
        """Create a response, executing tool calls until the model stops asking.

        Follow-up requests resend the original input plus the
        ``function_call_output`` items and chain with
        ``previous_response_id``.
        """
        payload, timeout_ms = self._build_payload(value, options)
        original_input = payload["input"]

        response = await self._post(payload, timeout_ms)
        while response.get("status") == "completed" and has_tool_calls(response.get("output")):
            tool_calls = extract_tool_calls(response.get("output"))
            _logger.debug("Executing %d tool call(s) for response %s",
                          len(tool_calls), response.get("id"))
            batch = await self._executor.execute(tool_calls)
            payload["input"] = [*original_input, *batch.function_outputs]
            if response.get("id"):
                payload["previous_response_id"] = response["id"]
            response = await self._post(payload, timeout_ms)

        status = response.get("status")
        if status == "failed":
            raise ResponseFailedError(
                f"Response failed: {_error_message(response)}",
                response_id=response.get("id"),
            )
        if status == "incomplete":
            _logger.warning("Incomplete response: %s", response.get("incomplete_details"))

        return ResponseResult(
            text=extract_text(response.get("output")),
            id=response.get("id"),
            usage=response.get("usage"),
        )

    async def stream_respond(
        self,
        value: Any,
        on_chunk: Callable[[StreamChunk], Any] | None = None,
        **options: Any,
    ) -> ResponseResult:
        """Stream a response; text deltas are delivered to ``on_chunk``."""
        options.pop("stream", None)
        payload, timeout_ms = self._build_payload(value, options)
        payload["stream"] = True

        async def _on_event(event: StreamEvent) -> None:
            if event.delta and on_chunk is not None:
                outcome = on_chunk(StreamChunk(content=event.delta))
                if inspect.isawaitable(outcome):
                    await outcome

        async with self._transport.stream(
            RESPONSES_ENDPOINT, payload, timeout_ms=timeout_ms,
        ) as resp:
            result = await sse.decode(resp.aiter_bytes(), _on_event)
        return ResponseResult(text=result.text, id=result.id, usage=result.usage)

    async def get_response(self, response_id: str, **query: Any) -> Any:
        return await self._transport.execute(
            f"{RESPONSES_ENDPOINT}/{response_id}",
            method="GET",
            query_params=query or None,
        )

    async def delete_response(self, response_id: str) -> Any:
        return await self._transport.execute(
            f"{RESPONSES_ENDPOINT}/{response_id}", method="DELETE",
        )

    async def cancel_response(self, response_id: str) -> Any:
        return await self._transport.execute(
            f"{RESPONSES_ENDPOINT}/{response_id}/cancel", method="POST",
        )

    async def respond_background(self, value: Any, **options: Any) -> str | None:
        """Start a stored background response and return its id for polling."""
        options.update(background=True, store=True)
        payload, timeout_ms = self._build_payload(value, options)
        response = await self._post(payload, timeout_ms)
        return response.get("id")

    async def poll_until_complete(
        self,
        response_id: str,
        *,
        max_wait_ms: float = 300000,
        initial_delay_ms: float = 1000,
    ) -> dict[str, Any]:
        """Poll until the response completes, doubling the delay up to 10 s.

        Raises ``ResponseFailedError`` when the response fails, is cancelled
        or does not complete within ``max_wait_ms``.
        """
        started = time.monotonic()
        delay_ms = initial_delay_ms
        while (time.monotonic() - started) * 1000 < max_wait_ms:
            await asyncio.sleep(delay_ms / 1000)
            response = await self.get_response(response_id) or {}
            status = response.get("status")
            if status == "completed":
                return response
            if status == "failed":
                raise ResponseFailedError(
                    f"Response failed: {_error_message(response)}",
                    response_id=response_id,
                )
            if status == "cancelled":
                raise ResponseFailedError(
                    "Response was cancelled", response_id=response_id,
                )
            _logger.debug("Response %s is %s, next poll in %dms",
                          response_id, status, delay_ms)
            delay_ms = min(delay_ms * 2, MAX_POLL_DELAY_MS)

        raise ResponseFailedError(
            f"Polling timeout: Response not completed after {max_wait_ms}ms",
            response_id=response_id,
        )

    async def _post(self, payload: dict[str, Any], timeout_ms: float | None) -> dict[str, Any]:
        data = await self._transport.execute(RESPONSES_ENDPOINT, payload, timeout_ms=timeout_ms)
        return data if isinstance(data, dict) else {}
