"""WarpMind: the public client facade.

Owns the configuration and wires the transport, tool registry, tracker,
executor, orchestrator and Responses client together.  Every component
shares the same ``ClientConfig`` instance, so the setters below take
effect on the next request.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import httpx

from warpmind.config import ClientConfig, load_config
from warpmind.core.conversation import Conversation
from warpmind.core.executor import ToolExecutor
from warpmind.core.orchestrator import ChatOrchestrator, ChunkCallback
from warpmind.errors import APIError, WarpMindError
from warpmind.events.bus import EventBus
from warpmind.llm.responses import ResponsesClient
from warpmind.llm.transport import RequestExecutor
from warpmind.tools.base import RegisteredTool
from warpmind.tools.registry import ToolRegistry
from warpmind.tools.tracker import ToolCallTracker
from warpmind.types import ChatResult, ResponseResult, StreamChunk

_logger = logging.getLogger(__name__)


class WarpMind:
    """Async client for OpenAI-compatible chat, embeddings and Responses APIs.

    Usage::

        async with WarpMind(api_key="sk-...") as mind:
            mind.register_tool("add", "Add two numbers", schema, add)
            print(await mind.chat("What is 2 + 3?"))
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        **settings: Any,
    ) -> None:
        self.config = config or ClientConfig()
        if settings:
            self.config.update(**settings)

        self.events = EventBus()
        self.registry = ToolRegistry()
        self.tool_call_tracker = ToolCallTracker(self.config.tracker_history_limit)
        self.transport = RequestExecutor(
            self.config, event_bus=self.events, transport=transport,
        )
        self.executor = ToolExecutor(self.registry, self.tool_call_tracker, self.events)
        self.orchestrator = ChatOrchestrator(
            self.transport, self.registry, self.executor, self.config, self.events,
        )
        self.responses = ResponsesClient(
            self.transport, self.registry, self.executor, self.config,
        )

    @classmethod
    def from_config(cls, path: str | Path | None = None, **settings: Any) -> WarpMind:
        """Build a client from a YAML config file (see ``load_config``)."""
        return cls(load_config(path), **settings)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_api_key(self, api_key: str) -> None:
        self.config.update(api_key=api_key)

    def set_base_url(self, base_url: str) -> None:
        self.config.update(base_url=base_url)

    def set_model(self, model: str) -> None:
        self.config.update(model=model)

    def set_temperature(self, temperature: float) -> None:
        self.config.update(temperature=temperature)

    def set_timeout(self, timeout_ms: int) -> None:
        self.config.update(timeout_ms=timeout_ms)

    def set_max_retries(self, max_retries: int) -> None:
        self.config.update(max_retries=max_retries)

    def set_custom_headers(self, headers: dict[str, str] | None) -> None:
        """Replace the extra request headers; None clears them."""
        self.config.update(custom_headers=dict(headers or {}))

    def configure(self, **settings: Any) -> None:
        """Update several settings at once; ``None`` values are ignored."""
        self.config.update(**settings)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def register_tool(
        self,
        name: str | RegisteredTool,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
        handler: Callable[[Any], Any] | None = None,
    ) -> RegisteredTool:
        return self.registry.register(name, description, parameters, handler)

    def unregister_tool(self, name: str) -> bool:
        return self.registry.unregister(name)

    def is_tool_registered(self, name: str) -> bool:
        return self.registry.is_registered(name)

    def get_registered_tools(self) -> list[RegisteredTool]:
        return self.registry.list_tools()

    def clear_all_tools(self) -> None:
        self.registry.clear()

    # ------------------------------------------------------------------
    # Chat completions
    # ------------------------------------------------------------------

    async def chat(
        self, messages: str | list[dict[str, Any]], **options: Any,
    ) -> str | ChatResult:
        return await self.orchestrator.chat(messages, **options)

    async def stream_chat(
        self,
        messages: str | list[dict[str, Any]],
        on_chunk: ChunkCallback | None = None,
        **options: Any,
    ) -> str | ChatResult:
        return await self.orchestrator.stream_chat(messages, on_chunk, **options)

    async def complete(self, prompt: str, **options: Any) -> str:
        return await self.orchestrator.complete(prompt, **options)

    async def ask(self, question: str, **options: Any) -> str | ChatResult:
        return await self.orchestrator.ask(question, **options)

    async def embed(
        self,
        text: str,
        model: str | None = None,
        *,
        timeout_ms: float | None = None,
        **extra: Any,
    ) -> list[float]:
        """Return the embedding vector for *text*."""
        if not text or not isinstance(text, str):
            raise ValueError("Text input is required and must be a string")

        payload = {
            "model": model or self.config.embedding_model,
            "input": text,
            **extra,
        }
        try:
            data = await self.transport.execute("/embeddings", payload, timeout_ms=timeout_ms)
        except APIError as e:
            # Keep the concrete error class; only add context to the message
            e.args = (f"Embedding generation failed: {e}",)
            raise

        try:
            embedding = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            embedding = None
        if not embedding:
            raise WarpMindError("Invalid embedding response format")
        return embedding

    # ------------------------------------------------------------------
    # Responses API
    # ------------------------------------------------------------------

    async def respond(self, value: Any, **options: Any) -> ResponseResult:
        return await self.responses.respond(value, **options)

    async def stream_respond(
        self,
        value: Any,
        on_chunk: Callable[[StreamChunk], Any] | None = None,
        **options: Any,
    ) -> ResponseResult:
        return await self.responses.stream_respond(value, on_chunk, **options)

    async def get_response(self, response_id: str, **query: Any) -> Any:
        return await self.responses.get_response(response_id, **query)

    async def delete_response(self, response_id: str) -> Any:
        return await self.responses.delete_response(response_id)

    async def cancel_response(self, response_id: str) -> Any:
        return await self.responses.cancel_response(response_id)

    async def respond_background(self, value: Any, **options: Any) -> str | None:
        return await self.responses.respond_background(value, **options)

    async def poll_until_complete(self, response_id: str, **options: Any) -> dict[str, Any]:
        return await self.responses.poll_until_complete(response_id, **options)

    def create_conversation(
        self,
        instructions: str | None = None,
        model: str | None = None,
    ) -> Conversation:
        return Conversation(self, instructions=instructions, model=model)

    # ------------------------------------------------------------------
    # Low level
    # ------------------------------------------------------------------

    async def make_request(
        self,
        endpoint: str,
        payload: Any = None,
        **options: Any,
    ) -> Any:
        """Direct access to the resilient request executor."""
        return await self.transport.execute(endpoint, payload, **options)

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> WarpMind:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
