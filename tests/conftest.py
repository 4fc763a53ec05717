"""Shared fixtures: a scripted fake API served through ``httpx.MockTransport``."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from warpmind.client import WarpMind
from warpmind.config import ClientConfig


class ScriptedAPI:
    """MockTransport handler replaying a list of canned replies.

    Each reply is an ``httpx.Response``, an exception to raise, or a
    callable receiving the request.  The last reply repeats once the
    script runs out.
    """

    def __init__(self, *replies: Any) -> None:
        self.replies = list(replies)
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(request)
            if not isinstance(reply, httpx.Response):
                reply = await reply
            return reply
        # Fresh copy: httpx binds a response to the request that received it
        return httpx.Response(
            reply.status_code, headers=reply.headers, content=reply.content,
        )

    @property
    def bodies(self) -> list[Any]:
        return [json.loads(r.content) if r.content else None for r in self.requests]

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def chat_reply(
    content: str | None = "Hello!",
    tool_calls: list[dict[str, Any]] | None = None,
    total_tokens: int = 30,
) -> httpx.Response:
    message: dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return httpx.Response(200, json={
        "id": "chatcmpl-1",
        "choices": [{"index": 0, "message": message, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": total_tokens},
    })


def tool_call(call_id: str, name: str, arguments: Any = None) -> dict[str, Any]:
    args = arguments if isinstance(arguments, str) else json.dumps(arguments or {})
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": args}}


def sse_reply(*payloads: Any, done: bool = True) -> httpx.Response:
    """Streaming response whose frames carry the given payloads."""
    frames = [
        f"data: {p if isinstance(p, str) else json.dumps(p)}\n\n" for p in payloads
    ]
    if done:
        frames.append("data: [DONE]\n\n")
    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream"},
        content="".join(frames).encode("utf-8"),
    )


def text_delta(text: str) -> dict[str, Any]:
    return {"id": "chatcmpl-s", "choices": [{"index": 0, "delta": {"content": text}}]}


def tool_delta(index: int, call_id: str | None = None, name: str | None = None,
               arguments: str | None = None) -> dict[str, Any]:
    fragment: dict[str, Any] = {"index": index, "function": {}}
    if call_id:
        fragment["id"] = call_id
        fragment["type"] = "function"
    if name:
        fragment["function"]["name"] = name
    if arguments is not None:
        fragment["function"]["arguments"] = arguments
    return {"id": "chatcmpl-s", "choices": [{"index": 0, "delta": {"tool_calls": [fragment]}}]}


@pytest.fixture(autouse=True)
def no_sleep():
    """Retry backoff never really sleeps in tests."""
    with patch("warpmind.llm.transport.sleep_ms", new_callable=AsyncMock) as mocked:
        yield mocked


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(api_key="test-key", base_url="https://api.test", max_retries=2)


@pytest.fixture
def make_client(config):
    """Build a WarpMind wired to a ScriptedAPI; returns ``(client, api)``."""
    def _make(*replies: Any) -> tuple[WarpMind, ScriptedAPI]:
        api = ScriptedAPI(*replies)
        client = WarpMind(config, transport=httpx.MockTransport(api))
        return client, api

    return _make


@pytest.fixture
def helpers():
    """Reply builders for the fake API."""

    class _Helpers:
        ScriptedAPI = ScriptedAPI
        chat_reply = staticmethod(chat_reply)
        tool_call = staticmethod(tool_call)
        sse_reply = staticmethod(sse_reply)
        text_delta = staticmethod(text_delta)
        tool_delta = staticmethod(tool_delta)

    return _Helpers
