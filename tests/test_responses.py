"""Tests for the Responses API client and helpers."""

from __future__ import annotations

import json

import httpx
import pytest

from warpmind.errors import ResponseFailedError
from warpmind.llm.responses import (
    convert_input,
    extract_instructions,
    extract_text,
    extract_tool_calls,
    has_tool_calls,
)

SCHEMA = {"type": "object", "properties": {}}


def _response(status="completed", output=None, rid="resp_1", **extra) -> httpx.Response:
    body = {"id": rid, "status": status, "output": output or [], **extra}
    return httpx.Response(200, json=body)


def _message(text: str) -> dict:
    return {"type": "message", "role": "assistant",
            "content": [{"type": "output_text", "text": text}]}


class TestConvertInput:
    def test_string(self):
        assert convert_input("hi") == [{
            "type": "message", "role": "user",
            "content": [{"type": "input_text", "text": "hi"}],
        }]

    def test_typed_items_pass_through(self):
        items = [{"type": "function_call_output", "call_id": "c", "output": "1"}]
        assert convert_input(items) is items

    def test_chat_messages(self):
        items = convert_input([
            {"role": "developer", "content": "rules"},
            {"role": "system", "content": "sys"},
            {"role": "user", "content": [{"type": "input_text", "text": "q"}]},
        ])
        assert [i["role"] for i in items] == ["user", "user"]
        assert items[0]["content"] == [{"type": "input_text", "text": "sys"}]
        assert items[1]["content"] == [{"type": "input_text", "text": "q"}]

    def test_single_message(self):
        assert convert_input({"role": "system", "content": "x"})[0]["role"] == "user"

    def test_fallback_stringifies(self):
        assert convert_input(42)[0]["content"][0]["text"] == "42"


class TestOutputHelpers:
    def test_extract_instructions(self):
        assert extract_instructions([{"role": "developer", "content": "be nice"}]) == "be nice"
        assert extract_instructions([
            {"role": "developer", "content": [{"type": "input_text", "text": "parts"}]},
        ]) == "parts"
        assert extract_instructions("string") is None
        assert extract_instructions([{"role": "user", "content": "x"}]) is None

    def test_extract_text_joins_with_newlines(self):
        output = [_message("one"), {"type": "reasoning"}, _message("two")]
        assert extract_text(output) == "one\ntwo"
        assert extract_text([]) == ""
        assert extract_text(None) == ""

    def test_tool_call_detection(self):
        top = [{"type": "function_call", "call_id": "c1", "name": "f", "arguments": "{}"}]
        nested = [{"type": "message", "content": [
            {"type": "function_call", "id": "c2", "name": "g", "arguments": "{}"},
        ]}]
        assert has_tool_calls(top) and has_tool_calls(nested)
        assert not has_tool_calls([_message("x")])
        assert [c.id for c in extract_tool_calls(top + nested)] == ["c1", "c2"]
        assert extract_tool_calls(top)[0].name == "f"


class TestRespond:
    async def test_simple_respond(self, make_client):
        client, api = make_client(_response(output=[_message("Hi!")], usage={"total_tokens": 7}))
        result = await client.respond("Hello", instructions="Be kind")

        assert result.text == "Hi!"
        assert result.id == "resp_1"
        assert result.usage == {"total_tokens": 7}
        body = api.bodies[0]
        assert api.paths == ["/v1/responses"]
        assert body["model"] == "gpt-4o"
        assert body["instructions"] == "Be kind"
        assert "tools" not in body

    async def test_developer_message_becomes_instructions(self, make_client):
        client, api = make_client(_response(output=[_message("ok")]))
        await client.respond([
            {"role": "developer", "content": "Only French"},
            {"role": "user", "content": "Hello"},
        ])
        body = api.bodies[0]
        assert body["instructions"] == "Only French"
        assert len(body["input"]) == 1

    async def test_tool_loop(self, make_client):
        client, api = make_client(
            _response(rid="resp_1", output=[
                {"type": "function_call", "call_id": "fc_1", "name": "add",
                 "arguments": '{"a": 1, "b": 2}'},
            ]),
            _response(rid="resp_2", output=[_message("3")]),
        )
        client.register_tool("add", "Add", SCHEMA, lambda args: args["a"] + args["b"])

        result = await client.respond("1+2?")

        assert result.text == "3"
        first, second = api.bodies
        assert first["tools"] == [{
            "type": "function", "name": "add", "description": "Add", "parameters": SCHEMA,
        }]
        assert second["previous_response_id"] == "resp_1"
        assert second["input"][0]["role"] == "user"
        assert second["input"][1] == {
            "type": "function_call_output", "call_id": "fc_1", "output": "3",
        }
        assert client.tool_call_tracker.get_call_history()[0].name == "add"

    async def test_failed_response(self, make_client):
        client, _ = make_client(_response(status="failed", error={"message": "model crashed"}))
        with pytest.raises(ResponseFailedError, match="Response failed: model crashed"):
            await client.respond("x")

    async def test_incomplete_response_warns(self, make_client, caplog):
        client, _ = make_client(_response(
            status="incomplete", output=[_message("partial")],
            incomplete_details={"reason": "max_output_tokens"},
        ))
        result = await client.respond("x")
        assert result.text == "partial"
        assert "Incomplete response" in caplog.text


class TestStreamRespond:
    async def test_stream(self, make_client, helpers):
        client, api = make_client(helpers.sse_reply(
            {"type": "response.output_text.delta", "delta": "Hel"},
            {"type": "response.output_text.delta", "delta": "lo"},
            {"type": "response.completed",
             "response": {"id": "resp_9", "usage": {"total_tokens": 4}}},
        ))
        chunks = []
        result = await client.stream_respond("Hi", lambda c: chunks.append(c.content))

        assert chunks == ["Hel", "lo"]
        assert result.text == "Hello"
        assert result.id == "resp_9"
        assert result.usage == {"total_tokens": 4}
        assert api.bodies[0]["stream"] is True


class TestResponseManagement:
    async def test_get_delete_cancel(self, make_client):
        client, api = make_client(httpx.Response(200, json={"id": "r1", "status": "completed"}))
        await client.get_response("r1", include="usage")
        await client.delete_response("r1")
        await client.cancel_response("r1")

        methods = [(r.method, r.url.path) for r in api.requests]
        assert methods == [
            ("GET", "/v1/responses/r1"),
            ("DELETE", "/v1/responses/r1"),
            ("POST", "/v1/responses/r1/cancel"),
        ]
        assert api.requests[0].url.params["include"] == "usage"

    async def test_respond_background(self, make_client):
        client, api = make_client(_response(status="queued", rid="resp_bg"))
        assert await client.respond_background("Long task") == "resp_bg"
        body = json.loads(api.requests[0].content)
        assert body["background"] is True
        assert body["store"] is True

    async def test_poll_until_complete(self, make_client):
        client, api = make_client(
            httpx.Response(200, json={"id": "r", "status": "queued"}),
            httpx.Response(200, json={"id": "r", "status": "in_progress"}),
            httpx.Response(200, json={"id": "r", "status": "completed", "output": []}),
        )
        result = await client.poll_until_complete("r", initial_delay_ms=1)
        assert result["status"] == "completed"
        assert len(api.requests) == 3

    @pytest.mark.parametrize("status, message", [
        ("failed", "Response failed"),
        ("cancelled", "Response was cancelled"),
    ])
    async def test_poll_terminal_failures(self, make_client, status, message):
        client, _ = make_client(httpx.Response(200, json={"id": "r", "status": status}))
        with pytest.raises(ResponseFailedError, match=message):
            await client.poll_until_complete("r", initial_delay_ms=1)

    async def test_poll_deadline(self, make_client):
        client, _ = make_client(httpx.Response(200, json={"id": "r", "status": "queued"}))
        with pytest.raises(ResponseFailedError, match="Polling timeout"):
            await client.poll_until_complete("r", max_wait_ms=20, initial_delay_ms=5)
