"""Tests for tool-call accumulation and chat message parsing."""

import json

import pytest

from warpmind.errors import APIError
from warpmind.llm.response_parser import (
    ToolCallAccumulator,
    parse_arguments,
    parse_chat_message,
)
from warpmind.types import ToolCallFragment


class TestToolCallAccumulator:
    def test_concatenates_argument_chunks(self):
        acc = ToolCallAccumulator()
        acc.feed([ToolCallFragment(index=0, id="call_1", type="function", function_name="add")])
        acc.feed([ToolCallFragment(index=0, arguments_chunk='{"a": 1,')])
        acc.feed([ToolCallFragment(index=0, arguments_chunk=' "b": 2}')])

        calls = acc.finalize()
        assert len(calls) == 1
        assert calls[0].id == "call_1"
        assert calls[0].name == "add"
        assert json.loads(calls[0].arguments) == {"a": 1, "b": 2}

    def test_sparse_out_of_order_indices(self):
        acc = ToolCallAccumulator()
        acc.feed([ToolCallFragment(index=3, id="c3", function_name="b", arguments_chunk="{}")])
        acc.feed([ToolCallFragment(index=1, id="c1", function_name="a", arguments_chunk="{}")])
        assert [c.id for c in acc.finalize()] == ["c1", "c3"]

    def test_incomplete_entries_dropped(self):
        acc = ToolCallAccumulator()
        acc.feed([
            ToolCallFragment(index=0, function_name="no_id", arguments_chunk="{}"),
            ToolCallFragment(index=1, id="c1", arguments_chunk="{}"),
            ToolCallFragment(index=2, id="c2", function_name="bad", arguments_chunk="{oops"),
            ToolCallFragment(index=3, id="c3", function_name="good"),
        ])
        calls = acc.finalize()
        assert [c.id for c in calls] == ["c3"]
        assert calls[0].arguments == ""

    def test_has_calls(self):
        acc = ToolCallAccumulator()
        assert acc.has_calls() is False
        acc.feed([ToolCallFragment(index=0)])
        assert acc.has_calls() is True


class TestParseChatMessage:
    def test_plain_message(self):
        msg = parse_chat_message({
            "choices": [{"message": {"role": "assistant", "content": "Hi"}}],
            "usage": {"total_tokens": 9},
        })
        assert msg.content == "Hi"
        assert msg.has_tool_calls is False
        assert msg.usage == {"total_tokens": 9}

    def test_tool_calls(self):
        msg = parse_chat_message({"choices": [{"message": {
            "content": None,
            "tool_calls": [{"id": "c1", "type": "function",
                            "function": {"name": "f", "arguments": "{}"}}],
        }}]})
        assert msg.content == ""
        assert msg.tool_calls[0].name == "f"
        assert msg.tool_calls[0].to_message_dict()["function"]["arguments"] == "{}"

    @pytest.mark.parametrize("body", [{}, {"choices": []}, {"choices": [{}]}, None])
    def test_missing_message(self, body):
        with pytest.raises(APIError, match="No message in response"):
            parse_chat_message(body)


class TestParseArguments:
    def test_empty_means_no_arguments(self):
        assert parse_arguments("") == {}
        assert parse_arguments("   ") == {}

    def test_json(self):
        assert parse_arguments('{"x": [1]}') == {"x": [1]}

    def test_invalid(self):
        with pytest.raises(json.JSONDecodeError):
            parse_arguments("{x")
