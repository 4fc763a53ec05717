"""Tests for ToolRegistry."""

import pytest

from warpmind.errors import ToolRegistrationError
from warpmind.tools import RegisteredTool, ToolRegistry

SCHEMA = {"type": "object", "properties": {"x": {"type": "number"}}}


def _handler(args):
    return args


@pytest.fixture
def registry():
    return ToolRegistry()


class TestRegister:
    def test_register_and_get(self, registry):
        tool = registry.register("double", "Double a number", SCHEMA, _handler)
        assert registry.get("double") is tool
        assert registry.is_registered("double") is True
        assert len(registry) == 1

    def test_register_prebuilt_tool(self, registry):
        registry.register(RegisteredTool("t", "desc", SCHEMA, _handler))
        assert registry.tool_names() == ["t"]

    def test_duplicate_rejected(self, registry):
        registry.register("t", "desc", SCHEMA, _handler)
        with pytest.raises(ToolRegistrationError, match="already registered"):
            registry.register("t", "other", SCHEMA, _handler)

    @pytest.mark.parametrize(
        "args, message",
        [
            (("", "d", SCHEMA, _handler), "name must be a non-empty string"),
            ((42, "d", SCHEMA, _handler), "name must be a non-empty string"),
            (("t", "", SCHEMA, _handler), "description must be a non-empty string"),
            (("t", "d", None, _handler), "parameters must be an object"),
            (("t", "d", ["x"], _handler), "parameters must be an object"),
            (("t", "d", SCHEMA, "not callable"), "handler must be a function"),
        ],
    )
    def test_invalid_definitions(self, registry, args, message):
        with pytest.raises(ToolRegistrationError, match=message):
            registry.register(*args)
        assert len(registry) == 0

    def test_registration_error_is_value_error(self, registry):
        with pytest.raises(ValueError):
            registry.register("", "d", SCHEMA, _handler)


class TestQueries:
    def test_unregister(self, registry):
        registry.register("t", "d", SCHEMA, _handler)
        assert registry.unregister("t") is True
        assert registry.unregister("t") is False
        assert registry.is_registered("t") is False

    def test_unregister_invalid_name(self, registry):
        with pytest.raises(ToolRegistrationError):
            registry.unregister("")

    def test_is_registered_tolerates_garbage(self, registry):
        assert registry.is_registered(None) is False

    def test_order_and_clear(self, registry):
        registry.register("a", "d", SCHEMA, _handler)
        registry.register("b", "d", SCHEMA, _handler)
        assert [t.name for t in registry.list_tools()] == ["a", "b"]
        registry.clear()
        assert len(registry) == 0

    def test_schemas(self, registry):
        registry.register("a", "Adds", SCHEMA, _handler)
        assert registry.get_openai_schemas() == [{
            "type": "function",
            "function": {"name": "a", "description": "Adds", "parameters": SCHEMA},
        }]
        assert registry.get_responses_schemas() == [{
            "type": "function", "name": "a", "description": "Adds", "parameters": SCHEMA,
        }]
