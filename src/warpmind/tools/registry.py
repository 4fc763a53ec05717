"""Tool registry keyed by unique tool name."""

from __future__ import annotations

import logging
from typing import Any

from warpmind.errors import ToolRegistrationError
from warpmind.tools.base import RegisteredTool

_logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry of caller-supplied tools.

    Names are unique; registering a name twice raises
    ``ToolRegistrationError``.  Iteration order is registration order.

    The registry is plain mutable state shared by every call on one client.
    It is safe under asyncio's cooperative scheduling; callers adding OS
    threads must guard it with a lock.
    """

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: Any,
        description: Any = None,
        parameters: Any = None,
        handler: Any = None,
    ) -> RegisteredTool:
        """Validate and register a tool.

        Accepts either the four fields or a ready ``RegisteredTool`` as the
        first argument.
        """
        if isinstance(name, RegisteredTool):
            tool = name
            name, description, parameters, handler = (
                tool.name, tool.description, tool.parameters, tool.handler,
            )

        if not name or not isinstance(name, str):
            raise ToolRegistrationError("Tool name must be a non-empty string")
        if not description or not isinstance(description, str):
            raise ToolRegistrationError("Tool description must be a non-empty string")
        if not isinstance(parameters, dict):
            raise ToolRegistrationError("Tool parameters must be an object (JSON schema)")
        if not callable(handler):
            raise ToolRegistrationError("Tool handler must be a function")
        if name in self._tools:
            raise ToolRegistrationError(f"Tool with name '{name}' is already registered")

        tool = RegisteredTool(
            name=name, description=description, parameters=parameters, handler=handler,
        )
        self._tools[name] = tool
        _logger.debug("Registered tool: %s", name)
        return tool

    def unregister(self, name: str) -> bool:
        """Remove a tool; returns False when it was not registered."""
        if not name or not isinstance(name, str):
            raise ToolRegistrationError("Tool name must be a non-empty string")
        return self._tools.pop(name, None) is not None

    def is_registered(self, name: Any) -> bool:
        if not name or not isinstance(name, str):
            return False
        return name in self._tools

    def get(self, name: str) -> RegisteredTool | None:
        """Look up a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[RegisteredTool]:
        return list(self._tools.values())

    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def clear(self) -> None:
        self._tools.clear()

    def __len__(self) -> int:
        return len(self._tools)

    def get_openai_schemas(self) -> list[dict[str, Any]]:
        """Chat Completions schemas for all registered tools."""
        return [t.to_openai_schema() for t in self._tools.values()]

    def get_responses_schemas(self) -> list[dict[str, Any]]:
        """Responses API schemas for all registered tools."""
        return [t.to_responses_schema() for t in self._tools.values()]
