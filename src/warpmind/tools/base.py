"""Registered tool definition."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

# Sync or async callable receiving the decoded arguments
ToolHandler = Callable[[Any], Any]


@dataclass
class RegisteredTool:
    """A caller-supplied function the model may invoke.

    ``parameters`` is a JSON-schema object describing the arguments the
    handler expects.  ``handler`` receives the decoded arguments as a single
    positional value and may be a plain function or a coroutine function.
    """

    name: str
    description: str
    parameters: dict[str, Any]
    handler: ToolHandler

    def to_openai_schema(self) -> dict[str, Any]:
        """Chat Completions function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def to_responses_schema(self) -> dict[str, Any]:
        """Responses API format (flat, no ``function`` wrapper)."""
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }
