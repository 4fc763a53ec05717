"""Executor: runs model-requested tool calls against the registry.

Calls run strictly sequentially so tool-result messages keep the order in
which the model requested them.  Failures never escape: an unknown tool,
undecodable arguments or a raising handler each become an error payload
the model can react to.
"""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from warpmind.errors import (
    ToolArgumentParseError,
    ToolError,
    ToolHandlerError,
    ToolNotFoundError,
)
from warpmind.events.bus import EventBus
from warpmind.llm.response_parser import parse_arguments
from warpmind.tools.registry import ToolRegistry
from warpmind.tools.tracker import ToolCallTracker, now_iso
from warpmind.types import EventType, ToolCall, ToolCallRecord, TrackedCall

_logger = logging.getLogger(__name__)

# Sync or async inspection callback receiving a dict payload
Callback = Callable[[dict[str, Any]], Any]


@dataclass
class ToolCallbacks:
    """Caller-supplied inspection hooks; any of them may be None."""

    on_tool_call: Callback | None = None
    on_tool_result: Callback | None = None
    on_tool_error: Callback | None = None


@dataclass
class ToolOutcome:
    """Result of one tool call, already encoded for the conversation."""

    tool_call: ToolCall
    content: str
    success: bool
    record: ToolCallRecord | None = None
    error: ToolError | None = None

    def to_message(self) -> dict[str, Any]:
        """Chat Completions ``tool`` message."""
        return {
            "role": "tool",
            "tool_call_id": self.tool_call.id,
            "content": self.content,
        }

    def to_function_output(self) -> dict[str, Any]:
        """Responses API ``function_call_output`` item."""
        return {
            "type": "function_call_output",
            "call_id": self.tool_call.id,
            "output": self.content,
        }


@dataclass
class ToolExecutionBatch:
    """Outcomes of one batch of tool calls, in request order."""

    outcomes: list[ToolOutcome] = field(default_factory=list)

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [o.to_message() for o in self.outcomes]

    @property
    def function_outputs(self) -> list[dict[str, Any]]:
        return [o.to_function_output() for o in self.outcomes]

    @property
    def records(self) -> list[ToolCallRecord]:
        """Records of calls whose handler actually ran."""
        return [o.record for o in self.outcomes if o.record is not None]

    @property
    def all_succeeded(self) -> bool:
        return all(o.success for o in self.outcomes)


def encode_result(result: Any) -> str:
    """JSON-encode a handler result (``None`` becomes ``null``)."""
    try:
        return json.dumps(result)
    except (TypeError, ValueError):
        return json.dumps(result, default=str)


def _record(call: TrackedCall, success: bool) -> ToolCallRecord:
    return ToolCallRecord(
        id=call.call_id,
        name=call.name,
        parameters=call.parameters,
        timestamp=call.timestamp,
        success=success,
        duration=call.duration,
        result=call.result,
        error=call.error,
    )


class ToolExecutor:
    """Runs tool calls through the registry with lifecycle tracking.

    Usage::

        executor = ToolExecutor(registry, tracker, event_bus)
        batch = await executor.execute(tool_calls, ToolCallbacks(...))
        messages.extend(batch.messages)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        tracker: ToolCallTracker,
        event_bus: EventBus | None = None,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._event_bus = event_bus

    @property
    def tracker(self) -> ToolCallTracker:
        return self._tracker

    async def execute(
        self,
        tool_calls: list[ToolCall],
        callbacks: ToolCallbacks | None = None,
    ) -> ToolExecutionBatch:
        """Execute tool calls one after another."""
        batch = ToolExecutionBatch()
        for tc in tool_calls:
            batch.outcomes.append(await self.run_call(tc, callbacks))
        return batch

    async def run_call(
        self,
        tool_call: ToolCall,
        callbacks: ToolCallbacks | None = None,
    ) -> ToolOutcome:
        """Execute a single call, converting tool failures into error content."""
        callbacks = callbacks or ToolCallbacks()

        try:
            tool, args = self._resolve(tool_call)
        except ToolError as e:
            _logger.warning("Tool call %s rejected: %s", tool_call.name, e)
            return self._failure(tool_call, e)

        tracked = self._tracker.start_call(tool_call.name, args)
        await self._notify(callbacks.on_tool_call, EventType.TOOL_CALL, {
            "call_id": tracked.call_id,
            "name": tracked.name,
            "parameters": tracked.parameters,
            "timestamp": tracked.timestamp,
        })

        try:
            result = tool.handler(args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            _logger.warning("Tool %s raised: %s", tool_call.name, e)
            failed = self._tracker.error_call(tracked.call_id, e) or tracked
            await self._notify(callbacks.on_tool_error, EventType.TOOL_ERROR, {
                "call_id": failed.call_id,
                "name": failed.name,
                "error": failed.error,
                "duration": failed.duration,
                "timestamp": now_iso(),
            })
            err = ToolHandlerError(
                f"Tool execution failed: {e}", tool_name=tool_call.name,
            )
            return self._failure(tool_call, err, _record(failed, success=False))

        completed = self._tracker.complete_call(tracked.call_id, result) or tracked
        await self._notify(callbacks.on_tool_result, EventType.TOOL_RESULT, {
            "call_id": completed.call_id,
            "name": completed.name,
            "result": completed.result,
            "duration": completed.duration,
            "timestamp": now_iso(),
        })
        return ToolOutcome(
            tool_call=tool_call,
            content=encode_result(result),
            success=True,
            record=_record(completed, success=True),
        )

    def _resolve(self, tool_call: ToolCall) -> tuple[Any, Any]:
        tool = self._registry.get(tool_call.name)
        if tool is None:
            raise ToolNotFoundError(
                f"Tool '{tool_call.name}' not found", tool_name=tool_call.name,
            )
        try:
            args = parse_arguments(tool_call.arguments)
        except json.JSONDecodeError as e:
            raise ToolArgumentParseError(
                f"Tool execution failed: Invalid JSON arguments: {e}",
                tool_name=tool_call.name,
            ) from e
        return tool, args

    @staticmethod
    def _failure(
        tool_call: ToolCall,
        error: ToolError,
        record: ToolCallRecord | None = None,
    ) -> ToolOutcome:
        return ToolOutcome(
            tool_call=tool_call,
            content=json.dumps({"error": str(error)}),
            success=False,
            record=record,
            error=error,
        )

    async def _notify(
        self,
        callback: Callback | None,
        event_type: EventType,
        data: dict[str, Any],
    ) -> None:
        """Invoke a caller callback and publish the event; errors are logged only."""
        if callback is not None:
            try:
                outcome = callback(data)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                _logger.warning("Error in %s callback", event_type.value, exc_info=True)
        if self._event_bus:
            await self._event_bus.publish(event_type, data)
