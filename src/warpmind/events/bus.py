"""Observation hooks for retries, streamed chunks and tool calls.

Components publish a ``ClientEvent`` at each notable point of a request;
``WarpMind.events`` is the single bus they share.  Subscribers run in the
order they subscribed, one after another, so a tool's ``tool.call`` is
always observed before its ``tool.result``.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable

from warpmind.types import ClientEvent, EventType

_logger = logging.getLogger(__name__)

# Sync or async callable taking a ClientEvent
Handler = Callable[[ClientEvent], Any]


class EventBus:
    """Fan ``ClientEvent`` objects out to subscribers.

    A subscriber that raises is logged and skipped; observers never fail
    the request that produced the event.
    """

    def __init__(self) -> None:
        # None holds the subscribers that receive every event type
        self._handlers: dict[EventType | None, list[Handler]] = defaultdict(list)

    def subscribe(self, handler: Handler, *event_types: EventType) -> Callable[[], None]:
        """Call *handler* for the given event types, or for all of them.

        Returns a function that cancels the subscription.
        """
        keys: tuple[EventType | None, ...] = event_types or (None,)
        for key in keys:
            self._handlers[key].append(handler)

        def cancel() -> None:
            for key in keys:
                if handler in self._handlers[key]:
                    self._handlers[key].remove(handler)

        return cancel

    async def publish(self, event_type: EventType, data: dict[str, Any]) -> ClientEvent:
        event = ClientEvent(type=event_type, data=data)
        for handler in [*self._handlers[event_type], *self._handlers[None]]:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                _logger.exception(
                    "Event handler %s failed on %s",
                    getattr(handler, "__name__", handler), event_type.value,
                )
        return event
