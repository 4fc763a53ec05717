"""Event bus for WarpMind."""

from warpmind.events.bus import EventBus

__all__ = ["EventBus"]
