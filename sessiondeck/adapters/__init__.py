"""Adapters package - Bridge between the engine and frontends.

Contains the event bus that turns the engine's synchronous event
channels into an async stream for CLI or network consumers.
"""
from __future__ import annotations

__all__ = [
    "EventBus",
]

from sessiondeck.adapters.event_bus import EventBus
