"""Async event bus bridging engine channels to a boundary consumer.

The SessionManager and Overseer publish synchronously on typed
channels. The EventBus subscribes to every channel and queues the
events so a single async consumer (CLI printer, websocket pump, ...)
can drain them in publish order.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from sessiondeck.engine.events import (
    DeckEvent,
    OverseerEvents,
    SessionEvents,
    Subscription,
)

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue fed by engine event channels."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[DeckEvent] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._subscriptions: list[Subscription] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def attach(
        self,
        session_events: SessionEvents | None = None,
        overseer_events: OverseerEvents | None = None,
    ) -> None:
        """Subscribe to every channel of the given event groups."""
        channels = []
        if session_events is not None:
            channels.extend(session_events.all())
        if overseer_events is not None:
            channels.extend(overseer_events.all())
        for channel in channels:
            self._subscriptions.append(channel.subscribe(self.emit))

    def detach(self) -> None:
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions.clear()

    def emit(self, event: DeckEvent) -> None:
        """Queue an event. Drops (and logs) when full or closed."""
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(
                "EventBus queue full, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[DeckEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield event
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def drain(self) -> list[DeckEvent]:
        """Return everything currently queued without waiting."""
        events: list[DeckEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True

    def reset(self) -> None:
        """Drain leftover events and re-open the bus."""
        self.drain()
        self._closed = False
