"""Typed notifications and the channels that carry them.

Each aggregate (a session, the overseer) is the single writer of its
channels. Consumers subscribe with a plain callable and get back a
Subscription they close when done. Callbacks run synchronously in the
publisher's turn of the event loop, in subscription order.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .models import (
    OverseerMessage,
    OverseerStatus,
    PermissionMode,
    SessionMessage,
    SessionStatus,
    SessionView,
    WakeCondition,
    WakeReason,
)

logger = logging.getLogger(__name__)


@dataclass
class DeckEvent:
    """Base notification."""
    event_type: str = ""


# ── Session notifications ──


@dataclass
class SessionSpawned(DeckEvent):
    event_type: str = "session_spawned"
    session: SessionView | None = None


@dataclass
class SessionOutput(DeckEvent):
    event_type: str = "session_output"
    session_id: str = ""
    data: str = ""
    stream: str = "stdout"


@dataclass
class SessionMessageEvent(DeckEvent):
    event_type: str = "session_message"
    session_id: str = ""
    message: SessionMessage | None = None


@dataclass
class SessionStatusChanged(DeckEvent):
    event_type: str = "session_status"
    session_id: str = ""
    status: SessionStatus = SessionStatus.IDLE
    old_status: SessionStatus = SessionStatus.IDLE


@dataclass
class SessionModeChanged(DeckEvent):
    event_type: str = "session_mode"
    session_id: str = ""
    mode: PermissionMode = PermissionMode.DEFAULT


@dataclass
class SessionKilled(DeckEvent):
    event_type: str = "session_killed"
    session_id: str = ""


# ── Overseer notifications ──


@dataclass
class OverseerMessageEvent(DeckEvent):
    event_type: str = "overseer_message"
    message: OverseerMessage | None = None


@dataclass
class OverseerStatusChanged(DeckEvent):
    event_type: str = "overseer_status"
    status: OverseerStatus = OverseerStatus.IDLE
    old_status: OverseerStatus = OverseerStatus.IDLE


@dataclass
class OverseerSleeping(DeckEvent):
    event_type: str = "overseer_sleeping"
    conditions: list[WakeCondition] = field(default_factory=list)


@dataclass
class OverseerAwake(DeckEvent):
    event_type: str = "overseer_awake"
    reason: WakeReason = WakeReason.MANUAL


@dataclass
class OverseerAborted(DeckEvent):
    event_type: str = "overseer_aborted"


@dataclass
class OverseerCleared(DeckEvent):
    event_type: str = "overseer_cleared"


@dataclass
class OverseerError(DeckEvent):
    event_type: str = "overseer_error"
    error: str = ""


@dataclass
class OverseerModelChanged(DeckEvent):
    event_type: str = "overseer_model"
    model: str = ""


E = TypeVar("E", bound=DeckEvent)


class Subscription:
    """Handle returned by EventChannel.subscribe(). close() is idempotent."""

    def __init__(self, channel: EventChannel[Any], callback: Callable[[Any], None]) -> None:
        self._channel = channel
        self._callback = callback
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channel._remove(self._callback)


class EventChannel(Generic[E]):
    """Synchronous fan-out of one event kind to its subscribers."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Callable[[E], None]] = []

    def subscribe(self, callback: Callable[[E], None]) -> Subscription:
        self._subscribers.append(callback)
        return Subscription(self, callback)

    def _remove(self, callback: Callable[[E], None]) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: E) -> None:
        # Snapshot: callbacks may unsubscribe while we iterate.
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Subscriber to %s failed on %s", self.name, event.event_type,
                )


class SessionEvents:
    """Channels published by the SessionManager."""

    def __init__(self) -> None:
        self.spawned: EventChannel[SessionSpawned] = EventChannel("session.spawned")
        self.output: EventChannel[SessionOutput] = EventChannel("session.output")
        self.message: EventChannel[SessionMessageEvent] = EventChannel("session.message")
        self.status: EventChannel[SessionStatusChanged] = EventChannel("session.status")
        self.mode: EventChannel[SessionModeChanged] = EventChannel("session.mode")
        self.killed: EventChannel[SessionKilled] = EventChannel("session.killed")

    def all(self) -> list[EventChannel[Any]]:
        return [
            self.spawned, self.output, self.message,
            self.status, self.mode, self.killed,
        ]


class OverseerEvents:
    """Channels published by the Overseer."""

    def __init__(self) -> None:
        self.message: EventChannel[OverseerMessageEvent] = EventChannel("overseer.message")
        self.status: EventChannel[OverseerStatusChanged] = EventChannel("overseer.status")
        self.sleeping: EventChannel[OverseerSleeping] = EventChannel("overseer.sleeping")
        self.awake: EventChannel[OverseerAwake] = EventChannel("overseer.awake")
        self.aborted: EventChannel[OverseerAborted] = EventChannel("overseer.aborted")
        self.cleared: EventChannel[OverseerCleared] = EventChannel("overseer.cleared")
        self.error: EventChannel[OverseerError] = EventChannel("overseer.error")
        self.model: EventChannel[OverseerModelChanged] = EventChannel("overseer.model")

    def all(self) -> list[EventChannel[Any]]:
        return [
            self.message, self.status, self.sleeping, self.awake,
            self.aborted, self.cleared, self.error, self.model,
        ]


def _plain(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if hasattr(value, "value") and isinstance(value, str):
        return value.value
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def event_to_dict(event: DeckEvent) -> dict[str, Any]:
    """Convert a typed event to a plain dict for JSON serialization."""
    d: dict[str, Any] = {}
    for f in event.__dataclass_fields__:
        val = getattr(event, f)
        if val is not None:
            d[f] = _plain(val)
    # "event" key instead of "event_type", matching the wire format
    if "event_type" in d:
        d["event"] = d.pop("event_type")
    return d
