"""Wake-condition registry for the overseer's ``sleep`` tool.

A sleep installs a set of WakeConditions and returns a OneShotGate.
The gate opens exactly once, for whichever trigger arrives first:

  - the timeout timer
  - a session status event matching a condition
    (idle => complete, error => error, waiting_input => input needed)
  - a watched session being killed
  - an explicit resolve() (wake, abort, or a new chat)

Resolution clears the conditions, cancels the timer, and closes the
registry's subscriptions to the session manager. Later triggers are
no-ops.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable

from .events import SessionEvents, SessionKilled, SessionStatusChanged, Subscription
from .models import (
    WAKE_TARGET_STATUS,
    WakeCondition,
    WakeConditionType,
    WakeReason,
)

logger = logging.getLogger(__name__)

_REASON_FOR_CONDITION: dict[WakeConditionType, WakeReason] = {
    WakeConditionType.SESSION_COMPLETE: WakeReason.SESSION_COMPLETE,
    WakeConditionType.SESSION_ERROR: WakeReason.SESSION_ERROR,
    WakeConditionType.SESSION_INPUT_NEEDED: WakeReason.SESSION_INPUT_NEEDED,
}


class OneShotGate:
    """Single-fire synchronization primitive.

    fire() returns True only for the call that actually opened it.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._lock = threading.Lock()
        self._reason: WakeReason | None = None

    @property
    def fired(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> WakeReason | None:
        return self._reason

    def fire(self, reason: WakeReason) -> bool:
        with self._lock:
            if self._reason is not None:
                return False
            self._reason = reason
        self._event.set()
        return True

    async def wait(self) -> WakeReason:
        await self._event.wait()
        assert self._reason is not None
        return self._reason


class AlreadySleepingError(RuntimeError):
    """install() called while another sleep is pending."""


class WakeRegistry:
    """Holds the conditions of at most one suspended overseer turn."""

    def __init__(
        self,
        session_events: SessionEvents,
        on_wake: Callable[[WakeReason], None] | None = None,
    ) -> None:
        self._session_events = session_events
        self._on_wake = on_wake
        self._lock = threading.Lock()
        self._gate: OneShotGate | None = None
        self._conditions: list[WakeCondition] = []
        self._timer: asyncio.TimerHandle | None = None
        self._subscriptions: list[Subscription] = []

    @property
    def pending(self) -> bool:
        return self._gate is not None

    @property
    def conditions(self) -> list[WakeCondition]:
        return list(self._conditions)

    @property
    def gate(self) -> OneShotGate | None:
        return self._gate

    def install(self, conditions: list[WakeCondition]) -> OneShotGate:
        """Register a condition set and start listening for triggers."""
        with self._lock:
            if self._gate is not None:
                raise AlreadySleepingError("a sleep is already pending")
            gate = OneShotGate()
            self._gate = gate
            self._conditions = list(conditions)

        for condition in conditions:
            if condition.type == WakeConditionType.TIMEOUT and condition.timeout_ms is not None:
                loop = asyncio.get_running_loop()
                self._timer = loop.call_later(
                    max(condition.timeout_ms, 0) / 1000.0,
                    self._on_timeout,
                    gate,
                )
                break

        if any(c.session_id for c in conditions):
            self._subscriptions = [
                self._session_events.status.subscribe(self._on_session_status),
                self._session_events.killed.subscribe(self._on_session_killed),
            ]

        logger.info(
            "Overseer sleeping on %d condition(s): %s",
            len(conditions),
            ", ".join(c.type.value + (f"({c.session_id})" if c.session_id else "") for c in conditions),
        )
        return gate

    def resolve(self, reason: WakeReason) -> bool:
        """Atomically claim and open the pending gate. First caller wins."""
        with self._lock:
            gate = self._gate
            if gate is None or gate.fired:
                return False
            self._gate = None
            self._conditions = []
            timer, self._timer = self._timer, None
            subscriptions, self._subscriptions = self._subscriptions, []

        if timer is not None:
            timer.cancel()
        for sub in subscriptions:
            sub.close()
        gate.fire(reason)
        logger.info("Overseer woke: %s", reason.value)
        if self._on_wake is not None:
            self._on_wake(reason)
        return True

    def _on_timeout(self, gate: OneShotGate) -> None:
        # A stale timer from an earlier sleep must not wake a later one.
        if self._gate is not gate:
            return
        self.resolve(WakeReason.TIMEOUT)

    def _on_session_status(self, event: SessionStatusChanged) -> None:
        for condition in self.conditions:
            if condition.session_id != event.session_id:
                continue
            if WAKE_TARGET_STATUS.get(condition.type) == event.status:
                self.resolve(_REASON_FOR_CONDITION[condition.type])
                return

    def _on_session_killed(self, event: SessionKilled) -> None:
        if any(c.session_id == event.session_id for c in self.conditions):
            self.resolve(WakeReason.SESSION_KILLED)
