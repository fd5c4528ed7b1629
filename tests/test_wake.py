"""Tests for the one-shot gate and wake-condition registry."""
from __future__ import annotations

import asyncio

import pytest

from sessiondeck.engine.events import SessionEvents, SessionKilled, SessionStatusChanged
from sessiondeck.engine.models import SessionStatus, WakeCondition, WakeConditionType, WakeReason
from sessiondeck.engine.wake import AlreadySleepingError, OneShotGate, WakeRegistry


def _status(session_id: str, status: SessionStatus) -> SessionStatusChanged:
    return SessionStatusChanged(session_id=session_id, status=status, old_status=SessionStatus.THINKING)


def _registry() -> tuple[WakeRegistry, SessionEvents, list[WakeReason]]:
    events = SessionEvents()
    woke: list[WakeReason] = []
    return WakeRegistry(events, on_wake=woke.append), events, woke


@pytest.mark.asyncio
async def test_gate_fires_once():
    gate = OneShotGate()
    assert gate.fire(WakeReason.TIMEOUT) is True
    assert gate.fire(WakeReason.MANUAL) is False
    assert await gate.wait() == WakeReason.TIMEOUT
    assert gate.reason == WakeReason.TIMEOUT


@pytest.mark.asyncio
async def test_timeout_wakes():
    registry, _, woke = _registry()
    gate = registry.install([WakeCondition(WakeConditionType.TIMEOUT, timeout_ms=10)])
    assert registry.pending is True
    assert await asyncio.wait_for(gate.wait(), 1.0) == WakeReason.TIMEOUT
    assert woke == [WakeReason.TIMEOUT]
    assert registry.pending is False
    assert registry.conditions == []


@pytest.mark.asyncio
async def test_matching_status_wakes_and_unsubscribes():
    registry, events, woke = _registry()
    gate = registry.install([
        WakeCondition(WakeConditionType.SESSION_ERROR, session_id="session-1"),
    ])
    assert events.status.subscriber_count == 1

    events.status.publish(_status("session-2", SessionStatus.ERROR))
    events.status.publish(_status("session-1", SessionStatus.IDLE))
    assert gate.fired is False

    events.status.publish(_status("session-1", SessionStatus.ERROR))
    assert await gate.wait() == WakeReason.SESSION_ERROR
    assert woke == [WakeReason.SESSION_ERROR]
    assert events.status.subscriber_count == 0
    assert events.killed.subscriber_count == 0


@pytest.mark.asyncio
async def test_input_needed_condition():
    registry, events, _ = _registry()
    gate = registry.install([
        WakeCondition(WakeConditionType.SESSION_INPUT_NEEDED, session_id="session-1"),
    ])
    events.status.publish(_status("session-1", SessionStatus.WAITING_INPUT))
    assert gate.reason == WakeReason.SESSION_INPUT_NEEDED


@pytest.mark.asyncio
async def test_killing_watched_session_wakes():
    registry, events, woke = _registry()
    gate = registry.install([
        WakeCondition(WakeConditionType.SESSION_COMPLETE, session_id="session-1"),
    ])
    events.killed.publish(SessionKilled(session_id="session-1"))
    assert gate.reason == WakeReason.SESSION_KILLED
    assert woke == [WakeReason.SESSION_KILLED]


@pytest.mark.asyncio
async def test_completion_beats_later_timeout():
    registry, events, woke = _registry()
    gate = registry.install([
        WakeCondition(WakeConditionType.TIMEOUT, timeout_ms=50),
        WakeCondition(WakeConditionType.SESSION_COMPLETE, session_id="session-1"),
    ])

    async def complete_soon():
        await asyncio.sleep(0.01)
        events.status.publish(_status("session-1", SessionStatus.IDLE))

    await complete_soon()
    assert await gate.wait() == WakeReason.SESSION_COMPLETE
    await asyncio.sleep(0.08)
    assert woke == [WakeReason.SESSION_COMPLETE]


@pytest.mark.asyncio
async def test_resolve_is_at_most_once():
    registry, _, woke = _registry()
    registry.install([WakeCondition(WakeConditionType.TIMEOUT, timeout_ms=10_000)])
    assert registry.resolve(WakeReason.MANUAL) is True
    assert registry.resolve(WakeReason.ABORTED) is False
    assert woke == [WakeReason.MANUAL]


@pytest.mark.asyncio
async def test_install_while_pending_raises():
    registry, _, _ = _registry()
    registry.install([WakeCondition(WakeConditionType.TIMEOUT, timeout_ms=10_000)])
    with pytest.raises(AlreadySleepingError):
        registry.install([WakeCondition(WakeConditionType.TIMEOUT, timeout_ms=5)])
    registry.resolve(WakeReason.MANUAL)


@pytest.mark.asyncio
async def test_stale_timer_does_not_wake_next_sleep():
    registry, _, woke = _registry()
    first = registry.install([WakeCondition(WakeConditionType.TIMEOUT, timeout_ms=10_000)])
    registry.resolve(WakeReason.MANUAL)
    second = registry.install([WakeCondition(WakeConditionType.TIMEOUT, timeout_ms=10_000)])

    # Simulate the first sleep's timer firing late.
    registry._on_timeout(first)

    assert second.fired is False
    assert woke == [WakeReason.MANUAL]
    registry.resolve(WakeReason.MANUAL)


@pytest.mark.asyncio
async def test_timeout_only_sleep_does_not_subscribe():
    registry, events, _ = _registry()
    registry.install([WakeCondition(WakeConditionType.TIMEOUT, timeout_ms=10_000)])
    assert events.status.subscriber_count == 0
    registry.resolve(WakeReason.MANUAL)
