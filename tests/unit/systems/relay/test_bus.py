"""
Unit tests for NotificationBus.
"""

from __future__ import annotations

import asyncio

import pytest

from chainrelay.systems.relay.bus import NotificationBus
from chainrelay.systems.relay.types import RelayEvent, RelayEventType


def make_event(event_type: RelayEventType = RelayEventType.ACTION_INITIATED, **data) -> RelayEvent:
    return RelayEvent(event_type=event_type, data=data)


@pytest.mark.asyncio
async def test_subscribers_receive_only_their_event_type():
    bus = NotificationBus()
    initiated: list[RelayEvent] = []
    everything: list[RelayEvent] = []

    async def on_initiated(event: RelayEvent) -> None:
        initiated.append(event)

    async def on_any(event: RelayEvent) -> None:
        everything.append(event)

    bus.subscribe(RelayEventType.ACTION_INITIATED, on_initiated)
    bus.subscribe_all(on_any)

    await bus.emit(make_event())
    await bus.emit(make_event(RelayEventType.ACTION_COMPLETED))

    assert len(initiated) == 1
    assert len(everything) == 2


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others():
    bus = NotificationBus()
    received: list[RelayEvent] = []

    async def broken(event: RelayEvent) -> None:
        raise RuntimeError("subscriber bug")

    async def healthy(event: RelayEvent) -> None:
        received.append(event)

    bus.subscribe(RelayEventType.ACTION_INITIATED, broken)
    bus.subscribe(RelayEventType.ACTION_INITIATED, healthy)

    await bus.emit(make_event())

    assert len(received) == 1
    assert bus.stats["callback_errors"] == 1


@pytest.mark.asyncio
async def test_slow_subscriber_times_out():
    bus = NotificationBus(callback_timeout_s=0.01)

    async def slow(event: RelayEvent) -> None:
        await asyncio.sleep(1.0)

    bus.subscribe(RelayEventType.ACTION_INITIATED, slow)
    await bus.emit(make_event())

    assert bus.stats["callback_timeouts"] == 1


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    bus = NotificationBus()
    received: list[RelayEvent] = []

    async def cb(event: RelayEvent) -> None:
        received.append(event)

    bus.subscribe(RelayEventType.ACTION_INITIATED, cb)
    bus.unsubscribe(RelayEventType.ACTION_INITIATED, cb)
    bus.unsubscribe(RelayEventType.ACTION_INITIATED, cb)
    await bus.emit(make_event())

    assert received == []


@pytest.mark.asyncio
async def test_recent_is_bounded_and_newest_first():
    bus = NotificationBus(recent_buffer_size=3)
    for i in range(5):
        await bus.emit(make_event(seq=i))

    recent = bus.recent(RelayEventType.ACTION_INITIATED)
    assert [e.data["seq"] for e in recent] == [4, 3, 2]
    assert bus.recent(RelayEventType.RELAY_FAILED) == []
    assert bus.stats["total_emitted"] == 5
