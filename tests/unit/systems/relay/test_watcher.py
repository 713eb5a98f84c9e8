"""
Unit tests for ChainWatcher.
"""

from __future__ import annotations

import asyncio

import pytest

from chainrelay.systems.attestation import LocalProofService
from chainrelay.systems.bridge import BridgeEndpoint, Handler, HandlerContext, HandlerResult
from chainrelay.systems.bridge.hashing import selector_for
from chainrelay.systems.bridge.notifications import ActionInitiated
from chainrelay.systems.ledger import Ledger
from chainrelay.systems.relay.bus import NotificationBus
from chainrelay.systems.relay.client import EndpointClient, InMemoryEndpointClient
from chainrelay.systems.relay.types import RelayEvent, RelayEventType
from chainrelay.systems.relay.watcher import ChainWatcher

ADDRESS = "0x" + "a1" * 20
USER = "0x" + "0a" * 20


# ─── Fixtures ─────────────────────────────────────────────────────


class _NoopHandler(Handler):
    signature = "noop(bytes)"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        return HandlerResult.ok()


def make_watched(start_block: int | None = 1):
    ledger = Ledger(1, name="a")
    prover = LocalProofService([ledger])
    endpoint = BridgeEndpoint(ledger, ADDRESS, [_NoopHandler()], prover.verifier_for(1))
    bus = NotificationBus()
    events: list[RelayEvent] = []

    async def collect(event: RelayEvent) -> None:
        events.append(event)

    bus.subscribe_all(collect)
    watcher = ChainWatcher(InMemoryEndpointClient(endpoint), bus, poll_interval_s=0.01, start_block=start_block)
    return endpoint, watcher, events


class _FlakyClient(EndpointClient):
    name = "flaky"
    chain_id = 1
    address = ADDRESS

    def __init__(self) -> None:
        self.calls = 0

    async def block_number(self) -> int:
        self.calls += 1
        raise ConnectionError("rpc down")

    async def get_logs(self, from_block, to_block):
        return []

    async def get_receipt(self, tx_hash):
        raise KeyError(tx_hash)

    async def submit_validation(self, position, attestation):
        raise NotImplementedError

    async def submit_execution(self, action_id):
        raise NotImplementedError


# ─── Tests: poll_once ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_poll_publishes_initiated_notifications():
    endpoint, watcher, events = make_watched()
    receipt = await endpoint.bridge(USER, selector_for("noop(bytes)"), b"x")

    published = await watcher.poll_once()

    assert published == 1
    assert events[0].event_type == RelayEventType.ACTION_INITIATED
    assert events[0].chain_id == 1
    assert isinstance(events[0].notification.event, ActionInitiated)
    assert events[0].notification.event.action_id == receipt.value
    assert events[0].notification.key.tx_hash == receipt.tx_hash


@pytest.mark.asyncio
async def test_cursor_advances_so_logs_are_published_once():
    endpoint, watcher, events = make_watched()
    await endpoint.bridge(USER, selector_for("noop(bytes)"), b"x")

    await watcher.poll_once()
    await watcher.poll_once()
    await endpoint.bridge(USER, selector_for("noop(bytes)"), b"y")
    await watcher.poll_once()

    assert len(events) == 2
    assert watcher.next_block == 3


@pytest.mark.asyncio
async def test_without_start_block_only_new_logs_are_seen():
    endpoint, watcher, events = make_watched(start_block=None)
    await endpoint.bridge(USER, selector_for("noop(bytes)"), b"old")

    await watcher.start()
    await endpoint.bridge(USER, selector_for("noop(bytes)"), b"new")
    await watcher.poll_once()
    await watcher.stop()

    payloads = [e.notification.event.payload for e in events]
    assert payloads == [b"new"]


# ─── Tests: Lifecycle ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_background_loop_publishes_and_stops():
    endpoint, watcher, events = make_watched()
    await watcher.start()
    await endpoint.bridge(USER, selector_for("noop(bytes)"), b"x")

    for _ in range(100):
        if events:
            break
        await asyncio.sleep(0.01)
    await watcher.stop()

    assert len(events) == 1
    assert watcher.running is False


@pytest.mark.asyncio
async def test_poll_errors_are_counted_and_loop_keeps_running():
    client = _FlakyClient()
    watcher = ChainWatcher(client, NotificationBus(), poll_interval_s=0.01, start_block=1)
    await watcher.start()
    for _ in range(100):
        if client.calls >= 2:
            break
        await asyncio.sleep(0.01)

    assert watcher.running is True
    await watcher.stop()
    assert watcher.stats["error_count"] >= 2
