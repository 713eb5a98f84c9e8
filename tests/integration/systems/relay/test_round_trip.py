"""
Integration tests for a running relayer between two in-process chains.

Watchers, bus, orchestrator, local prover and both endpoints run together;
the tests only initiate actions and observe the resulting state.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import pytest

from chainrelay.config import ProverConfig, RelayerConfig
from chainrelay.systems.attestation import LocalProofService
from chainrelay.systems.bridge import BridgeEndpoint, Handler, HandlerContext, HandlerResult
from chainrelay.systems.bridge.handlers import (
    balance_of,
    counter_handlers,
    lock_and_bridge_nft,
    mint_nft,
    nft_handlers,
    update_number_step1,
)
from chainrelay.systems.bridge.hashing import selector_for
from chainrelay.systems.bridge.types import ActionState
from chainrelay.systems.ledger import Ledger
from chainrelay.systems.relay import (
    ActionAuditor,
    InMemoryEndpointClient,
    RelayEventType,
    RelayOrchestrator,
    RelayStatus,
)

CHAIN_A, CHAIN_B = 11155420, 84532
ADDRESS_A = "0x" + "a1" * 20
ADDRESS_B = "0x" + "b2" * 20
USER = "0x" + "0a" * 20


# ─── Fixtures ─────────────────────────────────────────────────────


class _RejectHandler(Handler):
    signature = "reject(bytes)"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        return HandlerResult.fail("rejected by application")


def make_system(extra_handlers: list[Handler] | None = None):
    ledger_a = Ledger(CHAIN_A, name="chain-a")
    ledger_b = Ledger(CHAIN_B, name="chain-b")
    prover = LocalProofService([ledger_a, ledger_b], polls_until_ready=1)
    handlers_a = counter_handlers() + list(extra_handlers or [])
    handlers_b = counter_handlers() + [type(h)() for h in extra_handlers or []]
    a = BridgeEndpoint(ledger_a, ADDRESS_A, handlers_a, prover.verifier_for(CHAIN_A), peer=ADDRESS_B)
    b = BridgeEndpoint(ledger_b, ADDRESS_B, handlers_b, prover.verifier_for(CHAIN_B), peer=ADDRESS_A)
    relayer = RelayOrchestrator(
        (InMemoryEndpointClient(a), InMemoryEndpointClient(b)),
        prover,
        relayer_config=RelayerConfig(poll_interval_s=0.01),
        prover_config=ProverConfig(initial_delay_s=0.01, poll_interval_s=0.01, max_attempts=5),
        instance_id="integration",
    )
    return a, b, relayer


async def wait_until(predicate: Callable[[], bool], timeout_s: float = 5.0) -> None:
    deadline = time.monotonic() + timeout_s
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


# ─── Tests ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_counter_round_trip_reaches_three():
    a, b, relayer = make_system()
    await relayer.start()
    try:
        step1 = await update_number_step1(a, USER, 1)
        await wait_until(lambda: a.state.get("number") == 3)
        await relayer.drain()
    finally:
        await relayer.stop()

    first_id = step1.value
    assert b.state["number"] == 2
    # Source-side records stay PENDING; the destination-side record carries the outcome
    assert a.state_of(first_id) == ActionState.PENDING
    assert b.state_of(first_id) == ActionState.CHAINING

    record_b = b.get_action(first_id)
    outcomes = relayer.recent_outcomes()
    assert len(outcomes) == 2
    assert all(o.status == RelayStatus.COMPLETED for o in outcomes)
    back = next(o for o in outcomes if o.direction == "chain-b->chain-a")
    assert a.state_of(back.source_action_id) == ActionState.COMPLETED
    assert b.state_of(back.source_action_id) == ActionState.PENDING
    assert record_b.next_selector == selector_for("updateNumberStep3(bytes)")

    trail = await ActionAuditor([InMemoryEndpointClient(a), InMemoryEndpointClient(b)]).trail(first_id)
    assert trail[-1].event_type == RelayEventType.ACTION_COMPLETED
    assert trail[-1].chain == "chain-a"


@pytest.mark.asyncio
async def test_application_failure_is_relayed_and_reported():
    a, b, relayer = make_system([_RejectHandler()])
    failures = []

    async def on_failed(event) -> None:
        failures.append(event.outcome)

    relayer.bus.subscribe(RelayEventType.RELAY_FAILED, on_failed)
    await relayer.start()
    try:
        receipt = await a.bridge(USER, selector_for("reject(bytes)"), b"\x01")
        await wait_until(lambda: bool(failures))
        await relayer.drain()
    finally:
        await relayer.stop()

    assert failures[0].status == RelayStatus.FAILED
    assert "rejected by application" in failures[0].error
    assert b.state_of(receipt.value) == ActionState.NONE
    assert a.state_of(receipt.value) == ActionState.PENDING


@pytest.mark.asyncio
async def test_many_actions_are_each_relayed_once():
    a, b, relayer = make_system()
    await relayer.start()
    try:
        receipts = [await update_number_step1(a, USER, i) for i in range(1, 4)]
        ids = [r.value for r in receipts]
        await wait_until(lambda: all(b.state_of(i) == ActionState.CHAINING for i in ids))
        # Every chained step 3 comes back to A
        await wait_until(lambda: len(relayer.recent_outcomes(limit=100)) == 6)
        await relayer.drain()
    finally:
        await relayer.stop()

    assert len(relayer.processed) == 6
    assert all(o.success for o in relayer.recent_outcomes(limit=100))
    assert a.state_of(ids[0]) == ActionState.PENDING


@pytest.mark.asyncio
async def test_nft_transfer_relays_three_hops():
    a, b, relayer = make_system(nft_handlers())
    await relayer.start()
    try:
        token_id = (await mint_nft(a, USER)).value
        await lock_and_bridge_nft(a, USER, token_id)
        await wait_until(lambda: ("unlocked", token_id) in b.state.get("nft_events", []))
        await relayer.drain()
    finally:
        await relayer.stop()

    assert balance_of(a, USER) == 0
    assert balance_of(b, USER) == 1
    outcomes = relayer.recent_outcomes()
    assert [o.direction for o in reversed(outcomes)] == [
        "chain-a->chain-b",
        "chain-b->chain-a",
        "chain-a->chain-b",
    ]
    assert all(o.status == RelayStatus.COMPLETED for o in outcomes)
