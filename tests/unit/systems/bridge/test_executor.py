"""
Unit tests for action execution on a BridgeEndpoint.

Tests dispatch, handler failure handling, chaining and state guards.
"""

from __future__ import annotations

import asyncio

import pytest

from chainrelay.systems.attestation import LocalProofService
from chainrelay.systems.bridge import (
    BridgeEndpoint,
    FailureReason,
    Handler,
    HandlerContext,
    HandlerResult,
)
from chainrelay.systems.bridge.errors import InvalidActionState, ReplayedProof
from chainrelay.systems.bridge.hashing import selector_for
from chainrelay.systems.bridge.notifications import (
    ActionChained,
    ActionCompleted,
    ActionInitiated,
    decode_notification,
    find_notification,
)
from chainrelay.systems.bridge.types import ActionState
from chainrelay.systems.ledger import Ledger

CHAIN_A, CHAIN_B = 11155420, 84532
ADDRESS_A = "0x" + "a1" * 20
ADDRESS_B = "0x" + "b2" * 20
USER = "0x" + "0a" * 20


# ─── Fixtures ─────────────────────────────────────────────────────


class _StoreHandler(Handler):
    signature = "store(bytes)"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        context.storage["value"] = payload
        return HandlerResult.ok()


class _FailHandler(Handler):
    signature = "fail(bytes)"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        context.storage["dirty"] = True
        return HandlerResult.fail("insufficient balance")


class _RaiseHandler(Handler):
    signature = "raise(bytes)"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        context.storage["dirty"] = True
        raise ValueError("bad payload")


class _SlowHandler(Handler):
    signature = "slow(bytes)"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        await asyncio.sleep(1.0)
        return HandlerResult.ok()


class _PingHandler(Handler):
    signature = "ping(bytes)"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        context.storage["pinged"] = payload
        return HandlerResult.chain("store(bytes)", payload + b"!")


class _BadChainHandler(Handler):
    signature = "badchain(bytes)"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        context.storage["dirty"] = True
        return HandlerResult.chain("missing(bytes)", payload)


class _OnlyOnAHandler(Handler):
    signature = "onlya(bytes)"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        return HandlerResult.ok()


def _handlers() -> list[Handler]:
    return [
        _StoreHandler(),
        _FailHandler(),
        _RaiseHandler(),
        _SlowHandler(),
        _PingHandler(),
        _BadChainHandler(),
    ]


def make_link() -> tuple[BridgeEndpoint, BridgeEndpoint, LocalProofService]:
    ledger_a = Ledger(CHAIN_A, name="a", clock=lambda: 1_700_000_000)
    ledger_b = Ledger(CHAIN_B, name="b", clock=lambda: 1_700_000_000)
    prover = LocalProofService([ledger_a, ledger_b])
    a = BridgeEndpoint(
        ledger_a,
        ADDRESS_A,
        _handlers() + [_OnlyOnAHandler()],
        prover.verifier_for(CHAIN_A),
        peer=ADDRESS_B,
    )
    b = BridgeEndpoint(
        ledger_b,
        ADDRESS_B,
        _handlers(),
        prover.verifier_for(CHAIN_B),
        peer=ADDRESS_A,
        handler_timeout_s=0.05,
    )
    return a, b, prover


async def deliver(
    a: BridgeEndpoint,
    b: BridgeEndpoint,
    prover: LocalProofService,
    signature: str,
    payload: bytes = b"\x01",
) -> bytes:
    """Bridge from A and validate on B. Returns the action id."""
    receipt = await a.bridge(USER, selector_for(signature), payload)
    attestation = prover.attest(CHAIN_A, CHAIN_B, receipt.block_number, receipt.tx_index)
    await b.validate(0, attestation)
    return receipt.value


# ─── Tests: Success ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_execute_runs_handler_and_completes():
    a, b, prover = make_link()
    action_id = await deliver(a, b, prover, "store(bytes)", b"hello")

    receipt = await b.execute(action_id)
    outcome = receipt.value

    assert outcome.success is True
    assert outcome.state == ActionState.COMPLETED
    assert outcome.chained is False
    assert b.state["value"] == b"hello"
    assert b.state_of(action_id) == ActionState.COMPLETED
    completed = find_notification(receipt.logs, ActionCompleted)
    assert completed.action_id == action_id
    assert completed.success is True


# ─── Tests: Failures ──────────────────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("signature", "reason"),
    [
        ("fail(bytes)", FailureReason.HANDLER_FAILED),
        ("raise(bytes)", FailureReason.HANDLER_EXCEPTION),
        ("slow(bytes)", FailureReason.HANDLER_TIMEOUT),
        ("badchain(bytes)", FailureReason.CHAIN_TARGET_UNREGISTERED),
    ],
)
async def test_handler_failure_deletes_record_and_reverts_handler_writes(signature, reason):
    a, b, prover = make_link()
    action_id = await deliver(a, b, prover, signature)
    block = b.ledger.block_number

    receipt = await b.execute(action_id)
    outcome = receipt.value

    assert outcome.success is False
    assert outcome.failure_reason == reason
    assert outcome.state == ActionState.NONE
    assert b.state_of(action_id) == ActionState.NONE
    assert "dirty" not in b.state
    # The failure itself is committed
    assert b.ledger.block_number == block + 1
    events = [decode_notification(log) for log in receipt.logs]
    assert events == [ActionCompleted(action_id=action_id, success=False)]


@pytest.mark.asyncio
async def test_unknown_selector_on_destination_fails_execution():
    a, b, prover = make_link()
    action_id = await deliver(a, b, prover, "onlya(bytes)")

    outcome = (await b.execute(action_id)).value

    assert outcome.success is False
    assert outcome.failure_reason == FailureReason.UNKNOWN_SELECTOR
    assert b.get_action(action_id) is None


@pytest.mark.asyncio
async def test_failed_action_cannot_be_revalidated_with_same_proof():
    a, b, prover = make_link()
    receipt = await a.bridge(USER, selector_for("fail(bytes)"), b"\x01")
    attestation = prover.attest(CHAIN_A, CHAIN_B, receipt.block_number, receipt.tx_index)
    await b.validate(0, attestation)
    await b.execute(receipt.value)

    with pytest.raises(ReplayedProof):
        await b.validate(0, attestation)


# ─── Tests: Chaining ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_chaining_spawns_new_action_back_to_source():
    a, b, prover = make_link()
    action_id = await deliver(a, b, prover, "ping(bytes)", b"hi")

    receipt = await b.execute(action_id)
    outcome = receipt.value

    assert outcome.success is True
    assert outcome.state == ActionState.CHAINING
    assert outcome.chained is True
    assert outcome.next_selector == selector_for("store(bytes)")

    record = b.get_action(action_id)
    assert record.state == ActionState.CHAINING
    assert record.next_selector == selector_for("store(bytes)")
    assert record.next_payload == b"hi!"

    spawned = b.get_action(outcome.next_action_id)
    assert spawned.state == ActionState.PENDING
    assert spawned.source_endpoint == ADDRESS_B
    assert spawned.destination_endpoint == ADDRESS_A
    assert spawned.initiator == USER
    assert spawned.payload == b"hi!"
    assert b.state["pinged"] == b"hi"

    events = [decode_notification(log) for log in receipt.logs]
    assert [type(e) for e in events] == [ActionInitiated, ActionChained, ActionCompleted]
    assert events[1].previous_id == action_id
    assert events[1].next_id == outcome.next_action_id
    assert events[2].success is True


# ─── Tests: State guards ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_execute_twice_raises_without_mutation():
    a, b, prover = make_link()
    action_id = await deliver(a, b, prover, "store(bytes)")
    await b.execute(action_id)
    block = b.ledger.block_number

    with pytest.raises(InvalidActionState, match="completed"):
        await b.execute(action_id)
    assert b.ledger.block_number == block
    assert b.state_of(action_id) == ActionState.COMPLETED


@pytest.mark.asyncio
async def test_execute_unknown_action_raises():
    _, b, _ = make_link()
    with pytest.raises(InvalidActionState, match="does not exist"):
        await b.execute(b"\x42" * 32)


@pytest.mark.asyncio
async def test_source_side_record_cannot_be_executed():
    a, _, _ = make_link()
    receipt = await a.bridge(USER, selector_for("store(bytes)"), b"\x01")
    with pytest.raises(InvalidActionState, match="not been validated"):
        await a.execute(receipt.value)
    assert a.state_of(receipt.value) == ActionState.PENDING
