"""
Unit tests for BridgeEndpoint.bridge() and local initiation.
"""

from __future__ import annotations

import pytest

from chainrelay.systems.attestation import LocalProofService
from chainrelay.systems.bridge import BridgeEndpoint, Handler, HandlerContext, HandlerResult
from chainrelay.systems.bridge.errors import ConfigurationError, InvalidActionState
from chainrelay.systems.bridge.hashing import selector_for
from chainrelay.systems.bridge.notifications import ActionInitiated, find_notification
from chainrelay.systems.bridge.types import ActionState
from chainrelay.systems.ledger import Ledger

CHAIN_A, CHAIN_B = 11155420, 84532
ADDRESS_A = "0x" + "a1" * 20
ADDRESS_B = "0x" + "b2" * 20
USER = "0x" + "0a" * 20


class _NoopHandler(Handler):
    signature = "noop(bytes)"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        return HandlerResult.ok()


def make_link() -> tuple[BridgeEndpoint, BridgeEndpoint, LocalProofService]:
    ledger_a = Ledger(CHAIN_A, name="a", clock=lambda: 1_700_000_000)
    ledger_b = Ledger(CHAIN_B, name="b", clock=lambda: 1_700_000_000)
    prover = LocalProofService([ledger_a, ledger_b])
    a = BridgeEndpoint(ledger_a, ADDRESS_A, [_NoopHandler()], prover.verifier_for(CHAIN_A), peer=ADDRESS_B)
    b = BridgeEndpoint(ledger_b, ADDRESS_B, [_NoopHandler()], prover.verifier_for(CHAIN_B), peer=ADDRESS_A)
    return a, b, prover


# ─── Tests: bridge() ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_bridge_records_pending_action_and_emits_initiated():
    a, _, _ = make_link()
    receipt = await a.bridge(USER, selector_for("noop(bytes)"), b"payload")
    action_id = receipt.value

    record = a.get_action(action_id)
    assert record.state == ActionState.PENDING
    assert record.source_endpoint == ADDRESS_A
    assert record.destination_endpoint == ADDRESS_B
    assert record.timestamp == 1_700_000_000

    initiated = find_notification(receipt.logs, ActionInitiated)
    assert initiated == ActionInitiated(
        action_id=action_id,
        initiator=USER,
        selector=selector_for("noop(bytes)"),
        payload=b"payload",
    )


@pytest.mark.asyncio
async def test_bridge_unregistered_selector_raises_and_reverts():
    a, _, _ = make_link()
    with pytest.raises(ConfigurationError, match="not registered"):
        await a.bridge(USER, selector_for("missing(bytes)"), b"x")
    assert a.ledger.block_number == 0
    assert a.action_count == 0


@pytest.mark.asyncio
async def test_identical_actions_in_same_second_get_distinct_ids():
    a, _, _ = make_link()
    first = await a.bridge(USER, selector_for("noop(bytes)"), b"same")
    second = await a.bridge(USER, selector_for("noop(bytes)"), b"same")

    assert first.value != second.value
    assert a.action_count == 2


@pytest.mark.asyncio
async def test_initiate_joins_caller_transaction():
    a, _, _ = make_link()
    async with a.ledger.transaction() as tx:
        a.state["number"] = 1
        tx.value = a.initiate(USER, selector_for("noop(bytes)"), b"\x01")

    assert a.ledger.block_number == 1
    assert a.state["number"] == 1
    assert find_notification(tx.receipt.logs, ActionInitiated).action_id == tx.value


def test_initiate_outside_transaction_raises():
    a, _, _ = make_link()
    with pytest.raises(RuntimeError, match="No active transaction"):
        a.initiate(USER, selector_for("noop(bytes)"), b"\x01")


@pytest.mark.asyncio
async def test_empty_payload_bridges_but_cannot_execute():
    a, b, prover = make_link()
    receipt = await a.bridge(USER, selector_for("noop(bytes)"), b"")
    attestation = prover.attest(CHAIN_A, CHAIN_B, receipt.block_number, receipt.tx_index)
    await b.validate(0, attestation)

    with pytest.raises(InvalidActionState, match="empty payload"):
        await b.execute(receipt.value)
    assert b.state_of(receipt.value) == ActionState.PENDING


@pytest.mark.asyncio
async def test_case_variants_of_one_initiator_share_a_nonce_sequence():
    a, b, prover = make_link()
    lower = "0x" + "ab" * 20
    upper = "0x" + "AB" * 20
    selector = selector_for("noop(bytes)")

    first = await a.bridge(lower, selector, b"\x01")
    second = await a.bridge(upper, selector, b"\x01")

    assert first.value != second.value
    assert a.get_action(second.value).initiator == lower

    for receipt in (first, second):
        attestation = prover.attest(CHAIN_A, CHAIN_B, receipt.block_number, receipt.tx_index)
        validation = await b.validate(0, attestation)
        await b.execute(validation.value)
    assert b.state_of(first.value) == ActionState.COMPLETED
    assert b.state_of(second.value) == ActionState.COMPLETED
    assert b.action_count == 2
