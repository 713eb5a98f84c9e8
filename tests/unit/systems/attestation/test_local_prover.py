"""
Unit tests for LocalProofService and Ed25519AttestationVerifier.
"""

from __future__ import annotations

import base64

import orjson
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from chainrelay.clients.proof_service import ProofServiceError
from chainrelay.systems.attestation import Ed25519AttestationVerifier, LocalProofService
from chainrelay.systems.attestation.verifier import SIGNATURE_SIZE
from chainrelay.systems.bridge.errors import AttestationInvalid
from chainrelay.systems.ledger import Ledger

ADDRESS = "0x" + "a1" * 20
TOPIC = b"\xaa" * 32


# ─── Fixtures ─────────────────────────────────────────────────────


async def make_prover(polls_until_ready: int = 0) -> tuple[Ledger, LocalProofService]:
    ledger = Ledger(1, name="src")
    async with ledger.transaction() as tx:
        tx.emit(ADDRESS, [TOPIC], b"first")
        tx.emit(ADDRESS, [TOPIC, TOPIC], b"second")
    return ledger, LocalProofService([ledger], polls_until_ready=polls_until_ready)


# ─── Tests: Signing & verification ────────────────────────────────


@pytest.mark.asyncio
async def test_attestation_verifies_and_selects_log_by_position():
    _, prover = await make_prover()
    attestation = prover.attest(1, 2, 1, 0)

    verifier = prover.verifier_for(2)
    log = verifier.verify(1, attestation)

    assert log.chain_id == 1
    assert log.emitter == ADDRESS
    assert log.topics == [TOPIC, TOPIC]
    assert log.data == b"second"


@pytest.mark.asyncio
async def test_body_is_canonical_json():
    _, prover = await make_prover()
    attestation = prover.attest(1, 2, 1, 0)
    body = orjson.loads(attestation[SIGNATURE_SIZE:])
    assert body["src_chain"] == 1
    assert body["dst_chain"] == 2
    assert body["block"] == 1
    assert len(body["logs"]) == 2


@pytest.mark.asyncio
async def test_verifier_rejects_foreign_key():
    _, prover = await make_prover()
    attestation = prover.attest(1, 2, 1, 0)
    stranger = Ed25519AttestationVerifier(Ed25519PrivateKey.generate().public_key(), 2)

    with pytest.raises(AttestationInvalid, match="signature"):
        stranger.verify(0, attestation)


def test_verifier_rejects_short_input():
    verifier = LocalProofService([]).verifier_for(2)
    with pytest.raises(AttestationInvalid, match="too short"):
        verifier.verify(0, b"\x00" * SIGNATURE_SIZE)


def test_verifier_rejects_signed_garbage():
    key = Ed25519PrivateKey.generate()
    body = b"not json"
    verifier = Ed25519AttestationVerifier(key.public_key(), 2)
    with pytest.raises(AttestationInvalid, match="not a receipt claim"):
        verifier.verify(0, key.sign(body) + body)


# ─── Tests: Job lifecycle ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_job_reports_generating_until_ready():
    _, prover = await make_prover(polls_until_ready=2)
    job_id = await prover.request_proof(1, 2, 1, 0)

    first = await prover.query_proof(job_id)
    second = await prover.query_proof(job_id)
    third = await prover.query_proof(job_id)

    assert (first.ready, second.ready) == (False, False)
    assert third.ready is True
    assert third.status == "complete"
    assert third.proof_bytes() == base64.b64decode(third.proof)
    assert prover.verifier_for(2).verify(0, third.proof_bytes()).data == b"first"


@pytest.mark.asyncio
async def test_request_for_unknown_chain_block_or_position_fails():
    _, prover = await make_prover()
    with pytest.raises(ProofServiceError, match="not served"):
        await prover.request_proof(9, 2, 1, 0)
    with pytest.raises(ProofServiceError, match="not found"):
        await prover.request_proof(1, 2, 50, 0)
    with pytest.raises(ProofServiceError, match="No transaction at position"):
        await prover.request_proof(1, 2, 1, 3)


@pytest.mark.asyncio
async def test_query_unknown_job_fails():
    _, prover = await make_prover()
    with pytest.raises(ProofServiceError, match="Unknown proof job"):
        await prover.query_proof("missing")
