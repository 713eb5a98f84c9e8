"""
ChainRelay — Local Attestation Service

In-process implementation of the ProofService interface for local runs and
tests. It reads receipts straight from registered ledgers and signs them with
an Ed25519 key; Ed25519AttestationVerifier instances built from the same key
accept the result.

Job lifecycle mirrors the hosted service: request_proof() returns a job id
immediately, and query_proof() reports "generating" for the first
`polls_until_ready` queries before returning the base64 proof.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import TYPE_CHECKING

import orjson
import structlog
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from chainrelay.clients.proof_service import JobId, ProofService, ProofServiceError, ProofStatus
from chainrelay.primitives.common import new_id, to_hex
from chainrelay.systems.attestation.verifier import ATTESTATION_VERSION, Ed25519AttestationVerifier

if TYPE_CHECKING:
    from chainrelay.systems.ledger.ledger import Ledger
    from chainrelay.systems.ledger.types import Receipt

logger = structlog.get_logger()


@dataclass
class _ProofJob:
    src_chain_id: int
    dst_chain_id: int
    block_number: int
    position_in_block: int
    polls: int = 0
    proof: str | None = None


class LocalProofService(ProofService):
    def __init__(
        self,
        ledgers: list[Ledger],
        signing_key: Ed25519PrivateKey | None = None,
        polls_until_ready: int = 0,
    ) -> None:
        self._ledgers = {ledger.chain_id: ledger for ledger in ledgers}
        self._key = signing_key or Ed25519PrivateKey.generate()
        self._polls_until_ready = polls_until_ready
        self._jobs: dict[str, _ProofJob] = {}
        self._logger = logger.bind(system="attestation.prover")

    @property
    def public_key(self) -> Ed25519PublicKey:
        return self._key.public_key()

    def verifier_for(self, chain_id: int) -> Ed25519AttestationVerifier:
        """Verifier for endpoints on chain_id that trusts this prover."""
        return Ed25519AttestationVerifier(self.public_key, local_chain_id=chain_id)

    # ── ProofService ─────────────────────────────────────────────

    async def request_proof(
        self,
        src_chain_id: int,
        dst_chain_id: int,
        block_number: int,
        position_in_block: int,
    ) -> JobId:
        # Fail fast on claims that can never be proven
        self._find_receipt(src_chain_id, block_number, position_in_block)
        job_id = new_id()
        self._jobs[job_id] = _ProofJob(
            src_chain_id=src_chain_id,
            dst_chain_id=dst_chain_id,
            block_number=block_number,
            position_in_block=position_in_block,
        )
        self._logger.debug(
            "proof_job_created",
            job_id=job_id,
            src_chain=src_chain_id,
            block=block_number,
        )
        return job_id

    async def query_proof(self, job_id: JobId) -> ProofStatus:
        job = self._jobs.get(str(job_id))
        if job is None:
            raise ProofServiceError(f"Unknown proof job {job_id}")

        job.polls += 1
        if job.polls <= self._polls_until_ready:
            return ProofStatus(status="generating")

        if job.proof is None:
            attestation = self.attest(
                job.src_chain_id, job.dst_chain_id, job.block_number, job.position_in_block
            )
            job.proof = base64.b64encode(attestation).decode("ascii")
        return ProofStatus(status="complete", proof=job.proof)

    # ── Signing ──────────────────────────────────────────────────

    def attest(
        self,
        src_chain_id: int,
        dst_chain_id: int,
        block_number: int,
        position_in_block: int,
    ) -> bytes:
        """Sign the receipt at (block, position) on the source chain for dst_chain_id."""
        receipt = self._find_receipt(src_chain_id, block_number, position_in_block)
        claim = {
            "version": ATTESTATION_VERSION,
            "src_chain": src_chain_id,
            "dst_chain": dst_chain_id,
            "block": block_number,
            "block_hash": to_hex(receipt.block_hash),
            "tx_hash": to_hex(receipt.tx_hash),
            "logs": [
                {
                    "address": log.address,
                    "topics": [to_hex(t) for t in log.topics],
                    "data": to_hex(log.data),
                }
                for log in receipt.logs
            ],
        }
        body = orjson.dumps(claim, option=orjson.OPT_SORT_KEYS)
        return self._key.sign(body) + body

    def _find_receipt(self, chain_id: int, block_number: int, position: int) -> Receipt:
        ledger = self._ledgers.get(chain_id)
        if ledger is None:
            raise ProofServiceError(f"Chain {chain_id} is not served by this prover")
        try:
            block = ledger.get_block(block_number)
        except KeyError as exc:
            raise ProofServiceError(str(exc)) from exc
        if not 0 <= position < len(block.receipts):
            raise ProofServiceError(
                f"No transaction at position {position} in block {block_number}"
            )
        return block.receipts[position]
