"""
ChainRelay — Attestation Verification

The bridge treats attestations as opaque bytes. An AttestationVerifier turns
them into a VerifiedLog (origin chain, origin contract, topics, data) or
rejects them with AttestationInvalid.

Ed25519AttestationVerifier verifies attestations produced by the local
prover (see prover.py):

    attestation = signature (64 bytes) || body
    body        = canonical JSON (sorted keys) describing one receipt

It checks, in order: length, signature against the trusted prover key, body
shape, that the attestation was issued for this destination chain, and that
the requested log position exists in the receipt.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import orjson
import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from pydantic import Field

from chainrelay.primitives.common import RelayBaseModel, from_hex
from chainrelay.systems.bridge.errors import AttestationInvalid

logger = structlog.get_logger()

SIGNATURE_SIZE = 64
ATTESTATION_VERSION = 1


class VerifiedLog(RelayBaseModel):
    """A log whose emission on the origin chain has been proven."""

    chain_id: int
    emitter: str
    topics: list[bytes] = Field(default_factory=list)
    data: bytes = b""


class AttestationVerifier(ABC):
    """Converts opaque attestation bytes into a verified log."""

    @abstractmethod
    def verify(self, position: int, attestation: bytes) -> VerifiedLog:
        """
        Verify attestation and return the log at `position` within the proven receipt.

        Raises AttestationInvalid if the bytes are rejected for any reason.
        """
        ...


class Ed25519AttestationVerifier(AttestationVerifier):
    """Verifies receipts signed by a trusted Ed25519 prover key."""

    def __init__(self, prover_key: Ed25519PublicKey, local_chain_id: int) -> None:
        self._prover_key = prover_key
        self._local_chain_id = local_chain_id
        self._logger = logger.bind(system="attestation.verifier", chain_id=local_chain_id)

    def verify(self, position: int, attestation: bytes) -> VerifiedLog:
        if len(attestation) <= SIGNATURE_SIZE:
            raise AttestationInvalid(f"Attestation too short ({len(attestation)} bytes)")

        signature, body = attestation[:SIGNATURE_SIZE], attestation[SIGNATURE_SIZE:]
        try:
            self._prover_key.verify(signature, body)
        except InvalidSignature as exc:
            raise AttestationInvalid("Attestation signature does not match prover key") from exc

        try:
            claim: dict[str, Any] = orjson.loads(body)
            version = claim["version"]
            src_chain = int(claim["src_chain"])
            dst_chain = int(claim["dst_chain"])
            logs = claim["logs"]
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise AttestationInvalid(f"Attestation body is not a receipt claim: {exc}") from exc

        if version != ATTESTATION_VERSION:
            raise AttestationInvalid(f"Unsupported attestation version {version!r}")
        if dst_chain != self._local_chain_id:
            raise AttestationInvalid(
                f"Attestation issued for chain {dst_chain}, verifier is on {self._local_chain_id}"
            )
        if not 0 <= position < len(logs):
            raise AttestationInvalid(
                f"Log position {position} outside receipt with {len(logs)} logs"
            )

        entry = logs[position]
        try:
            verified = VerifiedLog(
                chain_id=src_chain,
                emitter=entry["address"],
                topics=[from_hex(t) for t in entry["topics"]],
                data=from_hex(entry["data"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise AttestationInvalid(f"Malformed log entry at position {position}: {exc}") from exc

        self._logger.debug(
            "attestation_verified",
            src_chain=src_chain,
            block=claim.get("block"),
            position=position,
        )
        return verified
