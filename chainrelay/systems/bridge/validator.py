"""
ChainRelay — Proof Validator

Turns an attestation into a verified, single-use PENDING action record.

Validation stages:
  1. Verify — the attestation verifier proves the origin log, which must
     come from the configured peer endpoint (and peer chain, when set)
  2. Shape check — the log must be an ActionInitiated notification
  3. Replay check — the fingerprint of (origin chain, origin contract,
     attestation bytes) must be unused
  4. Extraction — action id, initiator and selector by fixed topic position,
     payload from the data blob; an id already settled here is refused
  5. Record — write the PENDING record, consume the fingerprint, emit
     ActionValidated

Must be called inside a ledger transaction. Any stage that raises leaves the
registry exactly as it was, because the endpoint reverts the transaction.
Validating the same attestation twice fails at stage 3.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from chainrelay.primitives.common import normalize_address, short_hex
from chainrelay.systems.bridge.errors import (
    AttestationInvalid,
    InvalidActionState,
    MalformedNotification,
    ReplayedProof,
)
from chainrelay.systems.bridge.hashing import compute_fingerprint
from chainrelay.systems.bridge.notifications import ActionInitiated, ActionValidated
from chainrelay.systems.bridge.types import ActionRecord, ActionState

if TYPE_CHECKING:
    from chainrelay.systems.attestation.verifier import AttestationVerifier
    from chainrelay.systems.bridge.registry import ActionRegistry
    from chainrelay.systems.ledger.ledger import Ledger

logger = structlog.get_logger()

# topic0 (event signature) + action id + initiator + selector
_MIN_TOPICS = 4


class ProofValidator:
    def __init__(
        self,
        ledger: Ledger,
        address: str,
        registry: ActionRegistry,
        verifier: AttestationVerifier,
        peer: str = "",
        peer_chain_id: int | None = None,
    ) -> None:
        self._ledger = ledger
        self._address = address
        self._registry = registry
        self._verifier = verifier
        self._peer = normalize_address(peer) if peer else ""
        self._peer_chain_id = peer_chain_id
        self._logger = logger.bind(system="bridge.validator", endpoint=address)

    def validate(self, position: int, attestation: bytes) -> bytes:
        """Validate an attestation and return the id of the new PENDING record."""
        tx = self._ledger.active_transaction

        # ── STAGE 1: Verify ───────────────────────────────────────
        proven = self._verifier.verify(position, attestation)
        self._check_origin(proven.chain_id, proven.emitter)

        # ── STAGE 2: Shape check ──────────────────────────────────
        if len(proven.topics) < _MIN_TOPICS:
            raise MalformedNotification(
                f"Expected at least {_MIN_TOPICS} topics, got {len(proven.topics)}"
            )
        if proven.topics[0] != ActionInitiated.topic0():
            raise MalformedNotification("Proven log is not an ActionInitiated notification")

        # ── STAGE 3: Replay check ─────────────────────────────────
        fingerprint = compute_fingerprint(proven.chain_id, proven.emitter, attestation)
        if self._registry.is_fingerprint_used(fingerprint):
            raise ReplayedProof(f"Proof {short_hex(fingerprint, 18)} already consumed")

        # ── STAGE 4: Extraction ───────────────────────────────────
        try:
            initiated = ActionInitiated.decode(proven.topics, proven.data)
        except ValueError as exc:
            raise MalformedNotification(f"Cannot decode notification: {exc}") from exc

        existing = self._registry.get(initiated.action_id)
        if existing is not None and existing.state in (ActionState.COMPLETED, ActionState.CHAINING):
            raise InvalidActionState(
                f"Action {short_hex(initiated.action_id, 18)} already settled as {existing.state.value}"
            )

        # ── STAGE 5: Record ───────────────────────────────────────
        record = ActionRecord(
            action_id=initiated.action_id,
            source_endpoint=proven.emitter,
            destination_endpoint=self._address,
            source_chain_id=proven.chain_id,
            initiator=initiated.initiator,
            payload=initiated.payload,
            state=ActionState.PENDING,
            timestamp=tx.timestamp,
            proof_fingerprint=fingerprint,
            selector=initiated.selector,
        )
        self._registry.create(record)
        self._registry.mark_fingerprint_used(fingerprint, record.action_id)

        topics, data = ActionValidated(
            action_id=record.action_id,
            initiator=record.initiator,
            proof_fingerprint=fingerprint,
        ).encode()
        tx.emit(self._address, topics, data)

        self._logger.info(
            "action_validated",
            action_id=short_hex(record.action_id),
            origin_chain=proven.chain_id,
            fingerprint=short_hex(fingerprint),
        )
        return record.action_id

    def _check_origin(self, chain_id: int, emitter: str) -> None:
        if not self._peer:
            raise AttestationInvalid("No peer endpoint configured; cannot accept proofs")
        if chain_id == self._ledger.chain_id:
            raise AttestationInvalid(f"Proven log comes from this endpoint's own chain {chain_id}")
        if self._peer_chain_id is not None and chain_id != self._peer_chain_id:
            raise AttestationInvalid(
                f"Proven log comes from chain {chain_id}, peer is on {self._peer_chain_id}"
            )
        if normalize_address(emitter) != self._peer:
            raise AttestationInvalid(f"Proven log emitted by {emitter}, peer is {self._peer}")
