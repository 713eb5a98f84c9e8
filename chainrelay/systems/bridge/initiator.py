"""
ChainRelay — Action Initiation

Creates source-side action records. Used by the endpoint's bridge() entry
point and by the executor when a handler asks for a chained follow-on action;
both paths produce the same record shape and the same ActionInitiated log, so
the relay cannot tell a chained action from a fresh one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from chainrelay.primitives.common import normalize_address, short_hex
from chainrelay.systems.bridge.hashing import compute_action_id
from chainrelay.systems.bridge.notifications import ActionInitiated
from chainrelay.systems.bridge.types import ActionRecord, ActionState

if TYPE_CHECKING:
    from chainrelay.systems.bridge.registry import ActionRegistry
    from chainrelay.systems.ledger.ledger import Ledger

logger = structlog.get_logger()


class ActionInitiator:
    def __init__(self, ledger: Ledger, address: str, registry: ActionRegistry) -> None:
        self._ledger = ledger
        self._address = address
        self._registry = registry
        self._logger = logger.bind(system="bridge.initiator", endpoint=address)

    def initiate(
        self,
        initiator: str,
        selector: bytes,
        payload: bytes,
        destination: str = "",
    ) -> ActionRecord:
        """Create a PENDING record on this endpoint and emit ActionInitiated. Needs an open transaction."""
        tx = self._ledger.active_transaction
        # Nonces and ids key on the canonical spelling of the initiator
        initiator = normalize_address(initiator)
        nonce = self._registry.next_nonce(initiator)
        action_id = compute_action_id(
            chain_id=self._ledger.chain_id,
            contract=self._address,
            initiator=initiator,
            timestamp=tx.timestamp,
            payload=payload,
            nonce=nonce,
        )
        record = ActionRecord(
            action_id=action_id,
            source_endpoint=self._address,
            destination_endpoint=destination,
            source_chain_id=self._ledger.chain_id,
            initiator=initiator,
            payload=payload,
            state=ActionState.PENDING,
            timestamp=tx.timestamp,
            selector=selector,
        )
        self._registry.create(record)

        topics, data = ActionInitiated(
            action_id=action_id,
            initiator=initiator,
            selector=selector,
            payload=payload,
        ).encode()
        tx.emit(self._address, topics, data)

        self._logger.info(
            "action_initiated",
            action_id=short_hex(action_id),
            selector=short_hex(selector),
            payload_size=len(payload),
        )
        return record
