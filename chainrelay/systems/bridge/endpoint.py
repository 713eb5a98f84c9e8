"""
ChainRelay — Bridge Endpoint

One deployment of the bridge protocol on one ledger. Wires the registry,
validator, executor and handler allow-list together and exposes the three
external entry points:

  bridge(initiator, selector, payload)  → receipt.value = action id
  validate(position, attestation)       → receipt.value = action id
  execute(action_id)                    → receipt.value = ExecutionOutcome

Each entry point is exactly one ledger transaction. A raised error reverts
everything the call did; a returned receipt means every effect committed.

Collaborators that need to start an action as part of a larger state change
(set some state, then bridge) open their own transaction and call initiate()
inside it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from chainrelay.primitives.common import short_hex
from chainrelay.systems.bridge.errors import ConfigurationError
from chainrelay.systems.bridge.executor import ActionExecutor
from chainrelay.systems.bridge.handler import Handler, HandlerRegistry
from chainrelay.systems.bridge.initiator import ActionInitiator
from chainrelay.systems.bridge.registry import ActionRegistry
from chainrelay.systems.bridge.types import ActionRecord, ActionState
from chainrelay.systems.bridge.validator import ProofValidator

if TYPE_CHECKING:
    from chainrelay.systems.attestation.verifier import AttestationVerifier
    from chainrelay.systems.ledger.ledger import Ledger
    from chainrelay.systems.ledger.types import Receipt

logger = structlog.get_logger()


class BridgeEndpoint:
    def __init__(
        self,
        ledger: Ledger,
        address: str,
        handlers: list[Handler],
        verifier: AttestationVerifier,
        peer: str = "",
        peer_chain_id: int | None = None,
        handler_timeout_s: float = 5.0,
    ) -> None:
        self.ledger = ledger
        self.address = address
        # Endpoint on the other side of the link: destination of initiated actions
        # and the only emitter whose proofs are accepted
        self.peer = peer
        self.peer_chain_id = peer_chain_id

        self._handlers = HandlerRegistry(handlers)
        self._handlers.freeze()
        self._registry = ActionRegistry(ledger, address)
        self._initiator = ActionInitiator(ledger, address, self._registry)
        self._validator = ProofValidator(
            ledger, address, self._registry, verifier, peer=peer, peer_chain_id=peer_chain_id
        )
        self._executor = ActionExecutor(
            ledger,
            address,
            self._registry,
            self._handlers,
            self._initiator,
            handler_timeout_s=handler_timeout_s,
        )
        self._logger = logger.bind(system="bridge.endpoint", chain=ledger.name, endpoint=address)

    @property
    def chain_id(self) -> int:
        return self.ledger.chain_id

    @property
    def state(self) -> dict[str, Any]:
        """Application state written by handlers."""
        return self.ledger.storage(f"{self.address}:state")

    # ── Entry points ─────────────────────────────────────────────

    def initiate(self, initiator: str, selector: bytes, payload: bytes) -> bytes:
        """Start an action inside an already open transaction. Returns the action id."""
        if not self._handlers.is_registered(selector):
            raise ConfigurationError(
                f"Selector {short_hex(selector)} is not registered for cross-chain calls. "
                f"Available: {self._handlers.list_signatures()}"
            )
        record = self._initiator.initiate(initiator, selector, payload, destination=self.peer)
        return record.action_id

    async def bridge(self, initiator: str, selector: bytes, payload: bytes) -> Receipt:
        async with self.ledger.transaction() as tx:
            tx.value = self.initiate(initiator, selector, payload)
        return tx.receipt

    async def validate(self, position: int, attestation: bytes) -> Receipt:
        async with self.ledger.transaction() as tx:
            tx.value = self._validator.validate(position, attestation)
        return tx.receipt

    async def execute(self, action_id: bytes) -> Receipt:
        async with self.ledger.transaction() as tx:
            tx.value = await self._executor.execute(action_id)
        return tx.receipt

    # ── Reads ────────────────────────────────────────────────────

    def get_action(self, action_id: bytes) -> ActionRecord | None:
        return self._registry.get(action_id)

    def state_of(self, action_id: bytes) -> ActionState:
        return self._registry.state_of(action_id)

    def is_registered(self, selector: bytes) -> bool:
        return self._handlers.is_registered(selector)

    def is_fingerprint_used(self, fingerprint: bytes) -> bool:
        return self._registry.is_fingerprint_used(fingerprint)

    @property
    def action_count(self) -> int:
        return len(self._registry)

    def __repr__(self) -> str:
        return f"<BridgeEndpoint {self.ledger.name}:{self.address} {self._handlers!r}>"
