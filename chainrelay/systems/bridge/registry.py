"""
ChainRelay — Action Registry

Keyed store of action records for one endpoint, plus the two pieces of
protocol state that sit beside them: the set of consumed proof fingerprints
and the per-initiator nonce that widens action identifiers.

All three live in ledger storage namespaces. They are therefore rolled back
with the ledger transaction that touched them, and the registry itself holds
no state that could survive a reverted call.

Rules enforced here:
  - create() is last-write-wins. Overwriting an existing id is allowed (it is
    what the protocol specifies) but is logged as a collision, never silent.
  - transition() only moves a record forward through STATE_TRANSITIONS.
  - The fingerprint set only grows. There is no API to remove a fingerprint.
  - delete() exists for exactly one caller: the executor's failure path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from chainrelay.primitives.common import short_hex
from chainrelay.systems.bridge.errors import ActionNotFound, InvalidActionState
from chainrelay.systems.bridge.types import STATE_TRANSITIONS, ActionRecord, ActionState

if TYPE_CHECKING:
    from chainrelay.systems.ledger.ledger import Ledger

logger = structlog.get_logger()


class ActionRegistry:
    """Action records, fingerprint replay set and nonces for one endpoint."""

    def __init__(self, ledger: Ledger, address: str) -> None:
        self._actions = ledger.storage(f"{address}:actions")
        self._fingerprints = ledger.storage(f"{address}:fingerprints")
        self._nonces = ledger.storage(f"{address}:nonces")
        self._logger = logger.bind(system="bridge.registry", endpoint=address)

    # ── Records ──────────────────────────────────────────────────

    def create(self, record: ActionRecord) -> None:
        existing = self._actions.get(record.action_id)
        if existing is not None:
            self._logger.warning(
                "action_id_collision",
                action_id=short_hex(record.action_id),
                previous_state=existing.state.value,
            )
        self._actions[record.action_id] = record
        self._logger.debug(
            "action_created",
            action_id=short_hex(record.action_id),
            state=record.state.value,
        )

    def get(self, action_id: bytes) -> ActionRecord | None:
        return self._actions.get(action_id)

    def require(self, action_id: bytes) -> ActionRecord:
        record = self.get(action_id)
        if record is None:
            raise ActionNotFound(f"No action {short_hex(action_id, 18)}")
        return record

    def state_of(self, action_id: bytes) -> ActionState:
        record = self.get(action_id)
        return record.state if record is not None else ActionState.NONE

    def transition(
        self,
        action_id: bytes,
        new_state: ActionState,
        **updates: object,
    ) -> ActionRecord:
        """Move a record to new_state, replacing it with an updated copy."""
        record = self.require(action_id)
        if new_state not in STATE_TRANSITIONS[record.state]:
            raise InvalidActionState(
                f"Action {short_hex(action_id, 18)} cannot move "
                f"{record.state.value} -> {new_state.value}"
            )
        updated = record.model_copy(update={**updates, "state": new_state})
        self._actions[action_id] = updated
        self._logger.debug(
            "action_transitioned",
            action_id=short_hex(action_id),
            from_state=record.state.value,
            to_state=new_state.value,
        )
        return updated

    def delete(self, action_id: bytes) -> None:
        self._actions.pop(action_id, None)
        self._logger.debug("action_deleted", action_id=short_hex(action_id))

    # ── Replay protection ────────────────────────────────────────

    def is_fingerprint_used(self, fingerprint: bytes) -> bool:
        return fingerprint in self._fingerprints

    def mark_fingerprint_used(self, fingerprint: bytes, action_id: bytes) -> None:
        self._fingerprints[fingerprint] = action_id

    # ── Identifiers ──────────────────────────────────────────────

    def next_nonce(self, initiator: str) -> int:
        nonce = self._nonces.get(initiator, 0)
        self._nonces[initiator] = nonce + 1
        return nonce

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, action_id: bytes) -> bool:
        return action_id in self._actions

    def __repr__(self) -> str:
        return f"<ActionRegistry actions={len(self._actions)} fingerprints={len(self._fingerprints)}>"
