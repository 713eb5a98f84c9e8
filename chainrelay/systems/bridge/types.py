"""
ChainRelay — Bridge Types

Design notes:
- ActionRecord is the single source of truth for one action on one endpoint.
  Records are replaced, never mutated in place, so a snapshot taken by the
  ledger for rollback can never observe a half-applied transition.
- ActionState only moves forward: NONE → PENDING → COMPLETED | CHAINING.
  NONE is never stored; it is what state_of() reports for an absent id,
  including one whose execution failed and was deleted.
- ExecutionOutcome is what execute() returns. Handler-level failures are
  reported here rather than raised, because the endpoint still commits the
  deletion of the record and the failure notification.
"""

from __future__ import annotations

import enum

from chainrelay.primitives.common import ZERO_HASH, RelayBaseModel, short_hex

# ─── Enums ────────────────────────────────────────────────────────


class ActionState(enum.StrEnum):
    NONE = "none"
    PENDING = "pending"
    COMPLETED = "completed"
    CHAINING = "chaining"


# Allowed forward transitions
STATE_TRANSITIONS: dict[ActionState, frozenset[ActionState]] = {
    ActionState.NONE: frozenset({ActionState.PENDING}),
    ActionState.PENDING: frozenset({ActionState.COMPLETED, ActionState.CHAINING}),
    ActionState.COMPLETED: frozenset(),
    ActionState.CHAINING: frozenset(),
}


class FailureReason(enum.StrEnum):
    UNKNOWN_SELECTOR = "unknown_selector"
    HANDLER_FAILED = "handler_failed"
    HANDLER_EXCEPTION = "handler_exception"
    HANDLER_TIMEOUT = "handler_timeout"
    CHAIN_TARGET_UNREGISTERED = "chain_target_unregistered"


# ─── Records ──────────────────────────────────────────────────────


class ActionRecord(RelayBaseModel):
    """One cross-chain action as tracked by a single endpoint."""

    action_id: bytes
    source_endpoint: str
    destination_endpoint: str = ""
    source_chain_id: int = 0
    initiator: str
    payload: bytes
    state: ActionState = ActionState.PENDING
    timestamp: int
    # Zero until the record has been validated from an attestation
    proof_fingerprint: bytes = ZERO_HASH
    selector: bytes
    next_selector: bytes = b""
    next_payload: bytes = b""

    @property
    def is_validated(self) -> bool:
        return self.proof_fingerprint != ZERO_HASH

    @property
    def wants_chaining(self) -> bool:
        return bool(self.next_selector)

    def __repr__(self) -> str:
        return (
            f"<ActionRecord {short_hex(self.action_id)} "
            f"state={self.state.value} selector={short_hex(self.selector)}>"
        )


class ExecutionOutcome(RelayBaseModel):
    """Result of executing one validated action."""

    action_id: bytes
    success: bool
    # Final state of the executed record; NONE when it was deleted on failure
    state: ActionState
    failure_reason: FailureReason | None = None
    error: str = ""
    next_action_id: bytes | None = None
    next_selector: bytes = b""

    @property
    def chained(self) -> bool:
        return self.next_action_id is not None
