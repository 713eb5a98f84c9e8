"""
ChainRelay — Bridge (on-ledger protocol)

The bridge is the half of the protocol that lives on each ledger. It records
actions, turns attestations into single-use validated actions, and executes
them through registered handlers, spawning follow-on actions when asked.

Public interface:
  BridgeEndpoint    — entry points bridge / validate / execute
  Handler           — ABC for cross-chain callable functions
  HandlerResult     — what a handler returns (ok / fail / chain)
  HandlerContext    — what a handler receives
  ActionRecord      — one action as seen by one endpoint
  ActionState       — NONE / PENDING / COMPLETED / CHAINING
  ExecutionOutcome  — result of execute()
  selector_for      — signature → 4-byte selector
"""

from chainrelay.systems.bridge.endpoint import BridgeEndpoint
from chainrelay.systems.bridge.handler import Handler, HandlerContext, HandlerResult
from chainrelay.systems.bridge.hashing import selector_for
from chainrelay.systems.bridge.types import (
    ActionRecord,
    ActionState,
    ExecutionOutcome,
    FailureReason,
)

__all__ = [
    "BridgeEndpoint",
    "Handler",
    "HandlerContext",
    "HandlerResult",
    "selector_for",
    "ActionRecord",
    "ActionState",
    "ExecutionOutcome",
    "FailureReason",
]
