"""
ChainRelay — Bridge Error Hierarchy

All exceptions raised by the on-ledger side of the protocol: the action
registry, the proof validator and the executor.

Every error here is terminal for the call that raised it. The endpoint
reverts the surrounding ledger transaction, so a raised error never leaves a
partial mutation behind. Nothing in the bridge retries on its own; retries
belong to the relay orchestrator.
"""

from __future__ import annotations


class BridgeError(RuntimeError):
    """Base for all bridge protocol errors."""


class ConfigurationError(BridgeError):
    """Target selector is not registered for cross-chain calls."""


class AttestationInvalid(BridgeError):
    """The attestation verifier rejected the proof bytes."""


class MalformedNotification(BridgeError):
    """The proven log is not a well-formed ActionInitiated notification."""


class ReplayedProof(BridgeError):
    """The proof fingerprint has already validated an action."""


class InvalidActionState(BridgeError):
    """The action is not in a state that allows the requested operation."""


class ActionNotFound(BridgeError):
    """No record exists for the action id."""


class UnknownSelector(BridgeError):
    """No handler is registered for the selector being dispatched."""


class HandlerFailed(BridgeError):
    """A handler reported failure for its payload."""
