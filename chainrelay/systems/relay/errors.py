"""
ChainRelay — Relay Error Hierarchy

Errors raised inside one relay attempt. None of them escape the
orchestrator: each is caught at the attempt boundary, logged, and reported
as a RelayOutcome. An abandoned attempt never mutates either endpoint, and
the source-side action stays untouched for an external retry.
"""

from __future__ import annotations

from chainrelay.clients.proof_service import ProofServiceError


class RelayError(RuntimeError):
    """Base for relay attempt failures."""


class ProofTimeout(RelayError):
    """The proof job did not produce a proof within the polling budget."""


class SubmissionRejected(RelayError):
    """The destination endpoint refused a validation or execution submission."""


class NotificationNotFound(RelayError):
    """An expected notification is missing from a receipt."""


__all__ = [
    "RelayError",
    "ProofTimeout",
    "SubmissionRejected",
    "NotificationNotFound",
    "ProofServiceError",
]
