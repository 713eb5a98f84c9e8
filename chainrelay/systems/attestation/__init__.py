"""
ChainRelay — Attestation

Proof verification for the bridge and an in-process prover for local runs.

Public interface:
  AttestationVerifier         — ABC used by the proof validator
  Ed25519AttestationVerifier  — verifies receipts signed by a trusted key
  VerifiedLog                 — what a verifier returns
  LocalProofService           — ProofService backed by local ledgers
"""

from chainrelay.systems.attestation.prover import LocalProofService
from chainrelay.systems.attestation.verifier import (
    AttestationVerifier,
    Ed25519AttestationVerifier,
    VerifiedLog,
)

__all__ = [
    "AttestationVerifier",
    "Ed25519AttestationVerifier",
    "VerifiedLog",
    "LocalProofService",
]
