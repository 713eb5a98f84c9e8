"""
ChainRelay — Protocol Hashes

Selectors, action identifiers and proof fingerprints. All three are SHA-256
over fixed-width encodings, so every endpoint derives the same values for the
same inputs.
"""

from __future__ import annotations

from chainrelay.primitives.common import address_to_word, int_to_word, sha256

SELECTOR_SIZE = 4


def selector_for(signature: str) -> bytes:
    """First four bytes of the hashed function signature, e.g. "increment(bytes)"."""
    return sha256(signature.encode())[:SELECTOR_SIZE]


def compute_action_id(
    chain_id: int,
    contract: str,
    initiator: str,
    timestamp: int,
    payload: bytes,
    nonce: int,
) -> bytes:
    """
    Derive the identifier of a new action.

    The per-initiator nonce widens the input so two identical actions created
    within the same block time still get distinct identifiers.
    """
    return sha256(
        int_to_word(chain_id),
        address_to_word(contract),
        address_to_word(initiator),
        int_to_word(timestamp),
        sha256(payload),
        int_to_word(nonce),
    )


def compute_fingerprint(origin_chain_id: int, origin_contract: str, attestation: bytes) -> bytes:
    """Bind a validated action to the exact attestation bytes that proved it."""
    return sha256(
        int_to_word(origin_chain_id),
        address_to_word(origin_contract),
        attestation,
    )
