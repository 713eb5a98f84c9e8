"""
ChainRelay — Common Primitives

Shared base classes, identifiers and byte helpers used across all systems.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone

from pydantic import BaseModel
from ulid import ULID

ZERO_HASH = b"\x00" * 32


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def sha256(*parts: bytes) -> bytes:
    """Hash the concatenation of parts."""
    h = hashlib.sha256()
    for part in parts:
        h.update(part)
    return h.digest()


def to_hex(value: bytes) -> str:
    return "0x" + value.hex()


def from_hex(value: str) -> bytes:
    if value.startswith(("0x", "0X")):
        value = value[2:]
    return bytes.fromhex(value)


def short_hex(value: bytes, length: int = 10) -> str:
    """Abbreviated hex for log lines."""
    return to_hex(value)[:length]


def int_to_word(value: int) -> bytes:
    """Encode a non-negative integer as a 32-byte big-endian word."""
    return value.to_bytes(32, "big")


def word_to_int(word: bytes) -> int:
    return int.from_bytes(word, "big")


def pad_word(value: bytes) -> bytes:
    """Left-pad a value of at most 32 bytes to a full word."""
    if len(value) > 32:
        raise ValueError(f"Value of {len(value)} bytes does not fit in a word")
    return value.rjust(32, b"\x00")


def address_to_word(address: str) -> bytes:
    return pad_word(from_hex(address))


def word_to_address(word: bytes) -> str:
    return to_hex(word[-20:])


def normalize_address(address: str) -> str:
    """Canonical lowercase form; two spellings of one address compare equal."""
    return word_to_address(address_to_word(address))


def derive_address(label: str) -> str:
    """Deterministic 20-byte address for a label (test accounts, local contracts)."""
    return to_hex(sha256(label.encode())[:20])


# ─── Base Models ──────────────────────────────────────────────────


class RelayBaseModel(BaseModel):
    """Base model for all ChainRelay primitives."""

    model_config = {"populate_by_name": True, "from_attributes": True}
