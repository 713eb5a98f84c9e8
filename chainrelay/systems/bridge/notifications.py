"""
ChainRelay — Protocol Notifications

The four logs the bridge emits and consumes, with their wire encoding.

Topic layout is positional and versioned by the event signature. The
validator reads ActionInitiated topics by position (1: action id,
2: initiator, 3: selector), so the order of indexed fields must never change
without changing the signature.

Non-indexed data uses one of two shapes:
  - a single byte string: 32-byte big-endian length, then the bytes
    right-padded to a word boundary
  - a single word (fingerprint, flag, selector)
"""

from __future__ import annotations

from typing import ClassVar

from chainrelay.primitives.common import (
    RelayBaseModel,
    address_to_word,
    int_to_word,
    sha256,
    word_to_address,
    word_to_int,
)
from chainrelay.systems.bridge.hashing import SELECTOR_SIZE
from chainrelay.systems.ledger.types import LogEntry

# ─── Data encoding ────────────────────────────────────────────────


def encode_bytes(value: bytes) -> bytes:
    padding = (-len(value)) % 32
    return int_to_word(len(value)) + value + b"\x00" * padding


def decode_bytes(data: bytes) -> bytes:
    """Decode a length-prefixed byte string. Raises ValueError when truncated."""
    if len(data) < 32:
        raise ValueError(f"Data blob too short for a length prefix ({len(data)} bytes)")
    length = word_to_int(data[:32])
    if len(data) < 32 + length:
        raise ValueError(f"Data blob declares {length} bytes but carries {len(data) - 32}")
    return data[32 : 32 + length]


def selector_to_word(selector: bytes) -> bytes:
    # Fixed-size byte types are left-aligned in a word
    return selector.ljust(32, b"\x00")


def word_to_selector(word: bytes) -> bytes:
    return word[:SELECTOR_SIZE]


# ─── Events ───────────────────────────────────────────────────────


class Notification(RelayBaseModel):
    """Base for protocol events. Subclasses define signature and encoding."""

    signature: ClassVar[str] = ""

    @classmethod
    def topic0(cls) -> bytes:
        return sha256(cls.signature.encode())

    def encode(self) -> tuple[list[bytes], bytes]:
        raise NotImplementedError

    @classmethod
    def decode(cls, topics: list[bytes], data: bytes) -> Notification:
        raise NotImplementedError


class ActionInitiated(Notification):
    signature: ClassVar[str] = "ActionInitiated(bytes32,address,bytes4,bytes)"

    action_id: bytes
    initiator: str
    selector: bytes
    payload: bytes

    def encode(self) -> tuple[list[bytes], bytes]:
        topics = [
            self.topic0(),
            self.action_id,
            address_to_word(self.initiator),
            selector_to_word(self.selector),
        ]
        return topics, encode_bytes(self.payload)

    @classmethod
    def decode(cls, topics: list[bytes], data: bytes) -> ActionInitiated:
        return cls(
            action_id=topics[1],
            initiator=word_to_address(topics[2]),
            selector=word_to_selector(topics[3]),
            payload=decode_bytes(data),
        )


class ActionValidated(Notification):
    signature: ClassVar[str] = "ActionValidated(bytes32,address,bytes32)"

    action_id: bytes
    initiator: str
    proof_fingerprint: bytes

    def encode(self) -> tuple[list[bytes], bytes]:
        return [self.topic0(), self.action_id, address_to_word(self.initiator)], self.proof_fingerprint

    @classmethod
    def decode(cls, topics: list[bytes], data: bytes) -> ActionValidated:
        return cls(
            action_id=topics[1],
            initiator=word_to_address(topics[2]),
            proof_fingerprint=data[:32],
        )


class ActionCompleted(Notification):
    signature: ClassVar[str] = "ActionCompleted(bytes32,bool)"

    action_id: bytes
    success: bool

    def encode(self) -> tuple[list[bytes], bytes]:
        return [self.topic0(), self.action_id], int_to_word(int(self.success))

    @classmethod
    def decode(cls, topics: list[bytes], data: bytes) -> ActionCompleted:
        return cls(action_id=topics[1], success=bool(word_to_int(data[:32])))


class ActionChained(Notification):
    signature: ClassVar[str] = "ActionChained(bytes32,bytes32,address,bytes4)"

    previous_id: bytes
    next_id: bytes
    initiator: str
    next_selector: bytes

    def encode(self) -> tuple[list[bytes], bytes]:
        topics = [
            self.topic0(),
            self.previous_id,
            self.next_id,
            address_to_word(self.initiator),
        ]
        return topics, selector_to_word(self.next_selector)

    @classmethod
    def decode(cls, topics: list[bytes], data: bytes) -> ActionChained:
        return cls(
            previous_id=topics[1],
            next_id=topics[2],
            initiator=word_to_address(topics[3]),
            next_selector=word_to_selector(data[:32]),
        )


_EVENTS: dict[bytes, type[Notification]] = {
    event.topic0(): event
    for event in (ActionInitiated, ActionValidated, ActionCompleted, ActionChained)
}


def decode_notification(log: LogEntry) -> Notification | None:
    """
    Decode a committed log into its protocol event.

    Returns None for logs that are not bridge notifications or that do not
    decode cleanly, so callers scanning whole receipts can skip them.
    """
    if not log.topics:
        return None
    event_cls = _EVENTS.get(log.topics[0])
    if event_cls is None:
        return None
    try:
        return event_cls.decode(log.topics, log.data)
    except (IndexError, ValueError):
        return None


def find_notification(logs: list[LogEntry], event_cls: type[Notification]) -> Notification | None:
    """First notification of the given type in a list of logs."""
    for log in logs:
        event = decode_notification(log)
        if isinstance(event, event_cls):
            return event
    return None
