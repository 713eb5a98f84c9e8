"""
ChainRelay — Relay Types

Design notes:
- ObservedNotification is a decoded log plus the chain it was seen on. Its
  key (chain, block hash, tx hash, log index) is what the orchestrator's
  dedupe set stores.
- RelayEvent is the envelope carried by the NotificationBus. Watchers publish
  protocol notifications; the orchestrator publishes relay outcomes.
- RelayOutcome is returned for every relay attempt, successful or not.
  Attempts never raise to the caller; failures are reported here.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import Field

from chainrelay.primitives.common import RelayBaseModel, new_id, utc_now
from chainrelay.systems.bridge.notifications import (
    ActionChained,
    ActionCompleted,
    ActionInitiated,
    ActionValidated,
    Notification,
    decode_notification,
)
from chainrelay.systems.ledger.types import LogEntry

if TYPE_CHECKING:
    from chainrelay.systems.relay.client import EndpointClient

# ─── Enums ────────────────────────────────────────────────────────


class RelayEventType(enum.StrEnum):
    ACTION_INITIATED = "action_initiated"
    ACTION_VALIDATED = "action_validated"
    ACTION_COMPLETED = "action_completed"
    ACTION_CHAINED = "action_chained"
    RELAY_SUCCEEDED = "relay_succeeded"
    RELAY_FAILED = "relay_failed"


NOTIFICATION_EVENT_TYPES: dict[type[Notification], RelayEventType] = {
    ActionInitiated: RelayEventType.ACTION_INITIATED,
    ActionValidated: RelayEventType.ACTION_VALIDATED,
    ActionCompleted: RelayEventType.ACTION_COMPLETED,
    ActionChained: RelayEventType.ACTION_CHAINED,
}


class RelayStatus(enum.StrEnum):
    COMPLETED = "completed"     # validated and executed, handler succeeded
    FAILED = "failed"           # proof service error, handler failure, unexpected error
    REJECTED = "rejected"       # destination refused validation or execution
    TIMED_OUT = "timed_out"     # proof never became ready


class RelayStage(enum.StrEnum):
    RESOLVE = "resolve"
    REQUEST_PROOF = "request_proof"
    POLL_PROOF = "poll_proof"
    VALIDATE = "validate"
    EXECUTE = "execute"
    DONE = "done"


# ─── Notifications ────────────────────────────────────────────────


@dataclass(frozen=True)
class NotificationKey:
    chain_id: int
    block_hash: bytes
    tx_hash: bytes
    log_index: int


class ObservedNotification(RelayBaseModel):
    """A protocol notification observed on a specific chain."""

    chain_id: int
    log: LogEntry
    event: Notification

    @classmethod
    def from_log(cls, chain_id: int, log: LogEntry) -> ObservedNotification | None:
        event = decode_notification(log)
        if event is None:
            return None
        return cls(chain_id=chain_id, log=log, event=event)

    @property
    def key(self) -> NotificationKey:
        return NotificationKey(
            chain_id=self.chain_id,
            block_hash=self.log.block_hash,
            tx_hash=self.log.tx_hash,
            log_index=self.log.log_index,
        )

    @property
    def event_type(self) -> RelayEventType:
        return NOTIFICATION_EVENT_TYPES[type(self.event)]


class RelayEvent(RelayBaseModel):
    """Envelope carried by the notification bus."""

    id: str = Field(default_factory=new_id)
    event_type: RelayEventType
    timestamp: datetime = Field(default_factory=utc_now)
    chain_id: int = 0
    notification: ObservedNotification | None = None
    outcome: RelayOutcome | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    source: str = "watcher"

    @classmethod
    def for_notification(cls, notification: ObservedNotification) -> RelayEvent:
        return cls(
            event_type=notification.event_type,
            chain_id=notification.chain_id,
            notification=notification,
        )


# ─── Directions & Outcomes ────────────────────────────────────────


@dataclass(frozen=True)
class Direction:
    """Ordered endpoint pair: notifications on source are relayed to destination."""

    source: EndpointClient
    destination: EndpointClient

    @property
    def name(self) -> str:
        return f"{self.source.name}->{self.destination.name}"

    def accepts(self, notification: ObservedNotification) -> bool:
        return (
            notification.chain_id == self.source.chain_id
            and notification.log.address == self.source.address
        )


class RelayOutcome(RelayBaseModel):
    attempt_id: str = Field(default_factory=new_id)
    direction: str
    source_chain_id: int
    destination_chain_id: int
    source_action_id: bytes
    destination_action_id: bytes | None = None
    status: RelayStatus = RelayStatus.FAILED
    # Last stage reached; for failures, the stage that failed
    stage: RelayStage = RelayStage.RESOLVE
    job_id: str = ""
    error: str = ""
    chained_action_id: bytes | None = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status == RelayStatus.COMPLETED


RelayEvent.model_rebuild()
