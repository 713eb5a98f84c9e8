"""
ChainRelay — Relay System

Off-chain transport between two bridge endpoints: watchers, the shared
notification bus, proof polling and the per-link orchestrator.
"""

from chainrelay.systems.relay.audit import ActionAuditor, AuditEntry
from chainrelay.systems.relay.bus import NotificationBus
from chainrelay.systems.relay.client import EndpointClient, InMemoryEndpointClient
from chainrelay.systems.relay.errors import (
    NotificationNotFound,
    ProofTimeout,
    RelayError,
    SubmissionRejected,
)
from chainrelay.systems.relay.orchestrator import RelayOrchestrator
from chainrelay.systems.relay.poller import ProofPoller
from chainrelay.systems.relay.types import (
    Direction,
    NotificationKey,
    ObservedNotification,
    RelayEvent,
    RelayEventType,
    RelayOutcome,
    RelayStage,
    RelayStatus,
)
from chainrelay.systems.relay.watcher import ChainWatcher

__all__ = [
    "ActionAuditor",
    "AuditEntry",
    "ChainWatcher",
    "Direction",
    "EndpointClient",
    "InMemoryEndpointClient",
    "NotificationBus",
    "NotificationKey",
    "NotificationNotFound",
    "ObservedNotification",
    "ProofPoller",
    "ProofTimeout",
    "RelayError",
    "RelayEvent",
    "RelayEventType",
    "RelayOutcome",
    "RelayOrchestrator",
    "RelayStage",
    "RelayStatus",
    "SubmissionRejected",
]
