"""
ChainRelay — Action Audit Trail

Reconstructs the history of a cross-chain action from committed logs alone.
An action id is the same on both endpoints, so its trail is every
notification carrying that id on any endpoint of the link: Initiated on the
source, Validated and Completed or Chained on the destination.

With follow_chain, each ActionChained link is followed to the next action
id until the conversation ends. Entries are grouped per action; within an
action the origin endpoint comes first, each endpoint in block order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from chainrelay.primitives.common import RelayBaseModel, short_hex
from chainrelay.systems.bridge.notifications import ActionChained, Notification, decode_notification
from chainrelay.systems.relay.types import NOTIFICATION_EVENT_TYPES, RelayEventType

if TYPE_CHECKING:
    from chainrelay.systems.relay.client import EndpointClient

logger = structlog.get_logger()


class AuditEntry(RelayBaseModel):
    action_id: bytes
    chain: str
    chain_id: int
    block_number: int
    tx_hash: bytes
    event_type: RelayEventType
    event: Notification


class ActionAuditor:
    def __init__(self, endpoints: list[EndpointClient]) -> None:
        self._endpoints = list(endpoints)
        self._logger = logger.bind(system="relay.audit")

    async def trail(self, action_id: bytes, follow_chain: bool = True) -> list[AuditEntry]:
        entries: list[AuditEntry] = []
        seen: set[bytes] = set()
        current: bytes | None = action_id

        while current is not None and current not in seen:
            seen.add(current)
            found = await self._entries_for(current)
            entries.extend(found)
            current = None
            if follow_chain:
                for entry in found:
                    if isinstance(entry.event, ActionChained):
                        current = entry.event.next_id
                        break

        self._logger.debug(
            "audit_trail_built",
            action_id=short_hex(action_id),
            actions=len(seen),
            entries=len(entries),
        )
        return entries

    async def _entries_for(self, action_id: bytes) -> list[AuditEntry]:
        entries: list[AuditEntry] = []
        for client in self._endpoints:
            head = await client.block_number()
            for log in await client.get_logs(0, head):
                event = decode_notification(log)
                if event is None or _action_id_of(event) != action_id:
                    continue
                entries.append(AuditEntry(
                    action_id=action_id,
                    chain=client.name,
                    chain_id=client.chain_id,
                    block_number=log.block_number,
                    tx_hash=log.tx_hash,
                    event_type=NOTIFICATION_EVENT_TYPES[type(event)],
                    event=event,
                ))
        # Origin endpoint first; chains have no common block order
        origin = next(
            (e.chain_id for e in entries if e.event_type == RelayEventType.ACTION_INITIATED),
            None,
        )
        entries.sort(key=lambda e: e.chain_id != origin)
        return entries


def _action_id_of(event: Notification) -> bytes:
    if isinstance(event, ActionChained):
        return event.previous_id
    return getattr(event, "action_id", b"")
