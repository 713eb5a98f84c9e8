"""
ChainRelay — Cross-Chain String Update

The smallest application on the bridge: update_string stores a UTF-8 string
on the source endpoint and bridges it; SetStringHandler stores the same
string on the destination under the same action id. Both sides keep
`strings` in endpoint state as action id → (value, status).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from chainrelay.primitives.common import short_hex
from chainrelay.systems.bridge.handler import Handler, HandlerContext, HandlerResult
from chainrelay.systems.bridge.hashing import selector_for

if TYPE_CHECKING:
    from chainrelay.systems.bridge.endpoint import BridgeEndpoint
    from chainrelay.systems.ledger.types import Receipt

logger = structlog.get_logger()

SET_STRING_SIGNATURE = "setString(bytes)"


class SetStringHandler(Handler):
    signature = SET_STRING_SIGNATURE
    description = "Store the relayed string under its action id"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        try:
            value = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            return HandlerResult.fail(f"Payload is not UTF-8: {exc}")
        context.storage.setdefault("strings", {})[context.action.action_id] = (value, "completed")
        logger.info(
            "string_updated",
            chain_id=context.chain_id,
            action_id=short_hex(context.action.action_id),
            length=len(value),
        )
        return HandlerResult.ok()


def message_handlers() -> list[Handler]:
    return [SetStringHandler()]


async def update_string(endpoint: BridgeEndpoint, initiator: str, value: str) -> Receipt:
    """Store value locally as pending and bridge it to the peer, in one transaction."""
    async with endpoint.ledger.transaction() as tx:
        action_id = endpoint.initiate(initiator, selector_for(SET_STRING_SIGNATURE), value.encode("utf-8"))
        endpoint.state.setdefault("strings", {})[action_id] = (value, "pending")
        tx.value = action_id
    return tx.receipt


def get_string(endpoint: BridgeEndpoint, action_id: bytes) -> tuple[str, str] | None:
    return endpoint.state.get("strings", {}).get(action_id)
