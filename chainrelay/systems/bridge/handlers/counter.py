"""
ChainRelay — Cross-Chain Counter Handlers

A three-step ping-pong between two endpoints running the same handlers:

  step 1 (chain A, local)   number = 1, bridge updateNumberStep2 to B
  step 2 (chain B, relayed) number = value + 1, chain updateNumberStep3 back
  step 3 (chain A, relayed) number = value + 1

After one full round chain A holds 3. The payload is the value as one word.
Every update is appended to `history` in endpoint state as (step, old, new).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from chainrelay.primitives.common import int_to_word, word_to_int
from chainrelay.systems.bridge.handler import Handler, HandlerContext, HandlerResult
from chainrelay.systems.bridge.hashing import selector_for

if TYPE_CHECKING:
    from chainrelay.systems.bridge.endpoint import BridgeEndpoint
    from chainrelay.systems.ledger.types import Receipt

logger = structlog.get_logger()

STEP2_SIGNATURE = "updateNumberStep2(bytes)"
STEP3_SIGNATURE = "updateNumberStep3(bytes)"


def _decode_value(payload: bytes) -> int | None:
    if len(payload) != 32:
        return None
    return word_to_int(payload)


def _record_update(storage: dict[str, Any], step: str, value: int) -> None:
    old = storage.get("number", 0)
    storage["number"] = value
    storage.setdefault("history", []).append((step, old, value))


# ─── Handlers ─────────────────────────────────────────────────────


class UpdateNumberStep2Handler(Handler):
    """Increment the relayed value and send it back for the final step."""

    signature = STEP2_SIGNATURE
    description = "Increment the number and chain step 3 back to the origin"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        value = _decode_value(payload)
        if value is None:
            return HandlerResult.fail(f"Expected a 32-byte value, got {len(payload)} bytes")
        _record_update(context.storage, "step2", value + 1)
        logger.info("counter_step2", chain_id=context.chain_id, number=value + 1)
        return HandlerResult.chain(STEP3_SIGNATURE, int_to_word(value + 1))


class UpdateNumberStep3Handler(Handler):
    signature = STEP3_SIGNATURE
    description = "Increment the number; final step of the round trip"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        value = _decode_value(payload)
        if value is None:
            return HandlerResult.fail(f"Expected a 32-byte value, got {len(payload)} bytes")
        _record_update(context.storage, "step3", value + 1)
        logger.info("counter_step3", chain_id=context.chain_id, number=value + 1)
        return HandlerResult.ok()


def counter_handlers() -> list[Handler]:
    return [UpdateNumberStep2Handler(), UpdateNumberStep3Handler()]


# ─── Local entry point ───────────────────────────────────────────


async def update_number_step1(endpoint: BridgeEndpoint, initiator: str, value: int) -> Receipt:
    """Set the number locally and bridge step 2, in one transaction."""
    async with endpoint.ledger.transaction() as tx:
        _record_update(endpoint.state, "step1", value)
        tx.value = endpoint.initiate(initiator, selector_for(STEP2_SIGNATURE), int_to_word(value))
    return tx.receipt
