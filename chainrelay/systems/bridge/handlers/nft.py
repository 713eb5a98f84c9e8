"""
ChainRelay — Cross-Chain NFT Handlers

Moves a token from chain A to chain B over three relayed hops:

  step 1  (A, local)    mint_nft, then lock_and_bridge_nft locks the token and
                        bridges mintNFT to B
  step 2  (B, relayed)  mint the token to the initiator, lock it while the
                        origin copy is retired, chain burnNFT back to A
  step 3a (A, relayed)  burn the locked origin token, chain unlockNFT to B
  step 3b (B, relayed)  unlock the minted token; the transfer is complete

Both endpoints run the same handlers. Token state lives in endpoint storage:
`nft_owners` (token id → owner), `nft_locked` (token id → owner) and an
`nft_events` log of (step, token id) pairs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from chainrelay.primitives.common import int_to_word, normalize_address, word_to_int
from chainrelay.systems.bridge.handler import Handler, HandlerContext, HandlerResult
from chainrelay.systems.bridge.hashing import selector_for

if TYPE_CHECKING:
    from chainrelay.systems.bridge.endpoint import BridgeEndpoint
    from chainrelay.systems.ledger.types import Receipt

logger = structlog.get_logger()

MINT_SIGNATURE = "mintNFT(bytes)"
BURN_SIGNATURE = "burnNFT(bytes)"
UNLOCK_SIGNATURE = "unlockNFT(bytes)"


def _owners(storage: dict[str, Any]) -> dict[int, str]:
    return storage.setdefault("nft_owners", {})


def _locked(storage: dict[str, Any]) -> dict[int, str]:
    return storage.setdefault("nft_locked", {})


def _log_event(storage: dict[str, Any], step: str, token_id: int) -> None:
    storage.setdefault("nft_events", []).append((step, token_id))


def _decode_token(payload: bytes) -> int | None:
    if len(payload) != 32:
        return None
    return word_to_int(payload)


def balance_of(endpoint: BridgeEndpoint, owner: str) -> int:
    owner = normalize_address(owner)
    return sum(1 for holder in _owners(endpoint.state).values() if holder == owner)


# ─── Handlers ─────────────────────────────────────────────────────


class MintNFTHandler(Handler):
    signature = MINT_SIGNATURE
    description = "Mint the bridged token here, lock it, and ask the origin to burn"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        token_id = _decode_token(payload)
        if token_id is None:
            return HandlerResult.fail(f"Expected a 32-byte token id, got {len(payload)} bytes")
        owners = _owners(context.storage)
        if token_id in owners:
            return HandlerResult.fail(f"Token {token_id} already exists on chain {context.chain_id}")

        owner = context.action.initiator
        owners[token_id] = owner
        _locked(context.storage)[token_id] = owner
        _log_event(context.storage, "minted", token_id)
        _log_event(context.storage, "locked", token_id)
        logger.info("nft_minted", chain_id=context.chain_id, token_id=token_id, owner=owner)
        return HandlerResult.chain(BURN_SIGNATURE, int_to_word(token_id))


class BurnNFTHandler(Handler):
    signature = BURN_SIGNATURE
    description = "Burn the locked origin token and release the bridged copy"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        token_id = _decode_token(payload)
        if token_id is None:
            return HandlerResult.fail(f"Expected a 32-byte token id, got {len(payload)} bytes")
        locked = _locked(context.storage)
        if locked.get(token_id) != context.action.initiator:
            return HandlerResult.fail(f"Token {token_id} is not locked for {context.action.initiator}")

        del locked[token_id]
        del _owners(context.storage)[token_id]
        _log_event(context.storage, "burned", token_id)
        logger.info("nft_burned", chain_id=context.chain_id, token_id=token_id)
        return HandlerResult.chain(UNLOCK_SIGNATURE, int_to_word(token_id))


class UnlockNFTHandler(Handler):
    signature = UNLOCK_SIGNATURE
    description = "Unlock the bridged token; final hop of the transfer"

    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        token_id = _decode_token(payload)
        if token_id is None:
            return HandlerResult.fail(f"Expected a 32-byte token id, got {len(payload)} bytes")
        locked = _locked(context.storage)
        if locked.get(token_id) != context.action.initiator:
            return HandlerResult.fail(f"Token {token_id} is not locked for {context.action.initiator}")

        del locked[token_id]
        _log_event(context.storage, "unlocked", token_id)
        logger.info("nft_unlocked", chain_id=context.chain_id, token_id=token_id)
        return HandlerResult.ok()


def nft_handlers() -> list[Handler]:
    return [MintNFTHandler(), BurnNFTHandler(), UnlockNFTHandler()]


# ─── Local entry points ──────────────────────────────────────────


async def mint_nft(endpoint: BridgeEndpoint, owner: str) -> Receipt:
    """Mint the next token id to owner on this endpoint. receipt.value is the token id."""
    async with endpoint.ledger.transaction() as tx:
        owners = _owners(endpoint.state)
        token_id = endpoint.state.get("nft_next_id", 1)
        endpoint.state["nft_next_id"] = token_id + 1
        owners[token_id] = normalize_address(owner)
        _log_event(endpoint.state, "minted", token_id)
        tx.value = token_id
    return tx.receipt


async def lock_and_bridge_nft(endpoint: BridgeEndpoint, owner: str, token_id: int) -> Receipt:
    """Lock an owned token and bridge it to the peer, in one transaction."""
    owner = normalize_address(owner)
    async with endpoint.ledger.transaction() as tx:
        if _owners(endpoint.state).get(token_id) != owner:
            raise PermissionError(f"Token {token_id} is not owned by {owner}")
        if token_id in _locked(endpoint.state):
            raise PermissionError(f"Token {token_id} is already locked")
        _locked(endpoint.state)[token_id] = owner
        _log_event(endpoint.state, "locked", token_id)
        tx.value = endpoint.initiate(owner, selector_for(MINT_SIGNATURE), int_to_word(token_id))
    return tx.receipt
