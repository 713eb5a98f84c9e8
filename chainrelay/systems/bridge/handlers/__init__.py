"""
ChainRelay — Built-in Handlers

Example applications built on the bridge:
  counter — UpdateNumberStep2Handler, UpdateNumberStep3Handler, update_number_step1
  nft     — MintNFTHandler, BurnNFTHandler, UnlockNFTHandler, mint_nft, lock_and_bridge_nft
  message — SetStringHandler, update_string
"""

from chainrelay.systems.bridge.handlers.counter import (
    STEP2_SIGNATURE,
    STEP3_SIGNATURE,
    UpdateNumberStep2Handler,
    UpdateNumberStep3Handler,
    counter_handlers,
    update_number_step1,
)
from chainrelay.systems.bridge.handlers.message import (
    SET_STRING_SIGNATURE,
    SetStringHandler,
    get_string,
    message_handlers,
    update_string,
)
from chainrelay.systems.bridge.handlers.nft import (
    BURN_SIGNATURE,
    MINT_SIGNATURE,
    UNLOCK_SIGNATURE,
    BurnNFTHandler,
    MintNFTHandler,
    UnlockNFTHandler,
    balance_of,
    lock_and_bridge_nft,
    mint_nft,
    nft_handlers,
)

__all__ = [
    "BURN_SIGNATURE",
    "MINT_SIGNATURE",
    "SET_STRING_SIGNATURE",
    "STEP2_SIGNATURE",
    "STEP3_SIGNATURE",
    "UNLOCK_SIGNATURE",
    "BurnNFTHandler",
    "MintNFTHandler",
    "SetStringHandler",
    "UnlockNFTHandler",
    "UpdateNumberStep2Handler",
    "UpdateNumberStep3Handler",
    "balance_of",
    "counter_handlers",
    "get_string",
    "lock_and_bridge_nft",
    "message_handlers",
    "mint_nft",
    "nft_handlers",
    "update_number_step1",
    "update_string",
]
