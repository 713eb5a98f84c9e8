"""
ChainRelay — Ledger Types

Blocks, receipts and logs produced by the in-process ledger. Shapes follow
what an EVM JSON-RPC node returns, so an RPC-backed endpoint client can map
its responses onto the same types.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from chainrelay.primitives.common import RelayBaseModel


class LogEntry(RelayBaseModel):
    """One log emitted by a committed transaction."""

    address: str
    topics: list[bytes] = Field(default_factory=list)
    data: bytes = b""
    block_number: int = 0
    block_hash: bytes = b""
    tx_hash: bytes = b""
    tx_index: int = 0
    # Position among all logs of the block
    log_index: int = 0
    # Position among the logs of its own transaction receipt
    index_in_tx: int = 0


class Receipt(RelayBaseModel):
    tx_hash: bytes
    block_number: int
    block_hash: bytes
    tx_index: int = 0
    status: int = 1
    logs: list[LogEntry] = Field(default_factory=list)
    # Return value of the entry point that produced this receipt
    value: Any = None

    model_config = {"arbitrary_types_allowed": True}


class Block(RelayBaseModel):
    number: int
    hash: bytes
    parent_hash: bytes
    timestamp: int
    receipts: list[Receipt] = Field(default_factory=list)

    @property
    def logs(self) -> list[LogEntry]:
        return [log for receipt in self.receipts for log in receipt.logs]
