"""
ChainRelay — Ledger

In-process stand-in for a chain: serialised atomic transactions, nested
savepoints, blocks, receipts and logs.

Public interface:
  Ledger        — the ledger itself
  Transaction   — handle for one in-flight transaction
  Block, Receipt, LogEntry — committed data
"""

from chainrelay.systems.ledger.ledger import Ledger, Transaction
from chainrelay.systems.ledger.types import Block, LogEntry, Receipt

__all__ = [
    "Ledger",
    "Transaction",
    "Block",
    "LogEntry",
    "Receipt",
]
