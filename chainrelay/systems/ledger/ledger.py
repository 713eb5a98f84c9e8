"""
ChainRelay — In-Process Ledger

A single-node ledger that gives the bridge endpoint the execution model it
expects from a chain:

  - Contract storage lives in named namespaces (plain dicts).
  - Every state-changing call runs inside transaction(). Transactions are
    serialised by a per-ledger lock, exactly like a block producer orders
    them, so two relayers racing on one endpoint are applied one after the
    other.
  - A transaction is all-or-nothing. If the body raises, every storage
    namespace is restored and no logs or blocks are produced.
  - savepoint() opens a nested rollback boundary inside a transaction, so an
    inner failure (a handler) can be undone while the outer call still commits.
  - Committed transactions are mined immediately, one transaction per block.

Storage namespaces are restored in place, so components holding a reference
to a namespace dict keep seeing the live state after a rollback.
"""

from __future__ import annotations

import asyncio
import copy
import time
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import structlog

from chainrelay.primitives.common import ZERO_HASH, int_to_word, sha256, short_hex
from chainrelay.systems.ledger.types import Block, LogEntry, Receipt

logger = structlog.get_logger()

_Snapshot = dict[str, dict[Any, Any]]


class Transaction:
    """
    State of one in-flight ledger transaction.

    Entry points emit logs through it and set `value` to the result they
    return to the caller. After commit, `receipt` holds the mined receipt.
    """

    def __init__(self, ledger: Ledger, block_number: int, timestamp: int) -> None:
        self._ledger = ledger
        self.block_number = block_number
        self.timestamp = timestamp
        self.logs: list[tuple[str, list[bytes], bytes]] = []
        self.value: Any = None
        self.receipt: Receipt | None = None

    @property
    def chain_id(self) -> int:
        return self._ledger.chain_id

    def emit(self, address: str, topics: list[bytes], data: bytes = b"") -> None:
        self.logs.append((address, list(topics), data))

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """Nested rollback boundary. Storage and logs revert if the body raises."""
        snapshot = self._ledger._snapshot()
        mark = len(self.logs)
        try:
            yield
        except BaseException:
            self._ledger._restore(snapshot)
            del self.logs[mark:]
            raise


class Ledger:
    """
    In-process ledger with serialised, atomic transactions.

    Usage::

        ledger = Ledger(chain_id=11155420, name="chain-a")
        async with ledger.transaction() as tx:
            ledger.storage("counter")["value"] = 1
            tx.emit(address, [topic0], b"")
        receipt = tx.receipt
    """

    def __init__(
        self,
        chain_id: int,
        name: str = "",
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.chain_id = chain_id
        self.name = name or f"chain-{chain_id}"
        self._clock = clock or time.time
        self._storage: dict[str, dict[Any, Any]] = {}
        self._lock = asyncio.Lock()
        self._active: Transaction | None = None
        self._receipts: dict[bytes, Receipt] = {}
        self._tx_count: int = 0
        self._reverted: int = 0
        self._logger = logger.bind(system="ledger", chain=self.name)

        genesis_hash = sha256(b"genesis", int_to_word(chain_id))
        self._blocks: list[Block] = [
            Block(
                number=0,
                hash=genesis_hash,
                parent_hash=ZERO_HASH,
                timestamp=int(self._clock()),
            )
        ]

    # ── Storage ──────────────────────────────────────────────────

    def storage(self, namespace: str) -> dict[Any, Any]:
        """Return the live dict backing a storage namespace."""
        return self._storage.setdefault(namespace, {})

    def _snapshot(self) -> _Snapshot:
        return {ns: copy.deepcopy(data) for ns, data in self._storage.items()}

    def _restore(self, snapshot: _Snapshot) -> None:
        for ns, data in self._storage.items():
            data.clear()
            data.update(snapshot.get(ns, {}))

    # ── Transactions ─────────────────────────────────────────────

    @property
    def active_transaction(self) -> Transaction:
        """The transaction currently holding the ledger, for components called inside one."""
        if self._active is None:
            raise RuntimeError(f"No active transaction on {self.name}")
        return self._active

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        async with self._lock:
            head = self.head
            tx = Transaction(
                self,
                block_number=head.number + 1,
                timestamp=max(int(self._clock()), head.timestamp),
            )
            snapshot = self._snapshot()
            self._active = tx
            try:
                yield tx
            except BaseException:
                self._restore(snapshot)
                self._reverted += 1
                self._logger.debug("transaction_reverted", block=tx.block_number)
                raise
            else:
                tx.receipt = self._mine(tx)
            finally:
                self._active = None

    def _mine(self, tx: Transaction) -> Receipt:
        parent = self.head
        self._tx_count += 1
        tx_hash = sha256(
            int_to_word(self.chain_id), int_to_word(tx.block_number), int_to_word(self._tx_count)
        )
        block_hash = sha256(parent.hash, int_to_word(tx.block_number), tx_hash)

        logs = [
            LogEntry(
                address=address,
                topics=topics,
                data=data,
                block_number=tx.block_number,
                block_hash=block_hash,
                tx_hash=tx_hash,
                tx_index=0,
                log_index=i,
                index_in_tx=i,
            )
            for i, (address, topics, data) in enumerate(tx.logs)
        ]
        receipt = Receipt(
            tx_hash=tx_hash,
            block_number=tx.block_number,
            block_hash=block_hash,
            tx_index=0,
            logs=logs,
            value=tx.value,
        )
        self._blocks.append(Block(
            number=tx.block_number,
            hash=block_hash,
            parent_hash=parent.hash,
            timestamp=tx.timestamp,
            receipts=[receipt],
        ))
        self._receipts[tx_hash] = receipt
        self._logger.debug(
            "block_mined",
            block=tx.block_number,
            tx_hash=short_hex(tx_hash),
            logs=len(logs),
        )
        return receipt

    # ── Queries ──────────────────────────────────────────────────

    @property
    def head(self) -> Block:
        return self._blocks[-1]

    @property
    def block_number(self) -> int:
        return self.head.number

    def get_block(self, number: int) -> Block:
        if number < 0 or number >= len(self._blocks):
            raise KeyError(f"Block {number} not found on {self.name}")
        return self._blocks[number]

    def get_receipt(self, tx_hash: bytes) -> Receipt:
        receipt = self._receipts.get(tx_hash)
        if receipt is None:
            raise KeyError(f"Receipt {short_hex(tx_hash)} not found on {self.name}")
        return receipt

    def get_logs(
        self,
        from_block: int,
        to_block: int | None = None,
        address: str | None = None,
        topic0: bytes | None = None,
    ) -> list[LogEntry]:
        """Committed logs in [from_block, to_block], oldest first."""
        last = self.block_number if to_block is None else min(to_block, self.block_number)
        logs: list[LogEntry] = []
        for block in self._blocks[max(from_block, 0) : last + 1]:
            for log in block.logs:
                if address is not None and log.address != address:
                    continue
                if topic0 is not None and (not log.topics or log.topics[0] != topic0):
                    continue
                logs.append(log)
        return logs

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "block_number": self.block_number,
            "transactions": self._tx_count,
            "reverted": self._reverted,
        }

    def __repr__(self) -> str:
        return f"<Ledger {self.name} chain_id={self.chain_id} block={self.block_number}>"
