"""
ChainRelay — Chain Watcher

Polls one endpoint for committed logs and publishes every protocol
notification it decodes onto the NotificationBus.

Design notes:
- The watcher only reads. It never decides what to relay; directional relays
  subscribe to the bus for that.
- A cursor (next block to scan) advances only after a range has been
  published, so a failing poll is retried on the next tick from the same
  block.
- With no start block configured, the watcher begins after the head it sees
  at start() (or on its first poll) and only reports what happens afterwards.
- Errors inside a poll are caught and logged; the loop keeps running.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from chainrelay.systems.relay.types import ObservedNotification, RelayEvent

if TYPE_CHECKING:
    from chainrelay.systems.relay.bus import NotificationBus
    from chainrelay.systems.relay.client import EndpointClient

logger = structlog.get_logger("chainrelay.systems.relay.watcher")


class ChainWatcher:
    def __init__(
        self,
        client: EndpointClient,
        bus: NotificationBus,
        poll_interval_s: float = 2.0,
        start_block: int | None = None,
    ) -> None:
        self._client = client
        self._bus = bus
        self._poll_interval_s = poll_interval_s
        self._next_block = start_block
        self._task: asyncio.Task[None] | None = None
        self._poll_lock = asyncio.Lock()
        self._poll_count: int = 0
        self._error_count: int = 0
        self._published: int = 0
        self._logger = logger.bind(chain=client.name, chain_id=client.chain_id)

    @property
    def client(self) -> EndpointClient:
        return self._client

    @property
    def next_block(self) -> int | None:
        return self._next_block

    # ── Polling ───────────────────────────────────────────────────

    async def poll_once(self) -> int:
        """Scan from the cursor to the current head. Returns notifications published."""
        async with self._poll_lock:
            return await self._scan()

    async def _scan(self) -> int:
        head = await self._client.block_number()
        if self._next_block is None:
            self._next_block = head + 1
            self._logger.info("watcher_cursor_initialised", from_block=self._next_block)
            return 0
        if head < self._next_block:
            return 0

        logs = await self._client.get_logs(self._next_block, head)
        published = 0
        for log in logs:
            notification = ObservedNotification.from_log(self._client.chain_id, log)
            if notification is None:
                continue
            await self._bus.emit(RelayEvent.for_notification(notification))
            published += 1

        self._next_block = head + 1
        self._published += published
        if published:
            self._logger.debug("notifications_published", count=published, head=head)
        return published

    # ── Lifecycle ─────────────────────────────────────────────────

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        # Pin the cursor now so actions created right after start() are seen
        if self._next_block is None:
            self._next_block = await self._client.block_number() + 1
        self._task = asyncio.create_task(self._run(), name=f"watcher:{self._client.name}")
        self._logger.info("watcher_started", interval_s=self._poll_interval_s)

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._logger.info("watcher_stopped", published=self._published)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "chain": self._client.name,
            "running": self.running,
            "next_block": self._next_block,
            "poll_count": self._poll_count,
            "error_count": self._error_count,
            "published": self._published,
        }

    # ── Internals ─────────────────────────────────────────────────

    async def _run(self) -> None:
        # Poll immediately, then at interval
        first = True
        while True:
            if not first:
                try:
                    await asyncio.sleep(self._poll_interval_s)
                except asyncio.CancelledError:
                    return
            first = False

            try:
                await self.poll_once()
                self._poll_count += 1
            except asyncio.CancelledError:
                return
            except Exception as exc:
                self._error_count += 1
                self._logger.warning("watcher_poll_error", error=str(exc))
