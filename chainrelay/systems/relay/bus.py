"""
ChainRelay — Notification Bus

The single in-process bus shared by both directions of a link. Watchers
publish every protocol notification they observe; directional relays
subscribe to ACTION_INITIATED; the orchestrator publishes relay outcomes.

Because both watchers feed the same bus, a chained action needs no special
handling: executing on B emits ActionInitiated on B, B's watcher publishes
it, and the B→A relay picks it up like any other initiated action.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from collections.abc import Callable, Coroutine
from typing import Any

import structlog

from chainrelay.systems.relay.types import RelayEvent, RelayEventType

logger = structlog.get_logger("chainrelay.systems.relay.bus")

# Callback signature: async def handler(event: RelayEvent) -> None
EventCallback = Callable[[RelayEvent], Coroutine[Any, Any, None]]


class NotificationBus:
    """
    In-memory async pub/sub for relay events.

    Callbacks run in subscription order with per-callback timeout
    protection. A slow or failing subscriber is logged and skipped; it never
    blocks the publisher or the other subscribers.
    """

    def __init__(
        self,
        callback_timeout_s: float = 1.0,
        recent_buffer_size: int = 100,
    ) -> None:
        self._callback_timeout_s = callback_timeout_s
        self._logger = logger.bind(component="notification_bus")

        self._subscribers: dict[RelayEventType, list[EventCallback]] = defaultdict(list)
        self._global_subscribers: list[EventCallback] = []

        self._recent: dict[RelayEventType, deque[RelayEvent]] = defaultdict(
            lambda: deque(maxlen=recent_buffer_size)
        )

        self._total_emitted: int = 0
        self._total_callback_timeouts: int = 0
        self._total_callback_errors: int = 0

    @property
    def callback_timeout_s(self) -> float:
        return self._callback_timeout_s

    # ─── Subscription ────────────────────────────────────────────────

    def subscribe(self, event_type: RelayEventType, callback: EventCallback) -> None:
        """Register a callback for a specific event type."""
        self._subscribers[event_type].append(callback)

    def subscribe_all(self, callback: EventCallback) -> None:
        """Register a callback that receives every event."""
        self._global_subscribers.append(callback)

    def unsubscribe(self, event_type: RelayEventType, callback: EventCallback) -> None:
        try:
            self._subscribers[event_type].remove(callback)
        except ValueError:
            pass

    # ─── Emission ────────────────────────────────────────────────────

    async def emit(self, event: RelayEvent) -> None:
        self._total_emitted += 1
        self._recent[event.event_type].append(event)

        callbacks = list(self._subscribers.get(event.event_type, []))
        callbacks.extend(self._global_subscribers)
        for callback in callbacks:
            try:
                await asyncio.wait_for(callback(event), timeout=self._callback_timeout_s)
            except TimeoutError:
                self._total_callback_timeouts += 1
                self._logger.warning(
                    "event_callback_timeout",
                    event_type=event.event_type.value,
                    callback=getattr(callback, "__name__", str(callback)),
                )
            except Exception as exc:
                self._total_callback_errors += 1
                self._logger.error(
                    "event_callback_error",
                    event_type=event.event_type.value,
                    error=str(exc),
                )

    # ─── Query ───────────────────────────────────────────────────────

    def recent(self, event_type: RelayEventType, limit: int = 10) -> list[RelayEvent]:
        """Return recent events of a given type (most recent first)."""
        buf = self._recent.get(event_type)
        if not buf:
            return []
        items = list(buf)
        items.reverse()
        return items[:limit]

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_emitted": self._total_emitted,
            "callback_timeouts": self._total_callback_timeouts,
            "callback_errors": self._total_callback_errors,
            "subscriber_count": sum(len(v) for v in self._subscribers.values())
            + len(self._global_subscribers),
            "recent_buffer_sizes": {
                et.value: len(buf) for et, buf in self._recent.items()
            },
        }
