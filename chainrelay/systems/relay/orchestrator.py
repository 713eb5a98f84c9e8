"""
ChainRelay — Relay Orchestrator

Owns one bidirectional link between two endpoints. It starts a ChainWatcher
for each side, subscribes the two directional relays to ACTION_INITIATED on
the shared NotificationBus, and runs one relay attempt per new notification.

Relay attempt pipeline:
  1. Resolve — fetch the source receipt; block number and transaction
     position identify the receipt, index_in_tx identifies the log
  2. Request proof — ask the attestation service for a proof of the receipt
  3. Poll — wait for the proof (bounded; ProofTimeout abandons the attempt)
  4. Validate — submit (log position, attestation) to the destination
  5. Execute — read the action id from ActionValidated and execute it
  6. Observe — record ActionChained / ActionCompleted from the receipt

Chained actions need no special handling here: executing on the destination
emits ActionInitiated there, the destination's watcher publishes it, and the
opposite direction relays it.

Once started, an attempt never raises. Every failure is caught at the
attempt boundary, reported as a RelayOutcome, and published as
RELAY_FAILED. An abandoned
attempt is not retried; the source record stays PENDING and can be relayed
again by any other relayer.

The dedupe set lives on the orchestrator instance, so two orchestrators in
one process never share it. Keys are added when an attempt starts.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import TYPE_CHECKING, Any

import structlog

from chainrelay.config import BusConfig, ProverConfig, RelayerConfig
from chainrelay.primitives.common import short_hex
from chainrelay.systems.bridge.errors import BridgeError
from chainrelay.systems.bridge.notifications import (
    ActionChained,
    ActionCompleted,
    ActionInitiated,
    ActionValidated,
    find_notification,
)
from chainrelay.systems.bridge.types import ExecutionOutcome
from chainrelay.systems.relay.bus import NotificationBus
from chainrelay.systems.relay.errors import (
    NotificationNotFound,
    ProofServiceError,
    ProofTimeout,
    SubmissionRejected,
)
from chainrelay.systems.relay.poller import ProofPoller
from chainrelay.systems.relay.types import (
    Direction,
    NotificationKey,
    ObservedNotification,
    RelayEvent,
    RelayEventType,
    RelayOutcome,
    RelayStage,
    RelayStatus,
)
from chainrelay.systems.relay.watcher import ChainWatcher

if TYPE_CHECKING:
    from chainrelay.clients.proof_service import ProofService
    from chainrelay.systems.relay.client import EndpointClient

logger = structlog.get_logger()


class RelayOrchestrator:
    def __init__(
        self,
        endpoints: tuple[EndpointClient, EndpointClient],
        proof_service: ProofService,
        bus: NotificationBus | None = None,
        relayer_config: RelayerConfig | None = None,
        prover_config: ProverConfig | None = None,
        bus_config: BusConfig | None = None,
        instance_id: str = "relayer-default",
    ) -> None:
        a, b = endpoints
        if a.chain_id == b.chain_id and a.address == b.address:
            raise ValueError("Cannot relay between an endpoint and itself")

        self._relayer_config = relayer_config or RelayerConfig()
        self._prover_config = prover_config or ProverConfig()
        self._instance_id = instance_id
        self._proof_service = proof_service
        if bus is None:
            bus_config = bus_config or BusConfig()
            bus = NotificationBus(
                callback_timeout_s=bus_config.callback_timeout_s,
                recent_buffer_size=bus_config.recent_buffer_size,
            )
        self._bus = bus
        self._poller = ProofPoller(
            proof_service,
            initial_delay_s=self._prover_config.initial_delay_s,
            poll_interval_s=self._prover_config.poll_interval_s,
            max_attempts=self._prover_config.max_attempts,
        )

        self._directions = (Direction(a, b), Direction(b, a))
        self._watchers = [
            ChainWatcher(
                client,
                self._bus,
                poll_interval_s=self._relayer_config.poll_interval_s,
                start_block=self._relayer_config.start_block,
            )
            for client in endpoints
        ]
        self._semaphores = {
            d.name: asyncio.Semaphore(self._relayer_config.max_concurrent_relays)
            for d in self._directions
        }

        self.processed: set[NotificationKey] = set()
        self._in_flight: set[asyncio.Task[RelayOutcome]] = set()
        self._outcomes: deque[RelayOutcome] = deque(maxlen=self._relayer_config.recent_outcomes)
        self._counts: dict[RelayStatus, int] = {status: 0 for status in RelayStatus}
        self._subscribed = False
        self._running = False
        self._logger = logger.bind(system="relay.orchestrator", instance_id=instance_id)

    @property
    def bus(self) -> NotificationBus:
        return self._bus

    @property
    def directions(self) -> tuple[Direction, Direction]:
        return self._directions

    @property
    def watchers(self) -> list[ChainWatcher]:
        return list(self._watchers)

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        if not self._subscribed:
            self._bus.subscribe(RelayEventType.ACTION_INITIATED, self._on_initiated)
            self._subscribed = True
        for watcher in self._watchers:
            await watcher.start()
        self._running = True
        self._logger.info(
            "relay_started",
            directions=[d.name for d in self._directions],
            max_concurrent=self._relayer_config.max_concurrent_relays,
        )

    async def drain(self) -> None:
        """Wait until every in-flight attempt has finished."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def stop(self) -> None:
        for watcher in self._watchers:
            await watcher.stop()
        for task in list(self._in_flight):
            task.cancel()
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        self._running = False
        self._logger.info("relay_stopped", **{s.value: n for s, n in self._counts.items()})

    # ─── Dispatch ────────────────────────────────────────────────────

    async def _on_initiated(self, event: RelayEvent) -> None:
        notification = event.notification
        if notification is None:
            return
        direction = self._direction_for(notification)
        if direction is None:
            return

        key = notification.key
        if key in self.processed:
            self._logger.debug("notification_duplicate", tx_hash=short_hex(key.tx_hash))
            return
        self.processed.add(key)

        task = asyncio.create_task(
            self._run_guarded(direction, notification),
            name=f"relay:{direction.name}:{short_hex(key.tx_hash)}",
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    def _direction_for(self, notification: ObservedNotification) -> Direction | None:
        for direction in self._directions:
            if direction.accepts(notification):
                return direction
        return None

    async def _run_guarded(
        self, direction: Direction, notification: ObservedNotification
    ) -> RelayOutcome:
        async with self._semaphores[direction.name]:
            return await self.relay(direction, notification)

    # ─── Relay Attempt ───────────────────────────────────────────────

    async def relay(
        self, direction: Direction, notification: ObservedNotification
    ) -> RelayOutcome:
        """
        Run one relay attempt. Failures of the attempt itself are reported in
        the outcome, not raised. Passing a notification other than
        ActionInitiated is a caller error and raises TypeError.
        """
        initiated = notification.event
        if not isinstance(initiated, ActionInitiated):
            raise TypeError(f"Only ActionInitiated can be relayed, got {type(initiated).__name__}")

        source, destination = direction.source, direction.destination
        outcome = RelayOutcome(
            direction=direction.name,
            source_chain_id=source.chain_id,
            destination_chain_id=destination.chain_id,
            source_action_id=initiated.action_id,
        )
        log = self._logger.bind(
            direction=direction.name,
            action_id=short_hex(initiated.action_id),
        )
        log.info("relay_attempt_started", selector=short_hex(initiated.selector))
        started = time.monotonic()

        try:
            # ── STAGE 1: Resolve ──────────────────────────────────
            outcome.stage = RelayStage.RESOLVE
            receipt = await source.get_receipt(notification.log.tx_hash)
            log_position = notification.log.index_in_tx

            # ── STAGE 2: Request proof ────────────────────────────
            outcome.stage = RelayStage.REQUEST_PROOF
            job_id = await self._proof_service.request_proof(
                source.chain_id,
                destination.chain_id,
                receipt.block_number,
                receipt.tx_index,
            )
            outcome.job_id = str(job_id)
            log.debug("proof_job_requested", job_id=job_id, block=receipt.block_number)

            # ── STAGE 3: Poll ─────────────────────────────────────
            outcome.stage = RelayStage.POLL_PROOF
            attestation = await self._poller.wait_for_proof(job_id)

            # ── STAGE 4: Validate ─────────────────────────────────
            outcome.stage = RelayStage.VALIDATE
            try:
                validation = await destination.submit_validation(log_position, attestation)
            except BridgeError as exc:
                raise SubmissionRejected(f"{type(exc).__name__}: {exc}") from exc
            validated = find_notification(validation.logs, ActionValidated)
            if validated is None:
                raise NotificationNotFound("Validation receipt carries no ActionValidated")
            outcome.destination_action_id = validated.action_id

            # ── STAGE 5: Execute ──────────────────────────────────
            outcome.stage = RelayStage.EXECUTE
            try:
                execution = await destination.submit_execution(validated.action_id)
            except BridgeError as exc:
                raise SubmissionRejected(f"{type(exc).__name__}: {exc}") from exc

            # ── STAGE 6: Observe ──────────────────────────────────
            chained = find_notification(execution.logs, ActionChained)
            if chained is not None:
                outcome.chained_action_id = chained.next_id
                log.info("action_chained_observed", next_action_id=short_hex(chained.next_id))

            completed = find_notification(execution.logs, ActionCompleted)
            if isinstance(execution.value, ExecutionOutcome):
                success = execution.value.success
                error = execution.value.error or str(execution.value.failure_reason or "")
            elif completed is not None:
                success = completed.success
                error = "" if success else "Handler reported failure"
            else:
                raise NotificationNotFound("Execution receipt carries no ActionCompleted")

            if success:
                outcome.stage = RelayStage.DONE
                outcome.status = RelayStatus.COMPLETED
            else:
                outcome.status = RelayStatus.FAILED
                outcome.error = error

        except ProofTimeout as exc:
            outcome.status = RelayStatus.TIMED_OUT
            outcome.error = str(exc)
        except SubmissionRejected as exc:
            outcome.status = RelayStatus.REJECTED
            outcome.error = str(exc)
        except ProofServiceError as exc:
            outcome.status = RelayStatus.FAILED
            outcome.error = str(exc)
        except asyncio.CancelledError:
            outcome.status = RelayStatus.FAILED
            outcome.error = "cancelled"
            self._record(outcome, started)
            raise
        except Exception as exc:
            outcome.status = RelayStatus.FAILED
            outcome.error = f"{type(exc).__name__}: {exc}"

        self._record(outcome, started)
        if outcome.success:
            log.info("relay_attempt_completed", duration_ms=outcome.duration_ms)
        else:
            log.warning(
                "relay_attempt_failed",
                status=outcome.status.value,
                stage=outcome.stage.value,
                error=outcome.error,
            )

        event_type = (
            RelayEventType.RELAY_SUCCEEDED if outcome.success else RelayEventType.RELAY_FAILED
        )
        await self._bus.emit(RelayEvent(
            event_type=event_type,
            chain_id=destination.chain_id,
            outcome=outcome,
            source="orchestrator",
        ))
        return outcome

    def _record(self, outcome: RelayOutcome, started: float) -> None:
        outcome.duration_ms = int((time.monotonic() - started) * 1000)
        self._outcomes.append(outcome)
        self._counts[outcome.status] += 1

    # ─── Query ───────────────────────────────────────────────────────

    def recent_outcomes(self, limit: int = 10) -> list[RelayOutcome]:
        """Most recent attempt outcomes, newest first."""
        items = list(self._outcomes)
        items.reverse()
        return items[:limit]

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "instance_id": self._instance_id,
            "running": self._running,
            "processed": len(self.processed),
            "in_flight": len(self._in_flight),
            "outcomes": {s.value: n for s, n in self._counts.items()},
            "watchers": [w.stats for w in self._watchers],
            "bus": self._bus.stats,
        }
