"""
ChainRelay — Executor & Chainer

Runs a validated action's handler and settles the record.

Execution stages:
  1. Precondition check — PENDING, validated, non-empty payload; otherwise
     InvalidActionState is raised and nothing changes
  2. Dispatch — the handler runs inside a ledger savepoint. Unknown selector,
     handler failure, handler exception, timeout, or a chain request to an
     unregistered selector all roll the savepoint back, discarding every write
     the handler made
  3. Failure settlement — the record is deleted so the id can never execute
     again, and ActionCompleted(id, false) is emitted
  4. Chaining — if the handler asked for a follow-on action, the record moves
     to CHAINING and a fresh PENDING record is created on this endpoint, which
     becomes the source of the next hop. Otherwise the record is COMPLETED
  5. ActionCompleted(id, true)

Dispatch failures are reported in the ExecutionOutcome, not raised: the
endpoint must still commit stage 3. Only stage 1 raises.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from chainrelay.primitives.common import short_hex
from chainrelay.systems.bridge.errors import (
    ConfigurationError,
    HandlerFailed,
    InvalidActionState,
    UnknownSelector,
)
from chainrelay.systems.bridge.handler import HandlerContext, HandlerResult
from chainrelay.systems.bridge.notifications import ActionChained, ActionCompleted
from chainrelay.systems.bridge.types import (
    ActionRecord,
    ActionState,
    ExecutionOutcome,
    FailureReason,
)

if TYPE_CHECKING:
    from chainrelay.systems.bridge.handler import HandlerRegistry
    from chainrelay.systems.bridge.initiator import ActionInitiator
    from chainrelay.systems.bridge.registry import ActionRegistry
    from chainrelay.systems.ledger.ledger import Ledger, Transaction

logger = structlog.get_logger()


class ActionExecutor:
    def __init__(
        self,
        ledger: Ledger,
        address: str,
        registry: ActionRegistry,
        handlers: HandlerRegistry,
        initiator: ActionInitiator,
        handler_timeout_s: float = 5.0,
    ) -> None:
        self._ledger = ledger
        self._address = address
        self._registry = registry
        self._handlers = handlers
        self._initiator = initiator
        self._handler_timeout_s = handler_timeout_s
        self._state = ledger.storage(f"{address}:state")
        self._logger = logger.bind(system="bridge.executor", endpoint=address)

    async def execute(self, action_id: bytes) -> ExecutionOutcome:
        tx = self._ledger.active_transaction

        # ── STAGE 1: Preconditions ────────────────────────────────
        record = self._registry.get(action_id)
        if record is None:
            raise InvalidActionState(f"Action {short_hex(action_id, 18)} does not exist")
        if record.state != ActionState.PENDING:
            raise InvalidActionState(
                f"Action {short_hex(action_id, 18)} is {record.state.value}, expected pending"
            )
        if not record.is_validated:
            raise InvalidActionState(f"Action {short_hex(action_id, 18)} has not been validated")
        if not record.payload:
            raise InvalidActionState(f"Action {short_hex(action_id, 18)} has an empty payload")

        # ── STAGE 2: Dispatch ─────────────────────────────────────
        try:
            with tx.savepoint():
                result = await self._dispatch(record, tx)
        except UnknownSelector as exc:
            return self._settle_failure(tx, record, FailureReason.UNKNOWN_SELECTOR, str(exc))
        except ConfigurationError as exc:
            return self._settle_failure(
                tx, record, FailureReason.CHAIN_TARGET_UNREGISTERED, str(exc)
            )
        except HandlerFailed as exc:
            return self._settle_failure(tx, record, FailureReason.HANDLER_FAILED, str(exc))
        except TimeoutError:
            return self._settle_failure(
                tx,
                record,
                FailureReason.HANDLER_TIMEOUT,
                f"Handler timed out after {self._handler_timeout_s}s",
            )
        except Exception as exc:
            return self._settle_failure(
                tx,
                record,
                FailureReason.HANDLER_EXCEPTION,
                f"Handler raised exception: {type(exc).__name__}: {exc}",
            )

        # ── STAGE 4: Chaining ─────────────────────────────────────
        next_action_id: bytes | None = None
        if result.next_selector:
            self._registry.transition(
                action_id,
                ActionState.CHAINING,
                next_selector=result.next_selector,
                next_payload=result.next_payload,
            )
            spawned = self._initiator.initiate(
                initiator=record.initiator,
                selector=result.next_selector,
                payload=result.next_payload,
                destination=record.source_endpoint,
            )
            next_action_id = spawned.action_id
            topics, data = ActionChained(
                previous_id=action_id,
                next_id=next_action_id,
                initiator=record.initiator,
                next_selector=result.next_selector,
            ).encode()
            tx.emit(self._address, topics, data)
            final_state = ActionState.CHAINING
        else:
            self._registry.transition(action_id, ActionState.COMPLETED)
            final_state = ActionState.COMPLETED

        # ── STAGE 5: Completion ───────────────────────────────────
        topics, data = ActionCompleted(action_id=action_id, success=True).encode()
        tx.emit(self._address, topics, data)

        self._logger.info(
            "action_executed",
            action_id=short_hex(action_id),
            state=final_state.value,
            next_action_id=short_hex(next_action_id) if next_action_id else None,
        )
        return ExecutionOutcome(
            action_id=action_id,
            success=True,
            state=final_state,
            next_action_id=next_action_id,
            next_selector=result.next_selector,
        )

    async def _dispatch(self, record: ActionRecord, tx: Transaction) -> HandlerResult:
        handler = self._handlers.require(record.selector)
        context = HandlerContext(
            action=record,
            chain_id=self._ledger.chain_id,
            endpoint=self._address,
            timestamp=tx.timestamp,
            storage=self._state,
        )
        result = await asyncio.wait_for(
            handler.handle(record.payload, context),
            timeout=self._handler_timeout_s,
        )
        if not result.success:
            raise HandlerFailed(result.error or f"{handler.signature} reported failure")
        if result.next_selector and not self._handlers.is_registered(result.next_selector):
            raise ConfigurationError(
                f"Chain target {short_hex(result.next_selector)} is not a registered function"
            )
        return result

    def _settle_failure(
        self,
        tx: Transaction,
        record: ActionRecord,
        reason: FailureReason,
        error: str,
    ) -> ExecutionOutcome:
        self._registry.delete(record.action_id)
        topics, data = ActionCompleted(action_id=record.action_id, success=False).encode()
        tx.emit(self._address, topics, data)

        self._logger.warning(
            "action_execution_failed",
            action_id=short_hex(record.action_id),
            failure_reason=reason.value,
            error=error[:200],
        )
        return ExecutionOutcome(
            action_id=record.action_id,
            success=False,
            state=ActionState.NONE,
            failure_reason=reason,
            error=error,
        )
