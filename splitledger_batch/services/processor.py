"""
ScheduledActionProcessor -- executes one batch of due actions.

Contract:
    ``process_batch(unit)`` loads the batch's actions with their group
    context and processes them in list order.  Each action ends in exactly
    one of:

    - already executed: a success history row exists for the date; nothing
      is written and the result reports ``Already executed``.
    - success: ledger statements, the schedule advance and the success
      history row are applied in ONE SAVEPOINT.
    - failure: the error is recorded on the history row (status failed),
      the schedule is left untouched so the action is due again next
      cycle, and processing continues with the next action.

    The session is committed after every action, so a crash mid-batch
    keeps the actions already finished.

Invariants enforced:
    - Partial application is never visible: ledger rows, the schedule
      advance and the history result are committed together or not at all.
    - A handler's deterministic ledger id makes re-processing safe: an
      existing object yields zero ledger statements.
    - All timestamps come from the injected Clock; durations from a
      monotonic timer.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from datetime import date
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from splitledger_batch.domain.identifiers import history_id
from splitledger_batch.domain.schedule import next_execution_date
from splitledger_batch.domain.types import (
    ActionExecutionResult,
    BatchDispatch,
    ExecutionStatus,
    GroupContext,
    ProcessorResult,
    ScheduledAction,
    WorkflowStatus,
    parse_action_data,
)
from splitledger_batch.domain.validation import validate_action
from splitledger_batch.handlers.base import ActionOutcome, ActionRequest, HandlerRegistry
from splitledger_batch.services.store import ScheduledActionStore
from splitledger_kernel.domain.clock import Clock, SystemClock
from splitledger_kernel.domain.currency import normalize_currencies
from splitledger_kernel.exceptions import (
    ActionTimeoutError,
    ActionValidationError,
    MissingGroupContextError,
)
from splitledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.processor")


def _elapsed_ms(start: float, now: float) -> int:
    return int((now - start) * 1000)


class ScheduledActionProcessor:
    """Consumer side of the scheduler: one batch, one session."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        handler_registry: HandlerRegistry,
        clock: Clock | None = None,
        supported_currencies: Iterable[str] | None = None,
        revalidate_on_execute: bool = True,
        action_timeout_seconds: float | None = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self._handlers = handler_registry
        self._clock = clock or SystemClock()
        self._currencies = normalize_currencies(supported_currencies)
        self._revalidate = revalidate_on_execute
        self._timeout = action_timeout_seconds or None
        self._timer = timer

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def process_payload(self, payload: Mapping[str, Any]) -> ProcessorResult:
        """Worker-side entry point for a queued ``BatchDispatch`` payload."""
        return self.process_batch(BatchDispatch.from_payload(payload))

    def process_batch(self, unit: BatchDispatch) -> ProcessorResult:
        """Process every action of ``unit`` sequentially.

        Raises:
            ScheduledActionNotFoundError: If none of the batch's actions exist.
        """
        batch_start = self._timer()
        with LogContext.bind(batch_id=unit.batch_id):
            logger.info(
                "batch_processing_started",
                extra={
                    "batch_number": unit.batch_number,
                    "action_count": len(unit.action_ids),
                    "trigger_date": unit.trigger_date.isoformat(),
                },
            )

            session = self._session_factory()
            try:
                store = ScheduledActionStore(session)
                loaded = store.load_actions_with_context(unit.action_ids)

                results: list[ActionExecutionResult] = []
                for action, group in loaded:
                    results.append(self._process_action(store, unit, action, group))
                    session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

            succeeded = sum(1 for r in results if r.success)
            result = ProcessorResult(
                batch_id=unit.batch_id,
                batch_number=unit.batch_number,
                total_processed=len(results),
                succeeded=succeeded,
                failed=len(results) - succeeded,
                total_duration_ms=_elapsed_ms(batch_start, self._timer()),
                results=tuple(results),
            )

            logger.info(
                "batch_processing_completed",
                extra={
                    "batch_number": unit.batch_number,
                    "total_processed": result.total_processed,
                    "succeeded": result.succeeded,
                    "failed": result.failed,
                    "duration_ms": result.total_duration_ms,
                },
            )
            return result

    # -------------------------------------------------------------------------
    # Per action
    # -------------------------------------------------------------------------

    def _process_action(
        self,
        store: ScheduledActionStore,
        unit: BatchDispatch,
        action: ScheduledAction,
        group: GroupContext | None,
    ) -> ActionExecutionResult:
        on_date = unit.trigger_date
        with LogContext.bind(action_id=action.action_id):
            hist_id = history_id(action.action_id, on_date)
            if store.find_successful_history_ids([hist_id]):
                logger.info("action_already_executed", extra={"history_id": hist_id})
                return ActionExecutionResult(
                    action_id=action.action_id,
                    success=True,
                    execution_duration_ms=0,
                    result_data={"message": "Already executed"},
                )

            start = self._timer()
            try:
                outcome = self._build(store, action, group, on_date)
                self._check_deadline(action, start)

                executed_at = self._clock.now()
                duration_ms = _elapsed_ms(start, self._timer())
                statements = (
                    *outcome.statements,
                    store.action_bookkeeping_statement(
                        action.action_id,
                        next_execution_date(action.start_date, action.frequency, on_date),
                        executed_at,
                    ),
                    store.history_statement(
                        action,
                        on_date,
                        execution_status=ExecutionStatus.SUCCESS,
                        workflow_status=WorkflowStatus.COMPLETE,
                        executed_at=executed_at,
                        batch_id=unit.batch_id,
                        result_data=outcome.result_data,
                        duration_ms=duration_ms,
                    ),
                )
                store.execute_atomically(action.action_id, statements)
            except Exception as exc:
                return self._record_failure(store, unit, action, exc, start)

            logger.info(
                "action_executed",
                extra={
                    "action_type": action.action_type.value,
                    "ledger_statements": len(outcome.statements),
                    "ledger_object_existed": outcome.already_exists,
                    "duration_ms": duration_ms,
                },
            )
            return ActionExecutionResult(
                action_id=action.action_id,
                success=True,
                execution_duration_ms=duration_ms,
                result_data=dict(outcome.result_data),
            )

    def _build(
        self,
        store: ScheduledActionStore,
        action: ScheduledAction,
        group: GroupContext | None,
        on_date: date,
    ) -> ActionOutcome:
        if group is None:
            raise MissingGroupContextError(action.action_id, action.user_id)

        if self._revalidate:
            problem = validate_action(
                action.action_type,
                action.action_data,
                group.member_ids,
                group.budget_ids,
                self._currencies,
            )
            if problem:
                raise ActionValidationError(action.action_id, problem)

        try:
            data = parse_action_data(action.action_type, action.action_data)
        except ValueError as exc:
            raise ActionValidationError(action.action_id, str(exc)) from exc

        handler = self._handlers.get(action.action_type)
        request = ActionRequest(
            action=action,
            data=data,
            group=group,
            on_date=on_date,
            executed_at=self._clock.now(),
        )
        return handler.build(request, store)

    def _check_deadline(self, action: ScheduledAction, start: float) -> None:
        if self._timeout is None:
            return
        elapsed = self._timer() - start
        if elapsed > self._timeout:
            raise ActionTimeoutError(action.action_id, self._timeout, elapsed)

    def _record_failure(
        self,
        store: ScheduledActionStore,
        unit: BatchDispatch,
        action: ScheduledAction,
        exc: Exception,
        start: float,
    ) -> ActionExecutionResult:
        duration_ms = _elapsed_ms(start, self._timer())
        error_code = getattr(exc, "code", "UNHANDLED_EXCEPTION")
        logger.warning(
            "action_execution_failed",
            exc_info=True,
            extra={
                "action_type": action.action_type.value,
                "error_code": error_code,
                "duration_ms": duration_ms,
            },
        )

        try:
            with store.session.begin_nested():
                store.mark_history_failed(
                    [action],
                    unit.batch_id,
                    unit.trigger_date,
                    self._clock.now(),
                    str(exc),
                    workflow_status=WorkflowStatus.COMPLETE,
                    duration_ms=duration_ms,
                )
        except SQLAlchemyError:
            logger.exception("action_failure_not_recorded")

        return ActionExecutionResult(
            action_id=action.action_id,
            success=False,
            execution_duration_ms=duration_ms,
            error_message=str(exc),
            error_code=error_code,
        )
