"""
ScheduledActionOrchestrator -- producer side of the scheduler.

Contract:
    ``run(trigger_date)`` is invoked once per cycle by an external trigger
    with at-least-once delivery.  It:

    1. discovers active actions due on or before the trigger's UTC date,
    2. drops actions that already have a success history row for that date,
       and (redundantly) actions whose ``hist_{actionId}-{date}`` row is
       success,
    3. partitions the rest into batches of ``batch_size``,
    4. per batch: upserts ``started`` history rows and commits, then
       dispatches; if either step fails every action of that batch is
       marked failed and the next batch proceeds,
    5. drains the dispatcher and aggregates one summary.

    ``run`` never raises for per-action or per-batch failures.  Running it
    twice for the same date converges on the same ledger state.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from uuid import uuid4

from sqlalchemy.orm import Session, sessionmaker

from splitledger_batch.domain.identifiers import batch_id as make_batch_id
from splitledger_batch.domain.identifiers import history_id, immediate_batch_id
from splitledger_batch.domain.schedule import calendar_date
from splitledger_batch.domain.types import (
    ActionResultStatus,
    BatchDispatch,
    OrchestratorActionResult,
    OrchestratorResult,
    ScheduledAction,
    WorkflowStatus,
)
from splitledger_batch.services.dispatch import BatchDispatcher, BatchState, DispatchReport
from splitledger_batch.services.store import ScheduledActionStore
from splitledger_kernel.db.engine import session_scope
from splitledger_kernel.domain.clock import Clock, SystemClock
from splitledger_kernel.exceptions import BatchDispatchError, ScheduledActionNotFoundError
from splitledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.orchestrator")

DEFAULT_BATCH_SIZE = 10


def partition(items: Sequence[ScheduledAction], size: int) -> list[list[ScheduledAction]]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError(f"batch size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class ScheduledActionOrchestrator:
    """Discovers, deduplicates, batches and dispatches due actions."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        dispatcher: BatchDispatcher,
        clock: Clock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        drain_timeout_seconds: float | None = None,
    ):
        if batch_size < 1:
            raise ValueError(f"batch size must be positive, got {batch_size}")
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()
        self._batch_size = batch_size
        self._drain_timeout = drain_timeout_seconds

    # -------------------------------------------------------------------------
    # Daily cycle
    # -------------------------------------------------------------------------

    def run(self, trigger_date: date | datetime | str) -> OrchestratorResult:
        """Run one scheduling cycle for the trigger's calendar date."""
        on_date = calendar_date(trigger_date)
        with LogContext.bind(correlation_id=str(uuid4()), trigger_date=on_date.isoformat()):
            pending, already_processed = self._discover(on_date)

            logger.info(
                "orchestrator_run_started",
                extra={
                    "due_actions": len(pending) + len(already_processed),
                    "already_processed": len(already_processed),
                    "to_process": len(pending),
                    "batch_size": self._batch_size,
                },
            )

            results: list[OrchestratorActionResult] = [
                OrchestratorActionResult(a.action_id, ActionResultStatus.ALREADY_PROCESSED)
                for a in already_processed
            ]
            chunks = partition(pending, self._batch_size)
            units = []
            for number, chunk in enumerate(chunks, start=1):
                unit = BatchDispatch(
                    batch_id=make_batch_id(on_date, number, self._clock.now()),
                    trigger_date=on_date,
                    action_ids=tuple(a.action_id for a in chunk),
                    batch_number=number,
                )
                units.append((unit, chunk))

            summary = self._dispatch_and_collect(on_date, units, results)

            logger.info(
                "orchestrator_run_completed",
                extra={
                    "total_processed": summary.total_processed,
                    "started": summary.started,
                    "succeeded": summary.succeeded,
                    "failed": summary.failed,
                    "still_running": summary.still_running,
                },
            )
            return summary

    def _discover(self, on_date: date) -> tuple[list[ScheduledAction], list[ScheduledAction]]:
        """Due actions split into (to process, already processed)."""
        with session_scope(self._session_factory) as session:
            store = ScheduledActionStore(session)
            candidates = store.find_pending_actions(on_date)
            ids = [a.action_id for a in candidates]

            done = store.find_successful_action_ids(ids, on_date)
            done_by_history = store.find_successful_history_ids(
                history_id(action_id, on_date) for action_id in ids
            )

        pending: list[ScheduledAction] = []
        already: list[ScheduledAction] = []
        for action in candidates:
            if action.action_id in done or history_id(action.action_id, on_date) in done_by_history:
                already.append(action)
            else:
                pending.append(action)
        return pending, already

    # -------------------------------------------------------------------------
    # Single action ("run now")
    # -------------------------------------------------------------------------

    def run_action(self, action_id: str, trigger: date | datetime | str) -> OrchestratorResult:
        """Dispatch one action as its own batch outside the daily cycle.

        Skips discovery (the action need not be due) but keeps the
        already-processed check for the trigger's date.

        Raises:
            ScheduledActionNotFoundError: If the action does not exist.
        """
        on_date = calendar_date(trigger)
        with LogContext.bind(correlation_id=str(uuid4()), trigger_date=on_date.isoformat()):
            with session_scope(self._session_factory) as session:
                store = ScheduledActionStore(session)
                action = store.get_action(action_id)
                if action is None:
                    raise ScheduledActionNotFoundError([action_id])
                done = store.find_successful_history_ids([history_id(action_id, on_date)])

            if done:
                logger.info("immediate_run_already_processed", extra={"action_id": action_id})
                results = [OrchestratorActionResult(action_id, ActionResultStatus.ALREADY_PROCESSED)]
                return self._summarize(on_date, results, started=0)

            stamp = trigger if isinstance(trigger, (date, datetime)) else on_date
            unit = BatchDispatch(
                batch_id=immediate_batch_id(stamp, action_id),
                trigger_date=on_date,
                action_ids=(action_id,),
                batch_number=1,
            )
            return self._dispatch_and_collect(on_date, [(unit, [action])], [])

    # -------------------------------------------------------------------------
    # Dispatch and aggregation
    # -------------------------------------------------------------------------

    def _dispatch_and_collect(
        self,
        on_date: date,
        units: list[tuple[BatchDispatch, list[ScheduledAction]]],
        results: list[OrchestratorActionResult],
    ) -> OrchestratorResult:
        chunks_by_batch: dict[str, list[ScheduledAction]] = {}
        started = 0
        for unit, chunk in units:
            try:
                self._start_batch(unit, chunk)
                self._dispatcher.dispatch(unit)
            except Exception as exc:
                error = BatchDispatchError(unit.batch_id, unit.batch_number, str(exc))
                logger.exception(
                    "batch_dispatch_failed",
                    extra={"batch_id": unit.batch_id, "batch_number": unit.batch_number},
                )
                self._fail_batch(unit, chunk, str(error))
                results.extend(self._failed_results(unit, chunk, str(error)))
                continue
            chunks_by_batch[unit.batch_id] = chunk
            started += len(chunk)
            logger.info(
                "batch_dispatched",
                extra={
                    "batch_id": unit.batch_id,
                    "batch_number": unit.batch_number,
                    "action_count": len(chunk),
                },
            )

        if chunks_by_batch:
            for report in self._dispatcher.drain(self._drain_timeout):
                chunk = chunks_by_batch.get(report.unit.batch_id)
                if chunk is None:
                    continue
                results.extend(self._report_results(report, chunk))

        return self._summarize(on_date, results, started)

    def _start_batch(self, unit: BatchDispatch, chunk: list[ScheduledAction]) -> None:
        with session_scope(self._session_factory) as session:
            ScheduledActionStore(session).upsert_started_history(
                chunk, unit.batch_id, unit.trigger_date, self._clock.now(),
            )

    def _fail_batch(self, unit: BatchDispatch, chunk: list[ScheduledAction], error: str) -> None:
        try:
            with session_scope(self._session_factory) as session:
                ScheduledActionStore(session).mark_history_failed(
                    chunk,
                    unit.batch_id,
                    unit.trigger_date,
                    self._clock.now(),
                    error,
                    workflow_status=WorkflowStatus.TERMINATED,
                )
        except Exception:
            # The started rows (if any) stay; the next cycle retries the actions.
            logger.exception("batch_failure_not_recorded", extra={"batch_id": unit.batch_id})

    def _committed_action_ids(self, unit: BatchDispatch, chunk: list[ScheduledAction]) -> set[str]:
        """Actions of ``unit`` whose history row already records success."""
        by_history = {history_id(a.action_id, unit.trigger_date): a.action_id for a in chunk}
        try:
            with session_scope(self._session_factory) as session:
                done = ScheduledActionStore(session).find_successful_history_ids(by_history)
        except Exception:
            logger.exception("batch_success_lookup_failed", extra={"batch_id": unit.batch_id})
            return set()
        return {by_history[h] for h in done}

    def _failed_results(
        self,
        unit: BatchDispatch,
        chunk: list[ScheduledAction],
        error: str,
    ) -> list[OrchestratorActionResult]:
        return [
            OrchestratorActionResult(
                a.action_id,
                ActionResultStatus.FAILED,
                batch_id=unit.batch_id,
                batch_number=unit.batch_number,
                error=error,
            )
            for a in chunk
        ]

    def _report_results(
        self,
        report: DispatchReport,
        chunk: list[ScheduledAction],
    ) -> list[OrchestratorActionResult]:
        unit = report.unit
        match report.state:
            case BatchState.COMPLETED:
                by_id = {r.action_id: r for r in report.result.results}
                results = []
                for action in chunk:
                    outcome = by_id.get(action.action_id)
                    if outcome is None:
                        status, error = ActionResultStatus.FAILED, "Action not found when processed"
                    elif outcome.success:
                        status, error = ActionResultStatus.COMPLETED, None
                    else:
                        status, error = ActionResultStatus.FAILED, outcome.error_message
                    results.append(
                        OrchestratorActionResult(
                            action.action_id,
                            status,
                            batch_id=unit.batch_id,
                            batch_number=unit.batch_number,
                            error=error,
                        )
                    )
                return results
            case BatchState.FAILED:
                error = str(BatchDispatchError(unit.batch_id, unit.batch_number, report.error or ""))
                self._fail_batch(unit, chunk, error)
                # Actions committed before the crash keep their success rows
                committed = self._committed_action_ids(unit, chunk)
                return [
                    OrchestratorActionResult(
                        a.action_id,
                        ActionResultStatus.COMPLETED,
                        batch_id=unit.batch_id,
                        batch_number=unit.batch_number,
                    )
                    if a.action_id in committed
                    else result
                    for a, result in zip(chunk, self._failed_results(unit, chunk, error))
                ]
            case BatchState.RUNNING | BatchState.HANDED_OFF:
                status = (
                    ActionResultStatus.STILL_RUNNING
                    if report.state is BatchState.RUNNING
                    else ActionResultStatus.STARTED
                )
                return [
                    OrchestratorActionResult(
                        a.action_id,
                        status,
                        batch_id=unit.batch_id,
                        batch_number=unit.batch_number,
                    )
                    for a in chunk
                ]

    def _summarize(
        self,
        on_date: date,
        results: list[OrchestratorActionResult],
        started: int,
    ) -> OrchestratorResult:
        def count(*statuses: ActionResultStatus) -> int:
            return sum(1 for r in results if r.status in statuses)

        already = count(ActionResultStatus.ALREADY_PROCESSED)
        return OrchestratorResult(
            trigger_date=on_date,
            total_processed=len(results),
            already_processed=already,
            started=started,
            succeeded=count(ActionResultStatus.COMPLETED),
            failed=count(ActionResultStatus.FAILED),
            still_running=count(ActionResultStatus.STILL_RUNNING),
            results=tuple(results),
        )
