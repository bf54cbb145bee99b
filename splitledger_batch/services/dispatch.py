"""
Batch dispatchers -- hand orchestrator batches to processor units.

Contract:
    ``dispatch(unit)`` accepts one batch; raising means the batch was NOT
    accepted (the orchestrator then marks it failed).  ``drain(timeout)``
    returns one ``DispatchReport`` per batch accepted since the last drain.

Implementations:
    InlineDispatcher      runs the processor synchronously in ``dispatch``.
    ThreadPoolDispatcher  runs each batch on a worker thread with its own
                          session; batches unfinished at the drain timeout
                          report RUNNING.
    CallbackDispatcher    publishes the JSON payload to an external work
                          queue (fire-and-forget); batches report HANDED_OFF
                          and the worker calls
                          ``ScheduledActionProcessor.process_payload``.

No in-memory state is shared between batches; each processor run opens
its own session from the factory.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from splitledger_batch.domain.types import BatchDispatch, ProcessorResult
from splitledger_batch.services.processor import ScheduledActionProcessor
from splitledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.dispatch")


class BatchState(str, Enum):
    """Where a dispatched batch stands when the orchestrator drains."""

    COMPLETED = "completed"  # Processor returned a result
    FAILED = "failed"  # Processor raised for the whole batch
    RUNNING = "running"  # Still executing at the drain timeout
    HANDED_OFF = "handed_off"  # Published to an external queue


@dataclass(frozen=True)
class DispatchReport:
    """Outcome of one dispatched batch."""

    unit: BatchDispatch
    state: BatchState
    result: ProcessorResult | None = None
    error: str | None = None


@runtime_checkable
class BatchDispatcher(Protocol):
    """Work-distribution collaborator for orchestrator batches."""

    def dispatch(self, unit: BatchDispatch) -> None: ...

    def drain(self, timeout: float | None = None) -> list[DispatchReport]: ...


class InlineDispatcher:
    """Process each batch synchronously inside ``dispatch``."""

    def __init__(self, processor: ScheduledActionProcessor):
        self._processor = processor
        self._reports: list[DispatchReport] = []

    def dispatch(self, unit: BatchDispatch) -> None:
        try:
            result = self._processor.process_batch(unit)
        except Exception as exc:
            logger.exception("inline_batch_failed", extra={"batch_number": unit.batch_number})
            self._reports.append(DispatchReport(unit, BatchState.FAILED, error=str(exc)))
            return
        self._reports.append(DispatchReport(unit, BatchState.COMPLETED, result=result))

    def drain(self, timeout: float | None = None) -> list[DispatchReport]:
        reports, self._reports = self._reports, []
        return reports


class ThreadPoolDispatcher:
    """Process batches concurrently on a thread pool."""

    def __init__(self, processor: ScheduledActionProcessor, max_workers: int = 4):
        self._processor = processor
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._pending: list[tuple[BatchDispatch, Future[ProcessorResult]]] = []

    def _run(self, unit: BatchDispatch, context: dict[str, str]) -> ProcessorResult:
        with LogContext.bind(**context):
            return self._processor.process_batch(unit)

    def dispatch(self, unit: BatchDispatch) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="splitledger-batch",
            )
        future = self._executor.submit(self._run, unit, LogContext.get_all())
        self._pending.append((unit, future))

    def drain(self, timeout: float | None = None) -> list[DispatchReport]:
        pending, self._pending = self._pending, []
        if pending:
            wait([future for _, future in pending], timeout=timeout)

        reports: list[DispatchReport] = []
        for unit, future in pending:
            if not future.done():
                logger.warning("batch_still_running", extra={"batch_id": unit.batch_id})
                reports.append(DispatchReport(unit, BatchState.RUNNING))
                continue
            exc = future.exception()
            if exc is not None:
                logger.error(
                    "threaded_batch_failed",
                    exc_info=exc,
                    extra={"batch_id": unit.batch_id},
                )
                reports.append(DispatchReport(unit, BatchState.FAILED, error=str(exc)))
            else:
                reports.append(DispatchReport(unit, BatchState.COMPLETED, result=future.result()))
        return reports

    def close(self, wait_for_running: bool = True) -> None:
        """Shut the pool down."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait_for_running)
            self._executor = None


class CallbackDispatcher:
    """Publish each batch payload to an external queue."""

    def __init__(self, publish: Callable[[Mapping[str, Any]], None]):
        self._publish = publish
        self._reports: list[DispatchReport] = []

    def dispatch(self, unit: BatchDispatch) -> None:
        self._publish(unit.to_payload())
        logger.info("batch_published", extra={"batch_id": unit.batch_id})
        self._reports.append(DispatchReport(unit, BatchState.HANDED_OFF))

    def drain(self, timeout: float | None = None) -> list[DispatchReport]:
        reports, self._reports = self._reports, []
        return reports
