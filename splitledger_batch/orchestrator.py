"""
SchedulingContainer -- DI container for the recurring-action scheduler.

Contract:
    Wires the handler registry, ScheduledActionProcessor, a batch
    dispatcher and ScheduledActionOrchestrator from one settings object.
    Single place where all scheduler dependencies are composed.

Architecture: splitledger_batch (top-level).  This is the canonical entry
    point for running a scheduling cycle or an immediate run.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session, sessionmaker

from splitledger_batch.domain.types import OrchestratorResult
from splitledger_batch.handlers import HandlerRegistry, default_handler_registry
from splitledger_batch.services.dispatch import (
    BatchDispatcher,
    CallbackDispatcher,
    InlineDispatcher,
    ThreadPoolDispatcher,
)
from splitledger_batch.services.orchestrator import (
    DEFAULT_BATCH_SIZE,
    ScheduledActionOrchestrator,
)
from splitledger_batch.services.processor import ScheduledActionProcessor
from splitledger_kernel.domain.clock import Clock, SystemClock
from splitledger_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from splitledger_config.schema import SplitLedgerConfig

logger = get_logger("batch.container")


class SchedulingContainer:
    """DI container for the scheduler.

    Contract:
        - ``from_config()`` creates a container from runtime settings.
        - ``create_processor()`` returns the consumer for dispatched batches.
        - ``create_dispatcher()`` picks the dispatcher for the configured
          mode; a ``publish`` callable overrides the mode with queue
          hand-off.
        - ``run_orchestrator()`` runs one daily cycle.
        - ``trigger_immediate_run()`` runs one action now.

    Non-goals:
        - Does NOT own the engine.  Callers create and dispose it.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        handler_registry: HandlerRegistry | None = None,
        clock: Clock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        action_timeout_seconds: float | None = None,
        revalidate_on_execute: bool = True,
        supported_currencies: tuple[str, ...] | None = None,
        dispatch_mode: str = "inline",
        max_workers: int = 4,
        drain_timeout_seconds: float | None = None,
        publish: Callable[[Mapping[str, Any]], None] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._supported_currencies = supported_currencies
        self._handlers = (
            handler_registry
            if handler_registry is not None
            else default_handler_registry(supported_currencies)
        )
        self._clock = clock or SystemClock()
        self._batch_size = batch_size
        self._action_timeout = action_timeout_seconds
        self._revalidate = revalidate_on_execute
        self._dispatch_mode = dispatch_mode
        self._max_workers = max_workers
        self._drain_timeout = drain_timeout_seconds
        self._publish = publish

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: SplitLedgerConfig,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        publish: Callable[[Mapping[str, Any]], None] | None = None,
        handler_registry: HandlerRegistry | None = None,
    ) -> SchedulingContainer:
        """Create a fully wired container from runtime settings.

        Args:
            config: Settings from ``splitledger_config.get_active_config()``.
            session_factory: Factory every batch opens its session from.
            clock: Optional clock for deterministic testing.
            publish: Optional queue publisher; enables fire-and-forget
                dispatch of batch payloads.
            handler_registry: Optional pre-configured registry.
        """
        scheduler = config.scheduler
        return cls(
            session_factory=session_factory,
            handler_registry=handler_registry,
            clock=clock,
            batch_size=scheduler.batch_size,
            action_timeout_seconds=scheduler.action_timeout_seconds,
            revalidate_on_execute=scheduler.revalidate_on_execute,
            supported_currencies=config.ledger.supported_currencies,
            dispatch_mode=scheduler.dispatch.mode,
            max_workers=scheduler.dispatch.max_workers,
            drain_timeout_seconds=scheduler.dispatch.drain_timeout_seconds,
            publish=publish,
        )

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def create_processor(self) -> ScheduledActionProcessor:
        return ScheduledActionProcessor(
            session_factory=self._session_factory,
            handler_registry=self._handlers,
            clock=self._clock,
            supported_currencies=self._supported_currencies,
            revalidate_on_execute=self._revalidate,
            action_timeout_seconds=self._action_timeout,
        )

    def create_dispatcher(self) -> BatchDispatcher:
        """Dispatcher for the configured mode.

        Raises:
            ValueError: For an unknown dispatch mode.
        """
        if self._publish is not None:
            return CallbackDispatcher(self._publish)
        match self._dispatch_mode:
            case "inline":
                return InlineDispatcher(self.create_processor())
            case "thread_pool":
                return ThreadPoolDispatcher(self.create_processor(), self._max_workers)
            case other:
                raise ValueError(f"Unknown dispatch mode: {other}")

    def create_orchestrator(
        self,
        dispatcher: BatchDispatcher | None = None,
    ) -> ScheduledActionOrchestrator:
        return ScheduledActionOrchestrator(
            session_factory=self._session_factory,
            dispatcher=dispatcher or self.create_dispatcher(),
            clock=self._clock,
            batch_size=self._batch_size,
            drain_timeout_seconds=self._drain_timeout,
        )

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    def run_orchestrator(self, trigger_date: date | datetime | str) -> OrchestratorResult:
        """Run one scheduling cycle and release the dispatcher."""
        dispatcher = self.create_dispatcher()
        try:
            return self.create_orchestrator(dispatcher).run(trigger_date)
        finally:
            self._close(dispatcher)

    def trigger_immediate_run(
        self,
        action_id: str,
        trigger_date: date | datetime | str | None = None,
    ) -> OrchestratorResult:
        """Run one action now, independent of its schedule.

        Raises:
            ScheduledActionNotFoundError: If the action does not exist.
        """
        trigger = trigger_date if trigger_date is not None else self._clock.now()
        logger.info("immediate_run_requested", extra={"action_id": action_id})
        dispatcher = self.create_dispatcher()
        try:
            return self.create_orchestrator(dispatcher).run_action(action_id, trigger)
        finally:
            self._close(dispatcher)

    @staticmethod
    def _close(dispatcher: BatchDispatcher) -> None:
        if isinstance(dispatcher, ThreadPoolDispatcher):
            dispatcher.close(wait_for_running=False)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def handler_registry(self) -> HandlerRegistry:
        return self._handlers

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    @property
    def dispatch_mode(self) -> str:
        return "callback" if self._publish is not None else self._dispatch_mode
