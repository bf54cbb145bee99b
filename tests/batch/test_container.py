"""
Tests for splitledger_batch.orchestrator -- SchedulingContainer DI wiring.

Runs against a file-backed SQLite database so the thread-pool dispatcher
gets one connection per worker.
"""

from dataclasses import replace

import pytest
from sqlalchemy import func, select

from splitledger_batch.domain.types import ActionResultStatus, ActionType
from splitledger_batch.handlers import HandlerRegistry
from splitledger_batch.orchestrator import SchedulingContainer
from splitledger_batch.services.dispatch import (
    CallbackDispatcher,
    InlineDispatcher,
    ThreadPoolDispatcher,
)
from splitledger_batch.services.orchestrator import ScheduledActionOrchestrator
from splitledger_batch.services.processor import ScheduledActionProcessor
from splitledger_config import get_active_config
from splitledger_kernel.db.base import Base
from splitledger_kernel.db.engine import create_sqlite_engine
from splitledger_kernel.models import BudgetTotal
from tests.conftest import TRIGGER_DATE, budget_payload


@pytest.fixture
def engine(tmp_path):
    eng = create_sqlite_engine(f"sqlite:///{tmp_path / 'splitledger.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


def _with_mode(config, mode):
    scheduler = config.scheduler
    return replace(config, scheduler=replace(scheduler, dispatch=replace(scheduler.dispatch, mode=mode)))


@pytest.fixture
def config():
    return get_active_config(environ={})


class TestFactory:
    def test_from_config(self, config, session_factory, clock):
        container = SchedulingContainer.from_config(config, session_factory, clock=clock)

        assert container.clock is clock
        assert container.session_factory is session_factory
        assert container.dispatch_mode == "inline"
        assert container.handler_registry.list_types() == ("add_budget", "add_expense")
        assert isinstance(container.create_processor(), ScheduledActionProcessor)
        assert isinstance(container.create_dispatcher(), InlineDispatcher)
        assert isinstance(container.create_orchestrator(), ScheduledActionOrchestrator)

    def test_thread_pool_mode(self, config, session_factory):
        container = SchedulingContainer.from_config(_with_mode(config, "thread_pool"), session_factory)
        dispatcher = container.create_dispatcher()
        assert isinstance(dispatcher, ThreadPoolDispatcher)
        dispatcher.close()

    def test_publish_overrides_mode(self, config, session_factory):
        container = SchedulingContainer.from_config(config, session_factory, publish=lambda payload: None)
        assert isinstance(container.create_dispatcher(), CallbackDispatcher)
        assert container.dispatch_mode == "callback"

    def test_unknown_mode(self, session_factory):
        container = SchedulingContainer(session_factory, dispatch_mode="carrier_pigeon")
        with pytest.raises(ValueError, match="carrier_pigeon"):
            container.create_dispatcher()

    def test_custom_registry(self, config, session_factory):
        registry = HandlerRegistry()
        container = SchedulingContainer.from_config(config, session_factory, handler_registry=registry)
        assert container.handler_registry is registry


class TestRuns:
    @pytest.mark.parametrize("mode", ["inline", "thread_pool"])
    def test_run_orchestrator(self, mode, config, session_factory, clock, make_action):
        for _ in range(5):
            make_action(ActionType.ADD_BUDGET, budget_payload(amount=5))
        container = SchedulingContainer.from_config(_with_mode(config, mode), session_factory, clock=clock)

        summary = container.run_orchestrator(TRIGGER_DATE)

        assert summary.succeeded == 5
        assert summary.started == 5
        with session_factory() as session:
            total = session.execute(select(BudgetTotal.total)).scalar_one()
            assert total == 25
            assert session.execute(select(func.count()).select_from(BudgetTotal)).scalar_one() == 1

    def test_thread_pool_with_concurrent_batches(self, config, session_factory, clock, make_action):
        for _ in range(40):
            make_action(ActionType.ADD_BUDGET, budget_payload(amount=1))
        config = _with_mode(config, "thread_pool")
        config = replace(config, scheduler=replace(config.scheduler, batch_size=5))
        container = SchedulingContainer.from_config(config, session_factory, clock=clock)

        summary = container.run_orchestrator(TRIGGER_DATE)

        assert summary.started == 40
        assert summary.succeeded == 40
        assert summary.failed == 0
        assert len({r.batch_id for r in summary.results}) == 8
        with session_factory() as session:
            assert session.execute(select(BudgetTotal.total)).scalar_one() == 40

    def test_trigger_immediate_run_defaults_to_clock(self, config, session_factory, clock, make_action):
        action = make_action(ActionType.ADD_BUDGET, budget_payload())
        container = SchedulingContainer.from_config(config, session_factory, clock=clock)

        summary = container.trigger_immediate_run(action.action_id)

        assert summary.trigger_date == clock.now().date()
        assert summary.results[0].status is ActionResultStatus.COMPLETED
        assert summary.results[0].batch_id == f"immediate-2024-03-15T06-00-00-{action.action_id}"
