"""
Pytest fixtures for the splitledger test suite.

Provides:
- In-memory SQLite engine (StaticPool, SAVEPOINT support) per test
- Session factory and a seeded group (three members, two budgets)
- Scheduled action factory
- Deterministic clock
- Structured log capture

Sessions opened by tests must be short-lived (``with session_factory() as s``)
because every session shares the single in-memory connection.
"""

import json
import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from io import StringIO
from typing import Any

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

import splitledger_batch.models  # noqa: F401
import splitledger_kernel.models  # noqa: F401
from splitledger_batch.domain.types import ActionFrequency, ActionType, ScheduledAction
from splitledger_batch.models.scheduled import ScheduledActionModel
from splitledger_kernel.db.base import Base
from splitledger_kernel.db.engine import create_sqlite_engine, session_scope
from splitledger_kernel.domain.clock import DeterministicClock
from splitledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from splitledger_kernel.models import Group, GroupBudget, Member

GROUP_ID = "grp-household"
ALICE, BOB, CAROL = "user-alice", "user-bob", "user-carol"
LONER = "user-dave"
GROCERIES, TRAVEL = "budget-groceries", "budget-travel"

TRIGGER_DATE = date(2024, 3, 15)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture splitledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.run(...)
            logs = captured_logs()
            assert any(r["message"] == "orchestrator_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("splitledger")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine() -> Engine:
    eng = create_sqlite_engine()
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 3, 15, 6, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def seeded_group(session_factory) -> str:
    """A household of Alice, Bob and Carol with two budgets; Dave has no group."""
    with session_scope(session_factory) as session:
        session.add(Group(group_id=GROUP_ID, name="Household"))
        session.flush()
        session.add_all([
            Member(user_id=ALICE, group_id=GROUP_ID, display_name="Alice"),
            Member(user_id=BOB, group_id=GROUP_ID, display_name="Bob"),
            Member(user_id=CAROL, group_id=GROUP_ID, display_name="Carol"),
            Member(user_id=LONER, group_id=None, display_name="Dave"),
            GroupBudget(budget_id=GROCERIES, group_id=GROUP_ID, name="Groceries"),
            GroupBudget(budget_id=TRAVEL, group_id=GROUP_ID, name="Travel"),
        ])
    return GROUP_ID


def expense_payload(
    amount: Any = 90,
    description: str = "Rent",
    currency: str = "USD",
    paid_by: str = ALICE,
    shares: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "amount": amount,
        "description": description,
        "currency": currency,
        "paidByUserId": paid_by,
        "splitPctShares": shares if shares is not None else {ALICE: 50, BOB: 25, CAROL: 25},
    }


def budget_payload(
    amount: Any = 200,
    description: str = "Weekly groceries",
    budget_id: str = GROCERIES,
    currency: str = "USD",
    entry_type: str = "Credit",
) -> dict[str, Any]:
    return {
        "amount": amount,
        "description": description,
        "budgetId": budget_id,
        "currency": currency,
        "type": entry_type,
    }


@pytest.fixture
def make_action(session_factory, seeded_group) -> Callable[..., ScheduledAction]:
    """Factory that persists a scheduled action and returns its DTO."""
    counter = {"n": 0}

    def _make(
        action_type: ActionType = ActionType.ADD_EXPENSE,
        action_data: dict[str, Any] | None = None,
        frequency: ActionFrequency = ActionFrequency.MONTHLY,
        start_date: date = date(2024, 1, 15),
        next_execution_date: date = TRIGGER_DATE,
        user_id: str = ALICE,
        is_active: bool = True,
        action_id: str | None = None,
    ) -> ScheduledAction:
        counter["n"] += 1
        if action_data is None:
            action_data = (
                expense_payload() if action_type is ActionType.ADD_EXPENSE else budget_payload()
            )
        dto = ScheduledAction(
            action_id=action_id or f"act-{counter['n']:03d}",
            user_id=user_id,
            action_type=action_type,
            frequency=frequency,
            start_date=start_date,
            next_execution_date=next_execution_date,
            action_data=action_data,
            is_active=is_active,
        )
        with session_scope(session_factory) as session:
            session.add(ScheduledActionModel.from_dto(dto))
        return dto

    return _make
