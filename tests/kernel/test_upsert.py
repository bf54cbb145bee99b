"""
Tests for splitledger_kernel.db.upsert and the SQLite engine setup.

Validates that running aggregates are incremented inside the database,
that guarded replace-upserts leave protected rows untouched, and that
SQLite SAVEPOINTs and foreign keys behave as they do on PostgreSQL.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import Table, func, insert, select
from sqlalchemy.exc import IntegrityError

from splitledger_batch.models.scheduled import ExecutionHistoryModel
from splitledger_kernel.db.engine import session_scope
from splitledger_kernel.db.upsert import increment_upsert, replace_upsert
from splitledger_kernel.models import BudgetEntry, BudgetTotal
from tests.conftest import ALICE, GROCERIES, GROUP_ID

T0 = datetime(2024, 3, 15, 6, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 3, 16, 6, 0, tzinfo=timezone.utc)


def _add_to_total(amount, at=T0, currency="USD"):
    return increment_upsert(
        "sqlite",
        BudgetTotal.__table__,
        {"group_id": GROUP_ID, "budget_id": GROCERIES, "currency": currency,
         "total": Decimal(amount), "updated_at": at},
        key_columns=["group_id", "budget_id", "currency"],
        increment_column="total",
        touch_columns=["updated_at"],
    )


def _total(session_factory, currency="USD"):
    with session_factory() as session:
        return session.get(BudgetTotal, (GROUP_ID, GROCERIES, currency))


# =============================================================================
# increment_upsert
# =============================================================================


class TestIncrementUpsert:
    def test_insert_then_increment(self, session_factory, seeded_group):
        with session_scope(session_factory) as session:
            session.execute(_add_to_total("200"))
        with session_scope(session_factory) as session:
            session.execute(_add_to_total("-75", at=T1))

        row = _total(session_factory)
        assert row.total == Decimal("125")
        assert row.updated_at.replace(tzinfo=None) == T1.replace(tzinfo=None)

    def test_keys_are_independent(self, session_factory, seeded_group):
        with session_scope(session_factory) as session:
            session.execute(_add_to_total("10"))
            session.execute(_add_to_total("4", currency="EUR"))
            session.execute(_add_to_total("5"))

        assert _total(session_factory).total == Decimal("15")
        assert _total(session_factory, "EUR").total == Decimal("4")


# =============================================================================
# replace_upsert
# =============================================================================


def _history_row(status, batch_id):
    return {
        "id": "hist_act-001-2024-03-15",
        "scheduled_action_id": "act-001",
        "user_id": ALICE,
        "action_type": "add_expense",
        "execution_date": T0.date(),
        "executed_at": T0,
        "execution_status": status,
        "workflow_status": "COMPLETE",
        "batch_id": batch_id,
    }


class TestReplaceUpsert:
    def _write(self, session_factory, status, batch_id, guarded):
        table: Table = ExecutionHistoryModel.__table__
        where = table.c.execution_status != "SUCCESS" if guarded else None
        with session_scope(session_factory) as session:
            session.execute(
                replace_upsert(
                    "sqlite", table, _history_row(status, batch_id),
                    key_columns=["id"], where=where,
                )
            )

    def _stored(self, session_factory):
        with session_factory() as session:
            return session.get(ExecutionHistoryModel, "hist_act-001-2024-03-15")

    def test_overwrites_non_key_columns(self, session_factory, make_action):
        make_action()
        self._write(session_factory, "STARTED", "batch-a", guarded=False)
        self._write(session_factory, "FAILED", "batch-b", guarded=False)

        stored = self._stored(session_factory)
        assert stored.execution_status == "FAILED"
        assert stored.batch_id == "batch-b"

    def test_where_guard_protects_existing_row(self, session_factory, make_action):
        make_action()
        self._write(session_factory, "SUCCESS", "batch-a", guarded=True)
        self._write(session_factory, "STARTED", "batch-b", guarded=True)

        stored = self._stored(session_factory)
        assert stored.execution_status == "SUCCESS"
        assert stored.batch_id == "batch-a"


def test_unsupported_dialect():
    with pytest.raises(ValueError, match="mysql"):
        increment_upsert(
            "mysql", BudgetTotal.__table__, {"total": Decimal(1)},
            key_columns=["group_id"], increment_column="total",
        )


# =============================================================================
# SQLite engine behaviour
# =============================================================================


class TestSqliteEngine:
    def test_foreign_keys_enforced(self, session_factory, seeded_group):
        with pytest.raises(IntegrityError):
            with session_scope(session_factory) as session:
                session.execute(
                    insert(BudgetEntry.__table__).values(
                        budget_entry_id="bg_x", budget_id="budget-ghost", group_id=GROUP_ID,
                        description="x", amount=Decimal(1), currency="USD", added_at=T0,
                    )
                )

    def test_savepoint_rollback_keeps_outer_work(self, session_factory, seeded_group):
        with session_scope(session_factory) as session:
            session.execute(_add_to_total("10"))
            with pytest.raises(IntegrityError):
                with session.begin_nested():
                    session.execute(_add_to_total("5"))
                    session.execute(
                        insert(BudgetEntry.__table__).values(
                            budget_entry_id="bg_x", budget_id="budget-ghost", group_id=GROUP_ID,
                            description="x", amount=Decimal(5), currency="USD", added_at=T0,
                        )
                    )

        assert _total(session_factory).total == Decimal("10")
        with session_factory() as session:
            assert session.execute(select(func.count()).select_from(BudgetEntry)).scalar_one() == 0
