"""
ScheduledActionStore -- persistence collaborator for the scheduler.

Contract:
    Reads due actions and history, writes history rows by deterministic id,
    loads actions with their group context, looks up ledger objects by
    deterministic id, and applies a list of statements as one atomic unit.

    Writes never overwrite a history row that already reached ``success``;
    the conflict branch of every history upsert is guarded on status.

Non-goals:
    - Does NOT call ``session.commit()``.  Callers own transaction
      boundaries; ``execute_atomically`` only opens a SAVEPOINT.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Executable

from splitledger_batch.domain.identifiers import history_id
from splitledger_batch.domain.types import (
    ExecutionHistory,
    ExecutionStatus,
    GroupContext,
    ScheduledAction,
    WorkflowStatus,
)
from splitledger_batch.models.scheduled import ExecutionHistoryModel, ScheduledActionModel
from splitledger_kernel.db.upsert import replace_upsert
from splitledger_kernel.exceptions import LedgerWriteError, ScheduledActionNotFoundError
from splitledger_kernel.logging_config import get_logger
from splitledger_kernel.models import BudgetEntry, GroupBudget, Member, Transaction

logger = get_logger("batch.store")

_HISTORY = ExecutionHistoryModel.__table__
_NOT_SUCCEEDED = _HISTORY.c.execution_status != ExecutionStatus.SUCCESS.value


class ScheduledActionStore:
    """Queries and statement builders over one session."""

    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    @property
    def dialect_name(self) -> str:
        return self._session.get_bind().dialect.name

    # -------------------------------------------------------------------------
    # Due actions and history lookups
    # -------------------------------------------------------------------------

    def find_pending_actions(self, on_date: date) -> list[ScheduledAction]:
        """Active actions whose next execution date is on or before ``on_date``."""
        rows = self._session.execute(
            select(ScheduledActionModel)
            .where(
                ScheduledActionModel.is_active.is_(True),
                ScheduledActionModel.next_execution_date <= on_date,
            )
            .order_by(ScheduledActionModel.next_execution_date, ScheduledActionModel.id)
        ).scalars()
        return [row.to_dto() for row in rows]

    def find_successful_action_ids(self, action_ids: Iterable[str], on_date: date) -> set[str]:
        """Ids among ``action_ids`` with a success history row for ``on_date``."""
        ids = list(action_ids)
        if not ids:
            return set()
        return set(
            self._session.execute(
                select(ExecutionHistoryModel.scheduled_action_id).where(
                    ExecutionHistoryModel.scheduled_action_id.in_(ids),
                    ExecutionHistoryModel.execution_date == on_date,
                    ExecutionHistoryModel.execution_status == ExecutionStatus.SUCCESS.value,
                )
            ).scalars()
        )

    def find_successful_history_ids(self, history_ids: Iterable[str]) -> set[str]:
        """History ids among ``history_ids`` whose row carries status success."""
        ids = list(history_ids)
        if not ids:
            return set()
        return set(
            self._session.execute(
                select(ExecutionHistoryModel.id).where(
                    ExecutionHistoryModel.id.in_(ids),
                    ExecutionHistoryModel.execution_status == ExecutionStatus.SUCCESS.value,
                )
            ).scalars()
        )

    def get_history(self, hist_id: str) -> ExecutionHistory | None:
        row = self._session.get(ExecutionHistoryModel, hist_id, populate_existing=True)
        return row.to_dto() if row is not None else None

    def get_action(self, action_id: str) -> ScheduledAction | None:
        row = self._session.get(ScheduledActionModel, action_id, populate_existing=True)
        return row.to_dto() if row is not None else None

    # -------------------------------------------------------------------------
    # History writes
    # -------------------------------------------------------------------------

    def history_statement(
        self,
        action: ScheduledAction,
        on_date: date,
        *,
        execution_status: ExecutionStatus,
        workflow_status: WorkflowStatus,
        executed_at: datetime,
        batch_id: str | None,
        result_data: Mapping[str, Any] | None = None,
        error_message: str | None = None,
        duration_ms: int | None = None,
    ) -> Executable:
        """Upsert of the ``hist_{actionId}-{date}`` row, skipped once it is success."""
        values = {
            "id": history_id(action.action_id, on_date),
            "scheduled_action_id": action.action_id,
            "user_id": action.user_id,
            "action_type": action.action_type.value,
            "execution_date": on_date,
            "executed_at": executed_at,
            "execution_status": execution_status.value,
            "workflow_status": workflow_status.value,
            "batch_id": batch_id,
            "action_data": dict(action.action_data),
            "result_data": dict(result_data) if result_data is not None else None,
            "error_message": error_message,
            "execution_duration_ms": duration_ms,
            "updated_at": executed_at,
        }
        return replace_upsert(
            self.dialect_name,
            _HISTORY,
            values,
            key_columns=["id"],
            where=_NOT_SUCCEEDED,
        )

    def upsert_started_history(
        self,
        actions: Sequence[ScheduledAction],
        batch_id: str,
        on_date: date,
        executed_at: datetime,
    ) -> None:
        """Write ``started`` / ``running`` rows for every action of a batch."""
        for action in actions:
            self._session.execute(
                self.history_statement(
                    action,
                    on_date,
                    execution_status=ExecutionStatus.STARTED,
                    workflow_status=WorkflowStatus.RUNNING,
                    executed_at=executed_at,
                    batch_id=batch_id,
                )
            )

    def mark_history_failed(
        self,
        actions: Sequence[ScheduledAction],
        batch_id: str | None,
        on_date: date,
        executed_at: datetime,
        error_message: str,
        workflow_status: WorkflowStatus = WorkflowStatus.TERMINATED,
        duration_ms: int | None = None,
    ) -> None:
        """Write ``failed`` rows carrying the causal error."""
        for action in actions:
            self._session.execute(
                self.history_statement(
                    action,
                    on_date,
                    execution_status=ExecutionStatus.FAILED,
                    workflow_status=workflow_status,
                    executed_at=executed_at,
                    batch_id=batch_id,
                    error_message=error_message,
                    duration_ms=duration_ms,
                )
            )

    def action_bookkeeping_statement(
        self,
        action_id: str,
        next_execution_date: date,
        executed_at: datetime,
    ) -> Executable:
        """Advance the schedule of an action after a successful run."""
        return (
            update(ScheduledActionModel.__table__)
            .where(ScheduledActionModel.__table__.c.id == action_id)
            .values(
                last_executed_at=executed_at,
                next_execution_date=next_execution_date,
                updated_at=executed_at,
            )
        )

    # -------------------------------------------------------------------------
    # Action loading
    # -------------------------------------------------------------------------

    def load_actions_with_context(
        self,
        action_ids: Sequence[str],
    ) -> list[tuple[ScheduledAction, GroupContext | None]]:
        """Load actions in ``action_ids`` order with their owner's group context.

        Ids that no longer exist are skipped.  The context is None when the
        owner has no group.

        Raises:
            ScheduledActionNotFoundError: If none of the ids exist.
        """
        rows = self._session.execute(
            select(ScheduledActionModel, Member.group_id)
            .outerjoin(Member, Member.user_id == ScheduledActionModel.user_id)
            .where(ScheduledActionModel.id.in_(list(action_ids)))
        ).all()
        if not rows:
            raise ScheduledActionNotFoundError(list(action_ids))

        by_id = {model.id: (model.to_dto(), group_id) for model, group_id in rows}
        contexts: dict[str, GroupContext] = {}
        loaded: list[tuple[ScheduledAction, GroupContext | None]] = []
        for action_id in action_ids:
            if action_id not in by_id:
                logger.warning("scheduled_action_missing", extra={"action_id": action_id})
                continue
            action, group_id = by_id[action_id]
            if group_id is None:
                loaded.append((action, None))
                continue
            if group_id not in contexts:
                contexts[group_id] = self.load_group_context(group_id)
            loaded.append((action, contexts[group_id]))
        return loaded

    def load_group_context(self, group_id: str) -> GroupContext:
        members = self._session.execute(
            select(Member.user_id, Member.display_name).where(Member.group_id == group_id)
        ).all()
        budget_ids = self._session.execute(
            select(GroupBudget.budget_id).where(GroupBudget.group_id == group_id)
        ).scalars()
        return GroupContext(
            group_id=group_id,
            member_ids=frozenset(m.user_id for m in members),
            budget_ids=frozenset(budget_ids),
            display_names={m.user_id: m.display_name for m in members},
        )

    # -------------------------------------------------------------------------
    # Ledger lookups by deterministic id
    # -------------------------------------------------------------------------

    def find_active_transaction(self, transaction_id: str) -> str | None:
        """The id if a non-deleted transaction with this id exists."""
        return self._session.execute(
            select(Transaction.transaction_id).where(
                Transaction.transaction_id == transaction_id,
                Transaction.deleted_at.is_(None),
            )
        ).scalar_one_or_none()

    def find_active_budget_entry(self, budget_entry_id: str) -> str | None:
        """The id if a non-deleted budget entry with this id exists."""
        return self._session.execute(
            select(BudgetEntry.budget_entry_id).where(
                BudgetEntry.budget_entry_id == budget_entry_id,
                BudgetEntry.deleted_at.is_(None),
            )
        ).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Atomic application
    # -------------------------------------------------------------------------

    def execute_atomically(self, action_id: str, statements: Sequence[Executable]) -> None:
        """Apply ``statements`` in one SAVEPOINT: all of them or none.

        Raises:
            LedgerWriteError: If any statement fails.  The SAVEPOINT is
                rolled back and no statement's effect remains.
        """
        try:
            with self._session.begin_nested():
                for statement in statements:
                    self._session.execute(statement)
        except SQLAlchemyError as exc:
            raise LedgerWriteError(action_id, len(statements), str(exc)) from exc
