"""
ORM models for scheduled actions and their execution history.

Contract:
    ScheduledActionModel and ExecutionHistoryModel persist the recurring
    action definitions and one history row per (action, calendar date).
    Each has ``to_dto()`` / ``from_dto()`` round-trip methods.

Invariants enforced:
    - ExecutionHistoryModel.id is the deterministic ``hist_{actionId}-{date}``
      id; repeated writes for the same (action, date) hit the same row.
    - UNIQUE (scheduled_action_id, execution_date): at most one history row,
      and therefore at most one success, per action and calendar date.
    - Inactive actions are never selected (index on is_active +
      next_execution_date backs the due-action query).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitledger_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from splitledger_batch.domain.types import ExecutionHistory, ScheduledAction


class ScheduledActionModel(TrackedBase):
    """A user-owned recurring expense or budget entry."""

    __tablename__ = "scheduled_actions"

    __table_args__ = (
        Index("ix_scheduled_actions_due", "is_active", "next_execution_date"),
        Index("ix_scheduled_actions_user_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(200), ForeignKey("members.user_id"), nullable=False,
    )
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    action_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    last_executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    next_execution_date: Mapped[date] = mapped_column(Date, nullable=False)

    history: Mapped[list[ExecutionHistoryModel]] = relationship(
        back_populates="scheduled_action",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dto(self) -> ScheduledAction:
        from splitledger_batch.domain.types import (
            ActionFrequency,
            ActionType,
            ScheduledAction,
        )

        return ScheduledAction(
            action_id=self.id,
            user_id=self.user_id,
            action_type=ActionType(self.action_type),
            frequency=ActionFrequency(self.frequency),
            start_date=self.start_date,
            next_execution_date=self.next_execution_date,
            action_data=dict(self.action_data or {}),
            is_active=self.is_active,
            last_executed_at=self.last_executed_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_dto(cls, dto: ScheduledAction) -> ScheduledActionModel:
        return cls(
            id=dto.action_id,
            user_id=dto.user_id,
            action_type=dto.action_type.value,
            frequency=dto.frequency.value,
            start_date=dto.start_date,
            is_active=dto.is_active,
            action_data=dict(dto.action_data),
            last_executed_at=dto.last_executed_at,
            next_execution_date=dto.next_execution_date,
        )


class ExecutionHistoryModel(TrackedBase):
    """One execution attempt record per (scheduled action, calendar date)."""

    __tablename__ = "scheduled_action_history"

    __table_args__ = (
        UniqueConstraint(
            "scheduled_action_id",
            "execution_date",
            name="uq_history_action_date",
        ),
        Index("ix_history_status_date", "execution_status", "execution_date"),
        Index("ix_history_batch_id", "batch_id"),
    )

    id: Mapped[str] = mapped_column(String(250), primary_key=True)
    scheduled_action_id: Mapped[str] = mapped_column(
        String(200),
        ForeignKey("scheduled_actions.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(200), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    execution_date: Mapped[date] = mapped_column(Date, nullable=False)
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    execution_status: Mapped[str] = mapped_column(String(20), nullable=False)
    workflow_status: Mapped[str] = mapped_column(String(20), nullable=False)
    batch_id: Mapped[str | None] = mapped_column(String(250), nullable=True)
    action_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    result_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    execution_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    scheduled_action: Mapped[ScheduledActionModel] = relationship(
        back_populates="history",
    )

    def to_dto(self) -> ExecutionHistory:
        from splitledger_batch.domain.types import (
            ActionType,
            ExecutionHistory,
            ExecutionStatus,
            WorkflowStatus,
        )

        return ExecutionHistory(
            history_id=self.id,
            scheduled_action_id=self.scheduled_action_id,
            user_id=self.user_id,
            action_type=ActionType(self.action_type),
            execution_date=self.execution_date,
            executed_at=self.executed_at,
            execution_status=ExecutionStatus(self.execution_status),
            workflow_status=WorkflowStatus(self.workflow_status),
            batch_id=self.batch_id,
            action_data=self.action_data,
            result_data=self.result_data,
            error_message=self.error_message,
            execution_duration_ms=self.execution_duration_ms,
        )

    @classmethod
    def from_dto(cls, dto: ExecutionHistory) -> ExecutionHistoryModel:
        return cls(
            id=dto.history_id,
            scheduled_action_id=dto.scheduled_action_id,
            user_id=dto.user_id,
            action_type=dto.action_type.value,
            execution_date=dto.execution_date,
            executed_at=dto.executed_at,
            execution_status=dto.execution_status.value,
            workflow_status=dto.workflow_status.value,
            batch_id=dto.batch_id,
            action_data=dict(dto.action_data) if dto.action_data is not None else None,
            result_data=dict(dto.result_data) if dto.result_data is not None else None,
            error_message=dto.error_message,
            execution_duration_ms=dto.execution_duration_ms,
        )
