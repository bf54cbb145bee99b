"""
Ledger rows written by scheduled actions.

Transaction and BudgetEntry are keyed by deterministic business ids
(``tx_{actionId}_{date}`` / ``bg_{actionId}_{date}``).  A row whose
``deleted_at`` is set is soft-deleted and does not count as existing.

BudgetTotal and UserBalance are running aggregates.  They are only
changed through ``splitledger_kernel.db.upsert.increment_upsert``.

UserBalance semantics: ``balance`` is what ``user_id`` owes
``owed_to_user_id`` in ``currency``.  Every debt edge writes both
directions of a pair (+amount and -amount) so either side can be queried
directly.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from splitledger_kernel.db.base import Base
from splitledger_kernel.db.types import Currency, EntityId, LongText, Money


class Transaction(Base):
    """A group expense."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("ix_transactions_group_id", "group_id"),
    )

    transaction_id: Mapped[EntityId] = mapped_column(primary_key=True)
    group_id: Mapped[EntityId] = mapped_column(
        ForeignKey("groups.group_id"), nullable=False,
    )
    description: Mapped[LongText] = mapped_column(nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    currency: Mapped[Currency] = mapped_column(nullable=False)
    # "metadata" is reserved on declarative classes
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)


class TransactionParticipant(Base):
    """One debt edge of a transaction: user_id owes owed_to_user_id."""

    __tablename__ = "transaction_participants"

    transaction_id: Mapped[EntityId] = mapped_column(
        ForeignKey("transactions.transaction_id"), primary_key=True,
    )
    user_id: Mapped[EntityId] = mapped_column(primary_key=True)
    owed_to_user_id: Mapped[EntityId] = mapped_column(primary_key=True)
    group_id: Mapped[EntityId] = mapped_column(nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    currency: Mapped[Currency] = mapped_column(nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)


class BudgetEntry(Base):
    """A signed credit (+) or debit (-) against a group budget."""

    __tablename__ = "budget_entries"

    __table_args__ = (
        Index("ix_budget_entries_budget_id", "budget_id"),
    )

    budget_entry_id: Mapped[EntityId] = mapped_column(primary_key=True)
    budget_id: Mapped[EntityId] = mapped_column(
        ForeignKey("group_budgets.budget_id"), nullable=False,
    )
    group_id: Mapped[EntityId] = mapped_column(nullable=False)
    description: Mapped[LongText] = mapped_column(nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    currency: Mapped[Currency] = mapped_column(nullable=False)
    added_at: Mapped[datetime] = mapped_column(nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)


class BudgetTotal(Base):
    """Running total per (group, budget, currency)."""

    __tablename__ = "budget_totals"

    group_id: Mapped[EntityId] = mapped_column(primary_key=True)
    budget_id: Mapped[EntityId] = mapped_column(primary_key=True)
    currency: Mapped[Currency] = mapped_column(primary_key=True)
    total: Mapped[Money] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)


class UserBalance(Base):
    """Running balance per (group, user, owed-to user, currency)."""

    __tablename__ = "user_balances"

    group_id: Mapped[EntityId] = mapped_column(primary_key=True)
    user_id: Mapped[EntityId] = mapped_column(primary_key=True)
    owed_to_user_id: Mapped[EntityId] = mapped_column(primary_key=True)
    currency: Mapped[Currency] = mapped_column(primary_key=True)
    balance: Mapped[Decimal] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
