"""
BudgetActionHandler -- recurring credit or debit against a group budget.

Statements: one ``budget_entries`` upsert (id ``bg_{actionId}_{date}``;
a soft-deleted entry with that id is revived) and one atomic
add-to-existing upsert of the (group, budget, currency) running total.
Credit adds the amount, Debit subtracts it.
"""

from __future__ import annotations

from collections.abc import Iterable

from splitledger_batch.domain.identifiers import budget_entry_id
from splitledger_batch.domain.types import ActionType, BudgetActionData
from splitledger_batch.handlers.base import ActionOutcome, ActionRequest
from splitledger_batch.services.store import ScheduledActionStore
from splitledger_kernel.db.upsert import increment_upsert, replace_upsert
from splitledger_kernel.domain.currency import is_supported_currency, normalize_currencies
from splitledger_kernel.exceptions import ActionValidationError, InvalidCurrencyError
from splitledger_kernel.logging_config import get_logger
from splitledger_kernel.models import BudgetEntry, BudgetTotal

logger = get_logger("batch.handlers.budget")


class BudgetActionHandler:
    """Builds the ledger statements for an ``add_budget`` action."""

    def __init__(self, supported_currencies: Iterable[str] | None = None):
        self._currencies = normalize_currencies(supported_currencies)

    @property
    def action_type(self) -> ActionType:
        return ActionType.ADD_BUDGET

    def build(self, request: ActionRequest, store: ScheduledActionStore) -> ActionOutcome:
        data = request.data
        assert isinstance(data, BudgetActionData)
        entry_id = budget_entry_id(request.action.action_id, request.on_date)

        if not is_supported_currency(data.currency, self._currencies):
            raise InvalidCurrencyError(data.currency, tuple(sorted(self._currencies)))

        amount = data.signed_amount
        if amount == 0:
            raise ActionValidationError(request.action.action_id, "Budget amount cannot be zero")

        if store.find_active_budget_entry(entry_id) is not None:
            logger.info("budget_entry_already_exists", extra={"budget_entry_id": entry_id})
            return ActionOutcome(
                result_data={
                    "message": f"Budget already exists: {data.description}",
                    "budgetEntryId": entry_id,
                },
            )

        group_id = request.group.group_id
        now = request.executed_at
        statements = (
            replace_upsert(
                store.dialect_name,
                BudgetEntry.__table__,
                {
                    "budget_entry_id": entry_id,
                    "budget_id": data.budget_id,
                    "group_id": group_id,
                    "description": data.description,
                    "amount": amount,
                    "currency": data.currency,
                    "added_at": now,
                    "deleted_at": None,
                },
                key_columns=["budget_entry_id"],
            ),
            increment_upsert(
                store.dialect_name,
                BudgetTotal.__table__,
                {
                    "group_id": group_id,
                    "budget_id": data.budget_id,
                    "currency": data.currency,
                    "total": amount,
                    "updated_at": now,
                },
                key_columns=["group_id", "budget_id", "currency"],
                increment_column="total",
                touch_columns=["updated_at"],
            ),
        )

        return ActionOutcome(
            result_data={
                "message": f"Budget entry created: {data.description}",
                "budgetEntryId": entry_id,
            },
            statements=statements,
        )
