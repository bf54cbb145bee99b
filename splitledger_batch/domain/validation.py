"""
Action payload validation against a group's members, budgets and currencies.

Contract:
    ``validate_action`` returns the message of the FIRST violated rule, or
    ``None`` when the payload is valid.  It never raises for bad input.
    The management surface calls it at creation time; the processor calls
    it again before executing when ``revalidate_on_execute`` is enabled.

    ``validate_settlement_request`` checks an expense settlement (payer
    amounts and split percentages) right before netting.

Architecture: splitledger_batch/domain.  ZERO I/O.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from decimal import Decimal
from typing import Any

from splitledger_batch.domain.types import ActionType, BudgetEntryType
from splitledger_kernel.db.types import to_decimal
from splitledger_kernel.domain.currency import normalize_currencies

SPLIT_TOTAL = Decimal("100")
SPLIT_TOLERANCE = Decimal("0.01")
PAID_TOLERANCE = Decimal("0.01")

_EXPENSE_FIELDS = ("amount", "description", "currency", "paidByUserId", "splitPctShares")
_BUDGET_FIELDS = ("amount", "description", "budgetId", "currency", "type")


def _missing(data: Mapping[str, Any], fields: tuple[str, ...]) -> bool:
    return any(data.get(f) is None or data.get(f) == "" for f in fields)


def _as_amount(value: Any) -> Decimal | None:
    try:
        return to_decimal(value)
    except ValueError:
        return None


def _currency_error(currency: Any, supported: frozenset[str]) -> str | None:
    if not isinstance(currency, str) or currency not in supported:
        return f"Invalid currency. Supported: {', '.join(sorted(supported))}"
    return None


def validate_action(
    action_type: ActionType | str,
    action_data: Mapping[str, Any],
    group_member_ids: Collection[str],
    group_budget_ids: Collection[str],
    supported_currencies: Iterable[str] | None = None,
) -> str | None:
    """Validate a stored action payload for its group.

    Expense rules, in order: required fields, amount > 0, supported
    currency, payer in group, every split participant in group, every
    share in [0, 100], shares sum to 100 within 0.01.

    Budget rules, in order: required fields, amount > 0, supported
    currency, budget belongs to group, type is Credit or Debit.
    """
    supported = normalize_currencies(supported_currencies)
    if not isinstance(action_data, Mapping):
        return "Action data must be an object"

    try:
        action_type = ActionType(action_type)
    except ValueError:
        return f"Unknown action type: {action_type}"

    match action_type:
        case ActionType.ADD_EXPENSE:
            return _validate_expense(action_data, group_member_ids, supported)
        case ActionType.ADD_BUDGET:
            return _validate_budget(action_data, group_budget_ids, supported)


def _validate_expense(
    data: Mapping[str, Any],
    member_ids: Collection[str],
    supported: frozenset[str],
) -> str | None:
    if _missing(data, _EXPENSE_FIELDS):
        return "Missing required fields for expense action"

    amount = _as_amount(data["amount"])
    if amount is None or amount <= 0:
        return "Amount must be a positive number"

    currency_error = _currency_error(data["currency"], supported)
    if currency_error:
        return currency_error

    payer = data["paidByUserId"]
    if not isinstance(payer, str) or payer not in member_ids:
        return "Invalid paidByUserId - user not in group"

    shares = data["splitPctShares"]
    if not isinstance(shares, Mapping) or not shares:
        return "Missing required fields for expense action"

    for user_id in shares:
        if user_id not in member_ids:
            return "Invalid user in split shares - not in group"

    total = Decimal(0)
    for raw in shares.values():
        pct = _as_amount(raw)
        if pct is None or pct < 0 or pct > SPLIT_TOTAL:
            return "Split percentages must be between 0 and 100"
        total += pct

    if abs(total - SPLIT_TOTAL) > SPLIT_TOLERANCE:
        return "Split percentages must sum to exactly 100%"

    return None


def _validate_budget(
    data: Mapping[str, Any],
    budget_ids: Collection[str],
    supported: frozenset[str],
) -> str | None:
    if _missing(data, _BUDGET_FIELDS):
        return "Missing required fields for budget action"

    amount = _as_amount(data["amount"])
    if amount is None or amount <= 0:
        return "Amount must be a positive number"

    currency_error = _currency_error(data["currency"], supported)
    if currency_error:
        return currency_error

    budget_id = data["budgetId"]
    if not isinstance(budget_id, str) or budget_id not in budget_ids:
        return "Invalid budget - not available in group"

    if data["type"] not in [t.value for t in BudgetEntryType]:
        return "Budget type must be either Credit or Debit"

    return None


def validate_settlement_request(
    total_amount: Decimal,
    paid_by_shares: Mapping[str, Decimal],
    split_pct_shares: Mapping[str, Decimal],
    currency: str,
    supported_currencies: Iterable[str] | None = None,
) -> str | None:
    """Check that an expense settlement reconciles before netting it."""
    if currency not in normalize_currencies(supported_currencies):
        return f"Invalid currency: {currency}"
    if abs(sum(split_pct_shares.values(), Decimal(0)) - SPLIT_TOTAL) > SPLIT_TOLERANCE:
        return "Split percentages must add up to 100%"
    if abs(sum(paid_by_shares.values(), Decimal(0)) - total_amount) > PAID_TOLERANCE:
        return "Paid amounts must add up to total amount"
    return None
