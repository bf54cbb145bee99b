"""
ExpenseActionHandler -- recurring group expense.

The payer is credited the full amount; split shares come from the stored
payload.  The debt netting engine turns that into pairwise edges, which
become:

    - one ``transactions`` row (id ``tx_{actionId}_{date}``) with
      paid/owed metadata keyed by member display name,
    - one ``transaction_participants`` row per edge,
    - two ``user_balances`` increments per edge (debtor->creditor +amount,
      creditor->debtor -amount).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal

from sqlalchemy.sql import Executable

from splitledger_batch.domain.identifiers import transaction_id
from splitledger_batch.domain.netting import settle
from splitledger_batch.domain.types import (
    ActionType,
    DebtEdge,
    ExpenseActionData,
    GroupContext,
)
from splitledger_batch.domain.validation import validate_settlement_request
from splitledger_batch.handlers.base import ActionOutcome, ActionRequest
from splitledger_batch.services.store import ScheduledActionStore
from splitledger_kernel.db.types import round_money
from splitledger_kernel.db.upsert import increment_upsert, replace_upsert
from splitledger_kernel.domain.currency import is_supported_currency, normalize_currencies
from splitledger_kernel.exceptions import InvalidCurrencyError, SettlementError
from splitledger_kernel.logging_config import get_logger
from splitledger_kernel.models import Transaction, TransactionParticipant, UserBalance

logger = get_logger("batch.handlers.expense")

_BALANCE_KEY = ["group_id", "user_id", "owed_to_user_id", "currency"]
_PARTICIPANT_KEY = ["transaction_id", "user_id", "owed_to_user_id"]


def _display_amount(amount: Decimal) -> float:
    return float(round_money(amount))


def build_transaction_metadata(
    data: ExpenseActionData,
    paid_by_shares: Mapping[str, Decimal],
    group: GroupContext,
) -> dict[str, dict[str, float]]:
    """Paid, owed and owed-to amounts keyed by display name."""
    owed: dict[str, Decimal] = {}
    for user_id, pct in data.split_pct_shares.items():
        owed[user_id] = data.amount * pct / 100

    owed_to: dict[str, float] = {}
    for user_id, paid in paid_by_shares.items():
        net = paid - owed.get(user_id, Decimal(0))
        if net > 0:
            owed_to[group.display_name(user_id)] = _display_amount(net)

    return {
        "paidByShares": {
            group.display_name(u): _display_amount(a) for u, a in paid_by_shares.items()
        },
        "owedAmounts": {group.display_name(u): _display_amount(a) for u, a in owed.items()},
        "owedToAmounts": owed_to,
    }


class ExpenseActionHandler:
    """Builds the ledger statements for an ``add_expense`` action."""

    def __init__(self, supported_currencies: Iterable[str] | None = None):
        self._currencies = normalize_currencies(supported_currencies)

    @property
    def action_type(self) -> ActionType:
        return ActionType.ADD_EXPENSE

    def build(self, request: ActionRequest, store: ScheduledActionStore) -> ActionOutcome:
        data = request.data
        assert isinstance(data, ExpenseActionData)
        tx_id = transaction_id(request.action.action_id, request.on_date)

        if not is_supported_currency(data.currency, self._currencies):
            raise InvalidCurrencyError(data.currency, tuple(sorted(self._currencies)))

        paid_by_shares = {data.paid_by_user_id: data.amount}
        problem = validate_settlement_request(
            data.amount,
            paid_by_shares,
            data.split_pct_shares,
            data.currency,
            self._currencies,
        )
        if problem:
            raise SettlementError(problem)

        if store.find_active_transaction(tx_id) is not None:
            logger.info("transaction_already_exists", extra={"transaction_id": tx_id})
            return ActionOutcome(
                result_data={
                    "message": f"Transaction already exists: {data.description}",
                    "transactionId": tx_id,
                },
            )

        edges = settle(data.amount, paid_by_shares, data.split_pct_shares, data.currency)
        statements = self._statements(request, tx_id, paid_by_shares, edges, store.dialect_name)

        logger.info(
            "transaction_statements_built",
            extra={
                "transaction_id": tx_id,
                "edge_count": len(edges),
                "statement_count": len(statements),
            },
        )
        return ActionOutcome(
            result_data={
                "message": f"Transaction created: {data.description}",
                "transactionId": tx_id,
            },
            statements=tuple(statements),
        )

    def _statements(
        self,
        request: ActionRequest,
        tx_id: str,
        paid_by_shares: Mapping[str, Decimal],
        edges: tuple[DebtEdge, ...],
        dialect_name: str,
    ) -> list[Executable]:
        data = request.data
        group = request.group
        now = request.executed_at

        # A soft-deleted row with the same id is replaced and revived
        statements: list[Executable] = [
            replace_upsert(
                dialect_name,
                Transaction.__table__,
                {
                    "transaction_id": tx_id,
                    "group_id": group.group_id,
                    "description": data.description,
                    "amount": data.amount,
                    "currency": data.currency,
                    "metadata": build_transaction_metadata(data, paid_by_shares, group),
                    "created_at": now,
                    "deleted_at": None,
                },
                key_columns=["transaction_id"],
            )
        ]

        for edge in edges:
            statements.append(
                replace_upsert(
                    dialect_name,
                    TransactionParticipant.__table__,
                    {
                        "transaction_id": tx_id,
                        "user_id": edge.from_participant,
                        "owed_to_user_id": edge.to_participant,
                        "group_id": group.group_id,
                        "amount": edge.amount,
                        "currency": edge.currency,
                        "deleted_at": None,
                    },
                    key_columns=_PARTICIPANT_KEY,
                )
            )

        for edge in edges:
            for user_id, owed_to, amount in (
                (edge.from_participant, edge.to_participant, edge.amount),
                (edge.to_participant, edge.from_participant, -edge.amount),
            ):
                statements.append(
                    increment_upsert(
                        dialect_name,
                        UserBalance.__table__,
                        {
                            "group_id": group.group_id,
                            "user_id": user_id,
                            "owed_to_user_id": owed_to,
                            "currency": edge.currency,
                            "balance": amount,
                            "updated_at": now,
                        },
                        key_columns=_BALANCE_KEY,
                        increment_column="balance",
                        touch_columns=["updated_at"],
                    )
                )

        return statements
