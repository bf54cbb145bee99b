"""Ledger entities consumed by the scheduler."""

from splitledger_kernel.models.group import Group, GroupBudget, Member
from splitledger_kernel.models.ledger import (
    BudgetEntry,
    BudgetTotal,
    Transaction,
    TransactionParticipant,
    UserBalance,
)

__all__ = [
    "BudgetEntry",
    "BudgetTotal",
    "Group",
    "GroupBudget",
    "Member",
    "Transaction",
    "TransactionParticipant",
    "UserBalance",
]
