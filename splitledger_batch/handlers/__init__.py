"""
splitledger_batch.handlers -- Per-action-type ledger effects.

``default_handler_registry()`` returns a registry with the expense and
budget handlers registered.
"""

from collections.abc import Iterable

from splitledger_batch.handlers.base import (
    ActionHandler,
    ActionOutcome,
    ActionRequest,
    HandlerRegistry,
)
from splitledger_batch.handlers.budget import BudgetActionHandler
from splitledger_batch.handlers.expense import ExpenseActionHandler


def default_handler_registry(supported_currencies: Iterable[str] | None = None) -> HandlerRegistry:
    """Create a registry with every built-in action handler."""
    registry = HandlerRegistry()
    registry.register(ExpenseActionHandler(supported_currencies))
    registry.register(BudgetActionHandler(supported_currencies))
    return registry


__all__ = [
    "ActionHandler",
    "ActionOutcome",
    "ActionRequest",
    "BudgetActionHandler",
    "ExpenseActionHandler",
    "HandlerRegistry",
    "default_handler_registry",
]
