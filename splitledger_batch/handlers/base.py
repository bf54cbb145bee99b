"""
ActionHandler protocol, supporting types, and HandlerRegistry.

Contract:
    ``ActionHandler`` turns one due action into the ledger statements it
    implies.  It performs the idempotency lookup for its deterministic
    ledger object id and returns zero statements when that object already
    exists.  It never executes writes itself; the processor applies the
    returned statements together with the schedule and history updates in
    one atomic unit.

    ``HandlerRegistry`` stores handlers keyed by ``ActionType``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.sql import Executable

from splitledger_batch.domain.types import ActionData, ActionType, GroupContext, ScheduledAction
from splitledger_batch.services.store import ScheduledActionStore
from splitledger_kernel.exceptions import HandlerAlreadyRegisteredError, UnknownActionTypeError


# =============================================================================
# Supporting DTOs
# =============================================================================


@dataclass(frozen=True)
class ActionRequest:
    """Everything a handler needs to compute one action's effects."""

    action: ScheduledAction
    data: ActionData
    group: GroupContext
    on_date: date
    executed_at: datetime


@dataclass(frozen=True)
class ActionOutcome:
    """Result data plus the statements to apply atomically.

    An empty ``statements`` tuple means the ledger object already exists.
    """

    result_data: Mapping[str, Any]
    statements: tuple[Executable, ...] = field(default_factory=tuple)

    @property
    def already_exists(self) -> bool:
        return not self.statements


# =============================================================================
# ActionHandler Protocol
# =============================================================================


@runtime_checkable
class ActionHandler(Protocol):
    """Interface for one action type's ledger effect."""

    @property
    def action_type(self) -> ActionType: ...

    def build(self, request: ActionRequest, store: ScheduledActionStore) -> ActionOutcome:
        """Compute the statements for ``request``.

        Raises:
            SplitLedgerError subclasses for payloads that cannot settle.
        """
        ...


# =============================================================================
# HandlerRegistry
# =============================================================================


class HandlerRegistry:
    """Registry mapping ActionType to ActionHandler implementations."""

    def __init__(self) -> None:
        self._handlers: dict[ActionType, ActionHandler] = {}

    def register(self, handler: ActionHandler) -> None:
        """Register a handler.

        Raises:
            HandlerAlreadyRegisteredError: On a duplicate action type.
        """
        if handler.action_type in self._handlers:
            raise HandlerAlreadyRegisteredError(handler.action_type.value)
        self._handlers[handler.action_type] = handler

    def get(self, action_type: ActionType | str) -> ActionHandler:
        """Retrieve the handler for ``action_type``.

        Raises:
            UnknownActionTypeError: If no handler is registered.
        """
        try:
            return self._handlers[ActionType(action_type)]
        except (KeyError, ValueError):
            raise UnknownActionTypeError(str(action_type), self.list_types()) from None

    def list_types(self) -> tuple[str, ...]:
        """Registered action types, sorted."""
        return tuple(sorted(t.value for t in self._handlers))

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, action_type: object) -> bool:
        try:
            return ActionType(action_type) in self._handlers
        except ValueError:
            return False
