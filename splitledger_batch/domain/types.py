"""
splitledger_batch.domain.types -- Pure frozen dataclasses for the scheduler.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

The action payload is a tagged union: ``ExpenseActionData`` for
``ActionType.ADD_EXPENSE`` and ``BudgetActionData`` for
``ActionType.ADD_BUDGET``.  ``parse_action_data`` selects the variant
with an exhaustive match on the action type; nothing probes fields to
guess the variant.

Wire format (stored as JSON on the scheduled action):
    ExpenseActionData = {amount, description, currency, paidByUserId,
                         splitPctShares: {userId: percent}}
    BudgetActionData  = {amount, description, budgetId, currency,
                         type: "Credit" | "Debit"}
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from splitledger_kernel.db.types import to_decimal


# =============================================================================
# Enums
# =============================================================================


class ActionType(str, Enum):
    """Kind of ledger effect a scheduled action produces."""

    ADD_EXPENSE = "add_expense"
    ADD_BUDGET = "add_budget"


class ActionFrequency(str, Enum):
    """Recurrence cadence of a scheduled action."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BudgetEntryType(str, Enum):
    """Direction of a budget entry."""

    CREDIT = "Credit"  # Adds to the budget
    DEBIT = "Debit"  # Subtracts from the budget


class ExecutionStatus(str, Enum):
    """Lifecycle of one execution history row."""

    STARTED = "started"
    SUCCESS = "success"
    FAILED = "failed"


class WorkflowStatus(str, Enum):
    """State of the batch unit that owns a history row."""

    RUNNING = "running"  # Batch dispatched, not yet finished
    COMPLETE = "complete"  # Processor finished the action (success or failure)
    TERMINATED = "terminated"  # Batch failed before the processor ran


class ActionResultStatus(str, Enum):
    """Per-action status reported by an orchestrator run."""

    ALREADY_PROCESSED = "already_processed"
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    STILL_RUNNING = "still_running"


# =============================================================================
# Action payload variants
# =============================================================================


def _require(data: Mapping[str, Any], *keys: str) -> None:
    missing = [k for k in keys if data.get(k) is None or data.get(k) == ""]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")


@dataclass(frozen=True)
class ExpenseActionData:
    """Recurring group expense paid in full by one member."""

    amount: Decimal
    description: str
    currency: str
    paid_by_user_id: str
    split_pct_shares: Mapping[str, Decimal]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ExpenseActionData:
        """Parse the wire payload.

        Raises:
            ValueError: If a required field is missing or not numeric.
        """
        _require(data, "amount", "description", "currency", "paidByUserId", "splitPctShares")
        shares = data["splitPctShares"]
        if not isinstance(shares, Mapping):
            raise ValueError("splitPctShares must be an object")
        return cls(
            amount=to_decimal(data["amount"]),
            description=str(data["description"]),
            currency=str(data["currency"]),
            paid_by_user_id=str(data["paidByUserId"]),
            split_pct_shares={str(k): to_decimal(v) for k, v in shares.items()},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": str(self.amount),
            "description": self.description,
            "currency": self.currency,
            "paidByUserId": self.paid_by_user_id,
            "splitPctShares": {k: str(v) for k, v in self.split_pct_shares.items()},
        }


@dataclass(frozen=True)
class BudgetActionData:
    """Recurring credit or debit against a group budget."""

    amount: Decimal
    description: str
    budget_id: str
    currency: str
    entry_type: BudgetEntryType

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BudgetActionData:
        """Parse the wire payload.

        Raises:
            ValueError: If a required field is missing, not numeric, or
                ``type`` is not Credit/Debit.
        """
        _require(data, "amount", "description", "budgetId", "currency", "type")
        return cls(
            amount=to_decimal(data["amount"]),
            description=str(data["description"]),
            budget_id=str(data["budgetId"]),
            currency=str(data["currency"]),
            entry_type=BudgetEntryType(data["type"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": str(self.amount),
            "description": self.description,
            "budgetId": self.budget_id,
            "currency": self.currency,
            "type": self.entry_type.value,
        }

    @property
    def signed_amount(self) -> Decimal:
        """Credit adds to the budget, Debit subtracts."""
        match self.entry_type:
            case BudgetEntryType.CREDIT:
                return self.amount
            case BudgetEntryType.DEBIT:
                return -self.amount


ActionData = ExpenseActionData | BudgetActionData


def parse_action_data(action_type: ActionType | str, data: Mapping[str, Any]) -> ActionData:
    """Build the payload variant for ``action_type``.

    Raises:
        ValueError: If the payload does not match the variant, or the
            action type is unknown.
    """
    match ActionType(action_type):
        case ActionType.ADD_EXPENSE:
            return ExpenseActionData.from_dict(data)
        case ActionType.ADD_BUDGET:
            return BudgetActionData.from_dict(data)


# =============================================================================
# Scheduling DTOs
# =============================================================================


@dataclass(frozen=True)
class ScheduledAction:
    """Immutable snapshot of a scheduled action.

    ``next_execution_date`` changes only after a successful execution.
    ``action_data`` is the raw wire payload; parse it with
    ``parse_action_data`` at the point of use.
    """

    action_id: str
    user_id: str
    action_type: ActionType
    frequency: ActionFrequency
    start_date: date
    next_execution_date: date
    action_data: Mapping[str, Any]
    is_active: bool = True
    last_executed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ExecutionHistory:
    """Immutable snapshot of one execution history row."""

    history_id: str
    scheduled_action_id: str
    user_id: str
    action_type: ActionType
    execution_date: date
    executed_at: datetime
    execution_status: ExecutionStatus
    workflow_status: WorkflowStatus
    batch_id: str | None = None
    action_data: Mapping[str, Any] | None = None
    result_data: Mapping[str, Any] | None = None
    error_message: str | None = None
    execution_duration_ms: int | None = None


@dataclass(frozen=True)
class GroupContext:
    """Group membership resolved for an action owner."""

    group_id: str
    member_ids: frozenset[str]
    budget_ids: frozenset[str]
    display_names: Mapping[str, str] = field(default_factory=dict)

    def display_name(self, user_id: str) -> str:
        """First name used as the metadata key, falling back to the id."""
        return self.display_names.get(user_id) or user_id


@dataclass(frozen=True)
class DebtEdge:
    """One pairwise transfer: ``from_participant`` owes ``to_participant``."""

    from_participant: str
    to_participant: str
    amount: Decimal
    currency: str


# =============================================================================
# Dispatch and result DTOs
# =============================================================================


@dataclass(frozen=True)
class BatchDispatch:
    """One unit of work handed from the orchestrator to a processor."""

    batch_id: str
    trigger_date: date
    action_ids: tuple[str, ...]
    batch_number: int

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe message for an external work queue."""
        return {
            "batchId": self.batch_id,
            "triggerDate": self.trigger_date.isoformat(),
            "actionIds": list(self.action_ids),
            "batchNumber": self.batch_number,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> BatchDispatch:
        return cls(
            batch_id=str(payload["batchId"]),
            trigger_date=date.fromisoformat(str(payload["triggerDate"])[:10]),
            action_ids=tuple(str(a) for a in payload["actionIds"]),
            batch_number=int(payload["batchNumber"]),
        )


@dataclass(frozen=True)
class ActionExecutionResult:
    """Outcome of one action inside a processed batch."""

    action_id: str
    success: bool
    execution_duration_ms: int
    result_data: Mapping[str, Any] | None = None
    error_message: str | None = None
    error_code: str | None = None


@dataclass(frozen=True)
class ProcessorResult:
    """Summary of one processed batch."""

    batch_id: str
    batch_number: int
    total_processed: int
    succeeded: int
    failed: int
    total_duration_ms: int
    results: tuple[ActionExecutionResult, ...] = ()


@dataclass(frozen=True)
class OrchestratorActionResult:
    """Per-action line of an orchestrator summary."""

    action_id: str
    status: ActionResultStatus
    batch_id: str | None = None
    batch_number: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class OrchestratorResult:
    """Summary of one orchestrator run."""

    trigger_date: date
    total_processed: int
    already_processed: int
    started: int
    succeeded: int
    failed: int
    still_running: int
    results: tuple[OrchestratorActionResult, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "triggerDate": self.trigger_date.isoformat(),
            "totalProcessed": self.total_processed,
            "alreadyProcessed": self.already_processed,
            "started": self.started,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "stillRunning": self.still_running,
            "results": [
                {
                    "actionId": r.action_id,
                    "status": r.status.value,
                    "batchId": r.batch_id,
                    "batchNumber": r.batch_number,
                    "error": r.error,
                }
                for r in self.results
            ],
        }
