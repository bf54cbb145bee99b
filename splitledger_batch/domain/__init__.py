"""
splitledger_batch.domain -- Pure types, cadence, validation and netting.

ZERO I/O.  All types are frozen dataclasses.
"""

from splitledger_batch.domain.types import (
    ActionExecutionResult,
    ActionFrequency,
    ActionResultStatus,
    ActionType,
    BatchDispatch,
    BudgetActionData,
    BudgetEntryType,
    DebtEdge,
    ExecutionHistory,
    ExecutionStatus,
    ExpenseActionData,
    GroupContext,
    OrchestratorActionResult,
    OrchestratorResult,
    ProcessorResult,
    ScheduledAction,
    WorkflowStatus,
    parse_action_data,
)

__all__ = [
    "ActionExecutionResult",
    "ActionFrequency",
    "ActionResultStatus",
    "ActionType",
    "BatchDispatch",
    "BudgetActionData",
    "BudgetEntryType",
    "DebtEdge",
    "ExecutionHistory",
    "ExecutionStatus",
    "ExpenseActionData",
    "GroupContext",
    "OrchestratorActionResult",
    "OrchestratorResult",
    "ProcessorResult",
    "ScheduledAction",
    "WorkflowStatus",
    "parse_action_data",
]
