"""
splitledger_batch.models -- ORM models for scheduled actions and history.

Architecture: splitledger_batch/models. Imports from splitledger_kernel.db only.
"""

from splitledger_batch.models.scheduled import ExecutionHistoryModel, ScheduledActionModel

__all__ = [
    "ExecutionHistoryModel",
    "ScheduledActionModel",
]
