"""
Deterministic business identifiers.

Every id here is a pure function of its inputs.  Re-running the same
action on the same date produces the same history row id and the same
ledger object id, which is what turns at-least-once delivery into a
single ledger effect.

Formats:
    history       hist_{actionId}-{YYYY-MM-DD}
    transaction   tx_{actionId}_{YYYY-MM-DD}
    budget entry  bg_{actionId}_{YYYY-MM-DD}
    batch         batch-{YYYY-MM-DD}-{batchNumber}-{epochMillis}
    immediate     immediate-{trigger}-{actionId}
"""

from __future__ import annotations

from datetime import date, datetime, timezone


def history_id(action_id: str, on_date: date) -> str:
    return f"hist_{action_id}-{on_date.isoformat()}"


def transaction_id(action_id: str, on_date: date) -> str:
    return f"tx_{action_id}_{on_date.isoformat()}"


def budget_entry_id(action_id: str, on_date: date) -> str:
    return f"bg_{action_id}_{on_date.isoformat()}"


def batch_id(on_date: date, batch_number: int, issued_at: datetime) -> str:
    """Orchestrator batch id; ``issued_at`` comes from the injected clock."""
    millis = int(issued_at.astimezone(timezone.utc).timestamp() * 1000)
    return f"batch-{on_date.isoformat()}-{batch_number}-{millis}"


def immediate_batch_id(trigger: date | datetime, action_id: str) -> str:
    """Batch id for a single-action run requested outside the daily cycle."""
    if isinstance(trigger, datetime):
        stamp = trigger.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    else:
        stamp = trigger.isoformat()
    return f"immediate-{stamp}-{action_id}"
