"""
Typed exception hierarchy for the group ledger and its scheduler.

Every exception carries:
  1. a TYPED class (catch by type, not message),
  2. a ``code`` class attribute (machine-readable, stored in history rows
     and emitted as ``exc_code`` by the JSON log formatter),
  3. structured attributes describing the failure.

Hierarchy:

    SplitLedgerError (base)
    |
    +-- ActionError
    |   +-- ActionValidationError
    |   +-- UnknownActionTypeError
    |   +-- ScheduledActionNotFoundError
    |   +-- MissingGroupContextError
    |   +-- ActionTimeoutError
    |   +-- HandlerAlreadyRegisteredError
    |
    +-- LedgerError
    |   +-- InvalidCurrencyError
    |   +-- SettlementError
    |   +-- LedgerWriteError
    |
    +-- BatchError
        +-- BatchDispatchError

Containment policy:
    - ActionError / LedgerError are caught per action by the processor and
      recorded as a failed history row.  The action stays due and is
      retried on the next cycle.
    - BatchDispatchError is caught per batch by the orchestrator; every
      action in that batch is marked failed and other batches continue.
    - Nothing here is fatal to an orchestrator run.
"""


class SplitLedgerError(Exception):
    """
    Base exception for all ledger and scheduler errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "SPLITLEDGER_ERROR"


# Scheduled action errors


class ActionError(SplitLedgerError):
    """Base exception for scheduled-action errors."""

    code: str = "ACTION_ERROR"


class ActionValidationError(ActionError):
    """Stored action payload failed validation or could not be parsed."""

    code: str = "ACTION_VALIDATION_FAILED"

    def __init__(self, action_id: str | None, reason: str):
        self.action_id = action_id
        self.reason = reason
        super().__init__(reason)


class UnknownActionTypeError(ActionError):
    """No handler is registered for the action type."""

    code: str = "UNKNOWN_ACTION_TYPE"

    def __init__(self, action_type: str, available: tuple[str, ...] = ()):
        self.action_type = action_type
        self.available = available
        super().__init__(f"Unknown action type: {action_type}")


class ScheduledActionNotFoundError(ActionError):
    """None of the requested scheduled actions exist."""

    code: str = "SCHEDULED_ACTION_NOT_FOUND"

    def __init__(self, action_ids: list[str] | tuple[str, ...]):
        self.action_ids = list(action_ids)
        super().__init__(f"No actions found for IDs: {', '.join(self.action_ids)}")


class MissingGroupContextError(ActionError):
    """The action owner does not belong to a group."""

    code: str = "MISSING_GROUP_CONTEXT"

    def __init__(self, action_id: str, user_id: str):
        self.action_id = action_id
        self.user_id = user_id
        super().__init__(f"User {user_id} has no group for action {action_id}")


class ActionTimeoutError(ActionError):
    """An action exceeded its per-action deadline before its ledger write."""

    code: str = "ACTION_TIMEOUT"

    def __init__(self, action_id: str, timeout_seconds: float, elapsed_seconds: float):
        self.action_id = action_id
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"Action {action_id} exceeded its {timeout_seconds}s deadline "
            f"(elapsed {elapsed_seconds:.3f}s)"
        )


class HandlerAlreadyRegisteredError(ActionError):
    """A handler for the action type is already registered."""

    code: str = "HANDLER_ALREADY_REGISTERED"

    def __init__(self, action_type: str):
        self.action_type = action_type
        super().__init__(f"Handler for action type '{action_type}' is already registered")


# Ledger errors


class LedgerError(SplitLedgerError):
    """Base exception for ledger computation and write errors."""

    code: str = "LEDGER_ERROR"


class InvalidCurrencyError(LedgerError):
    """Currency outside the supported set."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: object, supported: tuple[str, ...] = ()):
        self.currency = currency
        self.supported = supported
        super().__init__(f"Invalid currency: {currency!r}")


class SettlementError(LedgerError):
    """Paid amounts or split percentages do not reconcile."""

    code: str = "SETTLEMENT_INVALID"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class LedgerWriteError(LedgerError):
    """The atomic statement batch for one action failed to apply."""

    code: str = "LEDGER_WRITE_FAILED"

    def __init__(self, action_id: str, statement_count: int, cause: str):
        self.action_id = action_id
        self.statement_count = statement_count
        self.cause = cause
        super().__init__(
            f"Ledger write of {statement_count} statements failed for "
            f"action {action_id}: {cause}"
        )


# Batch errors


class BatchError(SplitLedgerError):
    """Base exception for batch-level errors."""

    code: str = "BATCH_ERROR"


class BatchDispatchError(BatchError):
    """Writing started markers for, or dispatching, a batch failed."""

    code: str = "BATCH_DISPATCH_FAILED"

    def __init__(self, batch_id: str, batch_number: int, cause: str):
        self.batch_id = batch_id
        self.batch_number = batch_number
        self.cause = cause
        super().__init__(f"Batch {batch_number} ({batch_id}) dispatch failed: {cause}")
