"""Tests for splitledger_kernel.exceptions."""

import pytest

from splitledger_kernel.exceptions import (
    ActionError,
    ActionTimeoutError,
    ActionValidationError,
    BatchDispatchError,
    BatchError,
    HandlerAlreadyRegisteredError,
    InvalidCurrencyError,
    LedgerError,
    LedgerWriteError,
    MissingGroupContextError,
    ScheduledActionNotFoundError,
    SettlementError,
    SplitLedgerError,
    UnknownActionTypeError,
)

ALL_ERRORS = [
    (ActionValidationError("act-1", "Missing required fields for expense action"), ActionError, "ACTION_VALIDATION_FAILED"),
    (UnknownActionTypeError("transfer", ("add_budget", "add_expense")), ActionError, "UNKNOWN_ACTION_TYPE"),
    (ScheduledActionNotFoundError(["a", "b"]), ActionError, "SCHEDULED_ACTION_NOT_FOUND"),
    (MissingGroupContextError("act-1", "user-dave"), ActionError, "MISSING_GROUP_CONTEXT"),
    (ActionTimeoutError("act-1", 30, 31.5), ActionError, "ACTION_TIMEOUT"),
    (HandlerAlreadyRegisteredError("add_budget"), ActionError, "HANDLER_ALREADY_REGISTERED"),
    (InvalidCurrencyError("JPY"), LedgerError, "INVALID_CURRENCY"),
    (SettlementError("Split percentages must add up to 100%"), LedgerError, "SETTLEMENT_INVALID"),
    (LedgerWriteError("act-1", 3, "boom"), LedgerError, "LEDGER_WRITE_FAILED"),
    (BatchDispatchError("batch-1", 1, "queue unavailable"), BatchError, "BATCH_DISPATCH_FAILED"),
]


@pytest.mark.parametrize("error, parent, code", ALL_ERRORS)
def test_hierarchy_and_codes(error, parent, code):
    assert isinstance(error, parent)
    assert isinstance(error, SplitLedgerError)
    assert error.code == code


def test_codes_are_unique():
    codes = [type(error).code for error, _, _ in ALL_ERRORS]
    assert len(codes) == len(set(codes))


class TestMessages:
    def test_not_found_lists_ids(self):
        assert str(ScheduledActionNotFoundError(("a", "b"))) == "No actions found for IDs: a, b"

    def test_unknown_action_type(self):
        error = UnknownActionTypeError("transfer")
        assert str(error) == "Unknown action type: transfer"
        assert error.available == ()

    def test_validation_reason_is_message(self):
        error = ActionValidationError(None, "Invalid budget - not available in group")
        assert str(error) == "Invalid budget - not available in group"
        assert error.action_id is None

    def test_timeout_reports_elapsed(self):
        assert "elapsed 31.500s" in str(ActionTimeoutError("act-1", 30, 31.5))

    def test_invalid_currency_repr(self):
        assert str(InvalidCurrencyError(None)) == "Invalid currency: None"

    def test_batch_dispatch(self):
        error = BatchDispatchError("batch-2024-03-15-2-0", 2, "queue unavailable")
        assert str(error) == "Batch 2 (batch-2024-03-15-2-0) dispatch failed: queue unavailable"
