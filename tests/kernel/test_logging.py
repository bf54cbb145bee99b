"""Tests for the structured logging system (splitledger_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from splitledger_batch.domain.types import ActionType
from splitledger_kernel.exceptions import LedgerWriteError
from splitledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


def _parse_log(stream: StringIO) -> dict:
    return _parse_all_logs(stream)[0]


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "splitledger.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "action_executed",
            extra={
                "amount": Decimal("22.50"),
                "on_date": date(2024, 3, 15),
                "action_type": ActionType.ADD_EXPENSE,
                "action_ids": ("act-1", "act-2"),
            },
        )

        record = _parse_log(stream)
        assert record["amount"] == "22.50"
        assert record["on_date"] == "2024-03-15"
        assert record["action_type"] == "add_expense"
        assert record["action_ids"] == ["act-1", "act-2"]

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="run-1", batch_id="batch-2024-03-15-1-0")
        get_logger("test").info("batch_started")

        record = _parse_log(stream)
        assert record["correlation_id"] == "run-1"
        assert record["batch_id"] == "batch-2024-03-15-1-0"
        assert "action_id" not in record

    def test_ledger_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise LedgerWriteError("act-7", 4, "FOREIGN KEY constraint failed")
        except LedgerWriteError:
            get_logger("test").error("ledger_write_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "LedgerWriteError"
        assert record["exc_code"] == "LEDGER_WRITE_FAILED"
        assert record["exc_action_id"] == "act-7"
        assert record["exc_statement_count"] == 4
        assert record["exc_cause"] == "FOREIGN KEY constraint failed"
        assert "traceback" in record

    def test_plain_exception(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_ignores_none(self):
        LogContext.set(correlation_id="run-1")
        LogContext.set(correlation_id=None, action_id="act-1")
        assert LogContext.get_all() == {"correlation_id": "run-1", "action_id": "act-1"}

    def test_bind_restores_previous_values(self):
        LogContext.set(action_id="outer")
        with LogContext.bind(action_id="inner", trigger_date="2024-03-15"):
            assert LogContext.get_all() == {"trigger_date": "2024-03-15", "action_id": "inner"}
        assert LogContext.get_all() == {"action_id": "outer"}

    def test_bind_unknown_field(self):
        with pytest.raises(TypeError, match="event_id"):
            LogContext.bind(event_id="evt-1")

    def test_clear(self):
        LogContext.set(correlation_id="run-1", actor_id="user-alice")
        LogContext.clear()
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        first, first_stream = _make_handler()
        second, second_stream = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        get_logger("test").info("once")

        assert len(_parse_all_logs(first_stream)) == 1
        assert second_stream.getvalue() == ""

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(level="warning", handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_unknown_level_name_falls_back_to_info(self):
        handler, stream = _make_handler()
        configure_logging(level="chatty", handler=handler)
        logger = get_logger("test")
        logger.debug("dropped")
        logger.info("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_does_not_propagate_to_root(self):
        configure_logging(handler=logging.NullHandler())
        assert logging.getLogger("splitledger").propagate is False
