"""Tests for the structured logging system (labour_ledger/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from labour_ledger.domain.dtos import Direction
from labour_ledger.exceptions import ManualSplitInvalidError, OpeningBalanceLockedError
from labour_ledger.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "labour_ledger.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("mutation_applied", extra={"entry_count": 3})

        assert _parse_log(stream)["entry_count"] == 3

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", reference_type="wage", reference_id="w-9")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["reference_type"] == "wage"
        assert record["reference_id"] == "w-9"

    def test_ledger_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise OpeningBalanceLockedError("worker-1", 4)
        except OpeningBalanceLockedError:
            get_logger("test").error("rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "OPENING_BALANCE_LOCKED"
        assert record["exc_type"] == "OpeningBalanceLockedError"
        assert record["exc_worker_id"] == "worker-1"
        assert record["exc_entry_count"] == 4
        assert "traceback" in record

    def test_optional_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ManualSplitInvalidError("shares sum to 90", total_percent="90")
        except ManualSplitInvalidError:
            get_logger("test").warning("rejected", exc_info=True)

        assert _parse_log(stream)["exc_total_percent"] == "90"

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "values",
            extra={"worker_id": uid, "pct": Decimal("33.34"), "direction": Direction.DEBIT},
        )

        record = _parse_log(stream)
        assert record["worker_id"] == str(uid)
        assert record["pct"] == "33.34"
        assert record["direction"] == "debit"

    def test_debug_hidden_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")
        logger.debug("third")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_clear(self):
        LogContext.set(correlation_id="x", organization_id="org")
        assert LogContext.get_all() == {"correlation_id": "x", "organization_id": "org"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", reference_id="r1"):
            assert LogContext.get_all() == {"correlation_id": "inner", "reference_id": "r1"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_stringifies_and_skips_none(self):
        uid = uuid4()
        with LogContext.bind(organization_id=uid, operation=None):
            assert LogContext.get_all() == {"organization_id": str(uid)}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        handlers = logging.getLogger("labour_ledger").handlers
        assert h1 in handlers
        assert h2 not in handlers

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("services.reversal").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "labour_ledger.services.reversal"
