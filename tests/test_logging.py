"""Tests for the structured logging system (ledger_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.logging_config import (
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
    configure_logging(level=logging.DEBUG)


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
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "ledger_engine.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("order_placed", extra={"line_count": 3, "status": "ordered"})

        record = _parse_log(stream)
        assert record["line_count"] == 3
        assert record["status"] == "ordered"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(correlation_id="abc-123", order_code="PO-20240101-0001")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["order_code"] == "PO-20240101-0001"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_engine_exception_code_extracted(self):
        """Ledger engine exceptions carry a .code attribute."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from ledger_kernel.exceptions import AmountExceedsBalanceError

        try:
            raise AmountExceedsBalanceError(Decimal("300"), Decimal("200"))
        except AmountExceedsBalanceError:
            logger.error("payment_rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "AMOUNT_EXCEEDS_BALANCE"
        assert record["exc_type"] == "AmountExceedsBalanceError"
        assert record["exc_outstanding"] == "200"
        assert record["exc_amount"] == "300"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "order_id" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        uid = uuid4()
        logger.info("with_values", extra={"order_id_value": uid, "total": Decimal("12.50")})

        record = _parse_log(stream)
        assert record["order_id_value"] == str(uid)
        assert record["total"] == "12.50"


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", order_type="SaleOrder"):
            assert LogContext.get_all()["actor_id"] == "inner"
            assert LogContext.get_all()["order_type"] == "SaleOrder"
        ctx = LogContext.get_all()
        assert ctx["actor_id"] == "outer"
        assert "order_type" not in ctx

    def test_bind_skips_none_and_stringifies(self):
        uid = uuid4()
        with LogContext.bind(order_id=uid, order_code=None):
            ctx = LogContext.get_all()
            assert ctx["order_id"] == str(uid)
            assert "order_code" not in ctx

    def test_clear(self):
        LogContext.set(correlation_id="x", actor_id="y")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        get_logger("test").info("once")

        assert len(_parse_all_logs(stream)) == 1

    def test_level_filters_debug(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.INFO, handler=handler)
        logger = get_logger("test")
        logger.debug("hidden")
        logger.info("shown")

        messages = [r["message"] for r in _parse_all_logs(stream)]
        assert messages == ["shown"]
