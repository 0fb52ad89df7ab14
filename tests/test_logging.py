"""Tests for the structured logging system (billing_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from billing_kernel.domain.dtos import AllocationMethod
from billing_kernel.domain.occupancy import BillingMonth
from billing_kernel.exceptions import AlreadyFinalizedError
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state around each test, then restore the suite config."""
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


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        (record,) = _parse_all_logs(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "billing_kernel.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        entry_id = uuid4()
        get_logger("test").info(
            "allocations_replaced",
            extra={"utility_entry_id": entry_id, "total": Decimal("10.50"), "inserted": 3},
        )

        (record,) = _parse_all_logs(stream)
        assert record["utility_entry_id"] == str(entry_id)
        assert record["total"] == "10.50"
        assert record["inserted"] == 3

    def test_enum_extra_logged_as_value(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("method_chosen", extra={"method": AllocationMethod.PER_SQM})

        (record,) = _parse_all_logs(stream)
        assert record["method"] == "per_sqm"

    def test_exception_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise AlreadyFinalizedError("p-1", "2024-06")
        except AlreadyFinalizedError:
            get_logger("test").error("finalize_failed", exc_info=True)

        (record,) = _parse_all_logs(stream)
        assert record["exc_type"] == "AlreadyFinalizedError"
        assert record["exc_code"] == "ALREADY_FINALIZED"
        assert record["exc_period_label"] == "2024-06"
        assert "traceback" in record


class TestLogContext:

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="req-1", property_id="prop-1")
        get_logger("test").info("with_context")

        (record,) = _parse_all_logs(stream)
        assert record["correlation_id"] == "req-1"
        assert record["property_id"] == "prop-1"

    def test_bind_restores_previous_values(self):
        LogContext.set(property_id="outer")
        with LogContext.bind(property_id=uuid4(), billing_period_id="bp-1"):
            inner = LogContext.get_all()
            assert inner["billing_period_id"] == "bp-1"
            assert inner["property_id"] != "outer"
        assert LogContext.get_all() == {"property_id": "outer"}

    def test_bind_ignores_unknown_and_none_fields(self):
        with LogContext.bind(nonsense="x", actor_id=None):
            assert LogContext.get_all() == {}

    def test_billing_month_logged_as_label(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(billing_month=BillingMonth(2024, 2)):
            get_logger("test").info("in_month")

        (record,) = _parse_all_logs(stream)
        assert record["billing_month"] == "2024-02"

    def test_set_rejects_unknown_field(self):
        with pytest.raises(TypeError, match="tenant_name"):
            LogContext.set(tenant_name="Ana")

    def test_clear(self):
        LogContext.set(actor_id="admin")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfiguration:

    def test_configure_is_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("billing_kernel").handlers) == 1

    def test_level_is_applied(self):
        handler, stream = _make_handler()
        configure_logging(level="WARNING", handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")
        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_does_not_propagate_to_root(self):
        configure_logging(handler=logging.NullHandler())
        assert logging.getLogger("billing_kernel").propagate is False
