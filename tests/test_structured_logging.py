"""Tests for the structured logging system (invoice_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from invoice_kernel.domain.approval import ApprovalStatus
from invoice_kernel.exceptions import ApprovalPermissionError
from invoice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def log_stream():
    """Route invoice_kernel logs to a fresh stream; restore suite logging after."""
    reset_logging()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(level=logging.DEBUG, handler=handler)
    yield stream
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestStructuredFormatter:
    """JSON output of StructuredFormatter."""

    def test_one_json_object_per_record(self, log_stream):
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")

        records = _records(log_stream)
        assert [r["message"] for r in records] == ["first", "second"]
        assert records[1]["level"] == "WARNING"
        assert records[0]["logger"] == "invoice_kernel.test"
        assert "ts" in records[0]

    def test_extra_fields_and_domain_values(self, log_stream):
        invoice_id = uuid4()
        get_logger("test").info(
            "invoice_updated",
            extra={
                "invoice_id_value": invoice_id,
                "total": Decimal("1200.50"),
                "to_status": ApprovalStatus.PENDING_ACCOUNTING,
            },
        )

        record = _records(log_stream)[0]
        assert record["invoice_id_value"] == str(invoice_id)
        assert record["total"] == "1200.50"
        assert record["to_status"] == "pending_accounting"

    def test_context_fields_included(self, log_stream):
        with LogContext.bind(invoice_id="inv-1", actor_id="user-9", actor_role="manager"):
            get_logger("test").info("inside")
        get_logger("test").info("outside")

        inside, outside = _records(log_stream)
        assert inside["invoice_id"] == "inv-1"
        assert inside["actor_role"] == "manager"
        assert "invoice_id" not in outside

    def test_kernel_exception_fields(self, log_stream):
        try:
            raise ApprovalPermissionError("user-9", "viewer", "manager")
        except ApprovalPermissionError:
            get_logger("test").exception("approval_failed")

        record = _records(log_stream)[0]
        assert record["exc_type"] == "ApprovalPermissionError"
        assert record["exc_code"] == "APPROVAL_PERMISSION_DENIED"
        assert record["exc_role"] == "viewer"
        assert record["exc_approval_level"] == "manager"
        assert "Traceback" in record["traceback"]

    def test_formatter_standalone(self):
        record = logging.LogRecord(
            "invoice_kernel.x", logging.INFO, __file__, 1, "plain %s", ("message",), None,
        )
        payload = json.loads(StructuredFormatter().format(record))
        assert payload["message"] == "plain message"


class TestLogContext:

    def test_set_get_clear(self):
        LogContext.set(correlation_id="c-1", centre_code="MAD-01")
        assert LogContext.get_all() == {"correlation_id": "c-1", "centre_code": "MAD-01"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(tenant="acme")

    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", invoice_id=uuid4()):
            assert LogContext.get_all()["actor_id"] == "inner"
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_skips_none(self):
        with LogContext.bind(actor_id=None, centre_code="BCN-02"):
            assert LogContext.get_all() == {"centre_code": "BCN-02"}


class TestConfigureLogging:

    def test_idempotent(self, log_stream):
        configure_logging(level=logging.DEBUG)
        assert len(logging.getLogger("invoice_kernel").handlers) == 1

    def test_logger_hierarchy(self):
        logger = get_logger("services.approve_invoice")
        assert logger.name == "invoice_kernel.services.approve_invoice"
        assert logger.parent.name in ("invoice_kernel.services", "invoice_kernel")
