"""
Pytest fixtures for the invoice approval test suite.

Provides:
- Structured logging configuration and log capture
- A deterministic clock
- SQLite (or DATABASE_URL) sessions with fresh tables per test
- Invoice / line factories and wired persistence collaborators

Environment Variables:
- DATABASE_URL: SQLAlchemy URL for the persistence tests.
  If not set, an in-memory SQLite database is used.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from invoice_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from invoice_kernel.domain.approval import ApprovalStatus
from invoice_kernel.domain.clock import DeterministicClock
from invoice_kernel.domain.invoice import InvoiceLine, InvoiceReceived, InvoiceStatus
from invoice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from invoice_kernel.services.approval_rule_service import ApprovalRuleService
from invoice_kernel.services.invoice_repository import InvoiceRepository
from invoice_services.approval_workflow import build_workflow

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture invoice_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.approve(...)
            logs = captured_logs()
            assert any(r["message"] == "invoice_approved" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("invoice_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Time
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    """Clock fixed at 2025-01-15 12:00 UTC."""
    return DeterministicClock()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """One engine per test session."""
    engine = init_engine_from_url(get_database_url())
    yield engine
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """A session over freshly created tables, dropped afterwards."""
    create_tables()
    sess = get_session()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()
        drop_tables()


@pytest.fixture
def repository(session, clock) -> InvoiceRepository:
    return InvoiceRepository(session, clock)


@pytest.fixture
def rule_service(session) -> ApprovalRuleService:
    return ApprovalRuleService(session)


@pytest.fixture
def workflow(session, clock):
    """Facade wired to the SQLAlchemy collaborators (rules from the table)."""
    return build_workflow(session, clock)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_line():
    """Factory for valid invoice lines."""

    def _make(
        line_number: int = 1,
        description: str = "Fresh produce",
        quantity: Decimal = Decimal("10"),
        unit_price: Decimal = Decimal("45.00"),
        tax_rate: Decimal = Decimal("10"),
        discount_percentage: Decimal = Decimal("0"),
        account_code: str | None = "6000000",
    ) -> InvoiceLine:
        subtotal = quantity * unit_price * (Decimal("1") - discount_percentage / 100)
        tax_amount = (subtotal * tax_rate / 100).quantize(Decimal("0.01"))
        return InvoiceLine(
            line_number=line_number,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            tax_rate=tax_rate,
            discount_percentage=discount_percentage,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total=subtotal + tax_amount,
            account_code=account_code,
        )

    return _make


@pytest.fixture
def make_invoice():
    """Factory for received invoices (not yet submitted by default)."""

    def _make(
        total: Decimal = Decimal("450.00"),
        approval_status: ApprovalStatus | None = None,
        requires_manager_approval: bool = False,
        requires_accounting_approval: bool = True,
        centre_code: str | None = "MAD-01",
        supplier_id: str | None = "SUP-001",
        invoice_number: str | None = None,
        invoice_date: date | None = date(2025, 1, 10),
        notes: str | None = None,
        status: InvoiceStatus | None = None,
    ) -> InvoiceReceived:
        if status is None:
            status = InvoiceStatus.DRAFT if approval_status is None else InvoiceStatus.PENDING
        return InvoiceReceived(
            id=uuid4(),
            supplier_id=supplier_id,
            centre_code=centre_code,
            invoice_number=invoice_number or f"F-{uuid4().hex[:8]}",
            invoice_date=invoice_date,
            subtotal=total,
            tax_total=Decimal("0"),
            total=total,
            status=status,
            approval_status=approval_status,
            requires_manager_approval=requires_manager_approval,
            requires_accounting_approval=requires_accounting_approval,
            notes=notes,
        )

    return _make
