"""
Received Invoice Domain Models (``invoice_kernel.domain.invoice``).

Responsibility
--------------
The nouns the approval workflow decides over: the received invoice
(aggregate root), its lines, and the update payload handed to the
persistence collaborator when a decision is committed.

Architecture position
---------------------
**Kernel domain layer** -- pure data definitions.  No I/O, no database.
``InvoiceReceived`` is a plain mutable dataclass because it is the
aggregate root the OCR projection writes into; lines and updates are
frozen.

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (never ``float``).
* ``approval_status`` and ``status`` are separate fields; neither is
  derived from the other inside this module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from invoice_kernel.domain.approval import (
    ApprovalAction,
    ApprovalLevel,
    ApprovalStatus,
)


class InvoiceStatus(str, Enum):
    """Operational lifecycle of a received invoice."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    POSTED = "posted"
    PAID = "paid"


@dataclass(frozen=True)
class InvoiceLine:
    """A single line on a received invoice, ordered by ``line_number``."""

    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    discount_percentage: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    account_code: str | None = None
    id: UUID | None = None
    invoice_id: UUID | None = None


@dataclass
class InvoiceReceived:
    """A supplier invoice moving through intake and approval.

    ``requires_manager_approval`` / ``requires_accounting_approval`` are
    computed once at submission and persisted, so later steps never
    re-derive them from a rule set that may have changed since.
    """

    id: UUID
    supplier_id: str | None
    centre_code: str | None
    invoice_number: str | None
    invoice_date: date | None
    due_date: date | None = None
    subtotal: Decimal = Decimal("0")
    tax_total: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    status: InvoiceStatus = InvoiceStatus.DRAFT
    approval_status: ApprovalStatus | None = None
    requires_manager_approval: bool = False
    requires_accounting_approval: bool = True

    # Extraction provenance (advisory, never an approval gate)
    ocr_engine: str | None = None
    ocr_confidence: Decimal | None = None
    ocr_confidence_notes: list[str] = field(default_factory=list)
    ocr_merge_notes: list[str] = field(default_factory=list)
    ocr_extracted_data: dict[str, Any] | None = None
    ocr_fallback_used: bool = False
    needs_manual_review: bool = False
    ocr_pages: int | None = None
    ocr_processing_time_ms: int | None = None
    ocr_tokens_in: int | None = None
    ocr_tokens_out: int | None = None
    ocr_cost_estimate: Decimal | None = None

    # Rejection metadata
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejected_reason: str | None = None

    notes: str | None = None
    version: int = 1


@dataclass(frozen=True)
class InvoiceUpdate:
    """Fields a committed approval decision writes in one atomic update.

    When ``actor_id`` and ``action`` are set, the persistence collaborator
    also appends the matching ``Approval`` history entry in the same
    transaction.
    """

    approval_status: ApprovalStatus
    status: InvoiceStatus
    actor_id: str | None = None
    approval_level: ApprovalLevel | None = None
    action: ApprovalAction | None = None
    comments: str | None = None
    rejected_by: str | None = None
    rejected_reason: str | None = None
    rejected_at: datetime | None = None
    notes: str | None = None
    requires_manager_approval: bool | None = None
    requires_accounting_approval: bool | None = None
