"""
Module: invoice_kernel.models.invoice
Responsibility: ORM persistence for received invoices and their lines.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions.py only.  Domain DTOs are imported lazily inside the
    conversion methods.

Invariants enforced:
    - Valid status values: DB check constraints limit ``status`` and
      ``approval_status`` to the lifecycle enums.
    - Line numbers are unique per invoice.
    - ``version`` starts at 1 and is bumped by every approval write
      (see InvoiceRepository.update_invoice).

Failure modes:
    - IntegrityError on an out-of-range status or a duplicate line number.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from invoice_kernel.domain.invoice import InvoiceLine, InvoiceReceived


class InvoiceReceivedModel(Base):
    """Persistent received invoice.

    Contract:
        Approval columns (``approval_status``, ``status``, rejection
        metadata, ``version``) are written only through the conditional
        update in InvoiceRepository.  OCR columns are advisory.
    """

    __tablename__ = "invoices_received"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'rejected', 'posted', 'paid')",
            name="ck_invoices_received_valid_status",
        ),
        CheckConstraint(
            "approval_status IS NULL OR approval_status IN "
            "('pending_manager', 'pending_accounting', 'approved', 'rejected')",
            name="ck_invoices_received_valid_approval_status",
        ),
        CheckConstraint("version >= 1", name="ck_invoices_received_version"),
        Index("ix_invoices_received_approval", "centre_code", "approval_status"),
        Index("ix_invoices_received_supplier_number", "supplier_id", "invoice_number"),
    )

    supplier_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    centre_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)
    approval_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    requires_manager_approval: Mapped[bool] = mapped_column(default=False, nullable=False)
    requires_accounting_approval: Mapped[bool] = mapped_column(default=True, nullable=False)

    # OCR provenance
    ocr_engine: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ocr_confidence: Mapped[Decimal | None] = mapped_column(nullable=True)
    ocr_confidence_notes: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    ocr_merge_notes: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    ocr_extracted_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ocr_fallback_used: Mapped[bool] = mapped_column(default=False, nullable=False)
    needs_manual_review: Mapped[bool] = mapped_column(default=False, nullable=False)
    ocr_pages: Mapped[int | None] = mapped_column(nullable=True)
    ocr_processing_time_ms: Mapped[int | None] = mapped_column(nullable=True)
    ocr_tokens_in: Mapped[int | None] = mapped_column(nullable=True)
    ocr_tokens_out: Mapped[int | None] = mapped_column(nullable=True)
    ocr_cost_estimate: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Rejection metadata
    rejected_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(default=1, nullable=False)

    lines: Mapped[list["InvoiceLineModel"]] = relationship(
        "InvoiceLineModel",
        back_populates="invoice",
        order_by="InvoiceLineModel.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<InvoiceReceived {self.id} {self.invoice_number} "
            f"total={self.total} approval_status={self.approval_status}>"
        )

    def to_dto(self) -> InvoiceReceived:
        """Convert ORM model to the domain aggregate."""
        from invoice_kernel.domain.approval import ApprovalStatus
        from invoice_kernel.domain.invoice import InvoiceReceived, InvoiceStatus

        return InvoiceReceived(
            id=self.id,
            supplier_id=self.supplier_id,
            centre_code=self.centre_code,
            invoice_number=self.invoice_number,
            invoice_date=self.invoice_date,
            due_date=self.due_date,
            subtotal=self.subtotal,
            tax_total=self.tax_total,
            total=self.total,
            status=InvoiceStatus(self.status),
            approval_status=(
                ApprovalStatus(self.approval_status)
                if self.approval_status is not None else None
            ),
            requires_manager_approval=self.requires_manager_approval,
            requires_accounting_approval=self.requires_accounting_approval,
            ocr_engine=self.ocr_engine,
            ocr_confidence=self.ocr_confidence,
            ocr_confidence_notes=list(self.ocr_confidence_notes or []),
            ocr_merge_notes=list(self.ocr_merge_notes or []),
            ocr_extracted_data=(
                dict(self.ocr_extracted_data)
                if self.ocr_extracted_data is not None else None
            ),
            ocr_fallback_used=self.ocr_fallback_used,
            needs_manual_review=self.needs_manual_review,
            ocr_pages=self.ocr_pages,
            ocr_processing_time_ms=self.ocr_processing_time_ms,
            ocr_tokens_in=self.ocr_tokens_in,
            ocr_tokens_out=self.ocr_tokens_out,
            ocr_cost_estimate=self.ocr_cost_estimate,
            rejected_by=self.rejected_by,
            rejected_at=self.rejected_at,
            rejected_reason=self.rejected_reason,
            notes=self.notes,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: InvoiceReceived) -> InvoiceReceivedModel:
        """Create ORM model from the domain aggregate (lines not included)."""
        return cls(
            id=dto.id,
            supplier_id=dto.supplier_id,
            centre_code=dto.centre_code,
            invoice_number=dto.invoice_number,
            invoice_date=dto.invoice_date,
            due_date=dto.due_date,
            subtotal=dto.subtotal,
            tax_total=dto.tax_total,
            total=dto.total,
            status=dto.status.value,
            approval_status=(
                dto.approval_status.value if dto.approval_status is not None else None
            ),
            requires_manager_approval=dto.requires_manager_approval,
            requires_accounting_approval=dto.requires_accounting_approval,
            ocr_engine=dto.ocr_engine,
            ocr_confidence=dto.ocr_confidence,
            ocr_confidence_notes=list(dto.ocr_confidence_notes),
            ocr_merge_notes=list(dto.ocr_merge_notes),
            ocr_extracted_data=dto.ocr_extracted_data,
            ocr_fallback_used=dto.ocr_fallback_used,
            needs_manual_review=dto.needs_manual_review,
            ocr_pages=dto.ocr_pages,
            ocr_processing_time_ms=dto.ocr_processing_time_ms,
            ocr_tokens_in=dto.ocr_tokens_in,
            ocr_tokens_out=dto.ocr_tokens_out,
            ocr_cost_estimate=dto.ocr_cost_estimate,
            rejected_by=dto.rejected_by,
            rejected_at=dto.rejected_at,
            rejected_reason=dto.rejected_reason,
            notes=dto.notes,
            version=dto.version,
        )


class InvoiceLineModel(Base):
    """Persistent invoice line, ordered by ``line_number``."""

    __tablename__ = "invoice_lines"

    __table_args__ = (
        UniqueConstraint("invoice_id", "line_number", name="uq_invoice_lines_number"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices_received.id"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    account_code: Mapped[str | None] = mapped_column(String(12), nullable=True)

    invoice: Mapped["InvoiceReceivedModel"] = relationship(
        "InvoiceReceivedModel",
        back_populates="lines",
    )

    def __repr__(self) -> str:
        return f"<InvoiceLine {self.invoice_id}#{self.line_number} total={self.total}>"

    def to_dto(self) -> InvoiceLine:
        """Convert ORM model to frozen domain DTO."""
        from invoice_kernel.domain.invoice import InvoiceLine

        return InvoiceLine(
            id=self.id,
            invoice_id=self.invoice_id,
            line_number=self.line_number,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            tax_rate=self.tax_rate,
            discount_percentage=self.discount_percentage,
            discount_amount=self.discount_amount,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total=self.total,
            account_code=self.account_code,
        )

    @classmethod
    def from_dto(cls, dto: InvoiceLine, invoice_id: UUID) -> InvoiceLineModel:
        """Create ORM model from domain DTO under ``invoice_id``."""
        kwargs = {}
        if dto.id is not None:
            kwargs["id"] = dto.id
        return cls(
            invoice_id=invoice_id,
            line_number=dto.line_number,
            description=dto.description,
            quantity=dto.quantity,
            unit_price=dto.unit_price,
            tax_rate=dto.tax_rate,
            discount_percentage=dto.discount_percentage,
            discount_amount=dto.discount_amount,
            subtotal=dto.subtotal,
            tax_amount=dto.tax_amount,
            total=dto.total,
            account_code=dto.account_code,
            **kwargs,
        )
