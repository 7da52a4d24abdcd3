"""
invoice_kernel.services.invoice_repository -- Invoice persistence collaborator.

Responsibility:
    Reference SQLAlchemy implementation of ``InvoicePersistence``.  Loads
    invoices and lines, applies approval decisions as one conditional
    write, appends the approval history, and stores OCR projections.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - At most one approval transition per invoice state: the UPDATE is
      conditioned on ``id``, the expected ``approval_status`` and the
      ``version`` read in the same transaction.  Zero affected rows means
      another writer got there first.
    - The status write and its history row are flushed together; the
      caller owns the transaction and commits or rolls back both.
    - Approval history is append-only (see models/approval.py).

Failure modes:
    - InvoiceNotFoundError if the invoice does not exist.
    - StaleInvoiceStateError if the stored approval status differs from the
      expected one or the row changed between read and write.
    - SQLAlchemy errors propagate unchanged.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy import update as sql_update
from sqlalchemy.orm import Session

from invoice_kernel.domain.approval import Approval, ApprovalStatus
from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.invoice import InvoiceLine, InvoiceReceived, InvoiceUpdate
from invoice_kernel.exceptions import InvoiceNotFoundError, StaleInvoiceStateError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.approval import ApprovalModel
from invoice_kernel.models.invoice import InvoiceLineModel, InvoiceReceivedModel

logger = get_logger("services.invoice_repository")


def _jsonable(value: Any) -> Any:
    """Convert extracted OCR values into JSON column friendly values."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


class InvoiceRepository:
    """SQLAlchemy-backed invoice persistence.  Flushes, never commits."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def _get_model(self, invoice_id: UUID) -> InvoiceReceivedModel:
        model = self._session.get(InvoiceReceivedModel, invoice_id)
        if model is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return model

    def get_invoice(self, invoice_id: UUID) -> InvoiceReceived:
        """Load an invoice as a domain aggregate."""
        return self._get_model(invoice_id).to_dto()

    def get_lines(self, invoice_id: UUID) -> list[InvoiceLine]:
        """Load an invoice's lines ordered by line number."""
        self._get_model(invoice_id)
        rows = self._session.scalars(
            select(InvoiceLineModel)
            .where(InvoiceLineModel.invoice_id == invoice_id)
            .order_by(InvoiceLineModel.line_number)
        ).all()
        return [row.to_dto() for row in rows]

    def get_approval_history(self, invoice_id: UUID) -> list[Approval]:
        """Approval history ordered by timestamp, oldest first."""
        rows = self._session.scalars(
            select(ApprovalModel)
            .where(ApprovalModel.invoice_id == invoice_id)
            .order_by(ApprovalModel.created_at, ApprovalModel.sequence)
        ).all()
        return [row.to_dto() for row in rows]

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    def add_invoice(
        self,
        invoice: InvoiceReceived,
        lines: Sequence[InvoiceLine] = (),
    ) -> InvoiceReceived:
        """Insert a new invoice with its lines."""
        model = InvoiceReceivedModel.from_dto(invoice)
        for line in lines:
            model.lines.append(InvoiceLineModel.from_dto(line, invoice.id))
        self._session.add(model)
        self._session.flush()

        logger.info(
            "invoice_added",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "line_count": len(lines),
            },
        )
        return model.to_dto()

    def update_invoice(
        self,
        invoice_id: UUID,
        update: InvoiceUpdate,
        *,
        expected_approval_status: ApprovalStatus | None,
    ) -> InvoiceReceived:
        """Apply an approval decision atomically.

        Preconditions:
            The stored ``approval_status`` equals ``expected_approval_status``.

        Postconditions:
            Status columns are written, ``version`` is incremented and, when
            ``update.action`` is set, one Approval row is appended.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist.
            StaleInvoiceStateError: If the precondition does not hold.
        """
        expected_value = (
            expected_approval_status.value
            if expected_approval_status is not None else None
        )

        current = self._session.execute(
            select(InvoiceReceivedModel.approval_status, InvoiceReceivedModel.version)
            .where(InvoiceReceivedModel.id == invoice_id)
        ).one_or_none()
        if current is None:
            raise InvoiceNotFoundError(str(invoice_id))

        stored_status, version = current
        if stored_status != expected_value:
            logger.warning(
                "invoice_state_stale",
                extra={
                    "invoice_id": str(invoice_id),
                    "expected_status": expected_value,
                    "stored_status": stored_status,
                },
            )
            raise StaleInvoiceStateError(str(invoice_id), str(expected_value))

        if expected_value is None:
            status_clause = InvoiceReceivedModel.approval_status.is_(None)
        else:
            status_clause = InvoiceReceivedModel.approval_status == expected_value

        values: dict[str, Any] = {
            "approval_status": update.approval_status.value,
            "status": update.status.value,
            "version": version + 1,
        }
        optional = {
            "rejected_by": update.rejected_by,
            "rejected_reason": update.rejected_reason,
            "rejected_at": update.rejected_at,
            "notes": update.notes,
            "requires_manager_approval": update.requires_manager_approval,
            "requires_accounting_approval": update.requires_accounting_approval,
        }
        values.update({k: v for k, v in optional.items() if v is not None})

        result = self._session.execute(
            sql_update(InvoiceReceivedModel)
            .where(InvoiceReceivedModel.id == invoice_id)
            .where(status_clause)
            .where(InvoiceReceivedModel.version == version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "invoice_update_conflict",
                extra={"invoice_id": str(invoice_id), "version": version},
            )
            raise StaleInvoiceStateError(str(invoice_id), str(expected_value))

        if update.action is not None and update.actor_id is not None:
            self._append_history(invoice_id, update)

        self._session.flush()

        model = self._session.get(
            InvoiceReceivedModel, invoice_id, populate_existing=True,
        )
        logger.info(
            "invoice_updated",
            extra={
                "invoice_id": str(invoice_id),
                "from_status": expected_value,
                "to_status": update.approval_status.value,
                "version": version + 1,
            },
        )
        return model.to_dto()

    def _append_history(self, invoice_id: UUID, update: InvoiceUpdate) -> None:
        next_sequence = self._session.scalar(
            select(func.coalesce(func.max(ApprovalModel.sequence), 0))
            .where(ApprovalModel.invoice_id == invoice_id)
        ) + 1

        entry = Approval(
            approval_id=uuid4(),
            invoice_id=invoice_id,
            approver_id=update.actor_id,
            approval_level=update.approval_level,
            action=update.action,
            comments=update.comments,
            created_at=self._clock.now(),
        )
        self._session.add(ApprovalModel.from_dto(entry, sequence=next_sequence))

    def save_ocr_projection(self, invoice: InvoiceReceived) -> InvoiceReceived:
        """Store the OCR columns of ``invoice``.

        Approval columns and ``version`` are left alone: extraction data is
        advisory and never races an approval decision.
        """
        model = self._get_model(invoice.id)
        model.ocr_engine = invoice.ocr_engine
        model.ocr_confidence = invoice.ocr_confidence
        model.ocr_confidence_notes = list(invoice.ocr_confidence_notes)
        model.ocr_merge_notes = list(invoice.ocr_merge_notes)
        model.ocr_extracted_data = (
            _jsonable(invoice.ocr_extracted_data)
            if invoice.ocr_extracted_data is not None else None
        )
        model.ocr_fallback_used = invoice.ocr_fallback_used
        model.needs_manual_review = invoice.needs_manual_review
        model.ocr_pages = invoice.ocr_pages
        model.ocr_processing_time_ms = invoice.ocr_processing_time_ms
        model.ocr_tokens_in = invoice.ocr_tokens_in
        model.ocr_tokens_out = invoice.ocr_tokens_out
        model.ocr_cost_estimate = invoice.ocr_cost_estimate
        self._session.flush()

        logger.info(
            "invoice_ocr_saved",
            extra={
                "invoice_id": str(invoice.id),
                "ocr_engine": invoice.ocr_engine,
                "needs_manual_review": invoice.needs_manual_review,
            },
        )
        return model.to_dto()
