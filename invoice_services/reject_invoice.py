"""
invoice_services.reject_invoice -- Reject use case.

Responsibility:
    Single orchestration entry point for a rejection: requires a reason,
    refuses terminal invoices, checks the rejector's capability at the
    pending level, keeps existing notes, and hands one atomic update to the
    persistence collaborator.

Architecture position:
    Services layer.  May import from invoice_engines/ (pure engines) and
    invoice_kernel/ (domain, exceptions, logging).

Invariants enforced:
    - Rejecting an already rejected invoice is an error, not a no-op.
    - Comments are appended to existing notes, never replace them.
    - A failed check performs no persistence call.

Failure modes:
    - MissingRejectionReasonError, InvoiceAlreadyApprovedError,
      InvoiceAlreadyRejectedError, InvalidApprovalTransitionError,
      ApprovalPermissionError before persistence.
    - StaleInvoiceStateError (and any persistence error) from the
      collaborator, unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass

from invoice_engines.approval import (
    can_user_approve,
    derive_invoice_status,
    determine_next_approval_status,
    get_pending_approval_level,
)
from invoice_kernel.domain.approval import ApprovalAction, ApprovalStatus
from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.invoice import InvoiceReceived, InvoiceUpdate
from invoice_kernel.domain.ports import InvoicePersistence
from invoice_kernel.exceptions import (
    ApprovalPermissionError,
    InvalidApprovalTransitionError,
    InvoiceAlreadyApprovedError,
    InvoiceAlreadyRejectedError,
    MissingRejectionReasonError,
)
from invoice_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.reject_invoice")

NOTES_SEPARATOR = "\n\n"


def append_notes(existing: str | None, comments: str | None) -> str | None:
    """Concatenate rejection comments onto existing free-text notes."""
    parts = [p for p in (existing, comments) if p and p.strip()]
    if not parts:
        return existing
    return NOTES_SEPARATOR.join(parts)


@dataclass(frozen=True)
class RejectInvoiceInput:
    invoice: InvoiceReceived
    rejector_user_id: str
    rejector_role: str
    reason: str
    comments: str | None = None


@dataclass(frozen=True)
class RejectInvoiceResult:
    updated_invoice: InvoiceReceived


class RejectInvoiceUseCase:
    """Reject an invoice at its pending level."""

    def __init__(
        self,
        persistence: InvoicePersistence,
        clock: Clock | None = None,
    ) -> None:
        self._persistence = persistence
        self._clock = clock or SystemClock()

    def execute(self, data: RejectInvoiceInput) -> RejectInvoiceResult:
        invoice = data.invoice

        with LogContext.bind(
            invoice_id=invoice.id,
            actor_id=data.rejector_user_id,
            actor_role=data.rejector_role,
        ):
            if not data.reason or not data.reason.strip():
                raise MissingRejectionReasonError(str(invoice.id))

            if invoice.approval_status == ApprovalStatus.APPROVED:
                raise InvoiceAlreadyApprovedError(str(invoice.id), "reject")
            if invoice.approval_status == ApprovalStatus.REJECTED:
                raise InvoiceAlreadyRejectedError(str(invoice.id), "reject")

            pending_level = get_pending_approval_level(invoice)
            if pending_level is None:
                raise InvalidApprovalTransitionError(
                    "none", ApprovalStatus.REJECTED.value,
                )

            if not can_user_approve(data.rejector_role, pending_level):
                logger.warning(
                    "rejection_permission_denied",
                    extra={"approval_level": pending_level.value},
                )
                raise ApprovalPermissionError(
                    data.rejector_user_id, data.rejector_role, pending_level.value,
                )

            next_status = determine_next_approval_status(
                invoice, pending_level, ApprovalAction.REJECTED,
            )
            reason = data.reason.strip()

            updated = self._persistence.update_invoice(
                invoice.id,
                InvoiceUpdate(
                    approval_status=next_status,
                    status=derive_invoice_status(next_status),
                    actor_id=data.rejector_user_id,
                    approval_level=pending_level,
                    action=ApprovalAction.REJECTED,
                    comments=data.comments or reason,
                    rejected_by=data.rejector_user_id,
                    rejected_reason=reason,
                    rejected_at=self._clock.now(),
                    notes=append_notes(invoice.notes, data.comments),
                ),
                expected_approval_status=invoice.approval_status,
            )

            logger.info(
                "invoice_rejected",
                extra={
                    "approval_level": pending_level.value,
                    "from_status": invoice.approval_status.value,
                    "reason": reason,
                },
            )
            return RejectInvoiceResult(updated_invoice=updated)
