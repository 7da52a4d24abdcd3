"""
invoice_services.approve_invoice -- Approve use case.

Responsibility:
    Single orchestration entry point for an approval action: checks the
    approver's capability, the invoice's lifecycle state and the pending
    level, computes the next state with the approval engine, and hands one
    atomic update to the persistence collaborator.

Architecture position:
    Services layer.  May import from invoice_engines/ (pure engines) and
    invoice_kernel/ (domain, exceptions, logging).

Invariants enforced:
    - Every check runs before persistence; a failed check performs no
      persistence call.
    - The update is conditioned on the approval status the decision was
      computed from.

Failure modes:
    - ApprovalPermissionError, InvoiceAlreadyApprovedError,
      InvoiceAlreadyRejectedError, ApprovalLevelMismatchError,
      InvalidApprovalTransitionError before persistence.
    - StaleInvoiceStateError (and any persistence error) from the
      collaborator, unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass

from invoice_engines.approval import (
    LEVEL_MISMATCH_EXEMPT_ROLES,
    can_user_approve,
    derive_invoice_status,
    determine_next_approval_status,
    get_pending_approval_level,
)
from invoice_engines.validator import can_change_status
from invoice_kernel.domain.approval import ApprovalAction, ApprovalLevel, ApprovalStatus
from invoice_kernel.domain.invoice import InvoiceReceived, InvoiceUpdate
from invoice_kernel.domain.ports import InvoicePersistence
from invoice_kernel.exceptions import (
    ApprovalLevelMismatchError,
    ApprovalPermissionError,
    InvalidApprovalTransitionError,
    InvoiceAlreadyApprovedError,
    InvoiceAlreadyRejectedError,
)
from invoice_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.approve_invoice")


@dataclass(frozen=True)
class ApproveInvoiceInput:
    invoice: InvoiceReceived
    approver_user_id: str
    approver_role: str
    approval_level: ApprovalLevel
    comments: str | None = None


@dataclass(frozen=True)
class ApproveInvoiceResult:
    next_approval_status: ApprovalStatus
    updated_invoice: InvoiceReceived


class ApproveInvoiceUseCase:
    """Approve an invoice at one level."""

    def __init__(self, persistence: InvoicePersistence) -> None:
        self._persistence = persistence

    def execute(self, data: ApproveInvoiceInput) -> ApproveInvoiceResult:
        invoice = data.invoice
        level = ApprovalLevel(data.approval_level)

        with LogContext.bind(
            invoice_id=invoice.id,
            actor_id=data.approver_user_id,
            actor_role=data.approver_role,
        ):
            if not can_user_approve(data.approver_role, level):
                logger.warning(
                    "approval_permission_denied",
                    extra={"approval_level": level.value},
                )
                raise ApprovalPermissionError(
                    data.approver_user_id, data.approver_role, level.value,
                )

            if invoice.approval_status == ApprovalStatus.APPROVED:
                raise InvoiceAlreadyApprovedError(str(invoice.id), "approve")
            if invoice.approval_status == ApprovalStatus.REJECTED:
                raise InvoiceAlreadyRejectedError(str(invoice.id), "approve")

            pending_level = get_pending_approval_level(invoice)
            if (
                data.approver_role not in LEVEL_MISMATCH_EXEMPT_ROLES
                and level != pending_level
            ):
                logger.warning(
                    "approval_level_mismatch",
                    extra={
                        "requested_level": level.value,
                        "pending_level": pending_level.value if pending_level else None,
                    },
                )
                raise ApprovalLevelMismatchError(
                    str(invoice.id),
                    level.value,
                    pending_level.value if pending_level else None,
                )

            next_status = determine_next_approval_status(
                invoice, level, ApprovalAction.APPROVED,
            )
            if invoice.approval_status is None:
                raise InvalidApprovalTransitionError("none", next_status.value)
            if not can_change_status(invoice.approval_status, next_status).is_valid:
                raise InvalidApprovalTransitionError(
                    invoice.approval_status.value, next_status.value,
                )

            updated = self._persistence.update_invoice(
                invoice.id,
                InvoiceUpdate(
                    approval_status=next_status,
                    status=derive_invoice_status(next_status),
                    actor_id=data.approver_user_id,
                    approval_level=level,
                    action=ApprovalAction.APPROVED,
                    comments=data.comments,
                ),
                expected_approval_status=invoice.approval_status,
            )

            logger.info(
                "invoice_approved",
                extra={
                    "approval_level": level.value,
                    "from_status": invoice.approval_status.value,
                    "to_status": next_status.value,
                },
            )
            return ApproveInvoiceResult(
                next_approval_status=next_status,
                updated_invoice=updated,
            )
