"""
invoice_services.approval_workflow -- API surface of the approval core.

Responsibility:
    The entry point an API or UI layer calls.  Loads invoices through the
    persistence collaborator, routes approve/reject to the use cases,
    exposes validation and requirement lookup, submits invoices into the
    approval state machine, and records OCR extraction results.

Architecture position:
    Services layer.  Thin coordinator: decisions live in invoice_engines,
    storage in the collaborators handed to the constructor.

Invariants enforced:
    - Requirement flags are computed once, at submission, and persisted.
    - Recording an extraction never changes approval state.
    - The facade flushes through its collaborators and never commits.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from invoice_config.schema import WorkflowConfig
from invoice_config.sources import ConfiguredApprovalRuleSource
from invoice_engines.approval import (
    DEFAULT_APPROVAL_RULES,
    derive_invoice_status,
    determine_approval_requirements,
    initial_approval_status,
)
from invoice_engines.ocr_consolidation import apply_consolidation, consolidate_extractions
from invoice_engines.validator import validate_invoice_received
from invoice_kernel.domain.approval import (
    Approval,
    ApprovalLevel,
    ApprovalRequirements,
    ApprovalRule,
)
from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.invoice import InvoiceLine, InvoiceReceived, InvoiceUpdate
from invoice_kernel.domain.ocr import ExtractionResult, OCRThresholds
from invoice_kernel.domain.ports import ApprovalRuleSource, InvoicePersistence
from invoice_kernel.domain.validation import ValidationResult
from invoice_kernel.exceptions import (
    InvalidApprovalTransitionError,
    InvoiceValidationError,
)
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.services.approval_rule_service import ApprovalRuleService
from invoice_kernel.services.invoice_repository import InvoiceRepository

from invoice_services.approve_invoice import (
    ApproveInvoiceInput,
    ApproveInvoiceResult,
    ApproveInvoiceUseCase,
)
from invoice_services.reject_invoice import (
    RejectInvoiceInput,
    RejectInvoiceResult,
    RejectInvoiceUseCase,
)

logger = get_logger("services.approval_workflow")


class InvoiceStore(InvoicePersistence, Protocol):
    """Persistence the facade needs beyond the approval write."""

    def get_invoice(self, invoice_id: UUID) -> InvoiceReceived: ...

    def get_lines(self, invoice_id: UUID) -> list[InvoiceLine]: ...

    def save_ocr_projection(self, invoice: InvoiceReceived) -> InvoiceReceived: ...


class InvoiceApprovalWorkflow:
    """Approval workflow facade."""

    def __init__(
        self,
        store: InvoiceStore,
        rule_source: ApprovalRuleSource,
        clock: Clock | None = None,
        ocr_thresholds: OCRThresholds | None = None,
    ) -> None:
        self._store = store
        self._rule_source = rule_source
        self._clock = clock or SystemClock()
        self._ocr_thresholds = ocr_thresholds or OCRThresholds()
        self._approve = ApproveInvoiceUseCase(store)
        self._reject = RejectInvoiceUseCase(store, self._clock)

    # -----------------------------------------------------------------
    # Decisions
    # -----------------------------------------------------------------

    def approve(
        self,
        invoice_id: UUID,
        approver_user_id: str,
        approver_role: str,
        level: ApprovalLevel | str,
        comments: str | None = None,
    ) -> ApproveInvoiceResult:
        invoice = self._store.get_invoice(invoice_id)
        return self._approve.execute(ApproveInvoiceInput(
            invoice=invoice,
            approver_user_id=approver_user_id,
            approver_role=approver_role,
            approval_level=ApprovalLevel(level),
            comments=comments,
        ))

    def reject(
        self,
        invoice_id: UUID,
        rejector_user_id: str,
        rejector_role: str,
        reason: str,
        comments: str | None = None,
    ) -> RejectInvoiceResult:
        invoice = self._store.get_invoice(invoice_id)
        return self._reject.execute(RejectInvoiceInput(
            invoice=invoice,
            rejector_user_id=rejector_user_id,
            rejector_role=rejector_role,
            reason=reason,
            comments=comments,
        ))

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def validate_invoice(
        self,
        invoice: InvoiceReceived,
        lines: Sequence[InvoiceLine],
    ) -> ValidationResult:
        return validate_invoice_received(invoice, lines, as_of=self._clock.today())

    def _rules_for(self, centre_code: str | None) -> list[ApprovalRule]:
        rules = self._rule_source.get_approval_rules(centre_code)
        # No organization-wide rules configured: the built-in tiers stand in
        if not any(rule.centre_code is None for rule in rules):
            rules = [*rules, *DEFAULT_APPROVAL_RULES]
        return rules

    def get_approval_requirements(
        self,
        total: Decimal,
        centre_code: str | None = None,
    ) -> ApprovalRequirements:
        return determine_approval_requirements(total, self._rules_for(centre_code))

    def get_approval_history(self, invoice_id: UUID) -> list[Approval]:
        return self._store.get_approval_history(invoice_id)

    # -----------------------------------------------------------------
    # Intake
    # -----------------------------------------------------------------

    def submit_for_approval(self, invoice_id: UUID) -> InvoiceReceived:
        """Validate an invoice and enter it into the approval state machine.

        Raises:
            InvoiceValidationError: If the invoice is structurally invalid.
            InvalidApprovalTransitionError: If it was already submitted.
        """
        invoice = self._store.get_invoice(invoice_id)

        with LogContext.bind(invoice_id=invoice.id, centre_code=invoice.centre_code):
            if invoice.approval_status is not None:
                raise InvalidApprovalTransitionError(
                    invoice.approval_status.value, "submitted",
                )

            lines = self._store.get_lines(invoice_id)
            validation = self.validate_invoice(invoice, lines)
            if not validation.is_valid:
                logger.warning(
                    "invoice_submission_invalid",
                    extra={"error_codes": list(validation.codes)},
                )
                raise InvoiceValidationError(
                    str(invoice.id), [e.to_dict() for e in validation.errors],
                )

            requirements = self.get_approval_requirements(
                invoice.total, invoice.centre_code,
            )
            first_status = initial_approval_status(requirements)

            updated = self._store.update_invoice(
                invoice.id,
                InvoiceUpdate(
                    approval_status=first_status,
                    status=derive_invoice_status(first_status),
                    requires_manager_approval=requirements.requires_manager_approval,
                    requires_accounting_approval=requirements.requires_accounting_approval,
                ),
                expected_approval_status=None,
            )

            logger.info(
                "approval_requirements_determined",
                extra={
                    "total": str(invoice.total),
                    "requires_manager_approval": requirements.requires_manager_approval,
                    "requires_accounting_approval": requirements.requires_accounting_approval,
                    "matched_rule": (
                        requirements.matched_rule.rule_name
                        if requirements.matched_rule else None
                    ),
                    "approval_status": first_status.value,
                },
            )
            return updated

    def record_extraction(
        self,
        invoice_id: UUID,
        results: Sequence[ExtractionResult],
    ) -> InvoiceReceived:
        """Consolidate OCR passes and store the projection on the invoice."""
        invoice = self._store.get_invoice(invoice_id)
        with LogContext.bind(invoice_id=invoice.id):
            consolidated = consolidate_extractions(results, self._ocr_thresholds)
            projected = apply_consolidation(invoice, consolidated)
            return self._store.save_ocr_projection(projected)


def build_workflow(
    session: Session,
    clock: Clock | None = None,
    config: WorkflowConfig | None = None,
) -> InvoiceApprovalWorkflow:
    """Wire the facade to the SQLAlchemy collaborators.

    With ``config``, approval rules and OCR thresholds come from the YAML
    configuration; otherwise rules are read from the ``approval_rules``
    table and the default thresholds apply.
    """
    clock = clock or SystemClock()
    if config is not None:
        rule_source: ApprovalRuleSource = ConfiguredApprovalRuleSource(config)
        thresholds = config.ocr_thresholds()
    else:
        rule_source = ApprovalRuleService(session)
        thresholds = None

    return InvoiceApprovalWorkflow(
        store=InvoiceRepository(session, clock),
        rule_source=rule_source,
        clock=clock,
        ocr_thresholds=thresholds,
    )
