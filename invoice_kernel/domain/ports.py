"""
Collaborator contracts (``invoice_kernel.domain.ports``).

The approval core does not own storage or configuration.  These
protocols are what the use cases and the workflow facade call; the
SQLAlchemy services in ``invoice_kernel.services`` and the YAML rule
source in ``invoice_config`` are the shipped implementations.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from invoice_kernel.domain.approval import Approval, ApprovalRule, ApprovalStatus
from invoice_kernel.domain.invoice import InvoiceReceived, InvoiceUpdate


class InvoicePersistence(Protocol):
    """Storage of invoices and their approval history."""

    def update_invoice(
        self,
        invoice_id: UUID,
        update: InvoiceUpdate,
        *,
        expected_approval_status: ApprovalStatus | None,
    ) -> InvoiceReceived:
        """Apply ``update`` atomically.

        Must only succeed while the stored approval status still equals
        ``expected_approval_status``; otherwise raise
        ``StaleInvoiceStateError`` and write nothing.
        """
        ...

    def get_approval_history(self, invoice_id: UUID) -> list[Approval]:
        """Approval history ordered by timestamp (read-only)."""
        ...


class ApprovalRuleSource(Protocol):
    """Organization / cost-centre approval rule configuration."""

    def get_approval_rules(self, centre_code: str | None = None) -> list[ApprovalRule]:
        """Centre rules, then organization-wide rules, each ascending by ``min_amount``.

        Falls back to organization-wide rules (``centre_code=None``) when
        no centre-specific rule matches; the first range containing the
        total wins.
        """
        ...
