"""Persistence services for the invoice approval kernel."""

from invoice_kernel.services.approval_rule_service import ApprovalRuleService
from invoice_kernel.services.invoice_repository import InvoiceRepository

__all__ = [
    "ApprovalRuleService",
    "InvoiceRepository",
]
