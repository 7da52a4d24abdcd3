"""ORM models for the invoice approval kernel."""

from invoice_kernel.models.approval import ApprovalModel, ApprovalRuleModel
from invoice_kernel.models.invoice import InvoiceLineModel, InvoiceReceivedModel

__all__ = [
    "InvoiceReceivedModel",
    "InvoiceLineModel",
    "ApprovalModel",
    "ApprovalRuleModel",
]
