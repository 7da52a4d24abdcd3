"""
invoice_services -- approval use cases and the workflow facade.

Usage:
    from invoice_kernel.db.engine import session_scope
    from invoice_services import build_workflow

    with session_scope() as session:
        workflow = build_workflow(session)
        workflow.approve(invoice_id, "user-1", "manager", "manager")
"""

from invoice_services.approval_workflow import (
    InvoiceApprovalWorkflow,
    build_workflow,
)
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

__all__ = [
    "ApproveInvoiceInput",
    "ApproveInvoiceResult",
    "ApproveInvoiceUseCase",
    "InvoiceApprovalWorkflow",
    "RejectInvoiceInput",
    "RejectInvoiceResult",
    "RejectInvoiceUseCase",
    "build_workflow",
]
