"""
Pure domain layer.

This module contains pure value objects and collaborator contracts
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (time is injected through ``Clock``)
"""

from invoice_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    PENDING_APPROVAL_STATUSES,
    TERMINAL_APPROVAL_STATUSES,
    Approval,
    ApprovalAction,
    ApprovalLevel,
    ApprovalRequirements,
    ApprovalRule,
    ApprovalStatus,
)
from invoice_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from invoice_kernel.domain.invoice import (
    InvoiceLine,
    InvoiceReceived,
    InvoiceStatus,
    InvoiceUpdate,
)
from invoice_kernel.domain.ocr import (
    ConfidenceBand,
    ConsolidatedExtraction,
    ExtractedField,
    ExtractionMetrics,
    ExtractionResult,
    OCRThresholds,
)
from invoice_kernel.domain.ports import ApprovalRuleSource, InvoicePersistence
from invoice_kernel.domain.validation import ValidationError, ValidationResult

__all__ = [
    # Approval lifecycle
    "APPROVAL_TRANSITIONS",
    "PENDING_APPROVAL_STATUSES",
    "TERMINAL_APPROVAL_STATUSES",
    "Approval",
    "ApprovalAction",
    "ApprovalLevel",
    "ApprovalRequirements",
    "ApprovalRule",
    "ApprovalStatus",
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Invoice
    "InvoiceLine",
    "InvoiceReceived",
    "InvoiceStatus",
    "InvoiceUpdate",
    # OCR
    "ConfidenceBand",
    "ConsolidatedExtraction",
    "ExtractedField",
    "ExtractionMetrics",
    "ExtractionResult",
    "OCRThresholds",
    # Ports
    "ApprovalRuleSource",
    "InvoicePersistence",
    # Validation
    "ValidationError",
    "ValidationResult",
]
