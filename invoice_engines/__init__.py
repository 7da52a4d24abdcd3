"""
Module: invoice_engines
Responsibility:
    Re-exports the pure decision engines: invoice validation, approval
    routing and authorization, and OCR consolidation.

Architecture position:
    Engines -- pure decision layer, zero I/O.
    May only import invoice_kernel/domain/ (and sibling engine modules).
    MUST NOT import invoice_services or invoice_config.

Invariants enforced:
    - Purity: engines never call ``datetime.now()`` or ``date.today()``.
      The business date is passed in explicitly.
    - Decimal-only arithmetic for amounts and confidences.
"""

from invoice_engines.approval import (
    DEFAULT_APPROVAL_RULES,
    ROLE_APPROVAL_LEVELS,
    can_user_approve,
    derive_invoice_status,
    determine_approval_requirements,
    determine_next_approval_status,
    get_pending_approval_level,
    initial_approval_status,
    is_fully_approved,
    is_pending_approval,
    select_matching_rule,
)
from invoice_engines.ocr_consolidation import (
    apply_consolidation,
    confidence_band,
    consolidate_extractions,
)
from invoice_engines.validator import (
    VALID_TAX_RATES,
    can_approve,
    can_change_status,
    can_reject,
    validate_invoice_line,
    validate_invoice_received,
)

__all__ = [
    # Approval
    "DEFAULT_APPROVAL_RULES",
    "ROLE_APPROVAL_LEVELS",
    "can_user_approve",
    "derive_invoice_status",
    "determine_approval_requirements",
    "determine_next_approval_status",
    "get_pending_approval_level",
    "initial_approval_status",
    "is_fully_approved",
    "is_pending_approval",
    "select_matching_rule",
    # OCR
    "apply_consolidation",
    "confidence_band",
    "consolidate_extractions",
    # Validation
    "VALID_TAX_RATES",
    "can_approve",
    "can_change_status",
    "can_reject",
    "validate_invoice_line",
    "validate_invoice_received",
]
