"""
invoice_engines.approval -- Pure approval routing and authorization engine.

Responsibility:
    Decide which approval gates an invoice needs for its total, which
    approval status follows an approve/reject action, and whether a role
    may act at a given level.  The only component aware of monetary
    thresholds and role capability.

Architecture position:
    Engines -- pure decision layer, zero I/O.
    May only import invoice_kernel/domain/ types.

Invariants enforced:
    - Rule ordering: centre-specific rules are scanned before
      organization-wide ones, each ascending by ``min_amount``; the first
      range containing the total wins.
    - Boundaries: totals are quantized to cents (ROUND_HALF_UP) and both
      range bounds are inclusive, so 500.00 falls in the lowest tier and
      500.01 in the next.
    - Rejection always yields ``rejected``; accounting is always the final
      gate.
    - Role capability is a closed table, not behaviour per role.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - No matching rule returns accounting-only requirements and logs a
      warning (fail-safe toward review, never toward auto-approval).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol, Sequence

from invoice_kernel.domain.approval import (
    PENDING_APPROVAL_STATUSES,
    ApprovalAction,
    ApprovalLevel,
    ApprovalRequirements,
    ApprovalRule,
    ApprovalStatus,
)
from invoice_kernel.domain.invoice import InvoiceStatus
from invoice_kernel.logging_config import get_logger

from invoice_engines.tracer import traced_engine

logger = get_logger("engines.approval")

CENT = Decimal("0.01")

DEFAULT_APPROVAL_RULES: tuple[ApprovalRule, ...] = (
    ApprovalRule(
        min_amount=Decimal("0"),
        max_amount=Decimal("500.00"),
        requires_manager=False,
        requires_accounting=True,
        rule_name="accounting_only",
    ),
    ApprovalRule(
        min_amount=Decimal("500.01"),
        max_amount=Decimal("2000.00"),
        requires_manager=True,
        requires_accounting=True,
        rule_name="manager_and_accounting",
    ),
    ApprovalRule(
        min_amount=Decimal("2000.01"),
        max_amount=None,
        requires_manager=True,
        requires_accounting=True,
        rule_name="large_amount",
    ),
)

# Role -> levels it may approve or reject at.  Unknown roles get nothing.
ROLE_APPROVAL_LEVELS: dict[str, frozenset[ApprovalLevel]] = {
    "admin": frozenset({ApprovalLevel.MANAGER, ApprovalLevel.ACCOUNTING}),
    "manager": frozenset({ApprovalLevel.MANAGER}),
    "accountant": frozenset({ApprovalLevel.ACCOUNTING}),
    "viewer": frozenset(),
}

# Roles allowed to act at a level other than the one pending
LEVEL_MISMATCH_EXEMPT_ROLES: frozenset[str] = frozenset({"admin"})


class _HasApprovalState(Protocol):
    approval_status: ApprovalStatus | None
    requires_manager_approval: bool
    requires_accounting_approval: bool


def quantize_total(total: Decimal) -> Decimal:
    """Round a total to cents the way tier matching sees it."""
    return Decimal(total).quantize(CENT, rounding=ROUND_HALF_UP)


def select_matching_rule(
    rules: Sequence[ApprovalRule],
    total: Decimal,
) -> ApprovalRule | None:
    """First rule whose range contains ``total``.

    Centre-specific rules come first so a total none of them covers falls
    through to the organization-wide tiers.
    """
    for rule in sorted(rules, key=lambda r: (r.centre_code is None, r.min_amount)):
        if rule.contains(total):
            return rule
    return None


@traced_engine("approval_requirements", "1.0", fingerprint_fields=("total", "rules"))
def determine_approval_requirements(
    total: Decimal,
    rules: Sequence[ApprovalRule] | None = None,
) -> ApprovalRequirements:
    """Approval gates required for an invoice total.

    Args:
        total: Invoice total.
        rules: Custom rule set.  When given (even empty) it fully replaces
            ``DEFAULT_APPROVAL_RULES``.

    Returns:
        ApprovalRequirements; ``next_approval_level`` is ``manager`` when
        manager approval is required, else ``accounting``.
    """
    applicable = DEFAULT_APPROVAL_RULES if rules is None else tuple(rules)
    amount = quantize_total(total)
    rule = select_matching_rule(applicable, amount)

    if rule is None:
        logger.warning(
            "approval_rule_not_found",
            extra={"total": str(amount), "rule_count": len(applicable)},
        )
        return ApprovalRequirements(
            requires_manager_approval=False,
            requires_accounting_approval=True,
            next_approval_level=ApprovalLevel.ACCOUNTING,
        )

    next_level = ApprovalLevel.MANAGER if rule.requires_manager else ApprovalLevel.ACCOUNTING
    return ApprovalRequirements(
        requires_manager_approval=rule.requires_manager,
        requires_accounting_approval=rule.requires_accounting,
        next_approval_level=next_level,
        matched_rule=rule,
    )


def initial_approval_status(requirements: ApprovalRequirements) -> ApprovalStatus:
    """Approval status an invoice enters the workflow with."""
    if requirements.requires_manager_approval:
        return ApprovalStatus.PENDING_MANAGER
    return ApprovalStatus.PENDING_ACCOUNTING


def determine_next_approval_status(
    invoice: _HasApprovalState,
    level: ApprovalLevel,
    action: ApprovalAction,
) -> ApprovalStatus:
    """Approval status after ``action`` at ``level``.

    Depends only on the invoice's requirement flags, never on its history.
    """
    if action == ApprovalAction.REJECTED:
        return ApprovalStatus.REJECTED

    if level == ApprovalLevel.MANAGER and invoice.requires_accounting_approval:
        return ApprovalStatus.PENDING_ACCOUNTING

    return ApprovalStatus.APPROVED


def can_user_approve(role: str, level: ApprovalLevel | None) -> bool:
    """Whether ``role`` may approve or reject at ``level``."""
    if level is None:
        return False
    return level in ROLE_APPROVAL_LEVELS.get(role, frozenset())


def get_pending_approval_level(invoice: _HasApprovalState) -> ApprovalLevel | None:
    if invoice.approval_status == ApprovalStatus.PENDING_MANAGER:
        return ApprovalLevel.MANAGER
    if invoice.approval_status == ApprovalStatus.PENDING_ACCOUNTING:
        return ApprovalLevel.ACCOUNTING
    return None


def is_fully_approved(invoice: _HasApprovalState) -> bool:
    return invoice.approval_status == ApprovalStatus.APPROVED


def is_pending_approval(invoice: _HasApprovalState) -> bool:
    return invoice.approval_status in PENDING_APPROVAL_STATUSES


def derive_invoice_status(approval_status: ApprovalStatus) -> InvoiceStatus:
    """Operational status implied by an approval status."""
    if approval_status == ApprovalStatus.APPROVED:
        return InvoiceStatus.APPROVED
    if approval_status == ApprovalStatus.REJECTED:
        return InvoiceStatus.REJECTED
    return InvoiceStatus.PENDING
