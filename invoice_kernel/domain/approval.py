"""
Approval domain types (``invoice_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the two-gate invoice approval workflow: the
approval lifecycle state machine, approval levels and actions, amount
range rules, computed requirements and the append-only history record.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Lifecycle state machine -- ``APPROVAL_TRANSITIONS`` defines the only
  valid approval status changes.  ``approved`` and ``rejected`` are
  terminal and have no outgoing edges.
* Approval status is distinct from the operational invoice status; the
  mapping between them lives in the approval engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =========================================================================
# Approval Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Approval lifecycle states of a received invoice."""

    PENDING_MANAGER = "pending_manager"
    PENDING_ACCOUNTING = "pending_accounting"
    APPROVED = "approved"
    REJECTED = "rejected"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING_MANAGER: frozenset({
        ApprovalStatus.PENDING_ACCOUNTING,
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
    }),
    ApprovalStatus.PENDING_ACCOUNTING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
})

PENDING_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.PENDING_MANAGER,
    ApprovalStatus.PENDING_ACCOUNTING,
})


class ApprovalLevel(str, Enum):
    """Organizational gate an invoice must pass."""

    MANAGER = "manager"
    ACCOUNTING = "accounting"


class ApprovalAction(str, Enum):
    """What an approver did at a level."""

    APPROVED = "approved"
    REJECTED = "rejected"


# =========================================================================
# Rule and Requirement Types
# =========================================================================


@dataclass(frozen=True)
class ApprovalRule:
    """An amount range and the gates it requires.

    Both bounds are inclusive.  ``max_amount=None`` means unbounded.
    ``centre_code=None`` marks an organization-wide rule.
    """

    min_amount: Decimal
    max_amount: Decimal | None
    requires_manager: bool
    requires_accounting: bool
    rule_name: str = ""
    centre_code: str | None = None

    def contains(self, amount: Decimal) -> bool:
        """True when ``amount`` falls inside ``[min_amount, max_amount]``."""
        if amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True


@dataclass(frozen=True)
class ApprovalRequirements:
    """Gates an invoice needs, computed once at submission time."""

    requires_manager_approval: bool
    requires_accounting_approval: bool
    next_approval_level: ApprovalLevel
    matched_rule: ApprovalRule | None = None


# =========================================================================
# History Record
# =========================================================================


@dataclass(frozen=True)
class Approval:
    """One approval or rejection decision.  Append-only."""

    approval_id: UUID
    invoice_id: UUID
    approver_id: str
    approval_level: ApprovalLevel
    action: ApprovalAction
    comments: str | None = None
    created_at: datetime | None = None

    def __post_init__(self):
        if self.action == ApprovalAction.REJECTED and not (self.comments or "").strip():
            raise ValueError("A rejection history entry requires comments")
