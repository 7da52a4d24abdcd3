"""
Module: invoice_kernel.models.approval
Responsibility: ORM persistence for the approval history and the
    configurable approval rules.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions.py only.

Invariants enforced:
    - Approval history is append-only: ORM listeners reject UPDATE and
      DELETE of ``invoice_approvals`` rows.
    - A rejection row must carry comments (DB check constraint).
    - Rule ranges are well formed: ``max_amount IS NULL OR max_amount >=
      min_amount``.

Failure modes:
    - ImmutabilityViolationError on approval history UPDATE/DELETE.
    - IntegrityError on a malformed rule range or a rejection without
      comments.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from invoice_kernel.db.base import Base, UUIDString
from invoice_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from invoice_kernel.domain.approval import Approval, ApprovalRule


class ApprovalModel(Base):
    """Persistent approval or rejection decision. Append-only.

    ``sequence`` orders entries written at the same instant.
    """

    __tablename__ = "invoice_approvals"

    __table_args__ = (
        CheckConstraint(
            "approval_level IN ('manager', 'accounting')",
            name="ck_invoice_approvals_level",
        ),
        CheckConstraint(
            "action IN ('approved', 'rejected')",
            name="ck_invoice_approvals_action",
        ),
        CheckConstraint(
            "action <> 'rejected' OR comments IS NOT NULL",
            name="ck_invoice_approvals_rejection_comments",
        ),
        UniqueConstraint("invoice_id", "sequence", name="uq_invoice_approvals_sequence"),
        Index("ix_invoice_approvals_history", "invoice_id", "created_at"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices_received.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    approver_id: Mapped[str] = mapped_column(String(100), nullable=False)
    approval_level: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} invoice={self.invoice_id} "
            f"{self.approval_level}:{self.action}>"
        )

    def to_dto(self) -> Approval:
        """Convert ORM model to frozen domain DTO."""
        from invoice_kernel.domain.approval import (
            Approval,
            ApprovalAction,
            ApprovalLevel,
        )

        return Approval(
            approval_id=self.id,
            invoice_id=self.invoice_id,
            approver_id=self.approver_id,
            approval_level=ApprovalLevel(self.approval_level),
            action=ApprovalAction(self.action),
            comments=self.comments,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: Approval, sequence: int) -> ApprovalModel:
        """Create ORM model from domain DTO."""
        return cls(
            id=dto.approval_id,
            invoice_id=dto.invoice_id,
            sequence=sequence,
            approver_id=dto.approver_id,
            approval_level=dto.approval_level.value,
            action=dto.action.value,
            comments=dto.comments,
            created_at=dto.created_at,
        )


class ApprovalRuleModel(Base):
    """Persistent approval rule.

    ``centre_code`` NULL marks an organization-wide rule.  Inactive rules
    are kept for history and ignored by ApprovalRuleService.
    """

    __tablename__ = "approval_rules"

    __table_args__ = (
        CheckConstraint(
            "max_amount IS NULL OR max_amount >= min_amount",
            name="ck_approval_rules_range",
        ),
        CheckConstraint("min_amount >= 0", name="ck_approval_rules_min_non_negative"),
        Index("ix_approval_rules_centre", "centre_code", "is_active", "min_amount"),
    )

    rule_name: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    centre_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    min_amount: Mapped[Decimal] = mapped_column(nullable=False)
    max_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    requires_manager: Mapped[bool] = mapped_column(nullable=False)
    requires_accounting: Mapped[bool] = mapped_column(default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    def __repr__(self) -> str:
        upper = self.max_amount if self.max_amount is not None else "inf"
        return (
            f"<ApprovalRule {self.rule_name!r} centre={self.centre_code} "
            f"[{self.min_amount}, {upper}]>"
        )

    def to_dto(self) -> ApprovalRule:
        """Convert ORM model to frozen domain DTO."""
        from invoice_kernel.domain.approval import ApprovalRule

        return ApprovalRule(
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            requires_manager=self.requires_manager,
            requires_accounting=self.requires_accounting,
            rule_name=self.rule_name,
            centre_code=self.centre_code,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalRule, is_active: bool = True) -> ApprovalRuleModel:
        """Create ORM model from domain DTO."""
        return cls(
            rule_name=dto.rule_name,
            centre_code=dto.centre_code,
            min_amount=dto.min_amount,
            max_amount=dto.max_amount,
            requires_manager=dto.requires_manager,
            requires_accounting=dto.requires_accounting,
            is_active=is_active,
        )


# =============================================================================
# ORM-Level Immutability for Approval History (Append-Only)
# =============================================================================


@event.listens_for(ApprovalModel, "before_update")
def prevent_approval_update(mapper, connection, target):
    """Prevent updates to approval history rows."""
    raise ImmutabilityViolationError(
        entity_type="Approval",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot modify",
    )


@event.listens_for(ApprovalModel, "before_delete")
def prevent_approval_delete(mapper, connection, target):
    """Prevent deletion of approval history rows."""
    raise ImmutabilityViolationError(
        entity_type="Approval",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot delete",
    )
