"""
invoice_kernel.services.approval_rule_service -- Approval rule lookup.

Responsibility:
    Reference SQLAlchemy implementation of ``ApprovalRuleSource``.  Returns
    the active rules of a cost centre followed by the organization-wide
    rules, so a total that no centre rule matches falls back to the
    organization tiers.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Centre rules precede organization-wide rules; each group is ascending
      by ``min_amount``.
    - Rules of other centres are never returned.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from invoice_kernel.domain.approval import ApprovalRule
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.approval import ApprovalRuleModel

logger = get_logger("services.approval_rule_service")


class ApprovalRuleService:
    """Reads approval rules from the ``approval_rules`` table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _active_rules(self, centre_code: str | None) -> list[ApprovalRule]:
        if centre_code is None:
            centre_clause = ApprovalRuleModel.centre_code.is_(None)
        else:
            centre_clause = ApprovalRuleModel.centre_code == centre_code

        rows = self._session.scalars(
            select(ApprovalRuleModel)
            .where(centre_clause)
            .where(ApprovalRuleModel.is_active.is_(True))
            .order_by(ApprovalRuleModel.min_amount)
        ).all()
        return [row.to_dto() for row in rows]

    def get_approval_rules(self, centre_code: str | None = None) -> list[ApprovalRule]:
        """Active rules for ``centre_code``, then the organization-wide ones."""
        centre_rules = self._active_rules(centre_code) if centre_code is not None else []
        organization_rules = self._active_rules(None)

        logger.debug(
            "approval_rules_loaded",
            extra={
                "centre_code": centre_code,
                "centre_rule_count": len(centre_rules),
                "rule_count": len(centre_rules) + len(organization_rules),
            },
        )
        return centre_rules + organization_rules

    def add_rule(self, rule: ApprovalRule, is_active: bool = True) -> ApprovalRule:
        """Insert a rule.  Flushes, never commits."""
        model = ApprovalRuleModel.from_dto(rule, is_active=is_active)
        self._session.add(model)
        self._session.flush()
        logger.info(
            "approval_rule_added",
            extra={
                "rule_name": rule.rule_name,
                "centre_code": rule.centre_code,
                "min_amount": str(rule.min_amount),
            },
        )
        return model.to_dto()
