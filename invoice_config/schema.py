"""
Workflow configuration schema.

Human-authored YAML is parsed into these frozen dataclasses by
``invoice_config.loader``.  Amounts and confidences are kept as strings
here, exactly as authored; conversion to ``Decimal`` domain objects
happens at the edge (``WorkflowConfig.approval_rules_for`` and
``WorkflowConfig.ocr_thresholds``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from invoice_kernel.domain.approval import ApprovalRule
from invoice_kernel.domain.ocr import CRITICAL_FIELDS, OCRThresholds

# ---------------------------------------------------------------------------
# Approval rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalRuleDef:
    """YAML-authored approval rule.  ``max_amount=None`` is unbounded."""

    rule_name: str
    min_amount: str
    max_amount: str | None = None
    requires_manager: bool = False
    requires_accounting: bool = True

    def to_rule(self, centre_code: str | None = None) -> ApprovalRule:
        return ApprovalRule(
            min_amount=Decimal(self.min_amount),
            max_amount=Decimal(self.max_amount) if self.max_amount is not None else None,
            requires_manager=self.requires_manager,
            requires_accounting=self.requires_accounting,
            rule_name=self.rule_name,
            centre_code=centre_code,
        )


@dataclass(frozen=True)
class CentreRulesDef:
    """Rules scanned before the organization-wide rules for one centre."""

    centre_code: str
    rules: tuple[ApprovalRuleDef, ...] = ()


# ---------------------------------------------------------------------------
# OCR
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OCRConfigDef:
    """YAML-authored OCR confidence thresholds."""

    high: str = "0.90"
    medium_high: str = "0.75"
    medium: str = "0.60"
    field_floor: str = "0.70"
    critical_fields: tuple[str, ...] = CRITICAL_FIELDS


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkflowConfig:
    """Complete approval workflow configuration."""

    version: int = 1
    approval_rules: tuple[ApprovalRuleDef, ...] = ()
    centre_rules: tuple[CentreRulesDef, ...] = ()
    ocr: OCRConfigDef = field(default_factory=OCRConfigDef)
    checksum: str = ""
    source_path: str | None = None

    def approval_rules_for(self, centre_code: str | None = None) -> list[ApprovalRule]:
        """Domain rules for a centre followed by the organization-wide ones."""
        rules = [
            r.to_rule(centre_code)
            for centre in self.centre_rules
            if centre_code is not None and centre.centre_code == centre_code
            for r in centre.rules
        ]
        return rules + [r.to_rule() for r in self.approval_rules]

    def ocr_thresholds(self) -> OCRThresholds:
        return OCRThresholds(
            high=Decimal(self.ocr.high),
            medium_high=Decimal(self.ocr.medium_high),
            medium=Decimal(self.ocr.medium),
            field_floor=Decimal(self.ocr.field_floor),
            critical_fields=tuple(self.ocr.critical_fields),
        )
