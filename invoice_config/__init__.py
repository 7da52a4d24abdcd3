"""
invoice_config -- approval workflow configuration.

Responsibility:
    Loads the YAML workflow configuration (approval rule tiers, per-centre
    overrides, OCR confidence thresholds) into frozen dataclasses and
    exposes the rules through ``ConfiguredApprovalRuleSource``.

Architecture position:
    Configuration -- sits above ``invoice_kernel`` and below
    ``invoice_services``.  The kernel and engines MUST NEVER import from
    ``invoice_config``.
"""

from invoice_config.loader import (
    compute_checksum,
    load_workflow_config,
    parse_workflow_config,
)
from invoice_config.schema import (
    ApprovalRuleDef,
    CentreRulesDef,
    OCRConfigDef,
    WorkflowConfig,
)
from invoice_config.sources import ConfiguredApprovalRuleSource

__all__ = [
    "ApprovalRuleDef",
    "CentreRulesDef",
    "ConfiguredApprovalRuleSource",
    "OCRConfigDef",
    "WorkflowConfig",
    "compute_checksum",
    "load_workflow_config",
    "parse_workflow_config",
]
