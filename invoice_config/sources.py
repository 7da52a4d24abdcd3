"""YAML-backed approval rule source."""

from __future__ import annotations

from invoice_config.schema import WorkflowConfig
from invoice_kernel.domain.approval import ApprovalRule


class ConfiguredApprovalRuleSource:
    """``ApprovalRuleSource`` over a loaded ``WorkflowConfig``."""

    def __init__(self, config: WorkflowConfig) -> None:
        self._config = config

    @property
    def config(self) -> WorkflowConfig:
        return self._config

    def get_approval_rules(self, centre_code: str | None = None) -> list[ApprovalRule]:
        return self._config.approval_rules_for(centre_code)
