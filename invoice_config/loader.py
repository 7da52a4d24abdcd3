"""
Configuration Loader (``invoice_config.loader``).

Responsibility
--------------
Loads the workflow YAML file and parses it into typed
``invoice_config.schema`` dataclass instances, validating approval rule
ranges on the way.

Architecture position
---------------------
**Config layer** -- sits above ``invoice_kernel`` and below
``invoice_services``.  The kernel and the engines never import from
here; the services hand parsed rules and thresholds to the engines.

Invariants enforced
-------------------
* Every rule range satisfies ``min_amount <= max_amount``.
* Rules are stored ascending by ``min_amount`` and never overlap; only the
  last rule of a set may be unbounded.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Malformed or overlapping rule ranges  -> ``InvalidApprovalRuleError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from invoice_config.schema import (
    ApprovalRuleDef,
    CentreRulesDef,
    OCRConfigDef,
    WorkflowConfig,
)
from invoice_kernel.exceptions import InvalidApprovalRuleError
from invoice_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _parse_amount(rule_name: str, value: Any, what: str) -> str:
    """Normalize a YAML amount (number or string) to a Decimal string."""
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidApprovalRuleError(
            rule_name, f"{what} {value!r} is not a number",
        ) from None
    if not amount.is_finite():
        raise InvalidApprovalRuleError(rule_name, f"{what} must be finite")
    if amount < 0:
        raise InvalidApprovalRuleError(rule_name, f"{what} cannot be negative")
    return str(amount)


def parse_approval_rule(data: dict[str, Any]) -> ApprovalRuleDef:
    """Parse an ApprovalRuleDef from a dict."""
    rule_name = data["rule_name"]
    min_amount = _parse_amount(rule_name, data["min_amount"], "min_amount")
    raw_max = data.get("max_amount")
    max_amount = (
        _parse_amount(rule_name, raw_max, "max_amount") if raw_max is not None else None
    )
    if max_amount is not None and Decimal(max_amount) < Decimal(min_amount):
        raise InvalidApprovalRuleError(
            rule_name, f"max_amount {max_amount} is below min_amount {min_amount}",
        )
    return ApprovalRuleDef(
        rule_name=rule_name,
        min_amount=min_amount,
        max_amount=max_amount,
        requires_manager=bool(data.get("requires_manager", False)),
        requires_accounting=bool(data.get("requires_accounting", True)),
    )


def validate_rule_ranges(rules: tuple[ApprovalRuleDef, ...]) -> None:
    """
    Check that sorted rules do not overlap.

    Preconditions:
        - ``rules`` is sorted ascending by ``min_amount``.
    Raises:
        InvalidApprovalRuleError: on an overlap or a non-final open range.
    """
    for previous, current in zip(rules, rules[1:]):
        if previous.max_amount is None:
            raise InvalidApprovalRuleError(
                previous.rule_name,
                f"unbounded range is followed by rule '{current.rule_name}'",
            )
        if Decimal(current.min_amount) <= Decimal(previous.max_amount):
            raise InvalidApprovalRuleError(
                current.rule_name,
                f"range starting at {current.min_amount} overlaps rule "
                f"'{previous.rule_name}' ending at {previous.max_amount}",
            )


def parse_rule_set(items: list[dict[str, Any]]) -> tuple[ApprovalRuleDef, ...]:
    """Parse, sort and validate a list of rules."""
    rules = tuple(sorted(
        (parse_approval_rule(item) for item in items),
        key=lambda r: Decimal(r.min_amount),
    ))
    validate_rule_ranges(rules)
    return rules


def parse_ocr(data: dict[str, Any]) -> OCRConfigDef:
    """Parse an OCRConfigDef from a dict, keeping defaults for omitted keys."""
    defaults = OCRConfigDef()
    return OCRConfigDef(
        high=str(data.get("high", defaults.high)),
        medium_high=str(data.get("medium_high", defaults.medium_high)),
        medium=str(data.get("medium", defaults.medium)),
        field_floor=str(data.get("field_floor", defaults.field_floor)),
        critical_fields=tuple(data.get("critical_fields", defaults.critical_fields)),
    )


def parse_workflow_config(
    data: dict[str, Any],
    source_path: str | None = None,
) -> WorkflowConfig:
    """Parse a WorkflowConfig from the root YAML dict."""
    centre_rules = tuple(
        CentreRulesDef(centre_code=str(code), rules=parse_rule_set(items or []))
        for code, items in sorted((data.get("centre_rules") or {}).items())
    )
    config = WorkflowConfig(
        version=int(data.get("version", 1)),
        approval_rules=parse_rule_set(data.get("approval_rules") or []),
        centre_rules=centre_rules,
        ocr=parse_ocr(data.get("ocr") or {}),
        checksum=compute_checksum(data),
        source_path=source_path,
    )
    # Fail fast on threshold ordering
    config.ocr_thresholds()
    return config


def load_workflow_config(path: Path | str | None = None) -> WorkflowConfig:
    """
    Load the workflow configuration.

    Args:
        path: YAML file to load.  ``None`` loads the packaged defaults.
    """
    resolved = Path(path) if path is not None else DEFAULTS_PATH
    data = load_yaml_file(resolved)
    config = parse_workflow_config(data, source_path=str(resolved))

    logger.info(
        "workflow_config_loaded",
        extra={
            "source_path": str(resolved),
            "config_version": config.version,
            "checksum": config.checksum,
            "rule_count": len(config.approval_rules),
            "centre_count": len(config.centre_rules),
        },
    )
    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
