"""
Tests for the workflow YAML configuration.

Covers:
- Packaged defaults match the built-in approval tiers
- Loading a YAML file from disk, centre overrides, OCR thresholds
- Malformed rules: max below min, overlapping ranges, non-final open
  range, non-numeric and negative amounts
- Checksum determinism
- ConfiguredApprovalRuleSource fallback behaviour
"""

from decimal import Decimal

import pytest
import yaml

from invoice_config.loader import (
    compute_checksum,
    load_workflow_config,
    parse_approval_rule,
    parse_workflow_config,
)
from invoice_config.sources import ConfiguredApprovalRuleSource
from invoice_engines.approval import DEFAULT_APPROVAL_RULES, determine_approval_requirements
from invoice_kernel.domain.ocr import OCRThresholds
from invoice_kernel.exceptions import InvalidApprovalRuleError


CENTRE_YAML = """
version: 3
approval_rules:
  - rule_name: org_small
    min_amount: 0
    max_amount: 1000
    requires_manager: false
  - rule_name: org_large
    min_amount: "1000.01"
    requires_manager: true
centre_rules:
  BCN-02:
    - rule_name: bcn_all
      min_amount: 0
      requires_manager: true
  VAL-03:
    - rule_name: val_petty_cash
      min_amount: 0
      max_amount: 50
      requires_manager: false
ocr:
  medium: "0.65"
"""


class TestDefaults:

    def test_packaged_defaults_match_built_in_tiers(self):
        config = load_workflow_config()

        assert config.version == 1
        assert config.centre_rules == ()
        assert config.source_path.endswith("defaults.yaml")
        assert tuple(config.approval_rules_for()) == DEFAULT_APPROVAL_RULES

    def test_packaged_ocr_thresholds(self):
        assert load_workflow_config().ocr_thresholds() == OCRThresholds()

    def test_load_is_logged(self, captured_logs):
        config = load_workflow_config()

        records = [r for r in captured_logs() if r["message"] == "workflow_config_loaded"]
        assert records[-1]["checksum"] == config.checksum
        assert records[-1]["rule_count"] == 3


class TestLoadFromFile:

    @pytest.fixture
    def config_path(self, tmp_path):
        path = tmp_path / "workflow.yaml"
        path.write_text(CENTRE_YAML)
        return path

    def test_rules_and_centre_overrides(self, config_path):
        config = load_workflow_config(config_path)

        assert config.version == 3
        assert [r.rule_name for r in config.approval_rules] == ["org_small", "org_large"]
        assert config.approval_rules[0].max_amount == "1000"
        bcn = config.approval_rules_for("BCN-02")
        assert [r.rule_name for r in bcn] == ["bcn_all", "org_small", "org_large"]
        assert [r.centre_code for r in bcn] == ["BCN-02", None, None]

    def test_partial_ocr_section_keeps_defaults(self, config_path):
        thresholds = load_workflow_config(config_path).ocr_thresholds()

        assert thresholds.medium == Decimal("0.65")
        assert thresholds.high == Decimal("0.90")
        assert thresholds.critical_fields == ("supplier_tax_id", "invoice_number", "total")

    def test_rules_drive_requirements(self, config_path):
        rules = ConfiguredApprovalRuleSource(
            load_workflow_config(config_path),
        ).get_approval_rules("MAD-01")

        assert not determine_approval_requirements(Decimal("1000.00"), rules).requires_manager_approval
        assert determine_approval_requirements(Decimal("1000.01"), rules).requires_manager_approval

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_workflow_config(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("approval_rules: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_workflow_config(path)

    def test_rules_are_sorted_on_load(self):
        config = parse_workflow_config({"approval_rules": [
            {"rule_name": "high", "min_amount": "100.01"},
            {"rule_name": "low", "min_amount": "0", "max_amount": "100"},
        ]})
        assert [r.rule_name for r in config.approval_rules] == ["low", "high"]


class TestInvalidRules:

    def test_max_below_min(self):
        with pytest.raises(InvalidApprovalRuleError) as exc_info:
            parse_approval_rule({"rule_name": "bad", "min_amount": 500, "max_amount": 100})
        assert exc_info.value.rule_name == "bad"

    @pytest.mark.parametrize("amount", ["lots", "NaN", "-1"])
    def test_bad_amounts(self, amount):
        with pytest.raises(InvalidApprovalRuleError):
            parse_approval_rule({"rule_name": "bad", "min_amount": amount})

    def test_overlapping_ranges(self):
        with pytest.raises(InvalidApprovalRuleError) as exc_info:
            parse_workflow_config({"approval_rules": [
                {"rule_name": "a", "min_amount": 0, "max_amount": 500},
                {"rule_name": "b", "min_amount": 500, "max_amount": 1000},
            ]})
        assert exc_info.value.rule_name == "b"
        assert "overlaps" in exc_info.value.reason

    def test_open_range_must_be_last(self):
        with pytest.raises(InvalidApprovalRuleError) as exc_info:
            parse_workflow_config({"approval_rules": [
                {"rule_name": "open", "min_amount": 0},
                {"rule_name": "later", "min_amount": 100},
            ]})
        assert exc_info.value.rule_name == "open"

    def test_centre_rules_validated_too(self):
        with pytest.raises(InvalidApprovalRuleError):
            parse_workflow_config({"centre_rules": {"BCN-02": [
                {"rule_name": "a", "min_amount": 0, "max_amount": 10},
                {"rule_name": "b", "min_amount": 5},
            ]}})

    def test_misordered_ocr_thresholds(self):
        with pytest.raises(ValueError):
            parse_workflow_config({"ocr": {"high": "0.50"}})


class TestChecksum:

    def test_deterministic_and_key_order_independent(self):
        a = {"version": 1, "approval_rules": [{"rule_name": "x", "min_amount": "0"}]}
        b = {"approval_rules": [{"min_amount": "0", "rule_name": "x"}], "version": 1}
        assert compute_checksum(a) == compute_checksum(b)

    def test_changes_with_content(self):
        assert compute_checksum({"version": 1}) != compute_checksum({"version": 2})


class TestConfiguredRuleSource:

    def test_unknown_centre_falls_back(self):
        config = parse_workflow_config(yaml.safe_load(CENTRE_YAML))
        source = ConfiguredApprovalRuleSource(config)

        assert [r.rule_name for r in source.get_approval_rules("ZZZ-99")] == [
            "org_small", "org_large",
        ]
        assert [r.rule_name for r in source.get_approval_rules(None)] == [
            "org_small", "org_large",
        ]
        assert source.config is config

    def test_empty_configuration_has_no_rules(self):
        source = ConfiguredApprovalRuleSource(parse_workflow_config({}))
        assert source.get_approval_rules("MAD-01") == []

    def test_centre_rules_win_inside_their_range(self):
        source = ConfiguredApprovalRuleSource(parse_workflow_config(yaml.safe_load(CENTRE_YAML)))

        reqs = determine_approval_requirements(Decimal("10.00"), source.get_approval_rules("BCN-02"))

        assert reqs.matched_rule.rule_name == "bcn_all"
        assert reqs.requires_manager_approval

    def test_partial_centre_rules_fall_back_to_organization_tiers(self):
        source = ConfiguredApprovalRuleSource(parse_workflow_config(yaml.safe_load(CENTRE_YAML)))
        rules = source.get_approval_rules("VAL-03")

        petty = determine_approval_requirements(Decimal("50.00"), rules)
        large = determine_approval_requirements(Decimal("5000.00"), rules)

        assert petty.matched_rule.rule_name == "val_petty_cash"
        assert large.matched_rule.rule_name == "org_large"
        assert large.requires_manager_approval
