"""Tests for the lab rule table, rule lookup and value evaluation."""

import math
from types import MappingProxyType

import pytest
from pydantic import ValidationError

from labrisk.schemas.labs import (
    CriticalThresholds,
    LabCategory,
    LabFlag,
    NumericRange,
    SexAtBirth,
)
from labrisk.services import lab_rules
from labrisk.services.lab_rules import (
    LAB_RULES,
    evaluate_lab_value,
    find_lab_rule,
    get_normal_range_for_sex,
    list_lab_rules,
)
from tests.conftest import make_rule


RULES_WITH_CRITICAL_LOW = [r for r in LAB_RULES.values() if r.critical and r.critical.low is not None]
RULES_WITH_CRITICAL_HIGH = [r for r in LAB_RULES.values() if r.critical and r.critical.high is not None]


def _all_ranges(rule):
    ranges = rule.normal_range
    return [r for r in (ranges.any, ranges.male, ranges.female) if r is not None]


class TestLabRulesData:
    """Validate the LAB_RULES table structure and coverage."""

    def test_rule_count(self):
        assert len(LAB_RULES) == 26

    def test_keys_match_codes(self):
        for code, rule in LAB_RULES.items():
            assert rule.code == code

    def test_codes_are_uppercase(self):
        for code in LAB_RULES:
            assert code == code.upper()

    def test_every_rule_has_a_range(self):
        for code, rule in LAB_RULES.items():
            assert _all_ranges(rule), f"{code} has no normal range"

    def test_range_ordering(self):
        """min < max for every range."""
        for code, rule in LAB_RULES.items():
            for r in _all_ranges(rule):
                assert r.min < r.max, f"{code}: min {r.min} >= max {r.max}"

    def test_critical_thresholds_outside_normal_ranges(self):
        """Panic values sit beyond every normal range of the rule."""
        for code, rule in LAB_RULES.items():
            if rule.critical is None:
                continue
            for r in _all_ranges(rule):
                if rule.critical.low is not None:
                    assert rule.critical.low < r.min, code
                if rule.critical.high is not None:
                    assert rule.critical.high > r.max, code

    def test_every_rule_has_aliases(self):
        for code, rule in LAB_RULES.items():
            assert rule.aliases, f"{code} has no aliases"

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            LAB_RULES["NEW"] = make_rule("NEW")

    def test_rules_are_frozen(self):
        with pytest.raises(ValidationError):
            LAB_RULES["HGB"].unit = "mmol/L"

    def test_hemoglobin_sex_specific(self):
        hgb = LAB_RULES["HGB"]
        assert hgb.normal_range.male == NumericRange(min=13.5, max=17.5)
        assert hgb.normal_range.female == NumericRange(min=12.0, max=15.5)
        assert hgb.normal_range.any is None
        assert hgb.critical == CriticalThresholds(low=7, high=22)

    def test_known_categories(self):
        assert LAB_RULES["HGB"].category == LabCategory.CBC
        assert LAB_RULES["NA"].category == LabCategory.CMP
        assert LAB_RULES["CREAT"].category == LabCategory.RENAL
        assert LAB_RULES["ALT"].category == LabCategory.HEPATIC
        assert LAB_RULES["LDL"].category == LabCategory.LIPIDS
        assert LAB_RULES["A1C"].category == LabCategory.DIABETES
        assert LAB_RULES["TSH"].category == LabCategory.ENDOCRINE


class TestListLabRules:
    """Test the list_lab_rules() function."""

    def test_declaration_order(self):
        codes = [rule.code for rule in list_lab_rules()]
        assert codes[:6] == ["HGB", "HCT", "WBC", "PLT", "RBC", "MCV"]
        assert codes[-1] == "FREE_T4"

    def test_filter_by_category(self):
        codes = [rule.code for rule in list_lab_rules(LabCategory.LIPIDS)]
        assert codes == ["CHOL_TOTAL", "HDL", "LDL", "TRIGLY"]

    def test_filter_by_category_string(self):
        codes = [rule.code for rule in list_lab_rules("RENAL")]
        assert codes == ["BUN", "CREAT"]

    def test_empty_category(self):
        assert list_lab_rules(LabCategory.OTHER) == []


class TestFindLabRule:
    """Test the find_lab_rule() function."""

    @pytest.mark.parametrize(
        "query, expected",
        [
            ("HGB", "HGB"),
            ("hgb", "HGB"),
            ("k", "K"),
            ("free_t4", "FREE_T4"),
        ],
    )
    def test_code_match_is_case_insensitive(self, query, expected):
        assert find_lab_rule(query).code == expected

    @pytest.mark.parametrize(
        "query, expected",
        [
            ("Hemoglobin", "HGB"),
            ("hemoglobin a1c", "A1C"),
            ("Blood Urea Nitrogen", "BUN"),
            ("  Sodium  ", "NA"),
        ],
    )
    def test_name_match(self, query, expected):
        assert find_lab_rule(query).code == expected

    @pytest.mark.parametrize(
        "query, expected",
        [
            ("Na+", "NA"),
            ("sgot", "AST"),
            ("Cr", "CREAT"),
            ("Ca", "CALCIUM"),
            ("Bilirubin, Total", "BILI_TOTAL"),
            ("LDL-C", "LDL"),
            ("HbA1c", "A1C"),
            ("Cholesterol", "CHOL_TOTAL"),
        ],
    )
    def test_alias_match(self, query, expected):
        assert find_lab_rule(query).code == expected

    def test_name_beats_alias_of_earlier_rule(self, monkeypatch):
        """Names are checked across every rule before any alias is."""
        first = make_rule("FIRST", aliases=("Widget",))
        second = make_rule("SECOND", name="Widget")
        monkeypatch.setattr(
            lab_rules, "LAB_RULES", MappingProxyType({"FIRST": first, "SECOND": second})
        )
        assert find_lab_rule("widget").code == "SECOND"
        assert find_lab_rule("FIRST Test").code == "FIRST"

    def test_no_partial_match(self):
        assert find_lab_rule("Hemo") is None
        assert find_lab_rule("Sodium level") is None

    def test_unknown_returns_none(self):
        assert find_lab_rule("Unknown Test XYZ") is None

    @pytest.mark.parametrize("query", ["", None])
    def test_empty_returns_none(self, query):
        assert find_lab_rule(query) is None


class TestGetNormalRangeForSex:
    """Test the get_normal_range_for_sex() function."""

    def test_male_gets_male_range(self):
        assert get_normal_range_for_sex(LAB_RULES["HGB"], SexAtBirth.MALE).min == 13.5

    def test_female_gets_female_range(self):
        assert get_normal_range_for_sex(LAB_RULES["HGB"], "female").min == 12.0

    @pytest.mark.parametrize("sex", [None, "other", "unknown", SexAtBirth.OTHER])
    def test_unspecified_sex_falls_back_to_male(self, sex):
        """No `any` range: fallback order is any, male, female."""
        assert get_normal_range_for_sex(LAB_RULES["HGB"], sex) == NumericRange(min=13.5, max=17.5)

    @pytest.mark.parametrize("sex", [None, "male", "female", "other", "unknown"])
    def test_any_range_applies_to_everyone(self, sex):
        assert get_normal_range_for_sex(LAB_RULES["WBC"], sex) == NumericRange(min=4.0, max=11.0)

    def test_sex_specific_range_beats_any(self):
        rule = make_rule(any_range=(1, 10), female=(2, 8))
        assert get_normal_range_for_sex(rule, "female") == NumericRange(min=2, max=8)
        assert get_normal_range_for_sex(rule, "male") == NumericRange(min=1, max=10)

    def test_female_only_rule(self):
        rule = make_rule(any_range=None, female=(2, 8))
        assert get_normal_range_for_sex(rule, "male") == NumericRange(min=2, max=8)

    def test_no_ranges_returns_none(self):
        rule = make_rule(any_range=None)
        assert get_normal_range_for_sex(rule, "male") is None


class TestEvaluateLabValue:
    """Test the evaluate_lab_value() function."""

    def test_normal(self):
        result = evaluate_lab_value(LAB_RULES["NA"], 140)
        assert result.flag == LabFlag.NORMAL
        assert result.offset == 0
        assert result.used_range == NumericRange(min=135, max=145)

    def test_bounds_are_normal(self):
        assert evaluate_lab_value(LAB_RULES["NA"], 135).flag == LabFlag.NORMAL
        assert evaluate_lab_value(LAB_RULES["NA"], 145).flag == LabFlag.NORMAL

    def test_low(self):
        result = evaluate_lab_value(LAB_RULES["HGB"], 11.2, "female")
        assert result.flag == LabFlag.LOW
        assert result.offset == pytest.approx(-0.8)
        assert result.used_range == NumericRange(min=12.0, max=15.5)

    def test_high(self):
        result = evaluate_lab_value(LAB_RULES["NA"], 150)
        assert result.flag == LabFlag.HIGH
        assert result.offset == pytest.approx(5)

    def test_just_above_max(self):
        assert evaluate_lab_value(LAB_RULES["NA"], 145.1).flag == LabFlag.HIGH

    def test_sex_changes_flag(self):
        """13.0 g/dL is low for men and normal for women."""
        assert evaluate_lab_value(LAB_RULES["HGB"], 13.0, "male").flag == LabFlag.LOW
        assert evaluate_lab_value(LAB_RULES["HGB"], 13.0, "female").flag == LabFlag.NORMAL

    def test_critical_low_precedes_low(self):
        result = evaluate_lab_value(LAB_RULES["NA"], 118)
        assert result.flag == LabFlag.CRITICAL_LOW
        assert result.offset == pytest.approx(-17)
        assert result.used_range == NumericRange(min=135, max=145)

    def test_critical_high(self):
        result = evaluate_lab_value(LAB_RULES["K"], 7.0)
        assert result.flag == LabFlag.CRITICAL_HIGH
        assert result.offset == pytest.approx(1.9)

    def test_just_inside_critical_is_low(self):
        assert evaluate_lab_value(LAB_RULES["NA"], 120.1).flag == LabFlag.LOW

    @pytest.mark.parametrize("rule", RULES_WITH_CRITICAL_LOW, ids=lambda r: r.code)
    @pytest.mark.parametrize("sex", ["male", "female", None])
    def test_value_at_critical_low_is_critical(self, rule, sex):
        assert evaluate_lab_value(rule, rule.critical.low, sex).flag == LabFlag.CRITICAL_LOW

    @pytest.mark.parametrize("rule", RULES_WITH_CRITICAL_HIGH, ids=lambda r: r.code)
    @pytest.mark.parametrize("sex", ["male", "female", None])
    def test_value_at_critical_high_is_critical(self, rule, sex):
        assert evaluate_lab_value(rule, rule.critical.high, sex).flag == LabFlag.CRITICAL_HIGH

    @pytest.mark.parametrize("rule", list(LAB_RULES.values()), ids=lambda r: r.code)
    @pytest.mark.parametrize("sex", ["male", "female", "unknown"])
    def test_values_inside_range_are_normal(self, rule, sex):
        r = get_normal_range_for_sex(rule, sex)
        for value in (r.min + (r.max - r.min) * 0.01, (r.min + r.max) / 2, r.max - (r.max - r.min) * 0.01):
            assert evaluate_lab_value(rule, value, sex).flag == LabFlag.NORMAL

    @pytest.mark.parametrize("value", [None, math.nan, math.inf, -math.inf])
    def test_non_finite_is_unknown(self, value):
        result = evaluate_lab_value(LAB_RULES["NA"], value)
        assert result.flag == LabFlag.UNKNOWN
        assert result.used_range is None
        assert result.offset is None

    def test_rule_without_ranges_is_unknown(self):
        result = evaluate_lab_value(make_rule(any_range=None), 150)
        assert result.flag == LabFlag.UNKNOWN
        assert result.used_range is None

    def test_negative_values(self):
        rule = make_rule(any_range=(-2, 2), critical=CriticalThresholds(low=-10, high=10))
        assert evaluate_lab_value(rule, -1.5).flag == LabFlag.NORMAL
        assert evaluate_lab_value(rule, -5).flag == LabFlag.LOW
        assert evaluate_lab_value(rule, -10).flag == LabFlag.CRITICAL_LOW

    def test_is_idempotent(self):
        first = evaluate_lab_value(LAB_RULES["HGB"], 11.2, "female")
        second = evaluate_lab_value(LAB_RULES["HGB"], 11.2, "female")
        assert first == second
