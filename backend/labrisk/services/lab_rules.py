"""Canonical lab rules: names, units, sex-aware normal ranges and panic values.

Provides the static rule table for the common adult analytes seen on patient
uploaded reports (CBC, CMP, liver, lipids, diabetes, thyroid), lookup by code,
name or alias, and the evaluation of a numeric value into a LabFlag.

Ranges are GENERAL ADULT ranges and vary by lab. Treat them as guidance, not
diagnostic cutoffs. Not for clinical use.
"""

from __future__ import annotations

import math
from types import MappingProxyType
from typing import Mapping

from labrisk.schemas.labs import (
    CriticalThresholds,
    LabCategory,
    LabEvaluation,
    LabFlag,
    LabRule,
    NormalRanges,
    NumericRange,
    SexAtBirth,
)


def _r(min_: float, max_: float) -> NumericRange:
    return NumericRange(min=min_, max=max_)


# ---------------------------------------------------------------------------
# Rule table
#
# Keyed by canonical code. Declaration order matters: list_lab_rules() and
# the alias scan in find_lab_rule() walk the table in this order.
#
# Boundary semantics:
#   value <= critical.low  -> critical_low
#   value >= critical.high -> critical_high
#   value <  range.min     -> low
#   value >  range.max     -> high
# ---------------------------------------------------------------------------

_RULES: tuple[LabRule, ...] = (
    # -----------------------------------------------------------------------
    # CBC (Complete Blood Count)
    # -----------------------------------------------------------------------
    LabRule(
        code="HGB",
        name="Hemoglobin",
        category=LabCategory.CBC,
        unit="g/dL",
        normal_range=NormalRanges(male=_r(13.5, 17.5), female=_r(12.0, 15.5)),
        critical=CriticalThresholds(low=7, high=22),
        note="Low Hgb suggests anemia or blood loss; very low values are high risk.",
        aliases=("HGB", "Hemoglobin", "Hb", "Hgb"),
    ),
    LabRule(
        code="HCT",
        name="Hematocrit",
        category=LabCategory.CBC,
        unit="%",
        normal_range=NormalRanges(male=_r(41, 53), female=_r(36, 46)),
        note="Percentage of blood volume occupied by red blood cells.",
        aliases=("HCT", "Hematocrit"),
    ),
    LabRule(
        code="WBC",
        name="White Blood Cell Count",
        category=LabCategory.CBC,
        unit="10^3/µL",
        normal_range=NormalRanges(any=_r(4.0, 11.0)),
        critical=CriticalThresholds(low=1.0, high=30.0),
        note="Elevated WBC suggests infection/inflammation; very low may mean marrow suppression.",
        aliases=("WBC", "White Blood Cells"),
    ),
    LabRule(
        code="PLT",
        name="Platelets",
        category=LabCategory.CBC,
        unit="10^3/µL",
        normal_range=NormalRanges(any=_r(150, 400)),
        critical=CriticalThresholds(low=20, high=1000),
        note="Low platelets increase bleeding risk; very high may increase clotting risk.",
        aliases=("PLT", "Platelet Count"),
    ),
    LabRule(
        code="RBC",
        name="Red Blood Cell Count",
        category=LabCategory.CBC,
        unit="10^6/µL",
        normal_range=NormalRanges(male=_r(4.5, 5.9), female=_r(4.1, 5.1)),
        aliases=("RBC", "Red Blood Cells"),
    ),
    LabRule(
        code="MCV",
        name="Mean Corpuscular Volume",
        category=LabCategory.CBC,
        unit="fL",
        normal_range=NormalRanges(any=_r(80, 100)),
        note="Low MCV suggests microcytic anemia; high suggests macrocytic.",
        aliases=("MCV",),
    ),
    # -----------------------------------------------------------------------
    # CMP / Electrolytes / Renal
    # -----------------------------------------------------------------------
    LabRule(
        code="NA",
        name="Sodium",
        category=LabCategory.CMP,
        unit="mmol/L",
        normal_range=NormalRanges(any=_r(135, 145)),
        critical=CriticalThresholds(low=120, high=160),
        note="Abnormal sodium can cause confusion, seizures and neurologic symptoms.",
        aliases=("Na", "Sodium", "Na+"),
    ),
    LabRule(
        code="K",
        name="Potassium",
        category=LabCategory.CMP,
        unit="mmol/L",
        normal_range=NormalRanges(any=_r(3.5, 5.1)),
        critical=CriticalThresholds(low=2.5, high=6.5),
        note="High or low potassium can cause dangerous heart rhythm problems.",
        aliases=("K", "Potassium", "K+"),
    ),
    LabRule(
        code="CL",
        name="Chloride",
        category=LabCategory.CMP,
        unit="mmol/L",
        normal_range=NormalRanges(any=_r(98, 107)),
        aliases=("Cl", "Chloride"),
    ),
    LabRule(
        code="CO2",
        name="CO2 / Bicarbonate",
        category=LabCategory.CMP,
        unit="mmol/L",
        normal_range=NormalRanges(any=_r(22, 29)),
        aliases=("CO2", "Bicarb", "HCO3"),
    ),
    LabRule(
        code="BUN",
        name="Blood Urea Nitrogen",
        category=LabCategory.RENAL,
        unit="mg/dL",
        normal_range=NormalRanges(any=_r(7, 20)),
        aliases=("BUN", "Urea Nitrogen"),
    ),
    LabRule(
        code="CREAT",
        name="Creatinine",
        category=LabCategory.RENAL,
        unit="mg/dL",
        normal_range=NormalRanges(any=_r(0.6, 1.3)),
        note="Used to estimate kidney function (eGFR).",
        aliases=("Creatinine", "CREAT", "Cr"),
    ),
    LabRule(
        code="GLUCOSE",
        name="Glucose (fasting)",
        category=LabCategory.CMP,
        unit="mg/dL",
        normal_range=NormalRanges(any=_r(70, 99)),
        note="Fasting glucose 100–125 is impaired; ≥126 on two tests suggests diabetes.",
        aliases=("Glucose", "Fasting Glucose", "GLU"),
    ),
    LabRule(
        code="CALCIUM",
        name="Calcium",
        category=LabCategory.CMP,
        unit="mg/dL",
        normal_range=NormalRanges(any=_r(8.5, 10.5)),
        critical=CriticalThresholds(low=6.5, high=13),
        aliases=("Calcium", "Ca"),
    ),
    # -----------------------------------------------------------------------
    # Liver / Hepatic
    # -----------------------------------------------------------------------
    LabRule(
        code="AST",
        name="AST",
        category=LabCategory.HEPATIC,
        unit="U/L",
        normal_range=NormalRanges(any=_r(10, 40)),
        note="Liver enzyme; elevated in liver injury, muscle injury and other conditions.",
        aliases=("AST", "SGOT"),
    ),
    LabRule(
        code="ALT",
        name="ALT",
        category=LabCategory.HEPATIC,
        unit="U/L",
        normal_range=NormalRanges(any=_r(7, 56)),
        note="Liver enzyme; often more specific to the liver than AST.",
        aliases=("ALT", "SGPT"),
    ),
    LabRule(
        code="ALP",
        name="Alkaline Phosphatase",
        category=LabCategory.HEPATIC,
        unit="U/L",
        normal_range=NormalRanges(any=_r(44, 147)),
        aliases=("ALP", "Alkaline Phosphatase"),
    ),
    LabRule(
        code="BILI_TOTAL",
        name="Total Bilirubin",
        category=LabCategory.HEPATIC,
        unit="mg/dL",
        normal_range=NormalRanges(any=_r(0.1, 1.2)),
        aliases=("Total Bilirubin", "Bilirubin, Total", "TBili"),
    ),
    LabRule(
        code="ALBUMIN",
        name="Albumin",
        category=LabCategory.HEPATIC,
        unit="g/dL",
        normal_range=NormalRanges(any=_r(3.5, 5.0)),
        aliases=("Albumin",),
    ),
    # -----------------------------------------------------------------------
    # Lipids
    # -----------------------------------------------------------------------
    LabRule(
        code="CHOL_TOTAL",
        name="Total Cholesterol",
        category=LabCategory.LIPIDS,
        unit="mg/dL",
        normal_range=NormalRanges(any=_r(0, 199)),
        note="<200 desirable; 200–239 borderline high; ≥240 high.",
        aliases=("Cholesterol", "Total Cholesterol"),
    ),
    LabRule(
        code="HDL",
        name="HDL Cholesterol",
        category=LabCategory.LIPIDS,
        unit="mg/dL",
        normal_range=NormalRanges(any=_r(40, 999)),
        note="Higher HDL is generally protective; <40 considered low in many guidelines.",
        aliases=("HDL",),
    ),
    LabRule(
        code="LDL",
        name="LDL Cholesterol (calculated)",
        category=LabCategory.LIPIDS,
        unit="mg/dL",
        normal_range=NormalRanges(any=_r(0, 129)),
        note="<100 optimal for many patients; lower targets for high-risk patients.",
        aliases=("LDL", "LDL-C"),
    ),
    LabRule(
        code="TRIGLY",
        name="Triglycerides",
        category=LabCategory.LIPIDS,
        unit="mg/dL",
        normal_range=NormalRanges(any=_r(0, 149)),
        note="<150 normal; 150–199 borderline high; ≥200 high.",
        aliases=("Triglycerides", "TG"),
    ),
    # -----------------------------------------------------------------------
    # Diabetes / Endocrine
    # -----------------------------------------------------------------------
    LabRule(
        code="A1C",
        name="Hemoglobin A1c",
        category=LabCategory.DIABETES,
        unit="%",
        normal_range=NormalRanges(any=_r(4.0, 5.6)),
        note="5.7–6.4% prediabetes; ≥6.5% on two tests suggests diabetes.",
        aliases=("HbA1c", "A1C", "Hemoglobin A1c"),
    ),
    LabRule(
        code="TSH",
        name="TSH",
        category=LabCategory.ENDOCRINE,
        unit="µIU/mL",
        normal_range=NormalRanges(any=_r(0.4, 4.5)),
        note="High TSH suggests hypothyroidism; low TSH suggests hyperthyroidism.",
        aliases=("TSH", "Thyroid Stimulating Hormone"),
    ),
    LabRule(
        code="FREE_T4",
        name="Free T4",
        category=LabCategory.ENDOCRINE,
        unit="ng/dL",
        normal_range=NormalRanges(any=_r(0.8, 1.8)),
        aliases=("Free T4", "FT4"),
    ),
)

LAB_RULES: Mapping[str, LabRule] = MappingProxyType({rule.code: rule for rule in _RULES})


def list_lab_rules(category: LabCategory | str | None = None) -> list[LabRule]:
    """Return rules in declaration order, optionally filtered by category."""
    if category is None:
        return list(LAB_RULES.values())
    return [rule for rule in LAB_RULES.values() if rule.category == category]


def find_lab_rule(code_or_name: str | None) -> LabRule | None:
    """Resolve a rule by canonical code, display name or alias.

    Resolution order:
      1. exact match of the uppercased argument against canonical codes
      2. case-insensitive match against display names, across all rules
      3. case-insensitive match against aliases, across all rules

    No partial matching happens here; the interpreter layers its own
    cleanup on top of this lookup.

    Returns:
        The matching LabRule, or None when nothing matches.
    """
    if not code_or_name:
        return None

    direct = LAB_RULES.get(code_or_name.upper())
    if direct is not None:
        return direct

    needle = code_or_name.strip().lower()
    for rule in LAB_RULES.values():
        if rule.name.lower() == needle:
            return rule

    for rule in LAB_RULES.values():
        if any(alias.lower() == needle for alias in rule.aliases):
            return rule
    return None


def get_normal_range_for_sex(
    rule: LabRule,
    sex: SexAtBirth | str | None = None,
) -> NumericRange | None:
    """Pick the normal range to use for a patient.

    A sex-specific range wins when it exists for male/female patients.
    Otherwise falls back to `any`, then `male`, then `female`.

    Returns:
        The selected range, or None if the rule defines no range at all.
    """
    ranges = rule.normal_range
    if ranges is None:
        return None

    if sex == SexAtBirth.MALE and ranges.male is not None:
        return ranges.male
    if sex == SexAtBirth.FEMALE and ranges.female is not None:
        return ranges.female

    for fallback in (ranges.any, ranges.male, ranges.female):
        if fallback is not None:
            return fallback
    return None


def evaluate_lab_value(
    rule: LabRule,
    value: float | None,
    sex: SexAtBirth | str | None = None,
) -> LabEvaluation:
    """Classify a numeric value against a rule's range and panic thresholds.

    Critical thresholds are inclusive and checked before the normal range, so
    a value at or past a panic value is critical even though it is also out
    of range. The normal range bounds themselves count as normal.

    Args:
        rule: The lab rule to evaluate against.
        value: Numeric observation value. None, NaN and infinities are unknown.
        sex: Patient sex at birth, used to pick the normal range.

    Returns:
        LabEvaluation with the flag, the signed offset from the violated bound
        and the range that was used.
    """
    if value is None or isinstance(value, bool) or not math.isfinite(value):
        return LabEvaluation(flag=LabFlag.UNKNOWN)

    used = get_normal_range_for_sex(rule, sex)
    if used is None:
        return LabEvaluation(flag=LabFlag.UNKNOWN)

    critical = rule.critical
    if critical is not None and critical.low is not None and value <= critical.low:
        return LabEvaluation(flag=LabFlag.CRITICAL_LOW, offset=value - used.min, used_range=used)
    if critical is not None and critical.high is not None and value >= critical.high:
        return LabEvaluation(flag=LabFlag.CRITICAL_HIGH, offset=value - used.max, used_range=used)

    if value < used.min:
        return LabEvaluation(flag=LabFlag.LOW, offset=value - used.min, used_range=used)
    if value > used.max:
        return LabEvaluation(flag=LabFlag.HIGH, offset=value - used.max, used_range=used)

    return LabEvaluation(flag=LabFlag.NORMAL, offset=0, used_range=used)
