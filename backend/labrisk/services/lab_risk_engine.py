"""Lab risk engine: parsed lab values -> green/yellow/red risk signals.

Purely rules-based on top of the flag produced by lab_rules.evaluate_lab_value:
  - map each flag to a base level and label
  - escalate low/high values to red when they sit far outside the range
  - render deterministic one-line summaries and longer detail text
  - aggregate per-value assessments into a panel summary
"""

from __future__ import annotations

from labrisk.schemas.labs import (
    CRITICAL_FLAGS,
    OUT_OF_RANGE_FLAGS,
    LabFlag,
    LabPanelRiskSummary,
    LabRiskAssessment,
    LabRiskLevel,
    ParsedLabValue,
)

# Fraction of the normal range width beyond a bound at which a low/high value
# is shown as red instead of yellow. Empirical, tunable.
MAGNITUDE_ESCALATION_THRESHOLD = 0.15

_BASE_RISK: dict[LabFlag, tuple[LabRiskLevel, str]] = {
    LabFlag.NORMAL: (LabRiskLevel.GREEN, "Normal"),
    LabFlag.LOW: (LabRiskLevel.YELLOW, "Low"),
    LabFlag.HIGH: (LabRiskLevel.YELLOW, "High"),
    LabFlag.CRITICAL_LOW: (LabRiskLevel.RED, "Critically Low"),
    LabFlag.CRITICAL_HIGH: (LabRiskLevel.RED, "Critically High"),
    LabFlag.UNKNOWN: (LabRiskLevel.UNKNOWN, "Unknown"),
}

_SUMMARY_TAILS: dict[LabFlag, str] = {
    LabFlag.NORMAL: "which is within the expected range.",
    LabFlag.LOW: "which is slightly below the expected range.",
    LabFlag.HIGH: "which is slightly above the expected range.",
    LabFlag.CRITICAL_LOW: "which is critically low and may require urgent medical attention.",
    LabFlag.CRITICAL_HIGH: "which is critically high and may require urgent medical attention.",
}

_DETAIL_LEADS: dict[LabFlag, str] = {
    LabFlag.NORMAL: "is within the expected range.",
    LabFlag.LOW: "is below the expected range.",
    LabFlag.HIGH: "is above the expected range.",
    LabFlag.CRITICAL_LOW: "is critically low compared to expected ranges.",
    LabFlag.CRITICAL_HIGH: "is critically high compared to expected ranges.",
}

_URGENCY_NOTE = (
    "This may represent a high-risk or unstable condition and should be "
    "discussed with a clinician promptly."
)


def _format_number(value: float) -> str:
    """Render 105.0 as "105", 11.2 as "11.2" and 1e-05 as "0.00001"."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.10f}".rstrip("0").rstrip(".")


def _adjust_level_by_magnitude(level: LabRiskLevel, parsed: ParsedLabValue) -> LabRiskLevel:
    """Escalate low/high to red when the deviation reaches the threshold.

    deviation = distance beyond the violated bound / range width
    """
    if parsed.normal_range is None or parsed.value is None:
        return level

    flag = parsed.flag
    if flag in CRITICAL_FLAGS:
        return LabRiskLevel.RED
    if flag == LabFlag.NORMAL:
        return LabRiskLevel.GREEN
    if flag not in (LabFlag.LOW, LabFlag.HIGH):
        return level

    low, high = parsed.normal_range.min, parsed.normal_range.max
    span = (high - low) or 1

    if flag == LabFlag.LOW:
        deviation = (low - parsed.value) / span
    else:
        deviation = (parsed.value - high) / span

    if deviation >= MAGNITUDE_ESCALATION_THRESHOLD:
        return LabRiskLevel.RED
    return LabRiskLevel.YELLOW


def _build_summary(parsed: ParsedLabValue, level: LabRiskLevel) -> str:
    if parsed.value is None or level == LabRiskLevel.UNKNOWN:
        return f"{parsed.name}: value could not be interpreted."

    return f"{parsed.name} is {_format_number(parsed.value)} {parsed.unit}, {_SUMMARY_TAILS[parsed.flag]}"


def _build_detail(parsed: ParsedLabValue) -> str | None:
    lead = _DETAIL_LEADS.get(parsed.flag)
    if lead is None:
        return None

    parts = [f"{parsed.name} {lead}"]
    if parsed.normal_range is not None:
        low = _format_number(parsed.normal_range.min)
        high = _format_number(parsed.normal_range.max)
        parts.append(f"Typical adult range: {low}–{high} {parsed.unit}.")
    if parsed.rule.note:
        parts.append(parsed.rule.note)
    if parsed.flag in CRITICAL_FLAGS:
        parts.append(_URGENCY_NOTE)
    return " ".join(parts)


def assess_lab_value_risk(parsed: ParsedLabValue) -> LabRiskAssessment:
    """Assess a single parsed lab value.

    Args:
        parsed: Output of the lab interpreter (or an equivalent record).

    Returns:
        LabRiskAssessment with level, label, summary and detail text.
    """
    base_level, label = _BASE_RISK[parsed.flag]
    level = _adjust_level_by_magnitude(base_level, parsed)

    return LabRiskAssessment(
        flag=parsed.flag,
        level=level,
        label=label,
        summary=_build_summary(parsed, level),
        detail=_build_detail(parsed),
        value=parsed.value,
        unit=parsed.unit,
        code=parsed.code,
        name=parsed.name,
        is_critical=parsed.flag in CRITICAL_FLAGS,
        is_abnormal=parsed.flag in OUT_OF_RANGE_FLAGS,
    )


def summarize_panel_risk(values: list[ParsedLabValue]) -> LabPanelRiskSummary:
    """Aggregate risk across a panel.

    The dominant level is the most severe of red > yellow > green; items with
    an unknown level never change it. An empty panel is unknown.
    """
    items = [assess_lab_value_risk(v) for v in values]
    if not items:
        return LabPanelRiskSummary(
            dominant_level=LabRiskLevel.UNKNOWN,
            any_critical=False,
            out_of_range_count=0,
        )

    dominant = LabRiskLevel.GREEN
    for item in items:
        if item.level == LabRiskLevel.RED:
            dominant = LabRiskLevel.RED
        elif item.level == LabRiskLevel.YELLOW and dominant != LabRiskLevel.RED:
            dominant = LabRiskLevel.YELLOW

    return LabPanelRiskSummary(
        dominant_level=dominant,
        any_critical=any(item.is_critical for item in items),
        out_of_range_count=sum(1 for item in items if item.is_abnormal),
        items=items,
    )
