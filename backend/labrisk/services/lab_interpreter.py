"""Lab interpreter: messy OCR / EMR lab rows -> canonical parsed lab values.

Deterministic and side-effect free. Rows that cannot be mapped to a lab rule
or that carry no numeric value are rejected (None / unknown_rows) rather than
raising, since OCR input is noisy and partial results are still useful.
"""

from __future__ import annotations

import logging
import re

from labrisk.schemas.labs import (
    OUT_OF_RANGE_FLAGS,
    LabRule,
    NumericRange,
    OcrLabRow,
    ParsedLabPanel,
    ParsedLabValue,
    SexAtBirth,
)
from labrisk.services.lab_rules import evaluate_lab_value, find_lab_rule

logger = logging.getLogger(__name__)

_NON_NUMERIC_RE = re.compile(r"[^\d.\-]+")
# A minus right after a digit or dot is a range separator ("12.0-15.5"), not a
# sign. Leading-dot values (".5") are numbers.
_NUMBER_RE = re.compile(r"(?:(?<![\d.])-)?(?:\d+(?:\.\d+)?|\.\d+)")
_PARENTHETICAL_RE = re.compile(r"\(.*?\)")
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")
_LETTER_RE = re.compile(r"[^\W\d_]")
_VALUE_TOKEN_RE = re.compile(r"[<>≤≥=~]*[-+]?\.?\d")

# Flags printed next to values on lab reports (kept as-is, not evaluated)
_FLAG_TOKENS = frozenset({"H", "L", "HH", "LL", "A", "*"})


def _clean_numeric_text(text: str) -> str:
    """Comma decimal -> dot (first comma only), then blank out non-numerics."""
    return _NON_NUMERIC_RE.sub(" ", text.replace(",", ".", 1))


def parse_numeric_value(text: str | None) -> float | None:
    """Extract the first numeric token from free text.

    >>> parse_numeric_value("11.2 g/dL")
    11.2
    >>> parse_numeric_value("5,6 %")
    5.6
    """
    if not text:
        return None
    match = _NUMBER_RE.search(_clean_numeric_text(text))
    if match is None:
        return None
    return float(match.group(0))


def normalize_unit(unit_text: str | None, rule: LabRule) -> str:
    """Clean an OCR unit string, falling back to the rule's display unit."""
    if not unit_text:
        return rule.unit

    trimmed = unit_text.strip()
    if not trimmed:
        return rule.unit

    # "[mg/dL]" -> "mg/dL"
    if trimmed.startswith("["):
        trimmed = trimmed[1:]
    if trimmed.endswith("]"):
        trimmed = trimmed[:-1]

    return trimmed or rule.unit


def parse_reference_range(text: str | None) -> NumericRange | None:
    """Best-effort parse of a printed "min-max" reference range.

    Not used for evaluation; the rule table is the source of truth. Kept for
    comparing lab-printed ranges against the built-in ones.
    """
    if not text:
        return None

    matches = [m.group(0) for m in _NUMBER_RE.finditer(_clean_numeric_text(text))]
    if len(matches) < 2:
        return None
    return NumericRange(min=float(matches[0]), max=float(matches[1]))


def resolve_lab_rule_from_name(raw_name: str | None) -> LabRule | None:
    """Map an OCR test name to a lab rule.

    Attempts, in order: the name as-is; with parentheticals and symbols
    stripped; that stripped text uppercased; its first word only
    (e.g. "HGB g/dL" -> "HGB").
    """
    if not raw_name:
        return None

    rule = find_lab_rule(raw_name)
    if rule is not None:
        return rule

    stripped = _NON_ALNUM_RE.sub(" ", _PARENTHETICAL_RE.sub("", raw_name)).strip()
    if not stripped:
        return None

    rule = find_lab_rule(stripped) or find_lab_rule(stripped.upper())
    if rule is not None:
        return rule

    first_token = stripped.split(" ")[0]
    return find_lab_rule(first_token) if first_token else None


def interpret_ocr_lab_row(
    row: OcrLabRow,
    sex: SexAtBirth | str | None = None,
) -> ParsedLabValue | None:
    """Interpret a single OCR row into a ParsedLabValue.

    Returns:
        The parsed value, or None when the name matches no rule or the value
        text has no number in it.
    """
    rule = resolve_lab_rule_from_name(row.raw_name)
    if rule is None:
        logger.debug("No lab rule matched %r", row.raw_name)
        return None

    value = parse_numeric_value(row.value_text)
    if value is None:
        logger.debug("No numeric value in %r for %s", row.value_text, rule.code)
        return None

    evaluation = evaluate_lab_value(rule, value, sex)

    return ParsedLabValue(
        code=rule.code,
        name=rule.name,
        category=rule.category,
        value=value,
        unit=normalize_unit(row.unit_text, rule),
        flag=evaluation.flag,
        is_out_of_range=evaluation.flag in OUT_OF_RANGE_FLAGS,
        normal_range=evaluation.used_range,
        critical=rule.critical,
        sex_used=sex,
        rule=rule,
        raw=row,
    )


def interpret_lab_panel(
    rows: list[OcrLabRow],
    sex: SexAtBirth | str | None = None,
) -> ParsedLabPanel:
    """Interpret a whole panel, keeping rejected rows in input order."""
    panel = ParsedLabPanel()
    for row in rows:
        parsed = interpret_ocr_lab_row(row, sex)
        if parsed is not None:
            panel.items.append(parsed)
        else:
            panel.unknown_rows.append(row)
    return panel


def _is_value_token(token: str) -> bool:
    # "11.2", "<0.5", "5,6", "11.2g/dL"; not "HbA1c" or "CO2"
    return _VALUE_TOKEN_RE.match(token.replace(",", ".", 1)) is not None


def _is_range_or_number(token: str) -> bool:
    return not _LETTER_RE.search(token) and parse_numeric_value(token) is not None


def interpret_lab_line(
    line: str | None,
    sex: SexAtBirth | str | None = None,
) -> ParsedLabValue | None:
    """Interpret one pasted line such as "HGB 11.2 g/dL (12.0-15.5) L".

    Tokens before the first numeric token form the name, that token is the
    value and the following token is the unit. Whatever trails is kept on the
    raw row as reference range / flag text.

    Returns:
        The parsed value, or None when the line has no leading name, no
        number, or does not resolve to a rule.
    """
    if not line or not line.strip():
        return None

    tokens = line.split()
    if len(tokens) < 2:
        return None

    numeric_index = next((i for i, tok in enumerate(tokens) if _is_value_token(tok)), -1)
    if numeric_index <= 0:
        return None

    tail = tokens[numeric_index + 1:]
    unit_text = None
    if tail and not _is_range_or_number(tail[0]) and tail[0].upper() not in _FLAG_TOKENS:
        unit_text = tail.pop(0)

    flag_text = None
    if tail and tail[-1].upper() in _FLAG_TOKENS:
        flag_text = tail.pop()

    row = OcrLabRow(
        raw_name=" ".join(tokens[:numeric_index]),
        value_text=tokens[numeric_index],
        unit_text=unit_text,
        reference_range_text=" ".join(tail) or None,
        flag_text=flag_text,
    )
    return interpret_ocr_lab_row(row, sex)
