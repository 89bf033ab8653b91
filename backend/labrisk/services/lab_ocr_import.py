"""Propose lab values from raw OCR text of an uploaded lab report.

Only a small set of analytes used for longitudinal tracking is extracted
(A1c, LDL, HDL, total cholesterol, creatinine, eGFR). Candidates are
proposals: the patient confirms them before anything is saved, and saving
is the caller's concern.
"""

import logging
import re
from dataclasses import dataclass

from labrisk.schemas.labs import (
    CandidateConfidence,
    LabAnalyte,
    LabOcrCandidate,
    LabOcrProposal,
)

logger = logging.getLogger(__name__)

_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_US_DATE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{2,4})\b")
_NUMBER_TOKEN_RE = re.compile(r"^\d+(\.\d+)?$")
_INLINE_SPACE_RE = re.compile(r"[ \t]+")
# Letter-only boundaries so "6.1%" and "6.1 %" both count
_UNIT_RE = re.compile(
    r"(?<![A-Za-z])(mg/dL|mmol/L|%|percent|umol/L|µmol/L|mL/min/1\.73\s*m2)(?![A-Za-z0-9])",
    re.IGNORECASE,
)

_CONFIDENCE_RANK: dict[str, int] = {"high": 3, "medium": 2, "low": 1}


@dataclass(frozen=True)
class _ExtractSpec:
    analyte: LabAnalyte
    display_name: str
    patterns: tuple[re.Pattern, ...]


_SPECS: tuple[_ExtractSpec, ...] = (
    _ExtractSpec(
        analyte="A1C",
        display_name="Hemoglobin A1c",
        patterns=(
            re.compile(r"\b(A1c|HbA1c|HgbA1c|Hemoglobin A1c)\b[^0-9]{0,20}(\d+(\.\d+)?)\s*(%|percent)?", re.I),
            re.compile(r"\bGlycohemoglobin\b[^0-9]{0,20}(\d+(\.\d+)?)\s*(%|percent)?", re.I),
        ),
    ),
    _ExtractSpec(
        analyte="LDL",
        display_name="LDL",
        patterns=(
            re.compile(r"\bLDL\b[^0-9]{0,25}(\d+(\.\d+)?)\s*(mg/dL|mmol/L)?", re.I),
            re.compile(r"\bLDL[- ]?C\b[^0-9]{0,25}(\d+(\.\d+)?)\s*(mg/dL|mmol/L)?", re.I),
        ),
    ),
    _ExtractSpec(
        analyte="HDL",
        display_name="HDL",
        patterns=(
            re.compile(r"\bHDL\b[^0-9]{0,25}(\d+(\.\d+)?)\s*(mg/dL|mmol/L)?", re.I),
            re.compile(r"\bHDL[- ]?C\b[^0-9]{0,25}(\d+(\.\d+)?)\s*(mg/dL|mmol/L)?", re.I),
        ),
    ),
    _ExtractSpec(
        analyte="TOTAL_CHOL",
        display_name="Total cholesterol",
        patterns=(
            re.compile(
                r"\b(Total\s+Cholesterol|Cholesterol,\s*Total|Cholesterol\s+Total)\b"
                r"[^0-9]{0,25}(\d+(\.\d+)?)\s*(mg/dL|mmol/L)?",
                re.I,
            ),
        ),
    ),
    _ExtractSpec(
        analyte="CREATININE",
        display_name="Creatinine",
        patterns=(
            re.compile(r"\bCreatinine\b[^0-9]{0,25}(\d+(\.\d+)?)\s*(mg/dL|umol/L|µmol/L)?", re.I),
            re.compile(r"\bCr\b[^0-9]{0,10}(\d+(\.\d+)?)\s*(mg/dL|umol/L|µmol/L)?", re.I),
        ),
    ),
    _ExtractSpec(
        analyte="EGFR",
        display_name="eGFR",
        patterns=(
            re.compile(
                r"\b(eGFR|Estimated\s+GFR|GFR)\b[^0-9]{0,25}(\d+(\.\d+)?)\s*"
                r"(mL/min/1\.73m2|mL/min/1\.73\s*m2)?",
                re.I,
            ),
        ),
    ),
)


def normalize_ocr_text(text: str | None) -> str:
    """Collapse OCR whitespace noise while keeping line breaks."""
    cleaned = (text or "").replace("\r", "\n").replace("\u00a0", " ")
    return _INLINE_SPACE_RE.sub(" ", cleaned).strip()


def find_date_iso(text: str) -> str | None:
    """Return the first ISO or US-style date in the text as YYYY-MM-DD."""
    iso = _ISO_DATE_RE.search(text)
    if iso:
        return f"{iso.group(1)}-{iso.group(2)}-{iso.group(3)}"

    us = _US_DATE_RE.search(text)
    if us:
        month, day, year = us.group(1), us.group(2), us.group(3)
        if len(year) == 2:
            year = f"20{year}"
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    return None


def _first_number_group(match: re.Match) -> float | None:
    for group in match.groups():
        if group and _NUMBER_TOKEN_RE.match(group.strip()):
            return float(group)
    return None


def _line_unit(line: str) -> str | None:
    match = _UNIT_RE.search(line)
    if match is None:
        return None
    unit = match.group(1)
    return "%" if unit.lower() == "percent" else unit


def propose_labs_from_ocr(ocr_text: str | None) -> LabOcrProposal:
    """Scan OCR text for supported analytes and propose one value for each.

    Each matching line yields a candidate; confidence is "high" when a unit is
    present on the line and "medium" otherwise. Per analyte, the first
    candidate with the highest confidence wins.
    """
    text = normalize_ocr_text(ocr_text)
    detected_date = find_date_iso(text)
    lines = [line.strip() for line in text.split("\n") if line.strip()]

    best: dict[str, LabOcrCandidate] = {}
    for spec in _SPECS:
        for line in lines:
            for pattern in spec.patterns:
                match = pattern.search(line)
                if match is None:
                    continue
                value = _first_number_group(match)
                if value is None:
                    continue

                unit = _line_unit(line)
                confidence: CandidateConfidence = "high" if unit else "medium"
                candidate = LabOcrCandidate(
                    analyte=spec.analyte,
                    display_name=spec.display_name,
                    value=value,
                    unit=unit,
                    collected_at=detected_date,
                    raw_line=line,
                    confidence=confidence,
                )

                existing = best.get(spec.analyte)
                if existing is None or (
                    _CONFIDENCE_RANK[candidate.confidence] > _CONFIDENCE_RANK[existing.confidence]
                ):
                    best[spec.analyte] = candidate

    logger.debug("Proposed %d lab candidates from %d OCR lines", len(best), len(lines))
    return LabOcrProposal(
        normalized_text=text,
        detected_date=detected_date,
        candidates=list(best.values()),
    )
