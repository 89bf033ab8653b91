"""Pydantic schemas for lab interpretation and risk assessment.

These schemas define the rule table entries, the raw OCR/manual input rows,
and the derived interpretation and risk structures handed to consumers
(detail screens, provider packets, AI prompt context builders).

Enum values are a fixed vocabulary shared with existing consumers and must
not be renamed.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# === Enums ===


class LabCategory(str, Enum):
    """Panel tag for a canonical lab test."""

    CBC = "CBC"
    CMP = "CMP"
    LIPIDS = "LIPIDS"
    ENDOCRINE = "ENDOCRINE"
    RENAL = "RENAL"
    HEPATIC = "HEPATIC"
    DIABETES = "DIABETES"
    OTHER = "OTHER"


class SexAtBirth(str, Enum):
    """Sex used to pick a normal range."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class LabFlag(str, Enum):
    """Classification of a value against its normal and critical thresholds."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL_LOW = "critical_low"
    CRITICAL_HIGH = "critical_high"
    UNKNOWN = "unknown"


class LabRiskLevel(str, Enum):
    """Color-coded risk level for tiles and badges."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    UNKNOWN = "unknown"


OUT_OF_RANGE_FLAGS = frozenset(
    {LabFlag.LOW, LabFlag.HIGH, LabFlag.CRITICAL_LOW, LabFlag.CRITICAL_HIGH}
)
CRITICAL_FLAGS = frozenset({LabFlag.CRITICAL_LOW, LabFlag.CRITICAL_HIGH})


# === Rule table ===


class NumericRange(BaseModel):
    """Inclusive numeric range."""

    model_config = ConfigDict(frozen=True)

    min: float
    max: float


class NormalRanges(BaseModel):
    """Adult normal ranges keyed by sex; `any` applies to everyone."""

    model_config = ConfigDict(frozen=True)

    any: NumericRange | None = None
    male: NumericRange | None = None
    female: NumericRange | None = None


class CriticalThresholds(BaseModel):
    """Panic thresholds; a value at or beyond one is critical."""

    model_config = ConfigDict(frozen=True)

    low: float | None = None
    high: float | None = None


class LabRule(BaseModel):
    """Static metadata for one canonical lab test."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Canonical short identifier, e.g. HGB")
    name: str = Field(..., description="Display name, e.g. Hemoglobin")
    category: LabCategory
    unit: str = Field(..., description="Canonical display unit")
    normal_range: NormalRanges
    critical: CriticalThresholds | None = None
    note: str | None = Field(default=None, description="Short clinical annotation")
    aliases: tuple[str, ...] = Field(
        default=(),
        description="Alternate names and abbreviations seen on lab reports",
    )


class LabEvaluation(BaseModel):
    """Result of evaluating one numeric value against a rule."""

    flag: LabFlag
    offset: float | None = Field(
        default=None,
        description="Signed distance from the violated bound; 0 when in range",
    )
    used_range: NumericRange | None = None


# === Interpreter input/output ===


class OcrLabRow(BaseModel):
    """Raw lab row as captured from OCR or manual entry."""

    raw_name: str
    value_text: str
    unit_text: str | None = None
    reference_range_text: str | None = None
    flag_text: str | None = Field(default=None, description='Printed flag, e.g. "H", "L", "*"')


class ParsedLabValue(BaseModel):
    """Canonical interpretation of one OCR row against one lab rule."""

    code: str
    name: str
    category: LabCategory
    value: float | None
    unit: str
    flag: LabFlag
    is_out_of_range: bool
    normal_range: NumericRange | None = None
    critical: CriticalThresholds | None = None
    sex_used: SexAtBirth | None = None
    rule: LabRule
    raw: OcrLabRow


class ParsedLabPanel(BaseModel):
    """Interpreted rows plus the rows that could not be interpreted."""

    items: list[ParsedLabValue] = Field(default_factory=list)
    unknown_rows: list[OcrLabRow] = Field(default_factory=list)


# === Risk engine output ===


class LabRiskAssessment(BaseModel):
    """UI-facing risk signal for one parsed lab value."""

    flag: LabFlag
    level: LabRiskLevel
    label: str = Field(..., description='Short label, e.g. "Normal", "Critically Low"')
    summary: str = Field(..., description="One-line summary for cards")
    detail: str | None = Field(default=None, description="Longer text for detail views")
    value: float | None
    unit: str
    code: str
    name: str
    is_critical: bool
    is_abnormal: bool


class LabPanelRiskSummary(BaseModel):
    """Risk aggregated across a panel of lab values."""

    dominant_level: LabRiskLevel
    any_critical: bool
    out_of_range_count: int
    items: list[LabRiskAssessment] = Field(default_factory=list)


# === OCR text import ===


LabAnalyte = Literal["A1C", "LDL", "HDL", "TOTAL_CHOL", "CREATININE", "EGFR"]
CandidateConfidence = Literal["high", "medium", "low"]


class LabOcrCandidate(BaseModel):
    """A lab value proposed from free OCR text, pending patient review."""

    analyte: LabAnalyte
    display_name: str
    value: float
    unit: str | None = None
    collected_at: str | None = Field(default=None, description="ISO date YYYY-MM-DD")
    raw_line: str
    confidence: CandidateConfidence


class LabOcrProposal(BaseModel):
    """Candidates found in one OCR document."""

    normalized_text: str
    detected_date: str | None = None
    candidates: list[LabOcrCandidate] = Field(default_factory=list)


# === API request/response ===


class InterpretPanelRequest(BaseModel):
    """Request body for panel interpretation."""

    rows: list[OcrLabRow]
    sex: SexAtBirth | None = None


class InterpretPanelResponse(BaseModel):
    """Interpreted panel plus its risk summary."""

    items: list[ParsedLabValue]
    unknown_rows: list[OcrLabRow]
    risk: LabPanelRiskSummary


class InterpretLineRequest(BaseModel):
    """Request body for single-line interpretation."""

    line: str = Field(..., min_length=1)
    sex: SexAtBirth | None = None


class InterpretLineResponse(BaseModel):
    """One interpreted line with its risk assessment."""

    parsed: ParsedLabValue
    risk: LabRiskAssessment


class OcrProposalRequest(BaseModel):
    """Request body for OCR candidate proposal."""

    text: str
