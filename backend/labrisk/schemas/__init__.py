"""Pydantic schemas."""

from labrisk.schemas.labs import (
    CriticalThresholds,
    InterpretLineRequest,
    InterpretLineResponse,
    InterpretPanelRequest,
    InterpretPanelResponse,
    LabCategory,
    LabEvaluation,
    LabFlag,
    LabOcrCandidate,
    LabOcrProposal,
    LabPanelRiskSummary,
    LabRiskAssessment,
    LabRiskLevel,
    LabRule,
    NormalRanges,
    NumericRange,
    OcrLabRow,
    OcrProposalRequest,
    ParsedLabPanel,
    ParsedLabValue,
    SexAtBirth,
)

__all__ = [
    "CriticalThresholds",
    "LabCategory",
    "LabEvaluation",
    "LabFlag",
    "LabRiskLevel",
    "LabRule",
    "NormalRanges",
    "NumericRange",
    "SexAtBirth",
    # Interpreter
    "OcrLabRow",
    "ParsedLabPanel",
    "ParsedLabValue",
    # Risk engine
    "LabPanelRiskSummary",
    "LabRiskAssessment",
    # OCR import
    "LabOcrCandidate",
    "LabOcrProposal",
    # API
    "InterpretLineRequest",
    "InterpretLineResponse",
    "InterpretPanelRequest",
    "InterpretPanelResponse",
    "OcrProposalRequest",
]
