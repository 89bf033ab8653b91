"""Lab interpretation API routes.

Thin, stateless wrappers around the interpreter and risk engine. Requests
carry raw OCR rows or pasted text; responses carry parsed values plus their
risk assessment. Nothing is persisted.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from labrisk.config import settings
from labrisk.schemas.labs import (
    InterpretLineRequest,
    InterpretLineResponse,
    InterpretPanelRequest,
    InterpretPanelResponse,
    LabCategory,
    LabOcrProposal,
    LabRule,
    OcrProposalRequest,
)
from labrisk.services.lab_interpreter import interpret_lab_line, interpret_lab_panel
from labrisk.services.lab_ocr_import import propose_labs_from_ocr
from labrisk.services.lab_risk_engine import assess_lab_value_risk, summarize_panel_risk
from labrisk.services.lab_rules import find_lab_rule, list_lab_rules

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/labs", tags=["labs"])


@router.get("/rules")
async def get_lab_rules(category: LabCategory | None = None) -> list[LabRule]:
    """List canonical lab rules in table order, optionally for one panel."""
    return list_lab_rules(category)


@router.get("/rules/{code_or_name}")
async def get_lab_rule(code_or_name: str) -> LabRule:
    """Look up one rule by canonical code, display name or alias.

    Raises:
        HTTPException: 404 if nothing matches.
    """
    rule = find_lab_rule(code_or_name)
    if rule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lab rule not found",
        )
    return rule


@router.post("/interpret")
async def interpret_panel(request: InterpretPanelRequest) -> InterpretPanelResponse:
    """Interpret a panel of OCR rows and summarize its risk.

    Rows that cannot be interpreted are returned in unknown_rows, in input
    order, rather than failing the request.

    Raises:
        HTTPException: 413 if the panel exceeds the configured row limit.
    """
    if len(request.rows) > settings.max_panel_rows:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Panel exceeds {settings.max_panel_rows} rows",
        )

    panel = interpret_lab_panel(request.rows, request.sex)
    risk = summarize_panel_risk(panel.items)
    logger.info(
        "Interpreted lab panel: %d items, %d unknown, dominant=%s",
        len(panel.items),
        len(panel.unknown_rows),
        risk.dominant_level.value,
    )
    return InterpretPanelResponse(
        items=panel.items,
        unknown_rows=panel.unknown_rows,
        risk=risk,
    )


@router.post("/interpret-line")
async def interpret_line(request: InterpretLineRequest) -> InterpretLineResponse:
    """Interpret a single pasted lab line such as "HGB 11.2 g/dL (12.0-15.5) L".

    Raises:
        HTTPException: 422 if the line has no recognizable test name or value.
    """
    parsed = interpret_lab_line(request.line, request.sex)
    if parsed is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Could not interpret lab line",
        )
    return InterpretLineResponse(parsed=parsed, risk=assess_lab_value_risk(parsed))


@router.post("/ocr/propose")
async def propose_from_ocr(request: OcrProposalRequest) -> LabOcrProposal:
    """Propose tracked lab values from the raw OCR text of a report."""
    return propose_labs_from_ocr(request.text)
