"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- HTTP client for API testing
- Lab rules and parsed values built outside the static table
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from labrisk.main import app
from labrisk.schemas.labs import (
    OUT_OF_RANGE_FLAGS,
    LabCategory,
    LabRule,
    NormalRanges,
    NumericRange,
    OcrLabRow,
    ParsedLabValue,
)
from labrisk.services.lab_rules import evaluate_lab_value


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client():
    """Async test client for the FastAPI app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# =============================================================================
# Lab Data Helpers
# =============================================================================


def make_rule(
    code: str = "TEST",
    *,
    any_range: tuple[float, float] | None = (100, 200),
    male: tuple[float, float] | None = None,
    female: tuple[float, float] | None = None,
    **overrides,
) -> LabRule:
    """Create a lab rule that is not part of the static table."""

    def _range(bounds):
        return NumericRange(min=bounds[0], max=bounds[1]) if bounds else None

    fields = {
        "code": code,
        "name": f"{code} Test",
        "category": LabCategory.OTHER,
        "unit": "U/L",
        "normal_range": NormalRanges(
            any=_range(any_range), male=_range(male), female=_range(female)
        ),
    }
    fields.update(overrides)
    return LabRule(**fields)


def make_parsed(rule: LabRule, value: float | None, sex=None) -> ParsedLabValue:
    """Build a ParsedLabValue the way the interpreter does, for any rule."""
    evaluation = evaluate_lab_value(rule, value, sex)
    return ParsedLabValue(
        code=rule.code,
        name=rule.name,
        category=rule.category,
        value=value,
        unit=rule.unit,
        flag=evaluation.flag,
        is_out_of_range=evaluation.flag in OUT_OF_RANGE_FLAGS,
        normal_range=evaluation.used_range,
        critical=rule.critical,
        sex_used=sex,
        rule=rule,
        raw=OcrLabRow(raw_name=rule.code, value_text=str(value)),
    )


@pytest.fixture
def wide_rule() -> LabRule:
    """Rule with a single [100, 200] range (span 100) and no panic values."""
    return make_rule()
