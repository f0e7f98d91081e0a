"""
Pytest configuration and shared fixtures for unit tests.

Provides:
- AnyIO backend selection for ``@pytest.mark.anyio`` tests
- Field code and document structure factories
- Settings overrides restored after each test
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

# Add package to path for imports
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402 (import after path setup)

from rdlgen.core.config import settings  # noqa: E402 (import after path setup)
from rdlgen.core.observability import set_correlation_id  # noqa: E402
from rdlgen.domain.enums import FieldCodeCategory, LogicalRole  # noqa: E402
from rdlgen.domain.models import (  # noqa: E402
    BoundingBox,
    DocumentStructure,
    FieldCode,
    LogicalElement,
    PageElement,
    ParagraphElement,
    TextRun,
)


@pytest.fixture
def anyio_backend():
    """Run async tests on asyncio only."""
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_correlation_id():
    set_correlation_id("")
    yield
    set_correlation_id("")


@pytest.fixture
def override_settings(monkeypatch):
    """
    Temporarily change attributes of the global settings object.

    Usage:
        override_settings(sandbox_strict=True)
    """

    def _override(**values):
        for key, value in values.items():
            monkeypatch.setattr(settings, key, value)

    return _override


def make_field_code(
    raw_text: str,
    category: FieldCodeCategory = FieldCodeCategory.FORMULA,
    code_id: str = "fc_1",
    field_name: str | None = None,
) -> FieldCode:
    return FieldCode(id=code_id, category=category, raw_text=raw_text, field_name=field_name)


def make_paragraph(
    element_id: str,
    *runs: TextRun,
    top: float = 72.0,
    left: float = 72.0,
    width: float = 288.0,
    height: float = 18.0,
) -> ParagraphElement:
    return ParagraphElement(
        id=element_id,
        bounds=BoundingBox(left=left, top=top, width=width, height=height),
        runs=list(runs),
    )


def make_structure(
    *paragraphs: ParagraphElement,
    header: str | None = None,
    footer: bool = False,
) -> DocumentStructure:
    logical = []
    if header is not None:
        logical.append(LogicalElement(id="hdr", role=LogicalRole.HEADER, content=header))
    if footer:
        logical.append(LogicalElement(id="ftr", role=LogicalRole.FOOTER))
    return DocumentStructure(
        title="Test document",
        pages=[PageElement(page_number=1, elements=list(paragraphs))],
        logical_elements=logical,
    )
