"""
Boundary models exchanged with the document extraction stage.

Inputs from outside the package (field codes and the perceived document
structure) are pydantic models validated on construction. Values derived by
the package itself (branches, messages, extraction results) are plain frozen
dataclasses.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from rdlgen.domain.enums import FieldCodeCategory, LogicalRole, TextAlignment, ValidationSeverity

if TYPE_CHECKING:
    from rdlgen.compiler.ast import ExprNode

POINTS_PER_INCH = 72.0


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# =============================================================================
# Field codes
# =============================================================================


class FieldCode(_Frozen):
    """A placeholder directive found in the source document."""

    id: str = Field(min_length=1)
    category: FieldCodeCategory
    raw_text: str
    field_name: str | None = None


# =============================================================================
# Document structure
# =============================================================================


class BoundingBox(_Frozen):
    """Position and size in points (72 points = 1 inch)."""

    left: float = 0.0
    top: float = 0.0
    width: float = Field(default=0.0, ge=0)
    height: float = Field(default=0.0, ge=0)

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def to_inches(self) -> tuple[float, float, float, float]:
        """Return (left, top, width, height) in inches."""
        return (
            self.left / POINTS_PER_INCH,
            self.top / POINTS_PER_INCH,
            self.width / POINTS_PER_INCH,
            self.height / POINTS_PER_INCH,
        )


class TextStyle(_Frozen):
    font_family: str | None = None
    font_size: float | None = Field(default=None, gt=0)
    bold: bool = False
    italic: bool = False
    underline: bool = False
    color: str | None = None  # hex RGB without '#'


class TextRun(_Frozen):
    """A span of text; runs carrying a field code are rendered as expressions."""

    text: str = ""
    style: TextStyle | None = None
    field_code: FieldCode | None = None


class ParagraphElement(_Frozen):
    kind: Literal["paragraph"] = "paragraph"
    id: str
    bounds: BoundingBox = BoundingBox()
    runs: list[TextRun] = []
    alignment: TextAlignment | None = None  # None: left in the body, detected in table cells

    @property
    def text(self) -> str:
        return "".join(run.text for run in self.runs)


class TableCell(_Frozen):
    row_index: int = Field(ge=0)
    column_index: int = Field(ge=0)
    paragraphs: list[ParagraphElement] = []


class TableRow(_Frozen):
    height: float = Field(default=18.0, gt=0)  # points
    cells: list[TableCell] = []


class BoundField(_Frozen):
    """A data set column shown by a data-bound table."""

    name: str = Field(min_length=1)
    display_name: str | None = None
    type_name: str = "System.String"


class DataSetBinding(_Frozen):
    fields: list[BoundField] = []
    group_by: str | None = None


class TableElement(_Frozen):
    kind: Literal["table"] = "table"
    id: str
    bounds: BoundingBox = BoundingBox()
    column_widths: list[float] = []  # points
    rows: list[TableRow] = []
    binding: DataSetBinding | None = None  # repeat one detail row per data set row
    has_header_row: bool = False

    @property
    def column_count(self) -> int:
        if self.column_widths:
            return len(self.column_widths)
        return max((len(row.cells) for row in self.rows), default=0)


class ImageElement(_Frozen):
    kind: Literal["image"] = "image"
    id: str
    bounds: BoundingBox = BoundingBox()
    data: bytes
    mime_type: str = "image/png"


ContentElement = Annotated[
    ParagraphElement | TableElement | ImageElement, Field(discriminator="kind")
]


class PageElement(_Frozen):
    page_number: int = Field(ge=1)
    width: float = Field(default=612.0, gt=0)  # points
    height: float = Field(default=792.0, gt=0)
    elements: list[ContentElement] = []


class LogicalElement(_Frozen):
    id: str
    role: LogicalRole
    content: str | None = None
    page_number: int | None = None


class DocumentStructure(_Frozen):
    """Perceived layout of the source document."""

    title: str | None = None
    pages: list[PageElement] = []
    logical_elements: list[LogicalElement] = []

    def elements_with_role(self, role: LogicalRole) -> list[LogicalElement]:
        return [e for e in self.logical_elements if e.role == role]


# =============================================================================
# Derived values
# =============================================================================


@dataclass(frozen=True)
class ValidationMessage:
    """One finding of the sandbox or schema validator."""

    severity: ValidationSeverity
    code: str
    message: str
    location: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == ValidationSeverity.ERROR

    def __str__(self) -> str:
        where = f" at {self.location}" if self.location else ""
        return f"{self.severity.value} {self.code}: {self.message}{where}"


@dataclass(frozen=True)
class ConditionalBranch:
    """A condition with its true/false values, extracted from an IF field code."""

    id: str
    condition: "ExprNode"
    true_value: "ExprNode"
    false_value: "ExprNode | None" = None
    source_id: str | None = None
    depth: int = 0


@dataclass(frozen=True)
class CalculationFormula:
    id: str
    raw_text: str
    tree: "ExprNode"
    source_id: str | None = None


@dataclass
class LogicExtractionResult:
    """Conditions and formulas recovered from a batch of field codes."""

    field_codes: list[FieldCode] = field(default_factory=list)
    conditions: list[ConditionalBranch] = field(default_factory=list)
    formulas: list[CalculationFormula] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
