"""
Schema synthesizer.

Builds a complete RDL report definition from the perceived document
structure and the logic extracted from its field codes:

- paragraphs become Textboxes; runs carrying field codes become expressions
- tables become static Tablix regions, or detail regions when bound to the data set
- images become Image items backed by EmbeddedImages; header logos go to the page header
- header and footer logical elements become page header and footer bands
- calculation formulas become report Variables
- merge fields referenced anywhere become data set fields

The result is validated before it is returned; a document that fails
validation is never handed out.
"""

import base64
import logging
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

from rdlgen.compiler.ast import call, field_ref, global_ref, literal
from rdlgen.compiler.compiler import BatchResult, FieldCodeResult, compile_field_codes, extract_logic
from rdlgen.compiler.generator import format_literal, generate_expression
from rdlgen.compiler.validator import validate_expression
from rdlgen.core.observability import generate_correlation_id, reset_correlation_id, set_correlation_id
from rdlgen.domain.enums import LogicalRole, NodeKind, TextAlignment, ValidationSeverity
from rdlgen.domain.models import (
    BoundField,
    BoundingBox,
    CalculationFormula,
    DocumentStructure,
    FieldCode,
    ImageElement,
    LogicExtractionResult,
    PageElement,
    ParagraphElement,
    TableElement,
    TextRun,
    TextStyle,
    ValidationMessage,
)
from rdlgen.schema import builder
from rdlgen.schema.namespaces import (
    bool_text,
    format_inches,
    points_to_inches,
    rd_sub_element,
    rdl,
    sanitize_xml_string,
    sub_element,
)
from rdlgen.schema.styles import detect_cell_alignment, normalize_font_family
from rdlgen.schema.validation import ensure_valid, to_xml_bytes

logger = logging.getLogger(__name__)

FIELD_CODE_FALLBACK = "SYNTH001"
SANDBOX_FALLBACK = "SYNTH002"
UNSUPPORTED_IMAGE = "SYNTH003"
EMPTY_TABLE = "SYNTH004"

SUPPORTED_IMAGE_TYPES = frozenset({"image/bmp", "image/jpeg", "image/gif", "image/png", "image/x-png"})

MIN_ITEM_HEIGHT_IN = 0.25
MIN_ITEM_WIDTH_IN = 0.1
HEADER_HEIGHT_IN = 1.0
FOOTER_HEIGHT_IN = 0.5

# Images with this id prefix are logos for the page header, not body content.
HEADER_IMAGE_PREFIX = "header_img_"
HEADER_IMAGE_HEIGHT_IN = 0.7
HEADER_IMAGE_WIDTH_IN = 2.0
HEADER_TEXT_GAP_IN = 0.5


def page_number_expression() -> str:
    """``=("Page " & Globals!PageNumber & " of " & Globals!TotalPages)``, via the generator."""
    tree = call(
        "CONCAT",
        literal("Page "),
        global_ref("PageNumber"),
        literal(" of "),
        global_ref("TotalPages"),
    )
    return generate_expression(tree)


@dataclass
class SynthesisResult:
    """A validated report definition plus everything noticed while building it."""

    document: ET.Element
    diagnostics: list[ValidationMessage] = field(default_factory=list)
    expressions: dict[str, str] = field(default_factory=dict)
    correlation_id: str = ""

    @property
    def warnings(self) -> list[ValidationMessage]:
        return [d for d in self.diagnostics if d.severity == ValidationSeverity.WARNING]

    def to_xml_bytes(self) -> bytes:
        return to_xml_bytes(self.document)


class ReportSynthesizer:
    """
    Builds one report definition.

    An instance owns the document it builds and the item-name counters for
    it; use a new instance per document.
    """

    def __init__(
        self,
        structure: DocumentStructure,
        logic: LogicExtractionResult | None = None,
        data_set_name: str | None = None,
    ) -> None:
        from rdlgen.core.config import settings

        self.settings = settings
        self.structure = structure
        self.logic = logic if logic is not None else extract_logic(collect_field_codes(structure))
        self.data_set_name = (
            sanitize_xml_string(data_set_name) or settings.report_default_data_set_name
        )
        self.diagnostics: list[ValidationMessage] = []
        self.expressions: dict[str, str] = {}
        self._counters: dict[str, int] = {}
        self._batch: BatchResult | None = None
        self._results_by_id: dict[str, FieldCodeResult] = {}
        self._body_bottom_in = 0.0

    # ------------------------------------------------------------------ naming

    def _next_name(self, prefix: str) -> str:
        self._counters[prefix] = self._counters.get(prefix, 0) + 1
        return f"{prefix}{self._counters[prefix]}"

    # --------------------------------------------------------------- pipeline

    def synthesize(self) -> SynthesisResult:
        """
        Build and validate the report definition.

        Every call runs under a fresh correlation id; the caller's id is
        restored afterwards.
        """
        correlation_id = generate_correlation_id()
        token = set_correlation_id(correlation_id)
        try:
            result = self._synthesize()
        finally:
            reset_correlation_id(token)
        result.correlation_id = correlation_id
        return result

    def _synthesize(self) -> SynthesisResult:
        start_time = time.time()
        codes = list(self.logic.field_codes)
        for code in collect_field_codes(self.structure):
            if all(code.id != known.id for known in codes):
                codes.append(code)
        self._batch = compile_field_codes(sanitize_field_code(code) for code in codes)
        self._results_by_id = self._batch.by_id()
        for result in self._batch.results:
            if result.error is not None:
                self._diagnose(
                    ValidationSeverity.WARNING,
                    FIELD_CODE_FALLBACK,
                    result.error.message,
                    result.field_code.id,
                )
        for warning in self.logic.warnings:
            self._diagnose(ValidationSeverity.INFO, FIELD_CODE_FALLBACK, warning)

        document = builder.create_empty_document(self.data_set_name)
        for name, type_name in self._referenced_fields().items():
            builder.add_data_field(document, self.data_set_name, name, type_name)

        for formula in self.logic.formulas:
            expression = self._formula_expression(formula)
            if expression is not None:
                builder.add_report_variable(document, formula.id, expression)

        page_offset_in = 0.0
        for page in self.structure.pages:
            self._add_page(document, page, page_offset_in)
            page_offset_in += self._page_body_height(page)

        self._add_header(document)
        self._add_footer(document)

        body_height = max(self.settings.report_body_min_height_in, self._body_bottom_in)
        builder.update_body_height(document, body_height)

        self.diagnostics.extend(ensure_valid(document))
        _record_document_metric()
        logger.info(
            "Synthesized report definition: %d page(s), %d expression(s), %d diagnostic(s) in %.3fs",
            len(self.structure.pages),
            len(self.expressions),
            len(self.diagnostics),
            time.time() - start_time,
        )
        return SynthesisResult(document, self.diagnostics, self.expressions)

    def _diagnose(
        self, severity: ValidationSeverity, code: str, message: str, location: str | None = None
    ) -> None:
        self.diagnostics.append(ValidationMessage(severity, code, message, location))

    def _referenced_fields(self) -> dict[str, str]:
        """Field name to CLR type name, in first-reference order."""
        names: dict[str, str] = {}
        for compiled in self._batch.succeeded:
            for node in compiled.tree.walk():
                if node.kind == NodeKind.FIELD_REFERENCE and node.name:
                    names.setdefault(node.name, "System.String")
        for formula in self.logic.formulas:
            for node in formula.tree.walk():
                if node.kind == NodeKind.FIELD_REFERENCE and node.name:
                    names.setdefault(node.name, "System.String")
        for table in self._bound_tables():
            for bound in table.binding.fields:
                names.setdefault(bound.name, bound.type_name)
            if table.binding.group_by:
                names.setdefault(table.binding.group_by, "System.String")
        return names

    def _bound_tables(self) -> list[TableElement]:
        return [
            element
            for page in self.structure.pages
            for element in page.elements
            if isinstance(element, TableElement) and element.binding is not None
        ]

    # ---------------------------------------------------------------- geometry

    def _page_body_height(self, page: PageElement) -> float:
        cfg = self.settings
        return max(
            points_to_inches(page.height) - cfg.report_margin_top_in - cfg.report_margin_bottom_in,
            0.0,
        )

    def _position(self, bounds: BoundingBox, page_offset_in: float) -> tuple[float, float, float, float]:
        """Body-relative (top, left, height, width) in inches, clipped to the printable width."""
        cfg = self.settings
        left, top, width, height = bounds.to_inches()
        left = max(left - cfg.report_margin_left_in, 0.0)
        top = max(top - cfg.report_margin_top_in, 0.0) + page_offset_in
        printable = cfg.printable_width_in
        left = min(left, max(printable - MIN_ITEM_WIDTH_IN, 0.0))
        if width <= 0 or left + width > printable:
            width = printable - left
        width = max(width, MIN_ITEM_WIDTH_IN)
        height = max(height, MIN_ITEM_HEIGHT_IN)
        return top, left, height, width

    def _place(self, item: ET.Element, bounds: BoundingBox, page_offset_in: float) -> None:
        top, left, height, width = self._position(bounds, page_offset_in)
        sub_element(item, "Top", format_inches(top))
        sub_element(item, "Left", format_inches(left))
        sub_element(item, "Height", format_inches(height))
        sub_element(item, "Width", format_inches(width))
        self._body_bottom_in = max(self._body_bottom_in, top + height)

    # -------------------------------------------------------------------- body

    def _add_page(self, document: ET.Element, page: PageElement, page_offset_in: float) -> None:
        for element in page.elements:
            if isinstance(element, ParagraphElement):
                item = self._create_textbox(self._next_name("Textbox"), [element])
                self._place(item, element.bounds, page_offset_in)
            elif isinstance(element, TableElement):
                item = self._create_tablix(element)
                if item is None:
                    continue
                self._place(item, element.bounds, page_offset_in)
            elif isinstance(element, ImageElement):
                if is_header_image(element):
                    continue
                item = self._create_image(document, element)
                if item is None:
                    continue
                self._place(item, element.bounds, page_offset_in)
            else:
                continue
            _append_style(item)
            builder.add_report_item(document, item)

    def _create_textbox(
        self, name: str, paragraphs: list[ParagraphElement], in_cell: bool = False
    ) -> ET.Element:
        """
        A Textbox with one Paragraph per paragraph element.

        Paragraphs without an explicit alignment are left-aligned in the body;
        in table cells the alignment is detected from the text and TextAlign
        is omitted when nothing is detected.
        """
        textbox = ET.Element(rdl("Textbox"), {"Name": name})
        sub_element(textbox, "CanGrow", bool_text(True))
        sub_element(textbox, "KeepTogether", bool_text(True))
        paragraphs_el = sub_element(textbox, "Paragraphs")
        for paragraph in paragraphs or [ParagraphElement(id=f"{name}_empty")]:
            paragraph_el = sub_element(paragraphs_el, "Paragraph")
            runs_el = sub_element(paragraph_el, "TextRuns")
            for run in paragraph.runs or [TextRun()]:
                run_el = sub_element(runs_el, "TextRun")
                sub_element(run_el, "Value", self._run_value(run))
                _append_run_style(run_el, run.style)
            paragraph_style = sub_element(paragraph_el, "Style")
            alignment = paragraph.alignment
            if alignment is None:
                alignment = detect_cell_alignment(paragraph.text) if in_cell else TextAlignment.LEFT
            if alignment is not None:
                sub_element(paragraph_style, "TextAlign", alignment.value)
        rd_sub_element(textbox, "DefaultName", name)
        return textbox

    def _run_value(self, run: TextRun) -> str:
        if run.field_code is not None:
            expression = self._expression_for(run.field_code)
            if expression is not None:
                return expression
        return literal_value(run.text)

    def _expression_for(self, code: FieldCode) -> str | None:
        result = self._results_by_id.get(code.id)
        if result is None or result.compiled is None:
            return None
        compiled = result.compiled
        for message in compiled.sandbox.messages:
            self.diagnostics.append(
                ValidationMessage(message.severity, message.code, message.message, code.id)
            )
        if not compiled.sandbox.ok:
            self._diagnose(
                ValidationSeverity.WARNING,
                SANDBOX_FALLBACK,
                "Expression rejected by sandbox; literal text used",
                code.id,
            )
            return None
        self.expressions[code.id] = compiled.expression
        return compiled.expression

    def _formula_expression(self, formula: CalculationFormula) -> str | None:
        result = self._results_by_id.get(formula.source_id) if formula.source_id else None
        if result is not None:
            if result.compiled is None or not result.compiled.sandbox.ok:
                return None
            return result.compiled.expression
        expression = generate_expression(formula.tree)
        if not validate_expression(expression).ok:
            self._diagnose(
                ValidationSeverity.WARNING,
                SANDBOX_FALLBACK,
                "Formula rejected by sandbox; variable skipped",
                formula.id,
            )
            return None
        return expression

    # ------------------------------------------------------------------ tables

    def _create_tablix(self, table: TableElement) -> ET.Element | None:
        if table.binding is not None:
            return self._create_bound_tablix(table)

        columns = table.column_count
        if columns == 0 or not table.rows:
            self._diagnose(ValidationSeverity.WARNING, EMPTY_TABLE, "Empty table skipped", table.id)
            return None

        name = self._next_name("Tablix")
        tablix, rows_el = self._tablix_body(name, self._column_widths(table, columns))
        for row_number, row in enumerate(table.rows, start=1):
            by_column = {cell.column_index: cell for cell in row.cells}
            textboxes = []
            for column_number in range(1, columns + 1):
                cell = by_column.get(column_number - 1)
                cell_name = f"{name}_Cell_{row_number}_{column_number}"
                textbox = self._create_textbox(cell_name, cell.paragraphs if cell else [], in_cell=True)
                _append_style(textbox, border="Solid")
                textboxes.append(textbox)
            _append_tablix_row(rows_el, max(points_to_inches(row.height), MIN_ITEM_HEIGHT_IN), textboxes)

        _static_hierarchy(tablix, "TablixColumnHierarchy", columns)
        _static_hierarchy(tablix, "TablixRowHierarchy", len(table.rows))
        sub_element(tablix, "DataSetName", self.data_set_name)
        return tablix

    def _create_bound_tablix(self, table: TableElement) -> ET.Element | None:
        """
        A Tablix repeating one detail row per data set row.

        The optional header row shows each field's display name; detail cells
        hold ``=Fields!<name>.Value``. Columns are capped by the table's column
        count when the table declares one.
        """
        fields = table.binding.fields
        columns = min(table.column_count or len(fields), len(fields))
        if columns == 0:
            self._diagnose(
                ValidationSeverity.WARNING, EMPTY_TABLE, "Data-bound table without fields skipped", table.id
            )
            return None
        fields = fields[:columns]

        name = self._next_name("Tablix")
        tablix, rows_el = self._tablix_body(name, self._column_widths(table, columns))
        if table.has_header_row:
            headers = [
                self._header_cell(f"{name}_Header_{number}", bound)
                for number, bound in enumerate(fields, start=1)
            ]
            _append_tablix_row(rows_el, MIN_ITEM_HEIGHT_IN, headers)
        details = [
            self._detail_cell(f"{name}_Detail_{number}", bound)
            for number, bound in enumerate(fields, start=1)
        ]
        _append_tablix_row(rows_el, MIN_ITEM_HEIGHT_IN, details)

        _static_hierarchy(tablix, "TablixColumnHierarchy", columns)
        _detail_hierarchy(tablix, name, table.has_header_row, table.binding.group_by)
        sub_element(tablix, "DataSetName", self.data_set_name)
        logger.debug("Data-bound tablix %s: %d field(s)", name, columns)
        return tablix

    def _tablix_body(self, name: str, widths: list[float]) -> tuple[ET.Element, ET.Element]:
        tablix = ET.Element(rdl("Tablix"), {"Name": name})
        body = sub_element(tablix, "TablixBody")
        columns_el = sub_element(body, "TablixColumns")
        for width in widths:
            column = sub_element(columns_el, "TablixColumn")
            sub_element(column, "Width", format_inches(width))
        return tablix, sub_element(body, "TablixRows")

    def _header_cell(self, name: str, bound: BoundField) -> ET.Element:
        label = bound.display_name or bound.name
        paragraph = ParagraphElement(id=name, runs=[TextRun(text=label, style=TextStyle(bold=True))])
        textbox = self._create_textbox(name, [paragraph], in_cell=True)
        _append_style(textbox, border="Solid", background="LightGray")
        return textbox

    def _detail_cell(self, name: str, bound: BoundField) -> ET.Element:
        textbox = self._create_textbox(name, [ParagraphElement(id=name)], in_cell=True)
        textbox.find(f".//{rdl('Value')}").text = sanitize_xml_string(
            generate_expression(field_ref(bound.name))
        )
        _append_style(textbox, border="Solid")
        return textbox

    def _column_widths(self, table: TableElement, columns: int) -> list[float]:
        if table.column_widths:
            return [max(points_to_inches(w), MIN_ITEM_WIDTH_IN) for w in table.column_widths[:columns]]
        total = points_to_inches(table.bounds.width) or self.settings.printable_width_in
        return [max(total / columns, MIN_ITEM_WIDTH_IN)] * columns

    # ------------------------------------------------------------------ images

    def _create_image(
        self, document: ET.Element, image: ImageElement, prefix: str = "Image"
    ) -> ET.Element | None:
        mime_type = image.mime_type.lower()
        if mime_type not in SUPPORTED_IMAGE_TYPES:
            self._diagnose(
                ValidationSeverity.WARNING,
                UNSUPPORTED_IMAGE,
                f"Image type {image.mime_type} is not supported by RDL",
                image.id,
            )
            return None

        name = self._next_name(prefix)
        image_name = f"{name}_data"
        encoded = base64.b64encode(image.data).decode("ascii")
        if not builder.add_embedded_image(document, image_name, mime_type, encoded):
            return None

        item = ET.Element(rdl("Image"), {"Name": name})
        sub_element(item, "Source", "Embedded")
        sub_element(item, "Value", image_name)
        sub_element(item, "Sizing", "FitProportional")
        return item

    # ---------------------------------------------------------- header/footer

    def _add_header(self, document: ET.Element) -> None:
        """
        Page header with the header text and the first header logo.

        The logo sits at the top left and the band grows to fit it; the text
        moves to the right of the logo.
        """
        headers = [
            e for e in self.structure.elements_with_role(LogicalRole.HEADER) if e.content
        ]
        items: list[ET.Element] = []
        band_height = HEADER_HEIGHT_IN
        text_left = 0.0

        logos = self._header_images()
        if len(logos) > 1:
            logger.debug("Only the first of %d header images is placed", len(logos))
        logo = self._create_image(document, logos[0], prefix="HeaderImage") if logos else None
        if logo is not None:
            _, _, width, height = logos[0].bounds.to_inches()
            height = height or HEADER_IMAGE_HEIGHT_IN
            width = width or HEADER_IMAGE_WIDTH_IN
            self._place_in_band(logo, height, width_in=width)
            items.append(logo)
            band_height = max(band_height, height + 0.1)
            text_left = width + HEADER_TEXT_GAP_IN

        if headers:
            text = "\n".join(h.content for h in headers)
            paragraph = ParagraphElement(id="header", runs=[TextRun(text=text)])
            textbox = self._create_textbox(self._next_name("Textbox"), [paragraph])
            self._place_in_band(textbox, MIN_ITEM_HEIGHT_IN, left_in=text_left)
            items.append(textbox)

        if items:
            builder.set_page_header(document, items, height_in=band_height)

    def _header_images(self) -> list[ImageElement]:
        return [
            element
            for page in self.structure.pages
            for element in page.elements
            if isinstance(element, ImageElement) and is_header_image(element)
        ]

    def _add_footer(self, document: ET.Element) -> None:
        if not self.structure.elements_with_role(LogicalRole.FOOTER):
            return
        name = self._next_name("Textbox")
        textbox = self._create_textbox(name, [ParagraphElement(id="footer")])
        value = textbox.find(f".//{rdl('Value')}")
        value.text = page_number_expression()
        self._place_in_band(textbox, MIN_ITEM_HEIGHT_IN)
        builder.set_page_footer(document, [textbox], height_in=FOOTER_HEIGHT_IN)

    def _place_in_band(
        self, item: ET.Element, height_in: float, left_in: float = 0.0, width_in: float | None = None
    ) -> None:
        """Position an item at the top of a band; the width is clipped to the printable width."""
        printable = self.settings.printable_width_in
        left_in = min(left_in, max(printable - MIN_ITEM_WIDTH_IN, 0.0))
        if width_in is None or left_in + width_in > printable:
            width_in = printable - left_in
        sub_element(item, "Top", format_inches(0))
        sub_element(item, "Left", format_inches(left_in))
        sub_element(item, "Height", format_inches(height_in))
        sub_element(item, "Width", format_inches(max(width_in, MIN_ITEM_WIDTH_IN)))
        _append_style(item)


# =============================================================================
# Element helpers
# =============================================================================


def literal_value(text: str) -> str:
    """
    Value text for literal content.

    RDL treats any value starting with ``=`` as an expression, so such text is
    wrapped in a string-literal expression.
    """
    if text.startswith("="):
        return "=" + format_literal(text)
    return text


def sanitize_field_code(code: FieldCode) -> FieldCode:
    """
    Field code with characters illegal in XML dropped from its text.

    Names and expressions derived from the code then match what the
    document stores.
    """
    raw_text = sanitize_xml_string(code.raw_text)
    field_name = sanitize_xml_string(code.field_name) or None
    if raw_text == code.raw_text and field_name == code.field_name:
        return code
    return code.model_copy(update={"raw_text": raw_text, "field_name": field_name})


def is_header_image(image: ImageElement) -> bool:
    return image.id.startswith(HEADER_IMAGE_PREFIX)


def _append_style(item: ET.Element, border: str = "None", background: str | None = None) -> None:
    style = sub_element(item, "Style")
    sub_element(sub_element(style, "Border"), "Style", border)
    if background:
        sub_element(style, "BackgroundColor", background)
    for side in ("PaddingLeft", "PaddingRight", "PaddingTop", "PaddingBottom"):
        sub_element(style, side, "2pt")


def _append_run_style(run_el: ET.Element, style: TextStyle | None) -> None:
    style_el = sub_element(run_el, "Style")
    if style is None:
        return
    if style.font_family:
        sub_element(style_el, "FontFamily", normalize_font_family(style.font_family))
    if style.font_size:
        sub_element(style_el, "FontSize", f"{style.font_size:g}pt")
    if style.bold:
        sub_element(style_el, "FontWeight", "Bold")
    if style.italic:
        sub_element(style_el, "FontStyle", "Italic")
    if style.underline:
        sub_element(style_el, "TextDecoration", "Underline")
    if style.color:
        sub_element(style_el, "Color", "#" + style.color.lstrip("#"))


def _append_tablix_row(rows_el: ET.Element, height_in: float, textboxes: list[ET.Element]) -> None:
    row_el = sub_element(rows_el, "TablixRow")
    sub_element(row_el, "Height", format_inches(height_in))
    cells_el = sub_element(row_el, "TablixCells")
    for textbox in textboxes:
        sub_element(sub_element(cells_el, "TablixCell"), "CellContents").append(textbox)


def _static_hierarchy(tablix: ET.Element, tag: str, count: int) -> None:
    members = sub_element(sub_element(tablix, tag), "TablixMembers")
    for _ in range(count):
        sub_element(members, "TablixMember")


def _detail_hierarchy(
    tablix: ET.Element, name: str, has_header_row: bool, group_by: str | None
) -> None:
    """Row hierarchy of a data-bound tablix: static header member, then the details group."""
    members = sub_element(sub_element(tablix, "TablixRowHierarchy"), "TablixMembers")
    if has_header_row:
        sub_element(sub_element(members, "TablixMember"), "KeepWithGroup", "After")

    member = sub_element(members, "TablixMember")
    if group_by:
        group = sub_element(member, "Group", Name=f"{name}_Group")
        expressions = sub_element(group, "GroupExpressions")
        sub_element(expressions, "GroupExpression", generate_expression(field_ref(group_by)))
        member = sub_element(sub_element(member, "TablixMembers"), "TablixMember")
    sub_element(member, "Group", Name=f"{name}_Details")


def collect_field_codes(structure: DocumentStructure) -> list[FieldCode]:
    """Every field code carried by a text run, in reading order."""
    codes: list[FieldCode] = []
    for page in structure.pages:
        for element in page.elements:
            if isinstance(element, ParagraphElement):
                paragraphs = [element]
            elif isinstance(element, TableElement) and element.binding is None:
                paragraphs = [p for row in element.rows for cell in row.cells for p in cell.paragraphs]
            else:
                continue
            for paragraph in paragraphs:
                codes.extend(run.field_code for run in paragraph.runs if run.field_code is not None)
    return codes


def _record_document_metric() -> None:
    try:
        from rdlgen.core.config import settings
        from rdlgen.core.observability import metrics

        if settings.metrics_enabled:
            metrics.documents_synthesized_total.inc()
    except Exception:
        # Metrics must never break synthesis
        pass


# =============================================================================
# Entry points
# =============================================================================


def synthesize_document(
    structure: DocumentStructure,
    logic: LogicExtractionResult | None = None,
    data_set_name: str | None = None,
) -> SynthesisResult:
    """
    Build and validate a report definition for a whole document.

    Args:
        structure: Perceived document layout
        logic: Extracted logic (computed from the structure's field codes when omitted)
        data_set_name: Data set to declare (defaults from settings)

    Returns:
        SynthesisResult holding the validated document

    Raises:
        SchemaValidationError: If the synthesized document is not valid
    """
    return ReportSynthesizer(structure, logic, data_set_name).synthesize()


def synthesize_per_page(
    structure: DocumentStructure,
    logic: LogicExtractionResult | None = None,
    data_set_name: str | None = None,
) -> list[SynthesisResult]:
    """Build one report definition per page of the document."""
    results = []
    for page in structure.pages:
        single = DocumentStructure(
            title=structure.title,
            pages=[page],
            logical_elements=[
                e
                for e in structure.logical_elements
                if e.page_number is None or e.page_number == page.page_number
            ],
        )
        results.append(synthesize_document(single, logic, data_set_name))
    return results


def build_report(
    structure: DocumentStructure,
    logic: LogicExtractionResult | None = None,
    data_set_name: str | None = None,
) -> bytes:
    """Synthesize, validate and serialize a report definition as UTF-8 XML."""
    return synthesize_document(structure, logic, data_set_name).to_xml_bytes()
