"""
RDL document builder.

Creates the skeleton of an RDL 2016 report definition and applies the
mutations the synthesizer needs (data fields, report items, page header and
footer, body height).

Mutations locate their anchor element by a namespace-qualified path. When
the anchor is missing the mutation is logged and skipped, never raised.
A document is mutated by one caller at a time.
"""

import logging
import uuid
import xml.etree.ElementTree as ET

from rdlgen.schema.namespaces import (
    DATA_SOURCE_NAME,
    LOCAL_REPORT_COMMAND,
    PLACEHOLDER_FIELD,
    bool_text,
    format_size,
    rd_sub_element,
    rdl,
    rdl_path,
    sanitize_xml_string,
    sub_element,
)

logger = logging.getLogger(__name__)


def _settings():
    from rdlgen.core.config import settings

    return settings


def create_empty_document(data_set_name: str | None = None) -> ET.Element:
    """
    Create a report definition with one empty section.

    DataSources and DataSets are only emitted when ``data_set_name`` is
    given; the data set then carries a single placeholder field.

    Args:
        data_set_name: Name of the data set to declare, if any

    Returns:
        The ``Report`` root element
    """
    cfg = _settings()
    report = ET.Element(rdl("Report"))
    sub_element(report, "AutoRefresh", "0")

    if data_set_name:
        report.append(create_data_sources())
        report.append(create_data_sets(data_set_name))

    sections = sub_element(report, "ReportSections")
    section = sub_element(sections, "ReportSection")

    body = sub_element(section, "Body")
    sub_element(body, "ReportItems")
    sub_element(body, "Height", format_size(cfg.report_body_min_height_in))
    body_style = sub_element(body, "Style")
    sub_element(body_style, "Border").append(_text(rdl("Style"), "None"))

    sub_element(section, "Width", format_size(cfg.printable_width_in))

    page = sub_element(section, "Page")
    sub_element(page, "PageHeight", format_size(cfg.report_page_height_in))
    sub_element(page, "PageWidth", format_size(cfg.report_page_width_in))
    sub_element(page, "LeftMargin", format_size(cfg.report_margin_left_in))
    sub_element(page, "RightMargin", format_size(cfg.report_margin_right_in))
    sub_element(page, "TopMargin", format_size(cfg.report_margin_top_in))
    sub_element(page, "BottomMargin", format_size(cfg.report_margin_bottom_in))
    sub_element(page, "Style")

    rd_sub_element(report, "ReportUnitType", "Inch")
    rd_sub_element(report, "ReportID", str(uuid.uuid4()))

    logger.debug("Created empty report definition (data set: %s)", data_set_name or "none")
    return report


def _text(tag: str, text: str) -> ET.Element:
    element = ET.Element(tag)
    element.text = text
    return element


def create_data_sources() -> ET.Element:
    """``DataSources`` with the single local data source used by local reports."""
    sources = ET.Element(rdl("DataSources"))
    source = sub_element(sources, "DataSource", Name=DATA_SOURCE_NAME)
    connection = sub_element(source, "ConnectionProperties")
    sub_element(connection, "DataProvider", "System.Data.DataSet")
    sub_element(connection, "ConnectString", LOCAL_REPORT_COMMAND)
    rd_sub_element(source, "DataSourceID", str(uuid.uuid4()))
    return sources


def create_data_sets(data_set_name: str) -> ET.Element:
    """``DataSets`` with one data set holding the placeholder field."""
    data_sets = ET.Element(rdl("DataSets"))
    data_set = sub_element(data_sets, "DataSet", Name=data_set_name)

    query = sub_element(data_set, "Query")
    sub_element(query, "DataSourceName", DATA_SOURCE_NAME)
    sub_element(query, "CommandText", LOCAL_REPORT_COMMAND)

    fields = sub_element(data_set, "Fields")
    _append_field(fields, PLACEHOLDER_FIELD, "System.String")

    info = rd_sub_element(data_set, "DataSetInfo")
    rd_sub_element(info, "DataSetName", data_set_name)
    return data_sets


def _append_field(fields: ET.Element, name: str, type_name: str) -> ET.Element:
    field = sub_element(fields, "Field", Name=name)
    sub_element(field, "DataField", name)
    rd_sub_element(field, "TypeName", type_name)
    return field


def find_anchor(root: ET.Element, path: str) -> ET.Element | None:
    """
    Find an element by unqualified path relative to the report root.

    Example:
        find_anchor(report, "DataSets/DataSet[@Name='Orders']/Fields")
    """
    return root.find(rdl_path(path))


def _anchor_or_log(root: ET.Element, path: str, operation: str) -> ET.Element | None:
    anchor = find_anchor(root, path)
    if anchor is None:
        logger.warning("%s skipped: %s not found in report definition", operation, path)
    return anchor


def add_data_field(
    root: ET.Element, data_set_name: str, field_name: str, type_name: str = "System.String"
) -> bool:
    """
    Add a field to a data set.

    The placeholder field is dropped once the first real field is added.
    Adding a field that already exists is a no-op. Names are sanitized the
    same way as the attributes they are stored in.

    Returns:
        True if the field was added
    """
    data_set_name = sanitize_xml_string(data_set_name)
    field_name = sanitize_xml_string(field_name)
    if not field_name:
        logger.warning("add_data_field skipped: empty field name")
        return False
    path = f"DataSets/DataSet[@Name='{_quote_predicate(data_set_name)}']/Fields"
    fields = _anchor_or_log(root, path, "add_data_field")
    if fields is None:
        return False

    existing = {f.get("Name"): f for f in fields.findall(rdl("Field"))}
    if field_name in existing:
        return False

    placeholder = existing.get(PLACEHOLDER_FIELD)
    _append_field(fields, field_name, type_name)
    if placeholder is not None and field_name != PLACEHOLDER_FIELD:
        fields.remove(placeholder)
    return True


def _quote_predicate(value: str) -> str:
    # ElementTree predicates have no escaping; names with quotes cannot match.
    return value.replace("'", "")


def add_report_item(root: ET.Element, item: ET.Element) -> bool:
    """Append an item to the body of the first report section."""
    items = _anchor_or_log(root, "ReportSections/ReportSection/Body/ReportItems", "add_report_item")
    if items is None:
        return False
    items.append(item)
    return True


def set_page_header(
    root: ET.Element,
    items: list[ET.Element] | None = None,
    height_in: float = 1.0,
    print_on_first_page: bool = True,
    print_on_last_page: bool = True,
) -> ET.Element | None:
    """
    Insert a page header as the first child of the section's Page.

    Each call inserts a new header block.

    Raises:
        ValueError: If ``height_in`` is not positive
    """
    return _insert_band(
        root, "PageHeader", items, height_in, print_on_first_page, print_on_last_page, first=True
    )


def set_page_footer(
    root: ET.Element,
    items: list[ET.Element] | None = None,
    height_in: float = 0.5,
    print_on_first_page: bool = True,
    print_on_last_page: bool = True,
) -> ET.Element | None:
    """
    Append a page footer to the section's Page.

    Each call appends a new footer block.

    Raises:
        ValueError: If ``height_in`` is not positive
    """
    return _insert_band(
        root, "PageFooter", items, height_in, print_on_first_page, print_on_last_page, first=False
    )


def _insert_band(
    root: ET.Element,
    tag: str,
    items: list[ET.Element] | None,
    height_in: float,
    print_on_first_page: bool,
    print_on_last_page: bool,
    first: bool,
) -> ET.Element | None:
    if height_in <= 0:
        raise ValueError(f"{tag} height must be positive, got {height_in}")

    page = _anchor_or_log(root, "ReportSections/ReportSection/Page", f"set {tag}")
    if page is None:
        return None

    band = ET.Element(rdl(tag))
    sub_element(band, "Height", format_size(height_in))
    sub_element(band, "PrintOnFirstPage", bool_text(print_on_first_page))
    sub_element(band, "PrintOnLastPage", bool_text(print_on_last_page))
    report_items = sub_element(band, "ReportItems")
    for item in items or []:
        report_items.append(item)
    sub_element(band, "Style")

    if first:
        page.insert(0, band)
    else:
        page.append(band)
    return band


def update_body_height(root: ET.Element, height_in: float) -> bool:
    """Set the body height of the first report section."""
    height = _anchor_or_log(root, "ReportSections/ReportSection/Body/Height", "update_body_height")
    if height is None:
        return False
    height.text = format_size(height_in)
    return True


def add_embedded_image(root: ET.Element, name: str, mime_type: str, data_base64: str) -> bool:
    """
    Add an image to the report's EmbeddedImages section.

    The section is created before ReportSections on first use.
    """
    images = root.find(rdl("EmbeddedImages"))
    if images is None:
        sections = _anchor_or_log(root, "ReportSections", "add_embedded_image")
        if sections is None:
            return False
        images = ET.Element(rdl("EmbeddedImages"))
        root.insert(list(root).index(sections), images)

    image = sub_element(images, "EmbeddedImage", Name=name)
    sub_element(image, "MIMEType", mime_type)
    sub_element(image, "ImageData", data_base64)
    return True


def add_report_variable(root: ET.Element, name: str, expression: str) -> bool:
    """
    Declare a report-level variable holding an expression.

    The Variables section is created before ReportSections on first use.
    An existing variable of the same name is left unchanged.
    """
    variables = root.find(rdl("Variables"))
    if variables is None:
        sections = _anchor_or_log(root, "ReportSections", "add_report_variable")
        if sections is None:
            return False
        variables = ET.Element(rdl("Variables"))
        root.insert(list(root).index(sections), variables)

    if any(v.get("Name") == name for v in variables.findall(rdl("Variable"))):
        return False
    variable = sub_element(variables, "Variable", Name=name)
    sub_element(variable, "Value", expression)
    return True


def report_item_names(root: ET.Element) -> list[str]:
    """Names of every named report item anywhere in the document."""
    names = []
    for tag in ("Textbox", "Tablix", "Image", "Rectangle", "Line"):
        names.extend(e.get("Name") for e in root.iter(rdl(tag)) if e.get("Name"))
    return names
