"""
Structural validation of synthesized report definitions.

Every check runs and records a ValidationMessage; ``ensure_valid`` raises a
single SchemaValidationError carrying all errors found. A document that fails
validation is never serialized.
"""

import logging
import xml.etree.ElementTree as ET
from collections import Counter

from rdlgen.core.errors import SchemaValidationError
from rdlgen.domain.enums import ValidationSeverity
from rdlgen.domain.models import ValidationMessage
from rdlgen.schema.builder import report_item_names
from rdlgen.schema.namespaces import RDL_NAMESPACE, parse_inches, rdl, serialize

logger = logging.getLogger(__name__)

INVALID_ROOT = "SCHEMA001"
NOT_A_REPORT = "SCHEMA002"
WRONG_NAMESPACE = "SCHEMA003"
MISSING_REPORT_SECTIONS = "SCHEMA010"
NO_REPORT_SECTION = "SCHEMA020"
MISSING_BODY = "SCHEMA021"
MISSING_WIDTH = "SCHEMA022"
MISSING_BODY_HEIGHT = "SCHEMA023"
MISSING_PAGE_SIZE = "SCHEMA024"
DATA_SET_WITHOUT_NAME = "SCHEMA030"
DATA_SET_WITHOUT_FIELDS = "SCHEMA031"
DATA_SET_WITHOUT_QUERY = "SCHEMA032"
EMPTY_DATA_SOURCES = "SCHEMA033"
EMPTY_DATA_SETS = "SCHEMA034"
DUPLICATE_ITEM_NAME = "SCHEMA040"
BAND_INCOMPLETE = "SCHEMA050"
INVALID_LENGTH = "SCHEMA060"


def _error(code: str, message: str, location: str | None = None) -> ValidationMessage:
    return ValidationMessage(ValidationSeverity.ERROR, code, message, location)


def _warning(code: str, message: str, location: str | None = None) -> ValidationMessage:
    return ValidationMessage(ValidationSeverity.WARNING, code, message, location)


def validate_document(root: ET.Element | None) -> list[ValidationMessage]:
    """
    Check a report definition against the structural rules.

    Args:
        root: ``Report`` root element

    Returns:
        Every finding, errors and warnings, in document order
    """
    if root is None:
        return [_error(INVALID_ROOT, "Document has no root element")]

    messages: list[ValidationMessage] = []
    namespace, local_name = _split_tag(root.tag)
    if local_name != "Report":
        messages.append(_error(NOT_A_REPORT, f"Root element must be Report, found {local_name}"))
        return messages
    if namespace != RDL_NAMESPACE:
        messages.append(
            _warning(WRONG_NAMESPACE, f"Unexpected report namespace: {namespace or 'none'}")
        )

    _validate_sections(root, messages)
    _validate_data(root, messages)
    _validate_item_names(root, messages)
    return messages


def _split_tag(tag: str) -> tuple[str, str]:
    if tag.startswith("{"):
        namespace, _, local_name = tag[1:].partition("}")
        return namespace, local_name
    return "", tag


def _validate_sections(root: ET.Element, messages: list[ValidationMessage]) -> None:
    sections = root.find(rdl("ReportSections"))
    if sections is None:
        messages.append(_error(MISSING_REPORT_SECTIONS, "Missing required ReportSections element"))
        return

    section_list = sections.findall(rdl("ReportSection"))
    if not section_list:
        messages.append(_error(NO_REPORT_SECTION, "ReportSections must contain a ReportSection"))
        return

    for index, section in enumerate(section_list, start=1):
        location = f"ReportSection[{index}]"
        body = section.find(rdl("Body"))
        if body is None:
            messages.append(_error(MISSING_BODY, "ReportSection is missing Body", location))
        else:
            _validate_length(
                body.find(rdl("Height")), MISSING_BODY_HEIGHT, "Body/Height", location, messages
            )
        width = section.find(rdl("Width"))
        if width is None:
            messages.append(_warning(MISSING_WIDTH, "ReportSection is missing Width", location))
        else:
            _validate_length(width, MISSING_WIDTH, "Width", location, messages)

        page = section.find(rdl("Page"))
        if page is None:
            messages.append(_error(MISSING_PAGE_SIZE, "ReportSection is missing Page", location))
            continue
        for tag in ("PageHeight", "PageWidth"):
            _validate_length(
                page.find(rdl(tag)), MISSING_PAGE_SIZE, f"Page/{tag}", location, messages
            )
        for tag in ("PageHeader", "PageFooter"):
            for band in page.findall(rdl(tag)):
                _validate_band(band, tag, location, messages)


def _validate_length(
    element: ET.Element | None,
    code: str,
    name: str,
    location: str,
    messages: list[ValidationMessage],
) -> None:
    if element is None:
        messages.append(_error(code, f"Missing {name}", location))
        return
    value = parse_inches(element.text)
    if value is None or value <= 0:
        messages.append(
            _error(
                INVALID_LENGTH,
                f"{name} must be a positive inch length, got {element.text!r}",
                location,
            )
        )


def _validate_band(
    band: ET.Element, tag: str, location: str, messages: list[ValidationMessage]
) -> None:
    for child in ("Height", "PrintOnFirstPage", "PrintOnLastPage"):
        if band.find(rdl(child)) is None:
            messages.append(_error(BAND_INCOMPLETE, f"{tag} is missing {child}", location))
    height = band.find(rdl("Height"))
    if height is not None:
        _validate_length(height, BAND_INCOMPLETE, f"{tag}/Height", location, messages)


def _validate_data(root: ET.Element, messages: list[ValidationMessage]) -> None:
    sources = root.find(rdl("DataSources"))
    if sources is not None and not sources.findall(rdl("DataSource")):
        messages.append(_error(EMPTY_DATA_SOURCES, "DataSources must contain a DataSource"))

    data_sets = root.find(rdl("DataSets"))
    if data_sets is None:
        return
    data_set_list = data_sets.findall(rdl("DataSet"))
    if not data_set_list:
        messages.append(_error(EMPTY_DATA_SETS, "DataSets must contain a DataSet"))

    for index, data_set in enumerate(data_set_list, start=1):
        name = data_set.get("Name")
        location = f"DataSet[{name or index}]"
        if not name:
            messages.append(_error(DATA_SET_WITHOUT_NAME, "DataSet missing Name attribute", location))
        if data_set.find(rdl("Query")) is None:
            messages.append(_error(DATA_SET_WITHOUT_QUERY, "DataSet missing Query", location))
        fields = data_set.find(rdl("Fields"))
        if fields is None or not fields.findall(rdl("Field")):
            messages.append(
                _error(DATA_SET_WITHOUT_FIELDS, "DataSet must declare at least one Field", location)
            )


def _validate_item_names(root: ET.Element, messages: list[ValidationMessage]) -> None:
    counts = Counter(report_item_names(root))
    for name, count in counts.items():
        if count > 1:
            messages.append(
                _error(DUPLICATE_ITEM_NAME, f"Report item name used {count} times", name)
            )


def ensure_valid(root: ET.Element) -> list[ValidationMessage]:
    """
    Validate and raise once with every error.

    Returns:
        The non-error findings when the document is valid

    Raises:
        SchemaValidationError: If any error-severity finding exists
    """
    messages = validate_document(root)
    errors = [m for m in messages if m.is_error]
    if errors:
        _record_schema_failure()
        logger.warning("Report definition failed validation with %d error(s)", len(errors))
        raise SchemaValidationError(errors)
    return messages


def to_xml_bytes(root: ET.Element) -> bytes:
    """
    Validate, then serialize as UTF-8 XML with a declaration.

    Raises:
        SchemaValidationError: If the document is not valid; nothing is serialized
    """
    ensure_valid(root)
    return serialize(root)


def _record_schema_failure() -> None:
    try:
        from rdlgen.core.config import settings
        from rdlgen.core.observability import metrics

        if settings.metrics_enabled:
            metrics.schema_validation_failures_total.inc()
    except Exception:
        # Metrics must never break validation
        pass
