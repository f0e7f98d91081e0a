"""
RDL namespace constants and formatting helpers.

Pure functions only; nothing here holds state.
"""

import re
import xml.etree.ElementTree as ET

RDL_NAMESPACE = "http://schemas.microsoft.com/sqlserver/reporting/2016/01/reportdefinition"
RD_NAMESPACE = "http://schemas.microsoft.com/SQLServer/reporting/reportdesigner"
RD_PREFIX = "rd"

PLACEHOLDER_FIELD = "PlaceholderField"
DATA_SOURCE_NAME = "DataSource"
LOCAL_REPORT_COMMAND = "/* Local Report */"

# XML 1.0 Char production minus the supplementary planes.
_INVALID_XML_CHARS = re.compile("[^\t\n\r -\ud7ff\ue000-\ufffd]")
_INCHES = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*in\s*$")

# RDL serializes as the default namespace, designer elements under a fixed prefix.
ET.register_namespace("", RDL_NAMESPACE)
ET.register_namespace(RD_PREFIX, RD_NAMESPACE)


def rdl(tag: str) -> str:
    """Qualified name of an element in the report definition namespace."""
    return f"{{{RDL_NAMESPACE}}}{tag}"


def rd(tag: str) -> str:
    """Qualified name of an element in the report designer namespace."""
    return f"{{{RD_NAMESPACE}}}{tag}"


def rdl_path(path: str) -> str:
    """
    Qualify every step of a slash-separated ElementTree path.

    Predicates and ``.``/``..``/``*`` steps are left untouched:

        >>> rdl_path("DataSets/DataSet[@Name='Orders']/Fields")
        "{...}DataSets/{...}DataSet[@Name='Orders']/{...}Fields"
    """
    steps = []
    for step in path.split("/"):
        if step in ("", ".", "..", "*"):
            steps.append(step)
            continue
        name, bracket, predicate = step.partition("[")
        steps.append(rdl(name) + bracket + predicate)
    return "/".join(steps)


def sub_element(parent: ET.Element, tag: str, text: str | None = None, **attrib: str) -> ET.Element:
    """Append an RDL-namespaced child; text and attribute values are sanitized."""
    element = ET.SubElement(
        parent, rdl(tag), {key: sanitize_xml_string(value) for key, value in attrib.items()}
    )
    if text is not None:
        element.text = sanitize_xml_string(text)
    return element


def rd_sub_element(parent: ET.Element, tag: str, text: str | None = None) -> ET.Element:
    element = ET.SubElement(parent, rd(tag))
    if text is not None:
        element.text = sanitize_xml_string(text)
    return element


def sanitize_xml_string(text: str | None) -> str:
    """
    Drop characters that are not legal in XML 1.0 text.

    Keeps tab, LF, CR, U+0020..U+D7FF and U+E000..U+FFFD.
    """
    if not text:
        return ""
    return _INVALID_XML_CHARS.sub("", text)


def format_inches(value: float, precision: int = 5) -> str:
    """Fixed-point length with an ``in`` suffix, e.g. ``1.25000in``."""
    return f"{value:.{precision}f}in"


def format_size(value: float) -> str:
    """Two-decimal length used for page, section and band sizes."""
    return format_inches(value, precision=2)


def parse_inches(value: str | None) -> float | None:
    """Inverse of ``format_inches``; None when the text is not an inch length."""
    if value is None:
        return None
    match = _INCHES.match(value)
    if match is None:
        return None
    return float(match.group(1))


def points_to_inches(points: float) -> float:
    return points / 72.0


def bool_text(value: bool) -> str:
    return "true" if value else "false"


def serialize(root: ET.Element) -> bytes:
    """UTF-8 XML with declaration, RDL as the default namespace."""
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)
