"""
Domain enums shared by the compiler and the schema synthesizer.

These enums are the type-safe vocabulary exchanged with the external
extraction stage and used throughout the package for dispatch.
"""

from enum import Enum


class FieldCodeCategory(str, Enum):
    """Kind of a field code embedded in the source document."""

    MERGE_FIELD = "MERGE_FIELD"
    IF = "IF"
    DATE = "DATE"
    TIME = "TIME"
    PAGE = "PAGE"
    NUM_PAGES = "NUM_PAGES"
    FORMULA = "FORMULA"
    SEQUENCE = "SEQUENCE"
    TABLE_OF_CONTENTS = "TABLE_OF_CONTENTS"
    HYPERLINK = "HYPERLINK"
    UNKNOWN = "UNKNOWN"


class NodeKind(str, Enum):
    """Variant tag of an expression tree node."""

    LITERAL = "LITERAL"
    FIELD_REFERENCE = "FIELD_REFERENCE"
    PARAMETER_REFERENCE = "PARAMETER_REFERENCE"
    GLOBAL_REFERENCE = "GLOBAL_REFERENCE"
    BINARY_OPERATION = "BINARY_OPERATION"
    UNARY_OPERATION = "UNARY_OPERATION"
    FUNCTION_CALL = "FUNCTION_CALL"
    CONDITIONAL = "CONDITIONAL"
    AGGREGATE = "AGGREGATE"


class ValidationSeverity(str, Enum):
    """Severity of a sandbox or schema validation message."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogicalRole(str, Enum):
    """Role assigned to a region of the source document by layout analysis."""

    TITLE = "TITLE"
    HEADER = "HEADER"
    FOOTER = "FOOTER"
    BODY = "BODY"
    TABLE = "TABLE"
    SIGNATURE = "SIGNATURE"
    UNKNOWN = "UNKNOWN"


class TextAlignment(str, Enum):
    """Horizontal alignment of a paragraph (RDL TextAlign values)."""

    LEFT = "Left"
    CENTER = "Center"
    RIGHT = "Right"
    JUSTIFY = "General"
