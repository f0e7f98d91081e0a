"""
Domain-specific exceptions for the RDL generator.

Every failure the translation pipeline and the schema synthesizer can raise
derives from RdlGenError so callers can catch the whole family at once while
still inspecting the structured ``details`` payload.
"""

from typing import Any


class RdlGenError(Exception):
    """Base exception for all report generation errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ExpressionSyntaxError(RdlGenError):
    """
    Raised when a field code or expression cannot be parsed.

    Examples:
    - Unbalanced parentheses or quotes
    - MERGEFIELD without a field name
    - IIf with the wrong number of arguments

    Never accompanied by a partial tree.
    """

    def __init__(self, message: str, expression: str, offset: int | None = None):
        self.expression = expression
        self.offset = offset
        super().__init__(message, details={"expression": expression, "offset": offset})


class UnsupportedConstructError(RdlGenError):
    """
    Raised when a field code category is recognized but cannot be translated.

    Examples:
    - SEQ, TOC and HYPERLINK field codes
    - Field codes of unknown category
    """

    def __init__(self, category: str, raw_text: str):
        self.category = category
        self.raw_text = raw_text
        super().__init__(
            f"Unsupported field code type: {category}",
            details={"category": category, "raw_text": raw_text},
        )


class InvalidTreeError(RdlGenError):
    """
    Raised when an expression node is built with the wrong number of children.

    Examples:
    - BinaryOperation with one operand
    - Conditional with four children
    """

    pass


class NestingDepthError(RdlGenError):
    """Raised when nested conditionals exceed the configured maximum depth."""

    def __init__(self, branch_id: str, max_depth: int):
        self.branch_id = branch_id
        self.max_depth = max_depth
        super().__init__(
            f"Conditional nesting deeper than {max_depth} levels at {branch_id}",
            details={"branch_id": branch_id, "max_depth": max_depth},
        )


class SandboxViolationError(RdlGenError):
    """
    Raised when a generated expression breaks the sandbox policy and the
    caller asked for violations to be fatal.
    """

    def __init__(self, expression: str, violated_rules: list[str]):
        self.expression = expression
        self.violated_rules = list(violated_rules)
        super().__init__(
            "Expression violates sandbox rules: " + ", ".join(self.violated_rules),
            details={"expression": expression, "violated_rules": self.violated_rules},
        )


class SchemaValidationError(RdlGenError):
    """
    Raised once per validation run with every schema error found.

    The synthesized document is not serialized when this is raised.
    """

    def __init__(self, errors: list[Any]):
        self.errors = list(errors)
        super().__init__(
            f"Schema validation failed with {len(self.errors)} error(s)",
            details={"errors": [str(e) for e in self.errors]},
        )


class TranslationError(RdlGenError):
    """
    Raised by the translation pipeline when a single field code fails.

    Wraps the underlying parser, tree or sandbox error with the field code id.
    """

    pass
