"""
Expression generator: expression tree -> VB-style report expression text.

The generator is a pure, total function over every node kind. It never
raises for a tree built through the checked constructors; nodes built with
``ExprNode.unchecked`` whose arity is wrong render as empty text and are
logged.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from rdlgen.compiler.ast import ExprNode, arity_ok
from rdlgen.domain.enums import NodeKind

logger = logging.getLogger(__name__)


BINARY_OPERATORS = {
    "=": "=",
    "<>": "<>",
    "!=": "<>",
    ">": ">",
    "<": "<",
    ">=": ">=",
    "<=": "<=",
    "AND": "And",
    "ANDALSO": "AndAlso",
    "OR": "Or",
    "ORELSE": "OrElse",
    "NOT": "Not",
    "+": "+",
    "-": "-",
    "*": "*",
    "/": "/",
    "\\": "\\",
    "^": "^",
    "&": "&",
    "%": "Mod",
    "MOD": "Mod",
}

FUNCTION_NAMES = {
    "ISNULL": "IsNothing",
    "IFNULL": "If",
    "COALESCE": "If",
    "CONCAT": "&",
    "LENGTH": "Len",
    "LEN": "Len",
    "SUBSTRING": "Mid",
    "SUBSTR": "Mid",
    "UPPER": "UCase",
    "LOWER": "LCase",
    "TRIM": "Trim",
    "NOW": "Now",
    "GETDATE": "Now",
    "TODAY": "Today",
    "YEAR": "Year",
    "MONTH": "Month",
    "DAY": "Day",
    "FORMAT": "Format",
}

UNKNOWN_NAME = "Unknown"


def generate_expression(node: ExprNode) -> str:
    """
    Render a tree as a report expression.

    Args:
        node: Root of the expression tree

    Returns:
        Expression text, always starting with ``=``

    Example:
        >>> generate_expression(binary(">", field_ref("Amount"), literal(100)))
        '=(Fields!Amount.Value > 100)'
    """
    text = generate_fragment(node)
    return text if text.startswith("=") else "=" + text


def generate_fragment(node: ExprNode) -> str:
    """Render a tree without the leading ``=``."""
    try:
        return _generate_node(node)
    except RecursionError:
        logger.warning("Expression tree too deep to generate; rendering empty text")
        return ""


def _generate_node(node: ExprNode) -> str:
    kind = node.kind
    if kind == NodeKind.LITERAL:
        return format_literal(node.value)
    if kind == NodeKind.FIELD_REFERENCE:
        return f"Fields!{node.name or UNKNOWN_NAME}.Value"
    if kind == NodeKind.PARAMETER_REFERENCE:
        return f"Parameters!{node.name or UNKNOWN_NAME}.Value"
    if kind == NodeKind.GLOBAL_REFERENCE:
        return f"Globals!{node.name or UNKNOWN_NAME}"

    if not arity_ok(node):
        logger.warning(
            "Malformed %s node with %d children rendered as empty text",
            kind.value,
            len(node.children),
        )
        return ""

    if kind == NodeKind.BINARY_OPERATION:
        left, right = node.children
        op = map_binary_operator(node.operator)
        return f"({_generate_node(left)} {op} {_generate_node(right)})"

    if kind == NodeKind.UNARY_OPERATION:
        op = node.operator or "Not"
        if op.upper() == "NOT":
            op = "Not"
        operand = node.children[0]
        if op == "-" and _is_number(operand):
            # "- 5" would read back as the literal -5.
            return f"-({_generate_node(operand)})"
        return f"{op} {_generate_node(operand)}"

    if kind == NodeKind.FUNCTION_CALL:
        return _generate_function(node)

    if kind == NodeKind.CONDITIONAL:
        condition = _generate_node(node.children[0])
        when_true = _generate_node(node.children[1])
        when_false = _generate_node(node.children[2]) if len(node.children) > 2 else "Nothing"
        return f"IIf({condition}, {when_true}, {when_false})"

    if kind == NodeKind.AGGREGATE:
        return _generate_aggregate(node)

    raise AssertionError(f"Unhandled node kind {kind}")


def _generate_function(node: ExprNode) -> str:
    name = map_function_name(node.name or UNKNOWN_NAME)
    args = [_generate_node(child) for child in node.children]
    if name == "&":
        # String concatenation has no function form.
        if not args:
            return '""'
        return "(" + " & ".join(args) + ")"
    return f"{name}({', '.join(args)})"


def _generate_aggregate(node: ExprNode) -> str:
    name = node.name or "Sum"
    parts = [_generate_node(child) for child in node.children[:1]]
    if len(node.children) > 1:
        scope = node.children[1]
        if scope.kind == NodeKind.LITERAL and isinstance(scope.value, str):
            parts.append(format_literal(scope.value))
        else:
            parts.append(_generate_node(scope))
        parts.extend(_generate_node(child) for child in node.children[2:])
    return f"{name}({', '.join(parts)})"


def _is_number(node: ExprNode) -> bool:
    return (
        node.kind == NodeKind.LITERAL
        and isinstance(node.value, (int, float, Decimal))
        and not isinstance(node.value, bool)
    )


def map_binary_operator(operator: str | None) -> str:
    if not operator:
        return ""
    return BINARY_OPERATORS.get(operator.strip().upper(), operator)


def map_function_name(name: str) -> str:
    return FUNCTION_NAMES.get(name.upper(), name)


def format_literal(value) -> str:
    """
    Render a literal value.

    null -> Nothing, strings quoted with embedded quotes doubled,
    booleans -> True/False, dates -> #M/D/YYYY#, numbers unchanged.
    """
    if value is None:
        return "Nothing"
    # bool is an int subclass; test it first
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, str):
        return '"' + value.replace('"', '""') + '"'
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return f"#{value.month}/{value.day}/{value.year}#"
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, float):
        return repr(value)
    return str(value)
