"""
Expression optimizer.

Two layers of semantics-preserving simplification:

- ``optimize_tree`` rewrites the expression tree before generation
  (constant conditionals, double negation).
- ``optimize_expression`` rewrites generated text. It is the safety net for
  expressions that did not come from a tree.

Text passes, in order:
  1. ``((X))`` -> ``(X)``, repeated until nothing changes
  2. ``Not Not X`` -> ``X`` (case-insensitive)
  3. ``IIf(True, a, b)`` -> ``a`` and ``IIf(False, a, b)`` -> ``b``; a folded
     branch is not scanned again in the same pass
  4. null-check simplification (currently the identity)

String literals are masked while the passes run, so quoted text is never
rewritten. The pass sequence repeats until the text stops changing. Every
pass that changes the text makes it strictly shorter, which bounds the loop
and makes the result a fixed point: optimizing twice equals optimizing once.
"""

import logging
import re
from dataclasses import replace

from rdlgen.compiler.ast import ExprNode, literal
from rdlgen.domain.enums import NodeKind

logger = logging.getLogger(__name__)

_STRING_LITERAL = re.compile(r'"(?:[^"]|"")*"')
_PLACEHOLDER = re.compile("\ue000(\\d+)\ue001")
_DOUBLE_PARENS = re.compile(r"\(\(([^()]+)\)\)")
_DOUBLE_NOT = re.compile(r"\bNot\s+Not\s+", re.IGNORECASE)
_IIF_CONSTANT = re.compile(r"\bIIf\s*\(\s*(True|False)\s*,", re.IGNORECASE)
_ATOM = re.compile("^(?:[\\w!.\ue000\ue001]|#[^#]*#)+$")
_CALL_HEAD = re.compile(r"^[A-Za-z_]\w*\s*\(")


# =============================================================================
# Tree level
# =============================================================================


def optimize_tree(node: ExprNode) -> ExprNode:
    """
    Simplify a tree bottom-up.

    - Conditional with a boolean literal condition -> the chosen branch
      (``Nothing`` when the false branch is missing)
    - ``Not Not X`` -> ``X``
    - ``Not True`` / ``Not False`` -> the opposite literal
    """
    if node.is_leaf:
        return node

    children = tuple(optimize_tree(child) for child in node.children)
    if children != node.children:
        node = replace(node, children=children)

    if node.kind == NodeKind.CONDITIONAL:
        condition = node.children[0]
        if condition.kind == NodeKind.LITERAL and isinstance(condition.value, bool):
            if condition.value:
                return node.children[1]
            return node.children[2] if len(node.children) > 2 else literal(None)

    if node.kind == NodeKind.UNARY_OPERATION and _is_not(node):
        operand = node.children[0]
        if operand.kind == NodeKind.UNARY_OPERATION and _is_not(operand):
            return operand.children[0]
        if operand.kind == NodeKind.LITERAL and isinstance(operand.value, bool):
            return literal(not operand.value)

    return node


def _is_not(node: ExprNode) -> bool:
    return node.operator is None or node.operator.upper() == "NOT"


# =============================================================================
# Text level
# =============================================================================


def optimize_expression(expression: str) -> str:
    """
    Apply the text passes until the expression stops changing.

    Args:
        expression: Generated expression text, with or without leading ``=``

    Returns:
        Simplified expression text
    """
    if not expression:
        return expression

    masked, literals = _mask_strings(expression)
    rounds = 0
    while True:
        rewritten = _run_passes(masked)
        if rewritten == masked:
            break
        masked = rewritten
        rounds += 1

    result = _unmask_strings(masked, literals)
    if rounds:
        logger.debug("Optimized expression in %d round(s): %s -> %s", rounds, expression, result)
    return result


def _run_passes(text: str) -> str:
    text = remove_redundant_parentheses(text)
    text = remove_double_negation(text)
    text = fold_constant_conditionals(text)
    text = simplify_null_checks(text)
    return text


def remove_redundant_parentheses(text: str) -> str:
    previous = None
    while previous != text:
        previous = text
        text = _DOUBLE_PARENS.sub(r"(\1)", text)
    return text


def remove_double_negation(text: str) -> str:
    return _DOUBLE_NOT.sub("", text)


def fold_constant_conditionals(text: str) -> str:
    out: list[str] = []
    position = 0
    while True:
        match = _IIF_CONSTANT.search(text, position)
        if match is None:
            break
        open_paren = text.index("(", match.start())
        close_paren = _matching_paren(text, open_paren)
        if close_paren is None:
            break
        arguments = _split_arguments(text[open_paren + 1 : close_paren])
        if len(arguments) not in (2, 3):
            out.append(text[position : match.end()])
            position = match.end()
            continue

        if match.group(1).lower() == "true":
            chosen = arguments[1].strip()
        else:
            chosen = arguments[2].strip() if len(arguments) == 3 else "Nothing"

        whole = _spans_whole_expression(text, match.start(), close_paren)
        if not whole and not _is_atomic(chosen):
            chosen = f"({chosen})"

        out.append(text[position : match.start()])
        out.append(chosen)
        position = close_paren + 1

    out.append(text[position:])
    return "".join(out)


def simplify_null_checks(text: str) -> str:
    # Reserved: IsNothing() rewrites need type information the text does not carry.
    return text


# =============================================================================
# Helpers
# =============================================================================


def _mask_strings(text: str) -> tuple[str, list[str]]:
    literals: list[str] = []

    def _stash(match: re.Match) -> str:
        literals.append(match.group(0))
        return f"\ue000{len(literals) - 1}\ue001"

    return _STRING_LITERAL.sub(_stash, text), literals


def _unmask_strings(text: str, literals: list[str]) -> str:
    return _PLACEHOLDER.sub(lambda m: literals[int(m.group(1))], text)


def _matching_paren(text: str, open_index: int) -> int | None:
    depth = 0
    for index in range(open_index, len(text)):
        char = text[index]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index
    return None


def _split_arguments(text: str) -> list[str]:
    arguments: list[str] = []
    depth = 0
    start = 0
    for index, char in enumerate(text):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == "," and depth == 0:
            arguments.append(text[start:index])
            start = index + 1
    arguments.append(text[start:])
    return arguments


def _is_atomic(text: str) -> bool:
    if _ATOM.match(text):
        return True
    if text.startswith("(") and _matching_paren(text, 0) == len(text) - 1:
        return True
    head = _CALL_HEAD.match(text)
    if head is not None:
        return _matching_paren(text, head.end() - 1) == len(text) - 1
    return False


def _spans_whole_expression(text: str, start: int, end: int) -> bool:
    before = text[:start].strip()
    return before in ("", "=") and not text[end + 1 :].strip()
