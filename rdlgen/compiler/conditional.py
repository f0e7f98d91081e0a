"""
Conditional analysis over IF field codes.

Extracts one ConditionalBranch per IF field code, flattens nested IF chains
into a branch sequence, and detects groups of branches that all test the same
field so they can be emitted as a single ``Switch(...)`` expression.
"""

import logging
from collections.abc import Iterable, Iterator

from rdlgen.compiler.ast import ExprNode, call, literal
from rdlgen.compiler.parser import parse_field_code
from rdlgen.core.errors import ExpressionSyntaxError, NestingDepthError, UnsupportedConstructError
from rdlgen.domain.enums import FieldCodeCategory, NodeKind
from rdlgen.domain.models import ConditionalBranch, FieldCode

logger = logging.getLogger(__name__)

NESTED_TRUE_SUFFIX = "_nested_true"
NESTED_FALSE_SUFFIX = "_nested_false"


def analyze_conditions(field_codes: Iterable[FieldCode]) -> list[ConditionalBranch]:
    """
    Extract a branch from every IF field code, in supply order.

    Branch ids are ``cond_1``, ``cond_2``, ... numbered over the IF codes that
    produced a branch. Codes that fail to parse, or whose tree is not a
    conditional, are skipped and logged.
    """
    branches: list[ConditionalBranch] = []
    for code in field_codes:
        if code.category != FieldCodeCategory.IF:
            continue
        try:
            tree = parse_field_code(code)
        except (ExpressionSyntaxError, UnsupportedConstructError) as e:
            logger.warning("Skipping IF field code %s: %s", code.id, e.message)
            continue

        if tree.kind != NodeKind.CONDITIONAL or len(tree.children) < 2:
            logger.warning("IF field code %s did not produce a conditional", code.id)
            continue

        branches.append(_branch_from_tree(f"cond_{len(branches) + 1}", tree, code.id, depth=0))

    logger.info("Extracted %d conditional branch(es)", len(branches))
    return branches


def _branch_from_tree(branch_id: str, tree: ExprNode, source_id: str | None, depth: int):
    return ConditionalBranch(
        id=branch_id,
        condition=tree.children[0],
        true_value=tree.children[1],
        false_value=tree.children[2] if len(tree.children) > 2 else None,
        source_id=source_id,
        depth=depth,
    )


def _is_conditional(node: ExprNode | None) -> bool:
    return node is not None and node.kind == NodeKind.CONDITIONAL and len(node.children) >= 2


def flatten_nested_conditions(
    branch: ConditionalBranch, max_depth: int | None = None
) -> Iterator[ConditionalBranch]:
    """
    Lazily yield a branch and every conditional nested in its values, pre-order.

    Order: the branch itself, then everything nested in its true value, then
    everything nested in its false value. Nested ids append ``_nested_true`` or
    ``_nested_false`` to the parent id.

    Args:
        branch: Root branch
        max_depth: Deepest nesting level allowed (defaults from settings)

    Raises:
        NestingDepthError: When a nested branch lies deeper than ``max_depth``;
            raised when the traversal reaches it
    """
    if max_depth is None:
        from rdlgen.core.config import settings

        max_depth = settings.max_conditional_depth

    stack = [branch]
    while stack:
        current = stack.pop()
        if current.depth > max_depth:
            raise NestingDepthError(current.id, max_depth)
        yield current

        # Push false first so the true side is visited first.
        for suffix, value in (
            (NESTED_FALSE_SUFFIX, current.false_value),
            (NESTED_TRUE_SUFFIX, current.true_value),
        ):
            if _is_conditional(value):
                stack.append(
                    _branch_from_tree(
                        current.id + suffix, value, current.source_id, depth=current.depth + 1
                    )
                )


def tested_field(branch: ConditionalBranch) -> str | None:
    """Name of the field a branch compares, if its condition is ``field <op> value``."""
    condition = branch.condition
    if condition.kind != NodeKind.BINARY_OPERATION:
        return None
    left = condition.children[0]
    if left.kind != NodeKind.FIELD_REFERENCE:
        return None
    return left.name


def can_convert_to_switch(branches: list[ConditionalBranch]) -> bool:
    """
    True when at least two branches all test the same field.

    The first branch must compare a field reference on its left side; every
    other branch must test the identical field name.
    """
    if len(branches) < 2:
        return False
    field_name = tested_field(branches[0])
    if field_name is None:
        return False
    return all(tested_field(branch) == field_name for branch in branches[1:])


def build_switch(branches: list[ConditionalBranch]) -> ExprNode:
    """
    Combine switch-convertible branches into ``Switch(c1, v1, ..., True, default)``.

    The default is the last branch's false value; it is omitted when absent.

    Raises:
        ValueError: If the branches cannot be converted
    """
    if not can_convert_to_switch(branches):
        raise ValueError("Branches do not test a common field")

    arguments: list[ExprNode] = []
    for branch in branches:
        arguments.extend((branch.condition, branch.true_value))
    default = branches[-1].false_value
    if default is not None:
        arguments.extend((literal(True), default))
    return call("Switch", *arguments)
