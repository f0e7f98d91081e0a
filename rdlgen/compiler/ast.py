"""
Expression tree for field-code translation.

An ExprNode is an immutable tagged variant: ``kind`` selects the variant,
``value`` carries the scalar payload (literal value, reference name,
function or aggregate identifier), ``operator`` the symbol of unary and
binary operations, and ``children`` the ordered operands.

Per-kind arity is checked when a node is constructed:

    BINARY_OPERATION   exactly 2 children
    UNARY_OPERATION    exactly 1 child
    CONDITIONAL        2 or 3 children (condition, true, optional false)
    FUNCTION_CALL      any number
    AGGREGATE          any number (target, optional scope)
    LITERAL, *_REFERENCE  none

Trees received from external producers may be built with
``ExprNode.unchecked``; the generator renders arity mismatches in such
trees as empty text.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Union

from rdlgen.core.errors import InvalidTreeError
from rdlgen.domain.enums import NodeKind

Scalar = Union[str, int, float, Decimal, bool, date, datetime, None]

_LEAF_KINDS = frozenset(
    {
        NodeKind.LITERAL,
        NodeKind.FIELD_REFERENCE,
        NodeKind.PARAMETER_REFERENCE,
        NodeKind.GLOBAL_REFERENCE,
    }
)

# kind -> (min children, max children); None means unbounded
_ARITY: dict[NodeKind, tuple[int, int | None]] = {
    NodeKind.BINARY_OPERATION: (2, 2),
    NodeKind.UNARY_OPERATION: (1, 1),
    NodeKind.CONDITIONAL: (2, 3),
    NodeKind.FUNCTION_CALL: (0, None),
    NodeKind.AGGREGATE: (0, None),
    **{kind: (0, 0) for kind in _LEAF_KINDS},
}


@dataclass(frozen=True)
class SourceSpan:
    """Where a node came from in the original field-code text."""

    text: str
    start: int | None = None
    end: int | None = None


@dataclass(frozen=True)
class ExprNode:
    kind: NodeKind
    value: Scalar = None
    operator: str | None = None
    children: tuple["ExprNode", ...] = ()
    source: SourceSpan | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))
        check_arity(self.kind, len(self.children))

    @classmethod
    def unchecked(
        cls,
        kind: NodeKind,
        value: Scalar = None,
        operator: str | None = None,
        children: tuple["ExprNode", ...] | list["ExprNode"] = (),
    ) -> "ExprNode":
        """Build a node without enforcing arity (for externally produced trees)."""
        node = object.__new__(cls)
        object.__setattr__(node, "kind", kind)
        object.__setattr__(node, "value", value)
        object.__setattr__(node, "operator", operator)
        object.__setattr__(node, "children", tuple(children))
        object.__setattr__(node, "source", None)
        return node

    @property
    def is_leaf(self) -> bool:
        return self.kind in _LEAF_KINDS

    @property
    def name(self) -> str | None:
        """Reference, function or aggregate name carried in ``value``."""
        if self.kind == NodeKind.LITERAL:
            return None
        return None if self.value is None else str(self.value)

    def walk(self):
        """Yield this node and every descendant, pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind.value}
        if self.value is not None:
            out["value"] = self.value
        if self.operator is not None:
            out["operator"] = self.operator
        if self.children:
            out["children"] = [child.to_dict() for child in self.children]
        return out


def check_arity(kind: NodeKind, count: int) -> None:
    low, high = _ARITY[kind]
    if count < low or (high is not None and count > high):
        expected = str(low) if low == high else f"{low}..{'N' if high is None else high}"
        raise InvalidTreeError(
            f"{kind.value} requires {expected} children, got {count}",
            details={"kind": kind.value, "children": count},
        )


def arity_ok(node: ExprNode) -> bool:
    low, high = _ARITY[node.kind]
    count = len(node.children)
    return count >= low and (high is None or count <= high)


# =============================================================================
# Constructors
# =============================================================================


def literal(value: Scalar) -> ExprNode:
    return ExprNode(NodeKind.LITERAL, value)


def field_ref(name: str | None) -> ExprNode:
    return ExprNode(NodeKind.FIELD_REFERENCE, name)


def parameter_ref(name: str | None) -> ExprNode:
    return ExprNode(NodeKind.PARAMETER_REFERENCE, name)


def global_ref(name: str | None) -> ExprNode:
    return ExprNode(NodeKind.GLOBAL_REFERENCE, name)


def binary(operator: str, left: ExprNode, right: ExprNode) -> ExprNode:
    return ExprNode(NodeKind.BINARY_OPERATION, operator=operator, children=(left, right))


def unary(operator: str | None, operand: ExprNode) -> ExprNode:
    return ExprNode(NodeKind.UNARY_OPERATION, operator=operator, children=(operand,))


def call(name: str, *args: ExprNode) -> ExprNode:
    return ExprNode(NodeKind.FUNCTION_CALL, name, children=args)


def conditional(
    condition: ExprNode, when_true: ExprNode, when_false: ExprNode | None = None
) -> ExprNode:
    children = (condition, when_true) if when_false is None else (condition, when_true, when_false)
    return ExprNode(NodeKind.CONDITIONAL, children=children)


def aggregate(name: str, target: ExprNode, scope: str | None = None) -> ExprNode:
    children = (target,) if scope is None else (target, literal(scope))
    return ExprNode(NodeKind.AGGREGATE, name, children=children)


# =============================================================================
# Structural comparison
# =============================================================================


def _normalize_scalar(value: Scalar) -> Any:
    # Literal formatting differences (1 vs 1.0, datetime vs date) are not structural.
    if isinstance(value, bool) or value is None:
        return (type(value), value)
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value)).normalize()
    if isinstance(value, datetime):
        return value.date()
    return value


def _normalize_name(node: ExprNode) -> Any:
    if node.kind == NodeKind.LITERAL:
        return _normalize_scalar(node.value)
    if node.value is None:
        return "sum" if node.kind == NodeKind.AGGREGATE else None
    return str(node.value).casefold()


def structurally_equal(a: ExprNode, b: ExprNode) -> bool:
    """
    Compare two trees ignoring literal formatting and identifier case.

    Operators are compared case-insensitively with ``!=`` treated as ``<>``.
    """
    pairs = [(a, b)]
    while pairs:
        left, right = pairs.pop()
        if left.kind != right.kind or len(left.children) != len(right.children):
            return False
        if _normalize_name(left) != _normalize_name(right):
            return False
        if _normalize_operator(left) != _normalize_operator(right):
            return False
        pairs.extend(zip(left.children, right.children, strict=True))
    return True


def _normalize_operator(node: ExprNode) -> str | None:
    op = node.operator
    if op is None:
        return "NOT" if node.kind == NodeKind.UNARY_OPERATION else None
    op = op.strip().upper()
    return {"!=": "<>", "%": "MOD"}.get(op, op)
