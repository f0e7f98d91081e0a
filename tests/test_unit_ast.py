"""
Unit tests for the expression tree.

Tests cover:
- Per-kind arity checks at construction
- Unchecked construction for externally produced trees
- Traversal and serialization helpers
- Structural comparison modulo literal formatting
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from rdlgen.compiler.ast import (
    ExprNode,
    aggregate,
    arity_ok,
    binary,
    call,
    conditional,
    field_ref,
    global_ref,
    literal,
    parameter_ref,
    structurally_equal,
    unary,
)
from rdlgen.core.errors import InvalidTreeError, RdlGenError
from rdlgen.domain.enums import NodeKind


class TestArity:
    """Arity is enforced when a node is constructed."""

    @pytest.mark.anyio
    async def test_binary_requires_two_children(self):
        with pytest.raises(InvalidTreeError) as exc_info:
            ExprNode(NodeKind.BINARY_OPERATION, operator="+", children=(literal(1),))

        assert "requires 2 children" in exc_info.value.message
        assert exc_info.value.details == {"kind": "BINARY_OPERATION", "children": 1}

    @pytest.mark.anyio
    async def test_unary_requires_one_child(self):
        with pytest.raises(InvalidTreeError):
            ExprNode(NodeKind.UNARY_OPERATION, operator="Not", children=())

    @pytest.mark.anyio
    async def test_conditional_accepts_two_or_three_children(self):
        assert len(conditional(literal(True), literal(1)).children) == 2
        assert len(conditional(literal(True), literal(1), literal(2)).children) == 3

        with pytest.raises(InvalidTreeError):
            ExprNode(NodeKind.CONDITIONAL, children=(literal(True),))
        with pytest.raises(InvalidTreeError):
            ExprNode(NodeKind.CONDITIONAL, children=tuple(literal(i) for i in range(4)))

    @pytest.mark.anyio
    async def test_leaf_kinds_reject_children(self):
        with pytest.raises(InvalidTreeError):
            ExprNode(NodeKind.LITERAL, 1, children=(literal(2),))

    @pytest.mark.anyio
    async def test_function_call_accepts_any_arity(self):
        assert call("Now").children == ()
        assert len(call("Format", field_ref("Amount"), literal("C2")).children) == 2

    @pytest.mark.anyio
    async def test_invalid_tree_error_is_domain_error(self):
        with pytest.raises(RdlGenError):
            ExprNode(NodeKind.BINARY_OPERATION, children=())

    @pytest.mark.anyio
    async def test_children_list_converted_to_tuple(self):
        node = ExprNode(NodeKind.FUNCTION_CALL, "Len", children=[field_ref("Name")])
        assert isinstance(node.children, tuple)


class TestUnchecked:
    """Externally produced trees may carry arity mismatches."""

    @pytest.mark.anyio
    async def test_unchecked_skips_arity(self):
        node = ExprNode.unchecked(NodeKind.BINARY_OPERATION, operator="+", children=[literal(1)])
        assert len(node.children) == 1
        assert not arity_ok(node)

    @pytest.mark.anyio
    async def test_unchecked_well_formed_node_is_ok(self):
        node = ExprNode.unchecked(
            NodeKind.BINARY_OPERATION, operator="+", children=[literal(1), literal(2)]
        )
        assert arity_ok(node)
        assert node == binary("+", literal(1), literal(2))


class TestNodeHelpers:
    """Traversal, names and dict serialization."""

    @pytest.mark.anyio
    async def test_walk_is_preorder(self):
        tree = binary("+", field_ref("A"), call("Abs", field_ref("B")))
        kinds = [node.kind for node in tree.walk()]
        assert kinds == [
            NodeKind.BINARY_OPERATION,
            NodeKind.FIELD_REFERENCE,
            NodeKind.FUNCTION_CALL,
            NodeKind.FIELD_REFERENCE,
        ]

    @pytest.mark.anyio
    async def test_name_of_reference_and_literal(self):
        assert field_ref("Amount").name == "Amount"
        assert parameter_ref("Region").name == "Region"
        assert global_ref("PageNumber").name == "PageNumber"
        assert literal("Amount").name is None

    @pytest.mark.anyio
    async def test_is_leaf(self):
        assert literal(1).is_leaf
        assert field_ref("A").is_leaf
        assert not unary("Not", literal(True)).is_leaf

    @pytest.mark.anyio
    async def test_to_dict(self):
        tree = binary(">", field_ref("Amount"), literal(100))
        assert tree.to_dict() == {
            "kind": "BINARY_OPERATION",
            "operator": ">",
            "children": [
                {"kind": "FIELD_REFERENCE", "value": "Amount"},
                {"kind": "LITERAL", "value": 100},
            ],
        }

    @pytest.mark.anyio
    async def test_aggregate_with_scope(self):
        node = aggregate("Sum", field_ref("Amount"), "Orders")
        assert node.kind == NodeKind.AGGREGATE
        assert node.children[1] == literal("Orders")

    @pytest.mark.anyio
    async def test_nodes_are_immutable(self):
        node = literal(1)
        with pytest.raises(AttributeError):
            node.value = 2


class TestStructuralEquality:
    """Comparison ignores literal formatting and identifier case."""

    @pytest.mark.anyio
    async def test_numeric_formatting_ignored(self):
        assert structurally_equal(literal(1), literal(Decimal("1.0")))
        assert structurally_equal(literal(1.5), literal(Decimal("1.50")))
        assert not structurally_equal(literal(1), literal(2))

    @pytest.mark.anyio
    async def test_datetime_compares_as_date(self):
        assert structurally_equal(literal(datetime(2024, 1, 5, 13, 30)), literal(date(2024, 1, 5)))

    @pytest.mark.anyio
    async def test_identifier_case_ignored(self):
        assert structurally_equal(field_ref("amount"), field_ref("Amount"))
        assert structurally_equal(call("len", field_ref("A")), call("Len", field_ref("A")))

    @pytest.mark.anyio
    async def test_operator_spelling_normalized(self):
        a = binary("!=", field_ref("A"), literal(1))
        b = binary("<>", field_ref("A"), literal(1))
        assert structurally_equal(a, b)
        assert structurally_equal(
            binary("%", field_ref("A"), literal(2)), binary("Mod", field_ref("A"), literal(2))
        )

    @pytest.mark.anyio
    async def test_unary_default_operator_is_not(self):
        assert structurally_equal(unary(None, field_ref("A")), unary("Not", field_ref("A")))

    @pytest.mark.anyio
    async def test_kind_mismatch(self):
        assert not structurally_equal(field_ref("A"), parameter_ref("A"))

    @pytest.mark.anyio
    async def test_bool_is_not_number(self):
        assert not structurally_equal(literal(True), literal(1))

    @pytest.mark.anyio
    async def test_source_span_not_compared(self):
        from rdlgen.compiler.parser import parse_expression

        parsed = parse_expression("=Fields!A.Value")
        assert parsed == field_ref("A")
