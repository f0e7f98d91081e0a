"""
Unit tests for the field-code parser.

Tests cover:
- Expression grammar: literals, references, precedence, calls, aggregates
- Word field codes: MERGEFIELD, IF, DATE, TIME, PAGE, NUMPAGES
- Category dispatch and unsupported categories
- Syntax errors with offsets, never a partial tree
"""

from datetime import date
from decimal import Decimal

import pytest

from rdlgen.compiler.ast import (
    aggregate,
    binary,
    call,
    conditional,
    field_ref,
    global_ref,
    literal,
    parameter_ref,
    unary,
)
from rdlgen.compiler.parser import normalize_operator, parse_expression, parse_field_code
from rdlgen.core.errors import ExpressionSyntaxError, UnsupportedConstructError
from rdlgen.domain.enums import FieldCodeCategory, NodeKind
from tests.conftest import make_field_code

# =============================================================================
# Expression grammar
# =============================================================================


class TestExpressionLiterals:
    """Literal parsing."""

    @pytest.mark.anyio
    async def test_string_with_doubled_quotes(self):
        assert parse_expression('="Say ""hi"""') == literal('Say "hi"')

    @pytest.mark.anyio
    async def test_integer_and_decimal(self):
        assert parse_expression("42") == literal(42)
        assert parse_expression("1.25") == literal(Decimal("1.25"))

    @pytest.mark.anyio
    async def test_negative_number_folded(self):
        assert parse_expression("-5") == literal(-5)

    @pytest.mark.anyio
    async def test_parenthesized_number_negation_not_folded(self):
        assert parse_expression("-(5)") == unary("-", literal(5))
        assert parse_expression("-(-5)") == unary("-", literal(-5))

    @pytest.mark.anyio
    async def test_booleans_any_case(self):
        assert parse_expression("True") == literal(True)
        assert parse_expression("false") == literal(False)

    @pytest.mark.anyio
    async def test_nothing_and_null(self):
        assert parse_expression("Nothing") == literal(None)
        assert parse_expression("NULL") == literal(None)

    @pytest.mark.anyio
    async def test_date_literals(self):
        assert parse_expression("#1/15/2024#") == literal(date(2024, 1, 15))
        assert parse_expression("#2024-01-15#") == literal(date(2024, 1, 15))

    @pytest.mark.anyio
    async def test_invalid_date_literal(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("#not a date#")


class TestExpressionReferences:
    """Field, parameter and global references."""

    @pytest.mark.anyio
    async def test_field_reference_forms(self):
        assert parse_expression("=Fields!Amount.Value") == field_ref("Amount")
        assert parse_expression("Fields!Amount") == field_ref("Amount")
        assert parse_expression("[Customer Name]") == field_ref("Customer Name")
        assert parse_expression("Amount") == field_ref("Amount")

    @pytest.mark.anyio
    async def test_parameter_reference(self):
        assert parse_expression("Parameters!Region.Value") == parameter_ref("Region")

    @pytest.mark.anyio
    async def test_global_reference(self):
        assert parse_expression("Globals!ExecutionTime") == global_ref("ExecutionTime")

    @pytest.mark.anyio
    async def test_keyword_prefix_is_still_a_name(self):
        # "Order" starts with "Or", "Notes" with "Not"
        assert parse_expression("Order") == field_ref("Order")
        assert parse_expression("Notes") == field_ref("Notes")


class TestExpressionOperators:
    """Precedence and associativity."""

    @pytest.mark.anyio
    async def test_multiplication_binds_tighter_than_addition(self):
        expected = binary("+", literal(1), binary("*", literal(2), literal(3)))
        assert parse_expression("1 + 2 * 3") == expected

    @pytest.mark.anyio
    async def test_parentheses_override_precedence(self):
        expected = binary("*", binary("+", literal(1), literal(2)), literal(3))
        assert parse_expression("(1 + 2) * 3") == expected

    @pytest.mark.anyio
    async def test_subtraction_is_left_associative(self):
        expected = binary("-", binary("-", literal(10), literal(4)), literal(3))
        assert parse_expression("10 - 4 - 3") == expected

    @pytest.mark.anyio
    async def test_power_is_right_associative(self):
        expected = binary("^", literal(2), binary("^", literal(3), literal(2)))
        assert parse_expression("2 ^ 3 ^ 2") == expected

    @pytest.mark.anyio
    async def test_and_binds_tighter_than_or(self):
        expected = binary(
            "Or", binary("And", field_ref("A"), field_ref("B")), field_ref("C")
        )
        assert parse_expression("A And B Or C") == expected

    @pytest.mark.anyio
    async def test_comparison_operators_normalized(self):
        assert parse_expression("A != 1") == binary("<>", field_ref("A"), literal(1))
        assert parse_expression("A mod 2") == binary("Mod", field_ref("A"), literal(2))
        assert parse_expression("A % 2") == binary("Mod", field_ref("A"), literal(2))

    @pytest.mark.anyio
    async def test_not_prefix(self):
        assert parse_expression("Not Fields!Active.Value") == unary("Not", field_ref("Active"))

    @pytest.mark.anyio
    async def test_negating_a_reference(self):
        assert parse_expression("-Amount") == unary("-", field_ref("Amount"))

    @pytest.mark.anyio
    async def test_concatenation(self):
        expected = binary("&", field_ref("First"), literal(" "))
        assert parse_expression('First & " "') == expected

    @pytest.mark.anyio
    async def test_realistic_expression(self):
        expected = binary("*", field_ref("Amount"), literal(Decimal("1.2")))
        assert parse_expression("=Fields!Amount.Value * 1.2") == expected


class TestExpressionCalls:
    """Function calls, IIf and aggregates."""

    @pytest.mark.anyio
    async def test_function_call(self):
        assert parse_expression("Len(Name)") == call("Len", field_ref("Name"))
        assert parse_expression("Now()") == call("Now")

    @pytest.mark.anyio
    async def test_iif_builds_conditional(self):
        tree = parse_expression('=IIf(Fields!Amount.Value > 100, "High", "Low")')
        assert tree == conditional(
            binary(">", field_ref("Amount"), literal(100)), literal("High"), literal("Low")
        )

    @pytest.mark.anyio
    async def test_iif_with_two_arguments(self):
        tree = parse_expression("IIf(A, 1)")
        assert tree.kind == NodeKind.CONDITIONAL
        assert len(tree.children) == 2

    @pytest.mark.anyio
    async def test_iif_with_wrong_arity_is_syntax_error(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("IIf(A)")
        assert "IIf requires 2 or 3 arguments" in exc_info.value.message

    @pytest.mark.anyio
    async def test_aggregate_with_scope(self):
        tree = parse_expression('=Sum(Fields!Amount.Value, "Orders")')
        assert tree == aggregate("Sum", field_ref("Amount"), "Orders")

    @pytest.mark.anyio
    async def test_aggregate_name_canonical_case(self):
        tree = parse_expression("countdistinct(CustomerId)")
        assert tree.kind == NodeKind.AGGREGATE
        assert tree.value == "CountDistinct"


class TestExpressionErrors:
    """Malformed expressions fail with an offset."""

    @pytest.mark.anyio
    async def test_unclosed_parenthesis(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("(1 + 2")
        assert exc_info.value.offset == len("(1 + 2")
        assert exc_info.value.expression == "(1 + 2"

    @pytest.mark.anyio
    async def test_unexpected_character_offset_accounts_for_equals(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("=1 + $")
        assert exc_info.value.offset == 5

    @pytest.mark.anyio
    async def test_unterminated_string(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression('="abc')

    @pytest.mark.anyio
    async def test_empty_expression(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("   ")
        assert exc_info.value.offset == 0

    @pytest.mark.anyio
    async def test_error_details(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("1 +")
        assert exc_info.value.details["expression"] == "1 +"
        assert exc_info.value.details["offset"] == 3


# =============================================================================
# Word field codes
# =============================================================================


class TestMergeField:
    """MERGEFIELD translation."""

    @pytest.mark.anyio
    async def test_plain_merge_field(self):
        fc = make_field_code("MERGEFIELD CustomerName", FieldCodeCategory.MERGE_FIELD)
        assert parse_field_code(fc) == field_ref("CustomerName")

    @pytest.mark.anyio
    async def test_merge_format_switch_ignored(self):
        fc = make_field_code(r"MERGEFIELD CustomerName \* MERGEFORMAT", FieldCodeCategory.MERGE_FIELD)
        assert parse_field_code(fc) == field_ref("CustomerName")

    @pytest.mark.anyio
    async def test_outer_braces_stripped(self):
        fc = make_field_code("{ MERGEFIELD Total }", FieldCodeCategory.MERGE_FIELD)
        assert parse_field_code(fc) == field_ref("Total")

    @pytest.mark.anyio
    async def test_numeric_format_switch(self):
        fc = make_field_code(r'MERGEFIELD Amount \# "#,##0.00"', FieldCodeCategory.MERGE_FIELD)
        assert parse_field_code(fc) == call("Format", field_ref("Amount"), literal("#,##0.00"))

    @pytest.mark.anyio
    async def test_date_format_switch(self):
        fc = make_field_code(r'MERGEFIELD Due \@ "dd MMM yyyy"', FieldCodeCategory.MERGE_FIELD)
        assert parse_field_code(fc) == call("Format", field_ref("Due"), literal("dd MMM yyyy"))

    @pytest.mark.anyio
    async def test_case_switch(self):
        fc = make_field_code(r"MERGEFIELD Name \* Upper", FieldCodeCategory.MERGE_FIELD)
        assert parse_field_code(fc) == call("UPPER", field_ref("Name"))

    @pytest.mark.anyio
    async def test_quoted_field_name(self):
        fc = make_field_code('MERGEFIELD "Customer Name"', FieldCodeCategory.MERGE_FIELD)
        assert parse_field_code(fc) == field_ref("Customer Name")

    @pytest.mark.anyio
    async def test_missing_name_is_syntax_error(self):
        fc = make_field_code(r"MERGEFIELD \* MERGEFORMAT", FieldCodeCategory.MERGE_FIELD)
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_field_code(fc)
        assert exc_info.value.message == "MERGEFIELD requires a field name"

    @pytest.mark.anyio
    async def test_pre_extracted_name_wins(self):
        fc = make_field_code(
            r"MERGEFIELD Old \* Upper", FieldCodeCategory.MERGE_FIELD, field_name="New"
        )
        assert parse_field_code(fc) == call("UPPER", field_ref("New"))

    @pytest.mark.anyio
    async def test_pre_extracted_name_fills_missing_name(self):
        fc = make_field_code("MERGEFIELD", FieldCodeCategory.MERGE_FIELD, field_name="Customer")
        assert parse_field_code(fc) == field_ref("Customer")


class TestIfField:
    """IF field translation."""

    @pytest.mark.anyio
    async def test_if_with_nested_merge_field(self):
        fc = make_field_code(
            'IF { MERGEFIELD Status } = "Active" "Yes" "No"', FieldCodeCategory.IF
        )
        assert parse_field_code(fc) == conditional(
            binary("=", field_ref("Status"), literal("Active")), literal("Yes"), literal("No")
        )

    @pytest.mark.anyio
    async def test_numeric_operand(self):
        fc = make_field_code(
            'IF {MERGEFIELD Amount} > 1000 "Large" "Small"', FieldCodeCategory.IF
        )
        tree = parse_field_code(fc)
        assert tree.children[0] == binary(">", field_ref("Amount"), literal(1000))

    @pytest.mark.anyio
    async def test_bare_word_operands(self):
        fc = make_field_code("IF {MERGEFIELD Gender} = M Mr Ms", FieldCodeCategory.IF)
        assert parse_field_code(fc) == conditional(
            binary("=", field_ref("Gender"), literal("M")), literal("Mr"), literal("Ms")
        )

    @pytest.mark.anyio
    async def test_missing_false_value(self):
        fc = make_field_code('IF {MERGEFIELD A} != 0 "Non-zero"', FieldCodeCategory.IF)
        tree = parse_field_code(fc)
        assert len(tree.children) == 2
        assert tree.children[0].operator == "<>"

    @pytest.mark.anyio
    async def test_nested_if(self):
        fc = make_field_code(
            'IF {MERGEFIELD A} = 1 "one" {IF {MERGEFIELD A} = 2 "two" "many"}',
            FieldCodeCategory.IF,
        )
        tree = parse_field_code(fc)
        assert tree.children[2].kind == NodeKind.CONDITIONAL

    @pytest.mark.anyio
    async def test_empty_if_is_syntax_error(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_field_code(make_field_code("", FieldCodeCategory.IF))

    @pytest.mark.anyio
    async def test_incomplete_if_is_syntax_error(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_field_code(make_field_code("IF {MERGEFIELD A} =", FieldCodeCategory.IF))


class TestDocumentFields:
    """DATE, TIME, PAGE and NUMPAGES."""

    @pytest.mark.anyio
    async def test_date_default_format(self):
        tree = parse_field_code(make_field_code("DATE", FieldCodeCategory.DATE))
        assert tree == call("Format", global_ref("ExecutionTime"), literal("yyyy-MM-dd"))

    @pytest.mark.anyio
    async def test_date_explicit_format(self):
        fc = make_field_code(r'DATE \@ "MM/dd/yyyy"', FieldCodeCategory.DATE)
        assert parse_field_code(fc) == call(
            "Format", global_ref("ExecutionTime"), literal("MM/dd/yyyy")
        )

    @pytest.mark.anyio
    async def test_time_default_format(self):
        tree = parse_field_code(make_field_code("TIME", FieldCodeCategory.TIME))
        assert tree.children[1] == literal("HH:mm")

    @pytest.mark.anyio
    async def test_page_and_numpages(self):
        page = make_field_code(r"PAGE \* MERGEFORMAT", FieldCodeCategory.PAGE)
        pages = make_field_code("NUMPAGES", FieldCodeCategory.NUM_PAGES)
        assert parse_field_code(page) == global_ref("PageNumber")
        assert parse_field_code(pages) == global_ref("TotalPages")

    @pytest.mark.anyio
    async def test_category_selects_grammar(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_field_code(make_field_code("PAGE", FieldCodeCategory.DATE))

    @pytest.mark.anyio
    async def test_formula_uses_expression_grammar(self):
        fc = make_field_code("=Fields!Qty.Value * Fields!Price.Value")
        assert parse_field_code(fc) == binary("*", field_ref("Qty"), field_ref("Price"))


class TestUnsupportedCategories:
    """SEQ, TOC, HYPERLINK and unknown codes are rejected."""

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "category",
        [
            FieldCodeCategory.SEQUENCE,
            FieldCodeCategory.TABLE_OF_CONTENTS,
            FieldCodeCategory.HYPERLINK,
            FieldCodeCategory.UNKNOWN,
        ],
    )
    async def test_unsupported(self, category):
        fc = make_field_code("SEQ Figure", category)
        with pytest.raises(UnsupportedConstructError) as exc_info:
            parse_field_code(fc)

        assert exc_info.value.category == category.value
        assert exc_info.value.raw_text == "SEQ Figure"
        assert exc_info.value.message == f"Unsupported field code type: {category.value}"


class TestNormalizeOperator:
    """Operator spelling."""

    @pytest.mark.anyio
    async def test_normalize(self):
        assert normalize_operator("!=") == "<>"
        assert normalize_operator("and") == "And"
        assert normalize_operator("OrElse") == "OrElse"
        assert normalize_operator("%") == "Mod"
        assert normalize_operator(">=") == ">="
