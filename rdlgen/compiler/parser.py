"""
Field-code parser.

Turns the raw text of a Word field code (MERGEFIELD, IF, DATE, ...) or a
report expression into an expression tree. Both languages share one LALR
grammar with a start symbol per construct; the field code's category picks
the start symbol, so a category can never be parsed as another one.

Parsing is all-or-nothing: a malformed field code raises
ExpressionSyntaxError and never yields a partial tree.
"""

import logging
import re
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedEOF, UnexpectedInput, VisitError

from rdlgen.compiler.ast import (
    ExprNode,
    SourceSpan,
    binary,
    call,
    conditional,
    field_ref,
    global_ref,
    literal,
    parameter_ref,
    unary,
)
from rdlgen.core.errors import ExpressionSyntaxError, RdlGenError, UnsupportedConstructError
from rdlgen.domain.enums import FieldCodeCategory, NodeKind
from rdlgen.domain.models import FieldCode

logger = logging.getLogger(__name__)


GRAMMAR = r"""
// ---------------------------------------------------------------------------
// Report expressions (FORMULA field codes and free expressions)
// ---------------------------------------------------------------------------

expression: expr

?expr: or_expr
?or_expr: and_expr
        | or_expr OR and_expr           -> binop
?and_expr: not_expr
         | and_expr AND not_expr        -> binop
?not_expr: comparison
         | NOT not_expr                 -> unop
?comparison: concat
           | comparison COMP_OP concat  -> binop
?concat: additive
       | concat AMP additive            -> binop
?additive: modulo
         | additive (PLUS | MINUS) modulo -> binop
?modulo: term
       | modulo MOD term                -> binop
?term: neg
     | term MUL_OP neg                  -> binop
?neg: power
    | MINUS neg                         -> negate
?power: atom
      | atom POW neg                    -> binop

?atom: STRING                           -> string
     | NUMBER                           -> number
     | DATE_LITERAL                     -> date_literal
     | TRUE                             -> true
     | FALSE                            -> false
     | NOTHING                          -> nothing
     | FIELD_REF                        -> field_ref
     | BRACKET_REF                      -> field_ref
     | PARAM_REF                        -> parameter_ref
     | GLOBAL_REF                       -> global_ref
     | NAME "(" [arguments] ")"         -> call
     | NAME                             -> bare_name
     | "(" expr ")"                     -> paren
     | nested_field

arguments: expr ("," expr)*

// ---------------------------------------------------------------------------
// Word field codes
// ---------------------------------------------------------------------------

?field: merge_field
      | if_field
      | date_field
      | time_field
      | page_field
      | numpages_field

nested_field: "{" field "}"

merge_field: MERGEFIELD field_name switch*
field_name: WORD | STRING

if_field: IF if_operand COMP_OP if_operand if_operand if_operand?
?if_operand: nested_field
           | STRING                     -> string
           | WORD                       -> word

date_field: DATE switch*
time_field: TIME switch*
page_field: PAGE switch*
numpages_field: NUMPAGES switch*

switch: SWITCH [switch_argument]
?switch_argument: STRING | WORD

// ---------------------------------------------------------------------------
// Terminals
// ---------------------------------------------------------------------------

OR.2: /or(else)?\b/i
AND.2: /and(also)?\b/i
NOT.2: /not\b/i
MOD.2: /mod\b|%/i
TRUE.2: /true\b/i
FALSE.2: /false\b/i
NOTHING.2: /(nothing|null)\b/i

MERGEFIELD.2: /mergefield\b/i
IF.2: /if\b/i
DATE.2: /date\b/i
TIME.2: /time\b/i
PAGE.2: /page\b/i
NUMPAGES.2: /numpages\b/i

FIELD_REF.3: /Fields!\w+(\.Value)?/i
PARAM_REF.3: /Parameters!\w+(\.Value)?/i
GLOBAL_REF.3: /Globals!\w+/i
BRACKET_REF: /\[[^\[\]\r\n]+\]/

COMP_OP: /<>|!=|<=|>=|=|<|>/
AMP: "&"
PLUS: "+"
MINUS: "-"
MUL_OP: /[*\/\\]/
POW: "^"

STRING: /"(?:[^"]|"")*"/
NUMBER: /(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?/
DATE_LITERAL: /#[^#\r\n]+#/
NAME: /[A-Za-z_][A-Za-z0-9_]*/
SWITCH: /\\[@#*!A-Za-z]/
WORD: /[^\s{}"\\=<>!]+/

%import common.WS
%ignore WS
"""

_START_SYMBOLS = [
    "expression",
    "merge_field",
    "if_field",
    "date_field",
    "time_field",
    "page_field",
    "numpages_field",
]

_parser = Lark(GRAMMAR, start=_START_SYMBOLS, parser="lalr", maybe_placeholders=True)

_CATEGORY_START = {
    FieldCodeCategory.MERGE_FIELD: "merge_field",
    FieldCodeCategory.IF: "if_field",
    FieldCodeCategory.DATE: "date_field",
    FieldCodeCategory.TIME: "time_field",
    FieldCodeCategory.PAGE: "page_field",
    FieldCodeCategory.NUM_PAGES: "numpages_field",
}

_UNSUPPORTED_CATEGORIES = frozenset(
    {
        FieldCodeCategory.SEQUENCE,
        FieldCodeCategory.TABLE_OF_CONTENTS,
        FieldCodeCategory.HYPERLINK,
        FieldCodeCategory.UNKNOWN,
    }
)

AGGREGATE_FUNCTIONS = {
    name.upper(): name
    for name in (
        "Sum",
        "Avg",
        "Count",
        "CountDistinct",
        "CountRows",
        "Min",
        "Max",
        "First",
        "Last",
        "StDev",
        "StDevP",
        "Var",
        "VarP",
        "RunningValue",
        "Aggregate",
    )
}

DEFAULT_DATE_FORMAT = "yyyy-MM-dd"
DEFAULT_TIME_FORMAT = "HH:mm"
EXECUTION_TIME = "ExecutionTime"

_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%m/%d/%Y %H:%M:%S", "%Y-%m-%dT%H:%M:%S")
_NUMERIC_WORD = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)$")


def _unquote(text: str) -> str:
    return text[1:-1].replace('""', '"')


_PARENTHESIZED = SourceSpan("()")


def _to_number(text: str) -> int | Decimal:
    if re.fullmatch(r"-?\d+", text):
        return int(text)
    return Decimal(text)


@v_args(inline=True)
class FieldCodeTransformer(Transformer):
    """Builds ExprNode trees from the parse tree."""

    # ----------------------------------------------------------------- literals

    def string(self, token):
        return literal(_unquote(str(token)))

    def number(self, token):
        return literal(_to_number(str(token)))

    def date_literal(self, token):
        body = str(token)[1:-1].strip()
        for fmt in _DATE_FORMATS:
            try:
                return literal(datetime.strptime(body, fmt).date())
            except ValueError:
                continue
        raise ExpressionSyntaxError(
            f"Invalid date literal {token}", str(token), getattr(token, "start_pos", None)
        )

    def true(self, _token):
        return literal(True)

    def false(self, _token):
        return literal(False)

    def nothing(self, _token):
        return literal(None)

    # --------------------------------------------------------------- references

    def field_ref(self, token):
        text = str(token)
        if text.startswith("["):
            return field_ref(text[1:-1].strip())
        return field_ref(_reference_name(text))

    def parameter_ref(self, token):
        return parameter_ref(_reference_name(str(token)))

    def global_ref(self, token):
        return global_ref(str(token).split("!", 1)[1])

    def bare_name(self, token):
        return field_ref(str(token))

    # --------------------------------------------------------------- operators

    def binop(self, left, op, right):
        return binary(normalize_operator(str(op)), left, right)

    def unop(self, _op, operand):
        return unary("Not", operand)

    def paren(self, node):
        return replace(node, source=_PARENTHESIZED)

    def negate(self, _op, operand):
        # -(5) stays a negation so the generated text parses back to the same tree.
        if (
            operand.source is not _PARENTHESIZED
            and operand.kind == NodeKind.LITERAL
            and isinstance(operand.value, (int, Decimal))
            and not isinstance(operand.value, bool)
        ):
            return literal(-operand.value)
        return unary("-", operand)

    # ------------------------------------------------------------------- calls

    def arguments(self, *args):
        return list(args)

    def call(self, name_token, args):
        name = str(name_token)
        args = args or []
        upper = name.upper()
        if upper == "IIF":
            if len(args) not in (2, 3):
                raise ExpressionSyntaxError(
                    f"IIf requires 2 or 3 arguments, got {len(args)}",
                    name,
                    name_token.start_pos,
                )
            return conditional(*args)
        if upper in AGGREGATE_FUNCTIONS:
            return ExprNode(NodeKind.AGGREGATE, AGGREGATE_FUNCTIONS[upper], children=tuple(args))
        return call(name, *args)

    def expression(self, node):
        return node

    # ------------------------------------------------------------- field codes

    def nested_field(self, node):
        return node

    def field_name(self, token):
        text = str(token)
        return _unquote(text) if text.startswith('"') else text

    def word(self, token):
        text = str(token)
        if _NUMERIC_WORD.match(text):
            return literal(_to_number(text))
        return literal(text)

    def switch(self, switch_token, argument):
        value = None
        if argument is not None:
            value = str(argument)
            if value.startswith('"'):
                value = _unquote(value)
        return (str(switch_token)[1], value)

    def merge_field(self, _keyword, name, *switches):
        node = field_ref(name)
        for flag, argument in switches:
            node = _apply_merge_switch(node, flag, argument)
        return node

    def if_field(self, _keyword, left, op, right, when_true, when_false=None):
        condition = binary(normalize_operator(str(op)), left, right)
        return conditional(condition, when_true, when_false)

    def date_field(self, _keyword, *switches):
        return _formatted_now(switches, DEFAULT_DATE_FORMAT)

    def time_field(self, _keyword, *switches):
        return _formatted_now(switches, DEFAULT_TIME_FORMAT)

    def page_field(self, _keyword, *_switches):
        return global_ref("PageNumber")

    def numpages_field(self, _keyword, *_switches):
        return global_ref("TotalPages")


_transformer = FieldCodeTransformer()


def _reference_name(text: str) -> str:
    name = text.split("!", 1)[1]
    if name.lower().endswith(".value"):
        name = name[: -len(".value")]
    return name


def _apply_merge_switch(node: ExprNode, flag: str, argument: str | None) -> ExprNode:
    if flag in ("@", "#") and argument:
        return call("Format", node, literal(argument))
    if flag == "*" and argument:
        kind = argument.upper()
        if kind == "UPPER":
            return call("UPPER", node)
        if kind == "LOWER":
            return call("LOWER", node)
        if kind in ("MERGEFORMAT", "CHARFORMAT"):
            return node
    logger.debug("Ignoring merge field switch \\%s %s", flag, argument or "")
    return node


def _formatted_now(switches: tuple, default_format: str) -> ExprNode:
    fmt = default_format
    for flag, argument in switches:
        if flag == "@" and argument:
            fmt = argument
    return call("Format", global_ref(EXECUTION_TIME), literal(fmt))


def normalize_operator(op: str) -> str:
    """Canonical spelling of an operator token."""
    upper = op.upper()
    if upper == "!=":
        return "<>"
    if upper in ("AND", "OR", "NOT", "MOD"):
        return upper.capitalize()
    if upper == "ANDALSO":
        return "AndAlso"
    if upper == "ORELSE":
        return "OrElse"
    if op == "%":
        return "Mod"
    return op


def _strip_field_braces(text: str) -> str:
    # Extraction may hand over the code with its outer { } still attached.
    stripped = text.strip()
    while stripped.startswith("{") and stripped.endswith("}") and _outer_braces_match(stripped):
        stripped = stripped[1:-1].strip()
    return stripped


def _outer_braces_match(text: str) -> bool:
    depth = 0
    in_string = False
    for index, char in enumerate(text):
        if char == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0 and index != len(text) - 1:
                return False
    return depth == 0


def _run(text: str, start: str, offset_base: int = 0) -> ExprNode:
    try:
        tree = _parser.parse(text, start=start)
        node = _transformer.transform(tree)
    except VisitError as e:
        if isinstance(e.orig_exc, RdlGenError):
            raise e.orig_exc from None
        raise ExpressionSyntaxError(str(e.orig_exc), text) from e
    except UnexpectedInput as e:
        raise ExpressionSyntaxError(
            _describe_lark_error(e, text), text, _error_offset(e, text) + offset_base
        ) from e
    except RecursionError as e:
        raise ExpressionSyntaxError("Expression is too deeply nested", text) from e
    return replace(node, source=SourceSpan(text, offset_base, offset_base + len(text)))


def _error_offset(e: UnexpectedInput, text: str) -> int:
    token = getattr(e, "token", None)
    if isinstance(e, UnexpectedEOF) or (isinstance(token, Token) and token.type == "$END"):
        return len(text)
    pos = getattr(e, "pos_in_stream", None)
    if pos is None or pos < 0:
        return len(text)
    return pos


def _describe_lark_error(e: UnexpectedInput, text: str) -> str:
    offset = _error_offset(e, text)
    if offset >= len(text):
        return "Unexpected end of input"
    token = getattr(e, "token", None)
    if isinstance(token, Token):
        return f"Unexpected '{token}' at position {offset}"
    return f"Unexpected character {text[offset]!r} at position {offset}"


def parse_expression(text: str) -> ExprNode:
    """
    Parse a report expression such as ``=Sum(Fields!Amount.Value) * 1.2``.

    A single leading ``=`` is optional. Error offsets refer to ``text``.

    Raises:
        ExpressionSyntaxError: If the text is not a valid expression
    """
    if text is None or not text.strip():
        raise ExpressionSyntaxError("Expression is empty", text or "", 0)
    leading = len(text) - len(text.lstrip())
    body = text[leading:]
    if body.startswith("="):
        leading += 1
        body = body[1:]
    node = _run(body, "expression", offset_base=leading)
    return replace(node, source=SourceSpan(text, 0, len(text)))


def parse_field_code(field_code: FieldCode) -> ExprNode:
    """
    Parse one field code into an expression tree.

    Args:
        field_code: Field code record from the extraction stage

    Returns:
        Root node of the translated tree

    Raises:
        ExpressionSyntaxError: If the raw text does not match its category
        UnsupportedConstructError: For SEQ, TOC, HYPERLINK and unknown codes
    """
    category = field_code.category
    if category in _UNSUPPORTED_CATEGORIES:
        raise UnsupportedConstructError(category.value, field_code.raw_text)

    raw = _strip_field_braces(field_code.raw_text or "")

    if category == FieldCodeCategory.FORMULA:
        return parse_expression(raw)

    if not raw:
        if category == FieldCodeCategory.MERGE_FIELD and field_code.field_name:
            return field_ref(field_code.field_name)
        raise ExpressionSyntaxError(f"{category.value} field code is empty", raw, 0)

    if category == FieldCodeCategory.MERGE_FIELD and not _has_merge_name(raw):
        if field_code.field_name:
            return field_ref(field_code.field_name)
        raise ExpressionSyntaxError("MERGEFIELD requires a field name", raw, len(raw))

    node = _run(raw, _CATEGORY_START[category])
    if category == FieldCodeCategory.MERGE_FIELD and field_code.field_name:
        node = _rename_merge_field(node, field_code.field_name)
    return node


def _has_merge_name(raw: str) -> bool:
    parts = raw.split(None, 1)
    return len(parts) > 1 and not parts[1].lstrip().startswith("\\")


def _rename_merge_field(node: ExprNode, name: str) -> ExprNode:
    # The pre-extracted name wins; switch wrappers keep the reference first.
    if node.kind == NodeKind.FIELD_REFERENCE:
        return replace(node, value=name)
    if node.kind == NodeKind.FUNCTION_CALL and node.children:
        first = _rename_merge_field(node.children[0], name)
        return replace(node, children=(first, *node.children[1:]))
    return node

