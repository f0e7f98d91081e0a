"""
Field-code compiler for the RDL generator.

This package translates Word field codes into VB-style report expressions
that can be embedded in an RDL report definition.

Key Components:
- ast: Immutable expression tree with per-kind arity checks
- parser: Field code / expression text -> tree (lark grammar)
- conditional: IF branch extraction, flattening and Switch detection
- generator: Tree -> expression text
- optimizer: Tree and text simplification passes
- validator: Sandbox policy check over generated expressions
- compiler: Per-item and batch translation pipeline

Design Principles:
- Determinism: Same tree produces identical expression text
- Fail fast per item: A malformed field code never yields a partial tree
- Isolation: One failing field code never aborts a batch
"""

from rdlgen.compiler.compiler import compile_field_code, compile_field_codes, extract_logic
from rdlgen.compiler.generator import generate_expression
from rdlgen.compiler.optimizer import optimize_expression, optimize_tree
from rdlgen.compiler.parser import parse_expression, parse_field_code
from rdlgen.compiler.validator import validate_expression

__all__ = [
    "compile_field_code",
    "compile_field_codes",
    "extract_logic",
    "generate_expression",
    "optimize_expression",
    "optimize_tree",
    "parse_expression",
    "parse_field_code",
    "validate_expression",
]
