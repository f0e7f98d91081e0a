"""
Translation pipeline for field codes.

Turns field codes into report expressions:

    raw field code -> parser -> tree -> tree optimizer -> generator
        -> sandbox validator -> text optimizer -> final expression

Each field code is translated independently. In a batch, a failing field code
produces an error result for that item only; the rest of the batch still
translates. Logic extraction collects the conditional branches and calculation
formulas of a batch for the schema synthesizer.
"""

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from rdlgen.compiler.ast import ExprNode
from rdlgen.compiler.conditional import analyze_conditions
from rdlgen.compiler.generator import generate_expression
from rdlgen.compiler.optimizer import optimize_expression, optimize_tree
from rdlgen.compiler.parser import parse_field_code
from rdlgen.compiler.validator import SandboxPolicy, SandboxResult, default_policy, validate_expression
from rdlgen.core.errors import (
    ExpressionSyntaxError,
    InvalidTreeError,
    RdlGenError,
    SandboxViolationError,
    TranslationError,
    UnsupportedConstructError,
)
from rdlgen.domain.enums import FieldCodeCategory
from rdlgen.domain.models import CalculationFormula, FieldCode, LogicExtractionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledExpression:
    """A field code translated into a report expression."""

    field_code_id: str
    category: FieldCodeCategory
    tree: ExprNode
    raw_expression: str
    expression: str
    sandbox: SandboxResult


@dataclass(frozen=True)
class FieldCodeResult:
    """Outcome of translating one field code in a batch."""

    field_code: FieldCode
    compiled: CompiledExpression | None = None
    error: RdlGenError | None = None

    @property
    def ok(self) -> bool:
        return self.compiled is not None


@dataclass
class BatchResult:
    results: list[FieldCodeResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[CompiledExpression]:
        return [r.compiled for r in self.results if r.compiled is not None]

    @property
    def failed(self) -> list[FieldCodeResult]:
        return [r for r in self.results if not r.ok]

    def by_id(self) -> dict[str, FieldCodeResult]:
        return {r.field_code.id: r for r in self.results}


def compile_field_code(
    field_code: FieldCode,
    policy: SandboxPolicy | None = None,
    strict: bool | None = None,
    optimize: bool | None = None,
) -> CompiledExpression:
    """
    Translate a single field code into a report expression.

    Args:
        field_code: Field code to translate
        policy: Sandbox rules (defaults from settings)
        strict: Raise when the sandbox reports an error (defaults to
                ``settings.sandbox_strict``)
        optimize: Run tree and text optimization (defaults to
                  ``settings.optimizer_enabled``)

    Returns:
        CompiledExpression carrying the tree, the final text and the sandbox
        findings

    Raises:
        ExpressionSyntaxError: If the raw text is malformed
        UnsupportedConstructError: If the category cannot be translated
        SandboxViolationError: If ``strict`` and the expression breaks the policy
    """
    from rdlgen.core.config import settings

    strict = settings.sandbox_strict if strict is None else strict
    optimize = settings.optimizer_enabled if optimize is None else optimize
    policy = policy or default_policy()

    start_time = time.time()
    category = field_code.category
    try:
        tree = parse_field_code(field_code)
        if optimize:
            tree = optimize_tree(tree)

        raw_expression = generate_expression(tree)
        sandbox = validate_expression(raw_expression, policy)
        if not sandbox.ok and strict:
            raise SandboxViolationError(raw_expression, sandbox.violations)

        expression = optimize_expression(raw_expression) if optimize else raw_expression

        compiled = CompiledExpression(
            field_code_id=field_code.id,
            category=category,
            tree=tree,
            raw_expression=raw_expression,
            expression=expression,
            sandbox=sandbox,
        )
        _record_translation_metrics("success", category, time.time() - start_time, sandbox)
        logger.debug("Translated field code %s -> %s", field_code.id, expression)
        return compiled

    except Exception:
        _record_translation_metrics("error", category, time.time() - start_time, None)
        raise


def compile_field_codes(
    field_codes: Iterable[FieldCode],
    policy: SandboxPolicy | None = None,
    strict: bool | None = None,
    optimize: bool | None = None,
) -> BatchResult:
    """
    Translate a batch of field codes, one result per input in input order.

    Failures in one field code never abort the batch; they are returned as
    error results carrying a TranslationError.
    """
    start_time = time.time()
    policy = policy or default_policy()
    batch = BatchResult()

    for code in field_codes:
        try:
            compiled = compile_field_code(code, policy=policy, strict=strict, optimize=optimize)
            batch.results.append(FieldCodeResult(field_code=code, compiled=compiled))
        except (
            ExpressionSyntaxError,
            UnsupportedConstructError,
            SandboxViolationError,
            InvalidTreeError,
        ) as e:
            logger.warning("Field code %s failed to translate: %s", code.id, e.message)
            error = TranslationError(
                f"Field code {code.id} failed: {e.message}",
                details={"field_code_id": code.id, "cause": type(e).__name__, **e.details},
            )
            error.__cause__ = e
            batch.results.append(FieldCodeResult(field_code=code, error=error))

    duration = time.time() - start_time
    logger.info(
        "Translated %d field code(s): %d ok, %d failed in %.3fs",
        len(batch.results),
        len(batch.succeeded),
        len(batch.failed),
        duration,
    )
    return batch


def extract_logic(field_codes: Iterable[FieldCode]) -> LogicExtractionResult:
    """
    Collect conditional branches and calculation formulas from field codes.

    Formulas get ids ``formula_1``, ``formula_2``, ... in supply order.
    Formula field codes that fail to parse become warnings.
    """
    codes = list(field_codes)
    result = LogicExtractionResult(field_codes=codes)
    result.conditions = analyze_conditions(codes)

    for code in codes:
        if code.category != FieldCodeCategory.FORMULA:
            continue
        try:
            tree = parse_field_code(code)
        except ExpressionSyntaxError as e:
            result.warnings.append(f"Formula {code.id} could not be parsed: {e.message}")
            continue
        result.formulas.append(
            CalculationFormula(
                id=f"formula_{len(result.formulas) + 1}",
                raw_text=code.raw_text,
                tree=tree,
                source_id=code.id,
            )
        )

    unsupported = [c for c in codes if c.category in _UNSUPPORTED_FOR_WARNINGS]
    for code in unsupported:
        result.warnings.append(f"Field code {code.id} of type {code.category.value} is not supported")

    logger.info(
        "Extracted logic: %d condition(s), %d formula(s), %d warning(s)",
        len(result.conditions),
        len(result.formulas),
        len(result.warnings),
    )
    return result


_UNSUPPORTED_FOR_WARNINGS = frozenset(
    {
        FieldCodeCategory.SEQUENCE,
        FieldCodeCategory.TABLE_OF_CONTENTS,
        FieldCodeCategory.HYPERLINK,
        FieldCodeCategory.UNKNOWN,
    }
)


def _record_translation_metrics(
    status: str, category: FieldCodeCategory, duration: float, sandbox: SandboxResult | None
) -> None:
    """
    Record translation metrics to Prometheus.

    Metrics failures are silently ignored to avoid breaking translation.

    Args:
        status: "success" or "error"
        category: Field code category
        duration: Translation duration in seconds
        sandbox: Sandbox findings for successful translations
    """
    try:
        from rdlgen.core.config import settings
        from rdlgen.core.observability import metrics

        if not settings.metrics_enabled:
            return

        metrics.translations_total.labels(status=status, category=category.value).inc()
        metrics.translation_duration_seconds.labels(category=category.value).observe(duration)
        if sandbox is not None:
            for message in sandbox.messages:
                metrics.sandbox_violations_total.labels(code=message.code).inc()
    except Exception:
        # Metrics must never break translation
        pass
