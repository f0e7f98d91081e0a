"""
Unit tests for the translation pipeline.

These tests verify:
- Single field code translation (parse -> optimize -> generate -> sandbox)
- Strict sandbox escalation
- Batch isolation: one failure never aborts the batch
- Logic extraction for the schema synthesizer
- Translation metrics
"""

import pytest

from rdlgen.compiler import compile_field_code, compile_field_codes, extract_logic
from rdlgen.compiler.ast import field_ref
from rdlgen.core.errors import (
    ExpressionSyntaxError,
    SandboxViolationError,
    TranslationError,
    UnsupportedConstructError,
)
from rdlgen.core.observability import metrics
from rdlgen.domain.enums import FieldCodeCategory
from tests.conftest import make_field_code


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return metrics.registry.get_sample_value(name, labels or {}) or 0.0


# =============================================================================
# Single field code
# =============================================================================


class TestCompileFieldCode:
    """End-to-end translation of one field code."""

    @pytest.mark.anyio
    async def test_merge_field(self):
        fc = make_field_code(r"MERGEFIELD Amount \* MERGEFORMAT", FieldCodeCategory.MERGE_FIELD)
        compiled = compile_field_code(fc)

        assert compiled.field_code_id == "fc_1"
        assert compiled.category == FieldCodeCategory.MERGE_FIELD
        assert compiled.tree == field_ref("Amount")
        assert compiled.expression == "=Fields!Amount.Value"
        assert compiled.sandbox.ok

    @pytest.mark.anyio
    async def test_if_field(self):
        fc = make_field_code(
            'IF {MERGEFIELD Status} = "Active" "Yes" "No"', FieldCodeCategory.IF
        )
        compiled = compile_field_code(fc)
        assert compiled.expression == '=IIf((Fields!Status.Value = "Active"), "Yes", "No")'

    @pytest.mark.anyio
    async def test_page_fields(self):
        page = compile_field_code(make_field_code("PAGE", FieldCodeCategory.PAGE))
        total = compile_field_code(make_field_code("NUMPAGES", FieldCodeCategory.NUM_PAGES))
        assert page.expression == "=Globals!PageNumber"
        assert total.expression == "=Globals!TotalPages"

    @pytest.mark.anyio
    async def test_date_field(self):
        compiled = compile_field_code(make_field_code(r'DATE \@ "d"', FieldCodeCategory.DATE))
        assert compiled.expression == '=Format(Globals!ExecutionTime, "d")'

    @pytest.mark.anyio
    async def test_formula_constant_conditional_folded(self):
        fc = make_field_code("=IIf(True, Fields!A.Value, 0)")
        compiled = compile_field_code(fc)
        assert compiled.tree == field_ref("A")
        assert compiled.expression == "=Fields!A.Value"

    @pytest.mark.anyio
    async def test_optimization_can_be_disabled(self):
        fc = make_field_code("=IIf(True, Fields!A.Value, 0)")
        compiled = compile_field_code(fc, optimize=False)
        assert compiled.raw_expression == "=IIf(True, Fields!A.Value, 0)"
        assert compiled.expression == compiled.raw_expression

    @pytest.mark.anyio
    async def test_optimizer_setting_respected(self, override_settings):
        override_settings(optimizer_enabled=False)
        compiled = compile_field_code(make_field_code("=Not Not Fields!A.Value"))
        assert compiled.expression == "=Not Not Fields!A.Value"

    @pytest.mark.anyio
    async def test_syntax_error_propagates(self):
        with pytest.raises(ExpressionSyntaxError):
            compile_field_code(make_field_code("=(1 + "))

    @pytest.mark.anyio
    async def test_unsupported_propagates(self):
        with pytest.raises(UnsupportedConstructError):
            compile_field_code(make_field_code("TOC \\o", FieldCodeCategory.TABLE_OF_CONTENTS))


class TestSandboxEscalation:
    """Sandbox findings are informational unless strict."""

    @pytest.mark.anyio
    async def test_violation_recorded_when_lenient(self):
        compiled = compile_field_code(make_field_code('=Shell("calc")'), strict=False)
        assert not compiled.sandbox.ok
        assert compiled.sandbox.violations

    @pytest.mark.anyio
    async def test_violation_raises_when_strict(self):
        with pytest.raises(SandboxViolationError) as exc_info:
            compile_field_code(make_field_code('=Shell("calc")'), strict=True)
        assert exc_info.value.expression == '=Shell("calc")'

    @pytest.mark.anyio
    async def test_strict_setting_respected(self, override_settings):
        override_settings(sandbox_strict=True)
        with pytest.raises(SandboxViolationError):
            compile_field_code(make_field_code('=CreateObject("x")'))


# =============================================================================
# Batch translation
# =============================================================================


class TestCompileFieldCodes:
    """Per-item isolation in batches."""

    @pytest.mark.anyio
    async def test_failures_isolated_and_ordered(self):
        codes = [
            make_field_code("MERGEFIELD Name", FieldCodeCategory.MERGE_FIELD, code_id="a"),
            make_field_code("=(1 +", code_id="b"),
            make_field_code("SEQ Figure", FieldCodeCategory.SEQUENCE, code_id="c"),
            make_field_code("PAGE", FieldCodeCategory.PAGE, code_id="d"),
        ]
        batch = compile_field_codes(codes)

        assert [r.field_code.id for r in batch.results] == ["a", "b", "c", "d"]
        assert [r.ok for r in batch.results] == [True, False, False, True]
        assert [c.expression for c in batch.succeeded] == [
            "=Fields!Name.Value",
            "=Globals!PageNumber",
        ]

    @pytest.mark.anyio
    async def test_error_wraps_cause(self):
        batch = compile_field_codes([make_field_code("=(1 +", code_id="bad")])
        error = batch.failed[0].error

        assert isinstance(error, TranslationError)
        assert isinstance(error.__cause__, ExpressionSyntaxError)
        assert error.details["field_code_id"] == "bad"
        assert error.details["cause"] == "ExpressionSyntaxError"
        assert "Field code bad failed" in error.message

    @pytest.mark.anyio
    async def test_strict_batch_isolates_sandbox_failure(self):
        codes = [
            make_field_code('=Shell("x")', code_id="bad"),
            make_field_code("=Fields!A.Value", code_id="good"),
        ]
        batch = compile_field_codes(codes, strict=True)
        by_id = batch.by_id()

        assert isinstance(by_id["bad"].error.__cause__, SandboxViolationError)
        assert by_id["good"].ok

    @pytest.mark.anyio
    async def test_empty_batch(self):
        batch = compile_field_codes([])
        assert batch.results == []
        assert batch.succeeded == []


# =============================================================================
# Logic extraction
# =============================================================================


class TestExtractLogic:
    """Conditions, formulas and warnings for synthesis."""

    @pytest.mark.anyio
    async def test_conditions_and_formulas(self):
        codes = [
            make_field_code('IF {MERGEFIELD A} = 1 "x" "y"', FieldCodeCategory.IF, code_id="i1"),
            make_field_code("=Fields!Qty.Value * 2", code_id="f1"),
            make_field_code("=Sum(Fields!Amount.Value)", code_id="f2"),
            make_field_code("MERGEFIELD Name", FieldCodeCategory.MERGE_FIELD, code_id="m1"),
        ]
        logic = extract_logic(codes)

        assert logic.field_codes == codes
        assert [c.id for c in logic.conditions] == ["cond_1"]
        assert [(f.id, f.source_id) for f in logic.formulas] == [
            ("formula_1", "f1"),
            ("formula_2", "f2"),
        ]
        assert logic.warnings == []

    @pytest.mark.anyio
    async def test_warnings(self):
        codes = [
            make_field_code("=1 +", code_id="f1"),
            make_field_code('HYPERLINK "http://x"', FieldCodeCategory.HYPERLINK, code_id="h1"),
        ]
        logic = extract_logic(codes)

        assert logic.formulas == []
        assert len(logic.warnings) == 2
        assert logic.warnings[0].startswith("Formula f1 could not be parsed")
        assert logic.warnings[1] == "Field code h1 of type HYPERLINK is not supported"


# =============================================================================
# Metrics
# =============================================================================


class TestTranslationMetrics:
    """Translations are counted by status and category."""

    @pytest.mark.anyio
    async def test_success_and_error_counted(self):
        labels_ok = {"status": "success", "category": "PAGE"}
        labels_err = {"status": "error", "category": "FORMULA"}
        before_ok = _sample("rdlgen_translations_total", labels_ok)
        before_err = _sample("rdlgen_translations_total", labels_err)

        compile_field_codes(
            [
                make_field_code("PAGE", FieldCodeCategory.PAGE, code_id="p"),
                make_field_code("=(", code_id="f"),
            ]
        )

        assert _sample("rdlgen_translations_total", labels_ok) == before_ok + 1
        assert _sample("rdlgen_translations_total", labels_err) == before_err + 1

    @pytest.mark.anyio
    async def test_sandbox_findings_counted(self):
        labels = {"code": "SANDBOX002"}
        before = _sample("rdlgen_sandbox_violations_total", labels)

        compile_field_code(make_field_code("=MyFunc(1)"))

        assert _sample("rdlgen_sandbox_violations_total", labels) == before + 1

    @pytest.mark.anyio
    async def test_metrics_disabled(self, override_settings):
        override_settings(metrics_enabled=False)
        labels = {"status": "success", "category": "NUM_PAGES"}
        before = _sample("rdlgen_translations_total", labels)

        compile_field_code(make_field_code("NUMPAGES", FieldCodeCategory.NUM_PAGES))

        assert _sample("rdlgen_translations_total", labels) == before
