"""Tests for recipes, steps, templates and the recipe engine."""

import dataclasses
import time

import pytest

from llm_json_cleaner.core.types import CleaningOperation, Impact, OperationResult, Risk
from llm_json_cleaner.services import conditions as c
from llm_json_cleaner.services.detectors import ControlCharacterDetector
from llm_json_cleaner.services.engine import CleaningEngine, CleaningOptions
from llm_json_cleaner.services.fixers import (
    AggressiveFixer,
    ControlCharacterFixer,
    MissingCommaFixer,
    ReasoningBlockFixer,
    StructuralRepairFixer,
)
from llm_json_cleaner.services.recipe import (
    RECIPE_INCOMPLETE,
    TIMEOUT_EXCEEDED,
    RecipeBuilder,
)
from llm_json_cleaner.services.steps import ParallelStep
from llm_json_cleaner.services.templates import (
    ADAPTIVE,
    AGGRESSIVE,
    CONSERVATIVE,
    get_template,
)
from llm_json_cleaner.utils.exceptions import InvalidRecipeError


class BrokenOperation(CleaningOperation):
    id = "broken"
    name = "Broken"

    def should_apply(self, context):
        raise RuntimeError("boom")

    def apply(self, text, context):
        return OperationResult(success=True, operation_id=self.id)

    def estimate_impact(self, text, context):
        return Impact(Risk.LOW, 0, 0.0, 1.0, False)


def test_builder_requires_steps_or_fallback():
    """Test that an empty recipe cannot be built."""
    with pytest.raises(InvalidRecipeError):
        RecipeBuilder("empty").build()


def test_recipe_is_immutable():
    """Test that configuration changes produce a new recipe."""
    recipe = get_template(ADAPTIVE)
    faster = recipe.with_config(max_execution_time_ms=5)
    assert faster.config.max_execution_time_ms == 5
    assert recipe.config.max_execution_time_ms == 10000
    with pytest.raises(dataclasses.FrozenInstanceError):
        recipe.id = "other"


def test_templates():
    """Test template lookup and the unknown-name default."""
    assert get_template(CONSERVATIVE).id == CONSERVATIVE
    assert get_template(AGGRESSIVE).id == AGGRESSIVE
    assert get_template("unknown").id == ADAPTIVE


@pytest.mark.parametrize("name", [CONSERVATIVE, ADAPTIVE, AGGRESSIVE])
def test_templates_leave_valid_json_alone(context, name):
    """Test that no template changes valid input."""
    text = '{"a": [1, 2], "b": "```"}'
    ctx = context(text)
    result = get_template(name).execute(text, ctx)
    assert result.success
    assert result.cleaned_text == text
    assert result.total_changes == 0


def test_adaptive_escapes_control_characters(context):
    """Test the adaptive template on a raw newline."""
    ctx = context('{"a": "x\ny"}')
    result = get_template(ADAPTIVE).execute(ctx.original_text, ctx)
    assert result.success
    assert result.cleaned_text == '{"a": "x\\ny"}'
    assert "control_char_fixer" in result.summary.successful_operations
    assert result.error is None


def test_aggressive_extracts_from_markdown(context):
    """Test the aggressive template on fenced, broken JSON."""
    text = '```json\n{"a": "x\ny"}\n```'
    result = get_template(AGGRESSIVE).execute(text, context(text))
    assert result.success
    assert result.cleaned_text == '{"a": "x\\ny"}'


def test_fallback_runs_when_steps_leave_invalid_text(context):
    """Test the fallback operation."""
    recipe = RecipeBuilder("fallback").or_fallback(StructuralRepairFixer()).build()
    result = recipe.execute('{"a": 1', context('{"a": 1'))
    assert result.success
    assert result.cleaned_text == '{"a": 1}'
    assert "fallback" in result.metrics.step_metrics


def test_incomplete_recipe_reports_error(context):
    """Test the error of a recipe that cannot fix its input."""
    recipe = RecipeBuilder("noop").use(ControlCharacterDetector()).build()
    result = recipe.execute("hello", context("hello"))
    assert not result.success
    assert result.cleaned_text is None
    assert result.error.code == RECIPE_INCOMPLETE
    assert result.summary.recommendations


def test_timeout_skips_remaining_steps(context):
    """Test that a passed deadline ends the recipe with a timeout error."""
    recipe = (
        RecipeBuilder("slow")
        .use(StructuralRepairFixer())
        .or_fallback(StructuralRepairFixer())
        .configure(max_execution_time_ms=0)
        .build()
    )
    ctx = context('{"a": 1')
    time.sleep(0.01)
    result = recipe.execute('{"a": 1', ctx)
    assert not result.success
    assert result.error.code == TIMEOUT_EXCEEDED
    assert ctx.current_text == '{"a": 1'


def test_step_error_stops_recipe(context):
    """Test that a failing step ends the run unless continue_on_error is set."""
    builder = RecipeBuilder("broken").use(BrokenOperation()).use(StructuralRepairFixer())

    result = builder.build().execute('{"a": 1', context('{"a": 1'))
    assert not result.success
    assert result.metrics.steps_executed == 1

    result = builder.configure(continue_on_error=True).build().execute('{"a": 1', context('{"a": 1'))
    assert result.success
    assert result.metrics.steps_executed == 2


def test_parallel_step_rejects_unknown_selection():
    """Test selection strategy validation."""
    with pytest.raises(ValueError):
        ParallelStep([ControlCharacterFixer()], select="random")


def test_try_best_keeps_most_confident_proposal(context):
    """Test that the best of several proposals is committed."""
    recipe = RecipeBuilder("best").try_best(AggressiveFixer(), ControlCharacterFixer()).build()
    ctx = context('{"a": "x\ny"}')
    result = recipe.execute(ctx.original_text, ctx)
    assert result.success
    assert len(result.operation_results) == 2
    assert ctx.change_log[0].note.startswith("Escaped 1 raw newline")


def test_loop_until_valid(context):
    """Test repeating operations until the condition holds."""
    recipe = (
        RecipeBuilder("loop")
        .loop_until(c.is_valid())
        .max_iterations(3)
        .perform(MissingCommaFixer(), StructuralRepairFixer())
        .build()
    )
    result = recipe.execute("[1 2", context("[1 2"))
    assert result.success
    assert result.cleaned_text == "[1, 2]"


def test_conditional_otherwise(context):
    """Test that the negated branch runs when the condition fails."""
    builder = RecipeBuilder("branch")
    branch = builder.when(c.has_think_tags())
    branch.use(ReasoningBlockFixer())
    branch.otherwise().use(StructuralRepairFixer())
    result = builder.build().execute('{"a": 1', context('{"a": 1'))
    assert result.success
    assert result.summary.successful_operations == ["structural_repair"]


def test_rollback_restores_checkpoint(context):
    """Test rolling back a change."""
    recipe = (
        RecipeBuilder("rollback")
        .checkpoint("original")
        .use(AggressiveFixer())
        .rollback_to("original")
        .build()
    )
    text = '{"a": "x\ny'
    ctx = context(text)
    result = recipe.execute(text, ctx)
    assert ctx.current_text == text
    assert result.metrics.rollbacks == 1


def test_conditions_compose(context):
    """Test condition combinators."""
    ctx = context('{"a": 1')
    assert c.and_(c.is_invalid(), c.has_structural_issues())(ctx)
    assert c.or_(c.is_valid(), c.is_small_json())(ctx)
    assert not c.not_(c.is_invalid())(ctx)
    assert c.changes_below(0)(ctx)
    assert not c.is_large_json()(ctx)


def test_engine_empty_input():
    """Test the empty input error."""
    result = CleaningEngine().clean("")
    assert not result.success
    assert result.error.code == "EMPTY_INPUT"


def test_engine_clean_with_named_template():
    """Test a successful clean and its quality metrics."""
    result = CleaningEngine().clean('{"a": "x\ny"}', options=CleaningOptions(mode=ADAPTIVE))
    assert result.success
    assert result.parsed == {"a": "x\ny"}
    assert result.context.metadata["mode"] == ADAPTIVE
    assert result.quality.is_valid_json
    assert result.quality.structural_integrity == 1.0


def test_engine_failure_carries_suggestions():
    """Test the error of an unfixable input."""
    result = CleaningEngine().clean("hello world", options=CleaningOptions(mode=CONSERVATIVE))
    assert not result.success
    assert result.error.code == RECIPE_INCOMPLETE
    assert result.error.suggestions


def test_engine_validate_json():
    """Test validation with suggestions."""
    engine = CleaningEngine()
    assert engine.validate_json("[]").is_valid
    validation = engine.validate_json('{"a": 1 "b": 2}')
    assert not validation.is_valid
    assert validation.suggestions


def test_suggest_recipe():
    """Test template recommendation by issue count and size."""
    engine = CleaningEngine()
    padding = "z" * 200

    assert engine.suggest_recipe('{"a": 1').recommended == CONSERVATIVE

    clean = engine.suggest_recipe('{"a": "' + padding + '"}')
    assert clean.recommended == CONSERVATIVE
    assert clean.difficulty == "easy"

    few = engine.suggest_recipe('{"a": "' + padding + '" "b": 1}')
    assert few.recommended == ADAPTIVE
    assert few.detected_issues == ["missing_commas"]

    many = engine.suggest_recipe('```json\n{"pad": "' + padding + '", "a": "x\ny" "b": [1, 2')
    assert many.recommended == AGGRESSIVE
    assert many.difficulty == "hard"
