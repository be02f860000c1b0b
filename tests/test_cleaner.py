"""Tests for the public repair API."""

import asyncio
import json

import pytest

import llm_json_cleaner
from llm_json_cleaner.core.types import ChangeType
from llm_json_cleaner.services.cleaner import (
    MODE_EXTRACT,
    MODE_PASSTHROUGH,
    MODE_PIPELINE,
    RepairOptions,
)
from llm_json_cleaner.services.orchestrator import RepairOrchestrator
from llm_json_cleaner.services.strategies import CleaningStrategy, CommaFixerStrategy
from llm_json_cleaner.services.validation import validation_stats
from llm_json_cleaner.utils.exceptions import EmptyInputError, StillInvalidAfterRepairError

SAMPLES = [
    '{"a": [1,2] "b": "x"}',
    '{"a":1',
    '{"text": "line1\nline2"}',
    '<think>T</think>{"a":1}',
    '```json\n[1, 2]\n```',
    'Sure, here it is: {"a": [1, 2,],} Enjoy!',
    "hello world",
]


def test_valid_input_is_returned_unchanged(cleaner):
    """Test that valid input is not even trimmed."""
    raw = ' {"a": 1} '
    result = cleaner.repair(raw)
    assert result.cleaned_json == raw
    assert result.success
    assert result.confidence == 1.0
    assert result.mode == MODE_PASSTHROUGH
    assert result.changes == []


@pytest.mark.parametrize("raw", ["", "   \n"])
def test_empty_input_raises(cleaner, raw):
    """Test that empty input is the only error a repair raises."""
    with pytest.raises(EmptyInputError):
        cleaner.repair(raw)
    with pytest.raises(EmptyInputError):
        asyncio.run(cleaner.repair_async(raw))


def test_missing_comma(cleaner):
    """Test comma insertion through the pipeline."""
    result = cleaner.repair('{"a": [1,2] "b": "x"}')
    assert result.cleaned_json == '{"a": [1,2], "b": "x"}'
    assert result.mode == MODE_PIPELINE
    assert [change.change_type for change in result.changes] == [ChangeType.ADD_COMMA]


def test_truncated_object(cleaner):
    """Test closing a truncated object."""
    assert cleaner.repair('{"a":1').cleaned_json == '{"a":1}'


def test_raw_newline_is_escaped(cleaner):
    """Test string safety of control characters."""
    result = cleaner.repair('{"text": "line1\nline2"}')
    assert result.cleaned_json == '{"text": "line1\\nline2"}'
    assert json.loads(result.cleaned_json) == {"text": "line1\nline2"}


def test_markdown_array_stays_an_array(cleaner):
    """Test that a fenced array comes back as an array."""
    result = cleaner.repair("```json\n[1, 2]\n```")
    assert json.loads(result.cleaned_json) == [1, 2]


def test_reasoning_is_separated(cleaner):
    """Test think block extraction."""
    result = cleaner.repair('<think>T</think>{"a":1}')
    assert result.cleaned_json == '{"a":1}'
    assert result.reasoning == "T"
    assert result.success


def test_garbage_does_not_raise(cleaner):
    """Test that unrecoverable input reports failure instead of raising."""
    result = cleaner.repair("hello world")
    assert not result.success
    assert result.confidence == 0.0
    with pytest.raises(StillInvalidAfterRepairError) as excinfo:
        result.raise_for_status()
    assert excinfo.value.best_effort == "hello world"


@pytest.mark.parametrize("raw", SAMPLES)
def test_repair_is_idempotent(cleaner, raw):
    """Test that repairing a repaired result changes nothing."""
    first = cleaner.repair(raw)
    if first.success:
        second = cleaner.repair(first.cleaned_json)
        assert second.cleaned_json == first.cleaned_json
        assert second.mode == MODE_PASSTHROUGH


def test_orchestrator_survives_failing_strategy():
    """Test that a strategy raising is skipped."""

    class ExplodingStrategy(CleaningStrategy):
        name = "exploding"

        def clean(self, text):
            raise ValueError("boom")

    orchestrator = RepairOrchestrator(strategies=[ExplodingStrategy(), CommaFixerStrategy()])
    result = orchestrator.process("[1 2]")
    assert result.success
    assert result.applied_strategies == ["comma-fixer"]
    assert result.confidence == 0.85


def test_repair_async_extracts_wrappers(cleaner):
    """Test reasoning and markdown extraction ahead of the recipe."""
    result = asyncio.run(cleaner.repair_async('<think>T</think>\n```json\n{"a": 1}\n```'))
    assert result.cleaned_json == '{"a": 1}'
    assert result.reasoning == "T"
    assert result.mode == MODE_EXTRACT


def test_repair_async_runs_recipe(cleaner):
    """Test that the recipe fixes what it can."""
    result = asyncio.run(cleaner.repair_async('{"a": "x\ny"}'))
    assert result.success
    assert result.cleaned_json == '{"a": "x\\ny"}'
    assert result.mode == "recipe:conservative"
    assert result.changes


def test_repair_async_falls_back_to_pipeline(cleaner):
    """Test the pipeline fallback when the recipe fails."""
    result = asyncio.run(cleaner.repair_async('{"a":1'))
    assert result.success
    assert result.cleaned_json == '{"a":1}'
    assert result.mode == MODE_PIPELINE


def test_repair_async_named_mode(cleaner):
    """Test choosing a template explicitly."""
    result = asyncio.run(cleaner.repair_async('{"a": "x\ny"', RepairOptions(mode="aggressive")))
    assert result.success
    assert result.mode == "recipe:aggressive"
    assert json.loads(result.cleaned_json) == {"a": "x\ny"}


def test_repair_async_without_cleaning(cleaner):
    """Test extract-only mode."""
    raw = '```json\n{"a": 1,}\n```'
    result = asyncio.run(cleaner.repair_async(raw, RepairOptions(clean=False)))
    assert result.cleaned_json == '{"a": 1,}'
    assert not result.success
    assert result.mode == MODE_EXTRACT

    result = asyncio.run(cleaner.repair_async(raw, RepairOptions(clean=False, validate=False)))
    assert result.success


def test_fix_specific_problem(cleaner):
    """Test single-problem fixes."""
    result = cleaner.fix_specific_problem("[1 2,]", "comma")
    assert result.cleaned_json == "[1, 2]"
    assert result.success
    assert result.mode == "fix:comma"

    assert cleaner.fix_specific_problem('{"a": [1', "brackets").cleaned_json == '{"a": [1]}'

    with pytest.raises(ValueError):
        cleaner.fix_specific_problem("[1 2]", "spelling")


def test_diagnose(cleaner):
    """Test diagnosis through the cleaner."""
    assert cleaner.diagnose("[1 2]").specific_issues.comma


def test_service_stats(cleaner, reset_stats):
    """Test the service description."""
    stats = cleaner.get_service_stats()
    assert stats["parsers"] == 3
    assert stats["parser_names"] == ["think-tag-parser", "markdown-parser", "json-extractor"]
    assert stats["strategies"] == 5
    assert stats["fallbacks"] == 1
    assert stats["validation"]["total"] == 0


def test_module_level_helpers():
    """Test the package-level shortcuts."""
    assert llm_json_cleaner.repair('{"a":1').cleaned_json == '{"a":1}'
    assert asyncio.run(llm_json_cleaner.repair_async('{"a":1')).success
    assert not llm_json_cleaner.diagnose('{"a":1').is_valid


def test_fence_inside_string_value_survives(cleaner):
    """Test that a fenced document quoting a fence is returned whole."""
    document = '{"code": "use ``` to fence", "n": 1}'
    raw = "```json\n" + document + "\n```"

    result = cleaner.repair(raw)
    assert result.success
    assert result.cleaned_json == document

    result = asyncio.run(cleaner.repair_async(raw))
    assert result.success
    assert result.cleaned_json == document
    assert result.mode == MODE_EXTRACT


def test_bracketed_prose_before_broken_document(cleaner):
    """Test that prose in brackets does not replace the document being repaired."""
    raw = 'Note [see below]: {"a": 1 "b": 2}'

    result = cleaner.repair(raw)
    assert result.success
    assert json.loads(result.cleaned_json) == {"a": 1, "b": 2}

    result = asyncio.run(cleaner.repair_async(raw))
    assert result.success
    assert json.loads(result.cleaned_json) == {"a": 1, "b": 2}


def test_repairs_are_counted_in_validation_stats(cleaner, reset_stats):
    """Test that every repair call records its final output once."""
    cleaner.repair('{"a": 1}')
    cleaner.repair('{"a":1')
    cleaner.repair("hello world")
    asyncio.run(cleaner.repair_async('{"a": 1 "b": 2}'))
    asyncio.run(cleaner.repair_async('x {"a": 1', RepairOptions(clean=False, validate=False)))

    stats = validation_stats.get_stats()
    assert stats["total"] == 4
    assert stats["successful"] == 3
    assert stats["failed"] == 1
