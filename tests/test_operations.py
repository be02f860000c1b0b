"""Tests for detectors, fixers and the cleaning context."""

import pytest

from llm_json_cleaner.core.types import ChangeType, Detection, IssueType, Risk
from llm_json_cleaner.services.detectors import (
    ControlCharacterDetector,
    MarkdownBlockDetector,
    MissingCommaDetector,
    ReasoningBlockDetector,
    StructuralImbalanceDetector,
)
from llm_json_cleaner.services.fixers import (
    AggressiveFixer,
    ControlCharacterFixer,
    MarkdownBlockFixer,
    MissingCommaFixer,
    ObjectToStringFixer,
    ReasoningBlockFixer,
    StructuralRepairFixer,
    json_likelihood,
)
from llm_json_cleaner.utils.exceptions import TimeoutExceededError

ALL_FIXERS = [
    ControlCharacterFixer,
    MissingCommaFixer,
    StructuralRepairFixer,
    MarkdownBlockFixer,
    ReasoningBlockFixer,
    ObjectToStringFixer,
    AggressiveFixer,
]


def _run(operation, ctx):
    return operation.apply(ctx.current_text, ctx)


def test_control_character_detector(context):
    """Test control character detection and de-duplication."""
    ctx = context('{"a": "x\ny"}')
    detector = ControlCharacterDetector()
    assert detector.should_apply(ctx)

    result = _run(detector, ctx)
    _run(detector, ctx)
    assert result.success
    assert result.confidence == 0.9
    assert result.candidate_text is None
    detections = ctx.get_detections(IssueType.CONTROL_CHARACTER)
    assert [d.location for d in detections] == [8]


def test_detectors_skip_clean_text(context):
    """Test that detectors have nothing to do on valid JSON."""
    ctx = context('{"a": [1, 2]}')
    for detector in (
        ControlCharacterDetector(),
        MissingCommaDetector(),
        StructuralImbalanceDetector(),
        MarkdownBlockDetector(),
        ReasoningBlockDetector(),
    ):
        assert not detector.should_apply(ctx)


def test_missing_comma_detector(context):
    """Test that the detection sits where the comma belongs."""
    ctx = context('{"a": 1 "b": 2}')
    _run(MissingCommaDetector(), ctx)
    assert ctx.get_detections(IssueType.MISSING_COMMA)[0].location == 7


def test_structural_detector(context):
    """Test brace, bracket and string reports."""
    ctx = context('{"a": [1, 2')
    _run(StructuralImbalanceDetector(), ctx)
    assert ctx.get_detections(IssueType.UNBALANCED_BRACES)[0].location == 0
    assert ctx.get_detections(IssueType.UNBALANCED_BRACKETS)[0].location == 6

    ctx = context('{"a": "x')
    _run(StructuralImbalanceDetector(), ctx)
    assert ctx.get_detections(IssueType.UNTERMINATED_STRING)[0].location == len('{"a": "x')


def test_markdown_and_reasoning_detectors(context):
    """Test wrapper detection, including a fence that never closes."""
    ctx = context('```json\n{"a":1}\n```')
    _run(MarkdownBlockDetector(), ctx)
    assert ctx.get_detections(IssueType.MARKDOWN_CODE_BLOCK)[0].confidence == 0.95

    ctx = context('```json\n{"a":1}')
    _run(MarkdownBlockDetector(), ctx)
    assert ctx.get_detections(IssueType.MARKDOWN_CODE_BLOCK)[0].confidence == 0.7

    ctx = context("<think>x</think>{}")
    _run(ReasoningBlockDetector(), ctx)
    assert ctx.has_detection(IssueType.THINK_TAG)


def test_detector_failure_is_reported(context):
    """Test that an exception inside detect becomes a failed result."""

    class BrokenDetector(ControlCharacterDetector):
        def detect(self, text, ctx):
            raise RuntimeError("boom")

    result = _run(BrokenDetector(), context('{"a": "\n"}'))
    assert not result.success
    assert result.error.code == "DETECTION_ERROR"


@pytest.mark.parametrize("fixer_class", ALL_FIXERS)
def test_fixers_never_touch_valid_json(context, fixer_class):
    """Test that no fixer applies to text that already parses."""
    ctx = context('{"a": "```<think>"}')
    fixer = fixer_class()
    assert not fixer.should_apply(ctx)
    result = _run(fixer, ctx)
    assert result.success
    assert result.candidate_text is None
    assert fixer.estimate_impact(ctx.current_text, ctx).risk == Risk.LOW


def test_control_character_fixer(context):
    """Test escaping raw newlines."""
    result = _run(ControlCharacterFixer(), context('{"a": "x\ny"}'))
    assert result.candidate_text == '{"a": "x\\ny"}'
    assert result.confidence == 0.9


def test_missing_comma_fixer(context):
    """Test comma insertion."""
    result = _run(MissingCommaFixer(), context('{"a": 1 "b": 2}'))
    assert result.candidate_text == '{"a": 1, "b": 2}'


def test_structural_repair_fixer(context):
    """Test closing a truncated document."""
    result = _run(StructuralRepairFixer(), context('{"a": [1, 2'))
    assert result.candidate_text == '{"a": [1, 2]}'
    assert all(change.change_type == ChangeType.ADD_BRACKET for change in result.changes)


def test_markdown_block_fixer(context):
    """Test extraction from a fenced block inside prose."""
    result = _run(MarkdownBlockFixer(), context('Here you go:\n```json\n{"a": 1}\n```\nThanks'))
    assert result.candidate_text == '{"a": 1}'
    assert result.confidence == pytest.approx(0.7)


def test_markdown_block_fixer_rejects_prose(context):
    """Test that a fence holding plain text is not extracted."""
    result = _run(MarkdownBlockFixer(), context("x ```\nhello world\n``` y"))
    assert not result.success
    assert result.candidate_text is None


def test_reasoning_block_fixer(context):
    """Test extraction from after and inside think blocks."""
    result = _run(ReasoningBlockFixer(), context('<think>I will answer</think>{"a": 1}'))
    assert result.candidate_text == '{"a": 1}'
    assert result.confidence == 1.0

    result = _run(ReasoningBlockFixer(), context('<think>draft {"a": 1}</think> done'))
    assert result.candidate_text == '{"a": 1}'


def test_object_to_string_fixer(context):
    """Test prose objects become strings."""
    result = _run(ObjectToStringFixer(), context('{"summary": {The story of the day}}'))
    assert result.candidate_text == '{"summary": "The story of the day"}'


def test_aggressive_fixer_returns_best_effort(context):
    """Test that the aggressive rewrite is proposed even if still invalid."""
    result = _run(AggressiveFixer(), context('{"a": "x\ny'))
    assert result.success
    assert result.candidate_text == '{"a": "x\\ny"'


def test_fixer_exception_becomes_failed_result(context):
    """Test that an unexpected error inside a fixer is contained."""

    class BrokenFixer(ControlCharacterFixer):
        def perform_fix(self, text, ctx):
            raise RuntimeError("boom")

    result = _run(BrokenFixer(), context('{"a": "\n"}'))
    assert not result.success
    assert result.confidence == 0.0
    assert result.error.code == "FIXER_ERROR"


def test_json_likelihood():
    """Test the extraction score."""
    assert json_likelihood('{"a": true}') == pytest.approx(0.9)
    assert json_likelihood("hello world") == 0.0


def test_context_checkpoint_and_rollback(context):
    """Test restoring a checkpoint."""
    ctx = context('{"a": 1')
    ctx.create_checkpoint("start")
    ctx.update_text("changed")
    assert ctx.rollback_to("start")
    assert ctx.current_text == '{"a": 1'
    assert ctx.rollback_count == 1
    assert len(ctx.get_changes_by_type(ChangeType.ROLLBACK)) == 1
    assert not ctx.rollback_to("missing")


def test_context_deadline(context):
    """Test that a passed deadline raises."""
    ctx = context("{}")
    ctx.set_deadline(-1)
    with pytest.raises(TimeoutExceededError):
        ctx.check_deadline()


def test_context_detections_by_confidence(context):
    """Test confidence filtering and ordering."""
    ctx = context("x")
    ctx.add_detection(Detection(IssueType.MISSING_COMMA, 1, 0.6))
    ctx.add_detection(Detection(IssueType.THINK_TAG, 0, 0.95))
    ctx.add_detection(Detection(IssueType.CONTROL_CHARACTER, 2, 0.3))
    assert [d.confidence for d in ctx.get_detections_by_confidence()] == [0.95, 0.6]


def test_context_analyze_patterns(context):
    """Test the quick problem scan."""
    patterns = context('{"a": "x\ny" "b": 1').analyze_patterns()
    assert patterns.has_control_chars
    assert patterns.has_missing_commas
    assert patterns.has_structural_issues
    assert not patterns.has_markdown_blocks
    assert patterns.estimated_error_count == 3
