"""Preset recipes."""

from __future__ import annotations

from typing import Callable, Dict

from llm_json_cleaner.core.types import IssueType
from llm_json_cleaner.services import conditions as c
from llm_json_cleaner.services.detectors import (
    ControlCharacterDetector,
    MarkdownBlockDetector,
    MissingCommaDetector,
    ReasoningBlockDetector,
    StructuralImbalanceDetector,
)
from llm_json_cleaner.services.fixers import (
    ControlCharacterFixer,
    MarkdownBlockFixer,
    MissingCommaFixer,
    ReasoningBlockFixer,
    StructuralRepairFixer,
)
from llm_json_cleaner.services.recipe import Recipe, RecipeBuilder

CONSERVATIVE = "conservative"
AGGRESSIVE = "aggressive"
ADAPTIVE = "adaptive"


def conservative() -> Recipe:
    """Low-risk fixes only; stops at the first failing step."""
    return (
        RecipeBuilder(CONSERVATIVE, "Conservative Cleaning", "Minimal changes, only fixes obvious problems")
        .checkpoint("start")
        .use(ControlCharacterDetector())
        .use(MissingCommaDetector())
        .use(StructuralImbalanceDetector())
        .when(c.has_detection(IssueType.CONTROL_CHARACTER)).use(ControlCharacterFixer())
        .validate()
        .when(c.and_(c.is_invalid(), c.has_detection(IssueType.MISSING_COMMA))).use(MissingCommaFixer())
        .validate()
        .or_fallback(ControlCharacterFixer())
        .configure(max_execution_time_ms=5000, target_confidence=0.8, continue_on_error=False)
        .build()
    )


def aggressive() -> Recipe:
    """Extract from wrappers, try every fixer, and start over from the original if that fails."""
    return (
        RecipeBuilder(AGGRESSIVE, "Aggressive Cleaning", "Tries every fix to recover valid JSON")
        .checkpoint("original")
        .when(c.has_markdown_code()).use(MarkdownBlockFixer())
        .when(c.has_think_tags()).use(ReasoningBlockFixer())
        .validate()
        .when(c.is_valid()).checkpoint("extracted_success")
        .when(c.is_invalid()).sequence(ControlCharacterDetector(), MissingCommaDetector(), StructuralImbalanceDetector())
        .when(c.is_invalid()).try_best(ControlCharacterFixer(), MissingCommaFixer(), StructuralRepairFixer())
        .validate()
        .when(c.is_invalid()).rollback_to("original")
        .when(c.is_invalid()).sequence(ControlCharacterFixer(), MissingCommaFixer(), StructuralRepairFixer())
        .validate()
        .or_fallback(StructuralRepairFixer())
        .configure(max_execution_time_ms=15000, target_confidence=0.6, continue_on_error=True)
        .build()
    )


def adaptive() -> Recipe:
    """Detect first, then apply only the fixers the detections call for."""
    has_wrapper = c.or_(
        c.has_detection(IssueType.MARKDOWN_CODE_BLOCK),
        c.has_detection(IssueType.THINK_TAG),
    )
    return (
        RecipeBuilder(ADAPTIVE, "Adaptive Cleaning", "Chooses fixes based on what the detectors find")
        .checkpoint("start")
        .validate()
        .when(c.is_valid()).checkpoint("already_valid")
        .when(c.is_invalid()).sequence(
            ControlCharacterDetector(),
            MissingCommaDetector(),
            StructuralImbalanceDetector(),
            MarkdownBlockDetector(),
            ReasoningBlockDetector(),
        )
        .when(has_wrapper).try_best(MarkdownBlockFixer(), ReasoningBlockFixer())
        .validate()
        .when(c.is_invalid()).checkpoint("before_fixes")
        .when(c.is_invalid()).sequence(ControlCharacterFixer(), MissingCommaFixer())
        .validate()
        .when(c.and_(c.is_invalid(), c.has_detection(IssueType.UNBALANCED_BRACES))).use(StructuralRepairFixer())
        .validate()
        .or_fallback(ControlCharacterFixer())
        .configure(max_execution_time_ms=10000, target_confidence=0.75, continue_on_error=True)
        .build()
    )


TEMPLATES: Dict[str, Callable[[], Recipe]] = {
    CONSERVATIVE: conservative,
    AGGRESSIVE: aggressive,
    ADAPTIVE: adaptive,
}


def get_template(name: str) -> Recipe:
    """Build the named template. Unknown names fall back to adaptive."""
    return TEMPLATES.get(name, adaptive)()
