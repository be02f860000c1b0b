"""Recipe engine: runs a recipe on a fresh context and scores the outcome."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

from llm_json_cleaner.config import settings
from llm_json_cleaner.core.scanner import bracket_counts, ends_inside_string, missing_comma_positions, scan
from llm_json_cleaner.core.transforms import is_control_char
from llm_json_cleaner.services.analyzer import diagnose
from llm_json_cleaner.services.context import CleaningContext
from llm_json_cleaner.services.recipe import Recipe, RecipeResult
from llm_json_cleaner.services.templates import ADAPTIVE, AGGRESSIVE, CONSERVATIVE, get_template
from llm_json_cleaner.services.validation import validate

logger = logging.getLogger(__name__)


@dataclass
class CleaningOptions:
    source: str = "unknown"
    mode: Optional[str] = None  # template name; None picks one per input
    expected_type: Optional[str] = None
    max_execution_time_ms: Optional[float] = None


@dataclass
class QualityMetrics:
    is_valid_json: bool
    cleaning_confidence: float
    preservation_rate: float
    change_rate: float
    structural_integrity: float
    content_integrity: float


@dataclass
class CleaningError:
    code: str
    message: str
    suggestions: List[str] = field(default_factory=list)


@dataclass
class CleaningResult:
    success: bool
    cleaned_json: str
    parsed: Any
    confidence: float
    total_changes: int
    processing_time_ms: float
    original_text: str
    recipe_result: Optional[RecipeResult]
    context: CleaningContext
    quality: QualityMetrics
    error: Optional[CleaningError] = None


@dataclass
class JsonValidation:
    is_valid: bool
    error: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)


@dataclass
class RecipeSuggestion:
    recommended: str
    reasons: List[str]
    detected_issues: List[str]
    difficulty: str


def _balance_ratio(opened: int, closed: int) -> float:
    if opened == closed:
        return 1.0
    return min(opened, closed) / max(opened, closed)


class CleaningEngine:
    """
    Entry point of the declarative recipe mode.

    Instances carry no per-call state; every ``clean`` call gets its own
    context, so one engine can serve concurrent callers.
    """

    def __init__(
        self,
        small_input_threshold: Optional[int] = None,
        large_input_threshold: Optional[int] = None,
        recipe_timeout_ms: Optional[int] = None,
    ):
        self.small_input_threshold = small_input_threshold or settings.small_input_threshold
        self.large_input_threshold = large_input_threshold or settings.large_input_threshold
        self.recipe_timeout_ms = recipe_timeout_ms or settings.recipe_timeout_ms

    def clean(self, text: str, recipe: Optional[Recipe] = None, options: Optional[CleaningOptions] = None) -> CleaningResult:
        """
        Clean ``text`` with ``recipe``.

        Without a recipe the template named by ``options.mode`` is used, or the
        one :meth:`suggest_recipe` recommends.
        """
        options = options or CleaningOptions()
        start = time.perf_counter()

        if recipe is None:
            mode = options.mode or settings.default_recipe_mode or self.suggest_recipe(text).recommended
            recipe = get_template(mode)

        timeout = options.max_execution_time_ms or self.recipe_timeout_ms
        if timeout:
            recipe = recipe.with_config(max_execution_time_ms=timeout)

        context = CleaningContext(
            text,
            source=options.source,
            mode=recipe.id,
            expected_type=options.expected_type,
        )

        if not text.strip():
            return self._result(
                context,
                start,
                None,
                CleaningError(code="EMPTY_INPUT", message="Empty input provided - cannot process"),
            )

        recipe_result = recipe.execute(text, context)
        error = None
        if not recipe_result.success:
            validation = self.validate_json(context.current_text)
            error = CleaningError(
                code=recipe_result.error.code if recipe_result.error else "RECIPE_INCOMPLETE",
                message=recipe_result.error.message if recipe_result.error else "Recipe did not yield valid JSON",
                suggestions=recipe_result.summary.recommendations + validation.suggestions,
            )
            logger.warning(
                f"Recipe {recipe.id} left invalid JSON",
                extra={"recipe": recipe.id, "error_code": error.code},
            )
        return self._result(context, start, recipe_result, error)

    def _result(
        self,
        context: CleaningContext,
        start: float,
        recipe_result: Optional[RecipeResult],
        error: Optional[CleaningError],
    ) -> CleaningResult:
        cleaned = context.current_text
        parsed = None
        valid = False
        if recipe_result is not None and recipe_result.success:
            parsed = json.loads(cleaned)
            valid = True
        return CleaningResult(
            success=valid,
            cleaned_json=cleaned,
            parsed=parsed,
            confidence=recipe_result.confidence if recipe_result else 0.0,
            total_changes=len(context.change_log),
            processing_time_ms=(time.perf_counter() - start) * 1000,
            original_text=context.original_text,
            recipe_result=recipe_result,
            context=context,
            quality=self.quality_metrics(context, valid),
            error=error,
        )

    @staticmethod
    def quality_metrics(context: CleaningContext, valid: bool) -> QualityMetrics:
        original = context.original_text
        cleaned = context.current_text
        length = max(len(original), 1)

        matches = sum(1 for a, b in zip(original, cleaned) if a == b)
        preservation = matches / length
        change_rate = len(context.change_log) / length

        counts = bracket_counts(cleaned)
        structural = (
            _balance_ratio(counts.open_braces, counts.close_braces)
            + _balance_ratio(counts.open_brackets, counts.close_brackets)
        ) / 2

        return QualityMetrics(
            is_valid_json=valid,
            cleaning_confidence=min(0.9, preservation + (1 - change_rate) * 0.3) if valid else 0.2,
            preservation_rate=preservation,
            change_rate=change_rate,
            structural_integrity=structural,
            content_integrity=0.9 if valid else 0.3,
        )

    def validate_json(self, text: str) -> JsonValidation:
        """Validate ``text`` and suggest fixes when it does not parse."""
        result = validate(text)
        if result.is_valid:
            return JsonValidation(is_valid=True)
        return JsonValidation(is_valid=False, error=result.error, suggestions=diagnose(text).suggestions)

    def suggest_recipe(self, text: str) -> RecipeSuggestion:
        """Pick a template from a quick count of the issue classes present."""
        issues: List[str] = []
        if any(event.in_string and is_control_char(event.char) for event in scan(text)):
            issues.append("control_characters")
        if "```" in text:
            issues.append("markdown_blocks")
        if "<think>" in text.lower():
            issues.append("think_tags")
        if missing_comma_positions(text):
            issues.append("missing_commas")
        if not bracket_counts(text).is_balanced or ends_inside_string(text):
            issues.append("structural_imbalance")

        reasons: List[str] = []
        if not issues:
            recommended, difficulty = CONSERVATIVE, "easy"
            reasons.append("No obvious issues detected, conservative approach recommended")
        elif len(issues) <= 2:
            recommended, difficulty = ADAPTIVE, "medium"
            reasons.append("Few issues detected, adaptive approach should work well")
        else:
            recommended, difficulty = AGGRESSIVE, "hard"
            reasons.append("Multiple issues detected, aggressive cleaning may be needed")

        if len(text) > self.large_input_threshold:
            reasons.append("Large input detected, performance considerations applied")
        if len(text) < self.small_input_threshold:
            reasons.append("Small input detected, conservative approach preferred")
            recommended = CONSERVATIVE

        return RecipeSuggestion(
            recommended=recommended,
            reasons=reasons,
            detected_issues=issues,
            difficulty=difficulty,
        )
