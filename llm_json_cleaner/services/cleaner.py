"""Public repair API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from llm_json_cleaner.core import transforms
from llm_json_cleaner.core.types import ChangeRecord
from llm_json_cleaner.services.analyzer import Diagnosis
from llm_json_cleaner.services.analyzer import diagnose as diagnose_text
from llm_json_cleaner.services.engine import CleaningEngine, CleaningOptions
from llm_json_cleaner.services.orchestrator import RepairOrchestrator
from llm_json_cleaner.services.parsers import JsonExtractor, MarkdownParser, ReasoningParser
from llm_json_cleaner.services.validation import is_valid, validate, validation_stats
from llm_json_cleaner.utils.exceptions import (
    EmptyInputError,
    FixerInternalError,
    StillInvalidAfterRepairError,
)

logger = logging.getLogger(__name__)

MODE_PASSTHROUGH = "passthrough"
MODE_PIPELINE = "pipeline"
MODE_EXTRACT = "extract"

PROBLEM_TRANSFORMS = {
    "comma": (transforms.insert_missing_commas, transforms.remove_trailing_commas),
    "control-chars": (transforms.escape_control_characters,),
    "quotes": (transforms.escape_inner_quotes,),
    "brackets": (transforms.balance_brackets,),
}


@dataclass
class RepairOptions:
    extract_reasoning: bool = True
    extract_markdown: bool = True
    validate: bool = True
    clean: bool = True
    mode: Optional[str] = None  # recipe template; None lets the engine choose


@dataclass
class RepairResult:
    cleaned_json: str
    reasoning: str
    success: bool
    confidence: float
    mode: str
    changes: List[ChangeRecord] = field(default_factory=list)

    def raise_for_status(self) -> RepairResult:
        """Raise StillInvalidAfterRepairError if the repair did not produce valid JSON."""
        if not self.success:
            raise StillInvalidAfterRepairError(
                "Repair finished without producing valid JSON",
                best_effort=self.cleaned_json,
            )
        return self


def _ensure_input(raw: str) -> None:
    if raw is None or not raw.strip():
        raise EmptyInputError()


def _record_outcome(result: RepairResult) -> RepairResult:
    """Count the final output of a repair call in the validation stats."""
    validate(result.cleaned_json)
    return result


class JsonCleaner:
    """
    Recover valid JSON from raw LLM output.

    ``repair`` runs the fixed pipeline synchronously. ``repair_async`` runs a
    recipe in a worker thread and falls back to the pipeline when the recipe
    does not produce valid JSON.
    """

    def __init__(
        self,
        orchestrator: Optional[RepairOrchestrator] = None,
        engine: Optional[CleaningEngine] = None,
    ):
        self.orchestrator = orchestrator or RepairOrchestrator()
        self.engine = engine or CleaningEngine()
        self._reasoning_parser = ReasoningParser()
        self._markdown_parser = MarkdownParser()
        self._extractor = JsonExtractor()

    def repair(self, raw: str) -> RepairResult:
        """
        Repair ``raw`` with the fixed pipeline.

        Raises:
            EmptyInputError: If ``raw`` is empty or whitespace-only
        """
        _ensure_input(raw)
        return _record_outcome(self._run_pipeline(raw))

    def _run_pipeline(self, raw: str) -> RepairResult:
        if is_valid(raw):
            return RepairResult(cleaned_json=raw, reasoning="", success=True, confidence=1.0, mode=MODE_PASSTHROUGH)

        result = self.orchestrator.process(raw)
        logger.info(
            f"Pipeline repair finished: success={result.success}",
            extra={"applied_strategies": result.applied_strategies, "confidence": result.confidence},
        )
        return RepairResult(
            cleaned_json=result.cleaned_json.strip(),
            reasoning=result.reasoning,
            success=result.success,
            confidence=result.confidence,
            mode=MODE_PIPELINE,
            changes=result.changes,
        )

    async def repair_async(self, raw: str, options: Optional[RepairOptions] = None) -> RepairResult:
        """
        Extract, then repair ``raw`` with a recipe.

        Raises:
            EmptyInputError: If ``raw`` is empty or whitespace-only
        """
        _ensure_input(raw)
        options = options or RepairOptions()
        result = await self._run_recipe(raw, options)
        # Extraction-only calls with validation off never looked at the output
        if options.clean or options.validate:
            _record_outcome(result)
        return result

    async def _run_recipe(self, raw: str, options: RepairOptions) -> RepairResult:
        if is_valid(raw):
            return RepairResult(cleaned_json=raw, reasoning="", success=True, confidence=1.0, mode=MODE_PASSTHROUGH)

        text = raw
        reasoning = ""
        if options.extract_reasoning:
            text, reasoning = self._reasoning_parser.parse(text)
        if options.extract_markdown:
            text = self._markdown_parser.parse(text).json
        text = self._extractor.parse(text).json

        if not options.clean:
            success = is_valid(text) if options.validate else True
            return RepairResult(
                cleaned_json=text,
                reasoning=reasoning,
                success=success,
                confidence=1.0 if success else 0.0,
                mode=MODE_EXTRACT,
            )

        if is_valid(text):
            return RepairResult(cleaned_json=text, reasoning=reasoning, success=True, confidence=1.0, mode=MODE_EXTRACT)

        cleaning = await asyncio.to_thread(
            self.engine.clean, text, None, CleaningOptions(source="repair_async", mode=options.mode)
        )
        if cleaning.success:
            return RepairResult(
                cleaned_json=cleaning.cleaned_json.strip(),
                reasoning=reasoning,
                success=True,
                confidence=cleaning.confidence,
                mode=f"recipe:{cleaning.context.metadata['mode']}",
                changes=list(cleaning.context.change_log),
            )

        logger.info(
            "Recipe did not produce valid JSON, falling back to pipeline",
            extra={"recipe": cleaning.context.metadata["mode"]},
        )
        result = await asyncio.to_thread(self.orchestrator.process, text)
        if not reasoning and result.reasoning:
            reasoning = result.reasoning
        return RepairResult(
            cleaned_json=result.cleaned_json.strip(),
            reasoning=reasoning,
            success=result.success,
            confidence=result.confidence,
            mode=MODE_PIPELINE,
            changes=result.changes,
        )

    def diagnose(self, text: str) -> Diagnosis:
        return diagnose_text(text)

    def fix_specific_problem(self, text: str, problem: str) -> RepairResult:
        """
        Apply the single transform for one known problem class.

        Args:
            text: Text to fix
            problem: One of ``comma``, ``control-chars``, ``quotes`` or ``brackets``

        Raises:
            EmptyInputError: If ``text`` is empty or whitespace-only
            ValueError: If ``problem`` is not a known problem class
        """
        _ensure_input(text)
        if problem not in PROBLEM_TRANSFORMS:
            raise ValueError(f"Unknown problem type: {problem}")

        result = text
        changes: List[ChangeRecord] = []
        try:
            for transform in PROBLEM_TRANSFORMS[problem]:
                result, applied = transform(result)
                changes.extend(applied)
        except Exception as e:
            error = FixerInternalError(problem, e)
            logger.error(str(error), exc_info=True)
            return RepairResult(cleaned_json=text, reasoning="", success=validate(text).is_valid, confidence=0.0, mode=f"fix:{problem}")

        success = validate(result).is_valid
        return RepairResult(
            cleaned_json=result,
            reasoning="",
            success=success,
            confidence=0.8 if success else 0.0,
            mode=f"fix:{problem}",
            changes=changes,
        )

    def get_service_stats(self) -> Dict[str, Any]:
        return {
            "parsers": len(self.orchestrator.parsers),
            "parser_names": [parser.name for parser in self.orchestrator.parsers],
            "strategies": len(self.orchestrator.strategies),
            "strategy_names": [strategy.name for strategy in self.orchestrator.strategies],
            "fallbacks": 1,
            "validation": validation_stats.get_stats(),
        }


# Default instance behind the module-level helpers
default_cleaner = JsonCleaner()


def repair(raw: str) -> RepairResult:
    return default_cleaner.repair(raw)


async def repair_async(raw: str, options: Optional[RepairOptions] = None) -> RepairResult:
    return await default_cleaner.repair_async(raw, options)


def diagnose(text: str) -> Diagnosis:
    return default_cleaner.diagnose(text)
