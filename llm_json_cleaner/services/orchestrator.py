"""Fixed repair pipeline: parsers, then strategies in order, then the aggressive fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from llm_json_cleaner.core.types import ChangeRecord
from llm_json_cleaner.services.parsers import default_parsers, run_parsers
from llm_json_cleaner.services.strategies import (
    AggressiveStrategy,
    CleaningStrategy,
    StrategyResult,
    default_strategies,
)
from llm_json_cleaner.services.validation import is_valid
from llm_json_cleaner.utils.exceptions import FixerInternalError

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    cleaned_json: str
    reasoning: str
    success: bool
    confidence: float
    applied_strategies: List[str] = field(default_factory=list)
    changes: List[ChangeRecord] = field(default_factory=list)


class RepairOrchestrator:
    """
    Runs the fixed pipeline.

    Strategies build on each other's output. The first one that leaves valid
    JSON behind ends the run; if none does, the aggressive fallback gets the
    accumulated text and its output is returned even when still invalid.
    """

    def __init__(
        self,
        parsers: Optional[Sequence[Any]] = None,
        strategies: Optional[Sequence[CleaningStrategy]] = None,
        fallback: Optional[CleaningStrategy] = None,
    ):
        self.parsers = tuple(parsers) if parsers is not None else default_parsers()
        self.strategies = tuple(strategies) if strategies is not None else default_strategies()
        self.fallback = fallback or AggressiveStrategy()

    def process(self, raw: str) -> PipelineResult:
        """Extract and repair ``raw``. Never raises for malformed input."""
        parsed = run_parsers(raw, self.parsers)
        if parsed.json != raw.strip():
            logger.debug(
                "Parsers modified input",
                extra={"before_length": len(raw), "after_length": len(parsed.json)},
            )

        if is_valid(parsed.json):
            return PipelineResult(
                cleaned_json=parsed.json,
                reasoning=parsed.reasoning,
                success=True,
                confidence=1.0,
            )

        result = self.repair(parsed.json)
        result.reasoning = parsed.reasoning
        return result

    def repair(self, text: str) -> PipelineResult:
        """Run the strategies, then the fallback, on already extracted text."""
        current = text
        applied: List[CleaningStrategy] = []
        changes: List[ChangeRecord] = []

        for strategy in self.strategies:
            outcome = self._run(strategy, current)
            if outcome is None or not outcome.modified:
                continue

            logger.info(
                f"Applied strategy {strategy.name}",
                extra={"strategy": strategy.name, "changes": len(outcome.changes)},
            )
            current = outcome.output
            applied.append(strategy)
            changes.extend(outcome.changes)

            if is_valid(current):
                return PipelineResult(
                    cleaned_json=current,
                    reasoning="",
                    success=True,
                    confidence=min(s.confidence for s in applied),
                    applied_strategies=[s.name for s in applied],
                    changes=changes,
                )

        logger.info(f"Trying fallback strategy {self.fallback.name}")
        outcome = self._run(self.fallback, current)
        if outcome is not None and outcome.modified:
            current = outcome.output
            applied.append(self.fallback)
            changes.extend(outcome.changes)

        success = is_valid(current)
        if not success:
            logger.warning(
                "Pipeline finished without valid JSON",
                extra={"applied_strategies": [s.name for s in applied], "text_length": len(current)},
            )
        return PipelineResult(
            cleaned_json=current,
            reasoning="",
            success=success,
            confidence=min(s.confidence for s in applied) if success and applied else (1.0 if success else 0.0),
            applied_strategies=[s.name for s in applied],
            changes=changes,
        )

    @staticmethod
    def _run(strategy: CleaningStrategy, text: str) -> Optional[StrategyResult]:
        try:
            return strategy.clean(text)
        except Exception as e:
            error = FixerInternalError(strategy.name, e)
            logger.error(str(error), exc_info=True, extra={"strategy": strategy.name})
            return None
