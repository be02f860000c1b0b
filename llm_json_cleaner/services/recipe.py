"""
Declarative cleaning recipes.

A recipe is an immutable list of steps plus an optional fallback operation,
assembled with :class:`RecipeBuilder`::

    recipe = (
        RecipeBuilder("custom", "Custom")
        .use(ControlCharacterDetector())
        .when(has_detection(IssueType.CONTROL_CHARACTER)).use(ControlCharacterFixer())
        .validate()
        .or_fallback(AggressiveFixer())
        .build()
    )
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from llm_json_cleaner.core.types import CleaningOperation, OperationResult
from llm_json_cleaner.services.conditions import Condition, not_
from llm_json_cleaner.services.context import CleaningContext
from llm_json_cleaner.services.steps import (
    SELECT_BEST,
    SELECT_FIRST_SUCCESS,
    AlwaysStep,
    CheckpointStep,
    ConditionalStep,
    LoopStep,
    ParallelStep,
    RecipeStep,
    RollbackStep,
    SequenceStep,
    ValidationStep,
    commit,
    run_operation,
)
from llm_json_cleaner.utils.exceptions import InvalidRecipeError, TimeoutExceededError

logger = logging.getLogger(__name__)

RECIPE_INCOMPLETE = "RECIPE_INCOMPLETE"
TIMEOUT_EXCEEDED = "TIMEOUT_EXCEEDED"
RECIPE_EXECUTION_ERROR = "RECIPE_EXECUTION_ERROR"

MAX_KEY_CHANGES = 10


@dataclass(frozen=True)
class RecipeConfig:
    max_execution_time_ms: Optional[float] = None
    target_confidence: float = 0.8
    continue_on_error: bool = False


@dataclass
class StepMetrics:
    execution_time_ms: float
    operation_count: int
    success_rate: float
    average_confidence: float


@dataclass
class RecipeMetrics:
    total_time_ms: float = 0.0
    steps_executed: int = 0
    operations_performed: int = 0
    rollbacks: int = 0
    step_metrics: Dict[str, StepMetrics] = field(default_factory=dict)


@dataclass
class ExecutionSummary:
    successful_operations: List[str] = field(default_factory=list)
    failed_operations: List[str] = field(default_factory=list)
    key_changes: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class RecipeError:
    code: str
    message: str
    recovery_attempted: bool = False


@dataclass
class RecipeResult:
    success: bool
    cleaned_text: Optional[str]
    confidence: float
    total_changes: int
    operation_results: List[OperationResult] = field(default_factory=list)
    metrics: RecipeMetrics = field(default_factory=RecipeMetrics)
    summary: ExecutionSummary = field(default_factory=ExecutionSummary)
    error: Optional[RecipeError] = None


def _step_metrics(results: List[OperationResult], elapsed_ms: float) -> StepMetrics:
    if not results:
        return StepMetrics(elapsed_ms, 0, 1.0, 1.0)
    return StepMetrics(
        execution_time_ms=elapsed_ms,
        operation_count=len(results),
        success_rate=sum(1 for r in results if r.success) / len(results),
        average_confidence=sum(r.confidence for r in results) / len(results),
    )


@dataclass(frozen=True)
class Recipe:
    """Immutable recipe. Use :meth:`with_config` to derive a variant."""

    id: str
    name: str
    description: str
    steps: Tuple[RecipeStep, ...]
    config: RecipeConfig = RecipeConfig()
    fallback: Optional[CleaningOperation] = None

    def with_config(self, **overrides) -> Recipe:
        return dataclasses.replace(self, config=dataclasses.replace(self.config, **overrides))

    def execute(self, text: str, context: CleaningContext) -> RecipeResult:
        """
        Run the steps against ``context``.

        Returns:
            RecipeResult; ``success`` means the final text parses
        """
        start = time.perf_counter()
        context.update_text(text)
        if self.config.max_execution_time_ms is not None:
            context.set_deadline(self.config.max_execution_time_ms)

        metrics = RecipeMetrics()
        summary = ExecutionSummary()
        operation_results: List[OperationResult] = []
        rollbacks_before = context.rollback_count
        last_confidence = 0.0
        error: Optional[RecipeError] = None
        fallback_attempted = False

        def _collect(results: List[OperationResult]) -> None:
            nonlocal last_confidence
            for result in results:
                operation_results.append(result)
                last_confidence = result.confidence
                target = summary.successful_operations if result.success else summary.failed_operations
                target.append(result.operation_id)
                for change in result.changes:
                    label = f"{change.change_type}: {change.note}" if change.note else change.change_type
                    if label not in summary.key_changes and len(summary.key_changes) < MAX_KEY_CHANGES:
                        summary.key_changes.append(label)

        logger.info(f"Executing recipe {self.id}", extra={"recipe": self.id, "text_length": len(text)})

        try:
            for step in self.steps:
                context.check_deadline()
                result = step.execute(context)
                metrics.steps_executed += 1
                metrics.operations_performed += len(result.operation_results)
                metrics.step_metrics[step.id] = _step_metrics(result.operation_results, result.execution_time_ms)
                _collect(result.operation_results)

                if result.error is not None and not self.config.continue_on_error:
                    logger.warning(f"Recipe {self.id} stopped at step {step.id}: {result.error.message}")
                    break
                if not result.should_continue:
                    break

            if self.fallback is not None and not context.is_valid():
                context.check_deadline()
                fallback_start = time.perf_counter()
                fallback_result = run_operation(self.fallback, context)
                fallback_attempted = True
                if fallback_result is not None:
                    commit(context, fallback_result)
                    _collect([fallback_result])
                    metrics.operations_performed += 1
                    metrics.step_metrics["fallback"] = _step_metrics(
                        [fallback_result], (time.perf_counter() - fallback_start) * 1000
                    )
        except TimeoutExceededError as e:
            logger.warning(f"Recipe {self.id} timed out: {e}")
            error = RecipeError(code=TIMEOUT_EXCEEDED, message=str(e))
            summary.recommendations.append("Increase max_execution_time_ms or split the input")
        except Exception as e:
            logger.error(f"Recipe {self.id} failed: {e}", exc_info=True)
            error = RecipeError(code=RECIPE_EXECUTION_ERROR, message=str(e))
            summary.recommendations.append("Unhandled error occurred during recipe execution")

        metrics.total_time_ms = (time.perf_counter() - start) * 1000
        metrics.rollbacks = context.rollback_count - rollbacks_before
        success = context.is_valid()

        if success:
            error = None
            summary.recommendations = []
        elif error is None:
            error = RecipeError(
                code=RECIPE_INCOMPLETE,
                message="Recipe did not yield valid JSON",
                recovery_attempted=fallback_attempted,
            )
            summary.recommendations.extend([
                "Consider a different recipe template" if fallback_attempted else "Try the aggressive template",
                "Check input source formatting",
            ])

        if success and not operation_results:
            confidence = 1.0
        elif not operation_results:
            confidence = 0.0
        else:
            average = sum(r.confidence for r in operation_results) / len(operation_results)
            confidence = max(average, last_confidence)

        logger.info(
            f"Recipe {self.id} finished: success={success}",
            extra={
                "recipe": self.id,
                "steps_executed": metrics.steps_executed,
                "operations_performed": metrics.operations_performed,
                "total_time_ms": round(metrics.total_time_ms, 2),
            },
        )
        return RecipeResult(
            success=success,
            cleaned_text=context.current_text if success else None,
            confidence=confidence,
            total_changes=len(context.change_log),
            operation_results=operation_results,
            metrics=metrics,
            summary=summary,
            error=error,
        )


class RecipeBuilder:
    """Fluent builder for :class:`Recipe`."""

    def __init__(self, id: Optional[str] = None, name: str = "Custom Recipe", description: str = "Dynamically built cleaning recipe"):
        self.id = id or f"recipe_{int(time.time() * 1000)}"
        self.name = name
        self.description = description
        self._steps: List[RecipeStep] = []
        self._fallback: Optional[CleaningOperation] = None
        self._config: Dict[str, object] = {}

    def add_step(self, step: RecipeStep) -> RecipeBuilder:
        self._steps.append(step)
        return self

    def use(self, operation: CleaningOperation) -> RecipeBuilder:
        return self.add_step(AlwaysStep(operation))

    def try_best(self, *operations: CleaningOperation) -> RecipeBuilder:
        return self.add_step(ParallelStep(operations, SELECT_BEST))

    def try_first(self, *operations: CleaningOperation) -> RecipeBuilder:
        return self.add_step(ParallelStep(operations, SELECT_FIRST_SUCCESS))

    def sequence(self, *operations: CleaningOperation) -> RecipeBuilder:
        return self.add_step(SequenceStep(operations))

    def validate(self) -> RecipeBuilder:
        return self.add_step(ValidationStep())

    def checkpoint(self, name: str) -> RecipeBuilder:
        return self.add_step(CheckpointStep(name))

    def rollback_to(self, name: str) -> RecipeBuilder:
        return self.add_step(RollbackStep(name))

    def loop_until(self, condition: Condition) -> LoopBuilder:
        return LoopBuilder(self, condition)

    def when(self, condition: Condition) -> ConditionalBuilder:
        return ConditionalBuilder(self, condition)

    def or_fallback(self, operation: CleaningOperation) -> RecipeBuilder:
        self._fallback = operation
        return self

    def configure(self, **config) -> RecipeBuilder:
        self._config.update(config)
        return self

    def build(self) -> Recipe:
        if not self._steps and self._fallback is None:
            raise InvalidRecipeError(f"Recipe '{self.id}' has no steps and no fallback")
        return Recipe(
            id=self.id,
            name=self.name,
            description=self.description,
            steps=tuple(self._steps),
            config=RecipeConfig(**self._config),
            fallback=self._fallback,
        )


class ConditionalBuilder:
    """Adds steps that only run when ``condition`` holds, then hands back the parent builder."""

    def __init__(self, parent: RecipeBuilder, condition: Condition):
        self.parent = parent
        self.condition = condition

    def _guarded(self, step: RecipeStep) -> RecipeBuilder:
        return self.parent.add_step(ConditionalStep(step, [self.condition]))

    def use(self, operation: CleaningOperation) -> RecipeBuilder:
        return self._guarded(AlwaysStep(operation))

    def try_best(self, *operations: CleaningOperation) -> RecipeBuilder:
        return self._guarded(ParallelStep(operations, SELECT_BEST))

    def sequence(self, *operations: CleaningOperation) -> RecipeBuilder:
        return self._guarded(SequenceStep(operations))

    def checkpoint(self, name: str) -> RecipeBuilder:
        return self._guarded(CheckpointStep(name))

    def rollback_to(self, name: str) -> RecipeBuilder:
        return self._guarded(RollbackStep(name))

    def or_fallback(self, operation: CleaningOperation) -> RecipeBuilder:
        return self.parent.or_fallback(operation)

    def when(self, condition: Condition) -> ConditionalBuilder:
        return ConditionalBuilder(self.parent, condition)

    def otherwise(self) -> ConditionalBuilder:
        return ConditionalBuilder(self.parent, not_(self.condition))


class LoopBuilder:
    def __init__(self, parent: RecipeBuilder, condition: Condition):
        self.parent = parent
        self.condition = condition
        self._max_iterations = 10

    def max_iterations(self, count: int) -> LoopBuilder:
        self._max_iterations = count
        return self

    def perform(self, *operations: CleaningOperation) -> RecipeBuilder:
        return self.parent.add_step(LoopStep(operations, self.condition, self._max_iterations))
