"""
Recipe steps.

A step decides which operations run and commits their proposals to the
context. Operations only propose text; steps are the only place where
``context.update_text`` is called during a recipe.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from llm_json_cleaner.core.scanner import bracket_counts, ends_inside_string
from llm_json_cleaner.core.types import CleaningOperation, OperationResult
from llm_json_cleaner.services.conditions import Condition
from llm_json_cleaner.services.context import CleaningContext
from llm_json_cleaner.services.validation import is_valid
from llm_json_cleaner.utils.exceptions import TimeoutExceededError

logger = logging.getLogger(__name__)

SELECT_BEST = "best"
SELECT_FIRST_SUCCESS = "first_success"


@dataclass
class StepError:
    message: str
    recoverable: bool = True


@dataclass
class StepResult:
    success: bool
    should_continue: bool = True
    operation_results: List[OperationResult] = field(default_factory=list)
    execution_time_ms: float = 0.0
    error: Optional[StepError] = None


def commit(context: CleaningContext, result: OperationResult) -> bool:
    """Apply an operation's proposed text and changes. Returns whether the text changed."""
    if not result.produced_text:
        return False
    context.update_text(result.candidate_text)
    for change in result.changes:
        context.record_change(change)
    return True


def run_operation(operation: CleaningOperation, context: CleaningContext, text: Optional[str] = None) -> Optional[OperationResult]:
    """Apply ``operation`` if it wants to run. Returns None when it was skipped."""
    if not operation.should_apply(context):
        return None
    return operation.apply(context.current_text if text is None else text, context)


def _structural_damage(text: str) -> int:
    return bracket_counts(text).imbalance + int(ends_inside_string(text))


class RecipeStep(ABC):
    kind: str = ""
    id: str = ""

    @abstractmethod
    def execute(self, context: CleaningContext) -> StepResult:
        """Run the step against the context."""

    def _timed(self, context: CleaningContext, runner) -> StepResult:
        start = time.perf_counter()
        try:
            result = runner()
        except TimeoutExceededError:
            raise
        except Exception as e:
            logger.error(f"Step {self.id} failed: {e}", exc_info=True)
            result = StepResult(success=False, error=StepError(message=f"{self.kind} step failed: {e}"))
        result.execution_time_ms = (time.perf_counter() - start) * 1000
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


class AlwaysStep(RecipeStep):
    kind = "always"

    def __init__(self, operation: CleaningOperation, id: Optional[str] = None):
        self.operation = operation
        self.id = id or f"always_{operation.id}"

    def execute(self, context: CleaningContext) -> StepResult:
        def _run() -> StepResult:
            result = run_operation(self.operation, context)
            if result is None:
                return StepResult(success=True)
            commit(context, result)
            return StepResult(success=result.success, operation_results=[result])

        return self._timed(context, _run)


class SequenceStep(RecipeStep):
    kind = "sequence"

    def __init__(self, operations: Sequence[CleaningOperation], id: Optional[str] = None):
        self.operations = tuple(operations)
        self.id = id or "sequence_" + "_".join(op.id for op in self.operations)

    def execute(self, context: CleaningContext) -> StepResult:
        def _run() -> StepResult:
            results = []
            for operation in self.operations:
                result = run_operation(operation, context)
                if result is None:
                    continue
                results.append(result)
                commit(context, result)
            return StepResult(success=all(r.success for r in results), operation_results=results)

        return self._timed(context, _run)


class ParallelStep(RecipeStep):
    """
    Run every operation against the same snapshot and keep one proposal.

    ``best`` keeps the most confident proposal that parses or at least does not
    make the bracket balance worse. ``first_success`` keeps the first proposal.
    """

    kind = "parallel"

    def __init__(self, operations: Sequence[CleaningOperation], select: str = SELECT_BEST, id: Optional[str] = None):
        if select not in (SELECT_BEST, SELECT_FIRST_SUCCESS):
            raise ValueError(f"Unknown selection strategy: {select}")
        self.operations = tuple(operations)
        self.select = select
        self.id = id or "parallel_" + "_".join(op.id for op in self.operations)

    def execute(self, context: CleaningContext) -> StepResult:
        def _run() -> StepResult:
            snapshot = context.current_text
            baseline = _structural_damage(snapshot)
            results = []
            for operation in self.operations:
                result = run_operation(operation, context, snapshot)
                if result is not None:
                    results.append(result)

            proposals = [r for r in results if r.produced_text]
            picked: Optional[OperationResult] = None
            if self.select == SELECT_FIRST_SUCCESS:
                picked = proposals[0] if proposals else None
            else:
                acceptable = [
                    r for r in proposals
                    if is_valid(r.candidate_text) or _structural_damage(r.candidate_text) <= baseline
                ]
                if acceptable:
                    picked = max(acceptable, key=lambda r: r.confidence)

            if picked is not None:
                commit(context, picked)
                logger.debug(f"Parallel step kept result of {picked.operation_id}")
            return StepResult(success=picked is not None or not proposals, operation_results=results)

        return self._timed(context, _run)


class LoopStep(RecipeStep):
    kind = "loop"

    def __init__(
        self,
        operations: Sequence[CleaningOperation],
        until: Condition,
        max_iterations: int = 10,
        id: Optional[str] = None,
    ):
        self.operations = tuple(operations)
        self.until = until
        self.max_iterations = max_iterations
        self.id = id or "loop_" + "_".join(op.id for op in self.operations)

    def execute(self, context: CleaningContext) -> StepResult:
        def _run() -> StepResult:
            results = []
            for iteration in range(self.max_iterations):
                if self.until.evaluate(context):
                    break
                context.check_deadline()
                before = context.current_text
                for operation in self.operations:
                    result = run_operation(operation, context)
                    if result is None:
                        continue
                    results.append(result)
                    commit(context, result)
                if context.current_text == before:
                    logger.debug(f"Loop {self.id} made no progress after {iteration + 1} iteration(s)")
                    break
            return StepResult(success=self.until.evaluate(context), operation_results=results)

        return self._timed(context, _run)


class ConditionalStep(RecipeStep):
    kind = "conditional"

    def __init__(
        self,
        inner: RecipeStep,
        conditions: Sequence[Condition],
        otherwise: Optional[RecipeStep] = None,
        id: Optional[str] = None,
    ):
        self.inner = inner
        self.conditions: Tuple[Condition, ...] = tuple(conditions)
        self.otherwise = otherwise
        self.id = id or f"when_{inner.id}"

    def execute(self, context: CleaningContext) -> StepResult:
        if all(condition.evaluate(context) for condition in self.conditions):
            return self.inner.execute(context)
        if self.otherwise is not None:
            return self.otherwise.execute(context)
        return StepResult(success=True)


class CheckpointStep(RecipeStep):
    kind = "checkpoint"

    def __init__(self, name: str):
        self.name = name
        self.id = f"checkpoint_{name}"

    def execute(self, context: CleaningContext) -> StepResult:
        context.create_checkpoint(self.name)
        return StepResult(success=True)


class RollbackStep(RecipeStep):
    kind = "rollback"

    def __init__(self, name: str):
        self.name = name
        self.id = f"rollback_{name}"

    def execute(self, context: CleaningContext) -> StepResult:
        return StepResult(success=context.rollback_to(self.name))


class ValidationStep(RecipeStep):
    """Report whether the current text parses. Never stops the recipe."""

    kind = "validation"
    id = "validation"

    def execute(self, context: CleaningContext) -> StepResult:
        return StepResult(success=context.is_valid())
