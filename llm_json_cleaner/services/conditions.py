"""Predicates over a cleaning context, used to gate recipe steps."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from llm_json_cleaner.core.scanner import (
    ends_inside_string,
    find_unmatched_brackets,
    missing_comma_positions,
    scan,
)
from llm_json_cleaner.core.transforms import is_control_char
from llm_json_cleaner.services.context import CleaningContext
from llm_json_cleaner.services.detectors import MARKDOWN_BLOCK, THINK_BLOCK

Evaluator = Callable[[CleaningContext], bool]


@dataclass(frozen=True)
class Condition:
    kind: str
    description: str
    evaluate: Evaluator

    def __call__(self, context: CleaningContext) -> bool:
        return self.evaluate(context)


def has_detection(issue_type: str) -> Condition:
    return Condition(
        "has_detection",
        f"Has detection of type '{issue_type}'",
        lambda ctx: ctx.has_detection(issue_type),
    )


def is_valid() -> Condition:
    return Condition("json_valid", "JSON is valid", lambda ctx: ctx.is_valid())


def is_invalid() -> Condition:
    return Condition("json_invalid", "JSON is invalid", lambda ctx: not ctx.is_valid())


def changes_above(threshold: int) -> Condition:
    return Condition(
        "changes_above",
        f"Number of changes above {threshold}",
        lambda ctx: len(ctx.change_log) > threshold,
    )


def changes_below(threshold: int) -> Condition:
    return Condition(
        "changes_below",
        f"Number of changes at most {threshold}",
        lambda ctx: len(ctx.change_log) <= threshold,
    )


def time_elapsed(threshold_ms: float) -> Condition:
    return Condition(
        "time_elapsed",
        f"Time elapsed above {threshold_ms}ms",
        lambda ctx: ctx.elapsed_ms() > threshold_ms,
    )


def custom(description: str, evaluator: Evaluator) -> Condition:
    return Condition("custom", description, evaluator)


def and_(*conditions: Condition) -> Condition:
    return Condition(
        "and",
        "All of: " + ", ".join(c.description for c in conditions),
        lambda ctx: all(c.evaluate(ctx) for c in conditions),
    )


def or_(*conditions: Condition) -> Condition:
    return Condition(
        "or",
        "Any of: " + ", ".join(c.description for c in conditions),
        lambda ctx: any(c.evaluate(ctx) for c in conditions),
    )


def not_(condition: Condition) -> Condition:
    return Condition("not", f"Not: {condition.description}", lambda ctx: not condition.evaluate(ctx))


def has_control_chars() -> Condition:
    return custom(
        "Has control characters",
        lambda ctx: any(e.in_string and is_control_char(e.char) for e in scan(ctx.current_text)),
    )


def has_missing_commas() -> Condition:
    return custom("Has missing commas", lambda ctx: bool(missing_comma_positions(ctx.current_text)))


def has_structural_issues() -> Condition:
    return custom(
        "Has structural issues",
        lambda ctx: ends_inside_string(ctx.current_text)
        or not find_unmatched_brackets(ctx.current_text).is_balanced,
    )


def has_markdown_code() -> Condition:
    return custom("Has markdown code blocks", lambda ctx: bool(MARKDOWN_BLOCK.search(ctx.current_text)))


def has_think_tags() -> Condition:
    return custom("Has think tags", lambda ctx: bool(THINK_BLOCK.search(ctx.current_text)))


def is_small_json(max_size: int = 1000) -> Condition:
    return custom(
        f"JSON is at most {max_size} characters",
        lambda ctx: len(ctx.current_text) <= max_size,
    )


def is_large_json(min_size: int = 10000) -> Condition:
    return custom(
        f"JSON is at least {min_size} characters",
        lambda ctx: len(ctx.current_text) >= min_size,
    )
