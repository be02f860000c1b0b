"""Strategies of the fixed repair pipeline, each a short chain of text transforms."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Tuple

from llm_json_cleaner.core.transforms import (
    TransformResult,
    aggressive_rewrite,
    balance_brackets,
    escape_control_characters,
    escape_inner_quotes,
    insert_missing_commas,
    objects_to_strings,
    remove_duplicate_keys,
    remove_trailing_commas,
)
from llm_json_cleaner.core.types import ChangeRecord

Transform = Callable[[str], TransformResult]


@dataclass
class StrategyResult:
    output: str
    modified: bool
    changes: List[ChangeRecord] = field(default_factory=list)


class CleaningStrategy:
    """A named, ordered chain of transforms applied one after another."""

    name: str = ""
    confidence: float = 1.0
    transforms: Tuple[Transform, ...] = ()

    def clean(self, text: str) -> StrategyResult:
        result = text
        changes: List[ChangeRecord] = []
        for transform in self.transforms:
            result, applied = transform(result)
            changes.extend(applied)
        return StrategyResult(output=result, modified=result != text, changes=changes)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class StructuralRepairStrategy(CleaningStrategy):
    name = "structural-repair"
    confidence = 0.7
    transforms = (objects_to_strings, balance_brackets)


class ControlCharacterStrategy(CleaningStrategy):
    name = "control-character"
    confidence = 0.9
    transforms = (escape_control_characters,)


class CommaFixerStrategy(CleaningStrategy):
    name = "comma-fixer"
    confidence = 0.85
    transforms = (insert_missing_commas, remove_trailing_commas)


class StringEscaperStrategy(CleaningStrategy):
    name = "string-escaper"
    confidence = 0.8
    transforms = (escape_inner_quotes,)


class DuplicateKeyStrategy(CleaningStrategy):
    name = "duplicate-key"
    confidence = 0.8
    transforms = (remove_duplicate_keys,)


class AggressiveStrategy(CleaningStrategy):
    name = "aggressive"
    confidence = 0.3
    transforms = (aggressive_rewrite,)


def default_strategies() -> Tuple[CleaningStrategy, ...]:
    """Pipeline strategies in the order they run."""
    return (
        StructuralRepairStrategy(),
        ControlCharacterStrategy(),
        CommaFixerStrategy(),
        StringEscaperStrategy(),
        DuplicateKeyStrategy(),
    )
