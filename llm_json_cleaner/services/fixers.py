"""
Fixer operations.

A fixer proposes a rewritten text; it never writes to the context itself.
No fixer ever runs against text that already parses.
"""

from __future__ import annotations

import logging
import re
import time
from abc import abstractmethod
from typing import List, Optional, Tuple

from llm_json_cleaner.core.scanner import (
    ends_inside_string,
    find_unmatched_brackets,
    missing_comma_positions,
    scan,
)
from llm_json_cleaner.core.transforms import (
    aggressive_rewrite,
    balance_brackets,
    escape_control_characters,
    insert_missing_commas,
    is_control_char,
    objects_to_strings,
)
from llm_json_cleaner.core.types import (
    ChangeRecord,
    ChangeType,
    CleaningOperation,
    FixResult,
    Impact,
    IssueType,
    OperationError,
    OperationResult,
    Risk,
)
from llm_json_cleaner.services.analyzer import json_likelihood
from llm_json_cleaner.services.context import CleaningContext
from llm_json_cleaner.services.detectors import MARKDOWN_BLOCK, THINK_BLOCK
from llm_json_cleaner.services.parsers import MarkdownParser, strip_reasoning
from llm_json_cleaner.services.validation import is_valid
from llm_json_cleaner.utils.exceptions import FixerInternalError

logger = logging.getLogger(__name__)

MIN_EXTRACTION_SCORE = 0.5

_LITERALS = re.compile(r"true|false|null")
_OBJECT_IN_TEXT = re.compile(r"\{[\s\S]*\}")
_ARRAY_IN_TEXT = re.compile(r"\[[\s\S]*\]")


class BaseFixer(CleaningOperation):
    """
    Shared apply/impact logic for fixers.

    Subclasses implement ``is_applicable``, ``perform_fix`` and
    ``calculate_impact``. ``should_apply`` refuses valid text before asking
    the subclass.
    """

    risk = Risk.MEDIUM

    def __init__(self, id: str, name: str, description: str, priority: str = "medium"):
        self.id = id
        self.name = name
        self.description = description
        self.priority = priority

    def should_apply(self, context: CleaningContext) -> bool:
        if is_valid(context.current_text):
            return False
        return self.is_applicable(context)

    @abstractmethod
    def is_applicable(self, context: CleaningContext) -> bool:
        """Whether the fixer has anything to do on the (invalid) current text."""

    @abstractmethod
    def perform_fix(self, text: str, context: CleaningContext) -> FixResult:
        """Rewrite ``text``."""

    @abstractmethod
    def calculate_impact(self, text: str, context: CleaningContext) -> Impact:
        """Impact estimate for a fixer that applies."""

    def apply(self, text: str, context: CleaningContext) -> OperationResult:
        start = time.perf_counter()
        if not self.should_apply(context):
            return OperationResult(success=True, operation_id=self.id, metrics={"execution_time_ms": 0.0})

        try:
            fix = self.perform_fix(text, context)
        except Exception as e:
            error = FixerInternalError(self.id, e)
            logger.error(str(error), exc_info=True, extra={"operation_id": self.id})
            return OperationResult(
                success=False,
                confidence=0.0,
                error=OperationError(code="FIXER_ERROR", message=str(error)),
                operation_id=self.id,
                metrics={"execution_time_ms": (time.perf_counter() - start) * 1000},
            )

        changed = fix.success and fix.text != text
        if changed:
            logger.debug(
                f"{self.name} proposed {len(fix.changes)} change(s)",
                extra={"operation_id": self.id, "confidence": fix.confidence},
            )
        return OperationResult(
            success=fix.success,
            candidate_text=fix.text if changed else None,
            changes=list(fix.changes) if changed else [],
            confidence=fix.confidence,
            error=fix.error,
            operation_id=self.id,
            metrics={
                "execution_time_ms": (time.perf_counter() - start) * 1000,
                "size_change": float(len(fix.text) - len(text)) if changed else 0.0,
            },
        )

    def estimate_impact(self, text: str, context: CleaningContext) -> Impact:
        if not self.should_apply(context):
            return Impact(
                risk=Risk.LOW,
                estimated_changes=0,
                estimated_time_ms=5.0,
                confidence=1.0,
                might_break_valid=False,
            )
        return self.calculate_impact(text, context)


class ControlCharacterFixer(BaseFixer):
    risk = Risk.LOW

    def __init__(self):
        super().__init__(
            "control_char_fixer",
            "Control Character Fixer",
            "Escapes raw control characters inside JSON strings",
            priority="high",
        )

    def is_applicable(self, context: CleaningContext) -> bool:
        if context.has_detection(IssueType.CONTROL_CHARACTER):
            return True
        return any(event.in_string and is_control_char(event.char) for event in scan(context.current_text))

    def perform_fix(self, text: str, context: CleaningContext) -> FixResult:
        fixed, changes = escape_control_characters(text)
        return FixResult(success=True, text=fixed, changes=changes, confidence=0.9)

    def calculate_impact(self, text: str, context: CleaningContext) -> Impact:
        count = sum(1 for event in scan(text) if event.in_string and is_control_char(event.char))
        return Impact(
            risk=Risk.LOW,
            estimated_changes=count,
            estimated_time_ms=max(5.0, len(text) / 10000),
            confidence=0.9,
            might_break_valid=False,
        )


class MissingCommaFixer(BaseFixer):
    risk = Risk.MEDIUM

    def __init__(self):
        super().__init__(
            "missing_comma_fixer",
            "Missing Comma Fixer",
            "Inserts commas missing between values",
            priority="high",
        )

    def is_applicable(self, context: CleaningContext) -> bool:
        return context.has_detection(IssueType.MISSING_COMMA) or bool(
            missing_comma_positions(context.current_text)
        )

    def perform_fix(self, text: str, context: CleaningContext) -> FixResult:
        fixed, changes = insert_missing_commas(text)
        return FixResult(success=True, text=fixed, changes=changes, confidence=0.85)

    def calculate_impact(self, text: str, context: CleaningContext) -> Impact:
        return Impact(
            risk=Risk.MEDIUM,
            estimated_changes=len(missing_comma_positions(text)),
            estimated_time_ms=max(5.0, len(text) / 5000),
            confidence=0.85,
            might_break_valid=False,
        )


class StructuralRepairFixer(BaseFixer):
    risk = Risk.HIGH

    def __init__(self):
        super().__init__(
            "structural_repair",
            "Structural Repair Fixer",
            "Closes open strings and balances braces and brackets",
            priority="medium",
        )

    def is_applicable(self, context: CleaningContext) -> bool:
        if any(
            context.has_detection(issue)
            for issue in (IssueType.UNBALANCED_BRACES, IssueType.UNBALANCED_BRACKETS, IssueType.UNTERMINATED_STRING)
        ):
            return True
        text = context.current_text
        return ends_inside_string(text) or not find_unmatched_brackets(text).is_balanced

    def perform_fix(self, text: str, context: CleaningContext) -> FixResult:
        fixed, changes = balance_brackets(text)
        return FixResult(success=True, text=fixed, changes=changes, confidence=0.7)

    def calculate_impact(self, text: str, context: CleaningContext) -> Impact:
        report = find_unmatched_brackets(text)
        estimated = (
            len(report.unclosed)
            + len(report.stray)
            + sum(len(skipped) for _, skipped in report.missing_before)
            + int(ends_inside_string(text))
        )
        return Impact(
            risk=Risk.HIGH,
            estimated_changes=estimated,
            estimated_time_ms=max(10.0, len(text) / 2000),
            confidence=0.7,
            might_break_valid=True,
        )


class MarkdownBlockFixer(BaseFixer):
    risk = Risk.LOW

    def __init__(self):
        super().__init__(
            "markdown_extractor",
            "Markdown Block Extractor",
            "Extracts JSON from markdown code blocks",
        )

    def is_applicable(self, context: CleaningContext) -> bool:
        return context.has_detection(IssueType.MARKDOWN_CODE_BLOCK) or "```" in context.current_text

    def perform_fix(self, text: str, context: CleaningContext) -> FixResult:
        candidates = [match.group(1).strip() for match in MARKDOWN_BLOCK.finditer(text)]
        if text.strip().startswith("```"):
            # A fence inside a string value cuts the lazy match short
            candidates.insert(0, MarkdownParser().parse(text).json)
        best, score = _best_candidate(candidates)
        if best is None or score <= MIN_EXTRACTION_SCORE:
            return FixResult(success=False, text=text, confidence=0.0)
        change = ChangeRecord(
            change_type=ChangeType.EXTRACT,
            before=text[:120],
            after=best[:120],
            note="Extracted JSON from markdown code block",
        )
        return FixResult(success=True, text=best, changes=[change], confidence=score)

    def calculate_impact(self, text: str, context: CleaningContext) -> Impact:
        blocks = text.count("```") // 2
        return Impact(
            risk=Risk.LOW,
            estimated_changes=1 if blocks else 0,
            estimated_time_ms=max(5.0, blocks * 10.0),
            confidence=0.8,
            might_break_valid=False,
        )


class ReasoningBlockFixer(BaseFixer):
    """
    Pull the JSON out of text wrapped in ``<think>`` blocks.

    Candidates are the first object and array found inside each block plus
    whatever remains once the blocks are removed.
    """

    risk = Risk.LOW

    def __init__(self):
        super().__init__(
            "think_tag_extractor",
            "Think Tag Extractor",
            "Extracts JSON from <think> tags",
        )

    def is_applicable(self, context: CleaningContext) -> bool:
        return context.has_detection(IssueType.THINK_TAG) or "<think>" in context.current_text.lower()

    def perform_fix(self, text: str, context: CleaningContext) -> FixResult:
        candidates: List[str] = []
        for match in THINK_BLOCK.finditer(text):
            content = match.group(1).strip()
            for pattern in (_OBJECT_IN_TEXT, _ARRAY_IN_TEXT):
                found = pattern.search(content)
                if found:
                    candidates.append(found.group(0))
        remainder = strip_reasoning(text)
        if remainder and remainder != text.strip():
            candidates.append(remainder)

        best: Optional[str] = None
        best_score = 0.0
        for candidate in candidates:
            score = self._quality(candidate)
            if score > best_score:
                best, best_score = candidate, score

        if best is None or best_score <= MIN_EXTRACTION_SCORE:
            return FixResult(success=False, text=text, confidence=0.0)
        change = ChangeRecord(
            change_type=ChangeType.EXTRACT,
            before=text[:120],
            after=best[:120],
            note="Extracted JSON from think tag",
        )
        return FixResult(success=True, text=best, changes=[change], confidence=best_score)

    @staticmethod
    def _quality(content: str) -> float:
        if is_valid(content):
            return 1.0
        score = 0.0
        if "{" in content and "}" in content:
            score += 0.3
        if "[" in content and "]" in content:
            score += 0.3
        if '"' in content and ":" in content:
            score += 0.3
        if _LITERALS.search(content):
            score += 0.1
        return score

    def calculate_impact(self, text: str, context: CleaningContext) -> Impact:
        tags = text.lower().count("<think>")
        return Impact(
            risk=Risk.LOW,
            estimated_changes=1 if tags else 0,
            estimated_time_ms=max(5.0, tags * 15.0),
            confidence=0.75,
            might_break_valid=False,
        )


class ObjectToStringFixer(BaseFixer):
    """
    Turn ``"field": { some prose }`` into ``"field": "some prose"``.

    Best effort: the prose test is a word heuristic and can misfire on small
    objects written with unquoted keys.
    """

    risk = Risk.MEDIUM

    def __init__(self):
        super().__init__(
            "object_to_string",
            "Object To String Fixer",
            "Converts objects that hold plain prose into strings",
            priority="low",
        )

    def is_applicable(self, context: CleaningContext) -> bool:
        _, changes = objects_to_strings(context.current_text)
        return bool(changes)

    def perform_fix(self, text: str, context: CleaningContext) -> FixResult:
        fixed, changes = objects_to_strings(text)
        return FixResult(success=True, text=fixed, changes=changes, confidence=0.6)

    def calculate_impact(self, text: str, context: CleaningContext) -> Impact:
        _, changes = objects_to_strings(text)
        return Impact(
            risk=Risk.MEDIUM,
            estimated_changes=len(changes),
            estimated_time_ms=max(5.0, len(text) / 5000),
            confidence=0.6,
            might_break_valid=True,
        )


class AggressiveFixer(BaseFixer):
    """Last resort rewrite. The output is handed back even if it still does not parse."""

    risk = Risk.HIGH

    def __init__(self):
        super().__init__(
            "aggressive_fixer",
            "Aggressive Fixer",
            "Escapes, drops and closes everything that blocks parsing",
            priority="low",
        )

    def is_applicable(self, context: CleaningContext) -> bool:
        return True

    def perform_fix(self, text: str, context: CleaningContext) -> FixResult:
        fixed, changes = aggressive_rewrite(text)
        return FixResult(success=True, text=fixed, changes=changes, confidence=0.3)

    def calculate_impact(self, text: str, context: CleaningContext) -> Impact:
        return Impact(
            risk=Risk.HIGH,
            estimated_changes=max(1, len(text) // 100),
            estimated_time_ms=max(10.0, len(text) / 1000),
            confidence=0.3,
            might_break_valid=True,
        )


def _best_candidate(contents) -> Tuple[Optional[str], float]:
    best: Optional[str] = None
    best_score = 0.0
    for content in contents:
        score = json_likelihood(content)
        if score > best_score:
            best, best_score = content, score
    return best, best_score
