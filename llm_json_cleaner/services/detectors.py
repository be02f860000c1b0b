"""
Detector operations.

Detectors only look at the text. They register what they find in the
cleaning context, where conditions and fixers pick it up, and never propose a
new text.
"""

from __future__ import annotations

import logging
import re
import time
from abc import abstractmethod
from typing import List

from llm_json_cleaner.core.scanner import (
    ends_inside_string,
    find_unmatched_brackets,
    missing_comma_positions,
    scan,
)
from llm_json_cleaner.core.transforms import is_control_char
from llm_json_cleaner.core.types import (
    CleaningOperation,
    Detection,
    Impact,
    IssueType,
    OperationError,
    OperationResult,
    Risk,
)
from llm_json_cleaner.services.context import CleaningContext

logger = logging.getLogger(__name__)

MARKDOWN_BLOCK = re.compile(r"```(?:json|javascript|js)?\s*([\s\S]*?)```", re.IGNORECASE)
THINK_BLOCK = re.compile(r"<think>([\s\S]*?)</think>", re.IGNORECASE)
_THINK_OPEN = re.compile(r"<think>", re.IGNORECASE)


class BaseDetector(CleaningOperation):
    """Shared apply/impact logic; subclasses implement ``detect``."""

    def __init__(self, id: str, name: str, description: str, priority: str = "medium"):
        self.id = id
        self.name = name
        self.description = description
        self.priority = priority

    @abstractmethod
    def detect(self, text: str, context: CleaningContext) -> List[Detection]:
        """Find issues in ``text`` without touching the context."""

    def apply(self, text: str, context: CleaningContext) -> OperationResult:
        start = time.perf_counter()
        try:
            detections = self.detect(text, context)
        except Exception as e:
            logger.error(f"{self.name} failed: {e}", exc_info=True)
            return OperationResult(
                success=False,
                confidence=0.0,
                error=OperationError(code="DETECTION_ERROR", message=f"Detection failed: {e}"),
                operation_id=self.id,
            )

        added = sum(1 for detection in detections if context.add_detection(detection))
        if detections:
            logger.debug(
                f"{self.name} found {len(detections)} issue(s)",
                extra={"operation_id": self.id, "new_detections": added},
            )
        return OperationResult(
            success=True,
            confidence=0.9 if detections else 1.0,
            operation_id=self.id,
            metrics={
                "execution_time_ms": (time.perf_counter() - start) * 1000,
                "detections": float(len(detections)),
            },
        )

    def estimate_impact(self, text: str, context: CleaningContext) -> Impact:
        return Impact(
            risk=Risk.LOW,
            estimated_changes=0,
            estimated_time_ms=max(10.0, len(text) / 1000),
            confidence=0.95,
            might_break_valid=False,
        )

    def conflicts_with(self, other: CleaningOperation) -> bool:
        return False


class ControlCharacterDetector(BaseDetector):
    def __init__(self):
        super().__init__(
            "control_char_detector",
            "Control Character Detector",
            "Detects unescaped control characters inside JSON strings",
        )

    def should_apply(self, context: CleaningContext) -> bool:
        return any(event.in_string and is_control_char(event.char) for event in scan(context.current_text))

    def detect(self, text: str, context: CleaningContext) -> List[Detection]:
        detections = []
        for event in scan(text):
            if not (event.in_string and is_control_char(event.char)):
                continue
            code = ord(event.char)
            detections.append(
                Detection(
                    issue_type=IssueType.CONTROL_CHARACTER,
                    location=event.index,
                    confidence=0.95,
                    description=f"Control character found: 0x{code:02x}",
                    metadata={"char_code": code, "is_newline": event.char == "\n", "is_tab": event.char == "\t"},
                )
            )
        return detections


class MissingCommaDetector(BaseDetector):
    def __init__(self):
        super().__init__(
            "missing_comma_detector",
            "Missing Comma Detector",
            "Detects missing commas in JSON objects and arrays",
        )

    def should_apply(self, context: CleaningContext) -> bool:
        return bool(missing_comma_positions(context.current_text))

    def detect(self, text: str, context: CleaningContext) -> List[Detection]:
        return [
            Detection(
                issue_type=IssueType.MISSING_COMMA,
                location=position,
                confidence=0.9,
                description="Missing comma between values",
                metadata={"previous_char": text[position - 1] if position else ""},
            )
            for position in missing_comma_positions(text)
        ]


class StructuralImbalanceDetector(BaseDetector):
    def __init__(self):
        super().__init__(
            "structural_detector",
            "Structural Issue Detector",
            "Detects unbalanced brackets and unterminated strings",
            priority="high",
        )

    def should_apply(self, context: CleaningContext) -> bool:
        text = context.current_text
        return ends_inside_string(text) or not find_unmatched_brackets(text).is_balanced

    def detect(self, text: str, context: CleaningContext) -> List[Detection]:
        report = find_unmatched_brackets(text)
        detections = []

        def _bracket_issue(position: int, description: str) -> Detection:
            brace = text[position] in "{}"
            return Detection(
                issue_type=IssueType.UNBALANCED_BRACES if brace else IssueType.UNBALANCED_BRACKETS,
                location=position,
                confidence=0.9,
                description=description,
                metadata={"char": text[position]},
            )

        for position in report.unclosed:
            detections.append(_bracket_issue(position, f"Unclosed '{text[position]}'"))
        for position in report.stray:
            detections.append(_bracket_issue(position, f"Unmatched '{text[position]}'"))
        for closer_at, skipped in report.missing_before:
            for position in skipped:
                detections.append(
                    _bracket_issue(position, f"'{text[position]}' closed early by '{text[closer_at]}'")
                )

        if ends_inside_string(text):
            detections.append(
                Detection(
                    issue_type=IssueType.UNTERMINATED_STRING,
                    location=len(text),
                    confidence=0.85,
                    description="Input ends inside a string",
                )
            )
        return detections


class MarkdownBlockDetector(BaseDetector):
    def __init__(self):
        super().__init__(
            "markdown_detector",
            "Markdown Block Detector",
            "Detects markdown code blocks that may contain JSON",
        )

    def should_apply(self, context: CleaningContext) -> bool:
        return "```" in context.current_text

    def detect(self, text: str, context: CleaningContext) -> List[Detection]:
        detections = [
            Detection(
                issue_type=IssueType.MARKDOWN_CODE_BLOCK,
                location=match.start(),
                confidence=0.95,
                description="Markdown code block detected",
                metadata={"content_length": len(match.group(1))},
            )
            for match in MARKDOWN_BLOCK.finditer(text)
        ]
        stripped = text.lstrip()
        if not detections and stripped.startswith("```"):
            detections.append(
                Detection(
                    issue_type=IssueType.MARKDOWN_CODE_BLOCK,
                    location=len(text) - len(stripped),
                    confidence=0.7,
                    description="Unclosed markdown code fence",
                )
            )
        return detections


class ReasoningBlockDetector(BaseDetector):
    def __init__(self):
        super().__init__(
            "think_tag_detector",
            "Think Tag Detector",
            "Detects <think> tags that may wrap JSON content",
        )

    def should_apply(self, context: CleaningContext) -> bool:
        return bool(_THINK_OPEN.search(context.current_text))

    def detect(self, text: str, context: CleaningContext) -> List[Detection]:
        detections = [
            Detection(
                issue_type=IssueType.THINK_TAG,
                location=match.start(),
                confidence=0.95,
                description="Think tag detected",
                metadata={"content_length": len(match.group(1))},
            )
            for match in THINK_BLOCK.finditer(text)
        ]
        if not detections:
            opening = _THINK_OPEN.search(text)
            if opening:
                detections.append(
                    Detection(
                        issue_type=IssueType.THINK_TAG,
                        location=opening.start(),
                        confidence=0.7,
                        description="Unclosed think tag",
                    )
                )
        return detections