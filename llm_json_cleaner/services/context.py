"""Per-call mutable state threaded through a recipe run."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from llm_json_cleaner.core.scanner import (
    bracket_counts,
    ends_inside_string,
    missing_comma_positions,
    scan,
    trailing_comma_positions,
)
from llm_json_cleaner.core.transforms import is_control_char
from llm_json_cleaner.core.types import ChangeRecord, ChangeType, Detection
from llm_json_cleaner.services.validation import is_valid
from llm_json_cleaner.utils.exceptions import TimeoutExceededError

logger = logging.getLogger(__name__)


@dataclass
class ContextStats:
    total_changes: int
    processing_time_ms: float
    checkpoint_count: int
    rollback_count: int
    detection_count: int
    is_valid: bool


@dataclass
class PatternAnalysis:
    """Quick scan of the current text for the common problem classes."""

    has_control_chars: bool
    has_missing_commas: bool
    has_extra_commas: bool
    has_structural_issues: bool
    has_markdown_blocks: bool
    has_think_tags: bool
    estimated_error_count: int


class CleaningContext:
    """
    Text, detections, checkpoints and change log for a single repair call.

    A context is created per call and never shared between calls, so it needs
    no locking.
    """

    def __init__(
        self,
        text: str,
        source: str = "unknown",
        mode: str = "adaptive",
        expected_type: Optional[str] = None,
        max_execution_time_ms: Optional[float] = None,
    ):
        self.original_text = text
        self.current_text = text
        self.detections: Dict[str, List[Detection]] = {}
        self.checkpoints: Dict[str, str] = {}
        self.change_log: List[ChangeRecord] = []
        self.rollback_count = 0

        start_time = time.perf_counter()
        self.metadata: Dict[str, Any] = {
            "start_time": start_time,
            "source": source,
            "mode": mode,
            "expected_type": expected_type,
            "deadline": None,
        }
        if max_execution_time_ms is not None:
            self.set_deadline(max_execution_time_ms)

    # ------------------------------------------------------------------
    # Detections
    # ------------------------------------------------------------------

    def add_detection(self, detection: Detection) -> bool:
        """
        Register a detection.

        Returns False when a detection of the same type at the same location is
        already known, so running a detector twice does not double-count.
        """
        known = self.detections.setdefault(detection.issue_type, [])
        if any(existing.location == detection.location for existing in known):
            return False
        known.append(detection)
        return True

    def has_detection(self, issue_type: str) -> bool:
        return bool(self.detections.get(issue_type))

    def get_detections(self, issue_type: str) -> List[Detection]:
        return list(self.detections.get(issue_type, []))

    def get_detections_by_confidence(self, min_confidence: float = 0.5) -> List[Detection]:
        """All detections at or above ``min_confidence``, most confident first."""
        selected = [
            detection
            for detections in self.detections.values()
            for detection in detections
            if detection.confidence >= min_confidence
        ]
        return sorted(selected, key=lambda detection: detection.confidence, reverse=True)

    # ------------------------------------------------------------------
    # Text and history
    # ------------------------------------------------------------------

    def create_checkpoint(self, name: str) -> None:
        self.checkpoints[name] = self.current_text
        logger.debug(f"Created checkpoint '{name}' with {len(self.current_text)} chars")

    def rollback_to(self, name: str) -> bool:
        """Restore the text saved under ``name``. Returns False if there is no such checkpoint."""
        if name not in self.checkpoints:
            logger.warning(f"Checkpoint '{name}' not found, rollback skipped")
            return False

        before = self.current_text
        self.current_text = self.checkpoints[name]
        self.rollback_count += 1
        self.change_log.append(
            ChangeRecord(
                change_type=ChangeType.ROLLBACK,
                before=before[:120],
                after=self.current_text[:120],
                note=f"Rolled back to checkpoint '{name}'",
            )
        )
        logger.debug(f"Rolled back to checkpoint '{name}'")
        return True

    def update_text(self, text: str) -> None:
        self.current_text = text

    def record_change(self, change: ChangeRecord) -> None:
        self.change_log.append(change)

    def get_changes_by_type(self, change_type: str) -> List[ChangeRecord]:
        return [change for change in self.change_log if change.change_type == change_type]

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def set_deadline(self, max_execution_time_ms: float) -> None:
        self.metadata["deadline"] = self.metadata["start_time"] + max_execution_time_ms / 1000

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.metadata["start_time"]) * 1000

    def check_deadline(self) -> None:
        """Raise TimeoutExceededError once the deadline has passed."""
        deadline = self.metadata.get("deadline")
        if deadline is not None and time.perf_counter() > deadline:
            raise TimeoutExceededError(
                f"Execution time limit exceeded after {self.elapsed_ms():.0f}ms"
            )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def is_valid(self) -> bool:
        return is_valid(self.current_text)

    def get_stats(self) -> ContextStats:
        return ContextStats(
            total_changes=len(self.change_log),
            processing_time_ms=self.elapsed_ms(),
            checkpoint_count=len(self.checkpoints),
            rollback_count=self.rollback_count,
            detection_count=sum(len(detections) for detections in self.detections.values()),
            is_valid=self.is_valid(),
        )

    def get_size_change(self) -> int:
        return len(self.current_text) - len(self.original_text)

    def get_change_rate(self) -> float:
        return len(self.change_log) / max(len(self.original_text), 1)

    def analyze_patterns(self) -> PatternAnalysis:
        text = self.current_text
        control_chars = sum(1 for event in scan(text) if event.in_string and is_control_char(event.char))
        missing_commas = len(missing_comma_positions(text))
        extra_commas = len(trailing_comma_positions(text))
        imbalance = bracket_counts(text).imbalance
        unterminated = ends_inside_string(text)
        return PatternAnalysis(
            has_control_chars=control_chars > 0,
            has_missing_commas=missing_commas > 0,
            has_extra_commas=extra_commas > 0,
            has_structural_issues=imbalance > 0 or unterminated,
            has_markdown_blocks="```" in text,
            has_think_tags="<think>" in text.lower(),
            estimated_error_count=control_chars + missing_commas + extra_commas + imbalance + int(unterminated),
        )

    def __repr__(self) -> str:
        stats = self.get_stats()
        return (
            f"CleaningContext(valid={stats.is_valid}, changes={stats.total_changes}, "
            f"detections={stats.detection_count}, time={stats.processing_time_ms:.1f}ms)"
        )
