"""JSON validity checks, validation statistics and encoding analysis."""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

BOM = "\ufeff"

_POSITION_NUMBERS = re.compile(r"\b(line|column|char)\s+\d+")


def is_valid(text: str) -> bool:
    """Check whether ``text`` parses as JSON. Does not touch the statistics."""
    try:
        json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return False
    return True


@dataclass
class ValidationResult:
    """Outcome of a single validation."""

    is_valid: bool
    error: Optional[str] = None
    error_position: Optional[int] = None


class ValidationStats:
    """
    Process-wide validation counters.

    Shared between threads, so every access goes through the lock. The
    numbers are advisory only; nothing in the repair flow depends on them.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.total = 0
        self.successful = 0
        self.failed = 0
        self.common_errors: Dict[str, int] = {}

    def record(self, valid: bool, error: Optional[str] = None) -> None:
        with self._lock:
            self.total += 1
            if valid:
                self.successful += 1
                return
            self.failed += 1
            if error:
                normalized = _POSITION_NUMBERS.sub(lambda m: f"{m.group(1)} N", error)
                self.common_errors[normalized] = self.common_errors.get(normalized, 0) + 1

    def get_stats(self) -> Dict[str, Any]:
        """Get counters, success rate and the ten most common errors."""
        with self._lock:
            top_errors = sorted(self.common_errors.items(), key=lambda item: item[1], reverse=True)[:10]
            return {
                "total": self.total,
                "successful": self.successful,
                "failed": self.failed,
                "success_rate": self.successful / self.total if self.total > 0 else 0.0,
                "common_errors": [{"error": error, "count": count} for error, count in top_errors],
            }

    def reset(self) -> None:
        with self._lock:
            self.total = 0
            self.successful = 0
            self.failed = 0
            self.common_errors = {}


# Global validation stats instance
validation_stats = ValidationStats()


def validate(text: str) -> ValidationResult:
    """
    Validate ``text`` as JSON and record the outcome.

    Args:
        text: Candidate JSON document

    Returns:
        ValidationResult with the parser's message and offset on failure
    """
    try:
        json.loads(text)
    except json.JSONDecodeError as e:
        validation_stats.record(False, str(e))
        return ValidationResult(is_valid=False, error=str(e), error_position=e.pos)
    except TypeError as e:
        validation_stats.record(False, str(e))
        return ValidationResult(is_valid=False, error=str(e))
    validation_stats.record(True)
    return ValidationResult(is_valid=True)


@dataclass
class EncodingAnalysis:
    has_bom: bool
    encoding: str
    suspicious_positions: List[int] = field(default_factory=list)


def analyze_encoding(text: str) -> EncodingAnalysis:
    """Classify the apparent encoding and list characters that look out of place."""
    has_bom = text.startswith(BOM)
    head = text[:100]

    if has_bom:
        encoding = "UTF-8 with BOM"
    elif any(127 < ord(char) < 160 for char in head):
        encoding = "Possible Latin-1/ISO-8859-1"
    elif any(ord(char) > 255 for char in text):
        encoding = "Unicode/UTF-8"
    else:
        encoding = "ASCII/UTF-8"

    suspicious = []
    for index, char in enumerate(text):
        code = ord(char)
        if (code < 32 and char not in "\t\n\r") or 127 < code < 160 or (char == BOM and index > 0):
            suspicious.append(index)

    return EncodingAnalysis(has_bom=has_bom, encoding=encoding, suspicious_positions=suspicious)


def sanitize(text: str) -> str:
    """Strip a leading byte-order mark and surrounding whitespace."""
    if text.startswith(BOM):
        text = text[1:]
    return text.strip()
