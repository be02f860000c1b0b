"""Read-only diagnosis of broken JSON: what is wrong and which repairs to try."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from llm_json_cleaner.core.scanner import (
    BracketCounts,
    bracket_counts,
    ends_inside_string,
    find_unmatched_brackets,
    missing_comma_positions,
    scan,
)
from llm_json_cleaner.core.transforms import is_control_char
from llm_json_cleaner.services.validation import analyze_encoding

logger = logging.getLogger(__name__)

CONTEXT_RADIUS = 50

COMMA_FIXER = "comma-fixer"
CONTROL_CHARACTER_CLEANER = "control-character-cleaner"
STRING_ESCAPER = "string-escaper"
BRACKET_BALANCER = "bracket-balancer"
AGGRESSIVE_CLEANER = "aggressive-cleaner"

_STRATEGY_PRIORITY = (COMMA_FIXER, CONTROL_CHARACTER_CLEANER, STRING_ESCAPER, BRACKET_BALANCER)
_SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2}
_VISIBLE_WHITESPACE = str.maketrans({"\n": "↵", "\r": "⏎", "\t": "→"})

_HTML_TAG = re.compile(r"<[^>]+>")
_PLAIN_TEXT = re.compile(r"^[A-Za-z\s]+$")
_LITERALS = re.compile(r"true|false|null")


@dataclass
class SpecificIssues:
    comma: bool = False
    control_chars: bool = False
    brackets: bool = False
    quotes: bool = False


@dataclass
class Diagnosis:
    """Everything known about a text's problems, without modifying it."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    severity: str = "low"
    can_be_fixed: bool = True
    specific_issues: SpecificIssues = field(default_factory=SpecificIssues)
    repair_strategy: List[str] = field(default_factory=list)
    error_position: Optional[int] = None
    problem_context: Optional[str] = None
    has_bom: bool = False
    encoding: str = "ASCII/UTF-8"
    suspicious_positions: List[int] = field(default_factory=list)
    control_char_positions: List[int] = field(default_factory=list)
    bracket_counts: Optional[BracketCounts] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "suggestions": list(self.suggestions),
            "severity": self.severity,
            "can_be_fixed": self.can_be_fixed,
            "specific_issues": {
                "comma": self.specific_issues.comma,
                "control_chars": self.specific_issues.control_chars,
                "brackets": self.specific_issues.brackets,
                "quotes": self.specific_issues.quotes,
            },
            "repair_strategy": list(self.repair_strategy),
            "error_position": self.error_position,
            "problem_context": self.problem_context,
            "has_bom": self.has_bom,
            "encoding": self.encoding,
            "suspicious_positions": list(self.suspicious_positions),
            "control_char_positions": list(self.control_char_positions),
            "bracket_counts": self.bracket_counts._asdict() if self.bracket_counts else None,
        }


@dataclass
class IssueCounts:
    total: int
    comma: int
    bracket: int
    quote: int
    control_char: int


def json_likelihood(content: str) -> float:
    """Score from 0 to 1 how much ``content`` looks like a JSON document."""
    stripped = content.strip()
    score = 0.0
    if (stripped.startswith("{") and stripped.endswith("}")) or (
        stripped.startswith("[") and stripped.endswith("]")
    ):
        score += 0.4
    if '"' in content and ":" in content:
        score += 0.3
    if _LITERALS.search(content):
        score += 0.2
    if _HTML_TAG.search(content):
        score -= 0.2
    if _PLAIN_TEXT.match(content):
        score -= 0.3
    return max(0.0, min(1.0, score))


def control_char_positions(text: str) -> List[int]:
    """Offsets of raw control characters inside string literals."""
    return [event.index for event in scan(text) if event.in_string and is_control_char(event.char)]


def extract_error_context(text: str, position: int, radius: int = CONTEXT_RADIUS) -> str:
    """Show the text around ``position`` with the offending character marked."""
    start = max(0, position - radius)
    end = min(len(text), position + radius)
    before = text[start:position].translate(_VISIBLE_WHITESPACE)
    current = text[position] if position < len(text) else ""
    after = text[position + 1:end].translate(_VISIBLE_WHITESPACE)
    return f"...{before}【{current}】{after}..."


def _raise_severity(current: str, candidate: str) -> str:
    return candidate if _SEVERITY_RANK[candidate] > _SEVERITY_RANK[current] else current


def diagnose(text: str) -> Diagnosis:
    """
    Analyze ``text`` and describe what keeps it from parsing.

    The parser's error message is mapped to issue classes, then a structural
    pass (missing commas, bracket balance) runs whether or not the text parses.

    Args:
        text: Candidate JSON document

    Returns:
        Diagnosis with errors, suggestions and an ordered repair strategy
    """
    diagnosis = Diagnosis(is_valid=False)
    issues = diagnosis.specific_issues
    strategy: List[str] = []

    try:
        json.loads(text)
        diagnosis.is_valid = True
    except json.JSONDecodeError as e:
        diagnosis.errors.append(f"JSON Parse Error: {e}")
        diagnosis.error_position = e.pos
        diagnosis.problem_context = extract_error_context(text, e.pos)
        message = e.msg
        at_end = e.pos >= len(text.rstrip())

        if message.startswith("Expecting ',' delimiter"):
            issues.comma = True
            diagnosis.errors.append("Missing comma between JSON values")
            diagnosis.suggestions.append("Add the missing commas between values")
            strategy.append(COMMA_FIXER)
            diagnosis.severity = _raise_severity(diagnosis.severity, "medium")

        if message.startswith("Invalid control character"):
            issues.control_chars = True
            diagnosis.errors.append("Invalid control characters in JSON strings")
            diagnosis.suggestions.append("Escape control characters inside strings")
            strategy.append(CONTROL_CHARACTER_CLEANER)
            diagnosis.severity = _raise_severity(diagnosis.severity, "high")

        if (message.startswith("Expecting value") and at_end) or message.startswith("Extra data"):
            issues.brackets = True
            diagnosis.errors.append("Missing or extra closing brackets")
            diagnosis.suggestions.append("Check for unbalanced brackets and quote marks")
            strategy.append(BRACKET_BALANCER)
            diagnosis.severity = _raise_severity(diagnosis.severity, "high")

        if message.startswith(("Unterminated string", "Expecting ':' delimiter", "Expecting property name")):
            issues.quotes = True
            diagnosis.errors.append("Unescaped or missing quotes in JSON strings")
            diagnosis.suggestions.append("Escape inner quotes and close open strings")
            strategy.append(STRING_ESCAPER)
            diagnosis.severity = _raise_severity(diagnosis.severity, "medium")

    # Structural pass, also for valid JSON
    commas = missing_comma_positions(text)
    if commas:
        issues.comma = True
        diagnosis.errors.append(f"{len(commas)} value(s) not separated by a comma")
        diagnosis.suggestions.append("Add comma after the value before the next one")
        strategy.append(COMMA_FIXER)
        diagnosis.severity = _raise_severity(diagnosis.severity, "medium")

    counts = bracket_counts(text)
    diagnosis.bracket_counts = counts
    bracket_errors = []
    if counts.open_braces != counts.close_braces:
        bracket_errors.append(
            f"Unbalanced curly brackets: {counts.open_braces} open, {counts.close_braces} close"
        )
    if counts.open_brackets != counts.close_brackets:
        bracket_errors.append(
            f"Unbalanced square brackets: {counts.open_brackets} open, {counts.close_brackets} close"
        )
    if find_unmatched_brackets(text).missing_before:
        bracket_errors.append("Mixed closing brackets detected")
    if ends_inside_string(text):
        bracket_errors.append("Unterminated string at end of input")
    if bracket_errors:
        issues.brackets = True
        diagnosis.errors.extend(bracket_errors)
        diagnosis.suggestions.append("Balance opening and closing brackets")
        strategy.append(BRACKET_BALANCER)
        diagnosis.severity = "high"

    diagnosis.control_char_positions = control_char_positions(text)
    if diagnosis.control_char_positions and not issues.control_chars:
        issues.control_chars = True
        strategy.append(CONTROL_CHARACTER_CLEANER)
        diagnosis.severity = _raise_severity(diagnosis.severity, "high")

    encoding = analyze_encoding(text)
    diagnosis.has_bom = encoding.has_bom
    diagnosis.encoding = encoding.encoding
    diagnosis.suspicious_positions = encoding.suspicious_positions

    diagnosis.repair_strategy = prioritize_repair_strategies(strategy, diagnosis.severity)
    diagnosis.can_be_fixed = bool(diagnosis.errors) and diagnosis.severity != "high"

    logger.debug(
        f"Diagnosed text: valid={diagnosis.is_valid}, severity={diagnosis.severity}",
        extra={"repair_strategy": diagnosis.repair_strategy, "text_length": len(text)},
    )
    return diagnosis


def prioritize_repair_strategies(names: List[str], severity: str) -> List[str]:
    """
    Order strategy names by how likely they are to resolve the problem.

    Commas first, then control characters, quotes and brackets, then anything
    else in the given order. The aggressive cleaner is appended for high
    severity. Duplicates are dropped.
    """
    unique = list(dict.fromkeys(names))
    ordered = [name for name in _STRATEGY_PRIORITY if name in unique]
    ordered.extend(name for name in unique if name not in _STRATEGY_PRIORITY and name != AGGRESSIVE_CLEANER)
    if severity == "high" or AGGRESSIVE_CLEANER in unique:
        ordered.append(AGGRESSIVE_CLEANER)
    return ordered


def get_issue_counts(text: str) -> IssueCounts:
    """Count the problems of each class found in ``text``."""
    comma = len(missing_comma_positions(text))

    counts = bracket_counts(text)
    report = find_unmatched_brackets(text)
    bracket = 0
    if counts.open_braces != counts.close_braces:
        bracket += 1
    if counts.open_brackets != counts.close_brackets:
        bracket += 1
    bracket += len(report.missing_before)

    quote = 1 if ends_inside_string(text) else 0
    control_char = len(control_char_positions(text))

    return IssueCounts(
        total=comma + bracket + quote + control_char,
        comma=comma,
        bracket=bracket,
        quote=quote,
        control_char=control_char,
    )
