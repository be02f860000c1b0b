"""
String-aware structural scanner.

Every component that has to tell string contents apart from JSON syntax
(escaping control characters, balancing brackets, finding property
boundaries) goes through this module. The scanner is a single pass over the
text tracking two bits of state: whether we are inside a string literal and
whether the previous character was an escaping backslash.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

OPENERS: Dict[str, str] = {"{": "}", "[": "]"}
CLOSERS: Dict[str, str] = {"}": "{", "]": "["}
JSON_WHITESPACE = " \t\n\r"

# Characters that make up number / true / false / null literals
_PRIMITIVE_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789+-."
)


class ScanEvent(NamedTuple):
    """One character as seen by the scanner."""

    index: int
    char: str
    in_string: bool  # part of a string literal's contents
    escaped: bool  # preceded by an escaping backslash
    is_delimiter: bool  # opening or closing quote of a string literal


class ScanState(NamedTuple):
    """Scanner state after the last character."""

    in_string: bool
    escape_pending: bool


class BracketCounts(NamedTuple):
    """Counts of structural brackets outside string literals."""

    open_braces: int
    close_braces: int
    open_brackets: int
    close_brackets: int

    @property
    def is_balanced(self) -> bool:
        return self.open_braces == self.close_braces and self.open_brackets == self.close_brackets

    @property
    def imbalance(self) -> int:
        return abs(self.open_braces - self.close_braces) + abs(self.open_brackets - self.close_brackets)


@dataclass
class BracketReport:
    """
    Result of matching every structural bracket against a stack.

    Attributes:
        unclosed: Positions of openers that are never closed, outermost first
        stray: Positions of closers with no matching opener anywhere on the stack
        missing_before: (closer position, opener positions innermost first) for
            closers that skip over openers still waiting for their own closer
    """

    unclosed: List[int] = field(default_factory=list)
    stray: List[int] = field(default_factory=list)
    missing_before: List[Tuple[int, List[int]]] = field(default_factory=list)

    @property
    def is_balanced(self) -> bool:
        return not (self.unclosed or self.stray or self.missing_before)


def scan(text: str, start: int = 0) -> Iterator[ScanEvent]:
    """
    Walk ``text`` from ``start`` and yield one event per character.

    Scanning always starts outside a string. Backslash escapes are only
    honoured inside string literals.
    """
    in_string = False
    escape_pending = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escape_pending:
                escape_pending = False
                yield ScanEvent(index, char, True, True, False)
            elif char == "\\":
                escape_pending = True
                yield ScanEvent(index, char, True, False, False)
            elif char == '"':
                in_string = False
                yield ScanEvent(index, char, False, False, True)
            else:
                yield ScanEvent(index, char, True, False, False)
        elif char == '"':
            in_string = True
            yield ScanEvent(index, char, False, False, True)
        else:
            yield ScanEvent(index, char, False, False, False)


def scan_state(text: str) -> ScanState:
    """Return the scanner state after consuming all of ``text``."""
    in_string = False
    escape_pending = False
    for event in scan(text):
        if event.is_delimiter:
            in_string = not in_string
            escape_pending = False
        elif event.in_string:
            in_string = True
            escape_pending = event.char == "\\" and not event.escaped
    return ScanState(in_string, escape_pending)


def ends_inside_string(text: str) -> bool:
    """Check whether ``text`` ends in the middle of a string literal."""
    return scan_state(text).in_string


def is_inside_string(text: str, offset: int) -> bool:
    """
    Report whether ``offset`` lies inside a string literal.

    Quote delimiters themselves are not considered inside. An offset equal to
    ``len(text)`` reports whether the text ends inside an open string.
    """
    if offset < 0 or offset > len(text):
        return False
    if offset == len(text):
        return ends_inside_string(text)
    for event in scan(text):
        if event.index == offset:
            return event.in_string
    return False


def string_spans(text: str) -> List[Tuple[int, int]]:
    """
    Locate every string literal.

    Returns:
        (opening quote, closing quote) index pairs. An unterminated final
        string ends at ``len(text)``.
    """
    spans: List[Tuple[int, int]] = []
    opened: Optional[int] = None
    for event in scan(text):
        if not event.is_delimiter:
            continue
        if opened is None:
            opened = event.index
        else:
            spans.append((opened, event.index))
            opened = None
    if opened is not None:
        spans.append((opened, len(text)))
    return spans


def offset_in_spans(spans: Sequence[Tuple[int, int]], offset: int) -> bool:
    """Check whether ``offset`` falls strictly inside one of the sorted ``spans``."""
    pos = bisect_right([start for start, _ in spans], offset) - 1
    if pos < 0:
        return False
    start, end = spans[pos]
    return start < offset < end


def bracket_counts(text: str) -> BracketCounts:
    """Count structural brackets, ignoring anything inside strings."""
    counts = {"{": 0, "}": 0, "[": 0, "]": 0}
    for event in scan(text):
        if not event.in_string and not event.is_delimiter and event.char in counts:
            counts[event.char] += 1
    return BracketCounts(counts["{"], counts["}"], counts["["], counts["]"])


def find_unmatched_brackets(text: str) -> BracketReport:
    """Match structural brackets with a stack and report everything left over."""
    report = BracketReport()
    stack: List[int] = []
    for event in scan(text):
        if event.in_string or event.is_delimiter:
            continue
        char = event.char
        if char in OPENERS:
            stack.append(event.index)
            continue
        if char not in CLOSERS:
            continue
        wanted = CLOSERS[char]
        if stack and text[stack[-1]] == wanted:
            stack.pop()
            continue
        depth = next((i for i in range(len(stack) - 1, -1, -1) if text[stack[i]] == wanted), None)
        if depth is None:
            report.stray.append(event.index)
        else:
            skipped = list(reversed(stack[depth + 1:]))
            report.missing_before.append((event.index, skipped))
            del stack[depth:]
    report.unclosed = stack
    return report


def next_significant(text: str, start: int) -> Optional[int]:
    """Index of the first non-whitespace character at or after ``start``."""
    for index in range(start, len(text)):
        if text[index] not in JSON_WHITESPACE:
            return index
    return None


def missing_comma_positions(text: str) -> List[int]:
    """
    Find offsets where a comma separator is missing.

    A completed value (string, object, array or primitive) followed, after
    only whitespace, by a quoted key and colon inside an object, or by any
    value start inside an array, is missing its comma. The returned offsets
    sit directly after the completed value, which is where the comma belongs.
    """
    spans = {start: end for start, end in string_spans(text)}
    positions: List[int] = []
    stack: List[str] = []
    value_end: Optional[int] = None
    index = 0
    length = len(text)

    while index < length:
        char = text[index]
        if char in JSON_WHITESPACE:
            index += 1
            continue

        if char == '"':
            end = spans.get(index, length)
            if end >= length:
                break  # unterminated string, nothing reliable beyond this point
            follower = next_significant(text, end + 1)
            is_key = bool(stack) and stack[-1] == "{" and follower is not None and text[follower] == ":"
            if value_end is not None and stack and (stack[-1] == "[" or is_key):
                positions.append(value_end)
            value_end = None if is_key else end + 1
            index = end + 1
            continue

        if char in OPENERS:
            if value_end is not None and stack and stack[-1] == "[":
                positions.append(value_end)
            stack.append(char)
            value_end = None
            index += 1
            continue

        if char in CLOSERS:
            if stack and stack[-1] == CLOSERS[char]:
                stack.pop()
            value_end = index + 1
            index += 1
            continue

        if char in ",:":
            value_end = None
            index += 1
            continue

        if char in _PRIMITIVE_CHARS:
            end = index
            while end < length and text[end] in _PRIMITIVE_CHARS:
                end += 1
            if value_end is not None and stack and stack[-1] == "[":
                positions.append(value_end)
            value_end = end
            index = end
            continue

        value_end = None
        index += 1

    return positions


def trailing_comma_positions(text: str) -> List[int]:
    """Find commas outside strings that are directly followed by ``}`` or ``]``."""
    positions: List[int] = []
    for event in scan(text):
        if event.char != "," or event.in_string or event.is_delimiter:
            continue
        follower = next_significant(text, event.index + 1)
        if follower is not None and text[follower] in CLOSERS:
            positions.append(event.index)
    return positions
