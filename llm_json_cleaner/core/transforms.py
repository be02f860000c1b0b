"""
Pure text rewrites used by the repair fixers and pipeline strategies.

Each function takes the current text and returns ``(new_text, changes)``.
When nothing needs fixing the text comes back unchanged with an empty change
list. All string-awareness comes from :mod:`llm_json_cleaner.core.scanner`.
"""

from __future__ import annotations

import json
import re
from typing import Dict, List, Tuple

from llm_json_cleaner.core.scanner import (
    JSON_WHITESPACE,
    OPENERS,
    find_unmatched_brackets,
    missing_comma_positions,
    offset_in_spans,
    scan,
    scan_state,
    string_spans,
    trailing_comma_positions,
)
from llm_json_cleaner.core.types import ChangeRecord, ChangeType

TransformResult = Tuple[str, List[ChangeRecord]]

_SHORT_ESCAPES: Dict[str, str] = {
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
}
_CHAR_NAMES: Dict[str, str] = {"\n": "newline", "\r": "carriage return", "\t": "tab"}


def is_control_char(char: str) -> bool:
    """C0 control characters and DEL."""
    code = ord(char)
    return code < 0x20 or code == 0x7F


def escape_control_char(char: str) -> str:
    return _SHORT_ESCAPES.get(char) or f"\\u{ord(char):04x}"


def _char_name(char: str) -> str:
    return _CHAR_NAMES.get(char, f"U+{ord(char):04X}")


def escape_control_characters(text: str) -> TransformResult:
    """Escape raw control characters that sit inside string literals."""
    out: List[str] = []
    counts: Dict[str, int] = {}
    first_seen: Dict[str, int] = {}
    for event in scan(text):
        if event.in_string and is_control_char(event.char):
            if event.escaped and out and out[-1] == "\\":
                # A backslash right before a raw control character escapes nothing
                out.pop()
            out.append(escape_control_char(event.char))
            counts[event.char] = counts.get(event.char, 0) + 1
            first_seen.setdefault(event.char, event.index)
        else:
            out.append(event.char)

    if not counts:
        return text, []

    changes = [
        ChangeRecord(
            change_type=ChangeType.ESCAPE,
            location=first_seen[char],
            before=char,
            after=escape_control_char(char),
            count=count,
            note=f"Escaped {count} raw {_char_name(char)} inside strings",
        )
        for char, count in counts.items()
    ]
    return "".join(out), changes


def insert_missing_commas(text: str) -> TransformResult:
    """Insert a comma at every boundary the scanner flags as missing one."""
    positions = missing_comma_positions(text)
    if not positions:
        return text, []

    result = text
    changes: List[ChangeRecord] = []
    for position in reversed(positions):
        result = result[:position] + "," + result[position:]
        changes.append(
            ChangeRecord(
                change_type=ChangeType.ADD_COMMA,
                location=position,
                after=",",
                note="Inserted missing comma between values",
            )
        )
    changes.reverse()
    return result, changes


def remove_trailing_commas(text: str) -> TransformResult:
    """Drop commas that directly precede a closing brace or bracket."""
    positions = trailing_comma_positions(text)
    if not positions:
        return text, []

    result = text
    changes: List[ChangeRecord] = []
    for position in reversed(positions):
        result = result[:position] + result[position + 1:]
        changes.append(
            ChangeRecord(
                change_type=ChangeType.REMOVE,
                location=position,
                before=",",
                note="Removed trailing comma",
            )
        )
    changes.reverse()
    return result, changes


def balance_brackets(text: str) -> TransformResult:
    """
    Make braces and brackets pair up.

    In order: close a string left open at the end, insert closers in front of
    a closer that skips over still-open containers, drop closers that match
    nothing (last ones first), then append closers for everything still open,
    innermost first. Every bracket added or removed gets its own change record.
    """
    changes: List[ChangeRecord] = []
    result = text

    state = scan_state(result)
    if state.in_string:
        if state.escape_pending:
            result = result[:-1]
            changes.append(
                ChangeRecord(
                    change_type=ChangeType.REMOVE,
                    location=len(result),
                    before="\\",
                    note="Removed dangling escape at end of input",
                )
            )
        changes.append(
            ChangeRecord(
                change_type=ChangeType.FIX_QUOTE,
                location=len(result),
                after='"',
                note="Closed unterminated string",
            )
        )
        result += '"'

    report = find_unmatched_brackets(result)
    if report.is_balanced:
        return result, changes

    # (position, insertion text or None for removal)
    edits: List[Tuple[int, str]] = []
    for closer_at, skipped in report.missing_before:
        edits.append((closer_at, "".join(OPENERS[result[opener]] for opener in skipped)))
    for stray_at in report.stray:
        edits.append((stray_at, ""))

    for position, insertion in sorted(edits, key=lambda edit: edit[0], reverse=True):
        if insertion:
            result = result[:position] + insertion + result[position:]
            for offset, closer in enumerate(insertion):
                changes.append(
                    ChangeRecord(
                        change_type=ChangeType.ADD_BRACKET,
                        location=position + offset,
                        after=closer,
                        note=f"Inserted '{closer}' before mismatched closer",
                    )
                )
        else:
            removed = result[position]
            result = result[:position] + result[position + 1:]
            changes.append(
                ChangeRecord(
                    change_type=ChangeType.REMOVE_BRACKET,
                    location=position,
                    before=removed,
                    note=f"Removed unmatched '{removed}'",
                )
            )

    # Openers are untouched by the edits above, but their offsets may have shifted
    remaining = find_unmatched_brackets(result).unclosed
    for opener in reversed(remaining):
        closer = OPENERS[result[opener]]
        changes.append(
            ChangeRecord(
                change_type=ChangeType.ADD_BRACKET,
                location=len(result),
                after=closer,
                note=f"Appended missing '{closer}'",
            )
        )
        result += closer

    return result, changes


# ---------------------------------------------------------------------------
# Object that is really prose
# ---------------------------------------------------------------------------

_ENGLISH_STOPWORDS = (
    "the", "and", "or", "but", "with", "from", "to", "on", "in", "at", "by", "for",
    "of", "about", "over", "under", "before", "after", "between",
)
_GERMAN_STOPWORDS = (
    "der", "die", "das", "und", "oder", "mit", "von", "zu", "ist", "ein", "eine",
    "nicht", "auch", "auf", "für", "den", "dem", "sich",
)
_NARRATIVE_WORDS = (
    "story", "adventure", "landscape", "flowers", "animals", "situation",
    "character", "description",
)

_OBJECT_WITH_BODY = re.compile(r'"([^"]+)"\s*:\s*\{([^{}]*?)\}')
_PROSE_WORD = re.compile(
    r"\b(?:" + "|".join(_ENGLISH_STOPWORDS + _GERMAN_STOPWORDS + _NARRATIVE_WORDS) + r")\b",
    re.IGNORECASE,
)
_SENTENCE_BREAK = re.compile(r"[.!?]\s+[A-Z]")
_WORD_RUN = re.compile(r"\w+\s+\w+\s+\w+")
_LEADING_KEY = re.compile(r'^\s*"?[\w-]+"?\s*:')


def looks_like_prose(body: str) -> bool:
    """
    Heuristic: does an object body read like natural-language text?

    Best effort only. A body of three plain words or any common English or
    German stopword is enough, so short real objects with unquoted keys can
    be misread.
    """
    stripped = body.strip()
    if not stripped or '":' in stripped or _LEADING_KEY.match(stripped):
        return False
    return bool(
        _PROSE_WORD.search(stripped)
        or _SENTENCE_BREAK.search(stripped)
        or _WORD_RUN.search(stripped)
    )


def _escape_prose(body: str) -> str:
    escaped = (
        body.strip()
        .replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return "".join(char for char in escaped if not is_control_char(char))


def objects_to_strings(text: str) -> TransformResult:
    """Rewrite ``"field": { free prose }`` into ``"field": "free prose"``."""
    spans = string_spans(text)
    matches = [
        match
        for match in _OBJECT_WITH_BODY.finditer(text)
        if not offset_in_spans(spans, match.start()) and looks_like_prose(match.group(2))
    ]
    if not matches:
        return text, []

    result = text
    changes: List[ChangeRecord] = []
    for match in reversed(matches):
        replacement = f'"{match.group(1)}": "{_escape_prose(match.group(2))}"'
        result = result[:match.start()] + replacement + result[match.end():]
        changes.append(
            ChangeRecord(
                change_type=ChangeType.STRUCTURAL_FIX,
                location=match.start(),
                before=match.group(0)[:120],
                after=replacement[:120],
                note=f"Converted prose object in field '{match.group(1)}' to string",
            )
        )
    changes.reverse()
    return result, changes


# ---------------------------------------------------------------------------
# Quotes and duplicates
# ---------------------------------------------------------------------------

_STRING_PAIR = re.compile(r'("([^"]+)"\s*:\s*")([\s\S]*?)("(?=\s*[,}]))')
_UNESCAPED_QUOTE = re.compile(r'(?<!\\)"')
_KEY_BOUNDARY = re.compile(r'"\s*:\s*')


def escape_inner_quotes(text: str) -> TransformResult:
    """Escape bare quotes inside ``"key": "value"`` string values."""
    changes: List[ChangeRecord] = []

    def _replace(match: "re.Match[str]") -> str:
        content = match.group(3)
        # A value that swallowed a key boundary spans several pairs; leave it alone
        if '"' not in content or _KEY_BOUNDARY.search(content):
            return match.group(0)
        escaped = _UNESCAPED_QUOTE.sub('\\\\"', content)
        if escaped == content:
            return match.group(0)
        try:
            json.loads(f'"{escaped}"')
        except json.JSONDecodeError:
            return match.group(0)
        changes.append(
            ChangeRecord(
                change_type=ChangeType.ESCAPE,
                location=match.start(3),
                before=content[:120],
                after=escaped[:120],
                count=content.count('"') - content.count('\\"'),
                note=f"Escaped inner quotes in field '{match.group(2)}'",
            )
        )
        return match.group(1) + escaped + match.group(4)

    result = _STRING_PAIR.sub(_replace, text)
    return result, changes


_DUPLICATE_PAIR = re.compile(r'("((?:[^"\\]|\\.)+)"\s*:\s*"(?:[^"\\]|\\.)*"\s*,\s*)(?="\2"\s*:)')


def remove_duplicate_keys(text: str) -> TransformResult:
    """
    Remove a string-valued pair immediately followed by the same key.

    If the result parses as a top-level array, exact duplicate entries are
    dropped as well.
    """
    spans = string_spans(text)
    changes: List[ChangeRecord] = []
    pieces: List[str] = []
    cursor = 0
    for match in _DUPLICATE_PAIR.finditer(text):
        if offset_in_spans(spans, match.start()):
            continue
        pieces.append(text[cursor:match.start()])
        cursor = match.end(1)
        changes.append(
            ChangeRecord(
                change_type=ChangeType.REMOVE_DUPLICATE,
                location=match.start(),
                before=match.group(1)[:120],
                note=f"Removed duplicate key '{match.group(2)}'",
            )
        )
    pieces.append(text[cursor:])
    result = "".join(pieces)

    try:
        parsed = json.loads(result)
    except json.JSONDecodeError:
        return result, changes

    if isinstance(parsed, list):
        seen = set()
        unique = []
        for item in parsed:
            fingerprint = json.dumps(item, sort_keys=True)
            if fingerprint in seen:
                continue
            seen.add(fingerprint)
            unique.append(item)
        if len(unique) != len(parsed):
            changes.append(
                ChangeRecord(
                    change_type=ChangeType.REMOVE_DUPLICATE,
                    count=len(parsed) - len(unique),
                    note="Removed duplicate array entries",
                )
            )
            result = json.dumps(unique, ensure_ascii=False)

    return result, changes


# ---------------------------------------------------------------------------
# Last resort
# ---------------------------------------------------------------------------

def aggressive_rewrite(text: str) -> TransformResult:
    """
    Character-by-character rebuild of the text.

    Escapes every control character inside strings, drops control characters
    outside strings that are not JSON whitespace and closes a string left
    open at the end. The output may still not parse.
    """
    out: List[str] = []
    escaped = 0
    dropped = 0
    for event in scan(text):
        char = event.char
        if event.in_string and is_control_char(char):
            if event.escaped and out and out[-1] == "\\":
                out.pop()
            out.append(escape_control_char(char))
            escaped += 1
        elif not event.in_string and not event.is_delimiter and is_control_char(char) and char not in JSON_WHITESPACE:
            dropped += 1
        else:
            out.append(char)

    changes: List[ChangeRecord] = []
    if escaped:
        changes.append(
            ChangeRecord(
                change_type=ChangeType.ESCAPE,
                count=escaped,
                note=f"Escaped {escaped} control characters inside strings",
            )
        )
    if dropped:
        changes.append(
            ChangeRecord(
                change_type=ChangeType.REMOVE,
                count=dropped,
                note=f"Dropped {dropped} control characters outside strings",
            )
        )

    state = scan_state(text)
    if state.in_string:
        if state.escape_pending and out and out[-1] == "\\":
            out.pop()
        out.append('"')
        changes.append(
            ChangeRecord(
                change_type=ChangeType.FIX_QUOTE,
                location=len(text),
                after='"',
                note="Closed unterminated string",
            )
        )

    if not changes:
        return text, []
    return "".join(out), changes
