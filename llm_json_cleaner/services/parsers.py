"""
Extraction parsers.

Each parser peels one layer of LLM wrapping off the raw output: reasoning
blocks, markdown fences, or surrounding prose. They never try to repair the
JSON itself.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from llm_json_cleaner.config import settings
from llm_json_cleaner.core.scanner import OPENERS, scan
from llm_json_cleaner.services.analyzer import json_likelihood
from llm_json_cleaner.services.validation import is_valid

logger = logging.getLogger(__name__)

REASONING_TAGS = ("think", "reasoning", "analysis", "planning")

_FENCE = "```"
_OPENING_FENCE = re.compile(r"^```(?:json|javascript|js|text)?[ \t]*\r?\n?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```\s*$")
_OPENER = re.compile(r"[{\[]")
_LABELLED_JSON = re.compile(
    r"(?:response|result|json|output)\s*:\s*(\{[\s\S]*\}|\[[\s\S]*\])",
    re.IGNORECASE,
)


class ParseResult(NamedTuple):
    json: str
    reasoning: str


def _block_pattern(tag: str) -> "re.Pattern[str]":
    escaped = re.escape(tag)
    return re.compile(rf"<{escaped}>([\s\S]*?)</{escaped}>", re.IGNORECASE)


class ReasoningParser:
    """Pull ``<think>`` style reasoning out of the text."""

    def __init__(self, tag: str = "think"):
        self.tag = tag
        self.name = f"{tag}-tag-parser"
        self._pattern = _block_pattern(tag)

    def parse(self, text: str) -> ParseResult:
        match = self._pattern.search(text)
        if not match:
            return ParseResult(text.strip(), "")

        reasoning = match.group(1).strip()
        result = self._pattern.sub("", text).strip()
        logger.debug(
            f"{self.name} removed reasoning blocks",
            extra={"before_length": len(text), "after_length": len(result)},
        )
        return ParseResult(result, reasoning)


def _closing_fence(body: str) -> Optional[int]:
    """Position of the first fence that is not part of a string value."""
    for event in scan(body):
        if event.char == "`" and not event.in_string and body.startswith(_FENCE, event.index):
            return event.index
    return None


class MarkdownParser:
    """Strip a markdown code fence wrapped around the whole output."""

    name = "markdown-parser"

    def parse(self, text: str) -> ParseResult:
        trimmed = text.strip()
        if not trimmed.startswith(_FENCE):
            return ParseResult(trimmed, "")

        body = _OPENING_FENCE.sub("", trimmed, count=1)
        closing = _closing_fence(body)
        if closing is not None:
            body = body[:closing]
        else:
            body = _TRAILING_FENCE.sub("", body)
        result = body.strip()

        logger.debug(
            f"{self.name} stripped code fence",
            extra={"before_length": len(text), "after_length": len(result)},
        )
        return ParseResult(result, "")


def _candidate_score(candidate: str, truncated: bool) -> float:
    if truncated:
        # Score a truncated document as if its outer closer were present
        candidate = candidate + OPENERS[candidate[0]]
    return json_likelihood(candidate)


class JsonExtractor:
    """
    Locate the JSON document inside surrounding prose.

    Candidates are tried from each ``{`` or ``[`` in turn. From an opener only
    brackets of the same kind are counted, and brackets inside strings are
    ignored. When a balanced candidate fails to parse the search resumes after
    it, so fragments nested inside a broken document are never returned on
    their own.

    When nothing parses, the unparsed candidate that looks most like JSON is
    returned, so bracketed prose ahead of a broken document does not win.
    """

    name = "json-extractor"

    def __init__(self, max_candidates: Optional[int] = None):
        self.max_candidates = max_candidates or settings.extractor_max_candidates

    def parse(self, text: str) -> ParseResult:
        trimmed = text.strip()
        if not trimmed or is_valid(trimmed):
            return ParseResult(trimmed, "")

        # (candidate, truncated) pairs that did not parse
        failed: List[Tuple[str, bool]] = []
        tried = 0
        position = 0

        while tried < self.max_candidates:
            match = _OPENER.search(trimmed, position)
            if not match:
                break
            start = match.start()
            tried += 1

            end = self._find_balanced_end(trimmed, start)
            if end is None:
                # Everything after an unclosed opener belongs to a truncated document
                failed.append((trimmed[start:], True))
                break

            candidate = trimmed[start:end + 1]
            if is_valid(candidate):
                self._log_extraction(text, candidate)
                return ParseResult(candidate, "")
            failed.append((candidate, False))
            position = end + 1

        labelled = _LABELLED_JSON.search(trimmed)
        if labelled and is_valid(labelled.group(1)):
            self._log_extraction(text, labelled.group(1))
            return ParseResult(labelled.group(1), "")

        if failed:
            # Bracketed prose often precedes the real document
            result = max(failed, key=lambda item: _candidate_score(*item))[0]
        else:
            result = trimmed

        self._log_extraction(text, result)
        return ParseResult(result, "")

    @staticmethod
    def _find_balanced_end(text: str, start: int) -> Optional[int]:
        opener = text[start]
        closer = OPENERS[opener]
        depth = 0
        for event in scan(text, start):
            if event.in_string or event.is_delimiter:
                continue
            if event.char == opener:
                depth += 1
            elif event.char == closer:
                depth -= 1
                if depth == 0:
                    return event.index
        return None

    def _log_extraction(self, before: str, after: str) -> None:
        if before.strip() != after:
            logger.debug(
                f"{self.name} extracted JSON candidate",
                extra={"before_length": len(before), "after_length": len(after)},
            )


def default_parsers(max_candidates: Optional[int] = None) -> Tuple[ReasoningParser, MarkdownParser, JsonExtractor]:
    """The fixed parser chain: reasoning, then markdown fences, then the extractor."""
    return (ReasoningParser(), MarkdownParser(), JsonExtractor(max_candidates))


def run_parsers(text: str, parsers: Sequence[Any]) -> ParseResult:
    """Feed ``text`` through ``parsers`` in order, keeping the first reasoning found."""
    current = text
    reasoning = ""
    for parser in parsers:
        result = parser.parse(current)
        if result.reasoning and not reasoning:
            reasoning = result.reasoning
        current = result.json
    return ParseResult(current, reasoning)


def extract_all_reasoning(text: str, tags: Sequence[str] = REASONING_TAGS) -> Dict[str, str]:
    """Get the first block of each reasoning tag, or an empty string when absent."""
    found: Dict[str, str] = {}
    for tag in tags:
        match = _block_pattern(tag).search(text)
        found[tag] = match.group(1).strip() if match else ""
    return found


def strip_reasoning(text: str) -> str:
    """Remove every ``<think>`` block from ``text``."""
    return _block_pattern("think").sub("", text).strip()
