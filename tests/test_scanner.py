"""Tests for the string-aware scanner and the text transforms built on it."""

import json

from llm_json_cleaner.core.scanner import (
    bracket_counts,
    ends_inside_string,
    find_unmatched_brackets,
    is_inside_string,
    missing_comma_positions,
    string_spans,
    trailing_comma_positions,
)
from llm_json_cleaner.core.transforms import (
    aggressive_rewrite,
    balance_brackets,
    escape_control_characters,
    escape_inner_quotes,
    insert_missing_commas,
    looks_like_prose,
    objects_to_strings,
    remove_duplicate_keys,
    remove_trailing_commas,
)
from llm_json_cleaner.core.types import ChangeType


def test_is_inside_string():
    """Test offsets inside and outside string literals."""
    text = '{"a": 1}'
    assert is_inside_string(text, 2) is True
    assert is_inside_string(text, 1) is False
    assert is_inside_string(text, 6) is False


def test_escaped_quote_does_not_end_string():
    """Test that an escaped quote keeps the scanner inside the string."""
    assert ends_inside_string('{"a": "say \\"hi') is True
    assert ends_inside_string('{"a": "say \\"hi\\""}') is False


def test_string_spans_unterminated():
    """Test that an open final string ends at the end of the text."""
    assert string_spans('"a" "b') == [(0, 2), (4, 6)]


def test_bracket_counts_ignore_strings():
    """Test that brackets inside strings are not counted."""
    counts = bracket_counts('{"a": "{[}"}')
    assert counts.open_braces == 1
    assert counts.close_braces == 1
    assert counts.open_brackets == 0
    assert counts.is_balanced


def test_find_unmatched_brackets():
    """Test the stack report for unclosed, stray and skipped openers."""
    assert find_unmatched_brackets('[{"a": 1').unclosed == [0, 1]
    assert find_unmatched_brackets('{"a": 1}}').stray == [8]
    assert find_unmatched_brackets('{"a": [1, 2}').missing_before == [(11, [6])]


def test_missing_comma_positions():
    """Test that missing separators are found between object pairs and array items."""
    assert missing_comma_positions('{"a": [1,2] "b": "x"}') == [11]
    assert missing_comma_positions("[1 2]") == [2]
    assert missing_comma_positions('["a" "b"]') == [4]
    assert missing_comma_positions('{"a": "1 2"}') == []


def test_trailing_comma_positions():
    """Test that only commas before a closer are reported."""
    assert trailing_comma_positions("[1, 2, ]") == [5]
    assert trailing_comma_positions('{"a": ",}"}') == []


def test_escape_control_characters():
    """Test that raw newlines inside strings are escaped and others left alone."""
    fixed, changes = escape_control_characters('{"a": "x\ny"}')
    assert fixed == '{"a": "x\\ny"}'
    assert len(changes) == 1
    assert changes[0].change_type == ChangeType.ESCAPE

    text = '{\n"a": 1}'
    assert escape_control_characters(text) == (text, [])


def test_escape_control_character_after_backslash():
    """Test that a backslash in front of a raw newline is not doubled into a literal backslash."""
    raw = '{"a": "x\\\ny"}'
    expected = '{"a": "x\\ny"}'

    fixed, _ = escape_control_characters(raw)
    assert fixed == expected
    assert json.loads(fixed) == {"a": "x\ny"}

    fixed, _ = aggressive_rewrite(raw)
    assert fixed == expected


def test_insert_missing_commas():
    """Test comma insertion."""
    fixed, changes = insert_missing_commas('{"a": [1,2] "b": "x"}')
    assert fixed == '{"a": [1,2], "b": "x"}'
    assert [change.change_type for change in changes] == [ChangeType.ADD_COMMA]


def test_remove_trailing_commas():
    """Test trailing comma removal."""
    fixed, changes = remove_trailing_commas('{"a": [1, 2,],}')
    assert fixed == '{"a": [1, 2]}'
    assert len(changes) == 2


def test_balance_brackets_appends_closers():
    """Test that open containers are closed innermost first."""
    fixed, changes = balance_brackets('[{"a": 1')
    assert fixed == '[{"a": 1}]'
    assert [change.after for change in changes] == ["}", "]"]


def test_balance_brackets_inserts_before_mismatched_closer():
    """Test that a closer skipping an open array gets the missing bracket first."""
    fixed, _ = balance_brackets('{"a": [1, 2}')
    assert fixed == '{"a": [1, 2]}'


def test_balance_brackets_removes_stray_closer():
    """Test stray closer removal."""
    fixed, changes = balance_brackets('{"a": 1}}')
    assert fixed == '{"a": 1}'
    assert changes[0].change_type == ChangeType.REMOVE_BRACKET


def test_balance_brackets_closes_open_string():
    """Test that an unterminated string is closed before brackets are balanced."""
    fixed, changes = balance_brackets('{"a": "hel')
    assert fixed == '{"a": "hel"}'
    assert changes[0].change_type == ChangeType.FIX_QUOTE


def test_balance_brackets_drops_dangling_escape():
    """Test that a trailing backslash is removed before the string is closed."""
    fixed, _ = balance_brackets('{"a": "x\\')
    assert fixed == '{"a": "x"}'


def test_objects_to_strings():
    """Test that prose wrapped in braces becomes a string value."""
    fixed, changes = objects_to_strings('{"summary": {The story of the day}}')
    assert fixed == '{"summary": "The story of the day"}'
    assert len(changes) == 1


def test_objects_to_strings_leaves_real_objects():
    """Test that nested objects with keys are untouched."""
    text = '{"a": {"b": 1}}'
    assert objects_to_strings(text) == (text, [])
    assert looks_like_prose('"b": 1') is False


def test_escape_inner_quotes():
    """Test escaping of bare quotes inside a string value."""
    fixed, changes = escape_inner_quotes('{"text": "He said "hi" to me"}')
    assert fixed == '{"text": "He said \\"hi\\" to me"}'
    assert changes[0].count == 2


def test_remove_duplicate_keys():
    """Test that an immediately repeated key keeps the later value."""
    fixed, changes = remove_duplicate_keys('{"a": "1", "a": "2"}')
    assert fixed == '{"a": "2"}'
    assert changes[0].change_type == ChangeType.REMOVE_DUPLICATE


def test_remove_duplicate_array_entries():
    """Test that exact duplicate array entries are dropped."""
    fixed, _ = remove_duplicate_keys("[1, 1, 2]")
    assert fixed == "[1, 2]"


def test_aggressive_rewrite():
    """Test the last-resort rewrite."""
    fixed, changes = aggressive_rewrite('{"a": "x\ny')
    assert fixed == '{"a": "x\\ny"'
    assert {change.change_type for change in changes} == {ChangeType.ESCAPE, ChangeType.FIX_QUOTE}

    fixed, _ = aggressive_rewrite('\x01{"a": 1}')
    assert fixed == '{"a": 1}'
