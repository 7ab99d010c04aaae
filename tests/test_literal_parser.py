"""Relaxed object-literal parser tests."""
from __future__ import annotations

import re

import pytest

from envserve.literal import LiteralSyntaxError, find_literal_end, parse_object_literal


def test_parses_unquoted_keys_and_scalars() -> None:
    """Identifier keys and literal scalars are accepted."""
    result = parse_object_literal(
        "{ apiUrl: 'https://api.example.test', retries: 3, ratio: -0.5, "
        "debug: true, legacy: false, token: null }"
    )

    assert result == {
        "apiUrl": "https://api.example.test",
        "retries": 3,
        "ratio": -0.5,
        "debug": True,
        "legacy": False,
        "token": None,
    }


def test_parses_nested_structures_with_trailing_commas() -> None:
    """Nested objects/arrays and trailing commas parse like JavaScript."""
    text = """{
        server: {
            host: "localhost",
            ports: [80, 443,],
        },
        "quoted-key": 'x',
        $special_1: {},
    }"""

    assert parse_object_literal(text) == {
        "server": {"host": "localhost", "ports": [80, 443]},
        "quoted-key": "x",
        "$special_1": {},
    }


def test_comments_are_ignored() -> None:
    """Line and block comments count as whitespace."""
    text = """{
        // the API endpoint
        api: "https://example.test/{id}", /* braces in strings are fine */
        level: 2 // trailing
    }"""

    assert parse_object_literal(text) == {"api": "https://example.test/{id}", "level": 2}


def test_numeric_forms_and_keys() -> None:
    """Hex, exponent and numeric keys follow JavaScript semantics."""
    result = parse_object_literal("{ hex: 0x1F, big: 1e3, half: .5, 1: 'one', 2.0: 'two' }")

    assert result == {"hex": 31, "big": 1000.0, "half": 0.5, "1": "one", "2": "two"}
    assert isinstance(result["hex"], int)


def test_string_escapes() -> None:
    """Backslash escapes in both quote styles are decoded."""
    result = parse_object_literal(
        r"""{ a: 'it\'s', b: "line\nbreak", c: "é\x41", d: "\u{1F600}", e: '\\' }"""
    )

    assert result == {"a": "it's", "b": "line\nbreak", "c": "éA", "d": "\U0001F600", "e": "\\"}


def test_surrogate_pairs_are_combined() -> None:
    """UTF-16 escape pairs decode to a single code point."""
    assert parse_object_literal(r"{ smile: '\ud83d\ude00' }") == {"smile": "\U0001F600"}


def test_duplicate_keys_keep_last_value() -> None:
    """The last occurrence of a key wins."""
    assert parse_object_literal("{ a: 1, a: 2 }") == {"a": 2}


@pytest.mark.parametrize(
    ("text", "fragment"),
    [
        ("{ a: fetch('/config') }", "function call 'fetch(...)'"),
        ("{ a: process }", "bare identifier 'process'"),
        ("{ a: undefined }", "bare identifier 'undefined'"),
        ("{ a: `tpl` }", "template literals"),
        ("{ a: 1 + 2 }", "expected ',' or '}'"),
        ("{ a: -Infinity }", "invalid number"),
        ("{ a: 'open }", "unterminated string"),
        ("{ a: 1", "expected ',' or '}'"),
        ("{ a 1 }", "expected ':'"),
        ("{ a: [1,,2] }", "unexpected character ','"),
        ("[1, 2]", "must be an object"),
        ("{ a: 1 } extra", "unexpected content"),
        ("{ a: 12abc }", "invalid number"),
        ("{ /* never closed", "unterminated comment"),
    ],
)
def test_rejects_non_literal_content(text: str, fragment: str) -> None:
    """Anything outside the literal grammar raises LiteralSyntaxError."""
    with pytest.raises(LiteralSyntaxError, match=re.escape(fragment)):
        parse_object_literal(text)


def test_error_reports_line_and_column() -> None:
    """Errors carry the position of the offending token."""
    with pytest.raises(LiteralSyntaxError) as excinfo:
        parse_object_literal("{\n  ok: 1,\n  bad: nope\n}")

    assert excinfo.value.line == 3
    assert excinfo.value.column == 8
    assert "(line 3, column 8)" in str(excinfo.value)


def test_find_literal_end_skips_strings_and_comments() -> None:
    """Brace scanning ignores braces inside strings and comments."""
    text = "x = { a: '}', b: { c: \"{\" } /* } */ }; tail"
    start = text.index("{")

    end = find_literal_end(text, start)

    assert text[end:] == "; tail"


def test_find_literal_end_rejects_unbalanced_braces() -> None:
    """A region that never closes raises LiteralSyntaxError."""
    text = "appConfig = { a: { b: 1 }"

    with pytest.raises(LiteralSyntaxError, match="unbalanced braces"):
        find_literal_end(text, text.index("{"))
