"""Relaxed object-literal parsing for configs embedded in scripts and pages.

HTML and JavaScript config files declare their settings as an object literal,
e.g. ``appConfig = { apiUrl: 'https://example.test', retries: 3, }``. This
module understands the *literal* subset of that syntax:

* objects with identifier, quoted or numeric keys;
* single- or double-quoted strings with the usual backslash escapes;
* numbers (signed, decimal, exponent and hexadecimal forms);
* ``true``, ``false`` and ``null``;
* arrays, trailing commas, and ``//`` or ``/* */`` comments.

The text is never evaluated. Function calls, bare identifiers and template
literals raise :class:`LiteralSyntaxError`.
"""
from __future__ import annotations

import math
import re

_NUMBER_RE = re.compile(
    r"[+-]?(?:0[xX][0-9a-fA-F]+|(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)"
)
_KEYWORDS: dict[str, object] = {"true": True, "false": False, "null": None}
_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_LINE_TERMINATORS = frozenset("\n\u2028\u2029")


class LiteralSyntaxError(ValueError):
    """Raised when text falls outside the relaxed object-literal grammar."""

    def __init__(self, message: str, text: str, position: int) -> None:
        line = text.count("\n", 0, position) + 1
        column = position - (text.rfind("\n", 0, position) + 1) + 1
        super().__init__(f"{message} (line {line}, column {column})")
        self.message = message
        self.position = position
        self.line = line
        self.column = column


def parse_object_literal(text: str) -> dict[str, object]:
    """Parse *text* as a single object literal and return it as a dict."""
    return _LiteralParser(text).parse()


def find_literal_end(text: str, start: int) -> int:
    """Return the index just past the brace closing the one at *start*.

    Braces inside string literals and comments do not count towards the
    nesting depth.
    """
    if text[start : start + 1] != "{":
        raise LiteralSyntaxError("expected '{'", text, start)
    depth = 0
    index = start
    length = len(text)
    while index < length:
        char = text[index]
        if char in "'\"`":
            index = _skip_string(text, index)
            continue
        if text.startswith("//", index) or text.startswith("/*", index):
            index = _skip_comment(text, index)
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1
    raise LiteralSyntaxError("unbalanced braces in config literal", text, start)


def _skip_string(text: str, start: int) -> int:
    quote = text[start]
    index = start + 1
    length = len(text)
    while index < length:
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == quote:
            return index + 1
        if char == "\n" and quote != "`":
            break
        index += 1
    raise LiteralSyntaxError("unterminated string", text, start)


def _skip_comment(text: str, start: int) -> int:
    if text.startswith("//", start):
        end = text.find("\n", start)
        return len(text) if end == -1 else end
    end = text.find("*/", start + 2)
    if end == -1:
        raise LiteralSyntaxError("unterminated comment", text, start)
    return end + 2


def _is_identifier_start(char: str) -> bool:
    return char.isalpha() or char in "_$"


def _is_identifier_part(char: str) -> bool:
    return char.isalnum() or char in "_$"


class _LiteralParser:
    """Recursive-descent parser over a single object literal."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def parse(self) -> dict[str, object]:
        self._skip_insignificant()
        if self._peek() != "{":
            raise self._error("config literal must be an object")
        value = self._parse_object()
        self._skip_insignificant()
        if self._pos < len(self._text):
            raise self._error("unexpected content after config literal")
        return value

    def _error(self, message: str, position: int | None = None) -> LiteralSyntaxError:
        return LiteralSyntaxError(
            message,
            self._text,
            self._pos if position is None else position,
        )

    def _peek(self) -> str:
        return self._text[self._pos : self._pos + 1]

    def _skip_insignificant(self) -> None:
        text = self._text
        while self._pos < len(text):
            if text[self._pos].isspace():
                self._pos += 1
            elif text.startswith("//", self._pos) or text.startswith("/*", self._pos):
                self._pos = _skip_comment(text, self._pos)
            else:
                break

    def _parse_value(self) -> object:
        self._skip_insignificant()
        char = self._peek()
        if not char:
            raise self._error("unexpected end of config literal")
        if char == "{":
            return self._parse_object()
        if char == "[":
            return self._parse_array()
        if char in "'\"":
            return self._parse_string()
        if char == "`":
            raise self._error("template literals are not allowed")
        if char.isdigit() or char in "+-.":
            return self._parse_number()
        if _is_identifier_start(char):
            start = self._pos
            name = self._parse_identifier()
            if name in _KEYWORDS:
                return _KEYWORDS[name]
            self._skip_insignificant()
            if self._peek() == "(":
                raise self._error(f"function call '{name}(...)' is not allowed", start)
            raise self._error(f"bare identifier '{name}' is not allowed", start)
        raise self._error(f"unexpected character {char!r}")

    def _parse_object(self) -> dict[str, object]:
        self._pos += 1
        result: dict[str, object] = {}
        while True:
            self._skip_insignificant()
            if self._peek() == "}":
                self._pos += 1
                return result
            key = self._parse_key()
            self._skip_insignificant()
            if self._peek() != ":":
                raise self._error("expected ':' after object key")
            self._pos += 1
            result[key] = self._parse_value()
            self._skip_insignificant()
            char = self._peek()
            if char == ",":
                self._pos += 1
            elif char == "}":
                self._pos += 1
                return result
            else:
                raise self._error("expected ',' or '}' in object")

    def _parse_array(self) -> list[object]:
        self._pos += 1
        items: list[object] = []
        while True:
            self._skip_insignificant()
            if self._peek() == "]":
                self._pos += 1
                return items
            items.append(self._parse_value())
            self._skip_insignificant()
            char = self._peek()
            if char == ",":
                self._pos += 1
            elif char == "]":
                self._pos += 1
                return items
            else:
                raise self._error("expected ',' or ']' in array")

    def _parse_key(self) -> str:
        char = self._peek()
        if char in ("'", '"'):
            return self._parse_string()
        if char and _is_identifier_start(char):
            return self._parse_identifier()
        if char.isdigit() or char == ".":
            number = self._parse_number()
            if isinstance(number, float) and number.is_integer():
                return str(int(number))
            return str(number)
        raise self._error("expected object key")

    def _parse_identifier(self) -> str:
        start = self._pos
        self._pos += 1
        while self._pos < len(self._text) and _is_identifier_part(self._text[self._pos]):
            self._pos += 1
        return self._text[start : self._pos]

    def _parse_number(self) -> int | float:
        text = self._text
        match = _NUMBER_RE.match(text, self._pos)
        if match is None:
            raise self._error("invalid number")
        end = match.end()
        if end < len(text) and _is_identifier_part(text[end]):
            raise self._error("invalid number")
        token = match.group(0)
        start = self._pos
        self._pos = end
        body = token.lstrip("+-")
        if body[:2].lower() == "0x":
            value = int(body, 16)
            return -value if token.startswith("-") else value
        if any(marker in body for marker in ".eE"):
            number = float(token)
            if math.isinf(number):
                raise self._error("number out of range", start)
            return number
        return int(token)

    def _parse_string(self) -> str:
        text = self._text
        quote = text[self._pos]
        start = self._pos
        self._pos += 1
        chunks: list[str] = []
        while self._pos < len(text):
            char = text[self._pos]
            if char == quote:
                self._pos += 1
                return "".join(chunks)
            if char == "\\":
                chunks.append(self._parse_escape())
                continue
            if char in "\r\n":
                break
            chunks.append(char)
            self._pos += 1
        raise self._error("unterminated string", start)

    def _parse_escape(self) -> str:
        text = self._text
        start = self._pos
        escape = text[self._pos + 1 : self._pos + 2]
        if not escape:
            raise self._error("unterminated string", start)
        self._pos += 2
        if escape in _SIMPLE_ESCAPES:
            return _SIMPLE_ESCAPES[escape]
        if escape == "x":
            return chr(self._read_hex(2, start))
        if escape == "u":
            return self._parse_unicode_escape(start)
        if escape == "\r":
            if self._peek() == "\n":
                self._pos += 1
            return ""
        if escape in _LINE_TERMINATORS:
            return ""
        return escape

    def _parse_unicode_escape(self, start: int) -> str:
        text = self._text
        if self._peek() == "{":
            end = text.find("}", self._pos)
            digits = text[self._pos + 1 : end] if end != -1 else ""
            if not digits or len(digits) > 6 or not set(digits) <= _HEX_DIGITS:
                raise self._error("invalid unicode escape", start)
            code = int(digits, 16)
            if code > 0x10FFFF:
                raise self._error("invalid unicode escape", start)
            self._pos = end + 1
            return chr(code)
        code = self._read_hex(4, start)
        if 0xD800 <= code <= 0xDBFF and text.startswith("\\u", self._pos):
            low_digits = text[self._pos + 2 : self._pos + 6]
            if len(low_digits) == 4 and set(low_digits) <= _HEX_DIGITS:
                low = int(low_digits, 16)
                if 0xDC00 <= low <= 0xDFFF:
                    self._pos += 6
                    return chr(0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00))
        return chr(code)

    def _read_hex(self, count: int, start: int) -> int:
        digits = self._text[self._pos : self._pos + count]
        if len(digits) != count or not set(digits) <= _HEX_DIGITS:
            raise self._error("invalid escape sequence", start)
        self._pos += count
        return int(digits, 16)


__all__ = ["LiteralSyntaxError", "find_literal_end", "parse_object_literal"]
