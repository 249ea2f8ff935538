"""
FakeForge Directive Expressions

Restricted parser for directive argument expressions.

Directive arguments are written as literals, e.g.::

    @faker pyint({min_value: 10, max_value: 100})
    @faker random_element(["draft", "published"])

The grammar is a JSON superset: numbers, single- or double-quoted strings,
true/false/null (and the Python spellings True/False/None), arrays and
object literals whose keys may be bare identifiers. Trailing commas are
allowed. Nothing is ever executed.
"""

import re
from typing import Any, Dict, List

from ..errors import ExpressionError


_NUMBER_RE = re.compile(r'-?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
_IDENT_RE = re.compile(r'[A-Za-z_$][A-Za-z0-9_$]*')

_KEYWORDS = {
    'true': True,
    'True': True,
    'false': False,
    'False': False,
    'null': None,
    'None': None,
    'undefined': None,
}

_ESCAPES = {
    'n': '\n',
    't': '\t',
    'r': '\r',
    'b': '\b',
    'f': '\f',
    '0': '\0',
    '\\': '\\',
    '/': '/',
    '"': '"',
    "'": "'",
}


class _Parser:
    """Single-use recursive descent parser over one expression string."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def parse(self) -> Any:
        value = self._value()
        self._skip_ws()
        if self.pos != len(self.text):
            raise ExpressionError("Unexpected trailing input", self.pos)
        return value

    def _skip_ws(self):
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _peek(self) -> str:
        self._skip_ws()
        if self.pos >= len(self.text):
            raise ExpressionError("Unexpected end of expression", self.pos)
        return self.text[self.pos]

    def _expect(self, char: str):
        if self._peek() != char:
            raise ExpressionError(f"Expected '{char}'", self.pos)
        self.pos += 1

    def _value(self) -> Any:
        char = self._peek()
        if char == '{':
            return self._object()
        if char == '[':
            return self._array()
        if char in ('"', "'"):
            return self._string()
        if char == '-' or char == '.' or char.isdigit():
            return self._number()
        match = _IDENT_RE.match(self.text, self.pos)
        if match and match.group(0) in _KEYWORDS:
            self.pos = match.end()
            return _KEYWORDS[match.group(0)]
        raise ExpressionError(f"Unexpected token '{char}'", self.pos)

    def _object(self) -> Dict[str, Any]:
        self._expect('{')
        result: Dict[str, Any] = {}
        while self._peek() != '}':
            key = self._key()
            self._expect(':')
            result[key] = self._value()
            if self._peek() == ',':
                self.pos += 1
            elif self._peek() != '}':
                raise ExpressionError("Expected ',' or '}'", self.pos)
        self.pos += 1
        return result

    def _key(self) -> str:
        char = self._peek()
        if char in ('"', "'"):
            return self._string()
        match = _IDENT_RE.match(self.text, self.pos)
        if not match:
            raise ExpressionError("Expected object key", self.pos)
        self.pos = match.end()
        return match.group(0)

    def _array(self) -> List[Any]:
        self._expect('[')
        result: List[Any] = []
        while self._peek() != ']':
            result.append(self._value())
            if self._peek() == ',':
                self.pos += 1
            elif self._peek() != ']':
                raise ExpressionError("Expected ',' or ']'", self.pos)
        self.pos += 1
        return result

    def _string(self) -> str:
        quote = self.text[self.pos]
        start = self.pos
        self.pos += 1
        chars: List[str] = []
        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char == quote:
                self.pos += 1
                return ''.join(chars)
            if char == '\\':
                self.pos += 1
                if self.pos >= len(self.text):
                    break
                escaped = self.text[self.pos]
                if escaped == 'u':
                    hex_digits = self.text[self.pos + 1:self.pos + 5]
                    if len(hex_digits) != 4:
                        raise ExpressionError("Invalid unicode escape", self.pos)
                    try:
                        chars.append(chr(int(hex_digits, 16)))
                    except ValueError:
                        raise ExpressionError("Invalid unicode escape", self.pos)
                    self.pos += 5
                    continue
                chars.append(_ESCAPES.get(escaped, escaped))
                self.pos += 1
                continue
            chars.append(char)
            self.pos += 1
        raise ExpressionError("Unterminated string", start)

    def _number(self) -> Any:
        match = _NUMBER_RE.match(self.text, self.pos)
        if not match:
            raise ExpressionError("Invalid number", self.pos)
        self.pos = match.end()
        literal = match.group(0)
        if any(c in literal for c in '.eE'):
            return float(literal)
        return int(literal)


def parse_expression(text: str) -> Any:
    """
    Parse a directive argument expression into a Python value.

    Args:
        text: Expression source, e.g. ``{min: 1, max: 5}``

    Returns:
        The parsed value (dict, list, str, int, float, bool or None)

    Raises:
        ExpressionError: If the text is not a valid literal expression
    """
    if text is None or not text.strip():
        raise ExpressionError("Empty expression")
    return _Parser(text).parse()
