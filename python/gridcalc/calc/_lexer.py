"""Lexer: turns formula text into a stream of tokens, one at a time."""

from __future__ import annotations

import re
from enum import Enum, auto
from typing import Iterator, NamedTuple

from gridcalc.calc._errors import LexError

_CELL_REF_RE = re.compile(r"[A-Z]+[0-9]+")


class TokenType(Enum):
    NUMBER = auto()
    STRING = auto()
    CELL_REF = auto()
    IDENTIFIER = auto()
    # Arithmetic
    PLUS = auto()
    MINUS = auto()
    MULTIPLY = auto()
    DIVIDE = auto()
    MODULO = auto()
    POWER = auto()
    # Comparison / equality
    LESS = auto()
    LESS_EQUAL = auto()
    GREATER = auto()
    GREATER_EQUAL = auto()
    NOT_EQUAL = auto()
    EQUAL = auto()
    AMPERSAND = auto()
    # Delimiters
    LPAREN = auto()
    RPAREN = auto()
    COMMA = auto()
    COLON = auto()
    EOF = auto()


class Token(NamedTuple):
    type: TokenType
    value: float | str | None = None
    position: int = 0

    def __repr__(self) -> str:
        if self.value is None:
            return self.type.name
        return f"{self.type.name}({self.value!r})"


_SINGLE_CHAR: dict[str, TokenType] = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "/": TokenType.DIVIDE,
    "%": TokenType.MODULO,
    "^": TokenType.POWER,
    "=": TokenType.EQUAL,
    "&": TokenType.AMPERSAND,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
    ":": TokenType.COLON,
}


def _is_ident_char(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch == "_")


class Lexer:
    """Single-pass scanner with one character of lookahead.

    Usage::

        lexer = Lexer("SUM(A1:B2) * 2")
        tok = lexer.next_token()   # IDENTIFIER('SUM')
    """

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    @property
    def _current(self) -> str | None:
        if self._pos < len(self._text):
            return self._text[self._pos]
        return None

    def _skip_whitespace(self) -> None:
        while self._current is not None and self._current.isspace():
            self._pos += 1

    def next_token(self) -> Token:
        """Return the next token, or an EOF token once input is exhausted."""
        self._skip_whitespace()
        start = self._pos
        ch = self._current

        if ch is None:
            return Token(TokenType.EOF, None, start)

        if ch.isascii() and ch.isdigit():
            return Token(TokenType.NUMBER, self._read_number(), start)

        if ch.isascii() and ch.isalpha():
            return self._read_identifier(start)

        if ch == '"':
            return Token(TokenType.STRING, self._read_string(), start)

        if ch == "*":
            self._pos += 1
            if self._current == "*":
                self._pos += 1
                return Token(TokenType.POWER, None, start)
            return Token(TokenType.MULTIPLY, None, start)

        if ch == "<":
            self._pos += 1
            if self._current == "=":
                self._pos += 1
                return Token(TokenType.LESS_EQUAL, None, start)
            if self._current == ">":
                self._pos += 1
                return Token(TokenType.NOT_EQUAL, None, start)
            return Token(TokenType.LESS, None, start)

        if ch == ">":
            self._pos += 1
            if self._current == "=":
                self._pos += 1
                return Token(TokenType.GREATER_EQUAL, None, start)
            return Token(TokenType.GREATER, None, start)

        token_type = _SINGLE_CHAR.get(ch)
        if token_type is not None:
            self._pos += 1
            return Token(token_type, None, start)

        raise LexError(f"Unexpected character: {ch!r}", start)

    def __iter__(self) -> Iterator[Token]:
        while True:
            tok = self.next_token()
            yield tok
            if tok.type is TokenType.EOF:
                return

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def _read_digits(self) -> str:
        start = self._pos
        while self._current is not None and self._current.isascii() and self._current.isdigit():
            self._pos += 1
        return self._text[start:self._pos]

    def _read_number(self) -> float:
        number = self._read_digits()
        if self._current == ".":
            self._pos += 1
            number += "." + self._read_digits()
        return float(number)

    def _read_identifier(self, start: int) -> Token:
        while self._current is not None and _is_ident_char(self._current):
            self._pos += 1
        ident = self._text[start:self._pos].upper()
        if _CELL_REF_RE.fullmatch(ident):
            return Token(TokenType.CELL_REF, ident, start)
        return Token(TokenType.IDENTIFIER, ident, start)

    def _read_string(self) -> str:
        start = self._pos
        self._pos += 1  # opening quote
        chars: list[str] = []
        while True:
            ch = self._current
            if ch is None:
                raise LexError("Unterminated string literal", start)
            self._pos += 1
            if ch == '"':
                # "" inside a literal is an escaped quote
                if self._current == '"':
                    chars.append('"')
                    self._pos += 1
                    continue
                return "".join(chars)
            chars.append(ch)


def tokenize(text: str) -> list[Token]:
    """Tokenize *text* completely; the final token is always EOF."""
    return list(Lexer(text))
