"""Tests for gridcalc.calc lexer."""

from __future__ import annotations

import pytest

from gridcalc.calc._errors import LexError
from gridcalc.calc._lexer import Lexer, Token, TokenType, tokenize


def _types(text: str) -> list[TokenType]:
    return [t.type for t in tokenize(text)]


class TestLiterals:
    def test_integer(self) -> None:
        tok = tokenize("42")[0]
        assert tok.type is TokenType.NUMBER
        assert tok.value == 42.0

    def test_decimal(self) -> None:
        assert tokenize("3.25")[0].value == 3.25

    def test_string(self) -> None:
        tok = tokenize('"Hello"')[0]
        assert tok.type is TokenType.STRING
        assert tok.value == "Hello"

    def test_string_escaped_quote(self) -> None:
        assert tokenize('"say ""hi"""')[0].value == 'say "hi"'

    def test_empty_string(self) -> None:
        assert tokenize('""')[0].value == ""

    def test_unterminated_string(self) -> None:
        with pytest.raises(LexError, match="Unterminated") as exc_info:
            tokenize('1 & "Hello')
        assert exc_info.value.position == 4


class TestIdentifiers:
    def test_cell_ref_uppercased(self) -> None:
        tok = tokenize("b12")[0]
        assert tok == Token(TokenType.CELL_REF, "B12", 0)

    def test_function_name(self) -> None:
        tok = tokenize("sum")[0]
        assert tok.type is TokenType.IDENTIFIER
        assert tok.value == "SUM"

    def test_letters_after_digits_is_identifier(self) -> None:
        assert tokenize("A1B")[0].type is TokenType.IDENTIFIER

    def test_underscore_identifier(self) -> None:
        assert tokenize("MY_FUNC")[0] == Token(TokenType.IDENTIFIER, "MY_FUNC", 0)


class TestOperators:
    def test_arithmetic(self) -> None:
        assert _types("1+2-3*4/5%6") == [
            TokenType.NUMBER, TokenType.PLUS, TokenType.NUMBER, TokenType.MINUS,
            TokenType.NUMBER, TokenType.MULTIPLY, TokenType.NUMBER, TokenType.DIVIDE,
            TokenType.NUMBER, TokenType.MODULO, TokenType.NUMBER, TokenType.EOF,
        ]

    def test_power_spellings(self) -> None:
        assert _types("2**3^4") == [
            TokenType.NUMBER, TokenType.POWER, TokenType.NUMBER,
            TokenType.POWER, TokenType.NUMBER, TokenType.EOF,
        ]

    def test_comparisons(self) -> None:
        assert _types("< <= > >= <> = &")[:-1] == [
            TokenType.LESS, TokenType.LESS_EQUAL, TokenType.GREATER,
            TokenType.GREATER_EQUAL, TokenType.NOT_EQUAL, TokenType.EQUAL,
            TokenType.AMPERSAND,
        ]

    def test_delimiters(self) -> None:
        assert _types("(A1:B2,)") == [
            TokenType.LPAREN, TokenType.CELL_REF, TokenType.COLON, TokenType.CELL_REF,
            TokenType.COMMA, TokenType.RPAREN, TokenType.EOF,
        ]

    @pytest.mark.parametrize("ch", ["@", "$", "!", "#", "{", ";"])
    def test_unsupported_character(self, ch: str) -> None:
        with pytest.raises(LexError, match="Unexpected character"):
            tokenize(f"1 {ch} 2")


class TestLexerStream:
    def test_positions(self) -> None:
        assert [t.position for t in tokenize("A1 + 10")] == [0, 3, 5, 7]

    def test_whitespace_only(self) -> None:
        assert tokenize("   ") == [Token(TokenType.EOF, None, 3)]

    def test_eof_repeats(self) -> None:
        lexer = Lexer("1")
        lexer.next_token()
        assert lexer.next_token().type is TokenType.EOF
        assert lexer.next_token().type is TokenType.EOF

    def test_token_repr(self) -> None:
        assert repr(Token(TokenType.PLUS)) == "PLUS"
        assert repr(Token(TokenType.NUMBER, 1.5)) == "NUMBER(1.5)"
