"""Formula parser: recursive descent over the token stream + reference helpers.

Grammar, lowest precedence first::

    Expression     ::= Equality
    Equality       ::= Comparison (("<>" | "=") Comparison)*
    Comparison     ::= Addition (("<" | "<=" | ">" | ">=") Addition)*
    Addition       ::= Concatenation (("+" | "-") Concatenation)*
    Concatenation  ::= Multiplication ("&" Multiplication)*
    Multiplication ::= Power (("*" | "/" | "%") Power)*
    Power          ::= Unary (("**" | "^") Power)?        right-associative
    Unary          ::= ("+" | "-")* Primary
    Primary        ::= Number | String | CellRef (":" CellRef)?
                     | Ident "(" Args? ")" | "(" Expression ")"
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from gridcalc._utils import parse_reference, rowcol_to_a1
from gridcalc.calc._ast import (
    Binary,
    BinaryOp,
    CellRef,
    Expr,
    FunctionCall,
    Number,
    Range,
    String,
    Unary,
    UnaryOp,
)
from gridcalc.calc._errors import DepthLimitError, ParseError
from gridcalc.calc._lexer import Lexer, Token, TokenType
from gridcalc.calc._protocol import DEFAULT_CONFIG

_EQUALITY_OPS = {
    TokenType.EQUAL: BinaryOp.EQUAL,
    TokenType.NOT_EQUAL: BinaryOp.NOT_EQUAL,
}
_COMPARISON_OPS = {
    TokenType.LESS: BinaryOp.LESS,
    TokenType.LESS_EQUAL: BinaryOp.LESS_EQUAL,
    TokenType.GREATER: BinaryOp.GREATER,
    TokenType.GREATER_EQUAL: BinaryOp.GREATER_EQUAL,
}
_ADDITION_OPS = {
    TokenType.PLUS: BinaryOp.ADD,
    TokenType.MINUS: BinaryOp.SUBTRACT,
}
_CONCAT_OPS = {
    TokenType.AMPERSAND: BinaryOp.CONCATENATE,
}
_MULTIPLICATION_OPS = {
    TokenType.MULTIPLY: BinaryOp.MULTIPLY,
    TokenType.DIVIDE: BinaryOp.DIVIDE,
    TokenType.MODULO: BinaryOp.MODULO,
}
_UNARY_OPS = {
    TokenType.PLUS: UnaryOp.PLUS,
    TokenType.MINUS: UnaryOp.MINUS,
}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class Parser:
    """Recursive descent parser producing an :mod:`~gridcalc.calc._ast` tree.

    The first token is read on construction, so an unsupported character or
    unterminated string at the start of the input fails immediately with
    :class:`LexError`.
    """

    def __init__(self, text: str, max_depth: int = DEFAULT_CONFIG.max_parse_depth) -> None:
        self._lexer = Lexer(text)
        self._current: Token = self._lexer.next_token()
        self._depth = 0
        self._max_depth = max_depth

    def parse(self) -> Expr:
        """Parse a complete expression; trailing tokens are an error."""
        expr = self._parse_equality()
        if self._current.type is not TokenType.EOF:
            raise ParseError(
                f"Unexpected token at end: {self._current!r}", self._current.position,
            )
        return expr

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _advance(self) -> Token:
        tok = self._current
        self._current = self._lexer.next_token()
        return tok

    def _expect(self, token_type: TokenType) -> Token:
        if self._current.type is not token_type:
            raise ParseError(
                f"Expected {token_type.name}, found {self._current!r}",
                self._current.position,
            )
        return self._advance()

    @contextmanager
    def _nested(self) -> Iterator[None]:
        if self._depth >= self._max_depth:
            raise DepthLimitError(
                f"Expression nested deeper than {self._max_depth} levels"
            )
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1

    # ------------------------------------------------------------------
    # Binary levels (left-associative folds)
    # ------------------------------------------------------------------

    def _fold_left(self, operand: Callable[[], Expr], ops: dict[TokenType, BinaryOp]) -> Expr:
        left = operand()
        while self._current.type in ops:
            op = ops[self._advance().type]
            left = Binary(left, op, operand())
        return left

    def _parse_equality(self) -> Expr:
        return self._fold_left(self._parse_comparison, _EQUALITY_OPS)

    def _parse_comparison(self) -> Expr:
        return self._fold_left(self._parse_addition, _COMPARISON_OPS)

    def _parse_addition(self) -> Expr:
        return self._fold_left(self._parse_concatenation, _ADDITION_OPS)

    def _parse_concatenation(self) -> Expr:
        return self._fold_left(self._parse_multiplication, _CONCAT_OPS)

    def _parse_multiplication(self) -> Expr:
        return self._fold_left(self._parse_power, _MULTIPLICATION_OPS)

    def _parse_power(self) -> Expr:
        left = self._parse_unary()
        if self._current.type is not TokenType.POWER:
            return left
        self._advance()
        with self._nested():
            right = self._parse_power()
        return Binary(left, BinaryOp.POWER, right)

    def _parse_unary(self) -> Expr:
        op = _UNARY_OPS.get(self._current.type)
        if op is None:
            return self._parse_primary()
        self._advance()
        with self._nested():
            operand = self._parse_unary()
        return Unary(op, operand)

    # ------------------------------------------------------------------
    # Primary
    # ------------------------------------------------------------------

    def _parse_primary(self) -> Expr:
        tok = self._current

        if tok.type is TokenType.NUMBER:
            self._advance()
            return Number(tok.value)  # type: ignore[arg-type]

        if tok.type is TokenType.STRING:
            self._advance()
            return String(tok.value)  # type: ignore[arg-type]

        if tok.type is TokenType.CELL_REF:
            self._advance()
            if self._current.type is not TokenType.COLON:
                return CellRef(tok.value)  # type: ignore[arg-type]
            self._advance()
            end = self._current
            if end.type is not TokenType.CELL_REF:
                raise ParseError("Expected cell reference after ':'", end.position)
            self._advance()
            return Range(tok.value, end.value)  # type: ignore[arg-type]

        if tok.type is TokenType.IDENTIFIER:
            self._advance()
            if self._current.type is not TokenType.LPAREN:
                raise ParseError(f"Unknown identifier: {tok.value}", tok.position)
            self._advance()
            with self._nested():
                args = self._parse_arguments()
            self._expect(TokenType.RPAREN)
            return FunctionCall(tok.value, args)  # type: ignore[arg-type]

        if tok.type is TokenType.LPAREN:
            self._advance()
            with self._nested():
                expr = self._parse_equality()
            self._expect(TokenType.RPAREN)
            return expr

        raise ParseError(f"Unexpected token: {tok!r}", tok.position)

    def _parse_arguments(self) -> tuple[Expr, ...]:
        if self._current.type is TokenType.RPAREN:
            return ()
        args = [self._parse_equality()]
        while self._current.type is TokenType.COMMA:
            self._advance()
            args.append(self._parse_equality())
        return tuple(args)


def parse(text: str, max_depth: int = DEFAULT_CONFIG.max_parse_depth) -> Expr:
    """Parse formula text (without the leading ``=``) into an expression tree."""
    return Parser(text, max_depth).parse()


# ---------------------------------------------------------------------------
# Range expansion
# ---------------------------------------------------------------------------


def _corners(start: str, end: str) -> tuple[int, int, int, int]:
    a = parse_reference(start)
    b = parse_reference(end)
    if a is None or b is None:
        bad = start if a is None else end
        raise ValueError(f"Invalid cell reference: {bad!r}")
    return min(a[0], b[0]), max(a[0], b[0]), min(a[1], b[1]), max(a[1], b[1])


def range_size(start: str, end: str) -> int:
    """Number of cells between two references, without expanding them."""
    r_min, r_max, c_min, c_max = _corners(start, end)
    return (r_max - r_min + 1) * (c_max - c_min + 1)


def expand_range(
    start: str,
    end: str,
    bounds: tuple[int, int] | None = None,
) -> list[tuple[int, int]]:
    """Expand two references into the inclusive rectangle, row-major.

    Reversed corners (``B2:A1``) are normalized. With *bounds* given as
    ``(rows, cols)`` the rectangle is clipped to that grid. Raises
    ValueError when either side is not a valid reference.
    """
    r_min, r_max, c_min, c_max = _corners(start, end)
    if bounds is not None:
        r_max = min(r_max, bounds[0] - 1)
        c_max = min(c_max, bounds[1] - 1)
    return [(r, c) for r in range(r_min, r_max + 1) for c in range(c_min, c_max + 1)]


# ---------------------------------------------------------------------------
# Grammar-driven reference extraction
# ---------------------------------------------------------------------------


def references(expr: Expr, bounds: tuple[int, int] | None = None) -> list[tuple[int, int]]:
    """All cells an expression reads, ranges expanded, first-seen order.

    *bounds* clips range expansion as in :func:`expand_range`.
    """
    refs: list[tuple[int, int]] = []
    seen: set[tuple[int, int]] = set()

    def add(coords: tuple[int, int]) -> None:
        if coords not in seen:
            seen.add(coords)
            refs.append(coords)

    stack: list[Expr] = [expr]
    while stack:
        node = stack.pop()
        if isinstance(node, CellRef):
            coords = parse_reference(node.ref)
            if coords is not None:
                add(coords)
        elif isinstance(node, Range):
            try:
                cells = expand_range(node.start, node.end, bounds)
            except ValueError:
                continue
            for coords in cells:
                add(coords)
        elif isinstance(node, Binary):
            stack.append(node.right)
            stack.append(node.left)
        elif isinstance(node, Unary):
            stack.append(node.operand)
        elif isinstance(node, FunctionCall):
            stack.extend(reversed(node.args))
    return refs


# ---------------------------------------------------------------------------
# Textual reference scanning (permissive; used by the cycle checker)
# ---------------------------------------------------------------------------

# Any alphanumeric run; ones that parse as references are kept.
_RUN_RE = re.compile(r"[A-Za-z0-9]+")

# Two runs joined by ':' (whitespace allowed around the colon).
_RANGE_RE = re.compile(r"([A-Za-z0-9]+)\s*:\s*([A-Za-z0-9]+)")


def scan_references(
    formula: str,
    bounds: tuple[int, int] | None = None,
) -> list[tuple[int, int]]:
    """Extract referenced cells from raw formula text without parsing it.

    Every alphanumeric run that is a valid reference counts, including
    runs inside string literals and function names like ``LOG10``.
    ``X:Y`` pairs of valid references are expanded to every cell they span.
    With *bounds* given as ``(rows, cols)`` range expansion stops at the
    grid edge; single references are kept either way.
    Returns de-duplicated coordinates in first-seen order.
    """
    refs: list[tuple[int, int]] = []
    seen: set[tuple[int, int]] = set()

    for m in _RUN_RE.finditer(formula):
        coords = parse_reference(m.group(0))
        if coords is not None and coords not in seen:
            refs.append(coords)
            seen.add(coords)

    for m in _RANGE_RE.finditer(formula):
        if parse_reference(m.group(1)) is None or parse_reference(m.group(2)) is None:
            continue
        for coords in expand_range(m.group(1), m.group(2), bounds):
            if coords not in seen:
                refs.append(coords)
                seen.add(coords)

    return refs


def format_references(cells: list[tuple[int, int]]) -> list[str]:
    """Render coordinates back to ``A1`` text, e.g. for log messages."""
    return [rowcol_to_a1(r, c) for r, c in cells]
