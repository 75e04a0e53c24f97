"""Expression tree produced by the parser."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class BinaryOp(Enum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    MODULO = "%"
    POWER = "**"
    CONCATENATE = "&"
    EQUAL = "="
    NOT_EQUAL = "<>"
    LESS = "<"
    LESS_EQUAL = "<="
    GREATER = ">"
    GREATER_EQUAL = ">="


class UnaryOp(Enum):
    PLUS = "+"
    MINUS = "-"


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class String:
    value: str


@dataclass(frozen=True)
class CellRef:
    ref: str  # uppercased "A1" text


@dataclass(frozen=True)
class Range:
    """Inclusive rectangle between two references; only valid as a function argument."""

    start: str
    end: str


@dataclass(frozen=True)
class Binary:
    left: Expr
    op: BinaryOp
    right: Expr


@dataclass(frozen=True)
class Unary:
    op: UnaryOp
    operand: Expr


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: tuple[Expr, ...] = ()


Expr = Union[Number, String, CellRef, Range, Binary, Unary, FunctionCall]
