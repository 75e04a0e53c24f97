"""Exception hierarchy for formula lexing, parsing, evaluation and cycle checks."""

from __future__ import annotations

from gridcalc._utils import rowcol_to_a1

# Display text written to a cell whose formula failed to evaluate.
ERROR_SENTINEL = "#ERROR"


class FormulaError(Exception):
    """Base for every error raised by the formula engine."""


class LexError(FormulaError):
    """Unsupported character or unterminated string literal."""

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


class ParseError(FormulaError):
    """Token stream does not match the formula grammar."""

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


class EvalError(FormulaError):
    """Evaluation failed: unknown function, bad arguments, division by zero..."""


class CircularReferenceError(FormulaError):
    """Committing a formula would make a cell depend on itself."""

    def __init__(self, cell: tuple[int, int], message: str | None = None) -> None:
        super().__init__(message or f"Circular reference detected at {rowcol_to_a1(*cell)}")
        self.cell = cell


class DepthLimitError(FormulaError):
    """Nesting or dependency depth exceeded the configured bound."""


class FetchError(Exception):
    """A network fetch for ``GET`` failed."""
