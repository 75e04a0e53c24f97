"""Spreadsheet grid: sparse cell storage with ``ws['A1']`` access."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from gridcalc._utils import a1_to_rowcol, rowcol_to_a1

if TYPE_CHECKING:
    from gridcalc.calc._evaluator import FormulaEvaluator

logger = logging.getLogger(__name__)


@dataclass
class CellData:
    """Display value plus the formula text (with ``=``) that produced it."""

    value: str = ""
    formula: str | None = None


class Spreadsheet:
    """A ``rows`` x ``cols`` grid of cells, stored sparsely.

    Coordinates are 0-based ``(row, col)``. Reads outside the grid return an
    empty cell; writes outside it raise IndexError.
    """

    __slots__ = ("_rows", "_cols", "_cells", "_evaluator")

    def __init__(self, rows: int = 100, cols: int = 26) -> None:
        if rows <= 0 or cols <= 0:
            raise ValueError(f"Grid dimensions must be positive: {rows}x{cols}")
        self._rows = rows
        self._cols = cols
        self._cells: dict[tuple[int, int], CellData] = {}
        self._evaluator: FormulaEvaluator | None = None

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    # ------------------------------------------------------------------
    # Cell access
    # ------------------------------------------------------------------

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self._rows and 0 <= col < self._cols

    def get_cell(self, row: int, col: int) -> CellData:
        cell = self._cells.get((row, col))
        return cell if cell is not None else CellData()

    def set_cell(self, row: int, col: int, cell: CellData) -> None:
        if not self.in_bounds(row, col):
            raise IndexError(f"Cell ({row}, {col}) is outside a {self._rows}x{self._cols} grid")
        self._cells[(row, col)] = cell

    def __getitem__(self, key: str) -> CellData:
        """``ws['A1']`` -> CellData."""
        return self.get_cell(*a1_to_rowcol(key))

    def __setitem__(self, key: str, text: str) -> None:
        """``ws['B1'] = '=A1*2'``; shorthand for :meth:`enter`."""
        row, col = a1_to_rowcol(key)
        self.enter(row, col, text)

    def iter_cells(self) -> Iterator[tuple[tuple[int, int], CellData]]:
        """Populated cells in row-major order."""
        for coords in sorted(self._cells):
            yield coords, self._cells[coords]

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def enter(
        self,
        row: int,
        col: int,
        text: str,
        evaluator: FormulaEvaluator | None = None,
    ) -> CellData:
        """Store user input at ``(row, col)``.

        Formulas (text starting with ``=``) are checked for circular
        references, evaluated and stored with their display value; a failed
        evaluation stores ``#ERROR``. Raises CircularReferenceError, leaving
        the grid untouched, when the formula would depend on its own cell.
        Plain text is stored verbatim.
        """
        if not self.in_bounds(row, col):
            raise IndexError(f"Cell ({row}, {col}) is outside a {self._rows}x{self._cols} grid")

        if not text.startswith("="):
            cell = CellData(text)
            self.set_cell(row, col, cell)
            return cell

        if evaluator is None:
            evaluator = self._default_evaluator()

        # Imported here: gridcalc.calc imports this module for type hints.
        from gridcalc.calc._errors import CircularReferenceError

        if evaluator.would_create_circular_reference(text, (row, col)):
            logger.debug("Rejected circular formula %r at %s", text, rowcol_to_a1(row, col))
            raise CircularReferenceError((row, col))

        cell = CellData(evaluator.evaluate_formula(text), text)
        self.set_cell(row, col, cell)
        return cell

    def _default_evaluator(self) -> FormulaEvaluator:
        if self._evaluator is None:
            from gridcalc.calc._evaluator import FormulaEvaluator

            self._evaluator = FormulaEvaluator(self)
        return self._evaluator

    def __repr__(self) -> str:
        return f"<Spreadsheet {self._rows}x{self._cols} cells={len(self._cells)}>"
