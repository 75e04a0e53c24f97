"""Circular reference detection for formulas about to be committed."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gridcalc._utils import rowcol_to_a1
from gridcalc.calc._errors import CircularReferenceError, DepthLimitError
from gridcalc.calc._parser import format_references, scan_references
from gridcalc.calc._protocol import DEFAULT_CONFIG, EngineConfig

if TYPE_CHECKING:
    from gridcalc._grid import Spreadsheet

logger = logging.getLogger(__name__)

Coord = tuple[int, int]


class CircularReferenceChecker:
    """Decides whether storing a formula at a cell would close a cycle.

    References are found by a permissive textual scan of the formula, so a
    reference-shaped run inside a string literal still counts. Ranges are
    clipped to the grid, since cells outside it hold no formulas. The
    search follows only cells that already hold formulas. A path-local
    visited set keeps it from re-entering a cell on the path that reached
    it, and cells already shown not to reach the target are not walked
    again within the same search.
    """

    def __init__(self, spreadsheet: Spreadsheet, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self._spreadsheet = spreadsheet
        self._max_depth = config.max_dependency_depth

    def would_create_cycle(self, formula: str, cell: Coord) -> bool:
        """True if *formula* stored at *cell* would depend on *cell*.

        Raises DepthLimitError when a dependency chain is longer than
        ``max_dependency_depth``.
        """
        refs = self._scan(formula)
        visited: set[Coord] = set()
        cleared: set[Coord] = set()
        for ref in refs:
            if self._reaches(ref, cell, visited, cleared, 1):
                logger.debug(
                    "Formula %r at %s is circular (refs: %s)",
                    formula, rowcol_to_a1(*cell), ", ".join(format_references(refs)),
                )
                return True
        return False

    def check(self, formula: str, cell: Coord) -> None:
        """Raise CircularReferenceError if :meth:`would_create_cycle`."""
        if self.would_create_cycle(formula, cell):
            raise CircularReferenceError(cell)

    def _scan(self, formula: str) -> list[Coord]:
        return scan_references(formula, (self._spreadsheet.rows, self._spreadsheet.cols))

    def _reaches(
        self,
        current: Coord,
        target: Coord,
        visited: set[Coord],
        cleared: set[Coord],
        depth: int,
    ) -> bool:
        if current == target:
            return True
        if current in visited or current in cleared:
            return False
        if depth > self._max_depth:
            raise DepthLimitError(
                f"Dependency chain longer than {self._max_depth} cells at {rowcol_to_a1(*current)}"
            )

        formula = self._spreadsheet.get_cell(*current).formula
        if not formula:
            cleared.add(current)
            return False

        visited.add(current)
        try:
            for ref in self._scan(formula):
                if self._reaches(ref, target, visited, cleared, depth + 1):
                    return True
        finally:
            visited.discard(current)
        cleared.add(current)
        return False
