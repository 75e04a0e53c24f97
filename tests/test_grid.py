"""Tests for gridcalc Spreadsheet storage and the enter/commit sequence."""

from __future__ import annotations

import pytest

from gridcalc._grid import CellData, Spreadsheet
from gridcalc.calc._errors import CircularReferenceError, FetchError
from gridcalc.calc._evaluator import FormulaEvaluator
from gridcalc.calc._functions import FunctionRegistry


class _StubFetcher:
    def fetch(self, url: str) -> str:
        raise FetchError("offline")


class TestStorage:
    def test_default_dimensions(self) -> None:
        ws = Spreadsheet()
        assert (ws.rows, ws.cols) == (100, 26)

    def test_invalid_dimensions(self) -> None:
        with pytest.raises(ValueError):
            Spreadsheet(rows=0)

    def test_empty_cell(self) -> None:
        cell = Spreadsheet().get_cell(3, 3)
        assert cell == CellData("", None)

    def test_set_and_get(self) -> None:
        ws = Spreadsheet()
        ws.set_cell(1, 2, CellData("x"))
        assert ws.get_cell(1, 2).value == "x"
        assert ws["C2"].value == "x"

    def test_set_out_of_bounds(self) -> None:
        ws = Spreadsheet(rows=2, cols=2)
        with pytest.raises(IndexError):
            ws.set_cell(2, 0, CellData("x"))
        with pytest.raises(IndexError):
            ws.set_cell(0, -1, CellData("x"))

    def test_read_out_of_bounds(self) -> None:
        assert Spreadsheet(rows=2, cols=2).get_cell(50, 50).value == ""

    def test_iter_cells_row_major(self) -> None:
        ws = Spreadsheet()
        ws.set_cell(1, 0, CellData("c"))
        ws.set_cell(0, 1, CellData("b"))
        ws.set_cell(0, 0, CellData("a"))
        assert [coords for coords, _ in ws.iter_cells()] == [(0, 0), (0, 1), (1, 0)]

    def test_invalid_key(self) -> None:
        with pytest.raises(ValueError, match="Invalid cell reference"):
            Spreadsheet()["1A"]

    def test_repr(self) -> None:
        ws = Spreadsheet(rows=3, cols=4)
        ws.set_cell(0, 0, CellData("a"))
        assert repr(ws) == "<Spreadsheet 3x4 cells=1>"


class TestEnter:
    def _evaluator(self, ws: Spreadsheet) -> FormulaEvaluator:
        return FormulaEvaluator(ws, FunctionRegistry(fetcher=_StubFetcher()))

    def test_plain_text_stored_verbatim(self) -> None:
        ws = Spreadsheet()
        cell = ws.enter(0, 0, "  hello ")
        assert cell == CellData("  hello ", None)
        assert ws.get_cell(0, 0) == cell

    def test_formula_stored_with_value(self) -> None:
        ws = Spreadsheet()
        ws.enter(0, 0, "10")
        cell = ws.enter(0, 1, "=A1*2", self._evaluator(ws))
        assert cell == CellData("20", "=A1*2")

    def test_failed_formula_stores_sentinel(self) -> None:
        ws = Spreadsheet()
        ws.enter(0, 0, "=1/0", self._evaluator(ws))
        assert ws.get_cell(0, 0) == CellData("#ERROR", "=1/0")

    def test_fetch_failure_stores_sentinel(self) -> None:
        ws = Spreadsheet()
        ws.enter(0, 0, '=GET("https://example.test")', self._evaluator(ws))
        assert ws.get_cell(0, 0).value == "#ERROR"

    def test_cycle_rejected_and_grid_untouched(self) -> None:
        ws = Spreadsheet()
        ev = self._evaluator(ws)
        ws.enter(0, 0, "5")
        ws.enter(0, 1, "=A1+1", ev)
        with pytest.raises(CircularReferenceError) as exc_info:
            ws.enter(0, 0, "=B1", ev)
        assert exc_info.value.cell == (0, 0)
        assert ws.get_cell(0, 0) == CellData("5", None)

    def test_self_reference_rejected(self) -> None:
        ws = Spreadsheet()
        with pytest.raises(CircularReferenceError):
            ws["A1"] = "=A1"
        assert list(ws.iter_cells()) == []

    def test_out_of_bounds(self) -> None:
        with pytest.raises(IndexError):
            Spreadsheet(rows=1, cols=1).enter(5, 5, "x")

    def test_no_automatic_recalculation(self) -> None:
        ws = Spreadsheet()
        ev = self._evaluator(ws)
        ws.enter(0, 0, "1")
        ws.enter(0, 1, "=A1+1", ev)
        ws.enter(0, 0, "10")
        assert ws.get_cell(0, 1).value == "2"


class TestItemAccess:
    def test_setitem_routes_through_enter(self) -> None:
        ws = Spreadsheet()
        ws["A1"] = "10"
        ws["B1"] = "20"
        ws["C1"] = "=SUM(A1:B1) * 2"
        assert ws["C1"].value == "60"
        assert ws["C1"].formula == "=SUM(A1:B1) * 2"

    def test_default_evaluator_reused(self) -> None:
        ws = Spreadsheet()
        ws["A1"] = "=1"
        first = ws._default_evaluator()
        ws["A2"] = "=2"
        assert ws._default_evaluator() is first
