"""gridcalc - a spreadsheet cell grid with an Excel-style formula language.

Usage::

    from gridcalc import Spreadsheet

    ws = Spreadsheet(rows=100, cols=26)
    ws["A1"] = "10"
    ws["B1"] = "20"
    ws["C1"] = "=SUM(A1:B1) * 2"
    print(ws["C1"].value)    # "60"
    print(ws["C1"].formula)  # "=SUM(A1:B1) * 2"

    ws["A1"] = "=C1"         # raises CircularReferenceError
"""

from gridcalc._grid import CellData, Spreadsheet
from gridcalc._utils import a1_to_rowcol, column_index, column_label, parse_reference, rowcol_to_a1
from gridcalc.calc import CircularReferenceError, EngineConfig, FormulaError, FormulaEvaluator

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "CellData",
    "CircularReferenceError",
    "EngineConfig",
    "FormulaError",
    "FormulaEvaluator",
    "Spreadsheet",
    "a1_to_rowcol",
    "column_index",
    "column_label",
    "parse_reference",
    "rowcol_to_a1",
]
