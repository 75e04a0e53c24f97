"""Formula evaluation over a :class:`~gridcalc._grid.Spreadsheet`.

:class:`ExpressionEvaluator` reduces a parsed expression tree to a value.
:class:`FormulaEvaluator` is the cell-store boundary: it strips the leading
``=``, parses, evaluates, renders the result as display text and answers
circular-reference queries before a formula is committed.
"""

from __future__ import annotations

import logging
import math
import sys
from typing import TYPE_CHECKING

from gridcalc._utils import parse_reference
from gridcalc.calc._ast import Binary, BinaryOp, CellRef, Expr, FunctionCall, Number, Range, String, Unary, UnaryOp
from gridcalc.calc._errors import ERROR_SENTINEL, DepthLimitError, EvalError, FormulaError
from gridcalc.calc._fetch import HttpxFetcher
from gridcalc.calc._functions import FunctionRegistry, Value, safe_pow, sniff, to_number, to_string
from gridcalc.calc._graph import CircularReferenceChecker
from gridcalc.calc._parser import expand_range, parse, range_size
from gridcalc.calc._protocol import DEFAULT_CONFIG, EngineConfig

if TYPE_CHECKING:
    from gridcalc._grid import Spreadsheet

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def values_equal(left: Value, right: Value) -> bool:
    """``=`` semantics: epsilon for numbers, identity for text, else rendered text."""
    left_is_text = isinstance(left, str)
    right_is_text = isinstance(right, str)
    if not left_is_text and not right_is_text:
        return abs(left - right) < sys.float_info.epsilon  # type: ignore[operator]
    if left_is_text and right_is_text:
        return left == right
    return to_string(left) == to_string(right)


def _apply_binary(op: BinaryOp, left: Value, right: Value) -> Value:
    if op is BinaryOp.CONCATENATE:
        return to_string(left) + to_string(right)
    if op is BinaryOp.EQUAL:
        return 1.0 if values_equal(left, right) else 0.0
    if op is BinaryOp.NOT_EQUAL:
        return 0.0 if values_equal(left, right) else 1.0

    a = to_number(left)
    b = to_number(right)
    if op is BinaryOp.LESS:
        return 1.0 if a < b else 0.0
    if op is BinaryOp.LESS_EQUAL:
        return 1.0 if a <= b else 0.0
    if op is BinaryOp.GREATER:
        return 1.0 if a > b else 0.0
    if op is BinaryOp.GREATER_EQUAL:
        return 1.0 if a >= b else 0.0
    return _finite(_arithmetic(op, a, b), op.value)


def _arithmetic(op: BinaryOp, a: float, b: float) -> float:
    if op is BinaryOp.ADD:
        return a + b
    if op is BinaryOp.SUBTRACT:
        return a - b
    if op is BinaryOp.MULTIPLY:
        return a * b
    if op is BinaryOp.DIVIDE:
        if b == 0:
            raise EvalError("Division by zero")
        return a / b
    if op is BinaryOp.MODULO:
        if b == 0:
            raise EvalError("Modulo by zero")
        try:
            return math.fmod(a, b)
        except ValueError as e:
            raise EvalError(f"Invalid modulo operands: {e}") from e
    if op is BinaryOp.POWER:
        try:
            return safe_pow(a, b)
        except (ValueError, OverflowError) as e:
            raise EvalError(f"Invalid power operation: {e}") from e
    raise EvalError(f"Unsupported operator: {op.value}")


def _finite(value: float, source: str) -> float:
    """Numbers leaving an operator or function must be finite."""
    if not math.isfinite(value):
        raise EvalError(f"{source}: result is not a finite number")
    return value


# ---------------------------------------------------------------------------
# Expression evaluator
# ---------------------------------------------------------------------------


class ExpressionEvaluator:
    """Reduces an expression tree to a value against a read-only grid.

    Cell text is numeric-sniffed on every read. Ranges are only accepted as
    direct function arguments, where they expand row-major into the
    argument list. Tree depth is bounded by ``config.max_eval_depth``.
    """

    def __init__(
        self,
        spreadsheet: Spreadsheet,
        registry: FunctionRegistry,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self._spreadsheet = spreadsheet
        self._registry = registry
        self._max_depth = config.max_eval_depth
        self._max_range_cells = config.max_range_cells
        self._depth = 0

    def evaluate(self, expr: Expr) -> Value:
        if self._depth >= self._max_depth:
            raise DepthLimitError(f"Expression deeper than {self._max_depth} levels")
        self._depth += 1
        try:
            return self._evaluate_node(expr)
        finally:
            self._depth -= 1

    def _evaluate_node(self, expr: Expr) -> Value:
        if isinstance(expr, Number):
            return expr.value
        if isinstance(expr, String):
            return expr.value
        if isinstance(expr, CellRef):
            return self._read_cell(expr.ref)
        if isinstance(expr, Range):
            raise EvalError(f"Range {expr.start}:{expr.end} is only valid as a function argument")
        if isinstance(expr, Unary):
            value = to_number(self.evaluate(expr.operand))
            return _finite(-value if expr.op is UnaryOp.MINUS else value, expr.op.value)
        if isinstance(expr, Binary):
            return self._evaluate_binary(expr)
        if isinstance(expr, FunctionCall):
            return self._call_function(expr)
        raise EvalError(f"Unsupported expression: {expr!r}")

    def _evaluate_binary(self, expr: Binary) -> Value:
        # Left-associative chains nest on the left; walk that spine
        # iteratively so long sums do not consume evaluation depth.
        spine: list[Binary] = []
        node: Expr = expr
        while isinstance(node, Binary) and node.op is not BinaryOp.POWER:
            spine.append(node)
            node = node.left
        if not spine:
            return _apply_binary(expr.op, self.evaluate(expr.left), self.evaluate(expr.right))

        value = self.evaluate(node)
        for binary in reversed(spine):
            value = _apply_binary(binary.op, value, self.evaluate(binary.right))
        return value

    def _read_cell(self, ref: str) -> Value:
        coords = parse_reference(ref)
        if coords is None:
            raise EvalError(f"Invalid cell reference: {ref}")
        return sniff(self._spreadsheet.get_cell(*coords).value)

    def _expand_args(self, args: tuple[Expr, ...]) -> list[Value]:
        values: list[Value] = []
        for arg in args:
            if isinstance(arg, Range):
                try:
                    size = range_size(arg.start, arg.end)
                except ValueError as e:
                    raise EvalError(str(e)) from e
                if size > self._max_range_cells:
                    raise EvalError(
                        f"Range {arg.start}:{arg.end} spans {size} cells; the limit is {self._max_range_cells}"
                    )
                cells = expand_range(arg.start, arg.end)
                values.extend(sniff(self._spreadsheet.get_cell(r, c).value) for r, c in cells)
            else:
                values.append(self.evaluate(arg))
        return values

    def _call_function(self, call: FunctionCall) -> Value:
        func = self._registry.lookup(call.name)
        if func is None:
            raise EvalError(f"Unknown function: {call.name}")
        args = self._expand_args(call.args)
        try:
            result = func(args)
        except (ValueError, ArithmeticError) as e:
            raise EvalError(f"{call.name}: {e}") from e
        if isinstance(result, str):
            return result
        return _finite(float(result), call.name)


# ---------------------------------------------------------------------------
# Cell-store boundary
# ---------------------------------------------------------------------------


class FormulaEvaluator:
    """Evaluates cell formulas for a spreadsheet.

    Usage::

        ws = Spreadsheet()
        ws["A1"] = "10"
        evaluator = FormulaEvaluator(ws)
        evaluator.evaluate("=A1*2")           # 20.0
        evaluator.evaluate_formula("=A1*2")   # "20"
        evaluator.evaluate_formula("=1/0")    # "#ERROR"
    """

    def __init__(
        self,
        spreadsheet: Spreadsheet,
        registry: FunctionRegistry | None = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self.spreadsheet = spreadsheet
        self.config = config
        if registry is None:
            registry = FunctionRegistry(fetcher=HttpxFetcher(config.fetch_timeout))
        self.registry = registry
        self._checker = CircularReferenceChecker(spreadsheet, config)

    def evaluate(self, formula: str) -> Value:
        """Parse and evaluate *formula*; a leading ``=`` is optional.

        Raises a :class:`FormulaError` subclass on any failure.
        """
        text = formula[1:] if formula.startswith("=") else formula
        expr = parse(text, self.config.max_parse_depth)
        return ExpressionEvaluator(self.spreadsheet, self.registry, self.config).evaluate(expr)

    def evaluate_formula(self, text: str) -> str:
        """Display text for raw cell input.

        Text without a leading ``=`` is returned unchanged. Failures are
        rendered as ``#ERROR``.
        """
        if not text.startswith("="):
            return text
        try:
            return to_string(self.evaluate(text))
        except FormulaError as e:
            logger.debug("Formula %r evaluated to %s: %s", text, ERROR_SENTINEL, e)
            return ERROR_SENTINEL

    def would_create_circular_reference(self, formula: str, cell: tuple[int, int]) -> bool:
        return self._checker.would_create_cycle(formula, cell)
