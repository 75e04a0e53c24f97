"""gridcalc.calc - Formula lexing, parsing and evaluation for gridcalc spreadsheets."""

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
from gridcalc.calc._errors import (
    ERROR_SENTINEL,
    CircularReferenceError,
    DepthLimitError,
    EvalError,
    FetchError,
    FormulaError,
    LexError,
    ParseError,
)
from gridcalc.calc._evaluator import ExpressionEvaluator, FormulaEvaluator, values_equal
from gridcalc.calc._fetch import HttpxFetcher
from gridcalc.calc._functions import (
    FunctionRegistry,
    Value,
    format_number,
    is_truthy,
    sniff,
    to_number,
    to_string,
)
from gridcalc.calc._graph import CircularReferenceChecker
from gridcalc.calc._lexer import Lexer, Token, TokenType, tokenize
from gridcalc.calc._parser import Parser, expand_range, parse, range_size, references, scan_references
from gridcalc.calc._protocol import DEFAULT_CONFIG, EngineConfig, Fetcher

__all__ = [
    "Binary",
    "BinaryOp",
    "CellRef",
    "CircularReferenceChecker",
    "CircularReferenceError",
    "DEFAULT_CONFIG",
    "DepthLimitError",
    "ERROR_SENTINEL",
    "EngineConfig",
    "EvalError",
    "Expr",
    "ExpressionEvaluator",
    "FetchError",
    "Fetcher",
    "FormulaError",
    "FormulaEvaluator",
    "FunctionCall",
    "FunctionRegistry",
    "HttpxFetcher",
    "LexError",
    "Lexer",
    "Number",
    "ParseError",
    "Parser",
    "Range",
    "String",
    "Token",
    "TokenType",
    "Unary",
    "UnaryOp",
    "Value",
    "expand_range",
    "format_number",
    "is_truthy",
    "parse",
    "range_size",
    "references",
    "scan_references",
    "sniff",
    "to_number",
    "to_string",
    "tokenize",
    "values_equal",
]
