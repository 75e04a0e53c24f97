"""Value coercions and builtin function implementations for formula evaluation."""

from __future__ import annotations

import math
import random
import unicodedata
from collections.abc import Callable
from decimal import Decimal
from typing import Union

from gridcalc.calc._errors import FetchError
from gridcalc.calc._fetch import HttpxFetcher
from gridcalc.calc._protocol import Fetcher

# A formula value is either a number or a piece of text.
Value = Union[float, str]

FunctionImpl = Callable[[list[Value]], Value]


# ---------------------------------------------------------------------------
# Value coercions
# ---------------------------------------------------------------------------


def _parse_float(text: str) -> float | None:
    """Strict float parse: no surrounding whitespace, no digit separators."""
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def sniff(text: str) -> Value:
    """Type raw cell text: a number if it parses as one, otherwise the text."""
    number = _parse_float(text)
    return text if number is None else number


def to_number(value: Value) -> float:
    """Numeric view of a value. Text that is not a number coerces to 0.0."""
    if isinstance(value, str):
        number = _parse_float(value)
        return 0.0 if number is None else number
    return float(value)


def format_number(x: float) -> str:
    """Render a float without exponent notation or a trailing ``.0``."""
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "inf" if x > 0 else "-inf"
    if x.is_integer():
        return str(int(x))
    return format(Decimal(repr(x)), "f")


def to_string(value: Value) -> str:
    if isinstance(value, str):
        return value
    return format_number(float(value))


def is_truthy(value: Value) -> bool:
    """Nonzero numbers and non-empty text are truthy."""
    if isinstance(value, str):
        return value != ""
    return value != 0


def _flag(condition: bool) -> float:
    return 1.0 if condition else 0.0


def _require(name: str, args: list[Value], count: int) -> None:
    if len(args) != count:
        plural = "argument" if count == 1 else "arguments"
        raise ValueError(f"{name} requires exactly {count} {plural}")


def round_half_away(x: float) -> float:
    """Round to the nearest integer, halves away from zero."""
    whole = math.floor(abs(x))
    if abs(x) - whole >= 0.5:
        whole += 1
    return math.copysign(whole, x)


def safe_pow(base: float, exponent: float) -> float:
    """``base ** exponent`` restricted to real, finite results.

    Raises ValueError for complex/undefined results and OverflowError when
    the result does not fit in a float.
    """
    result = math.pow(base, exponent)
    if not math.isfinite(result):
        raise OverflowError("power result out of range")
    return result


# ---------------------------------------------------------------------------
# Aggregates and logic
# ---------------------------------------------------------------------------


def _builtin_sum(args: list[Value]) -> float:
    return sum(to_number(a) for a in args)


def _builtin_average(args: list[Value]) -> float:
    if not args:
        raise ValueError("AVERAGE requires at least one argument")
    return sum(to_number(a) for a in args) / len(args)


def _builtin_min(args: list[Value]) -> float:
    if not args:
        raise ValueError("MIN requires at least one argument")
    return min(to_number(a) for a in args)


def _builtin_max(args: list[Value]) -> float:
    if not args:
        raise ValueError("MAX requires at least one argument")
    return max(to_number(a) for a in args)


def _builtin_if(args: list[Value]) -> Value:
    if len(args) != 3:
        raise ValueError("IF requires exactly 3 arguments")
    return args[1] if is_truthy(args[0]) else args[2]


def _builtin_and(args: list[Value]) -> float:
    return _flag(all(is_truthy(a) for a in args))


def _builtin_or(args: list[Value]) -> float:
    return _flag(any(is_truthy(a) for a in args))


def _builtin_not(args: list[Value]) -> float:
    _require("NOT", args, 1)
    return _flag(not is_truthy(args[0]))


def _builtin_count(args: list[Value]) -> float:
    """COUNT - counts numeric values only."""
    return float(sum(1 for a in args if not isinstance(a, str)))


def _builtin_counta(args: list[Value]) -> float:
    """COUNTA - counts numbers and non-empty text."""
    return float(sum(1 for a in args if not isinstance(a, str) or a != ""))


# ---------------------------------------------------------------------------
# Math
# ---------------------------------------------------------------------------


def _unary_math(name: str, fn: Callable[[float], float]) -> FunctionImpl:
    def impl(args: list[Value]) -> float:
        _require(name, args, 1)
        return float(fn(to_number(args[0])))

    impl.__name__ = f"_builtin_{name.lower()}"
    return impl


def _sign(x: float) -> float:
    if x > 0:
        return 1.0
    if x < 0:
        return -1.0
    return 0.0


def _builtin_sqrt(args: list[Value]) -> float:
    _require("SQRT", args, 1)
    x = to_number(args[0])
    if x < 0:
        raise ValueError("SQRT of negative number")
    return math.sqrt(x)


def _builtin_ln(args: list[Value]) -> float:
    _require("LN", args, 1)
    x = to_number(args[0])
    if x <= 0:
        raise ValueError("LN requires a positive argument")
    return math.log(x)


def _builtin_log(args: list[Value]) -> float:
    if len(args) not in (1, 2):
        raise ValueError("LOG requires 1 or 2 arguments")
    x = to_number(args[0])
    if x <= 0:
        raise ValueError("LOG requires a positive argument")
    if len(args) == 1:
        return math.log10(x)
    base = to_number(args[1])
    if base <= 0 or base == 1:
        raise ValueError("LOG base must be positive and not 1")
    return math.log(x, base)


def _builtin_round(args: list[Value]) -> float:
    if len(args) == 1:
        return round_half_away(to_number(args[0]))
    if len(args) == 2:
        places = int(to_number(args[1]))
        multiplier = 10.0 ** places
        return round_half_away(to_number(args[0]) * multiplier) / multiplier
    raise ValueError("ROUND requires 1 or 2 arguments")


def _builtin_mod(args: list[Value]) -> float:
    _require("MOD", args, 2)
    divisor = to_number(args[1])
    if divisor == 0:
        raise ValueError("MOD by zero")
    return math.fmod(to_number(args[0]), divisor)


def _builtin_power(args: list[Value]) -> float:
    _require("POWER", args, 2)
    return safe_pow(to_number(args[0]), to_number(args[1]))


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


# Longest text a builtin may produce, as in Excel.
MAX_TEXT_LENGTH = 32767


def _count(value: Value) -> int:
    """Character count argument; negatives clamp to zero."""
    return max(int(to_number(value)), 0)


def _builtin_concat(args: list[Value]) -> str:
    return "".join(to_string(a) for a in args)


def _builtin_len(args: list[Value]) -> float:
    _require("LEN", args, 1)
    return float(len(to_string(args[0])))


def _builtin_upper(args: list[Value]) -> str:
    _require("UPPER", args, 1)
    return to_string(args[0]).upper()


def _builtin_lower(args: list[Value]) -> str:
    _require("LOWER", args, 1)
    return to_string(args[0]).lower()


def _builtin_trim(args: list[Value]) -> str:
    _require("TRIM", args, 1)
    return to_string(args[0]).strip()


def _builtin_code(args: list[Value]) -> float:
    _require("CODE", args, 1)
    text = to_string(args[0])
    if not text:
        raise ValueError("CODE requires a non-empty string")
    return float(ord(text[0]))


def _builtin_left(args: list[Value]) -> str:
    _require("LEFT", args, 2)
    return to_string(args[0])[:_count(args[1])]


def _builtin_right(args: list[Value]) -> str:
    _require("RIGHT", args, 2)
    text = to_string(args[0])
    n = _count(args[1])
    return text[len(text) - n:] if n else ""


def _builtin_mid(args: list[Value]) -> str:
    """MID(text, start, length) with a 0-based start."""
    _require("MID", args, 3)
    start = _count(args[1])
    return to_string(args[0])[start:start + _count(args[2])]


def _builtin_find(args: list[Value]) -> float:
    """FIND(needle, haystack, [start]) -> 0-based position."""
    if len(args) not in (2, 3):
        raise ValueError("FIND requires 2 or 3 arguments")
    needle = to_string(args[0])
    haystack = to_string(args[1])
    start = int(to_number(args[2])) if len(args) == 3 else 0
    if start < 0 or start > len(haystack):
        raise ValueError("FIND start position is beyond the text")
    idx = haystack.find(needle, start)
    if idx < 0:
        raise ValueError(f"FIND: {needle!r} not found")
    return float(idx)


def _builtin_substitute(args: list[Value]) -> str:
    _require("SUBSTITUTE", args, 3)
    return to_string(args[0]).replace(to_string(args[1]), to_string(args[2]))


def _builtin_replace(args: list[Value]) -> str:
    """REPLACE(text, start, count, new) with a 1-based start."""
    _require("REPLACE", args, 4)
    text = to_string(args[0])
    start = int(to_number(args[1])) - 1
    count = int(to_number(args[2]))
    if start < 0:
        raise ValueError("REPLACE start position must be at least 1")
    if count < 0:
        raise ValueError("REPLACE count must not be negative")
    return text[:start] + to_string(args[3]) + text[start + count:]


def _builtin_rept(args: list[Value]) -> str:
    _require("REPT", args, 2)
    times = int(to_number(args[1]))
    if times < 0:
        raise ValueError("REPT count must not be negative")
    text = to_string(args[0])
    if len(text) * times > MAX_TEXT_LENGTH:
        raise ValueError(f"REPT result longer than {MAX_TEXT_LENGTH} characters")
    return text * times


def _builtin_exact(args: list[Value]) -> float:
    _require("EXACT", args, 2)
    return _flag(to_string(args[0]) == to_string(args[1]))


def _builtin_proper(args: list[Value]) -> str:
    _require("PROPER", args, 1)
    out: list[str] = []
    at_boundary = True
    for ch in to_string(args[0]):
        if ch.isspace() or ch in "-_":
            out.append(ch)
            at_boundary = True
        elif at_boundary:
            out.append(ch.upper())
            at_boundary = False
        else:
            out.append(ch.lower())
    return "".join(out)


def _builtin_clean(args: list[Value]) -> str:
    _require("CLEAN", args, 1)
    return "".join(ch for ch in to_string(args[0]) if unicodedata.category(ch) != "Cc")


def _builtin_char(args: list[Value]) -> str:
    _require("CHAR", args, 1)
    code = to_number(args[0])
    if not code.is_integer() or not 0 <= code <= 0x10FFFF or 0xD800 <= code <= 0xDFFF:
        raise ValueError(f"CHAR: invalid code point {format_number(code)}")
    return chr(int(code))


def _builtin_text(args: list[Value]) -> str:
    # The format argument is accepted for compatibility but not applied.
    if len(args) not in (1, 2):
        raise ValueError("TEXT requires 1 or 2 arguments")
    return to_string(args[0])


def _builtin_value(args: list[Value]) -> float:
    _require("VALUE", args, 1)
    value = args[0]
    if not isinstance(value, str):
        return float(value)
    number = _parse_float(value.strip())
    if number is None:
        raise ValueError(f"VALUE: cannot parse {value!r} as a number")
    return number


# ---------------------------------------------------------------------------
# Type predicates
# ---------------------------------------------------------------------------


def _builtin_isblank(args: list[Value]) -> float:
    _require("ISBLANK", args, 1)
    return _flag(args[0] == "")


def _builtin_isnumber(args: list[Value]) -> float:
    _require("ISNUMBER", args, 1)
    return _flag(not isinstance(args[0], str))


def _builtin_istext(args: list[Value]) -> float:
    _require("ISTEXT", args, 1)
    return _flag(isinstance(args[0], str))


def _builtin_type(args: list[Value]) -> float:
    _require("TYPE", args, 1)
    return 2.0 if isinstance(args[0], str) else 1.0


# ---------------------------------------------------------------------------
# Sparkline
# ---------------------------------------------------------------------------

# Nine heights, lowest first.
SPARK_BLOCKS = " ▁▂▃▄▅▆▇█"


def _builtin_sparkline(args: list[Value]) -> str:
    if not args:
        raise ValueError("SPARKLINE requires at least one argument")
    nums = [to_number(a) for a in args]
    lo, hi = min(nums), max(nums)
    top = len(SPARK_BLOCKS) - 1
    if hi == lo:
        return SPARK_BLOCKS[top // 2] * len(nums)
    return "".join(SPARK_BLOCKS[int((n - lo) / (hi - lo) * top + 0.5)] for n in nums)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_BUILTINS: dict[str, FunctionImpl] = {
    # Aggregates
    "SUM": _builtin_sum,
    "AVERAGE": _builtin_average,
    "MIN": _builtin_min,
    "MAX": _builtin_max,
    "COUNT": _builtin_count,
    "COUNTA": _builtin_counta,
    # Logic
    "IF": _builtin_if,
    "AND": _builtin_and,
    "OR": _builtin_or,
    "NOT": _builtin_not,
    # Math
    "ABS": _unary_math("ABS", abs),
    "CEILING": _unary_math("CEILING", math.ceil),
    "FLOOR": _unary_math("FLOOR", math.floor),
    "INT": _unary_math("INT", math.floor),
    "EXP": _unary_math("EXP", math.exp),
    "SIGN": _unary_math("SIGN", _sign),
    "SQRT": _builtin_sqrt,
    "LN": _builtin_ln,
    "LOG": _builtin_log,
    "ROUND": _builtin_round,
    "MOD": _builtin_mod,
    "POWER": _builtin_power,
    # Text
    "CONCAT": _builtin_concat,
    "LEN": _builtin_len,
    "UPPER": _builtin_upper,
    "LOWER": _builtin_lower,
    "TRIM": _builtin_trim,
    "CODE": _builtin_code,
    "LEFT": _builtin_left,
    "RIGHT": _builtin_right,
    "MID": _builtin_mid,
    "FIND": _builtin_find,
    "SUBSTITUTE": _builtin_substitute,
    "REPLACE": _builtin_replace,
    "REPT": _builtin_rept,
    "EXACT": _builtin_exact,
    "PROPER": _builtin_proper,
    "CLEAN": _builtin_clean,
    "CHAR": _builtin_char,
    "TEXT": _builtin_text,
    "VALUE": _builtin_value,
    "NUMBERVALUE": _builtin_value,
    # Type predicates
    "ISBLANK": _builtin_isblank,
    "ISNUMBER": _builtin_isnumber,
    "ISTEXT": _builtin_istext,
    "TYPE": _builtin_type,
    # Charts
    "SPARKLINE": _builtin_sparkline,
}


class FunctionRegistry:
    """Name -> implementation table, case-insensitive.

    Starts with the builtins and can be extended with custom functions.
    RAND/RANDBETWEEN draw from *rng* and GET fetches through *fetcher*;
    both are injectable so evaluation stays deterministic under test.
    """

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._fetcher: Fetcher = fetcher if fetcher is not None else HttpxFetcher()
        self._rng = rng if rng is not None else random.Random()
        self._functions: dict[str, FunctionImpl] = dict(_BUILTINS)
        self._functions["RAND"] = self._rand
        self._functions["RANDBETWEEN"] = self._randbetween
        self._functions["GET"] = self._get

    def register(self, name: str, func: FunctionImpl) -> None:
        """Add or replace a function; later registrations win."""
        self._functions[name.upper()] = func

    def lookup(self, name: str) -> FunctionImpl | None:
        return self._functions.get(name.upper())

    def has(self, name: str) -> bool:
        return name.upper() in self._functions

    @property
    def supported_functions(self) -> frozenset[str]:
        return frozenset(self._functions.keys())

    # ------------------------------------------------------------------
    # Stateful builtins
    # ------------------------------------------------------------------

    def _rand(self, args: list[Value]) -> float:
        _require("RAND", args, 0)
        return self._rng.random()

    def _randbetween(self, args: list[Value]) -> float:
        _require("RANDBETWEEN", args, 2)
        low = math.ceil(to_number(args[0]))
        high = math.floor(to_number(args[1]))
        if low > high:
            raise ValueError("RANDBETWEEN requires low <= high")
        return float(self._rng.randint(low, high))

    def _get(self, args: list[Value]) -> str:
        _require("GET", args, 1)
        url = to_string(args[0]).strip()
        if not url:
            raise ValueError("GET requires a non-empty URL")
        if not url.lower().startswith(("http://", "https://")):
            raise ValueError(f"GET: unsupported URL {url!r}")
        try:
            return self._fetcher.fetch(url)
        except FetchError as e:
            raise ValueError(f"GET {url} failed: {e}") from e
