"""Fetcher protocol and engine configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class EngineConfig:
    """Bounds and timeouts shared by the parser, evaluator and cycle checker."""

    max_parse_depth: int = 64  # nested parens / calls / prefixes / power chains
    max_eval_depth: int = 256  # expression tree depth during evaluation
    max_dependency_depth: int = 256  # formula-cell chain length in cycle checks
    max_range_cells: int = 1_000_000  # cells one range argument may expand to
    fetch_timeout: float = 10.0  # seconds, for the default GET fetcher


DEFAULT_CONFIG = EngineConfig()


@runtime_checkable
class Fetcher(Protocol):
    """Network capability used by the ``GET`` builtin."""

    def fetch(self, url: str) -> str:
        """Return the response body for *url*.

        Raises :class:`~gridcalc.calc._errors.FetchError` on any failure.
        """
        ...
