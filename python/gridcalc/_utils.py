"""Cell addressing: conversions between (row, col) and ``A1`` text."""

from __future__ import annotations

import string

_LETTERS = string.ascii_uppercase


def column_label(col: int) -> str:
    """Convert a 0-based column index to its letter label.

    Bijective base-26: 0 -> "A", 25 -> "Z", 26 -> "AA", 701 -> "ZZ".
    """
    if col < 0:
        raise ValueError(f"Column index must be non-negative: {col}")
    label = ""
    c = col
    while True:
        label = _LETTERS[c % 26] + label
        if c < 26:
            return label
        c = c // 26 - 1


def column_index(label: str) -> int | None:
    """Convert a letter label (case-insensitive) to a 0-based column index."""
    if not label:
        return None
    result = 0
    for ch in label.upper():
        if ch not in _LETTERS:
            return None
        result = result * 26 + (ord(ch) - ord("A") + 1)
    return result - 1


def parse_reference(text: str) -> tuple[int, int] | None:
    """Parse ``AA12``-style text into 0-based ``(row, col)``.

    Letters must strictly precede digits and nothing else may appear.
    Returns None for anything that is not a valid reference, including
    row ``0`` (rows are 1-based in text).
    """
    if not text:
        return None

    split = 0
    while split < len(text) and text[split].isascii() and text[split].isalpha():
        split += 1
    letters, digits = text[:split], text[split:]
    if not letters or not digits:
        return None
    if not (digits.isascii() and digits.isdigit()):
        return None

    row = int(digits) - 1
    if row < 0:
        return None
    col = column_index(letters)
    if col is None:
        return None
    return row, col


def a1_to_rowcol(ref: str) -> tuple[int, int]:
    """Like :func:`parse_reference` but raises ValueError on bad input."""
    coords = parse_reference(ref)
    if coords is None:
        raise ValueError(f"Invalid cell reference: {ref!r}")
    return coords


def rowcol_to_a1(row: int, col: int) -> str:
    """Convert 0-based ``(row, col)`` to ``A1`` text."""
    if row < 0:
        raise ValueError(f"Row index must be non-negative: {row}")
    return f"{column_label(col)}{row + 1}"
