"""A1 range addressing for Google Sheets.

Converts blocks of cell values anchored at a position into inclusive A1
ranges (``Sheet1!A1:C10``) and finds the occupied rectangle of grid data
fetched with ``includeGridData``.

Positions are zero-based; A1 text uses letter columns (0 -> A, 26 -> AA)
and one-based rows.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

# Largest column count a Google spreadsheet supports (column ZZZ)
MAX_COLUMNS = 18278

VALUE_KEYS = ("userEnteredValue", "effectiveValue", "formattedValue")


def column_letter(index: int) -> str:
    """Convert a zero-based column index to letters (0 -> A, 25 -> Z, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"Column index must not be negative, got {index}")

    letters = []
    n = index + 1
    while n:
        n, remainder = divmod(n - 1, 26)
        letters.append(chr(ord("A") + remainder))
    return "".join(reversed(letters))


def column_index(letters: str) -> int:
    """Convert column letters to a zero-based index (A -> 0, AA -> 26)."""
    if not letters or not letters.isalpha() or not letters.isascii():
        raise ValueError(f"Invalid column letters: {letters!r}")

    n = 0
    for char in letters.upper():
        n = n * 26 + (ord(char) - ord("A") + 1)
    return n - 1


@dataclass(frozen=True)
class CellPos:
    """Zero-based (row, col) position of a single cell."""

    row: int
    col: int

    def __post_init__(self) -> None:
        if self.row < 0 or self.col < 0:
            raise ValueError(f"Cell position must not be negative, got ({self.row}, {self.col})")

    @property
    def a1(self) -> str:
        """Position in A1 notation (e.g. "C10")."""
        return f"{column_letter(self.col)}{self.row + 1}"

    def range_for_data(self, data: Sequence[Sequence[Any]]) -> CellRange:
        """Range covered by `data` when written with this cell as top-left."""
        return range_for_data(self, data)

    def __str__(self) -> str:
        return self.a1


@dataclass(frozen=True)
class CellRange:
    """Inclusive rectangle of cells."""

    start: CellPos
    end: CellPos

    def __post_init__(self) -> None:
        if self.end.row < self.start.row or self.end.col < self.start.col:
            raise ValueError(f"Range end {self.end.a1} is before start {self.start.a1}")

    @property
    def row_count(self) -> int:
        return self.end.row - self.start.row + 1

    @property
    def column_count(self) -> int:
        return self.end.col - self.start.col + 1

    def __str__(self) -> str:
        return f"{self.start.a1}:{self.end.a1}"


@dataclass(frozen=True)
class SheetRange:
    """A cell range on a named sheet, e.g. ``Sheet1!A1:C10``."""

    sheet_name: str
    cell_range: CellRange

    def __str__(self) -> str:
        return f"{self.sheet_name}!{self.cell_range}"


def range_for_data(anchor: CellPos, data: Sequence[Sequence[Any]]) -> CellRange:
    """Compute the range a block of rows occupies when written at `anchor`.

    Rows may have different lengths; the widest row sets the range width.
    Empty data yields the single cell at `anchor`.
    """
    rows = len(data)
    width = max((len(row) for row in data), default=0)
    end = CellPos(anchor.row + max(0, rows - 1), anchor.col + max(0, width - 1))
    return CellRange(anchor, end)


def format_range(sheet_name: str, cell_range: CellRange) -> str:
    """Format a range as ``<sheet_name>!<A1>:<B2>``."""
    return str(SheetRange(sheet_name, cell_range))


def _has_value(cell: dict[str, Any]) -> bool:
    return any(key in cell for key in VALUE_KEYS)


def occupied_rectangle(grid: dict[str, Any] | None) -> CellRange:
    """Find the occupied area of fetched grid data.

    Args:
        grid: A Sheets API ``GridData`` dict, i.e. one entry of
            ``sheet["data"]`` from a spreadsheet fetched with grid data.

    Returns:
        Range anchored at A1 whose end is the last row with row data and the
        last column holding a value in any row. A1 alone for an empty grid.
    """
    origin = CellPos(0, 0)
    if not grid:
        return CellRange(origin, origin)

    start_row = grid.get("startRow", 0)
    start_col = grid.get("startColumn", 0)

    last_row = -1
    last_col = -1
    for row_idx, row_data in enumerate(grid.get("rowData", [])):
        values = (row_data or {}).get("values", [])
        if not values:
            continue
        last_row = row_idx
        for col_idx, cell in enumerate(values):
            if cell and _has_value(cell):
                last_col = max(last_col, col_idx)

    if last_row < 0:
        return CellRange(origin, origin)

    end = CellPos(start_row + last_row, start_col + max(last_col, 0))
    return CellRange(origin, end)
