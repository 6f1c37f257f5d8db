"""Google Sheets API client with retries and A1 range addressing.

Create, fill, read and share spreadsheets programmatically.

Usage:
    from sheets_utils.sheets import CellPos, SheetsClient

    # Initialize (requires OAuth authorization)
    client = SheetsClient()

    # Create a spreadsheet from a TSV file
    with open("report.tsv", newline="") as f:
        ss = client.create_spreadsheet_from_tsv("Report", f)

    # Write a block starting at C5
    client.update(ss.id, "Sheet1", [["a", "b"], ["c"]], start=CellPos(4, 2))

    # Read values
    values = client.read_range(ss.id, "Sheet1!A1:C10")

OAuth Setup:
    1. Download OAuth credentials from Google Cloud Console
    2. Import: sheets-utils google import ~/Downloads/credentials.json
    3. Authorize: sheets-utils google login
"""

from __future__ import annotations

from sheets_utils.sheets.client import Sheet, SheetsClient, Spreadsheet, read_delimited
from sheets_utils.sheets.ranges import (
    CellPos,
    CellRange,
    SheetRange,
    column_index,
    column_letter,
    format_range,
    occupied_rectangle,
    range_for_data,
)

__all__ = [
    "SheetsClient",
    "Spreadsheet",
    "Sheet",
    "read_delimited",
    "CellPos",
    "CellRange",
    "SheetRange",
    "column_letter",
    "column_index",
    "format_range",
    "range_for_data",
    "occupied_rectangle",
]
