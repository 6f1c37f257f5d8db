"""Google Sheets API client implementation."""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sheets_utils.drive import DriveClient
from sheets_utils.google import GoogleOAuth, GoogleRetry, is_disguised_success
from sheets_utils.google.exceptions import AuthorizationRequired, GoogleAPIError
from sheets_utils.sheets.ranges import (
    CellPos,
    CellRange,
    format_range,
    occupied_rectangle,
    range_for_data,
)

logger = logging.getLogger(__name__)

DEFAULT_SHEET_TITLE = "Sheet1"


@dataclass
class Sheet:
    """Represents a sheet within a spreadsheet.

    `data` holds the raw ``GridData`` list and is only set on spreadsheets
    fetched with `SheetsClient.get_spreadsheet_with_data`.
    """

    id: int
    title: str
    index: int
    row_count: int = 1000
    column_count: int = 26
    data: list[dict[str, Any]] | None = field(default=None, repr=False)

    @property
    def top_left(self) -> CellPos:
        return CellPos(0, 0)


@dataclass
class Spreadsheet:
    """Represents a Google Spreadsheet."""

    id: str
    title: str
    sheets: list[Sheet] = field(default_factory=list)
    url: str | None = None

    @property
    def default_sheet(self) -> Sheet | None:
        """Get the first sheet."""
        if self.sheets:
            return self.sheets[0]
        return None

    def get_sheet(self, title: str) -> Sheet | None:
        """Find a sheet by title, ignoring case."""
        query = title.lower()
        for sheet in self.sheets:
            if sheet.title.lower() == query:
                return sheet
        return None


def read_delimited(stream: Iterable[str], delimiter: str = "\t") -> list[list[str]]:
    """Read delimited text into rows of strings.

    Tab-separated input is split verbatim; other delimiters follow CSV
    quoting rules. Rows keep their own length.
    """
    quoting = csv.QUOTE_NONE if delimiter == "\t" else csv.QUOTE_MINIMAL
    return [row for row in csv.reader(stream, delimiter=delimiter, quoting=quoting)]


class SheetsClient:
    """Google Sheets API client with OAuth or service account authentication.

    Every remote call goes through a `GoogleRetry` policy. Writes compute
    their target A1 range from the shape of the data.

    Usage:
        client = SheetsClient()

        # Create a spreadsheet with data
        ss = client.create_spreadsheet_with_data("Report", [["Name", "Age"], ["Alice", "30"]])

        # Write a block below it
        client.update(ss.id, "Sheet1", [["Bob", "25"]], start=CellPos(2, 0))

        # Read back the contents
        ss = client.get_spreadsheet_with_data(ss.id)
        rows = client.get_contents(ss.get_sheet("Sheet1"))

        # Share it
        client.share(ss.id, "someone@example.com")

    Note:
        Requires OAuth authorization (run `sheets-utils google login`) unless
        a `GoogleServiceAccount` is passed as `auth`.
    """

    def __init__(
        self,
        scopes: list[str] | None = None,
        auth: Any = None,
        retry: GoogleRetry | None = None,
    ) -> None:
        """Initialize Sheets client.

        Args:
            scopes: OAuth scopes. Defaults to ["sheets", "drive"].
            auth: GoogleOAuth or GoogleServiceAccount to use instead of the
                stored OAuth token.
            retry: Retry policy shared with the Drive client and OAuth token
                refreshes. Defaults to `GoogleRetry()`, tuned by SHEETS_UTILS_RETRY_*.
        """
        # Full drive scope is needed to share and copy files
        self._scopes = scopes or ["sheets", "drive"]
        self._auth = auth
        self._service: Any = None
        self._drive: DriveClient | None = None
        self.retry = retry or GoogleRetry()

    def _get_service(self) -> Any:
        """Get or create Sheets API service."""
        if self._service is None:
            if self._auth is None:
                self._auth = GoogleOAuth(scopes=self._scopes, retry=self.retry)
            if not self._auth.is_authorized():
                raise AuthorizationRequired(
                    self._auth.get_authorization_url(),
                    "Sheets API requires OAuth authorization. "
                    "Run 'sheets-utils google login' to authorize.",
                )
            self._service = self._auth.build_service("sheets", "v4")
        return self._service

    @property
    def drive(self) -> DriveClient:
        """Drive client sharing this client's credentials and retry policy."""
        if self._drive is None:
            self._get_service()  # Initialize auth
            self._drive = DriveClient(scopes=self._scopes, auth=self._auth, retry=self.retry)
        return self._drive

    # =========================================================================
    # Spreadsheets
    # =========================================================================

    def get_spreadsheet(self, spreadsheet_id: str, include_grid_data: bool = False) -> Spreadsheet:
        """Get a spreadsheet by ID.

        Args:
            spreadsheet_id: Google Sheets spreadsheet ID.
            include_grid_data: Also fetch cell data of every sheet.

        Returns:
            Spreadsheet.
        """
        service = self._get_service()
        result = self.retry.call(
            lambda: service.spreadsheets()
            .get(spreadsheetId=spreadsheet_id, includeGridData=include_grid_data)
            .execute(),
            f"get spreadsheet {spreadsheet_id}",
        )
        return self._parse_spreadsheet(result)

    def get_spreadsheet_with_data(self, spreadsheet_id: str) -> Spreadsheet:
        """Get a spreadsheet including the cell data of every sheet."""
        return self.get_spreadsheet(spreadsheet_id, include_grid_data=True)

    def create_spreadsheet(self, title: str, sheet_titles: list[str] | None = None) -> Spreadsheet:
        """Create a new spreadsheet.

        Args:
            title: Spreadsheet title.
            sheet_titles: List of sheet names (optional).

        Returns:
            Created Spreadsheet.
        """
        service = self._get_service()

        body: dict[str, Any] = {"properties": {"title": title}}

        if sheet_titles:
            body["sheets"] = [{"properties": {"title": name}} for name in sheet_titles]

        result = self.retry.call(
            lambda: service.spreadsheets().create(body=body).execute(),
            f"create spreadsheet {title!r}",
        )
        spreadsheet = self._parse_spreadsheet(result)
        logger.info(f"Created spreadsheet {spreadsheet.id} ({title})")
        return spreadsheet

    def create_spreadsheet_with_data(
        self, title: str, data: Sequence[Sequence[Any]]
    ) -> Spreadsheet:
        """Create a spreadsheet and write `data` to its first sheet from A1."""
        spreadsheet = self.create_spreadsheet(title)

        sheet = spreadsheet.get_sheet(DEFAULT_SHEET_TITLE) or spreadsheet.default_sheet
        if sheet is None:
            raise GoogleAPIError(f"Couldn't find a sheet to fill in {spreadsheet.id}")

        self.update(spreadsheet.id, sheet.title, data, start=sheet.top_left)
        return spreadsheet

    def create_spreadsheet_from_tsv(self, title: str, stream: Iterable[str]) -> Spreadsheet:
        """Create a spreadsheet from tab-separated lines."""
        return self.create_spreadsheet_with_data(title, read_delimited(stream, "\t"))

    def create_spreadsheet_from_csv(
        self, title: str, stream: Iterable[str], delimiter: str = ","
    ) -> Spreadsheet:
        """Create a spreadsheet from delimited lines."""
        return self.create_spreadsheet_with_data(title, read_delimited(stream, delimiter))

    def copy_spreadsheet(self, file_id: str, new_name: str) -> Spreadsheet:
        """Copy a spreadsheet (or any convertible Drive file) and fetch the copy."""
        copy = self.drive.copy_file(file_id, new_name)
        return self.get_spreadsheet(copy.id)

    def delete_spreadsheet(self, spreadsheet_id: str) -> None:
        """Delete a spreadsheet."""
        self.drive.delete_file(spreadsheet_id)

    def share(self, spreadsheet_id: str, email: str, notify: bool = False) -> None:
        """Give a user write access to a spreadsheet."""
        self.drive.share_file(spreadsheet_id, email, notify=notify)

    def refresh(self, spreadsheet: Spreadsheet) -> Spreadsheet:
        """Re-fetch a spreadsheet's metadata into the given object."""
        self._replace(spreadsheet, self.get_spreadsheet(spreadsheet.id))
        return spreadsheet

    # =========================================================================
    # Reading Data
    # =========================================================================

    def read_range(
        self,
        spreadsheet_id: str,
        range_notation: str,
        value_render_option: str = "FORMATTED_VALUE",
    ) -> list[list[Any]]:
        """Read values from a range.

        Args:
            spreadsheet_id: Spreadsheet ID.
            range_notation: A1 notation (e.g., "Sheet1!A1:C10").
            value_render_option: How to render values ("FORMATTED_VALUE", "UNFORMATTED_VALUE", "FORMULA").

        Returns:
            2D list of cell values.
        """
        service = self._get_service()
        result = self.retry.call(
            lambda: service.spreadsheets()
            .values()
            .get(
                spreadsheetId=spreadsheet_id,
                range=range_notation,
                valueRenderOption=value_render_option,
            )
            .execute(),
            f"read {range_notation} from {spreadsheet_id}",
        )
        return result.get("values", [])

    def get_contents(self, sheet: Sheet) -> list[list[str]]:
        """Get a sheet's cell values as strings from fetched grid data.

        Raises:
            ValueError: If the sheet was fetched without grid data.
        """
        grid = self._grid(sheet)

        matrix = []
        for row_data in grid.get("rowData", []):
            matrix.append([_cell_text(cell) for cell in (row_data or {}).get("values", [])])
        return matrix

    def occupied_range(self, sheet: Sheet) -> CellRange:
        """Get the A1-anchored rectangle holding data in a fetched sheet."""
        return occupied_rectangle(self._grid(sheet))

    # =========================================================================
    # Writing Data
    # =========================================================================

    def write_range(
        self,
        spreadsheet_id: str,
        range_notation: str,
        values: Sequence[Sequence[Any]],
        value_input_option: str = "USER_ENTERED",
    ) -> int:
        """Write values to a range.

        Args:
            spreadsheet_id: Spreadsheet ID.
            range_notation: A1 notation (e.g., "Sheet1!A1:B2").
            values: 2D list of values to write.
            value_input_option: How to interpret input ("RAW" or "USER_ENTERED").

        Returns:
            Number of cells updated.
        """
        service = self._get_service()
        body = {"range": range_notation, "values": [list(row) for row in values]}
        result = self.retry.call(
            lambda: service.spreadsheets()
            .values()
            .update(
                spreadsheetId=spreadsheet_id,
                range=range_notation,
                valueInputOption=value_input_option,
                body=body,
            )
            .execute(),
            f"write {range_notation} in {spreadsheet_id}",
        )
        return result.get("updatedCells", 0)

    def update(
        self,
        spreadsheet_id: str,
        sheet_title: str,
        data: Sequence[Sequence[Any]],
        start: CellPos | None = None,
    ) -> int:
        """Write a block of rows with its top-left cell at `start`.

        Args:
            spreadsheet_id: Spreadsheet ID.
            sheet_title: Title of the target sheet.
            data: Rows of values; rows may differ in length.
            start: Top-left cell. Defaults to A1.

        Returns:
            Number of cells updated.
        """
        cell_range = range_for_data(start or CellPos(0, 0), data)
        return self.write_range(spreadsheet_id, format_range(sheet_title, cell_range), data)

    # =========================================================================
    # Sheet Management
    # =========================================================================

    def batch_update(self, spreadsheet: Spreadsheet, *requests: dict[str, Any]) -> dict[str, Any]:
        """Apply batchUpdate requests and refresh `spreadsheet` from the response.

        Returns:
            The raw batchUpdate response.
        """
        service = self._get_service()
        body = {"requests": list(requests), "includeSpreadsheetInResponse": True}
        result = self.retry.call(
            lambda: service.spreadsheets()
            .batchUpdate(spreadsheetId=spreadsheet.id, body=body)
            .execute(),
            f"batch update {spreadsheet.id}",
        )

        updated = result.get("updatedSpreadsheet")
        if updated:
            self._replace(spreadsheet, self._parse_spreadsheet(updated))
        return result

    def add_sheet(self, spreadsheet: Spreadsheet, title: str) -> Sheet:
        """Add a sheet, or return the existing sheet with that title.

        Args:
            spreadsheet: Spreadsheet to modify; refreshed in place.
            title: New sheet title.

        Returns:
            The sheet.
        """
        sheet = spreadsheet.get_sheet(title)
        if sheet is not None:
            return sheet

        request = {"addSheet": {"properties": {"title": title}}}
        return self._create_sheet(spreadsheet, request, title)

    def duplicate_sheet(self, spreadsheet: Spreadsheet, title: str, new_title: str) -> Sheet:
        """Duplicate a sheet and place the copy after all other sheets.

        Args:
            spreadsheet: Spreadsheet to modify; refreshed in place.
            title: Title of the sheet to copy.
            new_title: Title of the copy.

        Returns:
            The new sheet.

        Raises:
            ValueError: If the origin sheet does not exist.
        """
        origin = spreadsheet.get_sheet(title)
        if origin is None:
            raise ValueError(f"Origin sheet {title!r} does not exist in {spreadsheet.id}")

        max_index = max((sheet.index for sheet in spreadsheet.sheets), default=0)
        request = {
            "duplicateSheet": {
                "insertSheetIndex": max_index + 1,
                "newSheetName": new_title,
                "sourceSheetId": origin.id,
            }
        }
        return self._create_sheet(spreadsheet, request, new_title)

    def delete_sheet(self, spreadsheet: Spreadsheet, sheet_id: int) -> None:
        """Delete a sheet from a spreadsheet.

        Args:
            spreadsheet: Spreadsheet to modify; refreshed in place.
            sheet_id: Sheet ID (not title).
        """
        self.batch_update(spreadsheet, {"deleteSheet": {"sheetId": sheet_id}})

    def _create_sheet(self, spreadsheet: Spreadsheet, request: dict[str, Any], title: str) -> Sheet:
        """Run a sheet-creating request, tolerating retried creations.

        A retried request whose earlier attempt was committed fails with
        "already exists"; the spreadsheet is then re-fetched instead.
        """
        try:
            self.batch_update(spreadsheet, request)
        except GoogleAPIError as e:
            if not is_disguised_success(e.history):
                raise
            logger.warning(
                f"Sheet {title!r} was created by an earlier attempt; refreshing {spreadsheet.id}"
            )
            self.refresh(spreadsheet)

        sheet = spreadsheet.get_sheet(title)
        if sheet is None:
            raise GoogleAPIError(f"Unable to get sheet {title!r} after creating it")
        return sheet

    def _grid(self, sheet: Sheet) -> dict[str, Any]:
        if sheet.data is None:
            raise ValueError(
                f"No data fetched for sheet {sheet.title!r}; "
                "use get_spreadsheet_with_data to fetch cell data"
            )
        # Only the first GridData block is populated for whole-sheet fetches
        return sheet.data[0] if sheet.data else {}

    def _replace(self, target: Spreadsheet, source: Spreadsheet) -> None:
        target.title = source.title
        target.sheets = source.sheets
        target.url = source.url or target.url

    def _parse_spreadsheet(self, data: dict) -> Spreadsheet:
        """Parse spreadsheet from API response."""
        sheets = []
        for sheet_data in data.get("sheets", []):
            props = sheet_data.get("properties", {})
            grid_props = props.get("gridProperties", {})
            sheets.append(
                Sheet(
                    id=props.get("sheetId", 0),
                    title=props.get("title", ""),
                    index=props.get("index", 0),
                    row_count=grid_props.get("rowCount", 1000),
                    column_count=grid_props.get("columnCount", 26),
                    data=sheet_data.get("data"),
                )
            )

        return Spreadsheet(
            id=data["spreadsheetId"],
            title=data.get("properties", {}).get("title", ""),
            sheets=sheets,
            url=data.get("spreadsheetUrl"),
        )


def _cell_text(cell: dict[str, Any] | None) -> str:
    if not cell:
        return ""
    effective = cell.get("effectiveValue") or {}
    if "stringValue" in effective:
        return effective["stringValue"]
    return cell.get("formattedValue", "")
