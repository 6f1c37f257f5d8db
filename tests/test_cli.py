"""Tests for the sheets-utils command line."""

import json
from unittest.mock import patch

import pytest
from conftest import http_error

from sheets_utils import cli
from sheets_utils.drive import DriveFile
from sheets_utils.google import GoogleAPIError


class TestParsing:
    """Test argument handling."""

    def test_parse_scopes(self):
        assert cli.parse_scopes(None) == ["sheets", "drive"]
        assert cli.parse_scopes("sheets_readonly, drive_file") == ["sheets_readonly", "drive_file"]

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "usage: sheets-utils" in capsys.readouterr().out

    def test_share_needs_target(self):
        """Should reject drive share without an email or --anyone."""
        with pytest.raises(SystemExit):
            cli.main(["drive", "share", "f1"])

    def test_create_sources_exclusive(self):
        with pytest.raises(SystemExit):
            cli.main(["sheets", "create", "Report", "--tsv", "a.tsv", "--csv", "a.csv"])


class TestGoogleImport:
    """Test importing credential files."""

    def test_import_credentials(self, tmp_path):
        source = tmp_path / "downloaded.json"
        source.write_text(json.dumps({"installed": {"client_id": "abc.apps.googleusercontent.com"}}))
        target = tmp_path / "google" / "credentials.json"
        target.parent.mkdir()

        with (
            patch("sheets_utils.config.GOOGLE_CREDENTIALS", target),
            patch("sheets_utils.config.ensure_google_dir"),
        ):
            assert cli.main(["google", "import", str(source)]) == 0

        assert json.loads(target.read_text())["installed"]["client_id"].startswith("abc")

    def test_import_invalid_format(self, tmp_path, capsys):
        source = tmp_path / "downloaded.json"
        source.write_text(json.dumps({"type": "service_account"}))

        assert cli.main(["google", "import", str(source)]) == 1
        assert "Invalid OAuth credentials format" in capsys.readouterr().out

    def test_import_key_rejects_oauth_file(self, tmp_path, capsys):
        source = tmp_path / "key.json"
        source.write_text(json.dumps({"installed": {}}))

        assert cli.main(["google", "import-key", str(source)]) == 1
        assert "Invalid service account key format" in capsys.readouterr().out

    def test_import_missing_file(self, tmp_path):
        assert cli.main(["google", "import", str(tmp_path / "missing.json")]) == 1


class TestDriveCommands:
    """Test drive subcommands against a mocked client."""

    @pytest.fixture
    def drive(self):
        with patch("sheets_utils.drive.DriveClient") as client_class:
            yield client_class.return_value

    def test_list(self, drive, capsys):
        drive.list_files.return_value = [
            DriveFile(id="f1", name="Budget", mime_type="application/vnd.google-apps.spreadsheet")
        ]

        assert cli.main(["drive", "list", "trashed = false", "--limit", "3"]) == 0

        drive.list_files.assert_called_once_with("trashed = false", page_size=3)
        assert "f1\tapplication/vnd.google-apps.spreadsheet\tBudget" in capsys.readouterr().out

    def test_share_with_notification(self, drive):
        assert cli.main(["drive", "share", "f1", "bob@example.com", "--notify"]) == 0
        drive.share_file.assert_called_once_with("f1", "bob@example.com", notify=True)

    def test_share_with_anyone(self, drive):
        assert cli.main(["drive", "share", "f1", "--anyone"]) == 0
        drive.share_with_anyone.assert_called_once_with("f1")

    def test_revoke_without_permission(self, drive, capsys):
        drive.revoke.return_value = False

        assert cli.main(["drive", "revoke", "f1", "bob@example.com"]) == 0
        assert "has no permission" in capsys.readouterr().out

    def test_api_error(self, drive, capsys):
        """Should report API failures and exit non-zero."""
        drive.delete_file.side_effect = GoogleAPIError(
            "delete file f1 failed: File not found", status_code=404
        )

        assert cli.main(["drive", "delete", "f1"]) == 1
        assert "Error: delete file f1 failed" in capsys.readouterr().out


class TestSheetsCommands:
    """Test sheets subcommands against a mocked Sheets API."""

    def test_create_from_tsv(self, tmp_path, fake_auth, capsys):
        tsv = tmp_path / "data.tsv"
        tsv.write_text("name\tage\nalice\t30\n")
        service = fake_auth.services["sheets"]
        service.spreadsheets.return_value.create.return_value.execute.return_value = {
            "spreadsheetId": "new",
            "properties": {"title": "Report"},
            "spreadsheetUrl": "https://docs.google.com/spreadsheets/d/new",
            "sheets": [{"properties": {"sheetId": 0, "title": "Sheet1", "index": 0}}],
        }

        with patch("sheets_utils.cli._build_auth", return_value=fake_auth):
            assert cli.main(["sheets", "create", "Report", "--tsv", str(tsv)]) == 0

        update = service.spreadsheets.return_value.values.return_value.update
        assert update.call_args.kwargs["body"]["values"] == [["name", "age"], ["alice", "30"]]
        assert "URL: https://docs.google.com/spreadsheets/d/new" in capsys.readouterr().out

    def test_create_permission_denied(self, fake_auth, capsys):
        execute = fake_auth.services["sheets"].spreadsheets.return_value.create.return_value.execute
        execute.side_effect = http_error(403, "The caller does not have permission")

        with patch("sheets_utils.cli._build_auth", return_value=fake_auth):
            assert cli.main(["sheets", "create", "Report"]) == 1
        assert "Error:" in capsys.readouterr().out
