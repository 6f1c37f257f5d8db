"""CLI for sheets-utils - credentials, spreadsheets and sharing.

Usage:
    sheets-utils init                          # Create directories, show setup instructions
    sheets-utils status                        # Show credential and retry status
    sheets-utils google login                  # Interactive OAuth login
    sheets-utils google status                 # Show OAuth token status
    sheets-utils google refresh                # Refresh OAuth token
    sheets-utils google revoke                 # Revoke OAuth token
    sheets-utils google import <path>          # Import OAuth credentials
    sheets-utils google import-key <path>      # Import service account key
    sheets-utils sheets create <title> --tsv <path>
    sheets-utils sheets dump <spreadsheet-id>  # Print a sheet as TSV
    sheets-utils drive list <query>
    sheets-utils drive share <file-id> <email>
    sheets-utils drive revoke <file-id> <email>
    sheets-utils drive transfer <file-id> <email>
    sheets-utils drive delete <file-id>

Add --service-account (and --subject EMAIL to impersonate a Workspace user)
to use the imported service account key instead of the OAuth token.
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import shutil
import sys
import webbrowser
from pathlib import Path

import requests
from authlib.oauth2 import OAuth2Error

from sheets_utils.google.exceptions import GoogleAPIError, GoogleAuthError


def cmd_init() -> int:
    """Initialize sheets-utils credential directory structure."""
    from sheets_utils.config import (
        ENV_FILE,
        GOOGLE_CREDENTIALS,
        GOOGLE_DIR,
        GOOGLE_SERVICE_ACCOUNT,
        GOOGLE_TOKEN,
        REPO_ROOT,
        ensure_google_dir,
    )

    print("=" * 60)
    print("SHEETS-UTILS SETUP")
    print("=" * 60)
    print()
    print(f"Repository: {REPO_ROOT}")
    print()

    ensure_google_dir()
    print(f"Created: {GOOGLE_DIR}/")
    print()

    print("Credential locations:")
    print()
    print(f"  {ENV_FILE}")
    print("    Retry overrides: SHEETS_UTILS_RETRY_DELAY, SHEETS_UTILS_RETRY_ATTEMPTS")
    print()
    print(f"  {GOOGLE_CREDENTIALS}")
    print("    OAuth client credentials from Google Cloud Console")
    print()
    print(f"  {GOOGLE_TOKEN}")
    print("    OAuth tokens (created by 'sheets-utils google login')")
    print()
    print(f"  {GOOGLE_SERVICE_ACCOUNT}")
    print("    Service account key from Google Cloud Console")
    print()
    print("-" * 60)
    print()

    status = _check_status()

    if status["google"]["credentials"]:
        print("Google credentials.json exists")
    else:
        print("For Google OAuth, download credentials from:")
        print("  https://console.cloud.google.com/apis/credentials")
        print(f"  Save as: {GOOGLE_CREDENTIALS}")
        print()

    return 0


def cmd_status() -> int:
    """Show status of all configured credentials."""
    from sheets_utils.google import RetryConfig

    status = _check_status()

    print("=" * 60)
    print("SHEETS-UTILS CREDENTIAL STATUS")
    print("=" * 60)
    print()
    print(f"Repository: {status['repo_root']}")
    print()

    print("Google:")
    print(f"  credentials.json:       {'[x]' if status['google']['credentials'] else '[ ]'}")
    print(f"  token.json:             {'[x]' if status['google']['token'] else '[ ]'}")
    print(f"  service_account_key:    {'[x]' if status['google']['service_account'] else '[ ]'}")
    print()

    try:
        config = RetryConfig.from_env()
    except ValueError as e:
        print(f"Retry: invalid configuration - {e}")
        return 1

    print("Retry:")
    print(f"  delay:    {config.delay}s (+ up to {config.jitter}s jitter)")
    print(f"  attempts: {config.attempts}")
    if config.max_elapsed is not None:
        print(f"  deadline: {config.max_elapsed}s")
    print()

    return 0


def _check_status() -> dict:
    """Get credential status."""
    from sheets_utils.config import get_credential_status

    return get_credential_status()


# =============================================================================
# Google credentials
# =============================================================================


def google_login(scopes: list[str], no_browser: bool = False) -> int:
    """Interactive Google OAuth login."""
    from sheets_utils.google import CredentialsNotFoundError, GoogleOAuth

    print("=" * 60)
    print("SHEETS-UTILS GOOGLE LOGIN")
    print("=" * 60)

    try:
        auth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError as e:
        print(f"\nError: {e}")
        print("Run 'sheets-utils init' for setup instructions")
        return 1

    info = auth.get_token_info()
    if auth.is_authorized() and info["status"] == "valid":
        print("\nAlready authorized with valid token")
        return google_status(scopes)

    if info["status"] == "expired":
        print("\nToken expired, attempting refresh...")
        try:
            auth.get_credentials()  # Triggers refresh
            if auth.get_token_info()["status"] == "valid":
                print("Token refreshed successfully!")
                return google_status(scopes)
        except GoogleAuthError as e:
            print(f"Refresh failed: {e}")
            print("Starting new authorization flow...")

    print(f"\nScopes: {', '.join(scopes)}")
    print("\nA browser window will open for Google consent.")
    print("After granting access, copy the redirect URL back here.\n")

    url = auth.get_authorization_url()
    print(f"Authorization URL:\n{url}\n")

    if not no_browser:
        webbrowser.open(url)

    redirect_url = input("Paste redirect URL: ").strip()
    if not redirect_url:
        print("No URL provided; aborting.")
        return 1

    try:
        auth.fetch_token(redirect_url)
        print("\nToken saved successfully!")
        return google_status(scopes)
    except (OAuth2Error, GoogleAuthError, requests.RequestException) as e:
        print(f"\nError: {e}")
        return 1


def google_status(scopes: list[str]) -> int:
    """Show Google OAuth token status."""
    from sheets_utils.google import CredentialsNotFoundError, GoogleOAuth

    try:
        auth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError as e:
        print(f"Error: {e}")
        print("Run 'sheets-utils init' for setup instructions")
        return 1

    info = auth.get_token_info()

    if info["status"] == "no_token":
        print("No token found - run 'sheets-utils google login'")
        return 1

    print(f"Status     : {info['status']}")
    print(f"Scopes     : {', '.join(info.get('scopes', []))}")
    print(f"Expires in : {info.get('expires_in', 'unknown')}")
    print(f"Refreshed  : {info.get('last_refresh') or 'never'}")
    return 0


def google_refresh(scopes: list[str]) -> int:
    """Refresh Google OAuth token."""
    from sheets_utils.google import CredentialsNotFoundError, GoogleOAuth, TokenError

    try:
        auth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError as e:
        print(f"Error: {e}")
        print("Run 'sheets-utils init' for setup instructions")
        return 1

    if not auth.is_authorized():
        print("No valid token - run 'sheets-utils google login'")
        return 1

    try:
        auth.get_credentials()  # Triggers refresh if expired
        print("\nToken refreshed successfully!")
        return google_status(scopes)
    except TokenError as e:
        print(f"\nRefresh failed: {e}")
        print("You may need to re-authenticate: sheets-utils google login")
        return 1


def google_revoke(scopes: list[str]) -> int:
    """Revoke Google OAuth token."""
    from sheets_utils.google import CredentialsNotFoundError, GoogleOAuth

    try:
        auth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError:
        print("No credentials to revoke")
        return 0

    auth.revoke_token()
    print("Token revoked and local cache cleared")
    return 0


def google_import(source_path: str) -> int:
    """Import OAuth credentials from a file."""
    from sheets_utils.config import GOOGLE_CREDENTIALS, ensure_google_dir

    source = Path(source_path).expanduser()

    if not source.exists():
        print(f"Error: File not found: {source}")
        return 1

    try:
        with open(source) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}")
        return 1

    if "installed" not in data and "web" not in data:
        print("Error: Invalid OAuth credentials format")
        print("Expected 'installed' or 'web' key in JSON")
        return 1

    key = "installed" if "installed" in data else "web"
    client_id = data[key].get("client_id", "unknown")

    ensure_google_dir()
    shutil.copy2(source, GOOGLE_CREDENTIALS)

    print("Imported OAuth credentials")
    print(f"  From: {source}")
    print(f"  To:   {GOOGLE_CREDENTIALS}")
    print(f"  Client ID: {client_id[:40]}...")
    print()
    print("Next: Run 'sheets-utils google login' to authorize")
    return 0


def google_import_key(source_path: str) -> int:
    """Import service account key from a file."""
    from sheets_utils.config import GOOGLE_SERVICE_ACCOUNT, ensure_google_dir

    source = Path(source_path).expanduser()

    if not source.exists():
        print(f"Error: File not found: {source}")
        return 1

    try:
        with open(source) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}")
        return 1

    if data.get("type") != "service_account":
        print("Error: Invalid service account key format")
        print(f"Expected type 'service_account', got '{data.get('type')}'")
        return 1

    ensure_google_dir()
    shutil.copy2(source, GOOGLE_SERVICE_ACCOUNT)

    print("Imported service account key")
    print(f"  From: {source}")
    print(f"  To:   {GOOGLE_SERVICE_ACCOUNT}")
    print(f"  Email: {data.get('client_email', 'unknown')}")
    print(f"  Project: {data.get('project_id', 'unknown')}")
    print()
    print("Remember to share your spreadsheets with the service account email!")
    return 0


# =============================================================================
# Sheets and Drive
# =============================================================================


def _build_auth(args: argparse.Namespace):
    """OAuth is used unless --service-account is given."""
    if not args.service_account:
        return None

    from sheets_utils.google import GoogleServiceAccount

    auth = GoogleServiceAccount(scopes=parse_scopes(args.scopes))
    if args.subject:
        auth = auth.with_subject(args.subject)
    return auth


def _sheets_client(args: argparse.Namespace):
    from sheets_utils.google import GoogleRetry, RetryConfig
    from sheets_utils.sheets import SheetsClient

    return SheetsClient(
        scopes=parse_scopes(args.scopes),
        auth=_build_auth(args),
        retry=GoogleRetry(RetryConfig.from_env()),
    )


def sheets_create(args: argparse.Namespace) -> int:
    """Create a spreadsheet, optionally from a TSV/CSV file."""
    client = _sheets_client(args)

    if args.tsv:
        with open(args.tsv, newline="") as f:
            spreadsheet = client.create_spreadsheet_from_tsv(args.title, f)
    elif args.csv:
        with open(args.csv, newline="") as f:
            spreadsheet = client.create_spreadsheet_from_csv(args.title, f, args.delimiter)
    else:
        spreadsheet = client.create_spreadsheet(args.title)

    for email in args.share or []:
        client.share(spreadsheet.id, email, notify=args.notify)
        print(f"Shared with {email}")

    print(f"ID:  {spreadsheet.id}")
    print(f"URL: {spreadsheet.url}")
    return 0


def sheets_dump(args: argparse.Namespace) -> int:
    """Print a sheet's contents as TSV."""
    client = _sheets_client(args)
    spreadsheet = client.get_spreadsheet_with_data(args.spreadsheet_id)

    sheet = spreadsheet.get_sheet(args.sheet) if args.sheet else spreadsheet.default_sheet
    if sheet is None:
        print(f"Error: sheet {args.sheet!r} not found in {spreadsheet.id}")
        return 1

    writer = csv.writer(sys.stdout, delimiter="\t", lineterminator="\n")
    writer.writerows(client.get_contents(sheet))
    return 0


def drive_command(args: argparse.Namespace) -> int:
    """Run a drive subcommand."""
    from sheets_utils.drive import DriveClient
    from sheets_utils.google import GoogleRetry, RetryConfig

    client = DriveClient(
        scopes=parse_scopes(args.scopes),
        auth=_build_auth(args),
        retry=GoogleRetry(RetryConfig.from_env()),
    )

    if args.drive_command == "list":
        for file in client.list_files(args.query, page_size=args.limit):
            print(f"{file.id}\t{file.mime_type}\t{file.name}")
    elif args.drive_command == "share":
        if args.anyone:
            client.share_with_anyone(args.file_id)
            print(f"Shared {args.file_id} with anyone with the link")
        else:
            client.share_file(args.file_id, args.email, notify=args.notify)
            print(f"Shared {args.file_id} with {args.email}")
    elif args.drive_command == "revoke":
        if client.revoke(args.file_id, args.email):
            print(f"Revoked {args.email} on {args.file_id}")
        else:
            print(f"{args.email} has no permission on {args.file_id}")
    elif args.drive_command == "transfer":
        client.transfer_ownership(args.file_id, args.email)
        print(f"Transferred ownership of {args.file_id} to {args.email}")
    elif args.drive_command == "delete":
        client.delete_file(args.file_id)
        print(f"Deleted {args.file_id}")
    return 0


def parse_scopes(scope_str: str | None) -> list[str]:
    """Parse comma-separated scopes."""
    if not scope_str:
        return ["sheets", "drive"]  # Default scopes
    return [s.strip() for s in scope_str.split(",")]


def _add_scopes_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--scopes",
        type=str,
        default="sheets,drive",
        help="Comma-separated scopes (default: sheets,drive)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="sheets-utils",
        description="Google Sheets and Drive management with automatic retries",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser("init", help="Initialize credential directories")
    subparsers.add_parser("status", help="Show credential and retry status")

    # Google subcommand
    google_parser = subparsers.add_parser("google", help="Google OAuth management")
    google_subparsers = google_parser.add_subparsers(dest="google_command", help="Command")

    login_parser = google_subparsers.add_parser("login", help="Interactive OAuth login")
    _add_scopes_argument(login_parser)
    login_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Don't open browser automatically",
    )

    for name, help_text in (
        ("status", "Show token status"),
        ("refresh", "Refresh token"),
        ("revoke", "Revoke token"),
    ):
        _add_scopes_argument(google_subparsers.add_parser(name, help=help_text))

    import_parser = google_subparsers.add_parser("import", help="Import OAuth credentials")
    import_parser.add_argument("path", help="Path to credentials.json file")

    import_key_parser = google_subparsers.add_parser(
        "import-key", help="Import service account key"
    )
    import_key_parser.add_argument("path", help="Path to service account JSON key file")

    # Options shared by sheets and drive commands
    api_parent = argparse.ArgumentParser(add_help=False)
    _add_scopes_argument(api_parent)
    api_parent.add_argument(
        "--service-account",
        action="store_true",
        help="Use the imported service account key instead of OAuth",
    )
    api_parent.add_argument("--subject", help="User to impersonate with the service account")

    # Sheets subcommand
    sheets_parser = subparsers.add_parser("sheets", help="Spreadsheet management")
    sheets_subparsers = sheets_parser.add_subparsers(dest="sheets_command", help="Command")

    create_parser = sheets_subparsers.add_parser(
        "create", parents=[api_parent], help="Create a spreadsheet"
    )
    create_parser.add_argument("title", help="Spreadsheet title")
    source = create_parser.add_mutually_exclusive_group()
    source.add_argument("--tsv", help="Fill from a tab-separated file")
    source.add_argument("--csv", help="Fill from a delimited file")
    create_parser.add_argument("--delimiter", default=",", help="Delimiter for --csv")
    create_parser.add_argument(
        "--share", action="append", metavar="EMAIL", help="Share with a user (repeatable)"
    )
    create_parser.add_argument("--notify", action="store_true", help="Send sharing emails")

    dump_parser = sheets_subparsers.add_parser(
        "dump", parents=[api_parent], help="Print a sheet as TSV"
    )
    dump_parser.add_argument("spreadsheet_id", help="Spreadsheet ID")
    dump_parser.add_argument("--sheet", help="Sheet title (default: first sheet)")

    # Drive subcommand
    drive_parser = subparsers.add_parser("drive", help="Drive file and sharing management")
    drive_subparsers = drive_parser.add_subparsers(dest="drive_command", help="Command")

    list_parser = drive_subparsers.add_parser("list", parents=[api_parent], help="List files")
    list_parser.add_argument("query", help="Drive search query")
    list_parser.add_argument("--limit", type=int, default=10, help="Maximum files to list")

    share_parser = drive_subparsers.add_parser("share", parents=[api_parent], help="Share a file")
    share_parser.add_argument("file_id", help="Drive file ID")
    share_parser.add_argument("email", nargs="?", help="User to share with")
    share_target = share_parser.add_mutually_exclusive_group()
    share_target.add_argument("--notify", action="store_true", help="Send sharing email")
    share_target.add_argument("--anyone", action="store_true", help="Share with anyone")

    for name, help_text in (
        ("revoke", "Remove a user's access"),
        ("transfer", "Transfer ownership"),
    ):
        command_parser = drive_subparsers.add_parser(name, parents=[api_parent], help=help_text)
        command_parser.add_argument("file_id", help="Drive file ID")
        command_parser.add_argument("email", help="User email")

    delete_parser = drive_subparsers.add_parser("delete", parents=[api_parent], help="Delete a file")
    delete_parser.add_argument("file_id", help="Drive file ID")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "init":
        return cmd_init()

    if args.command == "status":
        return cmd_status()

    if args.command == "google":
        scopes = parse_scopes(getattr(args, "scopes", None))

        if args.google_command == "login":
            return google_login(scopes, args.no_browser)
        elif args.google_command == "status":
            return google_status(scopes)
        elif args.google_command == "refresh":
            return google_refresh(scopes)
        elif args.google_command == "revoke":
            return google_revoke(scopes)
        elif args.google_command == "import":
            return google_import(args.path)
        elif args.google_command == "import-key":
            return google_import_key(args.path)
        else:
            parser.print_help()
            return 0

    if args.command == "drive" and args.drive_command == "share":
        if not args.anyone and not args.email:
            parser.error("drive share needs an email unless --anyone is given")

    try:
        if args.command == "sheets":
            if args.sheets_command == "create":
                return sheets_create(args)
            if args.sheets_command == "dump":
                return sheets_dump(args)
            parser.print_help()
            return 0

        if args.command == "drive":
            if args.drive_command is None:
                parser.print_help()
                return 0
            return drive_command(args)
    except (GoogleAuthError, GoogleAPIError, ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
