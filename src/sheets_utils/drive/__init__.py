"""Google Drive API client for file and sharing management.

Usage:
    from sheets_utils.drive import DriveClient

    # Initialize (requires OAuth authorization)
    client = DriveClient()

    # Find files
    files = client.list_files("name contains 'Budget'")

    # Share a file
    client.share_file(files[0].id, "someone@example.com")

    # Transfer ownership
    client.transfer_ownership(files[0].id, "owner@example.com")

OAuth Setup:
    1. Download OAuth credentials from Google Cloud Console
    2. Import: sheets-utils google import ~/Downloads/credentials.json
    3. Authorize: sheets-utils google login
"""

from __future__ import annotations

from sheets_utils.drive.client import DriveClient, DriveFile, Permission

__all__ = ["DriveClient", "DriveFile", "Permission"]
