"""Google Drive API client implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sheets_utils.google import GoogleOAuth, GoogleRetry
from sheets_utils.google.exceptions import AuthorizationRequired

logger = logging.getLogger(__name__)


@dataclass
class DriveFile:
    """Represents a Google Drive file."""

    id: str
    name: str
    mime_type: str

    @property
    def is_spreadsheet(self) -> bool:
        return self.mime_type == GOOGLE_SHEET_MIME_TYPE


@dataclass
class Permission:
    """Represents a sharing permission on a Drive file."""

    id: str
    type: str
    role: str
    email_address: str | None = None


GOOGLE_SHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"

FILE_FIELDS = "nextPageToken, files(id, name, mimeType)"
PERMISSION_FIELDS = "nextPageToken, permissions(id, emailAddress, type, role)"


class DriveClient:
    """Google Drive API client for file and sharing management.

    Every call is retried on rate limits, server errors and dropped
    connections (see `GoogleRetry`).

    Usage:
        client = DriveClient()

        # Find spreadsheets
        files = client.list_files("mimeType = 'application/vnd.google-apps.spreadsheet'")

        # Share with a user
        client.share_file(files[0].id, "someone@example.com", notify=True)

        # Revoke access
        client.revoke(files[0].id, "someone@example.com")

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
        """Initialize Drive client.

        Args:
            scopes: OAuth scopes. Defaults to ["drive"].
            auth: GoogleOAuth or GoogleServiceAccount to use instead of the
                stored OAuth token.
            retry: Retry policy, also used for OAuth token refreshes.
                Defaults to `GoogleRetry()`, tuned by SHEETS_UTILS_RETRY_*.
        """
        self._scopes = scopes or ["drive"]
        self._auth = auth
        self._service: Any = None
        self.retry = retry or GoogleRetry()

    def _get_service(self) -> Any:
        """Get or create Drive API service."""
        if self._service is None:
            if self._auth is None:
                self._auth = GoogleOAuth(scopes=self._scopes, retry=self.retry)
            if not self._auth.is_authorized():
                raise AuthorizationRequired(
                    self._auth.get_authorization_url(),
                    "Drive API requires OAuth authorization. "
                    "Run 'sheets-utils google login' to authorize.",
                )
            self._service = self._auth.build_service("drive", "v3")
        return self._service

    # =========================================================================
    # Files
    # =========================================================================

    def list_files(self, query: str, page_size: int = 10) -> list[DriveFile]:
        """List files matching a Drive query.

        Args:
            query: Search query (Drive query syntax).
            page_size: Maximum number of files to return.

        Returns:
            List of DriveFile objects.
        """
        service = self._get_service()
        result = self.retry.call(
            lambda: service.files()
            .list(pageSize=page_size, q=query, fields=FILE_FIELDS)
            .execute(),
            f"list files matching {query!r}",
        )
        return [self._parse_file(item) for item in result.get("files", [])]

    def copy_file(self, file_id: str, new_name: str) -> DriveFile:
        """Copy a file under a new name.

        Args:
            file_id: Drive file ID of the source.
            new_name: Name of the copy.

        Returns:
            The copy as DriveFile.
        """
        service = self._get_service()
        result = self.retry.call(
            lambda: service.files().copy(fileId=file_id, body={"name": new_name}).execute(),
            f"copy file {file_id}",
        )
        logger.info(f"Copied {file_id} to {result.get('id')} ({new_name})")
        return self._parse_file(result)

    def delete_file(self, file_id: str) -> None:
        """Delete a file from Drive."""
        service = self._get_service()
        self.retry.call(
            lambda: service.files().delete(fileId=file_id).execute(),
            f"delete file {file_id}",
        )
        logger.info(f"Deleted {file_id}")

    # =========================================================================
    # Permissions
    # =========================================================================

    def share_file(self, file_id: str, email: str, notify: bool = False) -> None:
        """Grant a user write access to a file.

        Args:
            file_id: Drive file ID.
            email: User to share with.
            notify: Send Google's notification email.
        """
        self._create_permission(
            file_id,
            {"emailAddress": email, "role": "writer", "type": "user"},
            f"share {file_id} with {email}",
            sendNotificationEmail=notify,
        )

    def share_with_anyone(self, file_id: str) -> None:
        """Grant write access to anyone with the link (not discoverable)."""
        self._create_permission(
            file_id,
            {"role": "writer", "type": "anyone", "allowFileDiscovery": False},
            f"share {file_id} with anyone",
        )

    def transfer_ownership(self, file_id: str, email: str) -> None:
        """Transfer ownership of a file to another user."""
        self._create_permission(
            file_id,
            {"emailAddress": email, "role": "owner", "type": "user"},
            f"transfer ownership of {file_id} to {email}",
            transferOwnership=True,
        )

    def list_permissions(self, file_id: str) -> list[Permission]:
        """List sharing permissions of a file."""
        service = self._get_service()
        result = self.retry.call(
            lambda: service.permissions().list(fileId=file_id, fields=PERMISSION_FIELDS).execute(),
            f"list permissions for {file_id}",
        )
        return [
            Permission(
                id=item["id"],
                type=item.get("type", ""),
                role=item.get("role", ""),
                email_address=item.get("emailAddress"),
            )
            for item in result.get("permissions", [])
        ]

    def revoke(self, file_id: str, email: str) -> bool:
        """Remove a user's permission on a file.

        Args:
            file_id: Drive file ID.
            email: User whose access is removed.

        Returns:
            True if a permission was deleted, False if the user had none.
        """
        service = self._get_service()
        for permission in self.list_permissions(file_id):
            if permission.email_address != email:
                continue

            self.retry.call(
                lambda: service.permissions()
                .delete(fileId=file_id, permissionId=permission.id)
                .execute(),
                f"revoke {email} on {file_id}",
            )
            logger.info(f"Revoked {email} on {file_id}")
            return True

        return False

    def _create_permission(
        self,
        file_id: str,
        body: dict[str, Any],
        description: str,
        **params: Any,
    ) -> dict[str, Any]:
        service = self._get_service()
        result = self.retry.call(
            lambda: service.permissions().create(fileId=file_id, body=body, **params).execute(),
            description,
        )
        logger.info(description)
        return result

    def _parse_file(self, data: dict) -> DriveFile:
        """Parse file from API response."""
        return DriveFile(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
        )
