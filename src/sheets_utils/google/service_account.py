"""Google Service Account authentication.

Service accounts are used for server-to-server authentication without user interaction.
The service account acts as its own identity and can access:
- Spreadsheets and Drive files explicitly shared with the service account email
- Google Workspace resources (if domain-wide delegation is configured)

Example:
    >>> auth = GoogleServiceAccount(
    ...     key_path="service_account_key.json",
    ...     scopes=["sheets", "drive"]
    ... )
    >>> sheets_service = auth.build_service("sheets", "v4")

Keys held in memory (e.g. read from a secret store) use `from_info`, and
`with_subject` impersonates a Workspace user.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from google.oauth2 import service_account
from googleapiclient.discovery import build

from sheets_utils.config import GOOGLE_SERVICE_ACCOUNT
from sheets_utils.google.exceptions import CredentialsNotFoundError, GoogleAuthError
from sheets_utils.google.oauth import DEFAULT_SCOPES, resolve_scopes

logger = logging.getLogger(__name__)


def _validate_key_info(key_data: dict[str, Any]) -> None:
    if key_data.get("type") != "service_account":
        raise GoogleAuthError(
            f"Invalid key file: expected type 'service_account', got '{key_data.get('type')}'"
        )


class GoogleServiceAccount:
    """Google Service Account authentication.

    Uses a service account key for server-to-server authentication.
    No user interaction required.

    Note: To access user spreadsheets, the user must share them with the
    service account email address.
    """

    def __init__(
        self,
        key_path: str | Path | None = None,
        scopes: list[str] | None = None,
    ):
        """Initialize service account authentication.

        Args:
            key_path: Path to service account JSON key file.
                Defaults to google/service_account_key.json.
            scopes: List of scope names (e.g., ["sheets", "drive"]) or full URLs.
                   If None, defaults to ["sheets", "drive"].

        Raises:
            CredentialsNotFoundError: If key file not found.
            GoogleAuthError: If key file is invalid.
        """
        self.key_path: Path | None = Path(key_path) if key_path else GOOGLE_SERVICE_ACCOUNT

        if not self.key_path.exists():
            raise CredentialsNotFoundError(str(self.key_path))

        self.scopes = resolve_scopes(scopes or DEFAULT_SCOPES)

        try:
            with open(self.key_path) as f:
                key_data = json.load(f)
        except json.JSONDecodeError as e:
            raise GoogleAuthError(f"Invalid JSON in key file: {e}") from e

        _validate_key_info(key_data)
        self.client_email = key_data.get("client_email", "")
        self.project_id = key_data.get("project_id", "")

        self._credentials = service_account.Credentials.from_service_account_file(
            str(self.key_path),
            scopes=self.scopes,
        )
        self.subject: str | None = None

        logger.info(f"Service account initialized: {self.client_email}")
        logger.info(f"Scopes: {self.scopes}")

    @classmethod
    def from_info(
        cls,
        key_data: dict[str, Any] | str,
        scopes: list[str] | None = None,
    ) -> GoogleServiceAccount:
        """Create service account authentication from an in-memory key.

        Args:
            key_data: Parsed key dict or its JSON text.
            scopes: Scope names or full URLs. Defaults to ["sheets", "drive"].

        Raises:
            GoogleAuthError: If the key is not valid service account JSON.
        """
        if isinstance(key_data, str):
            try:
                key_data = json.loads(key_data)
            except json.JSONDecodeError as e:
                raise GoogleAuthError(f"Invalid JSON in service account key: {e}") from e

        _validate_key_info(key_data)

        instance = object.__new__(cls)
        instance.key_path = None
        instance.scopes = resolve_scopes(scopes or DEFAULT_SCOPES)
        instance.client_email = key_data.get("client_email", "")
        instance.project_id = key_data.get("project_id", "")
        try:
            instance._credentials = service_account.Credentials.from_service_account_info(
                key_data,
                scopes=instance.scopes,
            )
        except (KeyError, ValueError) as e:
            raise GoogleAuthError(f"Unable to parse service account key: {e}") from e
        instance.subject = None

        logger.info(f"Service account initialized: {instance.client_email}")
        return instance

    @property
    def credentials(self):
        """Get the service account credentials."""
        return self._credentials

    @property
    def email(self) -> str:
        """Get the service account email address.

        Share your spreadsheets with this email to grant access.
        """
        return self.client_email

    def is_authorized(self) -> bool:
        """Service accounts need no interactive authorization."""
        return True

    def build_service(self, service_name: str = "sheets", version: str = "v4"):
        """Build a Google API service with service account credentials.

        Args:
            service_name: Name of the service ('sheets' or 'drive').
            version: API version (e.g., 'v4', 'v3').

        Returns:
            Google API service object.
        """
        return build(service_name, version, credentials=self._credentials, cache_discovery=False)

    def with_subject(self, subject_email: str) -> GoogleServiceAccount:
        """Create credentials that impersonate a user (requires domain-wide delegation).

        Args:
            subject_email: Email of the user to impersonate.

        Returns:
            New GoogleServiceAccount instance with delegated credentials.
        """
        new_instance = object.__new__(GoogleServiceAccount)
        new_instance.key_path = self.key_path
        new_instance.scopes = self.scopes
        new_instance.client_email = self.client_email
        new_instance.project_id = self.project_id
        new_instance._credentials = self._credentials.with_subject(subject_email)
        new_instance.subject = subject_email

        logger.info(f"Created delegated credentials for: {subject_email}")
        return new_instance

    def get_info(self) -> dict:
        """Get information about the service account."""
        return {
            "type": "service_account",
            "email": self.client_email,
            "project_id": self.project_id,
            "scopes": self.scopes,
            "key_path": str(self.key_path) if self.key_path else None,
            "subject": self.subject,
        }
