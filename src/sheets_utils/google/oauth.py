"""Google OAuth management using Authlib.

Sheets and Drive access for a user account goes through an installed-app
OAuth flow. The token is kept in google-auth's JSON layout so that other
tools (gcloud, google-auth's `Credentials.from_authorized_user_file`) can
read it, and converted to Authlib's layout when loaded.

Credentials are stored centrally in the sheets-utils repo by default:
    google/credentials.json - OAuth client credentials
    google/token.json       - OAuth tokens

Token refreshes run through `GoogleRetry`, so a dropped connection while
refreshing does not fail the API call that triggered it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import requests
from authlib.integrations.requests_client import OAuth2Session
from google.oauth2.credentials import Credentials as GoogleCredentials
from googleapiclient.discovery import build

from sheets_utils.config import GOOGLE_CREDENTIALS, GOOGLE_TOKEN
from sheets_utils.google.exceptions import (
    CredentialsNotFoundError,
    GoogleAPIError,
    ScopeMismatchError,
    TokenError,
)
from sheets_utils.google.retry import GoogleRetry

logger = logging.getLogger(__name__)


SCOPES = {
    "sheets": "https://www.googleapis.com/auth/spreadsheets",
    "sheets_readonly": "https://www.googleapis.com/auth/spreadsheets.readonly",
    "drive": "https://www.googleapis.com/auth/drive",
    "drive_readonly": "https://www.googleapis.com/auth/drive.readonly",
    "drive_file": "https://www.googleapis.com/auth/drive.file",
}

DEFAULT_SCOPES = ["sheets", "drive"]


def resolve_scopes(scopes: list[str]) -> list[str]:
    """Resolve scope names to full URLs.

    Raises:
        ValueError: If a name is neither a known scope nor a URL.
    """
    resolved = []
    for scope in scopes:
        if scope.startswith("https://"):
            resolved.append(scope)
        elif scope in SCOPES:
            resolved.append(SCOPES[scope])
        else:
            raise ValueError(
                f"Unknown scope: {scope}. Use full URL or one of: {list(SCOPES.keys())}"
            )
    return resolved


def _parse_expiry(expiry: Any) -> float | None:
    """google-auth stores an ISO timestamp, Authlib a POSIX one."""
    if isinstance(expiry, str):
        return datetime.fromisoformat(expiry.replace("Z", "+00:00")).timestamp()
    return expiry


def _to_authlib_token(stored: dict[str, Any]) -> dict[str, Any]:
    return {
        "access_token": stored.get("token"),
        "refresh_token": stored.get("refresh_token"),
        "token_type": stored.get("type", "Bearer"),
        "expires_at": _parse_expiry(stored.get("expiry")),
        "scope": " ".join(stored.get("scopes", [])),
    }


def _token_scopes(token: dict[str, Any]) -> set[str]:
    return set(token.get("scope", "").split())


class GoogleOAuth:
    """Installed-app OAuth for the Sheets and Drive APIs.

    Example:
        >>> auth = GoogleOAuth(scopes=["sheets", "drive"])
        >>> if not auth.is_authorized():
        ...     print(f"Visit: {auth.get_authorization_url()}")
        ...     auth.fetch_token(input("Paste redirect URL: "))
        >>> sheets_service = auth.build_service("sheets", "v4")
    """

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    REVOKE_URL = "https://oauth2.googleapis.com/revoke"

    def __init__(
        self,
        scopes: list[str] | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_path: str | Path | None = None,
        credentials_path: str | Path | None = None,
        retry: GoogleRetry | None = None,
    ):
        """Initialize Google OAuth.

        Args:
            scopes: Scope names (e.g., ["sheets", "drive"]) or full URLs.
                Defaults to ["sheets", "drive"].
            client_id: OAuth client ID (loaded from credentials file if not provided).
            client_secret: OAuth client secret (loaded from credentials file if not provided).
            token_path: Path to store/load tokens. Defaults to google/token.json.
            credentials_path: Path to OAuth credentials file. Defaults to google/credentials.json.
            retry: Retry policy for token refreshes. Defaults to `GoogleRetry()`.
        """
        self.token_path = Path(token_path) if token_path else GOOGLE_TOKEN
        self.credentials_path = Path(credentials_path) if credentials_path else GOOGLE_CREDENTIALS
        self.required_scopes = resolve_scopes(scopes or DEFAULT_SCOPES)
        self.retry = retry or GoogleRetry()

        if not client_id or not client_secret:
            client_id, client_secret = self._load_client_credentials()
        self.client_id = client_id
        self.client_secret = client_secret

        self.session = OAuth2Session(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=" ".join(self.required_scopes),
            redirect_uri="http://localhost:0",
            token=self._load_token(),
            update_token=self._save_token,
            token_endpoint=self.TOKEN_URL,
            grant_type="refresh_token",
            token_endpoint_auth_method="client_secret_post",
        )

        self._state: str | None = None
        self.last_refresh: datetime | None = None
        self.refresh_count = 0

    def _missing_scopes(self, granted: set[str]) -> set[str]:
        return set(self.required_scopes) - granted

    def _load_client_credentials(self) -> tuple[str, str]:
        """Read the client ID and secret of an installed or web app."""
        if not self.credentials_path.exists():
            raise CredentialsNotFoundError(str(self.credentials_path))

        with open(self.credentials_path) as f:
            creds = json.load(f)

        app_creds = creds.get("installed") or creds.get("web")
        if app_creds is None:
            raise ValueError("Invalid credentials.json format. Expected 'installed' or 'web' key.")
        return app_creds["client_id"], app_creds["client_secret"]

    def _load_token(self) -> dict[str, Any] | None:
        """Load the stored token, None if absent, unreadable or under-scoped."""
        if not self.token_path.exists():
            logger.info("No existing token found")
            return None

        try:
            with open(self.token_path) as f:
                stored = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load token: {e}")
            return None

        token = _to_authlib_token(stored)
        missing = self._missing_scopes(_token_scopes(token))
        if missing:
            logger.warning(f"Token missing required scopes: {missing}")
            return None

        logger.info(f"Loaded token with scopes: {token['scope']}")
        return token

    def _save_token(
        self,
        token: dict[str, Any],
        refresh_token: str | None = None,
        access_token: str | None = None,
    ):
        """Persist a fetched or refreshed token (Authlib `update_token` hook)."""
        if access_token:
            token["access_token"] = access_token
        if refresh_token:
            token["refresh_token"] = refresh_token

        granted = _token_scopes(token)
        missing = self._missing_scopes(granted)
        if missing:
            raise ScopeMismatchError(missing)

        stored = {
            "token": token["access_token"],
            "refresh_token": token.get("refresh_token"),
            "token_uri": self.TOKEN_URL,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scopes": sorted(granted),
            "type": token.get("token_type", "Bearer"),
            "expiry": token.get("expires_at"),
            "_class": "google.oauth2.credentials.Credentials",
        }

        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.token_path, "w") as f:
            json.dump(stored, f, indent=2)

        self.last_refresh = datetime.now()
        self.refresh_count += 1
        logger.info(f"Token saved to {self.token_path}")

    def is_authorized(self) -> bool:
        """Check if we have a token with all required scopes."""
        if not self.session.token:
            return False
        return not self._missing_scopes(_token_scopes(self.session.token))

    def get_authorization_url(self) -> str:
        """Start the consent flow and return the URL the user must visit."""
        authorization_url, state = self.session.create_authorization_url(
            self.AUTHORIZE_URL,
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
        )
        self._state = state
        return authorization_url

    def fetch_token(self, authorization_response: str) -> dict[str, Any]:
        """Exchange the redirect URL from the consent screen for a token."""
        token = self.session.fetch_token(
            self.TOKEN_URL,
            authorization_response=authorization_response,
            client_secret=self.client_secret,
        )
        self._save_token(token)
        return token

    def _is_expired(self) -> bool:
        expires_at = self.session.token.get("expires_at")
        return bool(expires_at) and expires_at < datetime.now().timestamp()

    def get_credentials(self) -> GoogleCredentials:
        """Get google-auth credentials, refreshing the token when expired.

        Raises:
            TokenError: If not authorized or token refresh fails.
        """
        if not self.is_authorized():
            raise TokenError("Not authorized or missing required scopes")

        if self._is_expired():
            logger.info("Token expired, refreshing...")
            try:
                self.retry.call(
                    lambda: self.session.refresh_token(
                        self.TOKEN_URL,
                        refresh_token=self.session.token.get("refresh_token"),
                    ),
                    "refresh OAuth token",
                )
            except GoogleAPIError as e:
                raise TokenError(f"Failed to refresh token: {e}") from e

        return GoogleCredentials(
            token=self.session.token["access_token"],
            refresh_token=self.session.token.get("refresh_token"),
            token_uri=self.TOKEN_URL,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.required_scopes,
        )

    def build_service(self, service_name: str = "sheets", version: str = "v4"):
        """Build a Sheets or Drive API service with current credentials."""
        return build(
            service_name, version, credentials=self.get_credentials(), cache_discovery=False
        )

    def revoke_token(self):
        """Revoke the current token and delete the local copy."""
        if not self.session.token:
            logger.warning("No token to revoke")
            return

        try:
            self.session.post(
                self.REVOKE_URL,
                params={"token": self.session.token["access_token"]},
            )
        except requests.RequestException as e:
            logger.warning(f"Failed to revoke token remotely: {e}")

        self.token_path.unlink(missing_ok=True)
        logger.info("Token revoked")

    def get_token_info(self) -> dict[str, Any]:
        """Describe the current token: status, scopes and time to expiry."""
        if not self.session.token:
            return {"status": "no_token"}

        token = self.session.token
        expires_at = token.get("expires_at")
        if expires_at:
            remaining = expires_at - datetime.now().timestamp()
            expires_in = str(timedelta(seconds=int(max(0, remaining))))
        else:
            expires_in = "unknown"

        return {
            "status": "expired" if self._is_expired() else "valid",
            "scopes": sorted(_token_scopes(token)),
            "expires_in": expires_in,
            "has_refresh_token": bool(token.get("refresh_token")),
            "refresh_count": self.refresh_count,
            "last_refresh": self.last_refresh.isoformat() if self.last_refresh else None,
        }
