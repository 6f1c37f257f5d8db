"""Google authentication and API exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sheets_utils.google.retry import ClassifiedError


class GoogleAuthError(Exception):
    """Base exception for Google authentication errors."""

    pass


class CredentialsNotFoundError(GoogleAuthError):
    """Raised when OAuth credentials file is not found."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Credentials file not found at {path}. "
            "Please download credentials from Google Cloud Console."
        )


class TokenError(GoogleAuthError):
    """Raised when there's an issue with the OAuth token."""

    pass


class ScopeMismatchError(GoogleAuthError):
    """Raised when token scopes don't match required scopes."""

    def __init__(self, missing_scopes: set[str]):
        self.missing_scopes = missing_scopes
        super().__init__(f"Token missing required scopes: {missing_scopes}")


class AuthorizationRequired(GoogleAuthError):
    """Raised when an API client is used before OAuth authorization."""

    def __init__(self, authorization_url: str, message: str):
        self.authorization_url = authorization_url
        super().__init__(message)


class GoogleAPIError(Exception):
    """Raised when a Sheets or Drive API call fails.

    Attributes:
        status_code: HTTP status of the last failure, None for transport errors.
        attempts: Number of attempts made before giving up.
        history: Classified error of every failed attempt, in order.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        attempts: int = 1,
        history: list[ClassifiedError] | None = None,
    ):
        self.status_code = status_code
        self.attempts = attempts
        self.history = history or []
        super().__init__(message)


class RetryExhaustedError(GoogleAPIError):
    """Raised when every attempt of a retryable call failed."""
