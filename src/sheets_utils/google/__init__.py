"""Google OAuth, service account and retry utilities."""

from sheets_utils.google.exceptions import (
    AuthorizationRequired,
    CredentialsNotFoundError,
    GoogleAPIError,
    GoogleAuthError,
    RetryExhaustedError,
    ScopeMismatchError,
    TokenError,
)
from sheets_utils.google.oauth import GoogleOAuth
from sheets_utils.google.retry import (
    ClassifiedError,
    ErrorKind,
    GoogleRetry,
    RetryConfig,
    classify_error,
    is_disguised_success,
    is_retryable,
)
from sheets_utils.google.service_account import GoogleServiceAccount

__all__ = [
    "GoogleOAuth",
    "GoogleServiceAccount",
    "GoogleAuthError",
    "GoogleAPIError",
    "RetryExhaustedError",
    "AuthorizationRequired",
    "CredentialsNotFoundError",
    "TokenError",
    "ScopeMismatchError",
    "GoogleRetry",
    "RetryConfig",
    "ErrorKind",
    "ClassifiedError",
    "classify_error",
    "is_retryable",
    "is_disguised_success",
]
