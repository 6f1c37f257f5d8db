"""Centralized credential and retry configuration.

All credentials are stored in the sheets-utils repo root:
    .env                            - Retry overrides (SHEETS_UTILS_RETRY_*)
    google/credentials.json         - Google OAuth client credentials
    google/token.json               - Google OAuth tokens
    google/service_account_key.json - Google service account key

This module auto-loads the .env file on import, so values defined there are
visible to every sheets-utils module. Variables already set in the
environment take precedence.
"""

import os
from pathlib import Path

# Repository root (where this package is installed from)
# __file__ is src/sheets_utils/config.py, so 3 levels up
REPO_ROOT = Path(__file__).parent.parent.parent
GOOGLE_DIR = REPO_ROOT / "google"

# Credential file paths
ENV_FILE = REPO_ROOT / ".env"
GOOGLE_CREDENTIALS = GOOGLE_DIR / "credentials.json"
GOOGLE_TOKEN = GOOGLE_DIR / "token.json"
GOOGLE_SERVICE_ACCOUNT = GOOGLE_DIR / "service_account_key.json"

# Retry overrides
RETRY_DELAY_VAR = "SHEETS_UTILS_RETRY_DELAY"
RETRY_ATTEMPTS_VAR = "SHEETS_UTILS_RETRY_ATTEMPTS"
RETRY_JITTER_VAR = "SHEETS_UTILS_RETRY_JITTER"
RETRY_MAX_ELAPSED_VAR = "SHEETS_UTILS_RETRY_MAX_ELAPSED"


def _load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from a file.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            # Remove surrounding quotes
            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            # Only set if not already in environment (env vars take precedence)
            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


def _env_number(name: str, cast: type) -> float | int | None:
    """Read a numeric environment variable, None when unset or empty."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a {cast.__name__}, got {raw!r}") from e


def get_retry_settings() -> dict:
    """Get retry overrides from the environment.

    Returns:
        Keyword arguments for RetryConfig, only for variables that are set.
    """
    settings = {
        "delay": _env_number(RETRY_DELAY_VAR, float),
        "attempts": _env_number(RETRY_ATTEMPTS_VAR, int),
        "jitter": _env_number(RETRY_JITTER_VAR, float),
        "max_elapsed": _env_number(RETRY_MAX_ELAPSED_VAR, float),
    }
    return {key: value for key, value in settings.items() if value is not None}


def ensure_google_dir() -> Path:
    """Create google credentials directory if it doesn't exist.

    Returns:
        Path to google directory.
    """
    GOOGLE_DIR.mkdir(parents=True, exist_ok=True)
    return GOOGLE_DIR


def get_credential_status() -> dict:
    """Get status of all configured credentials.

    Returns:
        Dictionary with credential status.
    """
    return {
        "repo_root": str(REPO_ROOT),
        "env_file": ENV_FILE.exists(),
        "google": {
            "credentials": GOOGLE_CREDENTIALS.exists(),
            "token": GOOGLE_TOKEN.exists(),
            "service_account": GOOGLE_SERVICE_ACCOUNT.exists(),
        },
        "retry": get_retry_settings(),
    }


# Auto-load .env from repo root on import
_loaded = _load_env_file(ENV_FILE)
