"""Shared fixtures for Sheets and Drive client tests."""

import json
from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from sheets_utils.google import GoogleRetry, RetryConfig

DUPLICATE_MESSAGE = (
    'Invalid requests[0].duplicateSheet: A sheet with the name "Copy" already exists. '
    "Please enter another name."
)


def http_error(status: int, message: str) -> HttpError:
    """Build a real HttpError as raised by googleapiclient."""
    content = json.dumps({"error": {"code": status, "message": message}}).encode()
    return HttpError(httplib2.Response({"status": status}), content)


class FakeAuth:
    """Stands in for GoogleOAuth/GoogleServiceAccount, one mock per API."""

    def __init__(self):
        self.services = {"sheets": MagicMock(name="sheets"), "drive": MagicMock(name="drive")}

    def is_authorized(self) -> bool:
        return True

    def build_service(self, service_name: str, version: str):
        return self.services[service_name]


@pytest.fixture
def sleeps():
    """Records the delays requested by the retry policy."""
    return []


@pytest.fixture
def retry(sleeps):
    """Retry policy with the default delay that never actually sleeps."""
    return GoogleRetry(RetryConfig(delay=15, attempts=5), sleep=sleeps.append)


@pytest.fixture
def fake_auth():
    return FakeAuth()
