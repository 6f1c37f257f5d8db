"""Tests for the Google API retry policy."""

import http.client
import logging
import os
from unittest.mock import MagicMock, patch

import pytest
from conftest import DUPLICATE_MESSAGE, http_error

from sheets_utils.google import (
    ClassifiedError,
    ErrorKind,
    GoogleAPIError,
    GoogleRetry,
    RetryConfig,
    RetryExhaustedError,
    classify_error,
    is_disguised_success,
    is_retryable,
)


def failing(*outcomes):
    """Operation raising the given exceptions in turn, returning non-exceptions."""
    return MagicMock(side_effect=list(outcomes))


class TestClassifyError:
    """Test mapping of exceptions to error kinds."""

    def test_rate_limit_is_transient(self):
        """Should treat 429 as transient."""
        error = classify_error(http_error(429, "Too Many Requests"))
        assert error.kind is ErrorKind.TRANSIENT
        assert error.code == 429

    @pytest.mark.parametrize("status", [500, 502, 503, 599])
    def test_server_errors_are_transient(self, status):
        """Should treat every 5xx as transient."""
        assert classify_error(http_error(status, "Backend Error")).kind is ErrorKind.TRANSIENT

    def test_403_rate_limit_is_transient(self):
        """Should treat the rate-limit flavoured 403 as transient."""
        error = classify_error(http_error(403, "Rate Limit Exceeded"))
        assert error.kind is ErrorKind.TRANSIENT
        assert error.message == "Rate Limit Exceeded"

    def test_403_permission_denied_is_permanent(self):
        """Should not retry a real permission error."""
        error = classify_error(http_error(403, "The caller does not have permission"))
        assert error.kind is ErrorKind.PERMANENT

    @pytest.mark.parametrize("status", [400, 401, 404, 409])
    def test_client_errors_are_permanent(self, status):
        """Should treat other 4xx as permanent."""
        assert classify_error(http_error(status, "nope")).kind is ErrorKind.PERMANENT

    @pytest.mark.parametrize(
        "exc",
        [
            ConnectionResetError(104, "Connection reset by peer"),
            TimeoutError("timed out"),
            http.client.IncompleteRead(b"partial"),
            EOFError(),
            OSError("[Errno 104] connection reset by peer"),
        ],
    )
    def test_transport_errors(self, exc):
        """Should classify low-level network failures as transport errors."""
        error = classify_error(exc)
        assert error.kind is ErrorKind.TRANSPORT
        assert error.code is None

    def test_other_exceptions_are_permanent(self):
        """Should not retry programming errors."""
        error = classify_error(KeyError("spreadsheetId"))
        assert error.kind is ErrorKind.PERMANENT
        assert "KeyError" in error.message

    def test_duplicate_error(self):
        """Should recognise the "already exists" 400."""
        assert classify_error(http_error(400, DUPLICATE_MESSAGE)).is_duplicate is True
        assert classify_error(http_error(400, "Invalid range")).is_duplicate is False
        assert classify_error(http_error(409, "already exists")).is_duplicate is False

    def test_is_retryable(self):
        """Should retry transient and transport errors only."""
        assert is_retryable(ClassifiedError(ErrorKind.TRANSIENT, 503, "x"))
        assert is_retryable(ClassifiedError(ErrorKind.TRANSPORT, None, "x"))
        assert not is_retryable(ClassifiedError(ErrorKind.PERMANENT, 404, "x"))


class TestGoogleRetry:
    """Test the retry loop."""

    def test_success_first_attempt(self, retry, sleeps):
        """Should return immediately on success."""
        operation = failing({"id": "abc"})
        assert retry.call(operation) == {"id": "abc"}
        assert operation.call_count == 1
        assert sleeps == []

    def test_retries_rate_limit_then_succeeds(self, retry, sleeps):
        """Should succeed after two 429s with two delays."""
        operation = failing(http_error(429, "Too Many"), http_error(429, "Too Many"), "ok")
        assert retry.call(operation) == "ok"
        assert operation.call_count == 3
        assert sleeps == [15, 15]

    def test_permanent_error_not_retried(self, retry, sleeps):
        """Should raise a 404 after a single attempt without waiting."""
        operation = failing(*[http_error(404, "Requested entity was not found.")] * 5)
        with pytest.raises(GoogleAPIError) as exc_info:
            retry.call(operation, "get spreadsheet abc")

        error = exc_info.value
        assert not isinstance(error, RetryExhaustedError)
        assert error.status_code == 404
        assert error.attempts == 1
        assert "get spreadsheet abc" in str(error)
        assert operation.call_count == 1
        assert sleeps == []

    def test_succeeds_on_last_attempt(self, retry, sleeps):
        """Should allow success exactly at the attempt ceiling."""
        operation = failing(*[http_error(500, "Internal")] * 4, "ok")
        assert retry.call(operation) == "ok"
        assert operation.call_count == 5
        assert len(sleeps) == 4

    def test_exhaustion(self, retry, sleeps):
        """Should raise RetryExhaustedError with the attempt count."""
        last = http_error(503, "Service Unavailable")
        operation = failing(*[http_error(500, "Internal")] * 4, last)
        with pytest.raises(RetryExhaustedError, match="after 5 attempts") as exc_info:
            retry.call(operation, "create spreadsheet")

        error = exc_info.value
        assert error.attempts == 5
        assert error.status_code == 503
        assert len(error.history) == 5
        assert error.__cause__ is last
        assert operation.call_count == 5
        assert len(sleeps) == 4

    def test_transport_errors_retried(self, retry, sleeps):
        """Should retry dropped connections."""
        operation = failing(ConnectionResetError("reset"), EOFError(), "ok")
        assert retry.call(operation) == "ok"
        assert len(sleeps) == 2

    def test_history_records_every_failure(self, retry):
        """Should expose the classified error of each attempt."""
        operation = failing(http_error(500, "Internal"), http_error(400, DUPLICATE_MESSAGE))
        with pytest.raises(GoogleAPIError) as exc_info:
            retry.call(operation)

        history = exc_info.value.history
        assert [e.code for e in history] == [500, 400]
        assert exc_info.value.attempts == 2
        assert is_disguised_success(history)

    def test_custom_predicate(self, sleeps):
        """Should use the configured predicate."""
        retry = GoogleRetry(RetryConfig(retry_if=lambda error: False), sleep=sleeps.append)
        operation = failing(http_error(429, "Too Many"), "ok")
        with pytest.raises(GoogleAPIError):
            retry.call(operation)
        assert operation.call_count == 1

    def test_configured_attempts_and_delay(self, sleeps):
        """Should honour attempts and delay from the config."""
        retry = GoogleRetry(RetryConfig(delay=2.5, attempts=2), sleep=sleeps.append)
        operation = failing(*[http_error(502, "Bad Gateway")] * 3)
        with pytest.raises(RetryExhaustedError):
            retry.call(operation)
        assert operation.call_count == 2
        assert sleeps == [2.5]

    def test_deadline_stops_before_next_attempt(self):
        """Should not start an attempt that would begin after max_elapsed."""
        now = [0.0]
        starts = []

        def sleep(seconds):
            now[0] += seconds

        def operation():
            starts.append(now[0])
            raise http_error(503, "Service Unavailable")

        retry = GoogleRetry(
            RetryConfig(delay=10, attempts=5, max_elapsed=25),
            sleep=sleep,
            clock=lambda: now[0],
        )
        with pytest.raises(RetryExhaustedError) as exc_info:
            retry.call(operation)

        assert starts == [0, 10, 20]
        assert exc_info.value.attempts == 3

    def test_delay_longer_than_deadline(self, sleeps):
        """Should give up after one attempt when the first wait overshoots."""
        retry = GoogleRetry(
            RetryConfig(delay=0.3, attempts=5, max_elapsed=0.1),
            sleep=sleeps.append,
            clock=lambda: 0.0,
        )
        operation = failing(*[http_error(503, "Service Unavailable")] * 5)

        with pytest.raises(RetryExhaustedError, match="after 1 attempts"):
            retry.call(operation)
        assert operation.call_count == 1
        assert sleeps == []

    def test_default_config_from_env(self):
        """Should read SHEETS_UTILS_RETRY_* when no config is given."""
        with patch.dict(os.environ, {"SHEETS_UTILS_RETRY_ATTEMPTS": "2"}):
            assert GoogleRetry().config.attempts == 2

    def test_jitter_spreads_delay(self, sleeps):
        """Should wait between delay and delay + jitter."""
        retry = GoogleRetry(RetryConfig(delay=15, jitter=15), sleep=sleeps.append)
        retry.call(failing(http_error(429, "Too Many"), "ok"))
        assert 15 <= sleeps[0] <= 30

    def test_logs_retries(self, retry, caplog):
        """Should log a warning before each wait."""
        with caplog.at_level(logging.WARNING, logger="sheets_utils.google.retry"):
            retry.call(failing(http_error(429, "Too Many"), "ok"), "list files")
        assert "list files failed (attempt 1/5)" in caplog.text
        assert "retrying in 15.0s" in caplog.text


class TestRetryConfig:
    """Test retry configuration."""

    def test_defaults(self):
        """Should default to 15 second delay and 5 attempts."""
        config = RetryConfig()
        assert config.delay == 15
        assert config.attempts == 5
        assert config.jitter == 0
        assert config.max_elapsed is None
        assert config.retry_if is is_retryable

    @pytest.mark.parametrize(
        "kwargs",
        [{"attempts": 0}, {"delay": -1}, {"jitter": -0.5}, {"max_elapsed": 0}],
    )
    def test_invalid_values(self, kwargs):
        """Should reject nonsensical settings."""
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)

    def test_from_env(self):
        """Should read overrides from the environment."""
        env = {"SHEETS_UTILS_RETRY_DELAY": "1.5", "SHEETS_UTILS_RETRY_ATTEMPTS": "3"}
        with patch.dict(os.environ, env):
            config = RetryConfig.from_env()
        assert config.delay == 1.5
        assert config.attempts == 3


class TestDisguisedSuccess:
    """Test detection of retried creations that actually succeeded."""

    def classify(self, *errors):
        return [classify_error(e) for e in errors]

    def test_duplicate_after_transient_failure(self):
        """Should flag a duplicate that follows a non-duplicate failure."""
        history = self.classify(
            http_error(400, "Invalid value"),
            http_error(500, "Internal"),
            http_error(400, DUPLICATE_MESSAGE),
        )
        assert is_disguised_success(history) is True

    def test_all_duplicates_is_genuine(self):
        """Should treat a sheet that already existed as a real error."""
        history = self.classify(
            http_error(400, DUPLICATE_MESSAGE), http_error(400, DUPLICATE_MESSAGE)
        )
        assert is_disguised_success(history) is False

    def test_no_duplicate(self):
        """Should not flag histories without a duplicate error."""
        history = self.classify(http_error(500, "Internal"), http_error(503, "Unavailable"))
        assert is_disguised_success(history) is False

    def test_short_histories(self):
        """Should need at least two attempts."""
        assert is_disguised_success([]) is False
        assert is_disguised_success(self.classify(http_error(400, DUPLICATE_MESSAGE))) is False
