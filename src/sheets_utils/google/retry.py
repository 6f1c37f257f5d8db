"""Retry policy for Google Sheets and Drive API calls.

Google's APIs regularly answer with rate-limit responses, transient 5xx errors
and dropped connections. Every remote call made by this package runs through
`GoogleRetry`, which retries failures classified as transient with a fixed
delay and a bounded number of attempts.

Example:
    >>> retry = GoogleRetry(RetryConfig(delay=15, attempts=5))
    >>> result = retry.call(
    ...     lambda: service.spreadsheets().get(spreadsheetId=sid).execute(),
    ...     f"get spreadsheet {sid}",
    ... )

Retried mutations are not idempotent: a create call that timed out may still
have been committed remotely. `is_disguised_success` recognises the pattern
left behind by such a call so that callers can re-fetch state instead of
failing.
"""

from __future__ import annotations

import enum
import http.client
import logging
import socket
import ssl
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

import requests
from googleapiclient.errors import HttpError
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
    wait_random,
)

from sheets_utils.google.exceptions import GoogleAPIError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DELAY_SECONDS = 15.0
DEFAULT_ATTEMPTS = 5

# 403 responses Google sends instead of a 429
RATE_LIMIT_MESSAGES = {"rate limit exceeded", "user rate limit exceeded"}

TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    socket.gaierror,
    http.client.IncompleteRead,
    http.client.BadStatusLine,
    ssl.SSLEOFError,
    requests.ConnectionError,
    requests.Timeout,
    EOFError,
)


class ErrorKind(enum.Enum):
    """Classification of a failed API call."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class ClassifiedError:
    """Outcome of one failed attempt, independent of the transport library."""

    kind: ErrorKind
    code: int | None
    message: str

    @property
    def is_duplicate(self) -> bool:
        """True for the 400 the API returns when the resource already exists."""
        return self.code == 400 and "already exists" in self.message.lower()

    def __str__(self) -> str:
        if self.code is None:
            return f"{self.kind.value}: {self.message}"
        return f"{self.kind.value} {self.code}: {self.message}"


def classify_error(exc: BaseException) -> ClassifiedError:
    """Map an exception raised by a remote call to a `ClassifiedError`."""
    if isinstance(exc, HttpError):
        code = int(exc.resp.status)
        message = (getattr(exc, "reason", None) or str(exc)).strip()
        if code == 429 or 500 <= code <= 599:
            return ClassifiedError(ErrorKind.TRANSIENT, code, message)
        if code == 403 and message.lower() in RATE_LIMIT_MESSAGES:
            return ClassifiedError(ErrorKind.TRANSIENT, code, message)
        return ClassifiedError(ErrorKind.PERMANENT, code, message)

    message = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
    if isinstance(exc, TRANSPORT_ERRORS):
        return ClassifiedError(ErrorKind.TRANSPORT, None, message)
    if "connection reset by peer" in str(exc).lower():
        return ClassifiedError(ErrorKind.TRANSPORT, None, message)
    return ClassifiedError(ErrorKind.PERMANENT, None, message)


def is_retryable(error: ClassifiedError) -> bool:
    """Default retry predicate: transient API errors and transport errors."""
    return error.kind in (ErrorKind.TRANSIENT, ErrorKind.TRANSPORT)


def is_disguised_success(history: Sequence[ClassifiedError]) -> bool:
    """Detect a create call that succeeded remotely despite reporting failure.

    The first attempt failed with something other than a duplicate error, and
    a later attempt was rejected because the resource already exists. When
    every attempt is a duplicate error the resource existed beforehand and the
    failure is genuine.

    Args:
        history: Classified errors of each failed attempt, in order.

    Returns:
        True if the sequence should be treated as a success.
    """
    if len(history) < 2:
        return False
    first, *rest = history
    return not first.is_duplicate and any(error.is_duplicate for error in rest)


@dataclass
class RetryConfig:
    """Configuration for retrying Google API calls.

    Attributes:
        delay: Seconds to wait between attempts. Default: 15 seconds.
        attempts: Total attempts, including the first one. Default: 5.
        jitter: Extra random seconds (0 to jitter) added to each delay.
        max_elapsed: Overall deadline in seconds. No new attempt starts
            once it has passed. None disables it.
        retry_if: Predicate deciding whether a classified error is retried.
    """

    delay: float = DEFAULT_DELAY_SECONDS
    attempts: int = DEFAULT_ATTEMPTS
    jitter: float = 0.0
    max_elapsed: float | None = None
    retry_if: Callable[[ClassifiedError], bool] = is_retryable

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {self.attempts}")
        if self.delay < 0:
            raise ValueError(f"delay must not be negative, got {self.delay}")
        if self.jitter < 0:
            raise ValueError(f"jitter must not be negative, got {self.jitter}")
        if self.max_elapsed is not None and self.max_elapsed <= 0:
            raise ValueError(f"max_elapsed must be positive, got {self.max_elapsed}")

    @classmethod
    def from_env(cls) -> RetryConfig:
        """Create a configuration from SHEETS_UTILS_RETRY_* environment variables."""
        from sheets_utils.config import get_retry_settings

        return cls(**get_retry_settings())


class GoogleRetry:
    """Run remote calls with the configured retry policy.

    Args:
        config: Retry configuration. Defaults to `RetryConfig.from_env()`.
        sleep: Blocking wait used between attempts. Defaults to `time.sleep`.
        clock: Seconds counter for the `max_elapsed` deadline. Defaults to
            `time.monotonic`.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Any] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.config = config or RetryConfig.from_env()
        self._sleep = sleep or time.sleep
        self._clock = clock or time.monotonic

    def call(self, operation: Callable[[], T], description: str = "Google API call") -> T:
        """Execute an operation, retrying transient failures.

        Args:
            operation: Zero-argument callable performing one remote call.
            description: Names the call in log messages and errors.

        Returns:
            Whatever the operation returns.

        Raises:
            GoogleAPIError: If the operation failed with a non-retryable error.
            RetryExhaustedError: If every attempt failed.
        """
        history: list[ClassifiedError] = []
        started = self._clock()

        def attempt() -> T:
            try:
                return operation()
            except Exception as exc:
                history.append(classify_error(exc))
                raise

        def log_retry(state: RetryCallState) -> None:
            wait = state.next_action.sleep if state.next_action else 0
            logger.warning(
                f"{description} failed (attempt {state.attempt_number}/"
                f"{self.config.attempts}): {history[-1]}; retrying in {wait:.1f}s"
            )

        retrying = Retrying(
            stop=self._stop(started),
            wait=self._wait(),
            retry=retry_if_exception(self._should_retry),
            sleep=self._sleep,
            before_sleep=log_retry,
        )

        try:
            return retrying(attempt)
        except RetryError as exc:
            attempts = exc.last_attempt.attempt_number
            last = history[-1]
            logger.error(f"{description} failed after {attempts} attempts: {last}")
            raise RetryExhaustedError(
                f"{description} failed after {attempts} attempts: {last.message}",
                status_code=last.code,
                attempts=attempts,
                history=history,
            ) from exc.last_attempt.exception()
        except Exception as exc:
            last = history[-1] if history else classify_error(exc)
            raise GoogleAPIError(
                f"{description} failed: {last.message}",
                status_code=last.code,
                attempts=len(history),
                history=history,
            ) from exc

    def _should_retry(self, exc: BaseException) -> bool:
        if not isinstance(exc, Exception):
            return False
        return self.config.retry_if(classify_error(exc))

    def _stop(self, started: float):
        stop = stop_after_attempt(self.config.attempts)
        if self.config.max_elapsed is None:
            return stop

        deadline = started + self.config.max_elapsed

        def past_deadline(state: RetryCallState) -> bool:
            # The next attempt would start after the upcoming sleep
            return self._clock() + state.upcoming_sleep >= deadline

        return stop | past_deadline

    def _wait(self):
        wait = wait_fixed(self.config.delay)
        if self.config.jitter:
            wait = wait + wait_random(0, self.config.jitter)
        return wait
