"""HTTP access to the registry with bounded retries."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import requests

from .errors import ConfigurationError, FetchCancelledError, FetchError, FetchExhaustedError

LOGGER = logging.getLogger(__name__)

REGISTRY_BASE_URL = "https://www.sec.gov"

# The registry answers throttled clients with 403 as well as 429.
RETRYABLE_STATUSES = frozenset({403, 429})

PERMANENT_REQUEST_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
)

TRANSIENT_REQUEST_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUSES or 500 <= status < 600


class Fetcher:
    """Fetch documents from the registry, retrying transient failures."""

    def __init__(
        self,
        user_agent: str,
        *,
        max_attempts: int = 3,
        backoff_delay: float = 3.0,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if not user_agent or not user_agent.strip():
            raise ConfigurationError("The registry rejects requests without a User-Agent")
        if max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_delay = backoff_delay
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": user_agent.strip(),
                "Accept-Language": "en-US,en;q=0.9",
                "Referer": f"{REGISTRY_BASE_URL}/",
            }
        )
        self._sleep = sleep or time.sleep
        self.cancel_event = cancel_event

    def _attempt(self, url: str) -> str:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except PERMANENT_REQUEST_ERRORS as exc:
            raise FetchError(url, retryable=False, reason=str(exc)) from exc
        except TRANSIENT_REQUEST_ERRORS as exc:
            raise FetchError(url, retryable=True, reason=str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            raise FetchError(url, retryable=False, reason=str(exc)) from exc

        status = response.status_code
        if status >= 400:
            raise FetchError(url, status, retryable=is_retryable_status(status))
        return response.text

    def _wait(self, delay: float) -> None:
        if self.cancel_event is None:
            self._sleep(delay)
            return
        if self.cancel_event.wait(delay):
            raise FetchCancelledError("Shutdown requested during retry backoff")

    def fetch(
        self,
        url: str,
        max_attempts: Optional[int] = None,
        backoff_delay: Optional[float] = None,
    ) -> str:
        """Return the body of ``url``.

        Retryable failures are attempted again after ``backoff_delay`` seconds,
        up to ``max_attempts`` requests in total, after which
        :class:`FetchExhaustedError` is raised. Any other failure raises
        :class:`FetchError` straight away.
        """

        attempts = max_attempts if max_attempts is not None else self.max_attempts
        delay = backoff_delay if backoff_delay is not None else self.backoff_delay
        if attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        last_status: Optional[int] = None

        for attempt in range(1, attempts + 1):
            LOGGER.debug("GET %s (attempt %d/%d)", url, attempt, attempts)
            try:
                return self._attempt(url)
            except FetchError as exc:
                if not exc.retryable:
                    raise
                last_status = exc.status
                if attempt == attempts:
                    break
                LOGGER.warning(
                    "Retryable failure fetching %s (%s), retrying %d/%d in %.1fs",
                    url,
                    exc,
                    attempt,
                    attempts - 1,
                    delay,
                )
                self._wait(delay)

        raise FetchExhaustedError(url, attempts, last_status)


__all__ = ["Fetcher", "REGISTRY_BASE_URL", "RETRYABLE_STATUSES", "is_retryable_status"]
