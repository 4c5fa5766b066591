"""Exception hierarchy for the filing monitor."""
from __future__ import annotations

from typing import Optional


class MonitorError(Exception):
    """Base class for all errors raised by the monitor."""


class ConfigurationError(MonitorError):
    """Raised when settings are missing or malformed."""


class FetchError(MonitorError):
    """A single request failed.

    ``retryable`` tells whether the failure class (throttling, server errors,
    dropped connections) is worth another attempt.
    """

    def __init__(
        self,
        url: str,
        status: Optional[int] = None,
        *,
        retryable: bool = False,
        reason: str = "",
    ) -> None:
        message = f"Request to {url} failed"
        if status is not None:
            message += f" with HTTP {status}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.url = url
        self.status = status
        self.retryable = retryable


class FetchExhaustedError(MonitorError):
    """Every allowed attempt failed with a retryable error."""

    def __init__(self, url: str, attempts: int, last_status: Optional[int] = None) -> None:
        super().__init__(f"Failed to fetch {url} after {attempts} attempts")
        self.url = url
        self.attempts = attempts
        self.last_status = last_status


class FetchCancelledError(MonitorError):
    """A shutdown request interrupted a pending retry."""


class ParseError(MonitorError):
    """A structured document could not be interpreted."""


class NotificationError(MonitorError):
    """The delivery channel rejected or failed to send a message."""


__all__ = [
    "ConfigurationError",
    "FetchCancelledError",
    "FetchError",
    "FetchExhaustedError",
    "MonitorError",
    "NotificationError",
    "ParseError",
]
