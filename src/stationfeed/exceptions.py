"""Custom exception hierarchy for stationfeed."""

from __future__ import annotations


class FeedError(Exception):
    """Base exception for all stationfeed errors."""


class FeedConfigError(FeedError):
    """Invalid or missing configuration."""


class FeedFetchError(FeedError):
    """HTTP-level failure (network, timeout, non-200 status)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class FeedParseError(FeedError):
    """Payload could not be decoded into entity records."""

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class FeedConnectionError(FeedError):
    """The snapshot source could not be opened during ``connect()``."""


class FeedStateError(FeedError):
    """Operation not valid in the feed's current connection state."""
