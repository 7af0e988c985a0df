"""Exception hierarchy for the harvest pipeline."""

from __future__ import annotations


class HarvestError(Exception):
    """Base exception for all harvest failures."""

    pass


class ConfigError(HarvestError):
    """Raised when the configuration is invalid."""

    pass


class FetchError(HarvestError):
    """Raised when a page cannot be fetched and retrying will not help."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class TransientFetchError(FetchError):
    """Raised for connection resets, timeouts, rate limiting and 5xx responses."""

    pass


class ParseError(HarvestError):
    """Raised when a document cannot be parsed as HTML or JSON."""

    pass


class ConsistencyError(HarvestError):
    """Raised when a dog that was just upserted cannot be read back."""

    pass


class StoreConnectionError(HarvestError):
    """Raised when the persistent store cannot be reached at startup."""

    pass
