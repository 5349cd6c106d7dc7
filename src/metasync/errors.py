"""Exception types raised by metasync."""

from typing import Optional


class MetaSyncError(Exception):
    """Base class for metasync errors."""


class UpstreamUnavailableError(MetaSyncError):
    """
    The upstream document-management API could not serve a request.

    Raised for network failures, non-success HTTP responses after the client
    gave up retrying, and any other failure while refreshing a cache category
    or fetching documents.

    Attributes:
        category: Cache category being refreshed, if any
    """

    def __init__(self, message: str, category: Optional[str] = None) -> None:
        super().__init__(message)
        self.category = category


class ScheduleError(MetaSyncError, ValueError):
    """A cron-style schedule string is not supported."""
