"""Error types raised and reported by rss_sync."""

from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for rss_sync failures."""


class ConfigurationError(SyncError, ValueError):
    """Settings are missing or invalid; no task can run."""


class SourceFetchError(SyncError):
    """A feed could not be retrieved."""


class ParseError(SyncError):
    """A feed document or one of its entries could not be parsed."""


class IndexBuildError(SyncError):
    """The dedup index could not be rebuilt from the store."""


class PersistenceError(SyncError):
    """A store write or archive call failed."""


class AggregateFailure(SyncError):
    """One or more tasks finished with failures."""

    def __init__(self, message: str, results=()):
        super().__init__(message)
        self.results = list(results)
