"""
Exception types for logcache.

All errors raised by the engine derive from LogCacheError so the CLI can
report them uniformly.
"""

from __future__ import annotations


class LogCacheError(Exception):
    """Base exception for logcache operations."""


class InputError(LogCacheError):
    """Invalid user input, detected before any fetch is attempted."""


class TransientFetchError(LogCacheError):
    """A single fetch against the log-cache service failed.

    Attributes:
        source_id: Source the fetch was for
        start: Window start (ns, inclusive)
        end: Window end (ns, exclusive)
    """

    def __init__(self, message: str, source_id: str, start: int, end: int):
        super().__init__(f"{message} (source={source_id}, window=[{start}, {end}))")
        self.source_id = source_id
        self.start = start
        self.end = end


class FatalStreamError(LogCacheError):
    """A follow stream gave up after too many consecutive fetch failures."""
