"""
logcache - Log Cache CLI

Tail and range-query envelopes from a log-cache service.

Example usage:
    from logcache import LogCacheClient, QueryFilter, TailStreamer, TimeRange

    streamer = TailStreamer(LogCacheClient("https://log-cache.example.com"))
    streamer.stream("my-app", TimeRange(start, end), QueryFilter(line_limit=50), print)

    # Merge several sources over a range
    envelopes = RangeQueryBridge(streamer).evaluate("app-a, app-b", TimeRange(start, end))
"""

__version__ = "0.1.0"

from logcache.bridge import RangeQueryBridge, parse_source_ids
from logcache.client import LogCacheClient
from logcache.dedup import DedupBuffer
from logcache.envelope import Envelope, QueryFilter, TimeRange
from logcache.errors import FatalStreamError, InputError, LogCacheError, TransientFetchError
from logcache.render import Renderer, render
from logcache.store import EnvelopeStore
from logcache.stream import TailStreamer
from logcache.window import WindowPlanner, paginate

__all__ = [
    "DedupBuffer",
    "Envelope",
    "EnvelopeStore",
    "FatalStreamError",
    "InputError",
    "LogCacheClient",
    "LogCacheError",
    "QueryFilter",
    "RangeQueryBridge",
    "Renderer",
    "TailStreamer",
    "TimeRange",
    "TransientFetchError",
    "WindowPlanner",
    "__version__",
    "paginate",
    "parse_source_ids",
    "render",
]
