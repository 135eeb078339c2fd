"""
Range queries over one or more log-cache sources.

A range query names sources and a [start, end) interval. The bridge runs a
one-shot tail for every source, paging through the interval in bounded
windows, and merges the per-source results into one sequence ordered by
timestamp.

Example usage:
    bridge = RangeQueryBridge(TailStreamer(client))
    envelopes = bridge.evaluate('cpu{source_id="app-a"}', TimeRange(start, end))
"""

from __future__ import annotations

import heapq
import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from operator import attrgetter
from typing import Callable

from logcache.envelope import Envelope, QueryFilter, TimeRange
from logcache.errors import InputError
from logcache.stream import TailStreamer, collect

logger = logging.getLogger("logcache-cli")

DEFAULT_WINDOW_LIMIT = 1000
DEFAULT_MAX_WORKERS = 4

_SOURCE_ID_MATCHER = re.compile(r"""source_id\s*=~?\s*(["'])(.*?)\1""")


def parse_source_ids(query: str) -> list[str]:
    """Extract the source ids a query refers to.

    PromQL-style selectors contribute every ``source_id="..."`` (or
    ``source_id=~"..."``) label matcher. A query without any selector is
    read as a comma or whitespace separated list of source ids.

    Args:
        query: Query string, e.g. 'cpu{source_id="app-a"} + mem{source_id="app-b"}'

    Returns:
        Source ids in order of first appearance, without duplicates

    Raises:
        InputError: If the query names no source
    """
    if "{" in query:
        found = [match.group(2) for match in _SOURCE_ID_MATCHER.finditer(query)]
    else:
        found = [token for token in re.split(r"[\s,]+", query.strip()) if token]

    source_ids = list(dict.fromkeys(s for s in found if s))
    if not source_ids:
        raise InputError(f"Query does not name any source_id: {query!r}")
    return source_ids


class RangeQueryBridge:
    """Answers range queries by merging per-source tails.

    The streamer is injected so the bridge can be tested against any
    TailStreamer (or a stand-in with the same stream() signature).
    """

    def __init__(
        self,
        streamer: TailStreamer,
        resolver: Callable[[str], list[str]] = parse_source_ids,
        window_limit: int = DEFAULT_WINDOW_LIMIT,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        """Initialize the bridge.

        Args:
            streamer: Tail streamer used for each source
            resolver: Maps a query string to its source ids
            window_limit: Envelopes requested per fetch window
            max_workers: Sources fetched concurrently (1 = sequential)
        """
        self.streamer = streamer
        self.resolver = resolver
        self.window_limit = window_limit
        self.max_workers = max_workers

    def evaluate(
        self,
        query: str,
        time_range: TimeRange,
        cancel: threading.Event | None = None,
    ) -> list[Envelope]:
        """Evaluate a range query.

        Args:
            query: Query naming one or more sources
            time_range: Interval to read; an empty range yields []
            cancel: Event that stops outstanding reads when set; it is also
                set when a source fails or the caller is interrupted

        Returns:
            All envelopes in range, ordered by timestamp (ties keep source
            order, then arrival order)

        Raises:
            InputError: If the query names no source
            TransientFetchError: If any source's read fails
        """
        source_ids = self.resolver(query)
        if cancel is None:
            cancel = threading.Event()
        query_filter = QueryFilter(line_limit=self.window_limit)
        logger.debug(f"Range query over {len(source_ids)} source(s) {time_range}")

        def read(source_id: str) -> list[Envelope]:
            envelopes = collect(
                self.streamer,
                source_id,
                time_range,
                query_filter,
                cancel=cancel,
                max_envelopes=None,
            )
            logger.debug(f"{source_id}: {len(envelopes)} envelope(s)")
            return envelopes

        if len(source_ids) > 1 and self.max_workers > 1:
            workers = min(self.max_workers, len(source_ids))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(read, source_id) for source_id in source_ids]
                try:
                    for future in as_completed(futures):
                        future.result()
                except BaseException:
                    # Stop the other sources before the pool joins them
                    cancel.set()
                    raise
                per_source = [future.result() for future in futures]
        else:
            per_source = [read(source_id) for source_id in source_ids]

        return merge_envelopes(per_source)


def merge_envelopes(per_source: list[list[Envelope]]) -> list[Envelope]:
    """Merge timestamp-ordered sequences into one ordered list.

    The merge is stable: equal timestamps keep the order of the input
    sequences, then their order within each sequence.
    """
    return list(heapq.merge(*per_source, key=attrgetter("timestamp")))
