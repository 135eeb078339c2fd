"""
Tail streaming for a single log-cache source.

TailStreamer reads one source either once (a bounded, paginated read of a
time range) or continuously (follow mode: keep polling past the newest
envelope seen). Every envelope goes through the QueryFilter and a
DedupBuffer before it reaches the sink.

Example usage:
    streamer = TailStreamer(LogCacheClient("https://log-cache.example.com"))
    renderer = Renderer(sys.stdout, "text")
    streamer.stream("my-app", TimeRange(start, end), QueryFilter(line_limit=50),
                    renderer.emit)
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable

from logcache.dedup import DedupBuffer
from logcache.envelope import Envelope, QueryFilter, TimeRange
from logcache.errors import FatalStreamError, TransientFetchError
from logcache.window import Fetch, paginate

logger = logging.getLogger("logcache-cli")

Sink = Callable[[Envelope], Any]

# log-cache rejects reads with a limit above 1000
MAX_PAGE_SIZE = 1000
DEFAULT_POLL_INTERVAL = 0.25
DEFAULT_MAX_RETRIES = 5

_USE_LINE_LIMIT = object()


class TailStreamer:
    """Reads envelopes for one source through a fetch primitive.

    The fetch primitive is anything with a
    ``fetch(source_id, start, end, query_filter) -> list[Envelope]`` method
    (LogCacheClient, EnvelopeStore, or a test fake), or a plain callable
    with that signature.

    A streamer holds no per-invocation state; each stream() call owns its
    own DedupBuffer, so one streamer can serve concurrent invocations.
    """

    def __init__(
        self,
        fetcher: Any,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_page_size: int = MAX_PAGE_SIZE,
        clock: Callable[[], int] = time.time_ns,
    ):
        """Initialize the streamer.

        Args:
            fetcher: Fetch primitive (object with fetch() or a callable)
            poll_interval: Seconds to wait between follow polls and retries
            max_retries: Consecutive fetch failures tolerated in follow mode
            max_page_size: Upper bound on envelopes requested per fetch
            clock: Returns the current time in UNIX nanoseconds
        """
        self._fetch: Fetch = fetcher.fetch if hasattr(fetcher, "fetch") else fetcher
        self.poll_interval = poll_interval
        self.max_retries = max_retries
        self.max_page_size = max_page_size
        self._clock = clock

    def stream(
        self,
        source_id: str,
        time_range: TimeRange | None,
        query_filter: QueryFilter,
        sink: Sink,
        cancel: threading.Event | None = None,
        max_envelopes: Any = _USE_LINE_LIMIT,
    ) -> int:
        """Stream envelopes for a source into a sink.

        Without follow, reads time_range (default [0, now)) window by window
        and stops when it is exhausted or max_envelopes have been emitted.
        With follow, reads time_range first (if given) and then polls for new
        envelopes until cancel is set.

        Args:
            source_id: Source to read
            time_range: Range to read, or None
            query_filter: Type/name restrictions, page size and follow flag
            sink: Called once per emitted envelope, in order
            cancel: Event that stops the stream when set
            max_envelopes: Cap on emitted envelopes for one-shot reads;
                defaults to query_filter.line_limit, None for no cap

        Returns:
            Number of envelopes emitted

        Raises:
            InputError: If query_filter is invalid (before any fetch)
            TransientFetchError: If a one-shot fetch fails
            FatalStreamError: If follow mode exhausts its retry budget
        """
        query_filter.validate()
        if cancel is None:
            cancel = threading.Event()
        if max_envelopes is _USE_LINE_LIMIT:
            max_envelopes = query_filter.line_limit
        if query_filter.follow:
            max_envelopes = None

        page_filter = replace(
            query_filter, line_limit=min(query_filter.line_limit, self.max_page_size)
        )
        buffer = DedupBuffer()
        state = _StreamState()

        if time_range is None and not query_filter.follow:
            time_range = TimeRange(0, self._clock())

        def fetch_window(src: str, start: int, end: int, window_filter: QueryFilter):
            return self._fetch_window(src, TimeRange(start, end), window_filter, cancel, state)

        if time_range is not None:
            for batch in paginate(fetch_window, source_id, time_range, page_filter, cancel):
                for envelope in batch:
                    if self._offer(envelope, query_filter, buffer, sink):
                        state.emitted += 1
                        if max_envelopes is not None and state.emitted >= max_envelopes:
                            return state.emitted

        if not query_filter.follow:
            return state.emitted

        if buffer.last_seen_timestamp is not None:
            start = buffer.last_seen_timestamp
        elif time_range is not None:
            start = time_range.end
        else:
            start = self._clock()
        self._follow(source_id, start, query_filter, page_filter, sink, cancel, buffer, state)
        return state.emitted

    def _follow(
        self,
        source_id: str,
        start: int,
        query_filter: QueryFilter,
        page_filter: QueryFilter,
        sink: Sink,
        cancel: threading.Event,
        buffer: DedupBuffer,
        state: _StreamState,
    ) -> None:
        logger.debug(f"Following {source_id} from {start}")
        while not cancel.is_set():
            window = TimeRange(start, max(self._clock(), start) + 1)
            batch = self._fetch_window(source_id, window, page_filter, cancel, state)
            if batch is None:
                return

            admitted = 0
            for envelope in batch:
                if self._offer(envelope, query_filter, buffer, sink):
                    admitted += 1
            state.emitted += admitted

            if len(batch) >= page_filter.line_limit:
                last = batch[-1].timestamp
                if last <= start and not admitted:
                    # A whole page shares the start timestamp: skip past it.
                    logger.warning(
                        f"More than {page_filter.line_limit} envelopes at {start} for "
                        f"{source_id}; skipping ahead"
                    )
                    start = last + 1
                else:
                    start = max(start, last)
                continue

            if batch:
                start = max(start, batch[-1].timestamp)
            cancel.wait(self.poll_interval)

    def _fetch_window(
        self,
        source_id: str,
        window: TimeRange,
        page_filter: QueryFilter,
        cancel: threading.Event,
        state: _StreamState,
    ) -> list[Envelope] | None:
        """Fetch one window, retrying in follow mode. Returns None if cancelled."""
        while True:
            logger.debug(f"Fetching {source_id} {window} (limit {page_filter.line_limit})")
            try:
                batch = list(self._fetch(source_id, window.start, window.end, page_filter))
            except TransientFetchError as e:
                if not page_filter.follow:
                    raise
                state.failures += 1
                if state.failures > self.max_retries:
                    raise FatalStreamError(
                        f"Giving up on {source_id} after {state.failures} consecutive "
                        f"failed fetches: {e}"
                    ) from e
                logger.warning(
                    f"Fetch failed ({state.failures}/{self.max_retries}), retrying: {e}"
                )
                if cancel.wait(self.poll_interval):
                    return None
                continue
            state.failures = 0
            return batch

    @staticmethod
    def _offer(
        envelope: Envelope,
        query_filter: QueryFilter,
        buffer: DedupBuffer,
        sink: Sink,
    ) -> bool:
        if not query_filter.matches(envelope):
            return False
        if not buffer.admit(envelope):
            return False
        sink(envelope)
        return True


class _StreamState:
    """Counters for one stream() invocation."""

    def __init__(self) -> None:
        self.emitted = 0
        self.failures = 0


def collect(
    streamer: TailStreamer,
    source_id: str,
    time_range: TimeRange,
    query_filter: QueryFilter,
    cancel: threading.Event | None = None,
    max_envelopes: Any = _USE_LINE_LIMIT,
) -> list[Envelope]:
    """Run a one-shot stream and return the emitted envelopes as a list."""
    envelopes: list[Envelope] = []
    streamer.stream(
        source_id,
        time_range,
        replace(query_filter, follow=False),
        envelopes.append,
        cancel=cancel,
        max_envelopes=max_envelopes,
    )
    return envelopes
