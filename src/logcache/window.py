"""
Window planning for paginated log-cache reads.

A single read returns at most `limit` envelopes. Because the density of
envelopes over time is unknown up front, windows are planned one at a
time: a full batch means there may be more, so the next window starts one
nanosecond after the last envelope returned; a short batch means the
range is exhausted.

Example usage:
    planner = WindowPlanner(TimeRange(0, now), limit=1000)
    for window in planner:
        batch = fetch(source_id, window.start, window.end, query_filter)
        planner.advance(batch)
"""

from __future__ import annotations

import threading
from typing import Callable, Iterator, Sequence

from logcache.envelope import Envelope, QueryFilter, TimeRange

Fetch = Callable[[str, int, int, QueryFilter], Sequence[Envelope]]


class WindowPlanner:
    """Produces the dependent sequence of windows covering a TimeRange.

    Iterating yields the current window. The caller must report the raw
    (unfiltered) batch fetched for it with advance() before asking for the
    next one.
    """

    def __init__(self, time_range: TimeRange, limit: int):
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        self._window: TimeRange | None = None if time_range.is_empty else time_range
        self._limit = limit
        self._pending = False

    @property
    def exhausted(self) -> bool:
        return self._window is None

    @property
    def current(self) -> TimeRange | None:
        return self._window

    def advance(self, batch: Sequence[Envelope]) -> None:
        """Plan the next window from the batch fetched for the current one."""
        if self._window is None:
            return
        self._pending = False

        if len(batch) < self._limit:
            self._window = None
            return

        next_window = self._window.with_start(batch[-1].timestamp + 1)
        self._window = None if next_window.is_empty else next_window

    def __iter__(self) -> Iterator[TimeRange]:
        while self._window is not None:
            if self._pending:
                raise RuntimeError("WindowPlanner.advance() must be called for each window")
            self._pending = True
            yield self._window


def paginate(
    fetch: Fetch,
    source_id: str,
    time_range: TimeRange,
    query_filter: QueryFilter,
    cancel: threading.Event | None = None,
) -> Iterator[list[Envelope]]:
    """Fetch every window of a range, yielding raw batches in order.

    Pagination stops early when cancel is set before a fetch, or when the
    fetch returns None.

    Args:
        fetch: Fetch primitive (source_id, start, end, filter) -> envelopes
        source_id: Source to read
        time_range: Range to cover
        query_filter: Filter passed to each fetch; line_limit is the page size
        cancel: Event checked before each fetch

    Yields:
        Each fetched batch, in window order
    """
    planner = WindowPlanner(time_range, query_filter.line_limit)
    for window in planner:
        if cancel is not None and cancel.is_set():
            return
        result = fetch(source_id, window.start, window.end, query_filter)
        if result is None:
            return
        batch = list(result)
        planner.advance(batch)
        yield batch
