"""Tests for window planning and pagination."""

import pytest

from logcache.envelope import QueryFilter, TimeRange
from logcache.window import WindowPlanner, paginate

# ============================================================================
# WindowPlanner
# ============================================================================


class TestWindowPlanner:
    """Dependent window planning."""

    def test_first_window_is_full_range(self):
        """The first window is the whole range."""
        planner = WindowPlanner(TimeRange(0, 100), limit=2)
        assert next(iter(planner)) == TimeRange(0, 100)

    def test_full_batch_advances_past_last_timestamp(self, make_envelope):
        """A full batch starts the next window after its last envelope."""
        planner = WindowPlanner(TimeRange(0, 100), limit=2)
        windows = iter(planner)
        next(windows)
        planner.advance([make_envelope(10), make_envelope(20)])
        assert next(windows) == TimeRange(21, 100)

    def test_short_batch_exhausts(self, make_envelope):
        """A short batch exhausts the planner."""
        planner = WindowPlanner(TimeRange(0, 100), limit=2)
        windows = list_windows(planner, [[make_envelope(10)]])
        assert windows == [TimeRange(0, 100)]
        assert planner.exhausted

    def test_empty_batch_exhausts(self):
        """An empty batch exhausts the planner."""
        planner = WindowPlanner(TimeRange(0, 100), limit=2)
        assert list_windows(planner, [[]]) == [TimeRange(0, 100)]

    def test_empty_range_yields_nothing(self):
        """An empty range yields no window."""
        assert list(WindowPlanner(TimeRange(50, 50), limit=2)) == []

    def test_reversed_range_yields_nothing(self):
        """A reversed range yields no window."""
        assert list(WindowPlanner(TimeRange(60, 50), limit=2)) == []

    def test_advance_past_end_exhausts(self, make_envelope):
        """Advancing past the end exhausts the planner."""
        planner = WindowPlanner(TimeRange(0, 21), limit=2)
        windows = list_windows(planner, [[make_envelope(10), make_envelope(20)]])
        assert windows == [TimeRange(0, 21)]

    def test_missing_advance_is_an_error(self):
        """Asking for a window without advancing is an error."""
        planner = WindowPlanner(TimeRange(0, 100), limit=2)
        windows = iter(planner)
        next(windows)
        with pytest.raises(RuntimeError):
            next(windows)

    def test_invalid_limit(self):
        """The limit must be positive."""
        with pytest.raises(ValueError):
            WindowPlanner(TimeRange(0, 100), limit=0)


def list_windows(planner, batches):
    """Drive a planner with pre-made batches, returning the windows it asked for."""
    windows = []
    batches = iter(batches)
    for window in planner:
        windows.append(window)
        planner.advance(next(batches, []))
    return windows


# ============================================================================
# paginate
# ============================================================================


class TestPaginate:
    """Pagination against a fetch primitive."""

    def test_pagination_is_lossless_and_ordered(self, fake_fetcher, make_envelope):
        """Paging returns the same envelopes as one large fetch."""
        fake_fetcher.add(*[make_envelope(t) for t in (3, 7, 11, 15, 19, 23, 42)])

        paged = [
            env
            for batch in paginate(
                fake_fetcher.fetch, "app", TimeRange(0, 100), QueryFilter(line_limit=2)
            )
            for env in batch
        ]
        single = fake_fetcher.fetch("app", 0, 100, QueryFilter(line_limit=1000))

        assert paged == single
        assert [env.timestamp for env in paged] == [3, 7, 11, 15, 19, 23, 42]

    def test_adjacent_windows_concatenate(self, fake_fetcher, make_envelope):
        """Reading two adjacent ranges equals reading their union."""
        fake_fetcher.add(*[make_envelope(t) for t in range(0, 60, 5)])
        query_filter = QueryFilter(line_limit=3)

        def collect(window):
            return [
                env
                for batch in paginate(fake_fetcher.fetch, "app", window, query_filter)
                for env in batch
            ]

        split = collect(TimeRange(0, 25)) + collect(TimeRange(25, 60))
        assert split == collect(TimeRange(0, 60))

    def test_terminates_on_short_batch(self, fake_fetcher, make_envelope):
        """Paging stops after a short batch."""
        fake_fetcher.add(*[make_envelope(t) for t in range(10)])
        query_filter = QueryFilter(line_limit=4)
        batches = list(paginate(fake_fetcher.fetch, "app", TimeRange(0, 100), query_filter))
        assert [len(b) for b in batches] == [4, 4, 2]
        assert [call[1] for call in fake_fetcher.calls] == [0, 4, 8]

    def test_exact_multiple_needs_one_empty_fetch(self, fake_fetcher, make_envelope):
        """An exact multiple of the limit ends with an empty fetch."""
        fake_fetcher.add(*[make_envelope(t) for t in range(4)])
        query_filter = QueryFilter(line_limit=2)
        batches = list(paginate(fake_fetcher.fetch, "app", TimeRange(0, 100), query_filter))
        assert [len(b) for b in batches] == [2, 2, 0]

    def test_stops_when_cancelled(self, fake_fetcher, make_envelope, cancel):
        """No further windows are fetched once cancel is set."""
        fake_fetcher.add(*[make_envelope(t) for t in range(10)])
        fake_fetcher.on_fetch = lambda calls: cancel.set()
        query_filter = QueryFilter(line_limit=2)

        batches = list(
            paginate(fake_fetcher.fetch, "app", TimeRange(0, 100), query_filter, cancel)
        )

        assert [len(b) for b in batches] == [2]
        assert len(fake_fetcher.calls) == 1

    def test_stops_when_fetch_returns_none(self, make_envelope):
        """A fetch returning None ends pagination without a batch."""
        calls = []

        def fetch(source_id, start, end, query_filter):
            calls.append(start)
            return [make_envelope(start), make_envelope(start + 1)] if len(calls) == 1 else None

        batches = list(paginate(fetch, "app", TimeRange(0, 100), QueryFilter(line_limit=2)))

        assert [len(b) for b in batches] == [2]
        assert calls == [0, 2]
