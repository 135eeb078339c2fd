"""Tests for the dedup buffer."""

from logcache.dedup import DedupBuffer


class TestDedupBuffer:
    """Duplicate suppression across overlapping windows."""

    def test_first_envelope_admitted(self, make_envelope):
        """The first envelope is admitted and starts the tie set."""
        buffer = DedupBuffer()
        assert buffer.admit(make_envelope(10))
        assert buffer.last_seen_timestamp == 10
        assert len(buffer.tie_set) == 1

    def test_same_envelope_rejected(self, make_envelope):
        """A repeated envelope is rejected."""
        buffer = DedupBuffer()
        assert buffer.admit(make_envelope(10))
        assert not buffer.admit(make_envelope(10))

    def test_older_envelope_rejected(self, make_envelope):
        """Envelopes older than the newest seen are rejected."""
        buffer = DedupBuffer()
        buffer.admit(make_envelope(20))
        assert not buffer.admit(make_envelope(10, message="new content"))

    def test_distinct_ties_admitted(self, make_envelope):
        """Different envelopes at the same timestamp are all admitted."""
        buffer = DedupBuffer()
        assert buffer.admit(make_envelope(20, message="first"))
        assert buffer.admit(make_envelope(20, message="second"))
        assert len(buffer.tie_set) == 2
        assert not buffer.admit(make_envelope(20, message="first"))

    def test_newer_timestamp_resets_tie_set(self, make_envelope):
        """A newer timestamp replaces the tie set."""
        buffer = DedupBuffer()
        buffer.admit(make_envelope(20, message="a"))
        buffer.admit(make_envelope(20, message="b"))
        assert buffer.admit(make_envelope(30))
        assert len(buffer.tie_set) == 1
        assert buffer.last_seen_timestamp == 30

    def test_overlapping_windows_emit_once(self, make_envelope):
        """Overlapping windows emit each envelope once."""
        first_window = [make_envelope(t) for t in (10, 20, 30)]
        second_window = [make_envelope(t) for t in (30, 40)]

        buffer = DedupBuffer()
        emitted = [env for env in first_window + second_window if buffer.admit(env)]

        identities = [env.identity for env in emitted]
        assert len(identities) == len(set(identities))
        assert [env.timestamp for env in emitted] == [10, 20, 30, 40]

    def test_same_timestamp_different_sources(self, make_envelope):
        """Sources are part of the identity."""
        buffer = DedupBuffer()
        assert buffer.admit(make_envelope(10, source_id="a"))
        assert buffer.admit(make_envelope(10, source_id="b"))
