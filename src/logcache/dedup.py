"""
Duplicate suppression for overlapping fetch windows.

Log-cache envelopes carry no unique id, so an envelope is identified by
(source, timestamp, payload fingerprint). Fetch windows can overlap at
their boundaries (follow mode re-reads from the last seen timestamp), so
every envelope a stream emits passes through a DedupBuffer first.
"""

from __future__ import annotations

from logcache.envelope import Envelope


class DedupBuffer:
    """Tracks the newest timestamp seen and the identities sharing it.

    Only identities at the newest timestamp are kept, so memory stays
    bounded by the number of envelopes that tie on a single nanosecond.

    Example:
        buffer = DedupBuffer()
        for env in batch:
            if buffer.admit(env):
                sink(env)
    """

    def __init__(self) -> None:
        self.last_seen_timestamp: int | None = None
        self.tie_set: set[tuple[str, int, str]] = set()

    def admit(self, envelope: Envelope) -> bool:
        """Record an envelope, returning True if it has not been seen before."""
        identity = envelope.identity

        if self.last_seen_timestamp is None or envelope.timestamp > self.last_seen_timestamp:
            self.last_seen_timestamp = envelope.timestamp
            self.tie_set = {identity}
            return True

        if envelope.timestamp < self.last_seen_timestamp:
            return False

        if identity in self.tie_set:
            return False
        self.tie_set.add(identity)
        return True
