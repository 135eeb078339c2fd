"""
Envelope data model for logcache.

Envelopes are the units of telemetry stored by log-cache: log lines,
counters, gauges, timers and events, each tagged with a source id and a
nanosecond timestamp. This module also holds the two value types that
describe a fetch: TimeRange and QueryFilter.

Example usage:
    from logcache.envelope import Envelope, QueryFilter, TimeRange

    env = Envelope.from_dict(json.loads(line))
    window = TimeRange(0, time.time_ns())
    query_filter = QueryFilter(counter_name="requests", line_limit=100)
    if query_filter.matches(env) and window.contains(env.timestamp):
        ...
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
from dataclasses import dataclass, field, replace
from typing import Any

from logcache.errors import InputError

ENVELOPE_TYPES = ("log", "counter", "gauge", "timer", "event")

DEFAULT_LINE_LIMIT = 10


def _canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


@dataclass(frozen=True)
class Envelope:
    """A single envelope fetched from log-cache.

    The payload is the type-specific body (the value under the "log",
    "counter", "gauge", "timer" or "event" key of the wire format) with log
    payloads already decoded to text.
    """

    source_id: str
    timestamp: int
    envelope_type: str
    payload: dict[str, Any]
    instance_id: str = ""
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def names(self) -> frozenset[str]:
        """Names this envelope answers to for name filtering."""
        if self.envelope_type in ("counter", "timer"):
            name = self.payload.get("name")
            return frozenset([name]) if name else frozenset()
        if self.envelope_type == "gauge":
            return frozenset(self.payload.get("metrics", {}))
        return frozenset()

    @property
    def name(self) -> str | None:
        """Counter/timer name, or the comma-joined metric names of a gauge."""
        if not self.names:
            return None
        return ",".join(sorted(self.names))

    @property
    def fingerprint(self) -> str:
        """Content hash of the payload (with instance and tags)."""
        content = _canonical_json([self.envelope_type, self.instance_id, self.tags, self.payload])
        return hashlib.blake2b(content.encode(), digest_size=16).hexdigest()

    @property
    def identity(self) -> tuple[str, int, str]:
        """(source_id, timestamp, fingerprint) - log-cache has no envelope ids."""
        return (self.source_id, self.timestamp, self.fingerprint)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Envelope:
        """Parse an envelope from the log-cache v2 JSON representation.

        Args:
            data: Decoded JSON object with timestamp, source_id and one of
                the type keys (log, counter, gauge, timer, event)

        Returns:
            Envelope instance

        Raises:
            ValueError: If the object has no timestamp or no known body
        """
        if "timestamp" not in data:
            raise ValueError("Envelope is missing a timestamp")

        for envelope_type in ENVELOPE_TYPES:
            if envelope_type in data:
                body = dict(data[envelope_type] or {})
                break
        else:
            raise ValueError(f"Envelope has no recognized body: {sorted(data)}")

        if envelope_type == "log":
            body["payload"] = _decode_log_payload(body.get("payload", ""))
            body.setdefault("type", "OUT")

        return cls(
            source_id=data.get("source_id", ""),
            timestamp=int(data["timestamp"]),
            envelope_type=envelope_type,
            payload=body,
            instance_id=data.get("instance_id", ""),
            tags=dict(data.get("tags") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert back to the log-cache v2 JSON representation."""
        body = dict(self.payload)
        if self.envelope_type == "log":
            body["payload"] = base64.b64encode(str(body.get("payload", "")).encode()).decode()

        data: dict[str, Any] = {
            "timestamp": str(self.timestamp),
            "source_id": self.source_id,
            "instance_id": self.instance_id,
        }
        if self.tags:
            data["tags"] = dict(self.tags)
        data[self.envelope_type] = body
        return data


def _decode_log_payload(raw: str) -> str:
    """Decode a base64 log payload, keeping undecodable input as-is."""
    try:
        return base64.b64decode(raw, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return raw


@dataclass(frozen=True)
class TimeRange:
    """Half-open time interval [start, end) in UNIX nanoseconds.

    A range with start >= end is empty; fetching over it yields nothing.
    """

    start: int
    end: int

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end

    def contains(self, timestamp: int) -> bool:
        return self.start <= timestamp < self.end

    def with_start(self, start: int) -> TimeRange:
        return replace(self, start=start)

    def __str__(self) -> str:
        return f"[{self.start}, {self.end})"


@dataclass(frozen=True)
class QueryFilter:
    """Options that restrict and size a tail.

    counter_name and gauge_name are mutually exclusive; either one implies
    the matching envelope type and overrides envelope_type.
    """

    envelope_type: str | None = None
    counter_name: str | None = None
    gauge_name: str | None = None
    line_limit: int = DEFAULT_LINE_LIMIT
    follow: bool = False

    def validate(self) -> None:
        """Check option consistency.

        Raises:
            InputError: If the options contradict each other
        """
        if self.counter_name and self.gauge_name:
            raise InputError("--counter-name cannot be used with --gauge-name")
        if self.envelope_type is not None and self.envelope_type not in ENVELOPE_TYPES:
            raise InputError(
                f"Invalid envelope type: {self.envelope_type}. "
                f"Available filters: {', '.join(ENVELOPE_TYPES)}"
            )
        if self.line_limit <= 0:
            raise InputError(f"Lines must be greater than 0 (got {self.line_limit})")

    @property
    def effective_type(self) -> str | None:
        if self.counter_name:
            return "counter"
        if self.gauge_name:
            return "gauge"
        return self.envelope_type

    @property
    def name(self) -> str | None:
        return self.counter_name or self.gauge_name

    def matches(self, envelope: Envelope) -> bool:
        """Return True if the envelope passes the type and name restrictions."""
        envelope_type = self.effective_type
        if envelope_type is not None and envelope.envelope_type != envelope_type:
            return False
        name = self.name
        if name is not None and name not in envelope.names:
            return False
        return True
