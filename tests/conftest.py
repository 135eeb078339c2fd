"""Shared fixtures for logcache tests."""

import json
import shutil
import tempfile
import threading
from pathlib import Path

import pytest

from logcache.envelope import Envelope, QueryFilter
from logcache.errors import TransientFetchError


def _make_envelope(
    timestamp,
    source_id="app",
    envelope_type="log",
    name=None,
    value=None,
    instance_id="0",
    message=None,
):
    """Build an envelope of the given type with a small payload."""
    if envelope_type == "log":
        payload = {"payload": message if message is not None else f"line {timestamp}", "type": "OUT"}
    elif envelope_type == "counter":
        payload = {"name": name or "requests", "delta": "1", "total": str(value or timestamp)}
    elif envelope_type == "gauge":
        payload = {"metrics": {name or "cpu": {"unit": "percentage", "value": value or 1.5}}}
    elif envelope_type == "timer":
        payload = {"name": name or "http", "start": "0", "stop": str(value or 2_000_000)}
    else:
        payload = {"title": name or "deploy", "body": message or "started"}
    return Envelope(
        source_id=source_id,
        timestamp=timestamp,
        envelope_type=envelope_type,
        payload=payload,
        instance_id=instance_id,
    )


@pytest.fixture
def make_envelope():
    """Fixture that provides the envelope factory."""
    return _make_envelope


class FakeFetcher:
    """In-memory fetch primitive honouring the log-cache read contract.

    Attributes:
        calls: (source_id, start, end, line_limit) for every fetch
        fail_times: Number of upcoming fetches that raise TransientFetchError
            (-1 = fail forever)
        on_fetch: Optional callback run after each fetch with the call count
    """

    def __init__(self, envelopes=()):
        self.envelopes = sorted(envelopes, key=lambda e: e.timestamp)
        self.calls = []
        self.fail_times = 0
        self.on_fetch = None

    def add(self, *envelopes):
        self.envelopes = sorted([*self.envelopes, *envelopes], key=lambda e: e.timestamp)

    def fetch(self, source_id, start, end, query_filter):
        self.calls.append((source_id, start, end, query_filter.line_limit))
        try:
            if self.fail_times:
                if self.fail_times > 0:
                    self.fail_times -= 1
                raise TransientFetchError("connection refused", source_id, start, end)
            matching = [
                env
                for env in self.envelopes
                if env.source_id == source_id and start <= env.timestamp < end
            ]
            envelope_type = query_filter.effective_type
            if envelope_type:
                matching = [env for env in matching if env.envelope_type == envelope_type]
            if query_filter.name:
                matching = [env for env in matching if query_filter.name in env.names]
            return matching[: query_filter.line_limit]
        finally:
            if self.on_fetch is not None:
                self.on_fetch(len(self.calls))


@pytest.fixture
def fake_fetcher():
    """Fixture providing an empty FakeFetcher."""
    return FakeFetcher()


@pytest.fixture
def cancel():
    """A fresh cancellation event."""
    return threading.Event()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp)


@pytest.fixture
def dump_file(temp_dir):
    """A JSON-lines dump with envelopes for two sources."""
    envelopes = [
        _make_envelope(10, source_id="app-a"),
        _make_envelope(20, source_id="app-a", envelope_type="counter", name="requests"),
        _make_envelope(30, source_id="app-a", envelope_type="gauge", name="cpu"),
        _make_envelope(5, source_id="app-b"),
        _make_envelope(25, source_id="app-b", envelope_type="event"),
    ]
    path = temp_dir / "dump.jsonl"
    path.write_text("\n".join(json.dumps(env.to_dict()) for env in envelopes) + "\n")
    return path


@pytest.fixture
def default_filter():
    return QueryFilter(line_limit=10)
