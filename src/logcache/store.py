"""
Offline envelope store backed by DuckDB.

EnvelopeStore answers the same fetch() contract as LogCacheClient, but
from envelopes loaded into an in-memory DuckDB table. It is used to replay
a dump written by `logcache tail --json` (or a saved log-cache read
response) and as a realistic fetch primitive in tests.

Example usage:
    store = EnvelopeStore.from_file("app.jsonl")
    store.source_ids()                      # ['app']
    store.fetch("app", 0, now, QueryFilter(envelope_type="log", line_limit=50))
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Iterable

import duckdb

from logcache.envelope import Envelope, QueryFilter

SCHEMA = """
CREATE TABLE IF NOT EXISTS envelopes (
    seq BIGINT,
    source_id VARCHAR,
    timestamp BIGINT,
    envelope_type VARCHAR,
    names VARCHAR[],
    raw VARCHAR
)
"""


def load_envelopes(path: str | Path) -> list[Envelope]:
    """Parse envelopes from a dump file.

    Accepts newline-delimited JSON envelopes, a JSON array of envelopes, or
    a log-cache read response ({"envelopes": {"batch": [...]}}).

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the content cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    content = path.read_text()
    stripped = content.strip()
    if not stripped:
        return []

    if stripped.startswith("["):
        items = json.loads(stripped)
    elif stripped.startswith("{") and "\n" not in stripped:
        data = json.loads(stripped)
        items = data["envelopes"].get("batch", []) if "envelopes" in data else [data]
    else:
        items = []
        for line_number, line in enumerate(content.splitlines(), 1):
            if not line.strip():
                continue
            try:
                items.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_number}: invalid JSON: {e}") from e

    return [Envelope.from_dict(item) for item in items]


class EnvelopeStore:
    """In-memory envelope table with a log-cache style fetch()."""

    def __init__(self, conn: duckdb.DuckDBPyConnection | None = None):
        """Initialize the store.

        Args:
            conn: Optional existing connection (a new in-memory one if None)
        """
        self._conn = conn or duckdb.connect(":memory:")
        self._conn.execute(SCHEMA)
        self._lock = threading.Lock()
        result = self._conn.execute("SELECT COALESCE(MAX(seq), 0) FROM envelopes").fetchone()
        self._next_seq = (result[0] if result else 0) + 1

    @classmethod
    def from_file(cls, *paths: str | Path) -> EnvelopeStore:
        """Create a store holding the envelopes of one or more dump files."""
        store = cls()
        for path in paths:
            store.add(load_envelopes(path))
        return store

    def add(self, envelopes: Iterable[Envelope]) -> int:
        """Insert envelopes, preserving their arrival order for equal timestamps.

        Returns:
            Number of envelopes added
        """
        with self._lock:
            rows = []
            for env in envelopes:
                rows.append(
                    (
                        self._next_seq,
                        env.source_id,
                        env.timestamp,
                        env.envelope_type,
                        sorted(env.names) or None,
                        json.dumps(env.to_dict()),
                    )
                )
                self._next_seq += 1
            if rows:
                self._conn.executemany("INSERT INTO envelopes VALUES (?, ?, ?, ?, ?, ?)", rows)
        return len(rows)

    def fetch(
        self,
        source_id: str,
        start: int,
        end: int,
        query_filter: QueryFilter,
    ) -> list[Envelope]:
        """Return envelopes for a source in [start, end), oldest first.

        Honours the filter's effective envelope type and counter/gauge name
        and returns at most query_filter.line_limit envelopes.
        """
        conditions = ["source_id = ?", "timestamp >= ?", "timestamp < ?"]
        params: list[Any] = [source_id, start, end]

        envelope_type = query_filter.effective_type
        if envelope_type:
            conditions.append("envelope_type = ?")
            params.append(envelope_type)
        if query_filter.name:
            conditions.append("list_contains(names, ?)")
            params.append(query_filter.name)

        sql = (
            "SELECT raw FROM envelopes WHERE "
            + " AND ".join(conditions)
            + " ORDER BY timestamp, seq LIMIT ?"
        )
        params.append(query_filter.line_limit)

        # One cursor per call: the bridge fetches from several threads
        cursor = self._conn.cursor()
        try:
            rows = cursor.execute(sql, params).fetchall()
        finally:
            cursor.close()
        return [Envelope.from_dict(json.loads(raw)) for (raw,) in rows]

    def source_ids(self) -> list[str]:
        """List the distinct source ids in the store."""
        rows = self._conn.execute(
            "SELECT DISTINCT source_id FROM envelopes ORDER BY source_id"
        ).fetchall()
        return [row[0] for row in rows]

    def count(self, source_id: str | None = None) -> int:
        """Count stored envelopes, optionally for one source."""
        if source_id is None:
            result = self._conn.execute("SELECT COUNT(*) FROM envelopes").fetchone()
        else:
            result = self._conn.execute(
                "SELECT COUNT(*) FROM envelopes WHERE source_id = ?", [source_id]
            ).fetchone()
        return result[0] if result else 0
