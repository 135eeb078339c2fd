"""
Output rendering for envelopes.

Modes:
    json      One JSON object per line (log-cache v2 shape), written as
              each envelope arrives.
    text      One human-readable line per envelope, written as each
              envelope arrives. Used by `tail`, including follow mode.
    table     Column-aligned table, written once at the end.
    csv       CSV, written once at the end.
    markdown  Markdown table, written once at the end.

The renderer never reorders its input; ordering belongs to the producer.
"""

from __future__ import annotations

import json
from datetime import datetime, tzinfo
from typing import IO, Any, Iterable

import pandas as pd

from logcache.envelope import Envelope

STREAMING_MODES = ("json", "text")
TABULAR_MODES = ("table", "csv", "markdown")
OUTPUT_MODES = STREAMING_MODES + TABULAR_MODES

TABLE_COLUMNS = ["timestamp", "source_id", "instance_id", "type", "name", "value"]


def format_timestamp(timestamp: int, tz: tzinfo | None = None) -> str:
    """Format a nanosecond timestamp like 2017-10-05T12:00:00.25-0700.

    Args:
        timestamp: UNIX nanoseconds
        tz: Timezone to render in (default: local time)
    """
    seconds, nanos = divmod(timestamp, 1_000_000_000)
    dt = datetime.fromtimestamp(seconds, tz=tz)
    if tz is None:
        dt = dt.astimezone()
    return f"{dt:%Y-%m-%dT%H:%M:%S}.{nanos // 10_000_000:02d}{dt:%z}"


def format_body(envelope: Envelope) -> str:
    """Format the type-specific part of an envelope (without the type tag)."""
    payload = envelope.payload
    kind = envelope.envelope_type

    if kind == "log":
        return str(payload.get("payload", "")).rstrip("\n")
    if kind == "counter":
        return f"{payload.get('name', '')}:{int(payload.get('total', 0) or 0)}"
    if kind == "gauge":
        parts = []
        for name in sorted(payload.get("metrics", {})):
            metric = payload["metrics"][name] or {}
            part = f"{name}:{metric.get('value', 0)}"
            if metric.get("unit"):
                part += f" {metric['unit']}"
            parts.append(part)
        return ", ".join(parts)
    if kind == "timer":
        elapsed_ms = (int(payload.get("stop", 0)) - int(payload.get("start", 0))) / 1e6
        return f"{payload.get('name', '')} {elapsed_ms:.2f} ms"
    if kind == "event":
        return f"{payload.get('title', '')}:{payload.get('body', '')}"
    return json.dumps(payload, sort_keys=True)


def format_text_line(envelope: Envelope, tz: tzinfo | None = None) -> str:
    """Format an envelope as one line of `tail` output."""
    if envelope.envelope_type == "log":
        tag = f"LOG/{envelope.payload.get('type', 'OUT')}"
    else:
        tag = envelope.envelope_type.upper()
    return (
        f"{format_timestamp(envelope.timestamp, tz)} "
        f"[{envelope.source_id}/{envelope.instance_id}] {tag} {format_body(envelope)}"
    )


def envelopes_to_df(envelopes: Iterable[Envelope], tz: tzinfo | None = None) -> pd.DataFrame:
    """Build a DataFrame with one row per envelope, in input order."""
    rows = [
        {
            "timestamp": format_timestamp(env.timestamp, tz),
            "source_id": env.source_id,
            "instance_id": env.instance_id,
            "type": env.envelope_type,
            "name": env.name or "",
            "value": format_body(env),
        }
        for env in envelopes
    ]
    return pd.DataFrame(rows, columns=TABLE_COLUMNS)


def format_table(df: pd.DataFrame, mode: str = "table") -> str:
    """Format an envelope DataFrame as table, csv or markdown."""
    if mode == "csv":
        return df.to_csv(index=False)
    elif mode == "markdown":
        return df.to_markdown(index=False)
    else:  # table
        return df.to_string(index=False)


class Renderer:
    """Writes envelopes to an output stream in one of OUTPUT_MODES.

    emit() can be passed directly as a TailStreamer sink. Tabular modes
    buffer until finish(); streaming modes write and flush per envelope.
    """

    def __init__(self, out: IO[str], mode: str = "text", tz: tzinfo | None = None):
        if mode not in OUTPUT_MODES:
            raise ValueError(f"Unknown output mode: {mode}. Use one of {', '.join(OUTPUT_MODES)}")
        self.out = out
        self.mode = mode
        self.tz = tz
        self.count = 0
        self._buffer: list[Envelope] = []

    def emit(self, envelope: Envelope) -> None:
        self.count += 1
        if self.mode == "json":
            self._write_line(json.dumps(envelope.to_dict()))
        elif self.mode == "text":
            self._write_line(format_text_line(envelope, self.tz))
        else:
            self._buffer.append(envelope)

    def finish(self) -> None:
        """Write buffered tabular output. Empty input writes nothing."""
        if self.mode in TABULAR_MODES and self._buffer:
            output = format_table(envelopes_to_df(self._buffer, self.tz), self.mode)
            self._write_line(output.rstrip("\n"))
        self._buffer = []

    def _write_line(self, line: str) -> None:
        self.out.write(line + "\n")
        self.out.flush()


def render(envelopes: Iterable[Envelope], out: IO[str], mode: str = "table", **kwargs: Any) -> int:
    """Render a complete sequence of envelopes.

    Returns:
        Number of envelopes rendered
    """
    renderer = Renderer(out, mode, **kwargs)
    for envelope in envelopes:
        renderer.emit(envelope)
    renderer.finish()
    return renderer.count
