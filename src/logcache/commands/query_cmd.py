"""
Range query command for logcache CLI.

Evaluates a query over a fixed time range by tailing every source it names
and merging the results in timestamp order.
"""

from __future__ import annotations

import argparse
import sys
import threading

from logcache.bridge import RangeQueryBridge
from logcache.commands.core import (
    DEFAULT_QUERY_LOOKBACK_NS,
    fail,
    get_streamer_for_args,
    parse_time_range,
)
from logcache.errors import LogCacheError
from logcache.render import render


def output_mode_for_args(args: argparse.Namespace) -> str:
    """Pick the output mode from --json/--csv/--markdown (default: table)."""
    if getattr(args, "json", False):
        return "json"
    elif getattr(args, "csv", False):
        return "csv"
    elif getattr(args, "markdown", False):
        return "markdown"
    else:
        return "table"


def cmd_query(args: argparse.Namespace) -> None:
    """Evaluate a range query and print the merged envelopes."""
    out = getattr(args, "out", None) or sys.stdout
    query = " ".join(args.query)

    try:
        time_range = parse_time_range(
            args.start_time, args.end_time, default_start=-DEFAULT_QUERY_LOOKBACK_NS
        )
        streamer, config = get_streamer_for_args(args)
    except (LogCacheError, FileNotFoundError, ValueError) as e:
        fail(str(e))
        return

    bridge = RangeQueryBridge(
        streamer,
        window_limit=config.window_limit,
        max_workers=config.max_workers,
    )
    cancel = threading.Event()

    try:
        envelopes = bridge.evaluate(query, time_range, cancel)
    except KeyboardInterrupt:
        cancel.set()
        sys.exit(130)
    except LogCacheError as e:
        fail(str(e))
        return

    render(envelopes, out, output_mode_for_args(args))
