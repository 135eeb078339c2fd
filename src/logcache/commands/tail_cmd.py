"""
Tail command for logcache CLI.

Prints the envelopes of one source, optionally following new ones as they
arrive.
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from logcache.commands.core import fail, get_streamer_for_args, parse_time_range
from logcache.envelope import QueryFilter
from logcache.errors import LogCacheError
from logcache.render import Renderer

logger = logging.getLogger("logcache-cli")


def build_query_filter(args: argparse.Namespace) -> QueryFilter:
    """Build and validate the QueryFilter for tail arguments."""
    envelope_type = args.envelope_type
    if envelope_type == "any":
        envelope_type = None

    query_filter = QueryFilter(
        envelope_type=envelope_type,
        counter_name=args.counter_name,
        gauge_name=args.gauge_name,
        line_limit=args.lines,
        follow=args.follow,
    )
    query_filter.validate()
    return query_filter


def cmd_tail(args: argparse.Namespace) -> None:
    """Output envelopes for a source id."""
    out = getattr(args, "out", None) or sys.stdout

    try:
        query_filter = build_query_filter(args)
        # --follow without explicit bounds starts from now
        if query_filter.follow and args.start_time is None and args.end_time is None:
            time_range = None
        else:
            time_range = parse_time_range(args.start_time, args.end_time)
        streamer, _ = get_streamer_for_args(args)
    except (LogCacheError, FileNotFoundError, ValueError) as e:
        fail(str(e))
        return

    renderer = Renderer(out, "json" if args.json else "text")
    cancel = threading.Event()

    try:
        count = streamer.stream(args.source_id, time_range, query_filter, renderer.emit, cancel)
        logger.debug(f"Emitted {count} envelope(s)")
    except KeyboardInterrupt:
        cancel.set()
        if not query_filter.follow:
            sys.exit(130)
    except LogCacheError as e:
        fail(str(e))
    finally:
        renderer.finish()
