"""
logcache CLI - tail and query envelopes from log-cache.

Usage:
    logcache tail [options] <source-id>     Output envelopes for a source
    logcache log-query [options] <query>    Output envelopes for a range query (alias: q)

Tail examples:
    logcache tail my-app                              # first 10 envelopes in range
    logcache tail -n 100 --envelope-type log my-app   # first 100 log envelopes
    logcache tail --counter-name requests my-app      # one counter only
    logcache tail -f my-app                           # follow new envelopes
    logcache tail --json my-app > my-app.jsonl        # dump as JSON lines

Query examples:
    logcache log-query 'cpu{source_id="app-a"}'
    logcache q --start-time 1500000000000000000 'app-a, app-b'
    logcache -d my-app.jsonl q --markdown my-app      # query a local dump

Times are UNIX nanoseconds. Settings are read from $LOG_CACHE_CONFIG,
.log-cache.yaml (cwd or parents) or ~/.log-cache/config.yaml, and
LOG_CACHE_ADDR / LOG_CACHE_SKIP_SSL_VALIDATION / LOG_CACHE_TOKEN.
"""

from __future__ import annotations

import argparse
import logging
import sys

from logcache.commands import cmd_query, cmd_tail
from logcache.envelope import DEFAULT_LINE_LIMIT, ENVELOPE_TYPES


def _setup_logging() -> None:
    """Configure the logcache logger with stderr handler."""
    lc_logger = logging.getLogger("logcache-cli")
    if not lc_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(message)s"))
        lc_logger.addHandler(handler)
    # Default level is WARNING (quiet), changed by --verbose
    lc_logger.setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logcache",
        description="logcache - Log Cache CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Global flags
    parser.add_argument("-a", "--address", help="log-cache address (overrides config)")
    parser.add_argument(
        "-d",
        "--database",
        metavar="PATH",
        help="Read envelopes from a local dump (JSON lines) instead of log-cache",
    )
    parser.add_argument("--config", metavar="PATH", help="Config file path")
    parser.add_argument(
        "--skip-ssl-validation",
        action="store_true",
        help="Do not verify the log-cache TLS certificate",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug messages")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # tail
    p_tail = subparsers.add_parser("tail", help="Output envelopes for a source-id/app")
    p_tail.add_argument("source_id", help="Source id to tail")
    p_tail.add_argument(
        "--start-time", type=int, help="Start of query range in UNIX nanoseconds."
    )
    p_tail.add_argument("--end-time", type=int, help="End of query range in UNIX nanoseconds.")
    p_tail.add_argument(
        "--envelope-type",
        choices=[*ENVELOPE_TYPES, "any"],
        help="Envelope type filter.",
    )
    p_tail.add_argument(
        "--follow",
        "-f",
        action="store_true",
        help="Output appended to stdout as envelopes are egressed.",
    )
    p_tail.add_argument("--json", "-j", action="store_true", help="Output envelopes in JSON format.")
    p_tail.add_argument(
        "--lines",
        "-n",
        type=int,
        default=DEFAULT_LINE_LIMIT,
        help=f"Number of envelopes to return, oldest first. Default is {DEFAULT_LINE_LIMIT}.",
    )
    p_tail.add_argument(
        "--counter-name", help="Counter name filter (implies --envelope-type=counter)."
    )
    p_tail.add_argument("--gauge-name", help="Gauge name filter (implies --envelope-type=gauge).")
    p_tail.set_defaults(func=cmd_tail)

    # log-query (with aliases 'query' and 'q')
    p_query = subparsers.add_parser(
        "log-query", aliases=["query", "q"], help="Output envelopes for a range query"
    )
    p_query.add_argument("query", nargs="+", help="Query naming one or more source ids")
    p_query.add_argument(
        "--start-time",
        type=int,
        help="Start of query range in UNIX nanoseconds (default: one hour before end).",
    )
    p_query.add_argument("--end-time", type=int, help="End of query range in UNIX nanoseconds.")
    p_query.add_argument("--json", "-j", action="store_true", help="Output as JSON lines")
    p_query.add_argument("--csv", action="store_true", help="Output as CSV")
    p_query.add_argument("--markdown", "--md", action="store_true", help="Output as Markdown table")
    p_query.set_defaults(func=cmd_query)

    return parser


def main(argv: list[str] | None = None) -> None:
    _setup_logging()

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger("logcache-cli").setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
