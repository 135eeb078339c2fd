"""
Core utilities and shared types for logcache CLI commands.

This module contains configuration loading, time-bound parsing and the
factory that picks the fetch primitive (remote service or local dump) for
a set of parsed arguments.
"""

from __future__ import annotations

import logging
import os
import sys
import time
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from logcache.client import DEFAULT_TIMEOUT, LogCacheClient
from logcache.envelope import TimeRange
from logcache.errors import InputError
from logcache.store import EnvelopeStore
from logcache.stream import DEFAULT_MAX_RETRIES, DEFAULT_POLL_INTERVAL, TailStreamer

logger = logging.getLogger("logcache-cli")

# ============================================================================
# Configuration
# ============================================================================

CONFIG_ENV_VAR = "LOG_CACHE_CONFIG"
LOCAL_CONFIG_FILE = ".log-cache.yaml"
GLOBAL_CONFIG_PATH = Path.home() / ".log-cache" / "config.yaml"
DEFAULT_ADDRESS = "http://localhost:8080"
DEFAULT_QUERY_LOOKBACK_NS = 3600 * 1_000_000_000

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class CliConfig:
    """Settings for talking to log-cache.

    Loaded from YAML (see find_config_path for the search order), then
    overridden by LOG_CACHE_* environment variables, then by CLI flags.

    Example config.yaml:
        address: https://log-cache.sys.example.com
        skip_ssl_validation: false
        poll_interval: 0.5
        max_retries: 10
    """

    address: str = DEFAULT_ADDRESS
    timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_retries: int = DEFAULT_MAX_RETRIES
    window_limit: int = 1000
    max_workers: int = 4
    skip_ssl_validation: bool = False
    token: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CliConfig:
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def load(cls, path: Path | None = None) -> CliConfig:
        """Load configuration from a YAML file and the environment.

        Args:
            path: Config file (default: first match of find_config_path())

        Returns:
            CliConfig with file values and environment overrides applied

        Raises:
            InputError: If the file is not a YAML mapping
        """
        if path is None:
            path = find_config_path()

        config = cls()
        if path is not None and path.exists():
            logger.debug(f"Loading config from {path}")
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise InputError(f"Config file {path} must contain a mapping")
            config = cls.from_dict(data)

        config.apply_env(os.environ)
        return config

    def apply_env(self, environ: Any) -> None:
        """Apply LOG_CACHE_* environment overrides."""
        if environ.get("LOG_CACHE_ADDR"):
            self.address = environ["LOG_CACHE_ADDR"]
        if environ.get("LOG_CACHE_SKIP_SSL_VALIDATION"):
            self.skip_ssl_validation = (
                environ["LOG_CACHE_SKIP_SSL_VALIDATION"].lower() in _TRUE_VALUES
            )
        if environ.get("LOG_CACHE_TOKEN"):
            self.token = environ["LOG_CACHE_TOKEN"]


def find_config_path(start_dir: Path | None = None) -> Path | None:
    """Find the config file to use.

    Search order:
    1. $LOG_CACHE_CONFIG
    2. .log-cache.yaml in start_dir (default: cwd) or any parent
    3. ~/.log-cache/config.yaml

    Returns:
        Path to the config file, or None if none exists
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()

    if start_dir is None:
        start_dir = Path.cwd()
    for p in [start_dir, *list(start_dir.parents)]:
        candidate = p / LOCAL_CONFIG_FILE
        if candidate.is_file():
            return candidate

    if GLOBAL_CONFIG_PATH.is_file():
        return GLOBAL_CONFIG_PATH
    return None


def get_config_for_args(args) -> CliConfig:
    """Load config and apply global CLI flag overrides."""
    config_path = getattr(args, "config", None)
    config = CliConfig.load(Path(config_path).expanduser() if config_path else None)

    address = getattr(args, "address", None)
    if address:
        config.address = address
    if getattr(args, "skip_ssl_validation", False):
        config.skip_ssl_validation = True
    return config


# ============================================================================
# Time bounds
# ============================================================================


def parse_time_range(
    start: int | None,
    end: int | None,
    default_start: int = 0,
    now: int | None = None,
) -> TimeRange:
    """Resolve --start-time/--end-time into a TimeRange.

    Args:
        start: Start in UNIX nanoseconds, or None for default_start
        end: End in UNIX nanoseconds, or None for now
        default_start: Start used when start is None; negative values are
            relative to the end
        now: Current time in nanoseconds (default: time.time_ns())

    Returns:
        TimeRange [start, end)

    Raises:
        InputError: If start is after end
    """
    if end is None:
        end = time.time_ns() if now is None else now
    if start is None:
        start = end + default_start if default_start < 0 else default_start
    if start > end:
        raise InputError(
            "Invalid date/time range. Ensure your start time is prior or equal the end time."
        )
    return TimeRange(start, end)


# ============================================================================
# Fetch primitive selection
# ============================================================================


def get_fetcher_for_args(args, config: CliConfig) -> LogCacheClient | EnvelopeStore:
    """Pick the fetch primitive for the given args.

    --database PATH replays envelopes from a local dump; otherwise the
    configured log-cache service is used.
    """
    database = getattr(args, "database", None)
    if database:
        store = EnvelopeStore.from_file(Path(database).expanduser())
        logger.debug(
            f"Loaded {store.count()} envelope(s) for {len(store.source_ids())} source(s) "
            f"from {database}"
        )
        return store

    return LogCacheClient(
        config.address,
        timeout=config.timeout,
        token=config.token,
        verify=not config.skip_ssl_validation,
    )


def get_streamer_for_args(args) -> tuple[TailStreamer, CliConfig]:
    """Build a TailStreamer configured from args and config files."""
    config = get_config_for_args(args)
    fetcher = get_fetcher_for_args(args, config)
    streamer = TailStreamer(
        fetcher,
        poll_interval=config.poll_interval,
        max_retries=config.max_retries,
    )
    return streamer, config


def fail(message: str, code: int = 1) -> None:
    """Print an error to stderr and exit."""
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(code)
