"""
logcache commands module.

This module provides the command implementations for the logcache CLI.
"""

from logcache.commands.query_cmd import cmd_query
from logcache.commands.tail_cmd import cmd_tail

__all__ = [
    "cmd_query",
    "cmd_tail",
]
