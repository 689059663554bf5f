"""Miscellaneous helper functions."""

import logging
import time

from rich.table import Table

from radiusedge import exceptions

logger = logging.getLogger(__name__)

TABLE_COLORS = ("cyan", "magenta", "green", "yellow", "blue", "red")


def parse_key_value_pairs(pairs):
    """Turn ``--var`` style "name=value" strings into a dict.

    Only the first "=" splits, so values may contain more of them.
    """
    parsed = {}
    for pair in pairs or ():
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise exceptions.ConfigurationError(f"Expected name=value, got {pair!r}")
        parsed[key.strip()] = value
    return parsed


def update_log_level(ctx, param, value):
    """Click callback re-applying the console log level chosen on the command line."""
    from radiusedge.logging import setup_logging

    setup_logging(console_level=value)


def dictlist_to_table(dict_list, title=None, headers=True):
    """Build a rich Table with one column per key of the first dict."""
    table = Table(title=title, show_header=headers)
    if not dict_list:
        return table
    columns = list(dict_list[0])
    for index, column in enumerate(columns):
        table.add_column(column, style=TABLE_COLORS[index % len(TABLE_COLORS)])
    for row in dict_list:
        table.add_row(*("" if row.get(col) is None else str(row.get(col)) for col in columns))
    return table


def simple_retry(
    cmd, cmd_args=None, cmd_kwargs=None, max_timeout=60, _cur_timeout=1, terminal_exceptions=None
):
    """Call cmd until it succeeds, doubling the pause after each failure.

    Gives up, re-raising the last error, once the next pause would exceed max_timeout.
    A max_timeout of 4 allows three attempts, 0 allows one. Exceptions listed in
    terminal_exceptions are re-raised immediately.
    """
    wait = _cur_timeout
    while True:
        try:
            return cmd(*(cmd_args or ()), **(cmd_kwargs or {}))
        except terminal_exceptions or ():
            raise
        except Exception as err:
            if wait * 2 > max_timeout:
                raise
            logger.warning(f"{getattr(cmd, '__name__', cmd)} failed ({err}), retrying in {wait}s")
            time.sleep(wait)
            wait *= 2
