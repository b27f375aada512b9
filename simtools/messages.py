"""
Message sinks for the deposit ledgers.

The ledgers never abort on bad input; they report it to a logger object that
provides ``error(msg)`` and ``warning(msg)``. Any ``logging.Logger`` fits.
The default sink prints the messages the same way the rest of the
simulation tools report problems.
"""

import sys


class PrintLogger:
    """
    Logger printing ``ERROR:``/``Warning:`` lines tagged with a category.

    Parameters
    ----------
    category : str
        Tag prepended to every message, e.g. ``'SimChannel'``.
    stream : file-like, optional
        Where messages go, by default ``sys.stdout``.
    """

    def __init__(self, category, stream=None):
        self.category = category
        self.stream = stream

    def _emit(self, prefix, msg):
        stream = sys.stdout if self.stream is None else self.stream
        print(f"{prefix} [{self.category}] {msg}", file=stream)

    def error(self, msg):
        self._emit("ERROR:", msg)

    def warning(self, msg):
        self._emit("Warning:", msg)


def default_logger(category):
    """Return the default printing logger for ``category``."""
    return PrintLogger(category)
