"""Logging helpers for rftree.

rftree logs through loguru and is disabled by default, as libraries should
be. ``enable_logging()`` turns it on and returns a handle that removes the
handler again, either explicitly or as a context manager.
"""

import contextlib
import sys
import threading

from loguru import logger

PACKAGE_NAME = __name__.split(".")[0]

_SHORT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{function}</cyan> - "
    "<level>{message}</level>"
)

_FULL_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class LoggingHandle:
    """Handle owning one loguru handler added by ``enable_logging``.

    When the last active handle is disabled the package logger is disabled
    again.
    """

    _active_ids = set()
    _lock = threading.Lock()

    def __init__(self, handler_id):
        self.handler_id = handler_id
        with LoggingHandle._lock:
            LoggingHandle._active_ids.add(handler_id)

    def disable(self):
        """Remove the handler; idempotent."""
        with LoggingHandle._lock:
            if self.handler_id is None:
                return
            LoggingHandle._active_ids.discard(self.handler_id)
            with contextlib.suppress(ValueError):
                logger.remove(self.handler_id)
            self.handler_id = None
            if not LoggingHandle._active_ids:
                logger.disable(PACKAGE_NAME)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disable()

    @classmethod
    def get_active_handle_count(cls):
        with cls._lock:
            return len(cls._active_ids)


def enable_logging(*, level="DEBUG", log_format="short", sink=None):
    """Enable rftree log output.

    Args:
        level (str): Minimum level to emit. ``"DEBUG"`` shows per-tree
            summaries, ``"TRACE"`` adds per-node detail such as variables
            skipped by the split search.
        log_format (str): ``"short"`` shows the function name only, ``"full"``
            adds module and line.
        sink: Where records go. Defaults to ``sys.stderr``.

    Returns:
        LoggingHandle: Handle that removes the handler on ``disable()``.
    """
    if log_format not in ("short", "full"):
        raise ValueError(f"log_format must be 'short' or 'full', got {log_format!r}")

    logger.enable(PACKAGE_NAME)
    handler_id = logger.add(
        sys.stderr if sink is None else sink,
        level=level,
        filter=_is_rftree_record,
        format=_SHORT_FORMAT if log_format == "short" else _FULL_FORMAT,
    )
    return LoggingHandle(handler_id)


def _is_rftree_record(record):
    name = record["name"]
    return name is not None and name.startswith(PACKAGE_NAME)
