"""Logger set-up and signal waiting."""

import json
import logging
import signal
import sys
import threading
from typing import Callable, Tuple

from goload.configs import Log

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "panic": logging.CRITICAL,
}

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "panic",
}

LOGGER_NAME = "goload"


def get_logger_level(level: str) -> int:
    """Map a configured level name to a logging level; unknown names mean info."""
    return _LEVELS.get(level, logging.INFO)


class _JSONFormatter(logging.Formatter):
    """Formats each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname.lower()),
            "ts": record.created,
            "caller": f"{record.filename}:{record.lineno}",
            "msg": record.getMessage(),
        }
        extra_fields = getattr(record, "fields", None)
        if isinstance(extra_fields, dict):
            entry.update(extra_fields)
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def initialize_logger(log_config: Log) -> Tuple[logging.Logger, Callable[[], None]]:
    """Build a JSON logger writing to stderr; returns the logger and a flush callback."""
    logger = logging.getLogger(LOGGER_NAME)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JSONFormatter())
    logger.addHandler(handler)
    logger.setLevel(get_logger_level(log_config.level))
    logger.propagate = False

    def cleanup() -> None:
        for attached in logger.handlers:
            try:
                attached.flush()
            except (OSError, ValueError):
                pass

    return logger, cleanup


def block_until_signal(*args: int) -> signal.Signals:
    """Wait until one of the given signals arrives and return it."""
    if not args:
        raise ValueError("at least one signal is required")
    received = []
    arrived = threading.Event()

    def _handler(signum, _frame):
        received.append(signum)
        arrived.set()

    previous = {}
    try:
        for signum in args:
            previous[signum] = signal.signal(signum, _handler)
        while not arrived.wait(timeout=0.2):
            pass
    finally:
        for signum, old in previous.items():
            signal.signal(signum, signal.SIG_DFL if old is None else old)
    return signal.Signals(received[0])