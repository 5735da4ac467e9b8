"""Logging for LoadPace: one stderr handler on the ``loadpace`` namespace."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

_ROOT = "loadpace"

# Attributes the engine attaches through ``extra=``.
_CONTEXT_FIELDS = ("tick", "elapsed", "worker_id", "session_state")

_TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s%(context)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _context(record: logging.LogRecord) -> dict[str, object]:
    return {
        name: getattr(record, name)
        for name in _CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class _TextFormatter(logging.Formatter):
    """Human-readable lines, with engine context appended as ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__(_TEXT_FORMAT, datefmt=_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        context = _context(record)
        record.context = (
            " (" + " ".join(f"{k}={v}" for k, v in context.items()) + ")" if context else ""
        )
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Keys: timestamp, level, logger, message, then any of tick, elapsed,
    worker_id and session_state that the record carries, then exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A single-line JSON string.
        """
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the ``loadpace`` logger.

    The first call installs a stderr handler and stops propagation to the
    root logger. Later calls reuse that handler and only change its level
    and format, so the CLI and ``run_load_test`` can both call this.

    Args:
        level: Logging level (e.g., ``logging.DEBUG``). Defaults to INFO.
        json_format: Emit JSON lines instead of plain text.

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        logger.addHandler(logging.StreamHandler(sys.stderr))

    formatter: logging.Formatter = _JsonFormatter() if json_format else _TextFormatter()
    for handler in logger.handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger, e.g. ``get_logger("engine.pool")`` -> ``loadpace.engine.pool``."""
    return logging.getLogger(f"{_ROOT}.{name}")
