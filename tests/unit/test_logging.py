"""Tests for logging setup."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from loadpace._internal.logging import _JsonFormatter, _TextFormatter, get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def reset_logger() -> Iterator[logging.Logger]:
    logger = logging.getLogger("loadpace")
    saved = list(logger.handlers)
    logger.handlers.clear()
    yield logger
    logger.handlers[:] = saved


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        "loadpace.engine.session", logging.WARNING, __file__, 1, "tick %d", (3,), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_single_handler_on_repeated_calls(self, reset_logger: logging.Logger) -> None:
        setup_logging(logging.INFO)
        setup_logging(logging.DEBUG)
        assert len(reset_logger.handlers) == 1
        assert reset_logger.level == logging.DEBUG
        assert reset_logger.handlers[0].level == logging.DEBUG
        assert reset_logger.propagate is False

    def test_json_format(self, reset_logger: logging.Logger) -> None:
        setup_logging(json_format=True)
        assert isinstance(reset_logger.handlers[0].formatter, _JsonFormatter)
        setup_logging()
        assert isinstance(reset_logger.handlers[0].formatter, _TextFormatter)

    def test_get_logger_namespace(self) -> None:
        assert get_logger("engine.pool").name == "loadpace.engine.pool"


class TestJsonFormatter:
    """Tests for the JSON formatter."""

    def test_basic_fields(self) -> None:
        entry = json.loads(_JsonFormatter().format(_record()))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "loadpace.engine.session"
        assert entry["message"] == "tick 3"
        assert "timestamp" in entry
        assert "tick" not in entry

    def test_context_fields(self) -> None:
        entry = json.loads(_JsonFormatter().format(_record(tick=3, elapsed=0.3, worker_id=2)))
        assert entry["tick"] == 3
        assert entry["elapsed"] == 0.3
        assert entry["worker_id"] == 2


class TestTextFormatter:
    """Tests for the plain-text formatter."""

    def test_without_context(self) -> None:
        line = _TextFormatter().format(_record())
        assert line.endswith("loadpace.engine.session: tick 3")

    def test_context_suffix(self) -> None:
        line = _TextFormatter().format(_record(tick=3, elapsed=0.3))
        assert line.endswith("tick 3 (tick=3 elapsed=0.3)")
