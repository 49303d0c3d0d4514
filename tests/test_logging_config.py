"""Tests for CLI logging setup."""

from __future__ import annotations

import io
import logging

import pytest
from rich.console import Console
from rich.logging import RichHandler

from minime.logging_config import configure_logging, parse_log_level


@pytest.fixture
def restore_minime_logger():
    logger = logging.getLogger("minime")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate
    for name in ("minime.orchestrator", "minime.insights"):
        logging.getLogger(name).setLevel(logging.NOTSET)


@pytest.mark.parametrize(
    ("name", "level"),
    [("debug", logging.DEBUG), ("WARN", logging.WARNING), (" error ", logging.ERROR), ("loud", logging.INFO)],
)
def test_parse_log_level(name: str, level: int) -> None:
    assert parse_log_level(name) == level


def test_configure_logging_installs_single_rich_handler(restore_minime_logger, monkeypatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    output = io.StringIO()
    console = Console(file=output, width=200)

    configure_logging("debug", console=console)
    configure_logging("debug", console=console)

    rich_handlers = [h for h in restore_minime_logger.handlers if isinstance(h, RichHandler)]
    assert len(rich_handlers) == 1
    assert restore_minime_logger.level == logging.DEBUG

    logging.getLogger("minime.orchestrator.scheduler").info("Job scheduler started")
    assert "Job scheduler started" in output.getvalue()


def test_module_overrides_from_environment(restore_minime_logger, monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "WARN")
    monkeypatch.setenv("LOG_LEVEL_PIPELINE", "DEBUG")
    monkeypatch.delenv("LOG_LEVEL_SCHEDULER", raising=False)

    configure_logging(console=Console(file=io.StringIO()))

    assert restore_minime_logger.level == logging.WARNING
    assert logging.getLogger("minime.insights").level == logging.DEBUG
    assert logging.getLogger("minime.orchestrator").level == logging.NOTSET
