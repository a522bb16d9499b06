"""Tests for featuremap logging setup."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Iterator

import pytest
from rich.console import Console
from rich.logging import RichHandler

from featuremap.logging import configure_logging, get_logger


@pytest.fixture(autouse=True)
def reset_featuremap_logger() -> Iterator[None]:
    yield
    logger = logging.getLogger("featuremap")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for name in ("anthropic", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.NOTSET)


def test_get_logger_nests_under_featuremap() -> None:
    assert get_logger("pipeline.agent").name == "featuremap.pipeline.agent"
    assert get_logger().name == "featuremap"


def test_configure_logging_replaces_previous_handlers() -> None:
    configure_logging()
    logger = configure_logging(verbose=True)

    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG
    assert logger.propagate is False
    assert isinstance(logger.handlers[0], logging.StreamHandler)


def test_configure_logging_routes_through_rich_console() -> None:
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, force_terminal=False)

    logger = configure_logging(console=console)
    get_logger("orchestrator").info("Found 3 source files to analyze.")

    assert isinstance(logger.handlers[0], RichHandler)
    assert "Found 3 source files to analyze." in buffer.getvalue()


def test_client_library_chatter_is_quiet_unless_verbose() -> None:
    configure_logging()
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("anthropic").level == logging.WARNING

    configure_logging(verbose=True)
    assert logging.getLogger("httpx").level == logging.DEBUG


def test_log_file_keeps_debug_records(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "featuremap.log"
    console = Console(file=io.StringIO(), width=120)

    configure_logging(log_file=log_file, console=console)
    get_logger("pipeline.agent").debug("Requesting view_file for src/a.js")
    for handler in logging.getLogger("featuremap").handlers:
        handler.flush()

    content = log_file.read_text(encoding="utf-8")
    assert "DEBUG featuremap.pipeline.agent: Requesting view_file for src/a.js" in content
    assert "Requesting view_file" not in console.file.getvalue()  # type: ignore[attr-defined]
