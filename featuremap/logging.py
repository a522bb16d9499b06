"""Logging setup shared by the featuremap CLI and service."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

_LOGGER_NAME = "featuremap"

# Client libraries that log every request at INFO/DEBUG.
_CHATTY_LOGGERS = ("anthropic", "httpx", "httpcore")


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the featuremap hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    console: Console | None = None,
) -> logging.Logger:
    """Configure the featuremap logger.

    Console output goes through ``console`` with rich formatting when one is
    given, so log lines render above an active progress display; otherwise a
    plain stream handler writes to stderr. ``log_file`` adds a timestamped
    file sink. Reasoning-service client chatter is kept at WARNING unless
    ``verbose`` is set.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if console is not None:
        console_handler: logging.Handler = RichHandler(
            console=console, show_path=False, markup=False, rich_tracebacks=verbose
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter("[featuremap] %(levelname)s %(message)s"))
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)
        # The file keeps the full trace even when the console is quiet.
        logger.setLevel(logging.DEBUG)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)

    return logger


__all__ = ["configure_logging", "get_logger"]
