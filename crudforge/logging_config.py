"""Logging configuration for crudforge.

Every module asks for its logger with ``get_logger(__name__)``; the CLI calls
``setup_logging`` once to attach handlers.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "crudforge"

_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the crudforge hierarchy."""
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def setup_logging(
    level: int | str = logging.WARNING,
    log_file: str | Path | None = None,
    console: Console | None = None,
) -> logging.Logger:
    """Configure the crudforge logger hierarchy.

    Args:
        level: Log level for the console handler.
        log_file: Optional path; when given, DEBUG and above also go there.
        console: Rich console to log through (defaults to stderr).

    Returns:
        The root crudforge logger.
    """
    global _configured

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    if _configured:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    rich_handler.setLevel(level)
    logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)

    logger.setLevel(logging.DEBUG if log_file else level)
    logger.propagate = False
    _configured = True

    logger.debug("Logging configured (level=%s, file=%s)", level, log_file)
    return logger
