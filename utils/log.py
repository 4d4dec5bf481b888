"""Logging configuration for adbx.

Uses the standard logging module with a rich console handler:
- Verbosity levels: warning(0), info(1), debug(2)
- Optional plain log file via the ADBX_LOG environment variable
- Calling setup_logging() again only adjusts the level
"""
import os
import logging

from rich.console import Console
from rich.logging import RichHandler

logger = logging.getLogger("adbx")

_VERBOSITY_MAP = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}

_initialized = False


def _level_for(verbosity: int) -> int:
    if verbosity < 0:
        return logging.ERROR
    return _VERBOSITY_MAP.get(verbosity, logging.DEBUG)


def setup_logging(verbosity: int = 0, log_file: str = None) -> None:
    global _initialized
    level = _level_for(verbosity)
    logger.setLevel(min(level, logging.DEBUG) if (log_file or os.environ.get("ADBX_LOG")) else level)

    if _initialized:
        for handler in logger.handlers:
            if isinstance(handler, RichHandler):
                handler.setLevel(level)
        return

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    log_file = log_file or os.environ.get("ADBX_LOG")
    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot open log file %s: %s", log_file, e)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")
            )
            logger.addHandler(file_handler)

    logger.propagate = False
    _initialized = True
