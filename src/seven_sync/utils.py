"""Utility functions for seven-sync."""

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger


def setup_logging(
    log_file: Optional[Union[str, Path]] = None,
    log_level: str = "DEBUG",
    console: bool = False,
    console_level: str = "WARNING",
) -> None:
    """
    Configure loguru sinks for a run.

    The default stderr sink is always removed because user facing output goes
    through rich. A file sink is added when log_file is given.
    """
    logger.remove()

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            level=log_level,
            rotation="10 MB",
            retention=5,
            backtrace=True,
            diagnose=False,
            enqueue=False,
            colorize=False,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {message}",
        )

    if console:
        logger.add(sys.stderr, level=console_level, colorize=True)


def first_line_only(error: Union[BaseException, str, None]) -> str:
    """Return the first non-empty line of an error message."""
    text = str(error) if error is not None else ""
    for line in text.strip().splitlines():
        if line.strip():
            return line.strip()
    return ""


def pluralize(count: int, singular: str, plural: str) -> str:
    """Format a count with the matching noun, e.g. '1 file' or '2 files'."""
    return f"{count} {singular if count == 1 else plural}"
