"""Tests for utility functions."""

from pathlib import Path

from loguru import logger

from seven_sync.utils import first_line_only, pluralize, setup_logging


def test_first_line_only():
    """Test that only the first non-empty line is kept."""
    assert first_line_only(OSError("\n  disk full \nmore details")) == "disk full"
    assert first_line_only(None) == ""


def test_pluralize():
    assert pluralize(1, "file", "files") == "1 file"
    assert pluralize(0, "file", "files") == "0 files"


def test_setup_logging_writes_file(tmp_path: Path):
    """Test that log messages go to the log file."""
    log_file = tmp_path / "logs" / "7-sync.log"
    setup_logging(log_file=log_file)
    try:
        logger.info("hello from the test")
    finally:
        logger.remove()

    assert "| INFO     | hello from the test" in log_file.read_text(encoding="utf-8")
