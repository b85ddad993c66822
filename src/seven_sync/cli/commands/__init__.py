"""CLI commands for seven-sync."""

from . import init, sync

__all__ = ["init", "sync"]
