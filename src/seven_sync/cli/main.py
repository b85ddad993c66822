"""Main CLI entry point for seven-sync."""  # pragma: no cover

from seven_sync.cli.app import app  # pragma: no cover
from seven_sync.utils import setup_logging  # pragma: no cover

# Register commands
from seven_sync.cli.commands import init, sync  # pragma: no cover

__all__ = ["init", "sync"]  # pragma: no cover


# Commands add a file sink once the configuration file is known
setup_logging()  # pragma: no cover

if __name__ == "__main__":  # pragma: no cover
    app()
