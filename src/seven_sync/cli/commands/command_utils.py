"""utility functions for commands"""

from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from seven_sync.config import SyncConfig, get_log_file
from seven_sync.services.exceptions import FriendlyError
from seven_sync.services.password import validate_password
from seven_sync.utils import setup_logging

MAX_PASSWORD_ATTEMPTS = 3


def start_logging(config_file: Path, command: str) -> None:
    setup_logging(log_file=get_log_file(config_file))
    logger.info(f"Running command {command} with configuration file {config_file}")


def prompt_for_password(message: str, confirm: bool = False) -> str:
    return typer.prompt(message, hide_input=True, confirmation_prompt=confirm, err=True)


def get_password(config: SyncConfig, password: Optional[str]) -> str:
    """
    Get the password from the command line or environment, or prompt for it.

    Raises:
        FriendlyError: If the password does not match the one in the configuration file
    """
    if password is not None:
        if validate_password(password, config.password_hash):
            return password
        raise FriendlyError("The password is not correct")

    for _ in range(MAX_PASSWORD_ATTEMPTS):
        password = prompt_for_password("Please enter the password")
        if validate_password(password, config.password_hash):
            return password
        typer.echo("Invalid password. Please try again.", err=True)
    raise FriendlyError("The password is not correct")


def handle_error(e: Exception, command: str) -> None:
    """Report an exception raised by a command and exit with a matching code."""
    if isinstance(e, typer.Exit):
        raise e
    if isinstance(e, FriendlyError):
        logger.error(e.message)
        typer.echo(f"ERROR: {e.message}", err=True)
        raise typer.Exit(e.exit_code)
    logger.exception(f"{command} failed")
    typer.echo(f"Error during {command}: {e}", err=True)
    raise typer.Exit(1)
