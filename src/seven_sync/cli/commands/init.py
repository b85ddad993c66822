"""Commands to create and change the configuration file."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console

from seven_sync.cli.app import app
from seven_sync.cli.commands.command_utils import (
    get_password,
    handle_error,
    prompt_for_password,
    start_logging,
)
from seven_sync.config import (
    CONFIG_FILE_NAME,
    SyncConfig,
    load_config,
    read_config,
    save_config,
    validate_config,
    validate_config_file,
)
from seven_sync.services.exceptions import FriendlyError
from seven_sync.services.password import create_salted_hash
from seven_sync.services.seven_zip import SevenZip

console = Console(highlight=False)


def build_config(
    config_file: Path,
    source: Path,
    destination: Path,
    password_hash: str,
    seven_zip: str,
    index_save_interval: float = 60,
) -> SyncConfig:
    """Create a configuration whose paths, resolved against the config file, are valid."""
    config = SyncConfig(
        source=source,
        destination=destination,
        password_hash=password_hash,
        seven_zip=seven_zip,
        index_save_interval=index_save_interval,
    )
    message = validate_config(config.resolve(config_file), config_file)
    if message:
        raise FriendlyError(message)
    return config


async def verify_seven_zip(executable: str) -> None:
    console.print("Verifying that 7-Zip is working correctly")
    await SevenZip("self-test", executable).run_self_test()


@app.command()
def init(
    config_file: Path = typer.Option(
        Path(CONFIG_FILE_NAME), "--config", "-c", help="Configuration file to create."
    ),
    source: Optional[Path] = typer.Option(None, "--source", help="Directory to back up."),
    destination: Optional[Path] = typer.Option(
        None, "--destination", help="Directory to store the encrypted copy in."
    ),
    password: Optional[str] = typer.Option(
        None, "--password", help="Password for the encrypted copy (prompted if omitted)."
    ),
    seven_zip: str = typer.Option("7z", "--7-zip", help="The 7-Zip executable to use."),
) -> None:
    """Create a new configuration file."""
    try:
        message = validate_config_file(config_file, must_exist=False)
        if message:
            raise FriendlyError(message)
        if config_file.exists():
            raise FriendlyError(
                f"The configuration file {config_file} already exists. Use reconfigure to change it."
            )
        start_logging(config_file, "init")

        source = source or Path(typer.prompt("Source directory (to back up)"))
        destination = destination or Path(typer.prompt("Destination directory (encrypted copy)"))
        password = password or prompt_for_password("Password", confirm=True)
        if not password:
            raise FriendlyError("The password must not be empty")

        config = build_config(config_file, source, destination, create_salted_hash(password), seven_zip)
        asyncio.run(verify_seven_zip(seven_zip))
        save_config(config, config_file)
        console.print(f"[green]Created {config_file}[/green]")
        console.print("Run [bold cyan]seven-sync sync --dry-run[/bold cyan] to preview the first backup")
    except Exception as e:
        handle_error(e, "init")


@app.command()
def reconfigure(
    config_file: Path = typer.Option(
        Path(CONFIG_FILE_NAME), "--config", "-c", help="Configuration file to change."
    ),
    source: Optional[Path] = typer.Option(None, "--source", help="New source directory."),
    destination: Optional[Path] = typer.Option(
        None, "--destination", help="New destination directory."
    ),
    password: Optional[str] = typer.Option(
        None, "--password", help="The current password (prompted if omitted)."
    ),
    new_password: Optional[str] = typer.Option(
        None, "--new-password", help="Change the password to this value."
    ),
    change_password: bool = typer.Option(
        False, "--change-password", help="Prompt for a new password."
    ),
    seven_zip: Optional[str] = typer.Option(None, "--7-zip", help="New 7-Zip executable."),
) -> None:
    """Change an existing configuration file."""
    try:
        start_logging(config_file, "reconfigure")
        config = load_config(config_file)
        get_password(config, password)
        stored = read_config(config_file)

        if change_password and not new_password:
            new_password = prompt_for_password("New password", confirm=True)
        if new_password is not None and not new_password:
            raise FriendlyError("The password must not be empty")
        password_hash = create_salted_hash(new_password) if new_password else config.password_hash

        executable = seven_zip or config.seven_zip
        if seven_zip:
            asyncio.run(verify_seven_zip(executable))

        updated = build_config(
            config_file,
            source or stored.source,
            destination or stored.destination,
            password_hash,
            executable,
            config.index_save_interval,
        )
        save_config(updated, config_file)
        if new_password:
            logger.info("The password has been changed")
            console.print(
                "The password has been changed. The next synchronization will re-encrypt all files."
            )
        console.print(f"[green]Updated {config_file}[/green]")
    except Exception as e:
        handle_error(e, "reconfigure")
