"""Command module for seven-sync sync operations."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from seven_sync.cli.app import app
from seven_sync.cli.commands.command_utils import (
    get_password,
    handle_error,
    prompt_for_password,
    start_logging,
)
from seven_sync.config import CONFIG_FILE_NAME, PASSWORD_ENV_VAR, load_config
from seven_sync.services.seven_zip import SevenZip
from seven_sync.sync.report import Severity, WarningsReport
from seven_sync.sync.sync_service import run_synchronization

SEVERITY_STYLES = {
    Severity.ERROR: ("ERROR", "red"),
    Severity.WARNING: ("Warning", "yellow"),
    Severity.INFO: ("Info", "blue"),
}


def display_findings(console: Console, report: WarningsReport, dry_run: bool) -> None:
    """Display the findings of a run, most severe first."""
    if not report.findings:
        run = "dry run" if dry_run else "synchronization"
        console.print(f"[green]The {run} has completed successfully[/green]")
        return

    title, style = SEVERITY_STYLES[report.severity]
    numbered = 1 < len(report.findings)
    text = Text()
    for index, finding in enumerate(report.findings, 1):
        if 1 < index:
            text.append("\n\n")
        prefix = f"{index}. " if numbered else ""
        text.append(prefix + finding.message, style=SEVERITY_STYLES[finding.severity][1])

    console.print()
    console.print(Panel(text, title=f"[bold {style}]{title}[/bold {style}]", width=80, expand=False))
    console.print()
    if dry_run:
        console.print("This was a dry run. No files have been changed.")


async def run_sync(
    config_file: Path,
    console: Console,
    dry_run: bool = False,
    password: Optional[str] = None,
    seven_zip: Optional[str] = None,
) -> int:
    """Run a synchronization and return the process exit code."""
    config = load_config(config_file)
    password = get_password(config, password)
    archive = SevenZip(password, seven_zip or config.seven_zip)

    console.print("Verifying that 7-Zip is working correctly")
    await archive.run_self_test()

    outcome = await run_synchronization(
        config.source,
        config.destination,
        archive,
        console,
        dry_run=dry_run,
        prompt_old_password=lambda: prompt_for_password("Please enter the old password"),
        index_save_interval=config.index_save_interval,
    )
    display_findings(console, outcome.report, dry_run)
    logger.info(f"Finished with exit code {outcome.report.exit_code}")
    return outcome.report.exit_code


@app.command()
def sync(
    config_file: Path = typer.Option(
        Path(CONFIG_FILE_NAME), "--config", "-c", help="Configuration file to use."
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Perform a trial run without making any changes."
    ),
    silent: bool = typer.Option(False, "--silent", help="Suppress console output."),
    password: Optional[str] = typer.Option(
        None,
        "--password",
        help="Use this password instead of prompting for it.",
        envvar=PASSWORD_ENV_VAR,
    ),
    seven_zip: Optional[str] = typer.Option(
        None, "--7-zip", help="The 7-Zip executable to use."
    ),
) -> None:
    """Sync files into the encrypted destination (or perform a dry run)."""
    console = Console(quiet=silent, highlight=False)
    try:
        start_logging(config_file, "sync")
        exit_code = asyncio.run(run_sync(config_file, console, dry_run, password, seven_zip))
    except Exception as e:
        handle_error(e, "sync")
        raise
    raise typer.Exit(exit_code)
