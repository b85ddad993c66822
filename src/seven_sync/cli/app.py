from typing import Optional

import typer


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:  # pragma: no cover
        import seven_sync

        typer.echo(f"seven-sync version: {seven_sync.__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="seven-sync",
    help="Create an encrypted copy of a directory using 7-Zip.",
    no_args_is_help=True,
)


@app.callback()
def app_callback(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """seven-sync - incremental, encrypted backups with 7-Zip.

    The password can also be provided in the environment variable SEVEN_SYNC_PASSWORD.
    """
