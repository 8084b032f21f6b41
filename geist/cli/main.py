"""Main CLI application for Geist."""

import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from geist import __version__
from geist.config.parser import load_config
from geist.core.updater import ReleaseUpdater, UpdateResult
from geist.errors import SupervisorError

# Create the main Typer app
app = typer.Typer(
    name="geist",
    help="Geist Supervisor - install, verify and roll back Roc Camera releases",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

# Set up logger for the geist package
logger = logging.getLogger("geist")


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbosity: 0=WARNING, 1=INFO, 2=DEBUG, 3+=DEBUG with source paths
    """
    if verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logger.setLevel(level)

    # Only add handler if not already configured
    if not logger.handlers:
        handler = RichHandler(
            console=error_console,
            show_time=verbosity >= 2,
            show_path=verbosity >= 3,
            rich_tracebacks=True,
        )
        handler.setLevel(level)
        logger.addHandler(handler)
    else:
        for h in logger.handlers:
            h.setLevel(level)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]Error:[/red] {escape(message)}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {escape(message)}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {escape(message)}")


def get_updater() -> ReleaseUpdater:
    """Build an updater from the environment, exiting on bad configuration."""
    try:
        return ReleaseUpdater(load_config())
    except SupervisorError as e:
        print_error(str(e))
        raise typer.Exit(1) from e


def report_result(result: UpdateResult, action: str) -> None:
    for warning in result.warnings:
        print_warning(warning)
    print_success(f"{action} {result.version} at {result.path}")
    if not result.pointer_updated:
        print_warning("The current version pointer was not updated")


@app.callback()
def callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v info, -vv debug, -vvv trace)",
        ),
    ] = 0,
) -> None:
    """Geist Supervisor - manage releases on a Roc Camera device."""
    setup_logging(verbose)


@app.command()
def version() -> None:
    """Show the Geist Supervisor version."""
    console.print(f"geist {__version__}")


@app.command()
def update(
    target: Annotated[
        str | None,
        typer.Argument(help="Version to install (e.g. '1.2.3', 'v1.2.3'); defaults to latest"),
    ] = None,
) -> None:
    """Update to the specified version or the latest version if none is provided."""
    updater = get_updater()
    try:
        result = updater.update(target)
    except SupervisorError as e:
        print_error(str(e))
        raise typer.Exit(1) from e
    report_result(result, "Installed")


@app.command()
def verify(
    target: Annotated[str, typer.Argument(help="Version to look up in the registry")],
) -> None:
    """Verify that the registry has artifacts for the specified version."""
    updater = get_updater()
    try:
        resolved = updater.verify(target)
    except SupervisorError as e:
        print_error(str(e))
        raise typer.Exit(1) from e
    print_success(f"Version {resolved.display} is available")


@app.command()
def rollback(
    target: Annotated[str, typer.Argument(help="Version to roll back to")],
) -> None:
    """Roll back to the specified version."""
    updater = get_updater()
    try:
        result = updater.rollback(target)
    except SupervisorError as e:
        print_error(str(e))
        raise typer.Exit(1) from e
    report_result(result, "Rolled back to")


@app.command()
def status() -> None:
    """Show the current version and its origin."""
    updater = get_updater()
    try:
        report = updater.status()
    except SupervisorError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    console.print(f"Current version: [bold]{escape(report.current)}[/bold] [dim]({report.source})[/dim]")
    console.print(f"Data directory: {updater.config.data_dir}")
    if report.manifest is not None:
        if report.manifest.name:
            console.print(f"  Name: {escape(report.manifest.name)}")
        if report.manifest.version:
            console.print(f"  Manifest version: {escape(report.manifest.version)}")
        if report.manifest.description:
            console.print(f"  Description: {escape(report.manifest.description)}")
    console.print(f"Installed versions: {len(report.installed)}")

    if not report.current_installed:
        print_error(f"Current version {report.current} is not installed")
        raise typer.Exit(1)


@app.command("list")
def list_versions() -> None:
    """List installed versions (oldest first)."""
    updater = get_updater()
    try:
        report = updater.status()
    except SupervisorError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    if not report.installed:
        console.print("No versions installed")
        return

    table = Table(title="Installed Versions")
    table.add_column("Version", style="cyan")
    table.add_column("Current", style="green")
    table.add_column("Path", style="dim")

    for name in report.installed:
        marker = "✓" if name == report.current else ""
        table.add_row(name, marker, str(updater.state.version_dir(name)))

    console.print(table)


@app.command()
def prune(
    target: Annotated[str, typer.Argument(help="Installed version to remove")],
) -> None:
    """Remove an installed version that is not current."""
    updater = get_updater()
    try:
        path = updater.prune(target)
    except SupervisorError as e:
        print_error(str(e))
        raise typer.Exit(1) from e
    print_success(f"Removed {target} ({path})")


if __name__ == "__main__":
    app()
