"""Command line interface for secure-updates.

An operator tool over ``UpdateClient``: every command loads the unit from the
configuration file, runs one operation and prints the outcome with rich.
Commands exit with code 1 when the operation failed.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import structlog
import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .client import UpdateClient
from .config import ConfigManager
from .errors import ConfigError

if TYPE_CHECKING:
    from .models import HealthReport, UpdateCheckResult

app = typer.Typer(
    name="secure-updates",
    help="Check, verify and back up self-updates of configured units.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to the configuration file."),
]
LogLevelOption = Annotated[
    str,
    typer.Option("--log-level", "-l", help="Log level: debug, info, warning, error."),
]
UnitArgument = Annotated[str, typer.Argument(help="Slug of the update unit.")]


def configure_logging(log_level: str) -> None:
    """Configure structlog and standard logging with the specified level.

    Args:
        log_level: Log level string (debug, info, warning, error).
    """
    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    level = level_map.get(log_level.lower(), logging.WARNING)

    logging.basicConfig(format="%(message)s", level=level, force=True)

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]secure-updates[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Secure-Updates: self-update client for hosted units.

    Checks the update server for new versions, verifies packages and keeps
    backups of the installed unit.
    """


def _load_client(unit: str, config_path: Path | None, log_level: str) -> UpdateClient:
    """Configure logging and build the client of ``unit``, exiting on config errors."""
    configure_logging(log_level)
    try:
        config = ConfigManager(config_path).get_unit(unit)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=1) from e
    return UpdateClient(config)


def _print_check(result: UpdateCheckResult) -> None:
    if result.update_available:
        console.print(
            f"[green]Update available[/green] for [cyan]{result.unit}[/cyan]: "
            f"{result.current_version} -> [bold]{result.new_version}[/bold]"
        )
        if result.package:
            console.print(f"  Package: {result.package}")
    elif result.state.value == "up_to_date":
        console.print(f"[cyan]{result.unit}[/cyan] is up to date ({result.current_version})")
    else:
        kind = result.error.value if result.error else "unknown"
        console.print(f"[red]Update check failed[/red] ({kind}): {result.message}")


def _print_health(report: HealthReport) -> None:
    if not report.enabled:
        console.print("[dim]Health monitoring is disabled for this unit.[/dim]")
        return

    table = Table(title=f"Health of {report.unit}", show_header=True)
    table.add_column("Check", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Details")

    for check in report.checks:
        status = "[green]✓[/green]" if check.passed else "[red]✗[/red]"
        table.add_row(check.name, status, check.message)

    console.print(table)
    style = "green" if report.passed else "red"
    console.print(f"[bold]Overall:[/bold] [{style}]{report.overall}[/{style}]")


@app.command()
def check(
    unit: UnitArgument,
    prepare: Annotated[
        bool,
        typer.Option(
            "--prepare",
            "-p",
            help="Verify the package and back up the installation if an update is available.",
        ),
    ] = False,
    config: ConfigOption = None,
    log_level: LogLevelOption = "warning",
) -> None:
    """Check the update server for a newer version of UNIT."""
    client = _load_client(unit, config, log_level)
    ok = asyncio.run(_check(client, prepare))
    if not ok:
        raise typer.Exit(code=1)


async def _check(client: UpdateClient, prepare: bool) -> bool:
    """Run a check, optionally followed by install preparation."""
    result = await client.check_for_updates()
    _print_check(result)
    if result.error is not None:
        return False
    if not prepare or not result.update_available:
        return True

    prepared = await client.prepare_update(result)
    if not prepared.success:
        console.print(f"[red]Preparation failed:[/red] {prepared.message}")
        return False

    if prepared.verified:
        console.print(f"  [green]Verified[/green] sha256 {prepared.checksum}")
    if prepared.backup:
        console.print(f"  Backup: {prepared.backup.path}")
    console.print(f"[green]{prepared.message}[/green]")
    return True


@app.command()
def info(
    unit: UnitArgument,
    config: ConfigOption = None,
    log_level: LogLevelOption = "warning",
) -> None:
    """Show the server's detailed information about UNIT."""
    client = _load_client(unit, config, log_level)
    result = asyncio.run(client.fetch_plugin_information(unit))

    if result is None or result.metadata is None:
        message = result.message if result else "No information"
        console.print(f"[red]Could not fetch information:[/red] {message}")
        raise typer.Exit(code=1)

    metadata = result.metadata
    table = Table(title=metadata.name or metadata.slug, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Slug", metadata.slug)
    table.add_row("Version", metadata.version)
    table.add_row("Homepage", metadata.homepage or "[dim]-[/dim]")
    table.add_row("Requires", metadata.requires or "[dim]-[/dim]")
    table.add_row("Tested up to", metadata.tested or "[dim]-[/dim]")
    table.add_row("Package", metadata.download_link or "[dim]-[/dim]")
    console.print(table)


@app.command()
def health(
    unit: UnitArgument,
    config: ConfigOption = None,
    log_level: LogLevelOption = "warning",
) -> None:
    """Run the health checks of UNIT."""
    client = _load_client(unit, config, log_level)
    report = asyncio.run(client.check_system_health())
    _print_health(report)
    if not report.passed:
        raise typer.Exit(code=1)


@app.command()
def status(
    unit: UnitArgument,
    config: ConfigOption = None,
    log_level: LogLevelOption = "warning",
) -> None:
    """Show the configuration, server connection and backups of UNIT."""
    client = _load_client(unit, config, log_level)
    connection = asyncio.run(client.test_server_connection())

    unit_config = client.config
    options = unit_config.options
    table = Table(title=f"Status of {unit}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Server", unit_config.server_url)
    table.add_row("Installed version", unit_config.current_version)
    table.add_row("Install dir", str(unit_config.install_dir or "-"))
    table.add_row("Verify packages", "yes" if options.verify_packages else "no")
    table.add_row(
        "Rate limit",
        f"{options.rate_limiting.requests_per_window}/{options.rate_limiting.window_seconds}s",
    )
    if connection.connected:
        table.add_row("Connection", f"[green]connected[/green] ({connection.elapsed_ms:.0f} ms)")
    else:
        table.add_row("Connection", f"[red]failed[/red]: {connection.message}")
    table.add_row("Backups", str(len(client.list_backups())))

    last = client.get_last_status()
    if last is not None:
        table.add_row("Last status", f"{last.status.value}: {last.message}")

    console.print(table)
    if not connection.connected:
        raise typer.Exit(code=1)


@app.command()
def backup(
    unit: UnitArgument,
    list_only: Annotated[
        bool,
        typer.Option("--list", help="List existing backups instead of creating one."),
    ] = False,
    restore: Annotated[
        Path | None,
        typer.Option("--restore", help="Restore the installation from this archive."),
    ] = None,
    config: ConfigOption = None,
    log_level: LogLevelOption = "warning",
) -> None:
    """Back up UNIT's installation, list backups or restore one."""
    client = _load_client(unit, config, log_level)

    if list_only:
        backups = client.list_backups()
        if not backups:
            console.print("[dim]No backups available yet.[/dim]")
            return
        table = Table(title=f"Backups of {unit}", show_header=True)
        table.add_column("Archive", style="cyan")
        table.add_column("Version")
        table.add_column("Created")
        table.add_column("Size", justify="right")
        for info in backups:
            table.add_row(
                info.path.name,
                info.version,
                info.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                f"{info.size_bytes / 1024:.1f} KB",
            )
        console.print(table)
        return

    if restore is not None:
        outcome = asyncio.run(client.restore_backup(restore))
        if outcome.status.value != "success":
            console.print(f"[red]Restore failed:[/red] {outcome.message}")
            raise typer.Exit(code=1)
        console.print(f"[green]{outcome.message}[/green]")
        return

    outcome = asyncio.run(client.backup_current())
    if outcome.status.value != "success":
        console.print(f"[red]Backup failed:[/red] {outcome.message}")
        raise typer.Exit(code=1)
    console.print(f"[green]{outcome.message}[/green]")


@app.command("list-units")
def list_units(
    config: ConfigOption = None,
    log_level: LogLevelOption = "warning",
) -> None:
    """List the units declared in the configuration file."""
    configure_logging(log_level)
    manager = ConfigManager(config)
    try:
        units = manager.get_units()
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=1) from e

    if not units:
        console.print(f"[dim]No units configured in {manager.config_path}[/dim]")
        return

    table = Table(title="Configured Units", show_header=True)
    table.add_column("Unit", style="cyan")
    table.add_column("Version")
    table.add_column("Server")
    for name, unit_config in sorted(units.items()):
        table.add_row(name, unit_config.current_version, unit_config.server_url)
    console.print(table)


if __name__ == "__main__":
    app()
