"""Command-line interface for the Domo offboarding tool."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import structlog
import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from domo_offboard.client import DomoClient
from domo_offboard.config import Config
from domo_offboard.orchestration import MigrationOrchestrator, MigrationRun
from domo_offboard.resources import build_registry, validate_kind_tags
from domo_offboard.users import UserDirectory

MAX_ERRORS_TO_DISPLAY = 10

app = typer.Typer(
    name="domo-offboard",
    help="Transfer a departing Domo user's content to a new owner",
    add_completion=False,
)

console = Console()

LogLevelOption = Annotated[
    str,
    typer.Option(
        "--log-level",
        "-l",
        help="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
]
LogFormatOption = Annotated[
    str,
    typer.Option("--log-format", "-f", help="Log format (json or text)"),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration file (optional, uses environment variables by default)",
    ),
]
KindsOption = Annotated[
    str,
    typer.Option(
        "--kinds",
        "-k",
        help="Comma-separated kind tags to transfer (see `domo-offboard kinds`)",
    ),
]
ConcurrentKindsOption = Annotated[
    bool,
    typer.Option("--concurrent-kinds", help="Process resource kinds concurrently"),
]
OutputOption = Annotated[
    Path | None,
    typer.Option("--output", "-o", help="Write the run summary as JSON to this file"),
]


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Setup structured logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json or text).
    """
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level.upper())

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(
    config_file: Path | None,
    kinds: str = "all",
    concurrent_kinds: bool = False,
    log_level: str | None = None,
    log_format: str | None = None,
) -> Config:
    """Load configuration from a file or the environment and apply CLI overrides."""
    config = Config.from_file(config_file) if config_file else Config.from_env()

    if kinds != "all":
        config.kinds = [k.strip() for k in kinds.split(",")]
    if concurrent_kinds:
        config.migration.concurrent_kinds = True
    if log_level:
        config.logging.level = log_level
    if log_format:
        config.logging.format = log_format
    validate_kind_tags(config.kinds)
    return config


@app.command()
def transfer(
    source_user_id: Annotated[str, typer.Argument(help="Id of the departing user")],
    new_owner_id: Annotated[str, typer.Argument(help="Id of the user receiving ownership")],
    kinds: KindsOption = "all",
    concurrent_kinds: ConcurrentKindsOption = False,
    config_file: ConfigOption = None,
    output: OutputOption = None,
    log_level: LogLevelOption = "INFO",
    log_format: LogFormatOption = "json",
) -> None:
    """Transfer ownership of everything SOURCE_USER_ID owns to NEW_OWNER_ID.

    Every attempted transfer is appended to the audit dataset. Re-running the
    same command is safe and retries whatever failed.

    Examples:
        domo-offboard transfer 42 99
        domo-offboard transfer 42 99 --kinds DATASET,CARD --log-format text
    """
    setup_logging(log_level, log_format)
    logger = structlog.get_logger(__name__)

    try:
        config = load_config(config_file, kinds, concurrent_kinds, log_level, log_format)
        run = asyncio.run(_run_transfer(config, source_user_id, new_owner_id))
    except KeyboardInterrupt:
        console.print("\n[red]Transfer interrupted by user[/red]")
        logger.info("Transfer interrupted by user")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Transfer failed: {e}[/red]")
        logger.error("Transfer failed", error=str(e), exc_info=True)
        sys.exit(1)

    _display_run(run)
    _write_output(run, output)


@app.command()
def offboard(
    source_user_id: Annotated[str, typer.Argument(help="Id of the departing user")],
    new_owner_id: Annotated[str, typer.Argument(help="Id of the user receiving ownership")],
    delete_user: Annotated[
        bool,
        typer.Option(
            "--delete-user/--keep-user",
            help="Delete the departing user's account after a clean transfer",
        ),
    ] = True,
    config_file: ConfigOption = None,
    output: OutputOption = None,
    log_level: LogLevelOption = "INFO",
    log_format: LogFormatOption = "json",
) -> None:
    """Transfer all content, revoke the user's sessions and delete the account.

    The account is only deleted when every kind completed; otherwise it is
    kept so the transfer can be re-run.
    """
    setup_logging(log_level, log_format)
    logger = structlog.get_logger(__name__)

    try:
        config = load_config(config_file, log_level=log_level, log_format=log_format)
        run = asyncio.run(_run_offboard(config, source_user_id, new_owner_id, delete_user))
    except KeyboardInterrupt:
        console.print("\n[red]Offboarding interrupted by user[/red]")
        logger.info("Offboarding interrupted by user")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Offboarding failed: {e}[/red]")
        logger.error("Offboarding failed", error=str(e), exc_info=True)
        sys.exit(1)

    _display_run(run)
    _write_output(run, output)
    if run.failed_kinds or run.cancelled:
        sys.exit(1)


async def _transfer_with_progress(
    orchestrator: MigrationOrchestrator, source_user_id: str, new_owner_id: str
) -> MigrationRun:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(
            f"Transferring content of {source_user_id} to {new_owner_id} "
            f"({len(orchestrator.kinds)} kinds)...",
            total=None,
        )
        return await orchestrator.transfer_content(source_user_id, new_owner_id)


async def _run_transfer(config: Config, source_user_id: str, new_owner_id: str) -> MigrationRun:
    async with DomoClient(config.domo, config.migration) as client:
        orchestrator = MigrationOrchestrator(client, config)
        run = await _transfer_with_progress(orchestrator, source_user_id, new_owner_id)
        run.request_stats = client.get_stats()
        return run


async def _run_offboard(
    config: Config, source_user_id: str, new_owner_id: str, delete_user: bool
) -> MigrationRun:
    logger = structlog.get_logger(__name__)

    async with DomoClient(config.domo, config.migration) as client:
        users = UserDirectory(client, config.migration.max_concurrent)
        orchestrator = MigrationOrchestrator(client, config, users=users)
        run = await _transfer_with_progress(orchestrator, source_user_id, new_owner_id)

        revoked = await users.delete_user_sessions(source_user_id)
        console.print(f"[green]✓[/green] Revoked {revoked} session(s)")

        if not delete_user:
            console.print("[yellow]![/yellow] Keeping user account (--keep-user)")
        elif run.failed_kinds or run.cancelled:
            console.print(
                "[yellow]![/yellow] Not deleting user: some kinds did not complete"
            )
            logger.warning(
                "User kept after incomplete transfer",
                failed_kinds=[k.kind_tag for k in run.failed_kinds],
                cancelled=run.cancelled,
            )
        else:
            await users.delete_user(source_user_id)
            console.print(f"[green]✓[/green] Deleted user {source_user_id}")
        run.request_stats = client.get_stats()
        return run


def _display_run(run: MigrationRun) -> None:
    """Display the run summary as tables."""
    summary_table = Table(title="Transfer Summary")
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Count", style="magenta", justify="right")
    summary_table.add_row("Kinds", str(len(run.kinds)))
    summary_table.add_row("Discovered", str(run.discovered))
    summary_table.add_row("Transferred", str(run.transferred))
    summary_table.add_row("Not transferred", str(run.not_transferred))
    summary_table.add_row("Failed kinds", str(len(run.failed_kinds)))
    if run.request_stats:
        summary_table.add_row("API requests", str(run.request_stats["request_count"]))
        summary_table.add_row("API errors", str(run.request_stats["error_count"]))

    console.print("\n")
    console.print(summary_table)

    kinds_table = Table(title="Kind Details")
    kinds_table.add_column("Kind", style="cyan")
    kinds_table.add_column("Discovered", justify="right")
    kinds_table.add_column("Transferred", justify="right", style="green")
    kinds_table.add_column("Not transferred", justify="right", style="yellow")
    kinds_table.add_column("Status")
    for kind in run.kinds:
        if kind.error:
            status = "[red]failed[/red]"
        elif kind.cancelled:
            status = "[yellow]cancelled[/yellow]"
        else:
            status = "[green]ok[/green]"
        kinds_table.add_row(
            kind.kind_tag,
            str(kind.discovered),
            str(kind.transferred),
            str(kind.not_transferred),
            status,
        )

    console.print("\n")
    console.print(kinds_table)

    failed = run.failed_kinds
    if failed:
        console.print("\n[red]Errors encountered:[/red]")
        for i, kind in enumerate(failed[:MAX_ERRORS_TO_DISPLAY], 1):
            console.print(f"  {i}. {kind.kind_tag}: {kind.error}")
        if len(failed) > MAX_ERRORS_TO_DISPLAY:
            console.print(f"  ... and {len(failed) - MAX_ERRORS_TO_DISPLAY} more errors")
    if run.cancelled:
        console.print("[yellow]Run was cancelled before all kinds completed[/yellow]")


def _write_output(run: MigrationRun, output: Path | None) -> None:
    if output is None:
        return
    with open(output, "w") as f:
        json.dump(run.to_dict(), f, indent=2, default=str)
    console.print(f"Run summary saved to: {output}")


@app.command()
def kinds() -> None:
    """List the resource kinds in run order."""
    table = Table(title="Resource Kinds")
    table.add_column("Tag", style="cyan")
    table.add_column("Page size", justify="right")
    table.add_column("Shape")
    table.add_column("Scope")
    table.add_column("Transfers")

    for kind in build_registry():
        info = kind.describe()
        table.add_row(
            info["kind_tag"],
            str(info["page_size"]) if info["page_size"] else "-",
            info["shape"],
            info["scope"],
            "yes" if info["supports_transfer"] else "[yellow]no[/yellow]",
        )
    console.print(table)


@app.command()
def validate(
    config_file: ConfigOption = None,
    log_level: LogLevelOption = "INFO",
) -> None:
    """Validate configuration and test connectivity to the Domo instance."""
    setup_logging(log_level, "text")
    logger = structlog.get_logger(__name__)

    try:
        console.print("[blue]Validating configuration...[/blue]")
        config = load_config(config_file)
        console.print("[green]✓[/green] Configuration loaded successfully")

        console.print("[blue]Testing connectivity...[/blue]")
        asyncio.run(_test_connectivity(config))

        console.print("[green]✓[/green] All validation checks passed!")
    except Exception as e:
        console.print(f"[red]✗ Validation failed: {e}[/red]")
        logger.error("Validation failed", error=str(e))
        sys.exit(1)


async def _test_connectivity(config: Config) -> None:
    async with DomoClient(config.domo, config.migration) as client:
        health = await client.health_check()
        console.print(
            f"[green]✓[/green] Instance: {health['url']} (authenticated as {health['user_id']})"
        )

    if not config.deployment.scheduled_reports_dataset_id:
        console.print(
            "[yellow]![/yellow] Scheduled reports dataset not configured; "
            "REPORT_SCHEDULE will be skipped"
        )
    if config.deployment.service_account_id is None:
        console.print(
            "[yellow]![/yellow] Service account not configured; project task "
            "assignments will carry no assigner"
        )


@app.command()
def version() -> None:
    """Show version information."""
    from domo_offboard import __version__

    console.print(f"domo-offboard version {__version__}")


if __name__ == "__main__":
    app()
