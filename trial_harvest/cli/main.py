"""Trial Harvest CLI using Typer."""

from __future__ import annotations

import asyncio
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from trial_harvest import __version__
from trial_harvest.config import HarvestConfig, get_default_config
from trial_harvest.db.store import Store
from trial_harvest.errors import ConfigError, StoreConnectionError
from trial_harvest.ingestion.client import ResultsClient
from trial_harvest.ingestion.intervals import intervals
from trial_harvest.ingestion.pipeline import PipelineOrchestrator, RunReport
from trial_harvest.logging_setup import configure_logging

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

console = Console()
app = typer.Typer(
    name="trial-harvest",
    help="Trial Harvest - collect agility trial results into a local database",
    add_completion=False,
)


def _parse_date(value: Optional[str], option: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        rprint(f"[red]Error:[/red] {option} must be a date in YYYY-MM-DD form, got {value!r}")
        raise typer.Exit(1)


def _load_config(config_path: Optional[Path]) -> HarvestConfig:
    try:
        config = HarvestConfig.load(config_path) if config_path else get_default_config()
        config.validate()
    except (FileNotFoundError, ConfigError) as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    return config


@app.command()
def run(
    start: Optional[str] = typer.Option(None, "--start", "-s", help="First day to harvest (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="Last day to harvest (default: today)"),
    event_concurrency: Optional[int] = typer.Option(
        None, "--event-concurrency", help="Events processed at once"
    ),
    placement_concurrency: Optional[int] = typer.Option(
        None, "--placement-concurrency", help="Placement pages fetched at once per event"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to harvest.yaml"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Database URL or SQLite path"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log per-row diagnostics"),
) -> None:
    """
    Harvest every concluded event in a date range.

    Examples:
        trial-harvest run --start 2021-01-01 --end 2021-03-15
        trial-harvest run -s 2023-06-01 --event-concurrency 5 --log-file harvest.log
    """
    configure_logging(verbose=verbose, log_file=log_file)
    config = _load_config(config_path)

    range_start = _parse_date(start, "--start") or config.harvest.start_date
    range_end = _parse_date(end, "--end") or date.today()
    events = event_concurrency or config.concurrency.event_concurrency
    placements = placement_concurrency or config.concurrency.placement_concurrency

    try:
        store = Store(database or config.database_url).connect()
    except StoreConnectionError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    rprint(f"\n[bold]Harvesting[/bold] {range_start} to {range_end}")
    rprint(f"  Site: {config.site.domain}")
    rprint(f"  Database: {store.url}")
    rprint(f"  Concurrency: {events} events x {placements} placements")
    rprint(f"  Artifacts: {config.output_path}")

    async def _run() -> RunReport:
        async with ResultsClient(site=config.site, http=config.http) as client:
            orchestrator = PipelineOrchestrator.from_config(config, client, store)
            return await orchestrator.run(range_start, range_end, events, placements)

    try:
        with console.status("[bold blue]Harvesting...[/bold blue]"):
            report = asyncio.run(_run())
    except ConfigError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        store.dispose()

    _display_run_report(report.to_dict())


@app.command()
def windows(
    start: str = typer.Option(..., "--start", "-s", help="First day (YYYY-MM-DD)"),
    end: str = typer.Option(..., "--end", "-e", help="Last day (YYYY-MM-DD)"),
    months: int = typer.Option(1, "--months", "-m", help="Window width in months"),
) -> None:
    """Show the search windows a run over this range would use."""
    range_start = _parse_date(start, "--start")
    range_end = _parse_date(end, "--end")
    if months < 1:
        rprint(f"[red]Error:[/red] --months must be >= 1, got {months}")
        raise typer.Exit(1)

    plan = intervals(range_start, range_end, months)
    if len(plan) == 0:
        rprint("[yellow]No windows: the range is empty[/yellow]")
        return

    table = Table(title=f"Search Windows ({len(plan)})")
    table.add_column("#", justify="right")
    table.add_column("From")
    table.add_column("To")
    for index, window in enumerate(plan, start=1):
        date_from, date_to = window.as_query()
        table.add_row(str(index), date_from, date_to)
    console.print(table)


@app.command()
def init_db(
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Database URL or SQLite path"),
) -> None:
    """Initialize the database (create tables)."""
    typer.echo("Initializing database...")
    try:
        store = Store(database).connect()
    except StoreConnectionError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    store.dispose()
    typer.echo(f"Database initialized successfully! ({store.url})")


@app.command()
def version() -> None:
    """Show the Trial Harvest version."""
    typer.echo(f"Trial Harvest v{__version__}")


@app.command()
def check_config(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to harvest.yaml"),
) -> None:
    """Check the current configuration status."""
    typer.echo("Trial Harvest Configuration")
    typer.echo("=" * 40)

    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    config = _load_config(config_path)
    typer.echo(f"  Config file: {config.config_path or 'built-in defaults'}")
    typer.echo(f"  Site: {config.site.domain}")
    typer.echo(f"  Search endpoint: {config.site.search_url}")
    typer.echo(f"  Start date: {config.harvest.start_date}")
    typer.echo(
        f"  Concurrency: {config.concurrency.event_concurrency} events x "
        f"{config.concurrency.placement_concurrency} placements "
        f"(max {config.concurrency.max_in_flight})"
    )
    typer.echo(
        f"  Retries: {config.http.max_attempts} attempts, {config.http.retry_delay}s apart"
    )
    typer.echo(f"  Artifacts: {config.output_path}")

    store = Store(config.database_url)
    typer.echo(f"  Database: {store.url}")
    store.dispose()


def _display_run_report(result: dict) -> None:
    """Display a run report in a formatted table."""
    status = result.get("status", "unknown")
    status_color = {
        "completed": "green",
        "running": "blue",
        "pending": "yellow",
        "failed": "red",
    }.get(status, "white")

    rprint("\n[bold]Results:[/bold]")
    rprint(f"  Status: [{status_color}]{status}[/{status_color}]")
    rprint(f"  Run: {result.get('run_id', 'N/A')}")
    if result.get("duration_seconds"):
        rprint(f"  Duration: {result['duration_seconds']:.1f}s")

    table = Table(title="Statistics")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    for label, key in (
        ("Windows planned", "windows_planned"),
        ("Windows failed", "windows_failed"),
        ("Events listed", "events_listed"),
        ("Events scraped", "events_scraped"),
        ("Events failed", "events_failed"),
        ("Classes found", "classes_found"),
        ("Classes enriched", "classes_enriched"),
        ("Placements", "placements"),
        ("Dogs inserted", "dogs_inserted"),
        ("Dogs matched", "dogs_matched"),
        ("Runs inserted", "runs_inserted"),
        ("Runs matched", "runs_matched"),
        ("Artifacts written", "artifacts_written"),
        ("Diagnostics", "diagnostics"),
    ):
        table.add_row(label, str(result.get(key, 0)))
    console.print(table)

    errors = result.get("errors", [])
    if errors:
        rprint(f"\n[bold red]Errors ({len(errors)}):[/bold red]")
        for error in errors[:10]:  # Show first 10
            label = escape(f"[{error['scope']} {error['key']}]")
            rprint(
                f"  • {label} "
                f"{error['stage']}/{error['kind']}: {escape(error['message'])}"
            )
        if len(errors) > 10:
            rprint(f"  ... and {len(errors) - 10} more")

    rprint(f"\n[dim]Finished at {datetime.now():%Y-%m-%d %H:%M:%S}[/dim]")


if __name__ == "__main__":
    app()
