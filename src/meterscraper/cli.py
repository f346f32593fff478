"""Command-line interface for the meter scraper."""

import logging
import time
from datetime import timedelta
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .collectors.glowmarkt import GlowmarktClient
from .config import load_resources, load_settings
from .errors import ConfigError, MeterScraperError
from .logging_config import configure_logging
from .reconcile.cycle import ReconciliationCycle, jittered
from .reconcile.window import window_ending_at
from .store import InfluxStore

console = Console()
logger = logging.getLogger(__name__)


def _load(ctx):
    """Settings and resources, exiting with status 1 if either is invalid."""
    try:
        settings = load_settings()
        resources = load_resources(settings.resources_path)
    except ConfigError as e:
        configure_logging()
        logger.error("invalid configuration", extra={"error": str(e)})
        console.print(f"[red]Configuration error: {e}[/red]")
        ctx.exit(1)
    configure_logging(settings.log_level)
    return settings, resources


def _connect(settings):
    source = GlowmarktClient.authenticate(settings.glow_username, settings.glow_password)
    logger.info("authenticated with glow")
    store = InfluxStore(
        url=settings.influx_host,
        token=settings.influx_token,
        org=settings.influx_org,
        bucket=settings.influx_bucket,
    )
    return source, store


@click.group()
@click.option("--env-file", type=click.Path(exists=True, dir_okay=False), help="Load environment from this file")
@click.pass_context
def cli(ctx, env_file):
    """Reconcile Glowmarkt smart meter data into InfluxDB."""
    ctx.ensure_object(dict)
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()


@cli.command()
@click.option("--no-startup-delay", is_flag=True, help="Skip the jittered delay before the first cycle")
@click.pass_context
def run(ctx, no_startup_delay):
    """Run reconciliation every half hour until a fatal error.

    Exits with status 1 on any error; rely on the process supervisor to
    restart.
    """
    settings, resources = _load(ctx)

    if not no_startup_delay:
        logger.info("delaying start")
        time.sleep(jittered(settings.startup_jitter_seconds))

    try:
        source, store = _connect(settings)
        with source, store:
            cycle = ReconciliationCycle.from_settings(settings, source, store, resources)
            cycle.run_forever()
    except MeterScraperError as e:
        logger.error("reconciliation failed", extra={"error": str(e), "error_type": type(e).__name__})
        ctx.exit(1)


@cli.command()
@click.option("--no-wait", is_flag=True, help="Skip catch-up requests and the grace period")
@click.option("--dry-run", is_flag=True, help="Print points instead of writing them")
@click.option("--skip-stored", is_flag=True, help="Only write readings newer than the latest stored")
@click.pass_context
def once(ctx, no_wait, dry_run, skip_stored):
    """Run a single reconciliation cycle."""
    settings, resources = _load(ctx)

    try:
        source, store = _connect(settings)
        with source, store:
            cycle = ReconciliationCycle.from_settings(settings, source, store, resources)
            if skip_stored:
                cycle.skip_stored = True
            result = cycle.run_once(wait_for_catchup=not no_wait, write=not dry_run)
    except MeterScraperError as e:
        logger.error("reconciliation failed", extra={"error": str(e), "error_type": type(e).__name__})
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    if result.catchup_failures:
        console.print(f"[yellow]{result.catchup_failures} catch-up request(s) failed[/yellow]")

    if dry_run:
        table = Table(title="Points (dry run)")
        table.add_column("Measurement", style="cyan")
        table.add_column("Tags")
        table.add_column("Fields")
        table.add_column("Timestamp", style="dim")
        for point in result.points:
            table.add_row(
                point.measurement,
                ", ".join(f"{k}={v}" for k, v in sorted(point.tags.items())),
                ", ".join(f"{k}={v}" for k, v in point.fields.items()),
                point.timestamp.isoformat(),
            )
        console.print(table)
    else:
        console.print(f"[green]Wrote {len(result.points)} points[/green]")


@cli.command()
@click.pass_context
def status(ctx):
    """Show data availability and the window each resource would query."""
    settings, resources = _load(ctx)
    lookback = timedelta(days=settings.lookback_days)

    table = Table(title="Resource availability")
    table.add_column("Resource", style="cyan")
    table.add_column("Series")
    table.add_column("Resource ID", style="dim")
    table.add_column("First available")
    table.add_column("Last available")
    table.add_column("Window start")

    try:
        source = GlowmarktClient.authenticate(settings.glow_username, settings.glow_password)
        with source:
            for resource in resources:
                for series, resource_id in zip(("quantity", "cost"), resource.resource_ids):
                    first = source.get_first_time(resource_id)
                    last = source.get_last_time(resource_id)
                    window = window_ending_at(last, lookback)
                    table.add_row(
                        resource.name,
                        series,
                        resource_id,
                        first.isoformat(),
                        last.isoformat(),
                        window.start.isoformat(),
                    )
    except MeterScraperError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    console.print(table)


@cli.command("resources")
@click.option("--config", type=click.Path(exists=True, dir_okay=False), help="Path to resources.yaml")
@click.pass_context
def resources_cmd(ctx, config):
    """List tracked resources."""
    try:
        resources = load_resources(Path(config) if config else None)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        ctx.exit(1)

    table = Table(title="Tracked resources")
    table.add_column("Name", style="cyan")
    table.add_column("Quantity ID")
    table.add_column("Cost ID")
    for resource in resources:
        table.add_row(resource.name, resource.quantity_resource_id, resource.cost_resource_id)
    console.print(table)


if __name__ == "__main__":
    cli()
