"""
CLI for lottery result ingestion.
Runs the scheduler, manual syncs, backfills and read-side queries.
"""
import asyncio
import functools
import json
import sys
from pathlib import Path
from typing import Optional

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lottery_ingest.config import get_settings
from lottery_ingest.database import get_db, run_migrations
from lottery_ingest.ingestion import DrawReader, InvalidPayloadError, parse_turn_num
from lottery_ingest.models import REGION_SCHEDULES, Region
from lottery_ingest.scheduler import LotteryScheduler, run_scheduler
from lottery_ingest.utils.logging import setup_logging

console = Console()
logger = structlog.get_logger()

REGION_CHOICE = click.Choice(["mb", "mt", "mn"], case_sensitive=False)


def async_command(f):
    """Decorator to run async functions in click commands."""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


def require_database():
    if not get_settings().database_configured:
        console.print("[red]✗ DATABASE_URL not set - database features disabled[/red]")
        raise SystemExit(2)


async def close_db():
    db = await get_db()
    await db.close()


# =============================================================================
# CLI GROUP
# =============================================================================

@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, debug: bool):
    """
    Lottery result ingestion CLI.

    Polls the result sources at each region's draw time, backfills missed
    days and serves stored history.
    """
    settings = get_settings()
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    setup_logging(
        level="DEBUG" if debug or settings.debug else settings.log_level,
        format_type="console" if debug else settings.log_format,
    )


# =============================================================================
# SYNC COMMANDS
# =============================================================================

@cli.command()
def schedule():
    """
    Run the scheduler.

    Polls the South at 16:13, Central at 17:13 and North at 18:13 (Vietnam
    time) and audits the trailing days once a day and at startup.
    Press Ctrl+C to stop.
    """
    console.print(Panel("Starting lottery sync scheduler", style="bold blue"))
    asyncio.run(run_scheduler())


@cli.command()
@click.argument("region", type=REGION_CHOICE)
@async_command
async def sync(region: str):
    """Poll REGION now until today's result is stored or the window closes."""
    require_database()
    scheduler = LotteryScheduler()
    try:
        if not scheduler.trigger_region_sync(region):
            console.print("[yellow]Poll not started[/yellow]")
            return
        state = await scheduler.pollers[Region.from_slug(region)].wait()
        color = "green" if state.status.value == "resolved" else "yellow"
        console.print(f"[{color}]{REGION_SCHEDULES[state.region].label}: {state.status.value}[/{color}] after {state.ticks} tick(s)")
        if state.summary:
            console.print(f"  Imported: {state.summary.imported}  Skipped: {state.summary.skipped}")
    finally:
        await scheduler.stop()
        await close_db()


@cli.command()
@async_command
async def backfill():
    """Audit the trailing window and fetch any missing day."""
    require_database()
    scheduler = LotteryScheduler()
    try:
        report = await scheduler.run_backfill()
    finally:
        await scheduler.stop()
        await close_db()

    table = Table(title="Backfill audit")
    table.add_column("Date")
    table.add_column("Status")
    table.add_column("MN", justify="right")
    table.add_column("MT", justify="right")
    table.add_column("MB", justify="right")
    table.add_column("Imported", justify="right")
    for audit in report.dates:
        table.add_row(
            audit.draw_date.isoformat(),
            audit.status,
            str(audit.per_region.get("mn", "-")),
            str(audit.per_region.get("mt", "-")),
            str(audit.per_region.get("mb", "-")),
            str(audit.imported),
        )
    console.print(table)


@cli.command("test-fetch")
@click.argument("region", type=REGION_CHOICE)
@async_command
async def test_fetch(region: str):
    """Fetch REGION from the history source without storing anything."""
    scheduler = LotteryScheduler()
    try:
        result = await scheduler.test_region_fetch(region)
    finally:
        await scheduler.stop()
    console.print_json(json.dumps(result, ensure_ascii=False))
    if not result.get("ok"):
        sys.exit(1)


@cli.command()
@async_command
async def ping():
    """Check that both sources answer from this host."""
    scheduler = LotteryScheduler()
    try:
        result = await scheduler.ping_sources()
    finally:
        await scheduler.stop()
    console.print_json(json.dumps(result, ensure_ascii=False))


@cli.command("import")
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@async_command
async def import_(payload_file: Path):
    """Import a JSON file shaped like {"draws": [...]}."""
    require_database()
    payload = json.loads(payload_file.read_text(encoding="utf-8"))
    scheduler = LotteryScheduler()
    try:
        summary = await scheduler.import_results(payload)
    except InvalidPayloadError as e:
        console.print(f"[red]✗ Invalid payload: {e}[/red]")
        raise SystemExit(1)
    finally:
        await scheduler.stop()
        await close_db()
    console.print_json(json.dumps({"ok": True, **summary.model_dump()}))


# =============================================================================
# READ COMMANDS
# =============================================================================

@cli.command()
@click.option("--date", "date_str", required=True, help="Draw date, DD/MM/YYYY")
@click.option("--region", "-r", type=REGION_CHOICE, help="Filter by region")
@async_command
async def draws(date_str: str, region: Optional[str]):
    """Show stored draws for a date."""
    require_database()
    draw_date = parse_turn_num(date_str)
    if draw_date is None:
        console.print("[red]✗ Date must be DD/MM/YYYY[/red]")
        raise SystemExit(1)

    try:
        rows = await DrawReader().get_draws_by_date(
            draw_date,
            Region.from_slug(region) if region else None,
        )
    finally:
        await close_db()

    if not rows:
        console.print(f"No draws stored for {draw_date:%d/%m/%Y}")
        return

    for row in rows:
        table = Table(title=f"{row['province_name']} ({row['region_code']}) {draw_date:%d/%m/%Y}")
        table.add_column("Prize")
        table.add_column("Numbers")
        tiers: dict[str, list[str]] = {}
        for result in row["results"]:
            tiers.setdefault(result["prize_code"], []).append(result["result_number"])
        for code, numbers in tiers.items():
            table.add_row(code, " ".join(numbers))
        console.print(table)


@cli.command()
@click.argument("game_code")
@click.option("--limit", "-n", default=200, show_default=True, help="Maximum draws (capped at 500)")
@async_command
async def history(game_code: str, limit: int):
    """Print stored history of GAME_CODE in the upstream response shape."""
    require_database()
    try:
        payload = await DrawReader().get_issue_list(game_code, limit)
    finally:
        await close_db()
    if payload is None:
        console.print(f"[yellow]Nothing stored for game {game_code}[/yellow]")
        sys.exit(1)
    console.print_json(json.dumps(payload, ensure_ascii=False))


# =============================================================================
# DATABASE COMMANDS
# =============================================================================

@cli.group()
def db():
    """Database management commands."""


@db.command()
@async_command
async def migrate():
    """Create tables and seed regions/provinces."""
    require_database()
    try:
        applied = await run_migrations()
    finally:
        await close_db()
    if applied:
        for name in applied:
            console.print(f"[green]✓ Applied {name}[/green]")
    else:
        console.print("Database already up to date")


@db.command()
@async_command
async def health():
    """Check database connectivity."""
    require_database()
    database = await get_db()
    healthy = await database.health_check()
    await database.close()
    if healthy:
        console.print("[green]✓ Database connection healthy[/green]")
    else:
        console.print("[red]✗ Database connection failed[/red]")
        sys.exit(1)


# =============================================================================
# CONFIG COMMANDS
# =============================================================================

@cli.command()
def config():
    """Show current configuration."""
    settings = get_settings()

    table = Table(title="Configuration", show_header=False)
    table.add_column("Key")
    table.add_column("Value")
    table.add_row("Database", settings.masked_database_url)
    table.add_row("Primary source", settings.minhngoc_base_url)
    table.add_row("History source", settings.xoso188_base_url)
    table.add_row("Relay", settings.xoso188_proxy or ("auto" if settings.auto_proxy_enabled else "direct"))
    table.add_row("Time zone", settings.schedule_timezone)
    for region, sched in REGION_SCHEDULES.items():
        table.add_row(f"Poll {region.slug}", f"{sched.start_at:%H:%M} ({sched.label})")
    table.add_row("Poll interval", f"{settings.poll_interval_seconds}s")
    table.add_row("Poll window", f"{settings.max_poll_duration_seconds / 60:.0f} min")
    table.add_row("Audit", f"{settings.audit_hour:02d}:{settings.audit_minute:02d}, {settings.backfill_days} days")
    console.print(table)


# =============================================================================
# ENTRY POINT
# =============================================================================

def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
