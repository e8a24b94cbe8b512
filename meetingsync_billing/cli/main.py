"""
CLI interface for MeetingSync billing.

Developer tooling around the session accounting engine: inspect tiers,
quote sessions and simulate a live session tick by tick.
"""

import sys
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from meetingsync_billing.config.loader import load_catalog
from meetingsync_billing.core.engine import SessionAccountingEngine
from meetingsync_billing.core.errors import BillingError
from meetingsync_billing.core.models import (
    MeetingContext,
    SessionConfig,
    SessionEvent,
    SessionSnapshot,
    SessionStatus,
)
from meetingsync_billing.core.pricing import PricingCatalog, format_duration
from meetingsync_billing.core.timer import ManualTimer
from meetingsync_billing.core.usage import UsageLedger
from meetingsync_billing.storage.repository import (
    InMemoryStore,
    SessionArchive,
    SqliteKeyValueStore,
    initialize_schema,
)
from meetingsync_billing.telemetry.logger import configure_logging

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """MeetingSync billing CLI."""
    if ctx.invoked_subcommand is None:
        console.print("MeetingSync billing - Use --help to see available commands")


@app.command()
def init(
    db: str = typer.Option("meetingsync_billing.db", "--db", help="SQLite database path")
):
    """Initialize the billing database."""
    try:
        initialize_schema(db)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def tiers(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Pricing YAML file")
):
    """List PAYG tiers and the daily free tier."""
    try:
        catalog = load_catalog(config)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Pay-As-You-Go Plans")
    table.add_column("Tier")
    table.add_column("Rate", justify="right")
    table.add_column("Languages")
    table.add_column("Overage", justify="right")
    for tier in catalog.all_tiers():
        name = f"{tier.name} ({tier.badge})" if tier.badge else tier.name
        table.add_row(
            name,
            catalog.format_rate(tier.base_rate_per_hour),
            catalog.format_language_limits(tier.translation_limit, tier.total_language_limit),
            catalog.format_rate(tier.overage_rate_per_hour)
        )
    console.print(table)

    free = catalog.get_free_tier_limits()
    console.print(
        f"\n[bold]Daily Free Tier:[/bold] {free.daily_minutes} min/day • "
        f"{catalog.format_language_limits(free.translation_limit, free.total_language_limit)}"
    )
    console.print(f"[dim]Participant scaling: {catalog.scaling.formula}[/]")


@app.command()
def quote(
    tier: str = typer.Option(..., "--tier", "-t", help="Tier id"),
    hours: float = typer.Option(1.0, "--hours", help="Session length in hours"),
    participants: int = typer.Option(1, "--participants", "-p", help="Participant count"),
    overage_languages: int = typer.Option(0, "--overage-languages", help="Extra languages"),
    overage_hours: float = typer.Option(0.0, "--overage-hours", help="Hours each extra language ran"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Pricing YAML file")
):
    """Quote the cost of a PAYG session."""
    try:
        catalog = load_catalog(config)
        cost = catalog.calculate_session_cost(
            tier, hours, participants, overage_languages, overage_hours
        )
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(
        f"{catalog.get_tier(tier).name}, {format_duration(hours)}, "
        f"{participants} participants: [bold]{catalog.format_currency(cost)}[/bold]"
    )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def simulate(
    tier: Optional[str] = typer.Option(None, "--tier", "-t", help="PAYG tier id"),
    minutes: int = typer.Option(60, "--minutes", "-m", help="Minutes to run"),
    participants: int = typer.Option(1, "--participants", "-p", help="Participant count"),
    source: str = typer.Option("en", "--source", help="Source language"),
    target: List[str] = typer.Option(["es"], "--target", "-l", help="Target language (repeatable)"),
    add: List[str] = typer.Option([], "--add", help="Add a language: CODE@MINUTE"),
    remove: List[str] = typer.Option([], "--remove", help="Remove a language: CODE@MINUTE"),
    free: bool = typer.Option(False, "--free", help="Run on the daily free tier"),
    user: str = typer.Option("cli-user", "--user", help="User id"),
    db: Optional[str] = typer.Option(None, "--db", help="Persist account and archive to SQLite"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Pricing YAML file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show engine logs")
):
    """
    Simulate a live session second by second.

    Runs the real accounting engine with a manual clock, applying the
    requested language changes at the given minutes, and prints the final
    cost breakdown.
    """
    if verbose:
        configure_logging(verbose=True)

    events: List[SessionEvent] = []
    try:
        schedule = _build_schedule(add, remove, minutes)
        catalog = load_catalog(config)

        if db:
            initialize_schema(db)
            store = SqliteKeyValueStore(db)
            archive = SessionArchive(db)
        else:
            store = InMemoryStore()
            archive = None

        ledger = UsageLedger.load(user, store, daily_minutes=catalog.free_tier.daily_minutes)
        if free:
            ledger.remove_payment_method()
        else:
            ledger.add_payment_method()

        engine = SessionAccountingEngine(
            catalog, ledger, timer_factory=ManualTimer, archive=archive
        )
        engine.subscribe(events.append)
        engine.start(
            SessionConfig(
                source_language=source,
                target_languages=tuple(target),
                tier_id=tier,
                participant_count=participants
            ),
            MeetingContext(meeting_id="simulated-meeting", user_id=user, display_name=user)
        )

        for second in range(minutes * 60):
            if second % 60 == 0:
                for action, code in schedule.get(second // 60, []):
                    if action == "add":
                        engine.add_language(code)
                    else:
                        engine.remove_language(code)
            engine.tick()
            if engine.status == SessionStatus.ENDED:
                break

        if engine.status != SessionStatus.ENDED:
            engine.stop()
        snapshot = engine.snapshot()
    except BillingError as e:
        console.print(f"[red]Billing error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_session(catalog, snapshot, events)
    _display_account(catalog, ledger)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def usage(
    user: str = typer.Option("cli-user", "--user", help="User id"),
    db: str = typer.Option("meetingsync_billing.db", "--db", help="SQLite database path"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Pricing YAML file")
):
    """Show a stored usage account and its archived sessions."""
    try:
        catalog = load_catalog(config)
        initialize_schema(db)
        ledger = UsageLedger.load(
            user, SqliteKeyValueStore(db), daily_minutes=catalog.free_tier.daily_minutes
        )
        sessions = SessionArchive(db).fetch_sessions(user_id=user, limit=10)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_account(catalog, ledger)
    if sessions:
        table = Table(title="Recent Sessions")
        table.add_column("Session")
        table.add_column("Started")
        table.add_column("Tier")
        table.add_column("Duration", justify="right")
        table.add_column("Cost", justify="right")
        table.add_column("Ended by")
        for session in sessions:
            table.add_row(
                session.session_id,
                f"{session.started_at:%Y-%m-%d %H:%M}",
                session.tier_id or "free",
                format_duration(session.duration_seconds / 3600),
                catalog.format_currency(session.cost),
                session.end_reason or "-"
            )
        console.print(table)
    sys.exit(EXIT_CODE_PASS)


def _build_schedule(
    add: List[str],
    remove: List[str],
    minutes: int
) -> Dict[int, List[Tuple[str, str]]]:
    """Parse CODE@MINUTE options into per-minute actions."""
    schedule: Dict[int, List[Tuple[str, str]]] = defaultdict(list)
    for action, specs in (("add", add), ("remove", remove)):
        for spec in specs:
            code, sep, minute_text = spec.partition("@")
            if not sep or not code or not minute_text.isdigit():
                raise ValueError(f"Expected CODE@MINUTE, got '{spec}'")
            minute = int(minute_text)
            if minute >= minutes:
                raise ValueError(f"'{spec}' is outside the {minutes}-minute session")
            schedule[minute].append((action, code))
    return schedule


def _display_session(catalog: PricingCatalog, snapshot: SessionSnapshot, events: List[SessionEvent]):
    """Display the final session breakdown."""
    console.print("\n[bold]Session Simulation Result[/bold]")
    console.print("-" * 40)
    console.print(f"Tier: {snapshot.tier_id or 'Daily Free Tier'}")
    console.print(f"Languages: {snapshot.source_language} -> {', '.join(snapshot.target_languages)}")
    console.print(f"Duration: {format_duration(snapshot.duration_hours)}")
    console.print(f"Participants (peak): {snapshot.peak_participant_count}")
    console.print(f"Multiplier: {snapshot.participant_multiplier_value}x")
    console.print(f"Base cost: {catalog.format_currency(snapshot.base_cost)}")
    console.print(f"Overage cost: {catalog.format_currency(snapshot.overage_cost)}")
    console.print(f"[bold]Total: {catalog.format_currency(snapshot.cost)}[/bold]")
    if snapshot.end_reason is not None:
        console.print(f"Ended by: {snapshot.end_reason.value}")

    if snapshot.overages:
        table = Table(title="Overage Languages")
        table.add_column("Language")
        table.add_column("Added (min)", justify="right")
        table.add_column("Removed (min)", justify="right")
        table.add_column("Rate", justify="right")
        table.add_column("Cost", justify="right")
        for entry in snapshot.overages:
            table.add_row(
                entry.language_code,
                f"{entry.added_at_minutes:.0f}",
                f"{entry.removed_at_minutes:.0f}" if entry.removed_at_minutes is not None else "-",
                catalog.format_rate(entry.overage_rate_per_hour),
                catalog.format_currency(entry.calculated_cost)
            )
        console.print(table)

    notable = [event for event in events if event.message]
    if notable:
        console.print("\n[bold]Events[/bold]")
        for event in notable:
            console.print(f"  [{event.at_seconds}s] {event.type.value}: {event.message}")


def _display_account(catalog: PricingCatalog, ledger: UsageLedger):
    """Display usage account counters."""
    account = ledger.account
    console.print(f"\n[bold]Account:[/bold] {account.user_id}")
    if account.is_free_tier:
        console.print(
            f"Minutes Remaining Today: {account.daily_free_minutes_remaining} "
            f"of {ledger.daily_minutes}"
        )
    else:
        console.print(f"Tier: {account.subscription_tier or 'not selected'}")
        console.print(f"Unpaid usage: {catalog.format_currency(account.unpaid_usage)}")
        if account.is_high_usage:
            console.print("[yellow]High unpaid usage[/]")


if __name__ == "__main__":
    app()
