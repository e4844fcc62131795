"""CLI for the Mandala Day session core.

Developer CLI that drives the same orchestrator code path the app uses,
against the configured key-value store (STORAGE_BACKEND).
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from mandala_day.config.settings import settings
from mandala_day.core.clock import SystemClock
from mandala_day.core.logger import setup_logger_from_settings
from mandala_day.notifications.dispatcher import AsyncioDispatcher, Reminder
from mandala_day.orchestrator.runner import SessionRunner
from mandala_day.orchestrator.session_orchestrator import SessionOrchestrator
from mandala_day.sessions.templates import DEFAULT_SESSIONS, get_template_by_id
from mandala_day.sessions.types import DailySessionInstance, SessionStatus
from mandala_day.storage.base import KeyValueStore
from mandala_day.storage.factory import build_store

T = TypeVar("T")

# Initialize Rich console for output
console = Console()

# Initialize Typer app
app = typer.Typer(
    name="mandala-day",
    help="Mandala Day CLI - daily practice sessions, statuses and reminders",
    add_completion=False,
)
schedule_app = typer.Typer(help="Edit the user schedule")
app.add_typer(schedule_app, name="schedule")

STATUS_STYLES: dict[SessionStatus, str] = {
    SessionStatus.UPCOMING: "cyan",
    SessionStatus.DUE: "bold yellow",
    SessionStatus.COMPLETED: "green",
    SessionStatus.SKIPPED: "dim",
    SessionStatus.MISSED: "red",
}


def _deliver_to_console(reminder: Reminder) -> None:
    console.print(f"[bold magenta]🔔 {reminder.title}[/bold magenta] - {reminder.body}")


def _build_orchestrator() -> tuple[SessionOrchestrator, KeyValueStore]:
    setup_logger_from_settings()
    clock = SystemClock(settings.tzinfo)
    store = build_store(settings)
    dispatcher = AsyncioDispatcher(clock, deliver=_deliver_to_console)
    return SessionOrchestrator(store, dispatcher, clock, settings), store


def _run(action: Callable[[SessionOrchestrator], Awaitable[T]]) -> T:
    """Initialize an orchestrator, run one action and shut it down."""

    async def runner() -> T:
        orchestrator, store = _build_orchestrator()
        try:
            await orchestrator.initialize()
            return await action(orchestrator)
        finally:
            await orchestrator.close()
            await store.close()

    return asyncio.run(runner())


def _print_instances(instances: list[DailySessionInstance], title: str) -> None:
    table = Table(title=title)
    table.add_column("Time")
    table.add_column("Session")
    table.add_column("Status")
    table.add_column("Snoozes", justify="right")
    table.add_column("Id", style="dim")
    tz = settings.tzinfo
    for instance in instances:
        template = get_template_by_id(instance.template_id)
        style = STATUS_STYLES.get(instance.status, "")
        table.add_row(
            instance.scheduled_at.astimezone(tz).strftime("%H:%M"),
            template.title if template else instance.template_id,
            f"[{style}]{instance.status.value}[/{style}]",
            str(instance.snooze_count),
            instance.id,
        )
    console.print(table)


@app.command()
def today() -> None:
    """Show today's sessions."""
    orchestrator_instances = _run(lambda orchestrator: orchestrator.tick())
    _print_instances(orchestrator_instances, "Today")


@app.command("next")
def next_due() -> None:
    """Show the session the primary call-to-action points at."""

    async def action(orchestrator: SessionOrchestrator) -> DailySessionInstance | None:
        return orchestrator.next_due()

    instance = _run(action)
    if instance is None:
        console.print("[green]Nothing due. The mandala rests.[/green]")
        return
    template = get_template_by_id(instance.template_id)
    console.print(f"[bold]{template.title if template else instance.template_id}[/bold] ({instance.status.value})")
    if template:
        console.print(f"[dim]{template.short_prompt}[/dim]")


def _report(result: DailySessionInstance | None, verb: str, instance_id: str) -> None:
    if result is None:
        console.print(f"[yellow]Nothing to {verb}: {instance_id} is unknown or not eligible[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ {instance_id} -> {result.status.value}[/green]")


@app.command()
def start(instance_id: str = typer.Argument(..., help="Instance id, e.g. 2026-01-01_session1_waking_view")) -> None:
    """Start a session."""
    _report(_run(lambda orchestrator: orchestrator.start(instance_id)), "start", instance_id)


@app.command()
def complete(instance_id: str = typer.Argument(..., help="Instance id")) -> None:
    """Mark a session as completed."""
    _report(_run(lambda orchestrator: orchestrator.complete(instance_id)), "complete", instance_id)


@app.command()
def skip(instance_id: str = typer.Argument(..., help="Instance id")) -> None:
    """Skip a session."""
    _report(_run(lambda orchestrator: orchestrator.skip(instance_id)), "skip", instance_id)


@app.command()
def snooze(
    instance_id: str = typer.Argument(..., help="Instance id"),
    minutes: int = typer.Argument(10, help="Minutes to snooze"),
) -> None:
    """Snooze a session by a number of minutes."""
    _report(_run(lambda orchestrator: orchestrator.snooze(instance_id, minutes)), "snooze", instance_id)


@app.command()
def history(days: int = typer.Option(14, "--days", "-d", help="Number of days to show")) -> None:
    """Show completion history."""
    summaries = _run(lambda orchestrator: orchestrator.get_history(days))
    table = Table(title=f"Last {days} days")
    table.add_column("Date")
    table.add_column("Completed", justify="right")
    table.add_column("Extra min", justify="right")
    table.add_column("")
    for summary in summaries:
        marker = "[bold magenta]✿ full mandala[/bold magenta]" if summary.is_full_mandala else ""
        table.add_row(summary.date, f"{summary.completed_count}/{summary.total_count}", str(summary.extra_minutes), marker)
    console.print(table)


@app.command()
def events(limit: int = typer.Option(20, "--limit", "-n", help="Number of events to show")) -> None:
    """Show the most recent lifecycle events."""
    entries = _run(lambda orchestrator: orchestrator.get_recent_events(limit))
    table = Table(title="Events")
    table.add_column("Timestamp")
    table.add_column("Type")
    table.add_column("Instance")
    table.add_column("Metadata", style="dim")
    for entry in entries:
        table.add_row(entry.timestamp.isoformat(timespec="seconds"), entry.event_type.value, entry.instance_id, str(entry.metadata or ""))
    console.print(table)


@app.command()
def extra(minutes: int = typer.Argument(..., help="Minutes of ad-hoc practice to record for today")) -> None:
    """Record extra (unscheduled) practice minutes."""
    total = _run(lambda orchestrator: orchestrator.record_extra_practice(minutes))
    if total is None:
        console.print("[red]Extra minutes were not recorded[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ {total} extra minutes today[/green]")


@app.command()
def notifications(enabled: bool = typer.Argument(..., help="true to enable reminders, false to disable")) -> None:
    """Turn reminders on or off."""
    result = _run(lambda orchestrator: orchestrator.update_app_settings(notifications_enabled=enabled))
    console.print(f"[green]✓ notifications_enabled={result.notifications_enabled}[/green]")


@schedule_app.command("show")
def schedule_show() -> None:
    """Show the current schedule."""

    async def action(orchestrator: SessionOrchestrator):
        return orchestrator.user_schedule

    current = _run(action)
    table = Table(title="Schedule")
    table.add_column("Session")
    table.add_column("Id", style="dim")
    table.add_column("Time")
    table.add_column("Enabled")
    for template in DEFAULT_SESSIONS:
        table.add_row(
            template.title,
            template.id,
            current.session_times.get(template.id, template.default_time),
            "yes" if current.enabled_sessions.get(template.id, False) else "no",
        )
    console.print(table)
    quiet = current.quiet_hours
    console.print(f"Quiet hours: {quiet.start}-{quiet.end} ({'on' if quiet.enabled else 'off'})")
    console.print(f"Grace window: {current.grace_window_min} min, snooze options: {current.snooze_options_min}")


@schedule_app.command("set-time")
def schedule_set_time(
    template_id: str = typer.Argument(..., help="Template id"),
    time_of_day: str = typer.Argument(..., help="Time of day, HH:mm"),
) -> None:
    """Change the time of one session."""
    if get_template_by_id(template_id) is None:
        console.print(f"[red]Unknown session: {template_id}[/red]")
        raise typer.Exit(code=1)
    try:
        _run(lambda orchestrator: orchestrator.update_user_schedule(session_times={template_id: time_of_day}))
    except ValidationError as e:
        console.print(f"[red]Invalid time of day: {time_of_day}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"[green]✓ {template_id} at {time_of_day}[/green]")


@schedule_app.command("enable")
def schedule_enable(
    template_id: str = typer.Argument(..., help="Template id"),
    enabled: bool = typer.Option(True, "--on/--off", help="Enable or disable the session"),
) -> None:
    """Enable or disable one session."""
    if get_template_by_id(template_id) is None:
        console.print(f"[red]Unknown session: {template_id}[/red]")
        raise typer.Exit(code=1)
    _run(lambda orchestrator: orchestrator.update_user_schedule(enabled_sessions={template_id: enabled}))
    console.print(f"[green]✓ {template_id} {'enabled' if enabled else 'disabled'}[/green]")


@schedule_app.command("quiet-hours")
def schedule_quiet_hours(
    start_time: str = typer.Argument(..., help="Start, HH:mm"),
    end_time: str = typer.Argument(..., help="End, HH:mm"),
    enabled: bool = typer.Option(True, "--on/--off", help="Enable or disable quiet hours"),
) -> None:
    """Set the quiet-hours window."""
    try:
        _run(
            lambda orchestrator: orchestrator.update_user_schedule(
                quiet_hours={"start": start_time, "end": end_time, "enabled": enabled}
            )
        )
    except ValidationError as e:
        console.print(f"[red]Invalid quiet hours: {start_time}-{end_time}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"[green]✓ quiet hours {start_time}-{end_time} ({'on' if enabled else 'off'})[/green]")


@app.command()
def run() -> None:
    """Run the session loop: periodic ticks and in-process reminders until Ctrl-C."""

    async def main() -> None:
        orchestrator, store = _build_orchestrator()
        await orchestrator.initialize()
        runner = SessionRunner(orchestrator, interval_seconds=settings.tick_interval_seconds)
        runner.start()
        console.print("[bold cyan]Session loop running. Press Ctrl-C to stop.[/bold cyan]")
        try:
            await asyncio.Event().wait()
        finally:
            await runner.stop()
            await orchestrator.close()
            await store.close()

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Session loop interrupted")


@app.command()
def reset(confirm: bool = typer.Option(False, "--confirm", help="Confirm deletion (required for safety)")) -> None:
    """Delete all persisted state and regenerate today."""
    if not confirm:
        console.print("[red]Error:[/red] --confirm flag is required for safety", style="bold red")
        raise typer.Exit(code=1)
    _run(lambda orchestrator: orchestrator.reset())
    console.print("[green]✓ All data cleared[/green]")


if __name__ == "__main__":
    app()
