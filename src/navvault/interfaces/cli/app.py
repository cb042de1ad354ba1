"""CLI application for NavVault using Rich and Typer."""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from navvault.core.config import setup_logging, validate_environment
from navvault.core.errors import NavVaultError
from navvault.core.factory import Services, attach_mailbox_logging, build_services
from navvault.core.types import (
    ActivityRecord,
    ActivityType,
    CalendarEvent,
    Recurrence,
    Reminder,
    TaskPriority,
    TaskSortOrder,
    TaskStatus,
)
from navvault.services.widget import WidgetBridge

app = typer.Typer(
    name="navvault",
    help="NavVault CLI - tasks, calendar and activities in a plain-text vault",
    no_args_is_help=True,
)
activity_app = typer.Typer(help="Activity log", no_args_is_help=True)
calendar_app = typer.Typer(help="Calendar events", no_args_is_help=True)
tasks_app = typer.Typer(help="Project tasks", no_args_is_help=True)
widget_app = typer.Typer(help="Act as the widget process", no_args_is_help=True)
app.add_typer(activity_app, name="activity")
app.add_typer(calendar_app, name="calendar")
app.add_typer(tasks_app, name="tasks")
app.add_typer(widget_app, name="widget")

console = Console()

_state: dict[str, object] = {}

STATUS_NAMES = {
    "todo": TaskStatus.NOT_STARTED,
    "doing": TaskStatus.IN_PROGRESS,
    "done": TaskStatus.COMPLETED,
}


def _services() -> Services:
    services = _state.get("services")
    if services is None:
        services = build_services(app_group_dir=_state.get("app_group_dir"))
        attach_mailbox_logging(services.mailbox)
        _state["services"] = services
    return services


def _fail(error: Exception) -> NoReturn:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    raise typer.Exit(1)


def _parse_time(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now().replace(microsecond=0)
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Not an ISO time: {value}")


def _parse_activity(value: str) -> ActivityType:
    activity_type = ActivityType.parse(value)
    if activity_type is None:
        choices = ", ".join(t.value for t in ActivityType)
        raise typer.BadParameter(f"Unknown activity {value!r} (choose from {choices})")
    return activity_type


def _parse_status(value: str) -> TaskStatus:
    status = STATUS_NAMES.get(value.lower())
    if status is None:
        raise typer.BadParameter(f"Status must be one of {', '.join(STATUS_NAMES)}")
    return status


def _parse_date(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Not an ISO date: {value}")


def _print_events(title: str, events: list[CalendarEvent]) -> None:
    if not events:
        console.print("[dim]No events.[/dim]")
        return
    table = Table(title=title, show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Title")
    table.add_column("Repeat")
    for event in events:
        table.add_row(
            str(event.event_id),
            event.start.strftime("%Y-%m-%d %H:%M"),
            event.end.strftime("%Y-%m-%d %H:%M"),
            escape(event.title),
            event.recurrence.value if event.recurrence else "",
        )
    console.print(table)


# --- Top level ---


@app.callback()
def main(
    app_group: Optional[str] = typer.Option(
        None,
        "--app-group",
        "-g",
        help="Shared app group directory (default: $NAVVAULT_APP_GROUP_DIR or ~/.navvault)",
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """NavVault CLI."""
    setup_logging()
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    if app_group:
        _state["app_group_dir"] = Path(app_group).expanduser()
    else:
        is_valid, message = validate_environment()
        if not is_valid:
            _fail(ValueError(message))


@app.command()
def grant(path: str = typer.Argument(..., help="Vault directory")):
    """Grant access to a vault directory."""
    try:
        root = _services().access.grant(path)
    except NavVaultError as e:
        _fail(e)
    console.print(f"[green]Vault granted: {root}[/green]")


@app.command()
def logs(
    limit: int = typer.Option(50, "--limit", "-n", help="Lines to show"),
    clear: bool = typer.Option(False, "--clear", help="Delete persisted logs"),
):
    """Show logs persisted by either process."""
    mailbox = _services().mailbox
    if clear:
        mailbox.clear_logs()
        console.print("[yellow]Logs cleared[/yellow]")
        return
    lines = mailbox.logs()[-limit:]
    if not lines:
        console.print("[dim]No logs yet.[/dim]")
    for line in lines:
        console.print(line, markup=False, highlight=False)


# --- Activities ---


@activity_app.command("add")
def activity_add(
    kind: str = typer.Argument(..., help="Sleep, Wake, Meal or Exercise"),
    at: Optional[str] = typer.Option(None, "--at", help="ISO time (default: now)"),
):
    """Log an activity."""
    services = _services()
    try:
        record = services.activities.push(_parse_activity(kind), _parse_time(at))
    except NavVaultError as e:
        _fail(e)
    console.print(f"[green]Logged {record.type.value} at {record.time}[/green]")


@activity_app.command("latest")
def activity_latest(
    count: int = typer.Argument(10, help="How many to show"),
    now: Optional[str] = typer.Option(
        None, "--now", help="ISO time to look back from (default: now)"
    ),
):
    """Show the most recent activities."""
    try:
        records = _services().activity_store.load_latest(count, now=_parse_time(now))
    except NavVaultError as e:
        _fail(e)
    if not records:
        console.print("[dim]No activities yet.[/dim]")
        return
    table = Table(title="Activities", show_header=True)
    table.add_column("Time")
    table.add_column("Type", style="cyan")
    for record in records:
        table.add_row(record.time.strftime("%Y-%m-%d %H:%M:%S"), record.type.value)
    console.print(table)


@activity_app.command("rm")
def activity_rm(
    kind: str = typer.Argument(..., help="Activity type"),
    at: str = typer.Argument(..., help="ISO time of the activity"),
):
    """Remove an activity."""
    record = ActivityRecord(type=_parse_activity(kind), time=_parse_time(at))
    try:
        removed = _services().activities.remove(record)
    except NavVaultError as e:
        _fail(e)
    if removed:
        console.print("[green]Removed[/green]")
    else:
        console.print("[yellow]No matching activity[/yellow]")


@activity_app.command("mv")
def activity_mv(
    kind: str = typer.Argument(..., help="Activity type"),
    at: str = typer.Argument(..., help="Current ISO time"),
    to: str = typer.Argument(..., help="New ISO time"),
):
    """Move an activity to a new time."""
    old = ActivityRecord(type=_parse_activity(kind), time=_parse_time(at))
    try:
        new = _services().activities.update(old, _parse_time(to))
    except NavVaultError as e:
        _fail(e)
    console.print(f"[green]Moved to {new.time}[/green]")


# --- Calendar ---


@calendar_app.command("add")
def calendar_add(
    title: str = typer.Argument(..., help="Event title"),
    start: str = typer.Option(..., "--start", "-s", help="ISO start time"),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="ISO end time"),
    minutes: int = typer.Option(60, "--minutes", "-m", help="Duration when --end is omitted"),
    remind: list[int] = typer.Option([], "--remind", "-r", help="Minutes before"),
    repeat: Optional[str] = typer.Option(None, "--repeat", help="D, W, M or Y"),
    notes: Optional[str] = typer.Option(None, "--notes"),
    location: Optional[str] = typer.Option(None, "--location"),
    url: Optional[str] = typer.Option(None, "--url"),
    project: Optional[int] = typer.Option(None, "--project", help="Project id"),
):
    """Add a calendar event."""
    start_time = _parse_time(start)
    start_ts = int(start_time.timestamp())
    end_ts = int(_parse_time(end).timestamp()) if end else start_ts + minutes * 60
    try:
        recurrence = Recurrence(repeat.upper()) if repeat else None
    except ValueError:
        raise typer.BadParameter("Repeat must be D, W, M or Y")

    services = _services()
    event = CalendarEvent(
        title=title,
        start_time=start_ts,
        end_time=end_ts,
        project_id=project,
        reminders=tuple(Reminder(minutes_before=m) for m in remind),
        recurrence=recurrence,
        notes=notes,
        location=location,
        url=url,
        event_id=services.calendar_store.new_event_id(),
    )
    try:
        services.calendar_store.load(event.year)
        services.calendar_store.append(event)
    except NavVaultError as e:
        _fail(e)
    console.print(f"[green]Added event {event.event_id}[/green]")


@calendar_app.command("day")
def calendar_day(day: Optional[str] = typer.Argument(None, help="ISO date (default: today)")):
    """List events on a day."""
    target = _parse_date(day)
    store = _services().calendar_store
    try:
        store.load(target.year)
    except NavVaultError as e:
        _fail(e)
    _print_events(f"Events on {target}", store.events_for_day(target))


@calendar_app.command("month")
def calendar_month(day: Optional[str] = typer.Argument(None, help="Any ISO date in the month")):
    """List events in a month."""
    target = _parse_date(day)
    store = _services().calendar_store
    try:
        store.load(target.year)
    except NavVaultError as e:
        _fail(e)
    _print_events(f"Events in {target:%Y-%m}", store.events_for_month(target))


@calendar_app.command("rm")
def calendar_rm(
    event_id: int = typer.Argument(..., help="Event id"),
    year: Optional[int] = typer.Option(None, "--year", help="Year file (default: this and next)"),
):
    """Delete an event."""
    store = _services().calendar_store
    try:
        if year:
            store.load(year)
        else:
            store.setup()
        store.delete(event_id)
    except NavVaultError as e:
        _fail(e)
    console.print(f"[green]Deleted event {event_id}[/green]")


@calendar_app.command("reconcile")
def calendar_reconcile(year: int = typer.Argument(..., help="Year to compact")):
    """Compact a calendar year file now."""
    try:
        kept = _services().calendar_store.reconcile(year)
    except NavVaultError as e:
        _fail(e)
    console.print(f"[green]{kept} live events in {year}[/green]")


# --- Tasks ---


@tasks_app.command("list")
def tasks_list(
    sort: TaskSortOrder = typer.Option(
        TaskSortOrder.CREATION_DESC, "--sort", help="Sort order"
    ),
):
    """List tasks across all projects."""
    service = _services().tasks
    try:
        service.load_all_tasks()
    except NavVaultError as e:
        _fail(e)
    tasks = service.sorted_tasks(order=sort)
    if not tasks:
        console.print("[dim]No tasks.[/dim]")
        return
    table = Table(title="Tasks", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column(" ")
    table.add_column("Name")
    table.add_column("Priority")
    table.add_column("Due")
    table.add_column("Project", style="cyan")
    for task in tasks:
        table.add_row(
            str(task.id),
            escape(f"[{task.status.value}]"),
            escape(task.name),
            task.priority.value,
            task.due_date.isoformat() if task.due_date else "",
            escape(task.project_name),
        )
    console.print(table)


@tasks_app.command("add")
def tasks_add(
    name: str = typer.Argument(..., help="Task text"),
    project: int = typer.Option(..., "--project", "-p", help="Project id"),
    priority: str = typer.Option("Normal", "--priority", help="Urgent, High, Normal or Low"),
    due: Optional[str] = typer.Option(None, "--due", help="ISO due date"),
    tag: list[str] = typer.Option([], "--tag", "-t", help="Tag (repeatable)"),
):
    """Add a task to a project."""
    level = TaskPriority.parse(priority)
    if level is None:
        raise typer.BadParameter("Priority must be Urgent, High, Normal or Low")
    service = _services().tasks
    try:
        task = service.add_task(
            name,
            project,
            priority=level,
            due_date=_parse_date(due) if due else None,
            tags=tuple(tag),
        )
    except NavVaultError as e:
        _fail(e)
    console.print(f"[green]Added task {task.id} to {task.project_name}[/green]")


@tasks_app.command("status")
def tasks_status(
    task_id: int = typer.Argument(..., help="Task id"),
    status: str = typer.Argument(..., help="todo, doing or done"),
):
    """Set a task's status."""
    try:
        task = _services().tasks.update_task_status(task_id, _parse_status(status))
    except NavVaultError as e:
        _fail(e)
    console.print(f"[green]{escape(task.name)}: {escape('[' + task.status.value + ']')}[/green]")


@tasks_app.command("drain")
def tasks_drain():
    """Apply task updates queued by the widget and pending widget activities."""
    services = _services()
    try:
        applied = services.tasks.drain_pending_updates()
        written = services.activities.process_pending_activities()
    except NavVaultError as e:
        _fail(e)
    console.print(f"[green]Applied {applied} task updates, wrote {written} activities[/green]")


# --- Widget ---


@widget_app.command("toggle")
def widget_toggle(task_id: int = typer.Argument(..., help="Task id")):
    """Toggle a task from the widget side."""
    status = _services().widget.toggle_task(task_id)
    console.print(f"[green]Queued status {escape('[' + status.value + ']')} for {task_id}[/green]")


@widget_app.command("activity")
def widget_activity(
    kind: str = typer.Argument(..., help="Activity type"),
    queue: bool = typer.Option(False, "--queue", help="Queue instead of writing to the vault"),
):
    """Log an activity from the widget side."""
    services = _services()
    widget = services.widget
    if queue:
        widget = WidgetBridge(services.mailbox)
    record = widget.log_activity(_parse_activity(kind))
    console.print(f"[green]Logged {record.type.value} at {record.time}[/green]")


def run_cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run_cli()
