"""Operator CLI for the clinic scheduling client."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clinic_os.config import get_settings
from clinic_os.gateway import AppointmentGateway, GatewayError
from clinic_os.ledger import DateBucket, LedgerViewModel
from clinic_os.preferences import JsonFilePreferenceStore
from clinic_os.roles import Caller, CallerRole, RoleBinding
from clinic_os.scheduling.availability import resolve_slots
from clinic_os.scheduling.conflicts import Conflict, ConflictDetector
from clinic_os.scheduling.models import AppointmentStatus, AppointmentType, Priority
from clinic_os.scheduling.timemodel import BadTime, WallClock, parse_date

app = typer.Typer(
    name="clinic-os",
    help="Appointment scheduling client for the clinic API",
    add_completion=False,
)
console = Console()


def get_gateway() -> AppointmentGateway:
    """Get a gateway configured from settings."""
    return AppointmentGateway.from_settings(get_settings())


def get_preferences() -> JsonFilePreferenceStore:
    return JsonFilePreferenceStore(get_settings().preferences_path)


def _run(coro):
    try:
        return asyncio.run(coro)
    except GatewayError as e:
        console.print(f"[red]{type(e).__name__}: {e.message}[/red]")
        raise typer.Exit(1)


def _parse_day(value: str):
    try:
        return parse_date(value)
    except BadTime as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


_STATUS_STYLE = {
    AppointmentStatus.SCHEDULED: "cyan",
    AppointmentStatus.CONFIRMED: "green",
    AppointmentStatus.COMPLETED: "dim",
    AppointmentStatus.CANCELLED: "red",
    AppointmentStatus.NO_SHOW: "yellow",
}


@app.command()
def slots(
    clinician: str = typer.Argument(..., help="Clinician id"),
    day: str = typer.Argument(..., help="Date as YYYY-MM-DD"),
    duration: Optional[int] = typer.Option(
        None, "--duration", "-d", help="Slot length in minutes (default: from availability)"
    ),
    only_free: bool = typer.Option(False, "--free", help="Show available slots only"),
):
    """Show the resolved slots for a clinician on a date."""
    target = _parse_day(day)

    async def _fetch():
        gateway = get_gateway()
        try:
            return await gateway.availability(clinician, target)
        finally:
            await gateway.aclose()

    snapshot = _run(_fetch())
    resolved = resolve_slots(
        snapshot.rules, snapshot.exceptions, snapshot.bookings, target,
        slot_duration=duration, clinician_id=clinician,
    )
    if only_free:
        resolved = [s for s in resolved if s.available]

    if not resolved:
        console.print(f"[yellow]No slots for {clinician} on {target.isoformat()}[/yellow]")
        return

    table = Table(title=f"Slots for {clinician} on {target.isoformat()}")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Status")
    for slot in resolved:
        status = "[green]available[/green]" if slot.available else "[red]booked[/red]"
        table.add_row(slot.display, WallClock.parse(slot.end).display(), status)
    console.print(table)


@app.command()
def check(
    clinician: str = typer.Argument(..., help="Clinician id"),
    day: str = typer.Argument(..., help="Date as YYYY-MM-DD"),
    time: str = typer.Argument(..., help="Start time as HH:MM"),
    duration: int = typer.Option(30, "--duration", "-d", help="Length in minutes"),
):
    """Ask the server whether a time is free."""
    target = _parse_day(day)
    try:
        start = WallClock.parse(time)
    except BadTime as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    async def _check():
        gateway = get_gateway()
        try:
            return await ConflictDetector(gateway).check(clinician, target, start, duration)
        finally:
            await gateway.aclose()

    verdict = _run(_check())
    if isinstance(verdict, Conflict):
        lines = "\n".join(o.describe() for o in verdict.occupants)
        console.print(Panel(lines, title="[red]Conflict[/red]", border_style="red"))
        raise typer.Exit(2)
    console.print(f"[green]{start} on {target.isoformat()} is free[/green]")


@app.command()
def ledger(
    search: str = typer.Option("", "--search", "-s", help="Match patient, clinician, type or reason"),
    status: Optional[AppointmentStatus] = typer.Option(None, "--status", help="Exact status"),
    appointment_type: Optional[AppointmentType] = typer.Option(None, "--type", help="Exact type"),
    priority: Optional[Priority] = typer.Option(None, "--priority", help="Exact priority"),
    bucket: DateBucket = typer.Option(DateBucket.ALL, "--when", help="all, today, thisWeek, thisMonth"),
    page: int = typer.Option(1, "--page", "-p", help="Page number"),
    page_size: Optional[int] = typer.Option(
        None, "--page-size", help="Rows per page (remembered for next time)"
    ),
    as_clinician: Optional[str] = typer.Option(
        None, "--as-clinician", help="Only show this clinician's bookings"
    ),
):
    """List appointments: upcoming first, then past."""
    settings = get_settings()
    binding = RoleBinding(Caller(id=as_clinician, role=CallerRole.DOCTOR)) if as_clinician else None

    async def _load():
        gateway = get_gateway()
        try:
            view = LedgerViewModel(
                gateway,
                get_preferences(),
                view_name=settings.ledger_view_name,
                binding=binding,
                fetch_page_size=settings.ledger_fetch_page_size,
                default_page_size=settings.default_page_size,
            )
            await view.load()
            return view
        finally:
            await gateway.aclose()

    view = _run(_load())
    if view.error:
        console.print(f"[red]Could not load appointments: {view.error}[/red]")
        raise typer.Exit(1)

    if page_size is not None:
        view.set_page_size(page_size)
    view.set_filter(search=search, status=status, type=appointment_type, priority=priority, bucket=bucket)
    view.set_page(page)

    rows = view.visible
    if not rows:
        console.print("[yellow]No appointments match[/yellow]")
        return

    table = Table(title=f"Appointments (page {view.page}/{view.total_pages}, {len(view.filtered)} total)")
    table.add_column("Date")
    table.add_column("Time")
    table.add_column("Patient")
    table.add_column("Clinician")
    table.add_column("Type")
    table.add_column("Priority")
    table.add_column("Status")
    for b in rows:
        style = _STATUS_STYLE.get(b.status, "white")
        table.add_row(
            b.day.isoformat(),
            b.start.display(),
            b.patient_name or b.patient_id,
            b.clinician_name or b.clinician_id,
            b.type.value,
            b.priority.value,
            f"[{style}]{b.status.value}[/{style}]",
        )
    console.print(table)


@app.command()
def stats():
    """Show appointment totals and the completion rate."""

    async def _stats():
        gateway = get_gateway()
        try:
            return await gateway.stats()
        finally:
            await gateway.aclose()

    summary = _run(_stats())

    console.print(
        Panel(
            f"Total: {summary.total}   Today: {summary.today}   Upcoming: {summary.upcoming}\n"
            f"Completion rate: {summary.completion_rate}%",
            title="Appointments",
        )
    )
    if summary.status_histogram:
        table = Table(title="By status")
        table.add_column("Status")
        table.add_column("Count", justify="right")
        for name, count in sorted(summary.status_histogram.items()):
            table.add_row(name, str(count))
        console.print(table)
    if summary.type_histogram:
        table = Table(title="By type")
        table.add_column("Type")
        table.add_column("Count", justify="right")
        for name, count in sorted(summary.type_histogram.items(), key=lambda kv: -kv[1]):
            table.add_row(name, str(count))
        console.print(table)


@app.command()
def version():
    """Show version information."""
    from clinic_os import __version__

    console.print(f"clinic-os v{__version__}")
