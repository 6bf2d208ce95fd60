"""
Main CLI application using Typer.
"""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from ..adapters.database import build_engine, build_session_factory, init_db
from ..adapters.fixtures import load_fixture
from ..adapters.memory_store import InMemoryScheduleStore
from ..adapters.sql_store import SqlScheduleStore
from ..config import AppConfig
from ..domain.exceptions import BookingEngineError
from ..domain.time_grid import parse_date
from ..services.availability import AvailabilityService
from ..services.reservation import SlotReservationService

app = typer.Typer(
    name="bookingengine",
    help="Resolve provider availability and book appointment slots",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Mock-Daten nutzen statt der Datenbank.")
]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config = AppConfig.load_or_default(config_file)
    _configure_logging(config.log_level)
    return config


def _build_services(config: AppConfig, mock: bool) -> Tuple[AvailabilityService, SlotReservationService]:
    if mock:
        console.print("[yellow]⚠  MOCK-MODUS: Verwende Test-Daten[/yellow]\n")
        store = InMemoryScheduleStore.from_json()
    else:
        store = SqlScheduleStore.from_url(config.database_url)

    availability = AvailabilityService(store, settings=config.slots)
    reservation = SlotReservationService(availability, config.reservation)
    return availability, reservation


def _fail(message: str) -> None:
    console.print(f"[bold red]Fehler:[/bold red] {message}")
    raise typer.Exit(1)


def _fail_with(error: BookingEngineError) -> None:
    details = error.to_dict()
    extra = ", ".join(
        f"{key}={value}" for key, value in details.items()
        if key not in ("error", "message") and value is not None
    )
    _fail(f"{error} [dim]({details['error']}{'; ' + extra if extra else ''})[/dim]")


@app.command()
def slots(
    provider_id: Annotated[int, typer.Argument(help="Provider id")],
    service_id: Annotated[int, typer.Argument(help="Service id")],
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD), default today")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD), default start + 6 days")] = None,
    granularity: Annotated[Optional[int], typer.Option("--granularity", "-g", help="Minutes between start times")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    List open slots of a service.

    Examples:

        bookingengine slots 1 1 --start 2026-11-02 --end 2026-11-06

        bookingengine slots 1 2 --mock
    """
    try:
        config = _load_config(config_file)
        availability, _ = _build_services(config, mock)
        provider = availability.get_provider(provider_id)

        start_date = parse_date(start) if start else pendulum.now(provider.timezone).date()
        end_date = parse_date(end) if end else start_date + timedelta(days=6)

        found = availability.get_open_slots(
            provider_id=provider.id,
            service_id=service_id,
            start_date=start_date,
            end_date=end_date,
            granularity_minutes=granularity
        )

        if not found:
            console.print(
                "[yellow]⚠ Keine verfügbaren Slots gefunden.[/yellow]\n"
                "Versuchen Sie einen längeren Zeitraum oder eine andere Leistung."
            )
            return

        table = Table(
            title=f"Freie Slots: {provider.name or provider.id} ({provider.timezone})",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Datum", style="bold")
        table.add_column("Zeit")
        table.add_column("Tageszeit", style="dim")

        for slot in found:
            table.add_row(
                slot.date.strftime("%a %Y-%m-%d"),
                f"{slot.start_time} - {slot.end_time}",
                slot.label
            )

        console.print(table)
        console.print(f"\n[bold green]✓ {len(found)} verfügbare Slot(s) gefunden[/bold green]\n")

    except BookingEngineError as e:
        _fail_with(e)
    except (FileNotFoundError, ValueError, SQLAlchemyError) as e:
        _fail(str(e))


@app.command()
def hours(
    provider_id: Annotated[int, typer.Argument(help="Provider id")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show a provider's resolved schedule for one day.
    """
    try:
        config = _load_config(config_file)
        availability, _ = _build_services(config, mock)
        schedule = availability.day_schedule(provider_id, parse_date(day))

        def _fmt(intervals):
            return ", ".join(str(i) for i in intervals) or "-"

        status = "[red]geschlossen (ganztägig)[/red]" if schedule.closed_all_day else (
            "[green]geöffnet[/green]" if schedule.is_open else "[yellow]keine Öffnungszeiten[/yellow]"
        )
        console.print(Panel.fit(
            f"[bold]Status:[/bold] {status}\n"
            f"[bold]Regulär:[/bold] {_fmt(schedule.recurring)}\n"
            f"[bold]Geöffnet:[/bold] {_fmt(schedule.open)}\n"
            f"[bold]Gesperrt:[/bold] {_fmt(schedule.blocked)}",
            title=f"Provider {provider_id} am {schedule.date.isoformat()}"
        ))

    except BookingEngineError as e:
        _fail_with(e)
    except (FileNotFoundError, ValueError, SQLAlchemyError) as e:
        _fail(str(e))


@app.command()
def book(
    service_id: Annotated[int, typer.Argument(help="Service id")],
    client_id: Annotated[int, typer.Argument(help="Client id")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    end_time: Annotated[Optional[str], typer.Argument(help="End time (HH:MM), default start + duration")] = None,
    provider_id: Annotated[Optional[int], typer.Option("--provider", "-p", help="Provider id if the service has none")] = None,
    group_count: Annotated[Optional[int], typer.Option("--group-count", help="Seats for group services")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Free-text notes")] = None,
    payment_option: Annotated[Optional[str], typer.Option("--payment-option", help="e.g. PAY_LATER")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Book a slot for a client.

    Examples:

        bookingengine book 1 2 2026-11-02 13:00

        bookingengine book 3 1 2026-11-02 08:00 --group-count 2 --mock
    """
    try:
        config = _load_config(config_file)
        _, reservation = _build_services(config, mock)

        booking = reservation.request_booking(
            service_id=service_id,
            client_id=client_id,
            date=day,
            start_time=start_time,
            end_time=end_time,
            provider_id=provider_id,
            group_count=group_count,
            notes=notes,
            payment_option=payment_option
        )

        console.print(Panel.fit(
            f"[bold green]✓ Buchung bestätigt[/bold green]\n\n"
            f"[bold]Referenz:[/bold] {booking.booking_ref}\n"
            f"[bold]Termin:[/bold] {booking.date.isoformat()} {booking.interval}\n"
            f"[bold]Provider:[/bold] {booking.provider_id}\n"
            f"[bold]Zahlung:[/bold] {booking.payment_status} ({booking.payment_amount if booking.payment_amount is not None else '-'})",
            title=f"Buchung #{booking.id}"
        ))

    except BookingEngineError as e:
        _fail_with(e)
    except (FileNotFoundError, ValueError, SQLAlchemyError) as e:
        _fail(str(e))


@app.command()
def cancel(
    booking_id: Annotated[int, typer.Argument(help="Booking id")],
    reason: Annotated[Optional[str], typer.Option("--reason", "-r", help="Cancellation reason")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Cancel a requested or confirmed booking.
    """
    try:
        config = _load_config(config_file)
        _, reservation = _build_services(config, mock)
        booking = reservation.cancel_booking(booking_id, reason)
        console.print(f"\n[green]✓ Buchung {booking.id} storniert.[/green]\n")

    except BookingEngineError as e:
        _fail_with(e)
    except (FileNotFoundError, ValueError, SQLAlchemyError) as e:
        _fail(str(e))


@app.command()
def reschedule(
    booking_id: Annotated[int, typer.Argument(help="Booking id")],
    day: Annotated[str, typer.Argument(help="New date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="New start time (HH:MM)")],
    end_time: Annotated[Optional[str], typer.Argument(help="New end time (HH:MM), default keeps the length")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Move a booking to another slot.

    Example:

        bookingengine reschedule 1 2026-11-03 14:00
    """
    try:
        config = _load_config(config_file)
        _, reservation = _build_services(config, mock)
        booking = reservation.reschedule_booking(
            booking_id, date=day, start_time=start_time, end_time=end_time
        )
        console.print(
            f"\n[green]✓ Buchung {booking.id} verschoben auf "
            f"{booking.date.isoformat()} {booking.interval}.[/green]\n"
        )

    except BookingEngineError as e:
        _fail_with(e)
    except (FileNotFoundError, ValueError, SQLAlchemyError) as e:
        _fail(str(e))


@app.command("init-db")
def init_database(
    seed: Annotated[Optional[Path], typer.Option("--seed", help="JSON fixture to import after creating tables")] = None,
    config_file: ConfigOption = None,
):
    """
    Create the database schema (and optionally import a fixture).
    """
    try:
        config = _load_config(config_file)
        engine = build_engine(config.database_url)
        init_db(engine)
        console.print(f"[green]✓ Schema angelegt:[/green] {engine.url.render_as_string(hide_password=True)}")

        if seed is not None:
            SqlScheduleStore(build_session_factory(engine)).import_fixture(load_fixture(seed))
            console.print(f"[green]✓ Daten importiert aus[/green] {seed}")

    except (FileNotFoundError, ValueError, KeyError, SQLAlchemyError) as e:
        _fail(str(e))


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookingengine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
