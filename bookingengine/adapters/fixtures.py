"""
Load schedule records from JSON fixtures.

Used by the in-memory store (mock mode) and to seed a database.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pendulum

from ..domain.models import (
    Availability,
    AvailabilityException,
    Booking,
    Break,
    Client,
    Provider,
    Service,
)
from ..domain.time_grid import Interval, parse_date

DEFAULT_FIXTURE = Path(__file__).parent / "mock_schedule_data.json"


@dataclass
class ScheduleFixture:
    """Bundle of records for one or more providers."""
    providers: List[Provider] = field(default_factory=list)
    services: List[Service] = field(default_factory=list)
    clients: List[Client] = field(default_factory=list)
    availabilities: List[Availability] = field(default_factory=list)
    breaks: List[Break] = field(default_factory=list)
    exceptions: List[AvailabilityException] = field(default_factory=list)
    bookings: List[Booking] = field(default_factory=list)


def _decimal(value: Any) -> Decimal | None:
    return None if value is None else Decimal(str(value))


def _datetime(value: Any):
    return None if value is None else pendulum.parse(value)


def blackouts_from_records(records: Optional[Iterable[Dict[str, str]]]) -> Tuple[Interval, ...]:
    """Turn ``[{"start_time", "end_time"}]`` records into intervals."""
    return tuple(Interval.from_strings(r["start_time"], r["end_time"]) for r in records or ())


def blackouts_to_records(periods: Iterable[Interval]) -> List[Dict[str, str]]:
    return [{"start_time": p.start_str(), "end_time": p.end_str()} for p in periods]


def fixture_from_dict(data: Dict[str, Any]) -> ScheduleFixture:
    """
    Build records from a plain mapping.

    Raises:
        ValueError: If a record is invalid (including malformed times)
        KeyError: If a required field is missing
    """
    return ScheduleFixture(
        providers=[
            Provider(id=p["id"], timezone=p.get("timezone", "UTC"), name=p.get("name"))
            for p in data.get("providers", [])
        ],
        services=[
            Service(
                id=s["id"],
                name=s["name"],
                duration_minutes=s["duration_minutes"],
                price=_decimal(s.get("price")),
                provider_id=s.get("provider_id"),
                archived=s.get("archived", False),
                deleted_at=_datetime(s.get("deleted_at")),
                buffer_minutes=s.get("buffer_minutes", 0),
                group_size=s.get("group_size"),
                max_bookings_per_client_per_day=s.get("max_bookings_per_client_per_day"),
                blackout_periods=blackouts_from_records(s.get("blackout_periods")),
            )
            for s in data.get("services", [])
        ],
        clients=[
            Client(
                id=c["id"],
                name=c["name"],
                email=c["email"],
                phone=c.get("phone"),
                deleted_at=_datetime(c.get("deleted_at")),
                delete_reason=c.get("delete_reason"),
            )
            for c in data.get("clients", [])
        ],
        availabilities=[
            Availability(
                provider_id=a["provider_id"],
                weekday=a["weekday"],
                start_time=a["start_time"],
                end_time=a["end_time"],
                id=a.get("id"),
            )
            for a in data.get("availabilities", [])
        ],
        breaks=[
            Break(
                provider_id=b["provider_id"],
                weekday=b["weekday"],
                start_time=b["start_time"],
                end_time=b["end_time"],
                id=b.get("id"),
            )
            for b in data.get("breaks", [])
        ],
        exceptions=[
            AvailabilityException(
                provider_id=e["provider_id"],
                date=parse_date(e["date"]),
                is_available=e["is_available"],
                start_time=e.get("start_time"),
                end_time=e.get("end_time"),
                id=e.get("id"),
                reason=e.get("reason"),
            )
            for e in data.get("exceptions", [])
        ],
        bookings=[
            Booking(
                date=parse_date(b["date"]),
                start_time=b["start_time"],
                end_time=b["end_time"],
                service_id=b["service_id"],
                client_id=b["client_id"],
                provider_id=b.get("provider_id"),
                status=b.get("status", "confirmed"),
                id=b.get("id"),
                booking_ref=b.get("booking_ref"),
                group_count=b.get("group_count"),
                notes=b.get("notes"),
            )
            for b in data.get("bookings", [])
        ],
    )


def load_fixture(path: Path = DEFAULT_FIXTURE) -> ScheduleFixture:
    """Load a JSON fixture file."""
    with open(path, "r", encoding="utf-8") as f:
        return fixture_from_dict(json.load(f))
