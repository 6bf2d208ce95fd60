"""
SQLAlchemy implementation of the schedule store.

Writes for one provider and day are serialized through a ``schedule_locks``
row: the reservation scope selects it ``FOR UPDATE`` (a no-op on SQLite) and,
when a booking was inserted or moved into the day, bumps its version with a
compare-and-set. A writer whose compare-and-set matches no row lost the race;
its transaction is rolled back and ``ConcurrencyConflict`` is raised.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, Iterator, List, Optional

import pendulum
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..domain.exceptions import BookingNotFound, ConcurrencyConflict
from ..domain.models import (
    Availability,
    AvailabilityException,
    Booking,
    BookingStatus,
    Break,
    Client,
    Payment,
    Provider,
    Service,
)
from .database import build_engine, build_session_factory, init_db, session_scope
from .fixtures import ScheduleFixture, blackouts_from_records, blackouts_to_records
from .orm import (
    AvailabilityExceptionRow,
    AvailabilityRow,
    BookingRow,
    BreakRow,
    ClientRow,
    PaymentRow,
    ProviderRow,
    ScheduleLockRow,
    ServiceRow,
)

logger = logging.getLogger(__name__)

_INACTIVE = [BookingStatus.CANCELLED.value, BookingStatus.REJECTED.value]


def _to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = pendulum.instance(value).in_timezone("UTC")
        return datetime(
            value.year, value.month, value.day,
            value.hour, value.minute, value.second, value.microsecond
        )
    return value


def _from_db(value: Optional[datetime]):
    if value is None:
        return None
    return pendulum.instance(value, tz="UTC")


def _active_filter():
    return and_(
        BookingRow.deleted_at.is_(None),
        func.lower(BookingRow.status).notin_(_INACTIVE),
    )


def _provider(row: ProviderRow) -> Provider:
    return Provider(id=row.id, timezone=row.timezone or "UTC", name=row.name)


def _service(row: ServiceRow) -> Service:
    return Service(
        id=row.id,
        name=row.name,
        duration_minutes=row.duration_minutes,
        price=row.price,
        provider_id=row.provider_id,
        archived=bool(row.archived),
        deleted_at=_from_db(row.deleted_at),
        buffer_minutes=row.buffer_minutes or 0,
        group_size=row.group_size,
        max_bookings_per_client_per_day=row.max_bookings_per_client_per_day,
        blackout_periods=blackouts_from_records(row.blackout_periods),
    )


def _client(row: ClientRow) -> Client:
    return Client(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        deleted_at=_from_db(row.deleted_at),
        delete_reason=row.delete_reason,
        created_at=_from_db(row.created_at),
        updated_at=_from_db(row.updated_at),
    )


def _payment(row: Optional[PaymentRow]) -> Optional[Payment]:
    if row is None:
        return None
    return Payment(
        booking_id=row.booking_id,
        amount=row.amount,
        status=row.status,
        id=row.id,
        link=row.link,
        created_at=_from_db(row.created_at),
    )


def _booking(row: BookingRow) -> Booking:
    return Booking(
        date=row.date,
        start_time=row.start_time,
        end_time=row.end_time,
        service_id=row.service_id,
        client_id=row.client_id,
        provider_id=row.provider_id,
        status=row.status,
        id=row.id,
        deleted_at=_from_db(row.deleted_at),
        cancel_reason=row.cancel_reason,
        payment_option=row.payment_option,
        payment_status=row.payment_status,
        payment_amount=row.payment_amount,
        payment_date=_from_db(row.payment_date),
        notes=row.notes,
        group_count=row.group_count,
        booking_ref=row.booking_ref,
        created_at=_from_db(row.created_at),
        updated_at=_from_db(row.updated_at),
        payment=_payment(row.payment),
    )


def _booking_values(booking: Booking) -> dict:
    return dict(
        date=booking.date,
        start_time=booking.start_time,
        end_time=booking.end_time,
        service_id=booking.service_id,
        client_id=booking.client_id,
        provider_id=booking.provider_id,
        status=booking.status.value,
        deleted_at=_to_utc_naive(booking.deleted_at),
        cancel_reason=booking.cancel_reason,
        payment_option=booking.payment_option,
        payment_status=booking.payment_status,
        payment_amount=booking.payment_amount,
        payment_date=_to_utc_naive(booking.payment_date),
        notes=booking.notes,
        group_count=booking.group_count,
        booking_ref=booking.booking_ref,
        updated_at=_to_utc_naive(booking.updated_at),
    )


def _bookings_on(provider_id: int, day: date):
    """Active bookings of a provider on a day, including provider-less legacy rows."""
    return (
        select(BookingRow)
        .outerjoin(ServiceRow, BookingRow.service_id == ServiceRow.id)
        .where(
            BookingRow.date == day,
            _active_filter(),
            or_(
                BookingRow.provider_id == provider_id,
                and_(BookingRow.provider_id.is_(None), ServiceRow.provider_id == provider_id),
            ),
        )
        .order_by(BookingRow.start_time, BookingRow.id)
    )


def _apply_update(session: Session, booking_id: int, mutate: Callable[[Booking], Booking]) -> Booking:
    """Load a booking row under lock, apply ``mutate`` and write the result back."""
    row = session.execute(
        select(BookingRow).where(BookingRow.id == booking_id).with_for_update()
    ).scalar_one_or_none()
    if row is None:
        raise BookingNotFound(booking_id)

    updated = mutate(_booking(row))
    for key, value in _booking_values(updated).items():
        setattr(row, key, value)
    session.flush()
    return _booking(row)


class _SqlReservation:
    """Reservation scope bound to one session."""

    def __init__(self, session: Session, provider_id: int, day: date) -> None:
        self._session = session
        self._provider_id = provider_id
        self._day = day
        self.changed = False

    def active_bookings(self) -> List[Booking]:
        rows = self._session.execute(_bookings_on(self._provider_id, self._day)).scalars().all()
        return [_booking(row) for row in rows]

    def client_booking_count(self, client_id: int) -> int:
        return self._session.execute(
            select(func.count(BookingRow.id)).where(
                BookingRow.client_id == client_id,
                BookingRow.date == self._day,
                _active_filter(),
            )
        ).scalar_one()

    def insert_booking(self, booking: Booking) -> Booking:
        row = BookingRow(**_booking_values(booking))
        row.created_at = _to_utc_naive(booking.created_at)
        self._session.add(row)
        self._session.flush()
        self.changed = True
        return _booking(row)

    def update_booking(self, booking_id: int, mutate: Callable[[Booking], Booking]) -> Booking:
        updated = _apply_update(self._session, booking_id, mutate)
        self.changed = True
        return updated


class SqlScheduleStore:
    """Schedule store backed by a relational database."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str, create_schema: bool = False) -> "SqlScheduleStore":
        engine = build_engine(database_url)
        if create_schema:
            init_db(engine)
        return cls(build_session_factory(engine))

    def get_provider(self, provider_id: int) -> Optional[Provider]:
        with session_scope(self._session_factory) as session:
            row = session.get(ProviderRow, provider_id)
            return _provider(row) if row else None

    def get_service(self, service_id: int) -> Optional[Service]:
        with session_scope(self._session_factory) as session:
            row = session.get(ServiceRow, service_id)
            return _service(row) if row else None

    def get_client(self, client_id: int) -> Optional[Client]:
        with session_scope(self._session_factory) as session:
            row = session.get(ClientRow, client_id)
            return _client(row) if row else None

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        with session_scope(self._session_factory) as session:
            row = session.get(BookingRow, booking_id)
            return _booking(row) if row else None

    def list_availabilities(self, provider_id: int, weekday: int) -> List[Availability]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(AvailabilityRow)
                .where(AvailabilityRow.provider_id == provider_id, AvailabilityRow.weekday == weekday)
                .order_by(AvailabilityRow.start_time)
            ).scalars().all()
            return [
                Availability(r.provider_id, r.weekday, r.start_time, r.end_time, id=r.id)
                for r in rows
            ]

    def list_breaks(self, provider_id: int, weekday: int) -> List[Break]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(BreakRow)
                .where(BreakRow.provider_id == provider_id, BreakRow.weekday == weekday)
                .order_by(BreakRow.start_time)
            ).scalars().all()
            return [Break(r.provider_id, r.weekday, r.start_time, r.end_time, id=r.id) for r in rows]

    def list_exceptions(self, provider_id: int, day: date) -> List[AvailabilityException]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(AvailabilityExceptionRow).where(
                    AvailabilityExceptionRow.provider_id == provider_id,
                    AvailabilityExceptionRow.date == day,
                )
            ).scalars().all()
            return [
                AvailabilityException(
                    provider_id=r.provider_id,
                    date=r.date,
                    is_available=bool(r.is_available),
                    start_time=r.start_time,
                    end_time=r.end_time,
                    id=r.id,
                    reason=r.reason,
                )
                for r in rows
            ]

    def list_active_bookings(self, provider_id: int, day: date) -> List[Booking]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(_bookings_on(provider_id, day)).scalars().all()
            return [_booking(row) for row in rows]

    def _ensure_schedule_lock(self, provider_id: int, day: date) -> None:
        """Create the lock row for (provider, day) in its own short transaction."""
        try:
            with session_scope(self._session_factory) as session:
                exists = session.execute(
                    select(ScheduleLockRow.id).where(
                        ScheduleLockRow.provider_id == provider_id,
                        ScheduleLockRow.date == day,
                    )
                ).first()
                if exists is None:
                    session.add(ScheduleLockRow(provider_id=provider_id, date=day, version=0))
        except IntegrityError:
            # A concurrent writer created it first
            logger.debug("Schedule lock for provider %s on %s already exists", provider_id, day)

    @contextmanager
    def reserve(self, provider_id: int, day: date) -> Iterator[_SqlReservation]:
        self._ensure_schedule_lock(provider_id, day)

        with session_scope(self._session_factory) as session:
            lock = session.execute(
                select(ScheduleLockRow)
                .where(ScheduleLockRow.provider_id == provider_id, ScheduleLockRow.date == day)
                .with_for_update()
            ).scalar_one()
            expected = lock.version

            txn = _SqlReservation(session, provider_id, day)
            yield txn

            if txn.changed:
                result = session.execute(
                    update(ScheduleLockRow)
                    .where(ScheduleLockRow.id == lock.id, ScheduleLockRow.version == expected)
                    .values(version=expected + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    logger.debug(
                        "Schedule of provider %s on %s moved past version %s",
                        provider_id, day, expected
                    )
                    raise ConcurrencyConflict(
                        f"Schedule of provider {provider_id} on {day} changed concurrently"
                    )

    def update_booking(self, booking_id: int, mutate: Callable[[Booking], Booking]) -> Booking:
        with session_scope(self._session_factory) as session:
            return _apply_update(session, booking_id, mutate)

    def import_fixture(self, fixture: ScheduleFixture) -> None:
        """Insert every record of a fixture in one transaction."""
        with session_scope(self._session_factory) as session:
            session.add_all(
                ProviderRow(id=p.id, name=p.name, timezone=p.timezone) for p in fixture.providers
            )
            session.add_all(
                ServiceRow(
                    id=s.id,
                    name=s.name,
                    duration_minutes=s.duration_minutes,
                    price=s.price,
                    provider_id=s.provider_id,
                    archived=s.archived,
                    deleted_at=_to_utc_naive(s.deleted_at),
                    buffer_minutes=s.buffer_minutes,
                    group_size=s.group_size,
                    max_bookings_per_client_per_day=s.max_bookings_per_client_per_day,
                    blackout_periods=blackouts_to_records(s.blackout_periods),
                )
                for s in fixture.services
            )
            session.flush()
            session.add_all(
                ClientRow(
                    id=c.id,
                    name=c.name,
                    email=c.email,
                    phone=c.phone,
                    deleted_at=_to_utc_naive(c.deleted_at),
                    delete_reason=c.delete_reason,
                )
                for c in fixture.clients
            )
            session.flush()
            session.add_all(
                AvailabilityRow(
                    id=a.id, provider_id=a.provider_id, weekday=a.weekday,
                    start_time=a.start_time, end_time=a.end_time
                )
                for a in fixture.availabilities
            )
            session.add_all(
                BreakRow(
                    id=b.id, provider_id=b.provider_id, weekday=b.weekday,
                    start_time=b.start_time, end_time=b.end_time
                )
                for b in fixture.breaks
            )
            session.add_all(
                AvailabilityExceptionRow(
                    id=e.id, provider_id=e.provider_id, date=e.date,
                    is_available=e.is_available, start_time=e.start_time,
                    end_time=e.end_time, reason=e.reason
                )
                for e in fixture.exceptions
            )
            session.flush()
            session.add_all(
                BookingRow(id=b.id, **_booking_values(b)) for b in fixture.bookings
            )

        logger.info(
            "Imported %s provider(s), %s service(s), %s booking(s)",
            len(fixture.providers), len(fixture.services), len(fixture.bookings)
        )
