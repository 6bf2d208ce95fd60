"""
SQLAlchemy tables for the scheduling schema.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class ProviderRow(Base):
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=True)
    timezone = Column(String(64), nullable=False, default="UTC")  # IANA name

    services = relationship("ServiceRow", back_populates="provider")


class ServiceRow(Base):
    __tablename__ = "services"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_services_duration_positive"),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_services_price_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=True, index=True)
    archived = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)  # soft delete
    buffer_minutes = Column(Integer, default=0, nullable=False)
    group_size = Column(Integer, nullable=True)
    max_bookings_per_client_per_day = Column(Integer, nullable=True)
    blackout_periods = Column(JSON, nullable=True)  # [{"start_time": "HH:MM", "end_time": "HH:MM"}]

    provider = relationship("ProviderRow", back_populates="services")


class ClientRow(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    delete_reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class AvailabilityRow(Base):
    __tablename__ = "availabilities"
    __table_args__ = (
        CheckConstraint("weekday BETWEEN 0 AND 6", name="ck_availabilities_weekday"),
        Index("ix_availabilities_provider_weekday", "provider_id", "weekday"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    weekday = Column(Integer, nullable=False)  # 0=Monday
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)


class BreakRow(Base):
    __tablename__ = "breaks"
    __table_args__ = (
        CheckConstraint("weekday BETWEEN 0 AND 6", name="ck_breaks_weekday"),
        Index("ix_breaks_provider_weekday", "provider_id", "weekday"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    weekday = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)


class AvailabilityExceptionRow(Base):
    __tablename__ = "availability_exceptions"
    __table_args__ = (
        Index("ix_availability_exceptions_provider_date", "provider_id", "date"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=True)  # null = whole day
    end_time = Column(String(5), nullable=True)
    is_available = Column(Boolean, nullable=False, default=False)
    reason = Column(String(255), nullable=True)


class BookingRow(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_provider_date", "provider_id", "date"),
        Index("ix_bookings_client_date", "client_id", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=True)  # denormalized
    status = Column(String(20), nullable=False, default="requested")
    deleted_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String(255), nullable=True)
    payment_option = Column(String(50), nullable=True)
    payment_status = Column(String(50), nullable=True)
    payment_amount = Column(Numeric(10, 2), nullable=True)
    payment_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    group_count = Column(Integer, nullable=True)
    booking_ref = Column(String(32), unique=True, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    service = relationship("ServiceRow")
    payment = relationship("PaymentRow", back_populates="booking", uselist=False)


class PaymentRow(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), unique=True, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(50), nullable=False)
    link = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    booking = relationship("BookingRow", back_populates="payment")


class ScheduleLockRow(Base):
    """
    One row per (provider, date) that booking writers lock and version.

    Every committed booking bumps ``version``; a writer whose expected
    version no longer matches lost a race and must retry.
    """
    __tablename__ = "schedule_locks"
    __table_args__ = (
        UniqueConstraint("provider_id", "date", name="uq_schedule_locks_provider_date"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    version = Column(Integer, nullable=False, default=0)
