"""
SQLAlchemy ORM models for core database tables.

This module defines the core tables:
- staff: Salon professionals that can be assigned to an appointment
- services: Bookable services with duration and deposit
- appointments: Client bookings with status and publication state
- blackout_ranges: Administrator-declared unavailability
- booking_settings: Singleton row with business hours and slot granularity
- payments: Gateway payment ledger, unique per gateway reference

Conventions:
- UUID primary keys (auto-generated)
- TIMESTAMP WITH TIME ZONE for datetime fields
- JSONB for raw gateway metadata on payments
- CHECK constraints for durations, amounts and the settings singleton
"""

from datetime import date, datetime, UTC
from decimal import Decimal
from enum import Enum as PyEnum
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    DATE,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ============================================================================
# Enums
# ============================================================================


class AppointmentStatus(PyEnum):
    """Appointment lifecycle status."""

    PENDING = "pending"        # Created by the client, payment may be in flight
    CONFIRMED = "confirmed"    # Deposit paid
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    def __str__(self):
        return self.value

    @property
    def label(self) -> str:
        """Human readable status used in client messages."""
        return self.value.replace("_", " ").title()


# Statuses that keep a slot busy. PENDING occupies because a payment may be in flight.
OCCUPYING_STATUSES = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED}
)


class PaymentStatus(str, PyEnum):
    """Gateway payment status."""

    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


class PaymentType(str, PyEnum):
    """What the payment covers."""

    DEPOSIT = "deposit"
    BALANCE = "balance"


# ============================================================================
# Core Models
# ============================================================================


class Staff(Base):
    """
    Staff model - Salon professionals.

    An appointment may carry a single optional staff assignment.
    """

    __tablename__ = "staff"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Staff(id={self.id}, name='{self.name}')>"


class Service(Base):
    """
    Service model - Bookable services with duration and deposit.

    The deposit is what the client pays through the gateway to confirm.
    """

    __tablename__ = "services"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    deposit: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0.00"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_duration_positive"),
        CheckConstraint("deposit >= 0", name="check_deposit_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}')>"


class Appointment(Base):
    """
    Appointment model - Client bookings with state management.

    Identity is the UUID primary key. The natural key (client_email +
    start_time) deduplicates bookings when the caller does not know the id,
    e.g. payment recovery. Uniqueness of the natural key among non-cancelled
    rows is enforced by the application, not by a constraint.

    ``published_at`` is the draft/published visibility flag and is
    independent of ``status``.
    """

    __tablename__ = "appointments"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )

    # Client
    client_name: Mapped[str] = mapped_column(String(200), nullable=False)
    client_email: Mapped[str] = mapped_column(String(254), nullable=False)
    client_phone: Mapped[str] = mapped_column(String(32), nullable=False)

    # Scheduling
    start_time: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, index=True
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    service_ids: Mapped[list[UUID]] = mapped_column(
        ARRAY(PGUUID(as_uuid=True)), nullable=False
    )
    staff_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("staff.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Status tracking
    # Note: values_callable stores enum .value ("pending") instead of .name
    status: Mapped[AppointmentStatus] = mapped_column(
        SQLEnum(
            AppointmentStatus,
            name="appointment_status",
            create_type=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=AppointmentStatus.PENDING,
        nullable=False,
        index=True,
    )
    published_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_appointment_duration_positive"),
        # Natural key lookups (recovery dedup, idempotent client creation)
        Index("idx_appointments_email_start", "client_email", "start_time"),
    )

    @property
    def is_published(self) -> bool:
        return self.published_at is not None

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, email='{self.client_email}', status='{self.status.value}')>"


# ============================================================================
# Availability Models
# ============================================================================


class BlackoutRange(Base):
    """
    BlackoutRange model - Administrator-declared unavailability.

    Either a full day (``is_full_day``) or a time-of-day window on ``date``.
    Times are stored as the admin typed them ("13:00" or "13:00:00.000") and
    validated when availability is computed.
    """

    __tablename__ = "blackout_ranges"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    date: Mapped[date] = mapped_column(DATE, nullable=False, index=True)
    is_full_day: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        if self.is_full_day:
            return f"<BlackoutRange(date={self.date}, FULL DAY)>"
        return f"<BlackoutRange(date={self.date}, {self.start_time}-{self.end_time})>"


class BookingSettings(Base):
    """
    Booking settings singleton - business hours and slot granularity.

    Read-only from the booking core's perspective.
    """

    __tablename__ = "booking_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    start_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    end_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_interval_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("id = 1", name="check_booking_settings_singleton"),
    )

    def __repr__(self) -> str:
        return (
            f"<BookingSettings({self.start_hour}:00-{self.end_hour}:00, "
            f"every {self.slot_interval_minutes} min)>"
        )


# ============================================================================
# Payments
# ============================================================================


PAYMENT_REFERENCE_CONSTRAINT = "uq_payments_reference"


class Payment(Base):
    """
    Payment model - Gateway payment ledger.

    ``reference`` carries a named unique constraint: it is the idempotency anchor for
    webhook redeliveries and the storage-level guard against duplicate
    financial records. ``appointment_id`` stays NULL for payments that could
    not be routed to an appointment.
    """

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    reference: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payer_email: Mapped[str | None] = mapped_column(String(254), nullable=True)
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(
            PaymentStatus,
            name="payment_status",
            create_type=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PaymentStatus.SUCCESS,
        nullable=False,
    )
    payment_type: Mapped[PaymentType] = mapped_column(
        SQLEnum(
            PaymentType,
            name="payment_type",
            create_type=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PaymentType.DEPOSIT,
        nullable=False,
    )
    paid_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    appointment_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    gateway_metadata: Mapped[dict] = mapped_column(
        JSONB, default=dict, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("reference", name=PAYMENT_REFERENCE_CONSTRAINT),
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        Index("idx_payments_paid_at_status", "paid_at", "status"),
    )

    def __repr__(self) -> str:
        return f"<Payment(reference='{self.reference}', amount={self.amount}, appointment_id={self.appointment_id})>"
