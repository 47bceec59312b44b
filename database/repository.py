"""
PostgreSQL implementation of the AppointmentStore protocol.

Each call opens its own short session. SQLAlchemy errors are converted to
RetryableFailure so the webhook layer can answer with a retryable status.
A unique violation on payments.reference becomes DuplicatePaymentReference.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from booking.errors import RetryableFailure
from booking.store import DuplicatePaymentReference
from database.connection import get_async_session
from database.models import (
    PAYMENT_REFERENCE_CONSTRAINT,
    Appointment,
    AppointmentStatus,
    BlackoutRange,
    BookingSettings,
    Payment,
    Service,
)

logger = logging.getLogger(__name__)


def violated_constraint(error: IntegrityError) -> str | None:
    """
    Name of the constraint behind an IntegrityError, if the driver reports it.

    asyncpg exposes it on the driver exception, which SQLAlchemy keeps as
    the cause of its adapted ``orig``.
    """
    for candidate in (error.orig, getattr(error.orig, "__cause__", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return name
    return None


# Columns an update may touch; anything else is a programming error
UPDATABLE_FIELDS = frozenset(
    {
        "client_name",
        "client_email",
        "client_phone",
        "start_time",
        "duration_minutes",
        "service_ids",
        "staff_id",
        "status",
        "published_at",
        "notes",
    }
)


class SqlAlchemyAppointmentStore:
    """AppointmentStore backed by the async SQLAlchemy engine."""

    async def get_appointment(self, appointment_id: UUID) -> Appointment | None:
        try:
            async with get_async_session() as session:
                result = await session.execute(
                    select(Appointment).where(Appointment.id == appointment_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error loading appointment {appointment_id}: {e}", exc_info=True)
            raise RetryableFailure(f"Could not load appointment {appointment_id}") from e

    async def create_appointment(self, appointment: Appointment) -> Appointment:
        try:
            async with get_async_session() as session:
                session.add(appointment)
                await session.commit()
                await session.refresh(appointment)
                logger.info(
                    f"Appointment created | appointment_id={appointment.id} | "
                    f"status={appointment.status.value}"
                )
                return appointment
        except SQLAlchemyError as e:
            logger.error(f"Error creating appointment: {e}", exc_info=True)
            raise RetryableFailure("Could not create appointment") from e

    async def update_appointment(
        self, appointment_id: UUID, changes: dict[str, Any]
    ) -> Appointment | None:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update appointment fields: {sorted(unknown)}")

        try:
            async with get_async_session() as session:
                result = await session.execute(
                    select(Appointment)
                    .where(Appointment.id == appointment_id)
                    .with_for_update()
                )
                appointment = result.scalar_one_or_none()
                if appointment is None:
                    return None

                for field, value in changes.items():
                    setattr(appointment, field, value)

                await session.commit()
                await session.refresh(appointment)
                return appointment
        except SQLAlchemyError as e:
            logger.error(f"Error updating appointment {appointment_id}: {e}", exc_info=True)
            raise RetryableFailure(f"Could not update appointment {appointment_id}") from e

    async def find_active_by_natural_key(
        self, client_email: str, start_time: datetime
    ) -> Appointment | None:
        try:
            async with get_async_session() as session:
                result = await session.execute(
                    select(Appointment)
                    .where(
                        and_(
                            Appointment.client_email == client_email,
                            Appointment.start_time == start_time,
                            Appointment.status != AppointmentStatus.CANCELLED,
                        )
                    )
                    .order_by(Appointment.created_at)
                    .limit(1)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error in natural key lookup: {e}", exc_info=True)
            raise RetryableFailure("Could not look up appointment by natural key") from e

    async def list_appointments_between(
        self,
        start: datetime,
        end: datetime,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]:
        try:
            async with get_async_session() as session:
                result = await session.execute(
                    select(Appointment).where(
                        and_(
                            Appointment.start_time >= start,
                            Appointment.start_time < end,
                            Appointment.status.in_(list(statuses)),
                        )
                    )
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing appointments: {e}", exc_info=True)
            raise RetryableFailure("Could not list appointments") from e

    async def list_blackouts(self, target_date: date) -> list[BlackoutRange]:
        try:
            async with get_async_session() as session:
                result = await session.execute(
                    select(BlackoutRange).where(BlackoutRange.date == target_date)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing blackouts for {target_date}: {e}", exc_info=True)
            raise RetryableFailure("Could not list blackout ranges") from e

    async def get_booking_settings(self) -> BookingSettings | None:
        try:
            async with get_async_session() as session:
                result = await session.execute(select(BookingSettings).limit(1))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error loading booking settings: {e}", exc_info=True)
            raise RetryableFailure("Could not load booking settings") from e

    async def get_services(self, service_ids: Iterable[UUID]) -> list[Service]:
        ids = list(service_ids)
        if not ids:
            return []
        try:
            async with get_async_session() as session:
                result = await session.execute(select(Service).where(Service.id.in_(ids)))
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error loading services {ids}: {e}", exc_info=True)
            raise RetryableFailure("Could not load services") from e

    async def get_payment_by_reference(self, reference: str) -> Payment | None:
        try:
            async with get_async_session() as session:
                result = await session.execute(
                    select(Payment).where(Payment.reference == reference)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error loading payment {reference}: {e}", exc_info=True)
            raise RetryableFailure(f"Could not load payment {reference}") from e

    async def create_payment(self, payment: Payment) -> Payment:
        try:
            async with get_async_session() as session:
                session.add(payment)
                await session.commit()
                await session.refresh(payment)
                return payment
        except IntegrityError as e:
            # A concurrent delivery of the same reference won the race
            if violated_constraint(e) == PAYMENT_REFERENCE_CONSTRAINT:
                raise DuplicatePaymentReference(payment.reference) from e
            logger.error(f"Integrity error creating payment {payment.reference}: {e}")
            raise RetryableFailure(f"Could not record payment {payment.reference}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating payment {payment.reference}: {e}", exc_info=True)
            raise RetryableFailure(f"Could not record payment {payment.reference}") from e
