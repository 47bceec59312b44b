"""
AppointmentStore - the storage boundary of the booking core.

The core never talks to the database directly; it goes through this
protocol. Not-found is always signalled with ``None``; storage failures are
raised as ``RetryableFailure`` so callers can tell "missing" from "broken".

Implementations:
- database.repository.SqlAlchemyAppointmentStore (PostgreSQL)
- TimeoutBoundStore (wraps any store with a per-call deadline)
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any, Protocol
from uuid import UUID

from booking.errors import RetryableFailure
from database.models import (
    Appointment,
    AppointmentStatus,
    BlackoutRange,
    BookingSettings,
    Payment,
    Service,
)

logger = logging.getLogger(__name__)


class DuplicatePaymentReference(Exception):
    """Raised by create_payment when the gateway reference already exists."""

    def __init__(self, reference: str):
        super().__init__(f"Payment reference already recorded: {reference}")
        self.reference = reference


class AppointmentStore(Protocol):
    async def get_appointment(self, appointment_id: UUID) -> Appointment | None: ...

    async def create_appointment(self, appointment: Appointment) -> Appointment: ...

    async def update_appointment(
        self, appointment_id: UUID, changes: dict[str, Any]
    ) -> Appointment | None: ...

    async def find_active_by_natural_key(
        self, client_email: str, start_time: datetime
    ) -> Appointment | None:
        """Non-cancelled appointment for this client at exactly this instant."""
        ...

    async def list_appointments_between(
        self,
        start: datetime,
        end: datetime,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]: ...

    async def list_blackouts(self, target_date: date) -> list[BlackoutRange]: ...

    async def get_booking_settings(self) -> BookingSettings | None: ...

    async def get_services(self, service_ids: Iterable[UUID]) -> list[Service]: ...

    async def get_payment_by_reference(self, reference: str) -> Payment | None: ...

    async def create_payment(self, payment: Payment) -> Payment:
        """Raises DuplicatePaymentReference when the reference exists."""
        ...


class TimeoutBoundStore:
    """
    AppointmentStore wrapper that bounds every call with ``asyncio.wait_for``.

    A call that exceeds ``timeout_seconds`` raises RetryableFailure, so no
    request ever waits on the database indefinitely.
    """

    def __init__(self, inner: AppointmentStore, timeout_seconds: float):
        self.inner = inner
        self.timeout_seconds = timeout_seconds

    async def _call(self, name: str, *args: Any) -> Any:
        try:
            return await asyncio.wait_for(
                getattr(self.inner, name)(*args), timeout=self.timeout_seconds
            )
        except TimeoutError as e:
            logger.error(f"Store call timed out | operation={name} | timeout={self.timeout_seconds}s")
            raise RetryableFailure(f"Store operation {name} timed out") from e

    async def get_appointment(self, appointment_id: UUID) -> Appointment | None:
        return await self._call("get_appointment", appointment_id)

    async def create_appointment(self, appointment: Appointment) -> Appointment:
        return await self._call("create_appointment", appointment)

    async def update_appointment(
        self, appointment_id: UUID, changes: dict[str, Any]
    ) -> Appointment | None:
        return await self._call("update_appointment", appointment_id, changes)

    async def find_active_by_natural_key(
        self, client_email: str, start_time: datetime
    ) -> Appointment | None:
        return await self._call("find_active_by_natural_key", client_email, start_time)

    async def list_appointments_between(
        self,
        start: datetime,
        end: datetime,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]:
        return await self._call("list_appointments_between", start, end, statuses)

    async def list_blackouts(self, target_date: date) -> list[BlackoutRange]:
        return await self._call("list_blackouts", target_date)

    async def get_booking_settings(self) -> BookingSettings | None:
        return await self._call("get_booking_settings")

    async def get_services(self, service_ids: Iterable[UUID]) -> list[Service]:
        return await self._call("get_services", service_ids)

    async def get_payment_by_reference(self, reference: str) -> Payment | None:
        return await self._call("get_payment_by_reference", reference)

    async def create_payment(self, payment: Payment) -> Payment:
        return await self._call("create_payment", payment)
