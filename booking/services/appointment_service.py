"""
Appointment Service - the single mutation path for appointments.

Client booking creation, payment confirmation, payment recovery, admin edits
and publishing all go through this service, so every write is wrapped by the
TransitionNotifier's before/after comparison (or after_create for new rows).

Usage:
    service = AppointmentService(store, notifier, tz)

    appointment, created = await service.create_appointment(new_booking)
    appointment = await service.update_appointment(appointment_id, {"status": AppointmentStatus.CANCELLED})
    appointment = await service.publish_appointment(appointment_id)
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from booking.errors import NotFound
from booking.services.availability_service import ensure_slot_available
from booking.services.transition_notifier import TransitionNotifier
from booking.store import AppointmentStore
from booking.validators import validate_status_transition
from database.models import Appointment, AppointmentStatus, Service

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def to_utc(value: datetime, tz: ZoneInfo) -> datetime:
    """Naive datetimes are read as business-local time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(UTC)


@dataclass
class NewAppointment:
    """Booking request, from the client flow or rebuilt from payment metadata."""

    client_name: str
    client_email: str
    client_phone: str
    start_time: datetime
    service_ids: list[UUID]
    staff_id: UUID | None = None
    notes: str | None = None


class AppointmentService:
    """Creates and mutates appointments, notifying on semantic changes."""

    def __init__(self, store: AppointmentStore, notifier: TransitionNotifier, tz: ZoneInfo):
        self.store = store
        self.notifier = notifier
        self.tz = tz

    async def _resolve_services(self, service_ids: list[UUID]) -> list[Service]:
        if not service_ids:
            raise NotFound("At least one service is required")

        services = await self.store.get_services(service_ids)
        found = {s.id for s in services}
        missing = [sid for sid in service_ids if sid not in found]
        if missing:
            raise NotFound(f"Service(s) not found: {', '.join(str(m) for m in missing)}")
        return services

    async def find_by_natural_key(self, client_email: str, start_time: datetime) -> Appointment | None:
        """Non-cancelled appointment for this client at exactly this instant."""
        return await self.store.find_active_by_natural_key(
            normalize_email(client_email), to_utc(start_time, self.tz)
        )

    async def create_appointment(
        self,
        request: NewAppointment,
        status: AppointmentStatus = AppointmentStatus.PENDING,
        published: bool = False,
        check_availability: bool = True,
    ) -> tuple[Appointment, bool]:
        """
        Create an appointment, or return the existing one for the same natural key.

        Args:
            request: Booking data
            status: PENDING for the client flow, CONFIRMED for payment recovery
            published: Create already published
            check_availability: Reject occupied or off-grid slots (client flow)

        Returns:
            (appointment, created) - created is False when an existing
            non-cancelled appointment for the same client and instant was reused

        Raises:
            NotFound: Unknown service
            SlotUnavailable: Slot taken or not bookable
            RetryableFailure: Store failure
        """
        existing = await self.find_by_natural_key(request.client_email, request.start_time)
        if existing is not None:
            logger.info(
                f"Appointment already exists for natural key, reusing | "
                f"appointment_id={existing.id} | status={existing.status.value}"
            )
            return existing, False

        email = normalize_email(request.client_email)
        start_time = to_utc(request.start_time, self.tz)

        services = await self._resolve_services(request.service_ids)

        if check_availability:
            await ensure_slot_available(start_time, self.store, self.tz)

        now = datetime.now(UTC)
        appointment = Appointment(
            client_name=request.client_name.strip(),
            client_email=email,
            client_phone=request.client_phone.strip(),
            start_time=start_time,
            duration_minutes=sum(s.duration_minutes for s in services),
            service_ids=list(request.service_ids),
            staff_id=request.staff_id,
            status=status,
            published_at=now if published else None,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )

        created = await self.store.create_appointment(appointment)
        logger.info(
            f"Appointment booked | appointment_id={created.id} | status={created.status.value} | "
            f"start_time={created.start_time.isoformat()}",
            extra={"appointment_id": created.id},
        )

        await self.notifier.after_create(created)
        return created, True

    async def _apply_update(self, appointment_id: UUID, changes: dict[str, Any]) -> Appointment:
        await self.notifier.before_write(appointment_id)
        try:
            updated = await self.store.update_appointment(appointment_id, changes)
        except Exception:
            await self.notifier.discard(appointment_id)
            raise

        if updated is None:
            await self.notifier.discard(appointment_id)
            raise NotFound(f"Appointment {appointment_id} not found")

        await self.notifier.after_write(updated)
        return updated

    async def update_appointment(self, appointment_id: UUID, changes: dict[str, Any]) -> Appointment:
        """
        Apply an admin edit.

        Args:
            appointment_id: Appointment to edit
            changes: Field -> new value; supported: client_name, client_email,
                client_phone, start_time, service_ids, staff_id, status, notes

        Raises:
            NotFound: Unknown appointment or service
            InvalidStatusTransition: Status change not allowed
            RetryableFailure: Store failure
        """
        current = await self.store.get_appointment(appointment_id)
        if current is None:
            raise NotFound(f"Appointment {appointment_id} not found")

        changes = dict(changes)

        if "status" in changes:
            changes["status"] = AppointmentStatus(changes["status"])
            validate_status_transition(current.status, changes["status"])

        if "start_time" in changes:
            changes["start_time"] = to_utc(changes["start_time"], self.tz)

        if "client_email" in changes:
            changes["client_email"] = normalize_email(changes["client_email"])

        if "service_ids" in changes:
            services = await self._resolve_services(list(changes["service_ids"]))
            changes["service_ids"] = list(changes["service_ids"])
            changes["duration_minutes"] = sum(s.duration_minutes for s in services)

        if not changes:
            return current

        return await self._apply_update(appointment_id, changes)

    async def publish_appointment(self, appointment_id: UUID) -> Appointment:
        """Flip an appointment from draft to published. Never notifies on its own."""
        current = await self.store.get_appointment(appointment_id)
        if current is None:
            raise NotFound(f"Appointment {appointment_id} not found")
        if current.is_published:
            return current

        return await self._apply_update(appointment_id, {"published_at": datetime.now(UTC)})

    async def confirm_appointment(self, appointment_id: UUID) -> tuple[Appointment, bool]:
        """
        Idempotently confirm and publish an appointment.

        Returns:
            (appointment, changed) - changed is False when it was already CONFIRMED

        Raises:
            NotFound: Unknown appointment
            InvalidStatusTransition: Appointment is cancelled, completed or no-show
            RetryableFailure: Store failure
        """
        current = await self.store.get_appointment(appointment_id)
        if current is None:
            raise NotFound(f"Appointment {appointment_id} not found")

        if current.status is AppointmentStatus.CONFIRMED:
            logger.info(f"Appointment already confirmed, skipping write | appointment_id={appointment_id}")
            return current, False

        validate_status_transition(current.status, AppointmentStatus.CONFIRMED)

        changes: dict[str, Any] = {"status": AppointmentStatus.CONFIRMED}
        if current.published_at is None:
            changes["published_at"] = datetime.now(UTC)

        updated = await self._apply_update(appointment_id, changes)
        logger.info(
            f"Appointment confirmed | appointment_id={appointment_id}",
            extra={"appointment_id": appointment_id},
        )
        return updated, True
