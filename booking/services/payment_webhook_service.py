"""
Payment Webhook Service - reconciles Paystack charges with appointments.

Processes one already-verified, already-parsed gateway event:

1. Filter: anything but charge.success is ignored.
2. Route by metadata:
   - appointment_id -> confirm the existing appointment
   - full booking data -> recover the appointment (dedup by natural key)
   - neither -> record the payment unlinked and acknowledge
3. Record the payment once per gateway reference.

Gateway delivery is at-least-once, so every step is idempotent: a redelivered
event finds the appointment already confirmed and the reference already
recorded, and changes nothing.

Failure semantics:
- appointment read/write failure or timeout -> RetryableFailure (503, the
  gateway redelivers)
- payment ledger failure alone -> logged, the event is still acknowledged
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

from api.models.paystack_webhook import BookingMetadata, ChargeSucceeded, GatewayEvent
from booking.errors import InvalidStatusTransition, NotFound, RetryableFailure
from booking.services.appointment_service import AppointmentService, NewAppointment
from booking.store import AppointmentStore, DuplicatePaymentReference
from database.models import Appointment, AppointmentStatus, Payment, PaymentStatus, PaymentType

logger = logging.getLogger(__name__)


class WebhookOutcome(str, Enum):
    IGNORED = "ignored"
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    RECOVERED = "recovered"
    RECOVERY_REUSED = "recovery_reused"
    UNROUTED = "unrouted"
    APPOINTMENT_NOT_FOUND = "appointment_not_found"
    NOT_CONFIRMABLE = "not_confirmable"


@dataclass
class WebhookResult:
    outcome: WebhookOutcome
    appointment_id: UUID | None = None
    payment_recorded: bool = False


class PaymentWebhookService:
    """Idempotent charge.success processing."""

    def __init__(self, store: AppointmentStore, appointments: AppointmentService):
        self.store = store
        self.appointments = appointments

    async def process(self, event: GatewayEvent) -> WebhookResult:
        """
        Process a parsed gateway event.

        Returns:
            WebhookResult describing what happened

        Raises:
            RetryableFailure: Appointment could not be read or written; the
                gateway must redeliver
        """
        if not isinstance(event, ChargeSucceeded):
            logger.info(f"Ignoring Paystack event type: {event.event}", extra={"event_type": event.event})
            return WebhookResult(outcome=WebhookOutcome.IGNORED)

        metadata = event.metadata
        logger.info(
            f"Processing charge.success | reference={event.reference} | amount={event.amount}",
            extra={"payment_reference": event.reference, "event_type": "charge.success"},
        )

        if metadata.appointment_id is not None:
            outcome, appointment = await self._confirm_existing(metadata.appointment_id, metadata)
        elif metadata.has_recovery_data():
            outcome, appointment = await self._recover(metadata)
        else:
            logger.warning(
                f"charge.success carries no routable metadata, recording payment unlinked | "
                f"reference={event.reference} | payer_email={event.payer_email}",
                extra={"payment_reference": event.reference},
            )
            outcome, appointment = WebhookOutcome.UNROUTED, None

        appointment_id = appointment.id if appointment is not None else None
        recorded = await self._record_payment(event, appointment_id)

        return WebhookResult(outcome=outcome, appointment_id=appointment_id, payment_recorded=recorded)

    async def _confirm_existing(
        self, appointment_id: UUID, metadata: BookingMetadata
    ) -> tuple[WebhookOutcome, Appointment | None]:
        try:
            appointment, changed = await self.appointments.confirm_appointment(appointment_id)
        except NotFound:
            if metadata.has_recovery_data():
                logger.warning(
                    f"Appointment from metadata not found, falling back to recovery | "
                    f"appointment_id={appointment_id}"
                )
                return await self._recover(metadata)

            logger.error(
                f"Appointment from metadata not found and no recovery data | "
                f"appointment_id={appointment_id}",
                extra={"appointment_id": appointment_id},
            )
            return WebhookOutcome.APPOINTMENT_NOT_FOUND, None
        except InvalidStatusTransition as e:
            # Paid after being cancelled (or already completed): keep the
            # status, still link the money to the appointment
            logger.warning(
                f"Payment received for appointment that cannot be confirmed | "
                f"appointment_id={appointment_id}: {e.message}",
                extra={"appointment_id": appointment_id},
            )
            return WebhookOutcome.NOT_CONFIRMABLE, await self.store.get_appointment(appointment_id)

        if not changed:
            return WebhookOutcome.ALREADY_CONFIRMED, appointment
        return WebhookOutcome.CONFIRMED, appointment

    async def _recover(self, metadata: BookingMetadata) -> tuple[WebhookOutcome, Appointment | None]:
        request = NewAppointment(
            client_name=metadata.client_name,
            client_email=metadata.client_email,
            client_phone=metadata.client_phone,
            start_time=metadata.appointment_datetime,
            service_ids=list(metadata.service_ids),
            staff_id=metadata.staff_id,
        )

        try:
            appointment, created = await self.appointments.create_appointment(
                request,
                status=AppointmentStatus.CONFIRMED,
                published=True,
                check_availability=False,
            )
        except NotFound as e:
            logger.error(f"Cannot recover appointment from payment metadata: {e.message}")
            return WebhookOutcome.UNROUTED, None

        if created:
            logger.info(
                f"Appointment recovered from payment metadata | appointment_id={appointment.id}",
                extra={"appointment_id": appointment.id},
            )
            return WebhookOutcome.RECOVERED, appointment

        if appointment.status is AppointmentStatus.PENDING:
            try:
                appointment, _ = await self.appointments.confirm_appointment(appointment.id)
            except NotFound:
                # Removed by the abandoned-booking sweep between lookup and confirm
                logger.warning(f"Reused appointment disappeared before confirm | appointment_id={appointment.id}")

        logger.info(
            f"Recovery matched existing appointment | appointment_id={appointment.id} | "
            f"status={appointment.status.value}",
            extra={"appointment_id": appointment.id},
        )
        return WebhookOutcome.RECOVERY_REUSED, appointment

    async def _record_payment(self, event: ChargeSucceeded, appointment_id: UUID | None) -> bool:
        """
        Create the ledger entry for this reference, once.

        Returns:
            True if a new record was created
        """
        try:
            existing = await self.store.get_payment_by_reference(event.reference)
            if existing is not None:
                logger.info(
                    f"Payment already recorded, skipping | reference={event.reference}",
                    extra={"payment_reference": event.reference},
                )
                return False

            payment = Payment(
                reference=event.reference,
                amount=event.amount,
                payer_email=event.payer_email,
                status=PaymentStatus.SUCCESS,
                payment_type=PaymentType.DEPOSIT,
                paid_at=datetime.now(UTC),
                appointment_id=appointment_id,
                gateway_metadata=event.metadata.model_dump(mode="json", exclude_none=True),
            )
            await self.store.create_payment(payment)
        except DuplicatePaymentReference:
            logger.info(
                f"Payment recorded concurrently, skipping | reference={event.reference}",
                extra={"payment_reference": event.reference},
            )
            return False
        except RetryableFailure as e:
            logger.error(
                f"Payment ledger write failed, needs reconciliation | reference={event.reference} | "
                f"appointment_id={appointment_id}: {e.message}",
                extra={"payment_reference": event.reference},
            )
            return False

        logger.info(
            f"Payment recorded | reference={event.reference} | amount={event.amount} | "
            f"appointment_id={appointment_id}",
            extra={"payment_reference": event.reference, "appointment_id": appointment_id},
        )
        return True
