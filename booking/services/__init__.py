"""
Booking services module.

Services:
- availability_service: Occupied slot labels from appointments and blackouts
- appointment_service: Single mutation path for appointments
- payment_webhook_service: Idempotent Paystack charge reconciliation
- transition_notifier: One notification per semantic appointment change
"""

from booking.services.appointment_service import AppointmentService, NewAppointment
from booking.services.availability_service import (
    ensure_slot_available,
    get_booked_slots,
    occupied_slots,
)
from booking.services.payment_webhook_service import (
    PaymentWebhookService,
    WebhookOutcome,
    WebhookResult,
)
from booking.services.transition_notifier import TransitionNotifier, classify_transition

__all__ = [
    "AppointmentService",
    "NewAppointment",
    "PaymentWebhookService",
    "TransitionNotifier",
    "WebhookOutcome",
    "WebhookResult",
    "classify_transition",
    "ensure_slot_available",
    "get_booked_slots",
    "occupied_slots",
]
