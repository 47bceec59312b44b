"""
Plain-text notification messages for appointment changes.

Each notification kind produces one client message and one admin copy.
Booked and FirstConfirmation share the booking-confirmation family: for the
client a Pending -> Confirmed transition is the first real confirmation.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from zoneinfo import ZoneInfo

from database.models import Appointment, Service


class NotificationKind(str, Enum):
    BOOKED = "booked"
    FIRST_CONFIRMATION = "first_confirmation"
    RESCHEDULED = "rescheduled"
    STATUS_CHANGED = "status_changed"


CONFIRMATION_KINDS = frozenset({NotificationKind.BOOKED, NotificationKind.FIRST_CONFIRMATION})


@dataclass(frozen=True)
class NotificationMessage:
    recipient: str
    subject: str
    body: str


def format_date(dt: datetime, tz: ZoneInfo) -> str:
    """e.g. "Friday, March 14, 2025" in the business timezone."""
    local = dt.astimezone(tz)
    return f"{local.strftime('%A, %B')} {local.day}, {local.year}"


def format_time(dt: datetime, tz: ZoneInfo) -> str:
    """e.g. "2:30 PM" in the business timezone."""
    local = dt.astimezone(tz)
    hour = local.hour % 12 or 12
    return f"{hour}:{local.minute:02d} {'AM' if local.hour < 12 else 'PM'}"


def format_amount(amount: Decimal) -> str:
    return f"{amount:,.2f}"


def describe_services(services: list[Service]) -> str:
    return ", ".join(s.name for s in services) or "Your Service"


def _confirmation_messages(
    appointment: Appointment,
    services: list[Service],
    business_name: str,
    admin_email: str,
    tz: ZoneInfo,
) -> list[NotificationMessage]:
    service_name = describe_services(services)
    when_date = format_date(appointment.start_time, tz)
    when_time = format_time(appointment.start_time, tz)
    deposit = format_amount(sum((s.deposit for s in services), Decimal("0")))

    details = [
        f"Service: {service_name}",
        f"Date: {when_date}",
        f"Time: {when_time}",
        f"Duration: {appointment.duration_minutes} mins",
        f"Deposit paid: {deposit}",
    ]

    client_body = "\n".join(
        [
            f"Hi {appointment.client_name},",
            "",
            "We're excited to confirm your appointment! Here are the details:",
            "",
            *details,
            "",
            "Need to reschedule or have questions? Feel free to reach out to us anytime.",
            "",
            business_name,
        ]
    )
    admin_body = "\n".join(
        [
            "New appointment booked.",
            "",
            f"Name: {appointment.client_name}",
            f"Email: {appointment.client_email}",
            f"Phone: {appointment.client_phone}",
            "",
            *details,
        ]
    )

    return [
        NotificationMessage(
            recipient=appointment.client_email,
            subject=f"Your {business_name} Appointment is Confirmed!",
            body=client_body,
        ),
        NotificationMessage(
            recipient=admin_email,
            subject=f"New Booking: {service_name} - {appointment.client_name}",
            body=admin_body,
        ),
    ]


def _update_messages(
    kind: NotificationKind,
    appointment: Appointment,
    services: list[Service],
    business_name: str,
    admin_email: str,
    tz: ZoneInfo,
) -> list[NotificationMessage]:
    service_name = describe_services(services)

    if kind is NotificationKind.RESCHEDULED:
        subject = f"Your {business_name} Appointment Has Been Rescheduled"
        lines = [
            f"Hi {appointment.client_name},",
            "",
            f"Your appointment for {service_name} has been rescheduled to:",
            "",
            format_date(appointment.start_time, tz),
            format_time(appointment.start_time, tz),
            "",
            "If you have any questions about this change, please don't hesitate to contact us.",
        ]
    else:
        status_label = appointment.status.label
        subject = f"Your {business_name} Appointment Status: {status_label}"
        lines = [
            f"Hi {appointment.client_name},",
            "",
            f"The status of your appointment for {service_name} has been updated:",
            "",
            status_label,
            "",
            "If you have any questions, please feel free to contact us.",
        ]

    body = "\n".join([*lines, "", business_name])

    return [
        NotificationMessage(recipient=appointment.client_email, subject=subject, body=body),
        NotificationMessage(
            recipient=admin_email,
            subject=f"Appointment Updated: {service_name} - {appointment.client_name}",
            body=body,
        ),
    ]


def build_messages(
    kind: NotificationKind,
    appointment: Appointment,
    services: list[Service],
    business_name: str,
    admin_email: str,
    tz: ZoneInfo,
) -> list[NotificationMessage]:
    """Client message first, admin copy second."""
    if kind in CONFIRMATION_KINDS:
        return _confirmation_messages(appointment, services, business_name, admin_email, tz)
    return _update_messages(kind, appointment, services, business_name, admin_email, tz)
