"""
Transition Notifier - one notification per semantic appointment change.

Every appointment write goes through two calls that observe the store at
different times:

1. before_write(appointment_id): capture {start_time, status, published}
   into the snapshot store.
2. after_write(appointment): pop the snapshot and classify the change.

Classification (first match wins):
- publish-only (unpublished -> published, same instant, same status): nothing
- start_time changed (compared as instants): RESCHEDULED
- status changed: FIRST_CONFIRMATION for pending -> confirmed, else STATUS_CHANGED
- anything else: nothing

Creation goes through after_create(): BOOKED, except appointments created
PENDING, whose notification is deferred to the pending -> confirmed write.

Notification delivery failures are logged and swallowed: a booking never
fails because an email could not be sent.
"""

import logging
from typing import Protocol
from uuid import UUID
from zoneinfo import ZoneInfo

from booking.errors import BookingError
from booking.services.notification_messages import NotificationKind, build_messages
from booking.state.snapshot_store import SnapshotStore, TransitionSnapshot
from booking.store import AppointmentStore
from database.models import Appointment, AppointmentStatus, Service

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    async def send(self, recipient: str, subject: str, body: str) -> bool: ...


def classify_transition(
    snapshot: TransitionSnapshot, appointment: Appointment
) -> NotificationKind | None:
    """
    Decide which single notification, if any, a write deserves.

    Args:
        snapshot: State captured before the write
        appointment: State after the write

    Returns:
        NotificationKind, or None when nothing client-relevant changed
    """
    time_changed = snapshot.start_time != appointment.start_time
    status_changed = snapshot.status != appointment.status
    now_published = appointment.is_published

    if not snapshot.published and now_published and not time_changed and not status_changed:
        return None

    if time_changed:
        return NotificationKind.RESCHEDULED

    if status_changed:
        if (
            snapshot.status is AppointmentStatus.PENDING
            and appointment.status is AppointmentStatus.CONFIRMED
        ):
            return NotificationKind.FIRST_CONFIRMATION
        return NotificationKind.STATUS_CHANGED

    return None


class TransitionNotifier:
    """Before/after comparison and dispatch for appointment writes."""

    def __init__(
        self,
        store: AppointmentStore,
        snapshots: SnapshotStore,
        sender: NotificationSender,
        business_name: str,
        admin_email: str,
        tz: ZoneInfo,
    ):
        self.store = store
        self.snapshots = snapshots
        self.sender = sender
        self.business_name = business_name
        self.admin_email = admin_email
        self.tz = tz

    async def before_write(self, appointment_id: UUID) -> None:
        """
        Capture the current state of an appointment about to be written.

        A failed read is logged and the write proceeds without a snapshot,
        which means that write will not notify.
        """
        try:
            current = await self.store.get_appointment(appointment_id)
        except BookingError as e:
            logger.warning(
                f"Could not capture before-state, write will not notify | "
                f"appointment_id={appointment_id}: {e}"
            )
            return

        if current is None:
            return

        await self.snapshots.put(TransitionSnapshot.capture(current))
        logger.debug(
            f"Stored before-state | appointment_id={appointment_id} | "
            f"status={current.status.value} | start_time={current.start_time.isoformat()}"
        )

    async def discard(self, appointment_id: UUID) -> None:
        """Drop the snapshot of a write that was rejected or failed."""
        await self.snapshots.discard(appointment_id)

    async def after_write(self, appointment: Appointment) -> NotificationKind | None:
        """
        Classify the write against its snapshot and notify at most once.

        The snapshot is consumed here whatever the outcome.
        """
        snapshot = await self.snapshots.pop(appointment.id)
        if snapshot is None:
            logger.debug(f"No before-state found, skipping | appointment_id={appointment.id}")
            return None

        kind = classify_transition(snapshot, appointment)
        if kind is None:
            logger.info(
                f"No relevant change, no notification | appointment_id={appointment.id} | "
                f"status={snapshot.status.value}->{appointment.status.value}"
            )
            return None

        logger.info(
            f"Change detected | appointment_id={appointment.id} | kind={kind.value} | "
            f"status={snapshot.status.value}->{appointment.status.value}",
            extra={"appointment_id": appointment.id, "notification_kind": kind.value},
        )
        await self._dispatch(kind, appointment)
        return kind

    async def after_create(self, appointment: Appointment) -> NotificationKind | None:
        """BOOKED for a new appointment, deferred while it is still PENDING."""
        if appointment.status is AppointmentStatus.PENDING:
            logger.info(
                f"Pending appointment created, confirmation deferred until payment | "
                f"appointment_id={appointment.id}"
            )
            return None

        await self._dispatch(NotificationKind.BOOKED, appointment)
        return NotificationKind.BOOKED

    async def _load_services(self, appointment: Appointment) -> list[Service]:
        try:
            return await self.store.get_services(appointment.service_ids)
        except BookingError as e:
            logger.warning(f"Could not load services for notification | appointment_id={appointment.id}: {e}")
            return []

    async def _dispatch(self, kind: NotificationKind, appointment: Appointment) -> bool:
        services = await self._load_services(appointment)
        messages = build_messages(
            kind, appointment, services, self.business_name, self.admin_email, self.tz
        )

        delivered = True
        for message in messages:
            try:
                sent = await self.sender.send(message.recipient, message.subject, message.body)
            except Exception as e:
                logger.error(
                    f"Notification send raised | appointment_id={appointment.id} | "
                    f"kind={kind.value} | to={message.recipient}: {e}",
                    exc_info=True,
                )
                sent = False

            if not sent:
                delivered = False
                logger.error(
                    f"Notification not delivered | appointment_id={appointment.id} | "
                    f"kind={kind.value} | to={message.recipient}"
                )

        if delivered:
            logger.info(
                f"Notification sent | appointment_id={appointment.id} | kind={kind.value}",
                extra={"appointment_id": appointment.id, "notification_kind": kind.value},
            )
        return delivered
