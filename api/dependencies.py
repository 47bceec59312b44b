"""
FastAPI dependency providers.

The store, snapshot store and email client are process-wide singletons; the
services built on top of them are cheap and created per request. Tests swap
any of these through ``app.dependency_overrides``.
"""

import hmac
import logging
from functools import lru_cache
from typing import Annotated
from zoneinfo import ZoneInfo

from fastapi import Depends, Header, HTTPException, status

from booking.services.appointment_service import AppointmentService
from booking.services.payment_webhook_service import PaymentWebhookService
from booking.services.transition_notifier import NotificationSender, TransitionNotifier
from booking.state.snapshot_store import SnapshotStore, build_snapshot_store
from booking.store import AppointmentStore, TimeoutBoundStore
from database.repository import SqlAlchemyAppointmentStore
from shared.config import get_settings
from shared.email_client import ResendEmailClient

logger = logging.getLogger(__name__)


@lru_cache
def get_store() -> AppointmentStore:
    settings = get_settings()
    return TimeoutBoundStore(SqlAlchemyAppointmentStore(), settings.STORE_TIMEOUT_SECONDS)


@lru_cache
def get_snapshot_store() -> SnapshotStore:
    return build_snapshot_store(get_settings())


@lru_cache
def get_notification_sender() -> NotificationSender:
    return ResendEmailClient()


def get_business_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().BUSINESS_TIMEZONE)


def get_transition_notifier(
    store: Annotated[AppointmentStore, Depends(get_store)],
    snapshots: Annotated[SnapshotStore, Depends(get_snapshot_store)],
    sender: Annotated[NotificationSender, Depends(get_notification_sender)],
    tz: Annotated[ZoneInfo, Depends(get_business_timezone)],
) -> TransitionNotifier:
    settings = get_settings()
    return TransitionNotifier(
        store=store,
        snapshots=snapshots,
        sender=sender,
        business_name=settings.BUSINESS_NAME,
        admin_email=settings.ADMIN_NOTIFICATION_EMAIL,
        tz=tz,
    )


def get_appointment_service(
    store: Annotated[AppointmentStore, Depends(get_store)],
    notifier: Annotated[TransitionNotifier, Depends(get_transition_notifier)],
    tz: Annotated[ZoneInfo, Depends(get_business_timezone)],
) -> AppointmentService:
    return AppointmentService(store, notifier, tz)


def get_payment_webhook_service(
    store: Annotated[AppointmentStore, Depends(get_store)],
    appointments: Annotated[AppointmentService, Depends(get_appointment_service)],
) -> PaymentWebhookService:
    return PaymentWebhookService(store, appointments)


async def require_admin_token(
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    """
    Dependency guarding admin routes with the X-Admin-Token header.

    Raises:
        HTTPException: 401 if the header is missing or wrong
    """
    expected = get_settings().ADMIN_API_TOKEN
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode(), expected.encode()):
        logger.warning("Admin route called without a valid X-Admin-Token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
