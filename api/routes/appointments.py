"""
Appointment endpoints.

Public:
- GET  /appointments/booked-slots?date=YYYY-MM-DD
- POST /appointments

Admin (X-Admin-Token):
- GET   /appointments/{appointment_id}
- PATCH /appointments/{appointment_id}
- POST  /appointments/{appointment_id}/publish
"""

import logging
from datetime import date
from typing import Annotated
from uuid import UUID
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from api.dependencies import (
    get_appointment_service,
    get_business_timezone,
    get_store,
    require_admin_token,
)
from api.models.appointments import (
    AppointmentCreateRequest,
    AppointmentCreateResponse,
    AppointmentResponse,
    AppointmentUpdateRequest,
    BookedSlotsResponse,
)
from booking.errors import NotFound
from booking.services.appointment_service import AppointmentService, NewAppointment
from booking.services.availability_service import get_booked_slots
from booking.store import AppointmentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("/booked-slots", response_model=BookedSlotsResponse)
async def list_booked_slots(
    store: Annotated[AppointmentStore, Depends(get_store)],
    tz: Annotated[ZoneInfo, Depends(get_business_timezone)],
    target_date: Annotated[date, Query(alias="date")],
):
    """
    Occupied slot labels for one business-local date.

    Returns 422 when booking settings or blackout data are invalid.
    """
    slots = await get_booked_slots(target_date, store, tz)
    return BookedSlotsResponse(data=slots)


@router.post("", response_model=AppointmentCreateResponse)
async def create_appointment(
    request: AppointmentCreateRequest,
    service: Annotated[AppointmentService, Depends(get_appointment_service)],
):
    """
    Create a pending, unpublished booking before payment.

    Idempotent on client email + start time: a repeat returns the existing
    appointment with ``created: false`` and status 200. A new booking is 201.
    Occupied or off-grid slots are rejected with 409.
    """
    appointment, created = await service.create_appointment(
        NewAppointment(
            client_name=request.client_name,
            client_email=request.client_email,
            client_phone=request.client_phone,
            start_time=request.start_time,
            service_ids=request.service_ids,
            staff_id=request.staff_id,
            notes=request.notes,
        )
    )

    body = AppointmentCreateResponse(
        data=AppointmentResponse.from_model(appointment), created=created
    )
    return JSONResponse(status_code=201 if created else 200, content=body.model_dump(mode="json"))


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    dependencies=[Depends(require_admin_token)],
)
async def get_appointment(
    appointment_id: UUID,
    store: Annotated[AppointmentStore, Depends(get_store)],
):
    appointment = await store.get_appointment(appointment_id)
    if appointment is None:
        raise NotFound(f"Appointment {appointment_id} not found")
    return AppointmentResponse.from_model(appointment)


@router.patch(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    dependencies=[Depends(require_admin_token)],
)
async def update_appointment(
    appointment_id: UUID,
    request: AppointmentUpdateRequest,
    service: Annotated[AppointmentService, Depends(get_appointment_service)],
):
    """Admin edit: reschedule, change status, client fields, services or staff."""
    appointment = await service.update_appointment(appointment_id, request.to_changes())
    logger.info(f"Appointment updated by admin | appointment_id={appointment_id}")
    return AppointmentResponse.from_model(appointment)


@router.post(
    "/{appointment_id}/publish",
    response_model=AppointmentResponse,
    dependencies=[Depends(require_admin_token)],
)
async def publish_appointment(
    appointment_id: UUID,
    service: Annotated[AppointmentService, Depends(get_appointment_service)],
):
    appointment = await service.publish_appointment(appointment_id)
    return AppointmentResponse.from_model(appointment)
