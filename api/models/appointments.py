"""Pydantic models for appointment endpoints."""

import re
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.models import Appointment, AppointmentStatus

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _validate_email(v: str) -> str:
    v = v.strip()
    if not EMAIL_PATTERN.match(v):
        raise ValueError(f"Invalid email address: {v}")
    return v


class BookedSlotsResponse(BaseModel):
    """Occupied "HH:MM" labels for one date."""

    data: list[str]


class AppointmentCreateRequest(BaseModel):
    """Client booking request. Naive datetimes are read as business-local time."""

    client_name: str = Field(min_length=1, max_length=200)
    client_email: str = Field(max_length=254)
    client_phone: str = Field(min_length=1, max_length=30)
    start_time: datetime
    service_ids: list[UUID] = Field(min_length=1)
    staff_id: UUID | None = None
    notes: str | None = None

    @field_validator("client_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _validate_email(v)


class AppointmentUpdateRequest(BaseModel):
    """Admin edit. Only fields that are sent are changed."""

    model_config = ConfigDict(extra="forbid")

    client_name: str | None = Field(default=None, min_length=1, max_length=200)
    client_email: str | None = Field(default=None, max_length=254)
    client_phone: str | None = Field(default=None, min_length=1, max_length=30)
    start_time: datetime | None = None
    service_ids: list[UUID] | None = Field(default=None, min_length=1)
    staff_id: UUID | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None

    @field_validator("client_email")
    @classmethod
    def validate_email(cls, v: str | None) -> str | None:
        return _validate_email(v) if v is not None else None

    def to_changes(self) -> dict[str, Any]:
        """Sent fields only; ``staff_id``/``notes`` may be cleared with null."""
        changes = self.model_dump(exclude_unset=True)
        nullable = {"staff_id", "notes"}
        return {k: v for k, v in changes.items() if v is not None or k in nullable}


class AppointmentResponse(BaseModel):
    id: UUID
    client_name: str
    client_email: str
    client_phone: str
    start_time: datetime
    duration_minutes: int
    service_ids: list[UUID]
    staff_id: UUID | None
    status: AppointmentStatus
    published: bool
    published_at: datetime | None
    notes: str | None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_model(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            client_name=appointment.client_name,
            client_email=appointment.client_email,
            client_phone=appointment.client_phone,
            start_time=appointment.start_time,
            duration_minutes=appointment.duration_minutes,
            service_ids=list(appointment.service_ids or []),
            staff_id=appointment.staff_id,
            status=appointment.status,
            published=appointment.is_published,
            published_at=appointment.published_at,
            notes=appointment.notes,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )


class AppointmentCreateResponse(BaseModel):
    data: AppointmentResponse
    created: bool


class WebhookAckResponse(BaseModel):
    status: str
    appointment_id: UUID | None = None
