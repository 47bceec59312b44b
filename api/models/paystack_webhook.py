"""
Pydantic models for Paystack webhook payloads.

Raw gateway bodies are parsed once, at the boundary, into one of two event
types:

- ChargeSucceeded: a ``charge.success`` event with its reference, amount in
  minor units (kobo), payer email and booking metadata
- OtherEvent: any other event type, acknowledged and ignored

Anything that does not parse raises ``InvalidGatewayPayload``.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from booking.errors import Ignorable

logger = logging.getLogger(__name__)

CHARGE_SUCCESS_EVENT = "charge.success"


class InvalidGatewayPayload(Ignorable):
    """Webhook body is not valid JSON or not a recognizable gateway event."""


def _optional_uuid(value: Any) -> UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        logger.warning(f"Ignoring non-UUID identifier in payment metadata: {value!r}")
        return None


_DATETIME = TypeAdapter(datetime)


def _optional_datetime(value: Any) -> datetime | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return _DATETIME.validate_python(value.strip() if isinstance(value, str) else value)
    except ValidationError:
        logger.warning(f"Ignoring unparseable appointment datetime in payment metadata: {value!r}")
        return None


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class BookingMetadata(BaseModel):
    """
    Metadata the client attaches when initiating a payment.

    Either ``appointment_id`` alone (the client already created the booking),
    or the data needed to rebuild the booking when it never reached us.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    appointment_id: UUID | None = None
    client_name: str | None = Field(
        default=None, validation_alias=AliasChoices("client_name", "name", "customer_name")
    )
    client_email: str | None = Field(
        default=None, validation_alias=AliasChoices("client_email", "email", "customer_email")
    )
    client_phone: str | None = Field(
        default=None, validation_alias=AliasChoices("client_phone", "phone", "customer_phone")
    )
    appointment_datetime: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("appointment_datetime", "AppointmentDateTime", "datetime"),
    )
    service_ids: list[UUID] = Field(
        default_factory=list, validation_alias=AliasChoices("service_ids", "services", "service_id")
    )
    staff_id: UUID | None = None

    @field_validator("appointment_id", "staff_id", mode="before")
    @classmethod
    def parse_identifier(cls, v: Any) -> UUID | None:
        return _optional_uuid(v)

    @field_validator("client_name", "client_email", "client_phone", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> str | None:
        return _optional_text(v)

    @field_validator("appointment_datetime", mode="before")
    @classmethod
    def parse_datetime(cls, v: Any) -> datetime | None:
        """Blank or unparseable values only disable recovery, never the charge."""
        return _optional_datetime(v)

    @field_validator("service_ids", mode="before")
    @classmethod
    def parse_service_ids(cls, v: Any) -> list[UUID]:
        """Accept a single id, a list of ids or a comma-separated string."""
        if v is None or v == "":
            return []
        if isinstance(v, str):
            v = [part for part in v.split(",") if part.strip()]
        elif not isinstance(v, list):
            v = [v]
        return [sid for sid in (_optional_uuid(item) for item in v) if sid is not None]

    def has_recovery_data(self) -> bool:
        """True when the booking can be rebuilt without the client."""
        return bool(
            self.client_name
            and self.client_email
            and self.client_phone
            and self.appointment_datetime is not None
            and self.service_ids
        )


class PaystackCustomer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str | None = None


class PaystackChargeData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    reference: str = Field(min_length=1)
    amount: int = Field(ge=0)
    customer: PaystackCustomer = Field(default_factory=PaystackCustomer)
    # Validated separately: a bad metadata bag must not void a valid charge
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def decode_metadata(cls, v: Any) -> Any:
        """Paystack sends metadata as an object, a JSON string, or an empty string."""
        if v is None or v == "":
            return {}
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                logger.warning("Payment metadata is not valid JSON, treating as empty")
                return {}
        if not isinstance(v, dict):
            return {}
        return v


class ChargeSucceeded(BaseModel):
    """A successful charge, normalized for processing."""

    kind: Literal["charge_succeeded"] = "charge_succeeded"
    reference: str
    amount_minor: int
    payer_email: str | None
    metadata: BookingMetadata

    @property
    def amount(self) -> Decimal:
        """Amount in major units (kobo / 100)."""
        return Decimal(self.amount_minor) / Decimal(100)


class OtherEvent(BaseModel):
    """Any event type other than charge.success."""

    kind: Literal["other"] = "other"
    event: str


GatewayEvent = ChargeSucceeded | OtherEvent


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


def _parse_metadata(raw: dict[str, Any], reference: str) -> BookingMetadata:
    try:
        return BookingMetadata.model_validate(raw)
    except ValidationError as e:
        logger.warning(
            f"Payment metadata could not be read, treating as empty | reference={reference}: {e}",
            extra={"payment_reference": reference},
        )
        return BookingMetadata()


def parse_gateway_event(raw_body: bytes) -> GatewayEvent:
    """
    Parse a raw Paystack webhook body.

    Args:
        raw_body: Request body exactly as received (already signature-checked)

    Returns:
        ChargeSucceeded or OtherEvent

    Raises:
        InvalidGatewayPayload: Body is not JSON, has no event type, or is a
            charge.success event without a usable reference/amount
    """
    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidGatewayPayload(f"Webhook body is not valid JSON: {e}") from e

    try:
        envelope = _Envelope.model_validate(payload)
    except ValidationError as e:
        raise InvalidGatewayPayload(f"Webhook body is not a gateway event: {e}") from e

    if envelope.event != CHARGE_SUCCESS_EVENT:
        return OtherEvent(event=envelope.event)

    try:
        data = PaystackChargeData.model_validate(envelope.data)
    except ValidationError as e:
        raise InvalidGatewayPayload(f"Malformed {CHARGE_SUCCESS_EVENT} payload: {e}") from e

    metadata = _parse_metadata(data.metadata, data.reference)
    # The paying customer is the client unless metadata names someone else
    if metadata.client_email is None and data.customer.email:
        metadata = metadata.model_copy(update={"client_email": data.customer.email.strip()})

    return ChargeSucceeded(
        reference=data.reference,
        amount_minor=data.amount,
        payer_email=data.customer.email,
        metadata=metadata,
    )
