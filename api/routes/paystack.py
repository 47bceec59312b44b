"""Paystack webhook route handler."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_payment_webhook_service
from api.middleware.signature_validation import validate_paystack_signature
from api.models.appointments import WebhookAckResponse
from api.models.paystack_webhook import parse_gateway_event
from booking.errors import Ignorable
from booking.services.payment_webhook_service import PaymentWebhookService, WebhookOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["webhooks"])


@router.post("/paystack-webhook", response_model=WebhookAckResponse)
async def receive_paystack_webhook(
    body: Annotated[bytes, Depends(validate_paystack_signature)],
    service: Annotated[PaymentWebhookService, Depends(get_payment_webhook_service)],
) -> JSONResponse:
    """
    Receive and process Paystack webhook events.

    Only 'charge.success' changes state. Every other verified event, and any
    body that does not parse, is acknowledged with 200 so Paystack does not
    redeliver it.

    Returns:
        200 with the processing outcome
        401 if the signature is missing or wrong (from the dependency)
        503 if the appointment could not be updated (Paystack redelivers)
    """
    try:
        event = parse_gateway_event(body)
    except Ignorable as e:
        logger.warning(f"Ignoring unparseable Paystack webhook: {e.message}")
        return JSONResponse(status_code=200, content={"status": WebhookOutcome.IGNORED.value})

    result = await service.process(event)

    content = WebhookAckResponse(status=result.outcome.value, appointment_id=result.appointment_id)
    return JSONResponse(status_code=200, content=content.model_dump(mode="json"))
