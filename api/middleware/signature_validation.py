"""Middleware for webhook signature validation."""

import hashlib
import hmac
import logging

from fastapi import HTTPException, Request

from shared.config import get_settings

logger = logging.getLogger(__name__)

PAYSTACK_SIGNATURE_HEADER = "x-paystack-signature"


def compute_paystack_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA512 of the raw body, as Paystack computes it."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def is_valid_paystack_signature(body: bytes, signature: str | None, secret: str) -> bool:
    if not signature:
        return False
    expected = compute_paystack_signature(body, secret).encode("ascii")
    # Header values arrive latin-1 decoded; compare as bytes so non-ASCII
    # junk is a mismatch rather than a TypeError
    received = signature.strip().lower().encode("latin-1", "replace")
    return hmac.compare_digest(expected, received)


async def validate_paystack_signature(request: Request) -> bytes:
    """
    Validate Paystack webhook signature.

    The signature covers the raw body bytes, so the body is returned as-is
    and parsed only after verification.

    Args:
        request: FastAPI request object

    Returns:
        Raw request body

    Raises:
        HTTPException: 500 if PAYSTACK_SECRET_KEY is not configured,
            401 if the signature is missing or does not match
    """
    settings = get_settings()
    body = await request.body()

    if not settings.PAYSTACK_SECRET_KEY:
        logger.critical("PAYSTACK_SECRET_KEY is not configured, cannot verify webhooks")
        raise HTTPException(status_code=500, detail="Webhook verification is not configured")

    signature_header: str | None = request.headers.get(PAYSTACK_SIGNATURE_HEADER)

    if not signature_header:
        logger.warning("Paystack webhook received without signature header")
        raise HTTPException(status_code=401, detail="Invalid Paystack signature")

    if not is_valid_paystack_signature(body, signature_header, settings.PAYSTACK_SECRET_KEY):
        logger.warning(f"Paystack signature verification failed | body_bytes={len(body)}")
        raise HTTPException(status_code=401, detail="Invalid Paystack signature")

    logger.debug("Paystack signature validated")
    return body
