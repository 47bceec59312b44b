"""
Startup configuration validation module.

This module provides startup-time validation for critical configuration
to catch misconfigurations early (fail-fast) rather than at runtime when
a client pays for a booking.

Usage:
    from shared.startup_validator import validate_startup_config, StartupValidationError

    try:
        validate_startup_config()
    except StartupValidationError as e:
        logger.critical(f"Startup blocked: {e}")
        raise
"""

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.config import get_settings

logger = logging.getLogger(__name__)


class StartupValidationError(Exception):
    """Raised when critical startup validation fails."""

    pass


def validate_startup_config() -> dict[str, bool]:
    """
    Validate all critical configuration at startup.

    Performs tiered validation:
    - TIER 1 (CRITICAL): Block startup if any fail
    - TIER 2 (IMPORTANT): Warn but allow startup

    Returns:
        dict of {check_name: passed} for all validations

    Raises:
        StartupValidationError: If any CRITICAL check fails
    """
    settings = get_settings()
    results: dict[str, bool] = {}
    critical_failures: list[str] = []

    # =========================================================================
    # TIER 1: CRITICAL (block startup if any fail)
    # =========================================================================

    # 1. Webhook secret - without it no payment can ever be verified
    if not settings.PAYSTACK_SECRET_KEY.strip():
        critical_failures.append(
            "PAYSTACK_SECRET_KEY is not set - webhook signatures cannot be verified"
        )
        results["paystack_secret"] = False
    else:
        results["paystack_secret"] = True
        logger.info("  [OK] Paystack webhook secret configured")

    # 2. Business timezone must resolve
    try:
        ZoneInfo(settings.BUSINESS_TIMEZONE)
        results["business_timezone"] = True
        logger.info(f"  [OK] Business timezone: {settings.BUSINESS_TIMEZONE}")
    except (ZoneInfoNotFoundError, ValueError):
        critical_failures.append(
            f"BUSINESS_TIMEZONE '{settings.BUSINESS_TIMEZONE}' is not a valid IANA timezone"
        )
        results["business_timezone"] = False

    # 3. Default booking hours must be coherent
    if not (
        0 <= settings.BOOKING_START_HOUR < settings.BOOKING_END_HOUR <= 24
        and settings.BOOKING_SLOT_INTERVAL_MINUTES > 0
    ):
        critical_failures.append(
            f"Booking defaults invalid: start={settings.BOOKING_START_HOUR}, "
            f"end={settings.BOOKING_END_HOUR}, "
            f"interval={settings.BOOKING_SLOT_INTERVAL_MINUTES}"
        )
        results["booking_defaults"] = False
    else:
        results["booking_defaults"] = True

    # 4. Snapshot backend must be known
    if settings.SNAPSHOT_BACKEND not in ("memory", "redis"):
        critical_failures.append(
            f"SNAPSHOT_BACKEND must be 'memory' or 'redis', got '{settings.SNAPSHOT_BACKEND}'"
        )
        results["snapshot_backend"] = False
    else:
        results["snapshot_backend"] = True

    # =========================================================================
    # TIER 2: IMPORTANT (warn but allow startup)
    # =========================================================================

    if settings.RESEND_API_KEY == "re_placeholder":
        logger.warning(
            "  [WARN] RESEND_API_KEY is placeholder - notification emails will fail"
        )
        results["resend_api_key"] = False
    else:
        results["resend_api_key"] = True

    if settings.ADMIN_API_TOKEN == "admin_token_placeholder":
        logger.warning(
            "  [WARN] ADMIN_API_TOKEN is placeholder - admin routes use a guessable token"
        )
        results["admin_api_token"] = False
    else:
        results["admin_api_token"] = True

    if settings.ADMIN_NOTIFICATION_EMAIL.endswith("@example.com"):
        logger.warning(
            "  [WARN] ADMIN_NOTIFICATION_EMAIL is placeholder - admin copies go nowhere"
        )
        results["admin_email"] = False
    else:
        results["admin_email"] = True

    if critical_failures:
        for failure in critical_failures:
            logger.critical(f"  [FAIL] {failure}")
        raise StartupValidationError(
            f"{len(critical_failures)} critical configuration error(s): "
            + "; ".join(critical_failures)
        )

    logger.info("Startup configuration validation passed")
    return results
