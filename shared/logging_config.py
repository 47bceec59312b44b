"""
Structured JSON logging for the booking API.

One JSON document per line on stderr. Booking identifiers passed through
``extra=`` (appointment id, Paystack reference, event type, notification
kind, request path) become top-level keys so log search can follow one
payment or appointment across the webhook, the store and the notifier.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from shared.config import get_settings

# Attributes copied from `extra=` into the JSON document when present
EXTRA_FIELDS = (
    "appointment_id",
    "payment_reference",
    "event_type",
    "notification_kind",
    "request_path",
)

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "asyncio")


class JSONFormatter(logging.Formatter):
    """
    Render a LogRecord as a single JSON line.

    Keys: timestamp (record creation time, UTC ISO 8601), level, logger,
    message, any EXTRA_FIELDS that are set and not None, and exception when
    exc_info is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = str(value)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_logging() -> None:
    """
    Install the JSON handler on the root logger.

    LOG_LEVEL comes from settings; unknown names fall back to INFO. Noisy
    client libraries are capped at WARNING.
    """
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    root.info(f"Logging configured | level={logging.getLevelName(level)} | format=json")
