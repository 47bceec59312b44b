"""
Booking error taxonomy.

Every error raised by the booking core derives from BookingError and carries
the HTTP status the API layer answers with:

- InvalidConfiguration: malformed settings or blackout data (422)
- Unauthorized: webhook signature missing or wrong (401)
- NotFound: referenced appointment/service missing (404)
- RetryableFailure: store/transport failure during a required mutation (503)
- Ignorable: nothing to do (e.g. an unreadable gateway body); acknowledged
  without state change (200)
- SlotUnavailable: requested slot already occupied (409)
- InvalidStatusTransition: status change not allowed by the lifecycle (400)
"""


class BookingError(Exception):
    """Base class for booking core errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidConfiguration(BookingError):
    status_code = 422


class Unauthorized(BookingError):
    status_code = 401


class NotFound(BookingError):
    status_code = 404


class RetryableFailure(BookingError):
    """Downstream failure; the caller (gateway) should redeliver."""

    status_code = 503


class Ignorable(BookingError):
    status_code = 200


class SlotUnavailable(BookingError):
    status_code = 409


class InvalidStatusTransition(BookingError):
    status_code = 400
