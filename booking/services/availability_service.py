"""
Slot availability service.

Merges occupying appointments with administrator blackout ranges into the
list of occupied ``HH:MM`` slot labels for one business-local date.

``occupied_slots`` is pure: all data is passed in, nothing is read or
written, so it is safe for unbounded concurrent use and exhaustive unit
testing. ``get_booked_slots`` is the async wrapper that loads the inputs
from an AppointmentStore.

Labels are always rendered in the configured business timezone
(BUSINESS_TIMEZONE), never in the host timezone.

Usage:
    from booking.services.availability_service import get_booked_slots

    slots = await get_booked_slots(date(2025, 3, 14), store)
    # ["10:00", "12:00", "12:30"]
"""

import logging
import re
from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from booking.errors import InvalidConfiguration, SlotUnavailable
from booking.store import AppointmentStore
from database.models import OCCUPYING_STATUSES, Appointment, BlackoutRange, BookingSettings
from shared.config import get_settings

logger = logging.getLogger(__name__)

# "13:00", "9:30", "13:00:00", "13:00:00.000"
TIME_OF_DAY_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?$")

MINUTES_PER_DAY = 24 * 60


def business_timezone() -> ZoneInfo:
    """Return the configured business timezone."""
    return ZoneInfo(get_settings().BUSINESS_TIMEZONE)


def parse_time_of_day(value: Any) -> int:
    """
    Parse a time-of-day into minutes since midnight.

    Args:
        value: "HH:MM", "HH:MM:SS", "HH:MM:SS.fff" or a datetime.time

    Returns:
        Minutes since midnight (0-1440; "24:00" is accepted as end of day)

    Raises:
        InvalidConfiguration: If the value is missing or malformed
    """
    if isinstance(value, time):
        return value.hour * 60 + value.minute

    if not isinstance(value, str):
        raise InvalidConfiguration(f"Time of day must be a string, got {value!r}")

    match = TIME_OF_DAY_PATTERN.match(value.strip())
    if not match:
        raise InvalidConfiguration(f"Malformed time of day: {value!r}")

    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)

    if minutes > 59 or seconds > 59 or hours > 24 or (hours == 24 and (minutes or seconds)):
        raise InvalidConfiguration(f"Time of day out of range: {value!r}")

    return hours * 60 + minutes


def format_slot_label(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def validate_booking_settings(settings: BookingSettings) -> None:
    """
    Raises:
        InvalidConfiguration: If hours or interval cannot produce a slot grid
    """
    start, end, interval = settings.start_hour, settings.end_hour, settings.slot_interval_minutes

    if not all(isinstance(v, int) for v in (start, end, interval)):
        raise InvalidConfiguration(
            f"Booking settings must be integers: start={start!r}, end={end!r}, interval={interval!r}"
        )
    if not (0 <= start < end <= 24):
        raise InvalidConfiguration(f"Invalid business hours: start={start}, end={end}")
    if interval <= 0 or interval > MINUTES_PER_DAY:
        raise InvalidConfiguration(f"Invalid slot interval: {interval}")


def generate_slot_grid(settings: BookingSettings) -> list[int]:
    """All slot starts (minutes since midnight) in [start_hour, end_hour)."""
    validate_booking_settings(settings)
    start = settings.start_hour * 60
    end = settings.end_hour * 60
    return list(range(start, end, settings.slot_interval_minutes))


def _blackout_slots(blackout: BlackoutRange, grid: list[int], interval: int) -> set[int]:
    if blackout.is_full_day:
        return set(grid)

    if blackout.start_time is None or blackout.end_time is None:
        raise InvalidConfiguration(
            f"Partial blackout on {blackout.date} needs both start_time and end_time"
        )

    start = parse_time_of_day(blackout.start_time)
    end = parse_time_of_day(blackout.end_time)

    if start == end:
        return set()
    if start > end:
        raise InvalidConfiguration(
            f"Blackout on {blackout.date} ends before it starts: "
            f"{blackout.start_time}-{blackout.end_time}"
        )

    # A slot equal to the end boundary stays free
    return {slot for slot in grid if slot < end and slot + interval > start}


def occupied_slots(
    target_date: date,
    settings: BookingSettings,
    appointments: Iterable[Appointment],
    blackouts: Iterable[BlackoutRange],
    tz: ZoneInfo,
) -> list[str]:
    """
    Compute occupied slot labels for one business-local date.

    Args:
        target_date: Business-local calendar date
        settings: Business hours and slot interval
        appointments: Appointments around that date; only occupying statuses
            (pending, confirmed, completed) on target_date count
        blackouts: Blackout ranges; only those dated target_date count
        tz: Business timezone used to render appointment start times

    Returns:
        Sorted, deduplicated list of "HH:MM" labels

    Raises:
        InvalidConfiguration: Invalid settings or malformed blackout times

    Example:
        >>> occupied_slots(d, settings_9_18_30, [confirmed_at_10_local], [break_12_13], tz)
        ["10:00", "12:00", "12:30"]
    """
    grid = generate_slot_grid(settings)
    interval = settings.slot_interval_minutes

    occupied: set[int] = set()

    for appointment in appointments:
        if appointment.status not in OCCUPYING_STATUSES:
            continue

        start_time = appointment.start_time
        if start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=UTC)
        local = start_time.astimezone(tz)

        if local.date() != target_date:
            continue
        occupied.add(local.hour * 60 + local.minute)

    for blackout in blackouts:
        if blackout.date != target_date:
            continue
        occupied |= _blackout_slots(blackout, grid, interval)

    return [format_slot_label(minutes) for minutes in sorted(occupied)]


def local_day_bounds(target_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC instants for [local midnight, next local midnight)."""
    start_local = datetime.combine(target_date, time.min, tzinfo=tz)
    end_local = datetime.combine(target_date + timedelta(days=1), time.min, tzinfo=tz)
    return start_local.astimezone(UTC), end_local.astimezone(UTC)


async def load_booking_settings(store: AppointmentStore) -> BookingSettings:
    """
    Load the settings singleton, falling back to configured defaults.
    """
    booking_settings = await store.get_booking_settings()
    if booking_settings is not None:
        return booking_settings

    settings = get_settings()
    logger.debug("No booking_settings row found, using configured defaults")
    return BookingSettings(
        start_hour=settings.BOOKING_START_HOUR,
        end_hour=settings.BOOKING_END_HOUR,
        slot_interval_minutes=settings.BOOKING_SLOT_INTERVAL_MINUTES,
    )


async def get_booked_slots(
    target_date: date,
    store: AppointmentStore,
    tz: ZoneInfo | None = None,
) -> list[str]:
    """
    Occupied slot labels for a business-local date, loaded from the store.

    Raises:
        InvalidConfiguration: Invalid settings or blackout data
        RetryableFailure: Store unavailable
    """
    tz = tz or business_timezone()

    booking_settings = await load_booking_settings(store)
    window_start, window_end = local_day_bounds(target_date, tz)

    appointments = await store.list_appointments_between(
        window_start, window_end, OCCUPYING_STATUSES
    )
    blackouts = await store.list_blackouts(target_date)

    slots = occupied_slots(target_date, booking_settings, appointments, blackouts, tz)

    logger.debug(
        f"Booked slots for {target_date}: {len(slots)} occupied "
        f"({len(appointments)} appointments, {len(blackouts)} blackouts)"
    )
    return slots


async def ensure_slot_available(
    start_time: datetime,
    store: AppointmentStore,
    tz: ZoneInfo | None = None,
) -> None:
    """
    Check a requested start time against the slot grid and occupied slots.

    Raises:
        SlotUnavailable: Off-grid, outside business hours, or already occupied
        InvalidConfiguration: Invalid settings or blackout data
    """
    tz = tz or business_timezone()
    local = start_time.astimezone(tz)
    label = local.strftime("%H:%M")

    booking_settings = await load_booking_settings(store)
    grid_labels = {format_slot_label(m) for m in generate_slot_grid(booking_settings)}
    if label not in grid_labels:
        raise SlotUnavailable(f"{label} is not a bookable slot")

    booked = await get_booked_slots(local.date(), store, tz)
    if label in booked:
        raise SlotUnavailable(f"The {label} slot on {local.date()} is already taken")

