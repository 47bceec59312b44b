"""
Unit tests for the slot availability service.

Covers:
- occupied_slots: appointments, full-day and partial blackouts, timezone rendering
- parse_time_of_day and booking settings validation
- get_booked_slots / ensure_slot_available against the in-memory store
"""

from datetime import UTC, date, datetime, time

import pytest

from booking.errors import InvalidConfiguration, SlotUnavailable
from booking.services.availability_service import (
    ensure_slot_available,
    generate_slot_grid,
    get_booked_slots,
    local_day_bounds,
    occupied_slots,
    parse_time_of_day,
)
from database.models import AppointmentStatus, BlackoutRange, BookingSettings
from tests.conftest import LAGOS, lagos

DAY = date(2025, 3, 14)


def _settings(start: int = 9, end: int = 18, interval: int = 30) -> BookingSettings:
    return BookingSettings(start_hour=start, end_hour=end, slot_interval_minutes=interval)


def _partial(start: str | None, end: str | None, on: date = DAY) -> BlackoutRange:
    return BlackoutRange(date=on, is_full_day=False, start_time=start, end_time=end)


def _full_day(on: date = DAY) -> BlackoutRange:
    return BlackoutRange(date=on, is_full_day=True)


class TestOccupiedSlots:
    """Tests for the pure occupied_slots calculation."""

    def test_no_appointments_no_blackouts_is_empty(self):
        assert occupied_slots(DAY, _settings(), [], [], LAGOS) == []

    def test_appointment_rendered_in_business_timezone(self, store):
        """Test that 09:00 UTC shows as 10:00 in Lagos, not in the host timezone."""
        appointment = store.add_appointment(
            datetime(2025, 3, 14, 9, 0, tzinfo=UTC), status=AppointmentStatus.CONFIRMED
        )

        assert occupied_slots(DAY, _settings(), [appointment], [], LAGOS) == ["10:00"]

    def test_partial_blackout_end_boundary_is_free(self):
        """Test that 13:00-14:00 occupies 13:00 and 13:30 but not 14:00."""
        slots = occupied_slots(DAY, _settings(), [], [_partial("13:00", "14:00")], LAGOS)

        assert slots == ["13:00", "13:30"]

    def test_full_day_blackout_covers_whole_grid(self):
        slots = occupied_slots(DAY, _settings(9, 12, 60), [], [_full_day()], LAGOS)

        assert slots == ["09:00", "10:00", "11:00"]

    def test_full_day_blackout_uses_interval(self):
        slots = occupied_slots(DAY, _settings(9, 18, 30), [], [_full_day()], LAGOS)

        assert len(slots) == 18
        assert slots[0] == "09:00"
        assert slots[-1] == "17:30"

    def test_appointment_and_blackout_merge_sorted_and_deduplicated(self, store):
        """Test the combined case: appointment at 10:00 plus a 12:00-13:00 break."""
        appointment = store.add_appointment(
            lagos(2025, 3, 14, 10), status=AppointmentStatus.CONFIRMED
        )
        overlapping = store.add_appointment(
            lagos(2025, 3, 14, 12), status=AppointmentStatus.PENDING, client_email="b@example.com"
        )

        slots = occupied_slots(
            DAY, _settings(), [overlapping, appointment], [_partial("12:00", "13:00")], LAGOS
        )

        assert slots == ["10:00", "12:00", "12:30"]

    @pytest.mark.parametrize(
        "status",
        [AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED],
    )
    def test_occupying_statuses_count(self, store, status):
        appointment = store.add_appointment(lagos(2025, 3, 14, 11), status=status)

        assert occupied_slots(DAY, _settings(), [appointment], [], LAGOS) == ["11:00"]

    @pytest.mark.parametrize(
        "status", [AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW]
    )
    def test_non_occupying_statuses_are_ignored(self, store, status):
        appointment = store.add_appointment(lagos(2025, 3, 14, 11), status=status)

        assert occupied_slots(DAY, _settings(), [appointment], [], LAGOS) == []

    def test_appointments_on_other_local_dates_are_ignored(self, store):
        """Test that 23:30 UTC on the 13th is 00:30 on the 14th in Lagos."""
        late = store.add_appointment(datetime(2025, 3, 13, 23, 30, tzinfo=UTC))
        previous_day = store.add_appointment(
            datetime(2025, 3, 13, 22, 30, tzinfo=UTC), client_email="b@example.com"
        )

        assert occupied_slots(DAY, _settings(), [late, previous_day], [], LAGOS) == ["00:30"]

    def test_blackouts_on_other_dates_are_ignored(self):
        other = _full_day(date(2025, 3, 15))

        assert occupied_slots(DAY, _settings(), [], [other], LAGOS) == []

    def test_zero_length_blackout_contributes_nothing(self):
        assert occupied_slots(DAY, _settings(), [], [_partial("13:00", "13:00")], LAGOS) == []

    def test_off_grid_blackout_occupies_overlapping_slots(self):
        """Test that 13:15-13:45 blocks both 13:00 and 13:30."""
        slots = occupied_slots(DAY, _settings(), [], [_partial("13:15", "13:45")], LAGOS)

        assert slots == ["13:00", "13:30"]

    def test_blackout_with_seconds_format(self):
        slots = occupied_slots(
            DAY, _settings(), [], [_partial("13:00:00.000", "14:00:00.000")], LAGOS
        )

        assert slots == ["13:00", "13:30"]

    def test_blackout_reversed_raises(self):
        with pytest.raises(InvalidConfiguration):
            occupied_slots(DAY, _settings(), [], [_partial("15:00", "14:00")], LAGOS)

    def test_blackout_malformed_time_raises(self):
        with pytest.raises(InvalidConfiguration):
            occupied_slots(DAY, _settings(), [], [_partial("1pm", "14:00")], LAGOS)

    def test_partial_blackout_missing_time_raises(self):
        with pytest.raises(InvalidConfiguration):
            occupied_slots(DAY, _settings(), [], [_partial("13:00", None)], LAGOS)

    @pytest.mark.parametrize(
        "start,end,interval",
        [(18, 9, 30), (9, 9, 30), (-1, 18, 30), (9, 25, 30), (9, 18, 0), (9, 18, -15)],
    )
    def test_invalid_settings_raise(self, start, end, interval):
        with pytest.raises(InvalidConfiguration):
            occupied_slots(DAY, _settings(start, end, interval), [], [], LAGOS)


class TestParseTimeOfDay:
    """Tests for parse_time_of_day."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("00:00", 0),
            ("9:30", 570),
            ("13:00", 780),
            ("13:00:00", 780),
            ("13:00:00.000", 780),
            ("24:00", 1440),
            (time(14, 15), 855),
        ],
    )
    def test_valid_values(self, value, expected):
        assert parse_time_of_day(value) == expected

    @pytest.mark.parametrize("value", ["", "13", "13:60", "25:00", "24:30", "ab:cd", None, 1300])
    def test_invalid_values(self, value):
        with pytest.raises(InvalidConfiguration):
            parse_time_of_day(value)


class TestSlotGrid:
    def test_grid_excludes_end_hour(self):
        assert generate_slot_grid(_settings(9, 11, 30)) == [540, 570, 600, 630]

    def test_local_day_bounds_are_utc(self):
        start, end = local_day_bounds(DAY, LAGOS)

        assert start == datetime(2025, 3, 13, 23, 0, tzinfo=UTC)
        assert end == datetime(2025, 3, 14, 23, 0, tzinfo=UTC)


class TestGetBookedSlots:
    """Tests for the store-backed wrappers."""

    @pytest.mark.asyncio
    async def test_uses_configured_defaults_without_settings_row(self, store):
        store.blackouts.append(_full_day())

        slots = await get_booked_slots(DAY, store, LAGOS)

        assert slots[0] == "09:00"
        assert slots[-1] == "17:30"

    @pytest.mark.asyncio
    async def test_uses_settings_row_when_present(self, store):
        store.booking_settings = _settings(10, 12, 60)
        store.blackouts.append(_full_day())

        assert await get_booked_slots(DAY, store, LAGOS) == ["10:00", "11:00"]

    @pytest.mark.asyncio
    async def test_loads_appointments_in_local_day_window(self, store):
        store.add_appointment(lagos(2025, 3, 14, 10), status=AppointmentStatus.CONFIRMED)
        store.add_appointment(lagos(2025, 3, 15, 10), client_email="b@example.com")
        store.add_appointment(
            lagos(2025, 3, 14, 15), status=AppointmentStatus.CANCELLED, client_email="c@example.com"
        )
        store.blackouts.append(_partial("12:00", "13:00"))

        assert await get_booked_slots(DAY, store, LAGOS) == ["10:00", "12:00", "12:30"]

    @pytest.mark.asyncio
    async def test_ensure_slot_available_rejects_occupied(self, store):
        store.add_appointment(lagos(2025, 3, 14, 10))

        with pytest.raises(SlotUnavailable):
            await ensure_slot_available(lagos(2025, 3, 14, 10), store, LAGOS)

    @pytest.mark.asyncio
    async def test_ensure_slot_available_rejects_off_grid(self, store):
        with pytest.raises(SlotUnavailable):
            await ensure_slot_available(lagos(2025, 3, 14, 10, 15), store, LAGOS)

    @pytest.mark.asyncio
    async def test_ensure_slot_available_rejects_outside_hours(self, store):
        with pytest.raises(SlotUnavailable):
            await ensure_slot_available(lagos(2025, 3, 14, 18), store, LAGOS)

    @pytest.mark.asyncio
    async def test_ensure_slot_available_respects_blackout_end(self, store):
        store.blackouts.append(_partial("13:00", "14:00"))

        with pytest.raises(SlotUnavailable):
            await ensure_slot_available(lagos(2025, 3, 14, 13, 30), store, LAGOS)
        await ensure_slot_available(lagos(2025, 3, 14, 14), store, LAGOS)
