"""Unit tests for SlotValidator overlap and time-window filtering."""

import datetime as dt

from ai_admin.domains.salon_booking.application.services import SlotValidator
from ai_admin.domains.salon_booking.domain.entities import BookedService, Booking, TimeSlot

DAY = dt.date(2024, 1, 2)


def at(hour: int, minute: int = 0) -> dt.datetime:
    return dt.datetime.combine(DAY, dt.time(hour, minute))


def slot(hour: int, minute: int = 0, length: int | None = 3600) -> TimeSlot:
    return TimeSlot(datetime=at(hour, minute), staff_id=1, seance_length=length)


class TestOverlap:
    def test_overlapping_booking(self) -> None:
        booking = Booking(id=1, datetime=at(14, 30), seance_length=3600)
        assert SlotValidator.overlaps(slot(14), booking) is True

    def test_adjacent_intervals_do_not_overlap(self) -> None:
        booking = Booking(id=1, datetime=at(15), seance_length=3600)
        assert SlotValidator.overlaps(slot(14), booking) is False
        assert SlotValidator.overlaps(slot(16), booking) is False

    def test_booking_duration_falls_back_to_services(self) -> None:
        booking = Booking(
            id=1,
            datetime=at(10),
            services=[BookedService(id=2, seance_length=1800), BookedService(id=3, seance_length=3600)],
        )
        assert booking.end == at(11, 30)
        assert SlotValidator.overlaps(slot(11), booking) is True
        assert SlotValidator.overlaps(slot(11, 30), booking) is False

    def test_booking_without_duration_lasts_an_hour(self) -> None:
        booking = Booking(id=1, datetime=at(10))
        assert booking.end == at(11)

    def test_slot_without_length_lasts_an_hour(self) -> None:
        booking = Booking(id=1, datetime=at(10, 59), seance_length=60)
        assert SlotValidator.overlaps(slot(10, length=None), booking) is True


class TestFilterAvailable:
    def test_drops_overlapping_and_keeps_order(self) -> None:
        slots = [slot(10), slot(11), slot(12), slot(13)]
        bookings = [Booking(id=1, datetime=at(11, 15), length=1800)]

        available = SlotValidator().filter_available(slots, bookings)

        assert [s.time for s in available] == ["10:00", "12:00", "13:00"]

    def test_no_bookings_returns_copy(self) -> None:
        slots = [slot(10)]
        available = SlotValidator().filter_available(slots, [])
        assert available == slots
        assert available is not slots

    def test_is_available(self) -> None:
        validator = SlotValidator()
        bookings = [Booking(id=1, datetime=at(9), seance_length=7200)]
        assert validator.is_available(slot(10), bookings) is False
        assert validator.is_available(slot(11), bookings) is True
