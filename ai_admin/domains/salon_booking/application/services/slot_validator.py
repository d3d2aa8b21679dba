"""Slot Validator.

Cross-checks slots offered by the booking system against the master's existing
bookings. The CRM occasionally returns slots that overlap a record created a
moment ago; those are filtered before being shown.
"""

import datetime as dt
import logging

from ...domain.entities import Booking, TimeSlot

logger = logging.getLogger(__name__)


class SlotValidator:
    """Stateless slot checks: overlaps with bookings and distance from a preferred time."""

    @staticmethod
    def overlaps(slot: TimeSlot, booking: Booking) -> bool:
        return slot.start < booking.end and booking.start < slot.end

    def is_available(self, slot: TimeSlot, bookings: list[Booking]) -> bool:
        return not any(self.overlaps(slot, booking) for booking in bookings)

    def filter_available(self, slots: list[TimeSlot], bookings: list[Booking]) -> list[TimeSlot]:
        """Keep slots that overlap none of ``bookings``, preserving order."""
        if not bookings:
            return list(slots)
        available = [slot for slot in slots if self.is_available(slot, bookings)]
        dropped = len(slots) - len(available)
        if dropped:
            logger.info(f"Filtered {dropped} slots overlapping existing bookings")
        return available

    @staticmethod
    def near_time(slots: list[TimeSlot], preferred: dt.time, window_minutes: int) -> list[TimeSlot]:
        """Keep slots starting within ``window_minutes`` of ``preferred`` on their day."""
        target = preferred.hour * 60 + preferred.minute
        return [
            slot
            for slot in slots
            if abs(slot.datetime.hour * 60 + slot.datetime.minute - target) <= window_minutes
        ]
