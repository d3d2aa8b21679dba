# ============================================================================
# SCOPE: APPLICATION LAYER (Salon Booking)
# Description: Booking system port (slots and booking mutations).
# ============================================================================
"""Booking Gateway Port.

Narrow interface to the CRM's booking API. Implementations return
``BookingResult(success=False, error=...)`` for business refusals and raise
``IntegrationException`` (or an ``httpx`` error) for transport failures so the
caller can decide what is worth retrying.
"""

import datetime as dt
from typing import Any, Protocol, runtime_checkable

from ...domain.entities import Booking, BookingRequest, BookingResult, TimeSlot


@runtime_checkable
class IBookingGateway(Protocol):
    """Interface for booking operations.

    Implementations: YClientsClient
    """

    async def get_available_slots(
        self,
        company_id: int,
        date: dt.date,
        service_ids: list[int] | None = None,
        staff_id: int | None = None,
    ) -> list[TimeSlot]:
        """Free slots for a day, optionally narrowed to services and a master."""
        ...

    async def get_staff_bookings(self, company_id: int, staff_id: int, date: dt.date) -> list[Booking]:
        """Existing bookings of one master on a day."""
        ...

    async def get_staff_schedule(
        self,
        company_id: int,
        staff_id: int,
        start: dt.date,
        end: dt.date,
    ) -> list[dict[str, Any]]:
        """Working days of a master between two dates (inclusive)."""
        ...

    async def create_booking(self, request: BookingRequest) -> BookingResult:
        ...

    async def cancel_booking(self, booking_id: int, company_id: int) -> BookingResult:
        ...

    async def reschedule_booking(self, booking_id: int, new_datetime: dt.datetime, company_id: int) -> BookingResult:
        ...

    async def confirm_booking(self, booking_id: int, company_id: int) -> BookingResult:
        ...

    async def mark_no_show(self, booking_id: int, company_id: int) -> BookingResult:
        ...

    async def get_client_bookings(self, phone: str, company_id: int) -> list[Booking]:
        """Upcoming bookings of the client identified by phone."""
        ...
