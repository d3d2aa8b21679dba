# ============================================================================
# SCOPE: APPLICATION LAYER (Salon Booking)
# Description: Booking ownership tracking port.
# ============================================================================
"""Booking Ownership Port."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class IBookingOwnershipStore(Protocol):
    """Associates bookings with the phone that created them.

    Implementations: RedisBookingOwnershipStore
    """

    async def add_booking(self, phone: str, booking_id: int, data: dict[str, Any] | None = None) -> bool:
        ...

    async def remove_booking(self, phone: str, booking_id: int) -> bool:
        ...

    async def is_owner(self, phone: str, booking_id: int) -> bool:
        ...

    async def get_active_bookings(self, phone: str) -> list[int]:
        ...
