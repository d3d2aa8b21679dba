"""
Booking Service

Domain service over the booking gateway: slot search with overlap validation,
idempotent booking creation and ownership-checked mutations. Every gateway call
goes through the circuit breaker and the retryer; business refusals are raised
as ``BookingException`` subclasses, which neither trip the breaker nor retry.
"""

import asyncio
import datetime as dt
import hashlib
import logging
from typing import Any, Awaitable, Callable

from ai_admin.core.domain import (
    BookingException,
    BookingOwnershipException,
    SlotUnavailableException,
    ValidationException,
)
from ai_admin.core.infrastructure import CircuitBreaker, CircuitBreakerError, Retryer

from ...domain.entities import Booking, BookingRequest, BookingResult, TimeSlot
from ..ports import IBookingGateway, IBookingOwnershipStore
from .slot_validator import SlotValidator

logger = logging.getLogger(__name__)

# Failures that are answers, not outages
BUSINESS_EXCEPTIONS = (BookingException, ValidationException)
NON_RETRYABLE_EXCEPTIONS = BUSINESS_EXCEPTIONS + (CircuitBreakerError,)

SLOT_UNAVAILABLE_MARKERS = (
    "уже занято",
    "недоступно",
    "нет свободных",
    "already booked",
    "not available",
    "no slots",
)

DEFAULT_MIN_MINUTES_AHEAD = 30
DEFAULT_MAX_DAYS_AHEAD = 30


def is_slot_unavailable_error(message: str | None) -> bool:
    """Whether a refusal from the booking system means the time is taken."""
    text = (message or "").lower()
    return any(marker in text for marker in SLOT_UNAVAILABLE_MARKERS)


def build_idempotency_key(request: BookingRequest) -> str:
    """Stable ``api_id`` for one client/time/service combination."""
    raw = ":".join(
        [
            request.phone,
            str(request.company_id),
            str(request.staff_id or 0),
            ",".join(str(service_id) for service_id in sorted(request.service_ids)),
            request.datetime.isoformat(),
        ]
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


class BookingService:
    """
    Booking operations for one CRM.

    Example:
        ```python
        service = BookingService(gateway, ownership_store, breaker, retryer)
        slots = await service.find_slots(company_id, date, service_ids=[2], staff_ids=[1, 3])
        result = await service.create_booking(request)
        ```
    """

    def __init__(
        self,
        gateway: IBookingGateway,
        ownership_store: IBookingOwnershipStore | None,
        breaker: CircuitBreaker,
        retryer: Retryer,
        slot_validator: SlotValidator | None = None,
        min_minutes_ahead: int = DEFAULT_MIN_MINUTES_AHEAD,
        max_days_ahead: int = DEFAULT_MAX_DAYS_AHEAD,
        now: Callable[[], dt.datetime] = dt.datetime.now,
    ):
        self.gateway = gateway
        self.ownership_store = ownership_store
        self.breaker = breaker
        self.retryer = retryer
        self.slot_validator = slot_validator or SlotValidator()
        self.min_minutes_ahead = min_minutes_ahead
        self.max_days_ahead = max_days_ahead
        self._now = now

    async def _call(self, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Run a gateway call through retry and the breaker."""
        return await self.retryer.execute(self.breaker.execute, func, *args)

    async def _mutate(self, action: str, func: Callable[..., Awaitable[BookingResult]], *args: Any) -> BookingResult:
        """Run a mutation and turn a refusal into a business exception."""

        async def checked() -> BookingResult:
            result = await func(*args)
            if not result.success:
                if is_slot_unavailable_error(result.error):
                    raise SlotUnavailableException(result.error or "Selected time is no longer available")
                raise BookingException(result.error or f"Failed to {action} booking")
            return result

        return await self._call(checked)

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    async def _validated_slots(
        self,
        company_id: int,
        date: dt.date,
        service_ids: list[int] | None,
        staff_id: int,
    ) -> list[TimeSlot]:
        slots, bookings = await asyncio.gather(
            self._call(self.gateway.get_available_slots, company_id, date, service_ids, staff_id),
            self._call(self.gateway.get_staff_bookings, company_id, staff_id, date),
        )
        slots = [slot if slot.staff_id is not None else slot.model_copy(update={"staff_id": staff_id}) for slot in slots]
        return self.slot_validator.filter_available(slots, bookings)

    async def find_slots(
        self,
        company_id: int,
        date: dt.date,
        service_ids: list[int] | None = None,
        staff_id: int | None = None,
        staff_ids: list[int] | None = None,
    ) -> list[TimeSlot]:
        """
        Free slots for a day.

        With ``staff_id`` only that master is searched. Otherwise every id in
        ``staff_ids`` is searched in parallel; a failing master is logged and
        skipped. Without either, the booking system picks masters itself.

        Returns:
            Slots ordered by time
        """
        if staff_id is not None:
            return await self._validated_slots(company_id, date, service_ids, staff_id)

        if not staff_ids:
            slots = await self._call(self.gateway.get_available_slots, company_id, date, service_ids, None)
            return sorted(slots, key=lambda slot: slot.datetime)

        results = await asyncio.gather(
            *(self._validated_slots(company_id, date, service_ids, sid) for sid in staff_ids),
            return_exceptions=True,
        )

        slots: list[TimeSlot] = []
        for sid, result in zip(staff_ids, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Slot search failed for staff {sid}: {result}",
                    extra={"company_id": company_id, "staff_id": sid},
                )
                continue
            slots.extend(result)

        if not slots and all(isinstance(result, BaseException) for result in results):
            # Nothing succeeded: surface the first failure instead of "no slots"
            raise next(result for result in results if isinstance(result, BaseException))

        return sorted(slots, key=lambda slot: slot.datetime)

    async def get_staff_schedule(
        self,
        company_id: int,
        staff_id: int,
        start: dt.date,
        end: dt.date,
    ) -> list[dict[str, Any]]:
        return await self._call(self.gateway.get_staff_schedule, company_id, staff_id, start, end)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def check_booking_time(self, when: dt.datetime) -> None:
        """
        Reject times outside the bookable window.

        Raises:
            ValidationException: Sooner than ``min_minutes_ahead`` or later
                than ``max_days_ahead`` from now
        """
        now = self._now()
        if when.tzinfo is not None:
            now = now.astimezone(when.tzinfo)
        elif now.tzinfo is not None:
            now = now.astimezone().replace(tzinfo=None)

        if when < now + dt.timedelta(minutes=self.min_minutes_ahead):
            raise ValidationException(
                f"Booking time must be at least {self.min_minutes_ahead} minutes ahead",
                field="datetime",
                details={"datetime": when.isoformat()},
            )
        if when > now + dt.timedelta(days=self.max_days_ahead):
            raise ValidationException(
                f"Booking time must be within {self.max_days_ahead} days",
                field="datetime",
                details={"datetime": when.isoformat()},
            )

    async def create_booking(self, request: BookingRequest) -> BookingResult:
        """
        Create a booking and remember who owns it.

        Raises:
            ValidationException: No services in the request or a time outside
                the bookable window
            SlotUnavailableException: The time is taken (not retried)
            BookingException: Any other refusal
            CircuitBreakerError: The booking system is considered down
            RetryExhaustedError: Transient failures on every attempt
        """
        if not request.service_ids:
            raise ValidationException("At least one service is required", field="service_ids")
        self.check_booking_time(request.datetime)

        if request.api_id is None:
            request = request.model_copy(update={"api_id": build_idempotency_key(request)})

        logger.info(
            f"Creating booking for {request.phone} at {request.datetime.isoformat()}",
            extra={
                "company_id": request.company_id,
                "staff_id": request.staff_id,
                "service_ids": request.service_ids,
                "api_id": request.api_id,
            },
        )

        result = await self._mutate("create", self.gateway.create_booking, request)

        if result.id is not None and self.ownership_store is not None:
            try:
                await self.ownership_store.add_booking(
                    request.phone,
                    result.id,
                    {
                        "company_id": request.company_id,
                        "datetime": request.datetime.isoformat(),
                        "staff_id": request.staff_id,
                        "service_ids": request.service_ids,
                    },
                )
            except Exception as e:
                logger.error(f"Failed to record ownership of booking {result.id}: {e}")

        return result

    async def verify_ownership(self, phone: str, booking_id: int, company_id: int) -> bool:
        """Ownership store first, then the client's bookings in the CRM."""
        if self.ownership_store is not None:
            try:
                if await self.ownership_store.is_owner(phone, booking_id):
                    return True
            except Exception as e:
                logger.warning(f"Ownership store unavailable, checking CRM: {e}")

        bookings = await self.get_client_bookings(phone, company_id)
        return any(booking.id == booking_id for booking in bookings)

    async def _ensure_owner(self, phone: str | None, booking_id: int, company_id: int) -> None:
        if phone is None:
            return
        if not await self.verify_ownership(phone, booking_id, company_id):
            logger.warning(
                f"Refused operation on booking {booking_id} not owned by {phone}",
                extra={"booking_id": booking_id, "company_id": company_id},
            )
            raise BookingOwnershipException(booking_id, phone)

    async def cancel_booking(self, booking_id: int, company_id: int, phone: str | None = None) -> BookingResult:
        """Cancel a booking; with ``phone`` the booking must belong to it."""
        await self._ensure_owner(phone, booking_id, company_id)
        result = await self._mutate("cancel", self.gateway.cancel_booking, booking_id, company_id)

        if phone is not None and self.ownership_store is not None:
            try:
                await self.ownership_store.remove_booking(phone, booking_id)
            except Exception as e:
                logger.error(f"Failed to drop ownership of booking {booking_id}: {e}")

        logger.info(f"Booking {booking_id} cancelled", extra={"company_id": company_id})
        return result

    async def reschedule_booking(
        self,
        booking_id: int,
        new_datetime: dt.datetime,
        company_id: int,
        phone: str | None = None,
    ) -> BookingResult:
        self.check_booking_time(new_datetime)
        await self._ensure_owner(phone, booking_id, company_id)
        return await self._mutate("reschedule", self.gateway.reschedule_booking, booking_id, new_datetime, company_id)

    async def confirm_booking(self, booking_id: int, company_id: int, phone: str | None = None) -> BookingResult:
        await self._ensure_owner(phone, booking_id, company_id)
        return await self._mutate("confirm", self.gateway.confirm_booking, booking_id, company_id)

    async def mark_no_show(self, booking_id: int, company_id: int) -> BookingResult:
        return await self._mutate("mark no-show for", self.gateway.mark_no_show, booking_id, company_id)

    async def get_client_bookings(self, phone: str, company_id: int) -> list[Booking]:
        """Client's bookings ordered by time."""
        bookings = await self._call(self.gateway.get_client_bookings, phone, company_id)
        return sorted(bookings, key=lambda booking: booking.datetime)
