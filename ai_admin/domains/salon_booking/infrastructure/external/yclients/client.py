# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Salon Booking)
# Description: YClients REST client implementation.
# ============================================================================
"""YClients REST Client.

Async client for the YClients CRM API. Implements IBookingGateway and
ICatalogLoader.

Error contract:
- 4xx on a mutation: ``BookingResult(success=False, error=<meta.message>)``
- 4xx on a read, any 5xx, transport errors: ``IntegrationException``

Resilience (breaker, retry) is applied by the booking service, not here.
"""

import asyncio
import datetime as dt
import logging
from collections import Counter
from typing import Any, Callable

import httpx

from ai_admin.core.domain import IntegrationException

from ....domain.entities import Booking, BookingRequest, BookingResult, ClientInfo, Service, StaffMember, TimeSlot
from .mappers import (
    format_datetime,
    is_active_staff,
    to_booking,
    to_client,
    to_service,
    to_slot,
    to_staff,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "yclients"
ACCEPT_HEADER = "application/vnd.yclients.v2+json"

ATTENDANCE_CONFIRMED = 2
ATTENDANCE_NO_SHOW = -1

BUSINESS_STATS_DAYS = 30
POPULAR_SERVICES_LIMIT = 10


class YClientsClient:
    """Async REST client for YClients.

    Example:
        ```python
        client = YClientsClient(settings.YCLIENTS_API_URL, settings.YCLIENTS_PARTNER_TOKEN, settings.YCLIENTS_USER_TOKEN)
        slots = await client.get_available_slots(962302, date(2024, 1, 2), [2], staff_id=1)
        await client.close()
        ```
    """

    def __init__(
        self,
        base_url: str,
        partner_token: str,
        user_token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        """Initialize client.

        Args:
            base_url: API root, e.g. https://api.yclients.com/api/v1
            partner_token: Partner (bearer) token
            user_token: User token, required for records and mutations
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
            today: Date source for relative ranges
        """
        self.base_url = base_url.rstrip("/")
        self.partner_token = partner_token
        self.user_token = user_token
        self.timeout = timeout
        self._transport = transport
        self._today = today
        self._client: httpx.AsyncClient | None = None

    def _auth_header(self) -> str:
        auth = f"Bearer {self.partner_token}"
        if self.user_token:
            auth += f", User {self.user_token}"
        return auth

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                headers={
                    "Accept": ACCEPT_HEADER,
                    "Content-Type": "application/json",
                    "Authorization": self._auth_header(),
                },
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        meta = payload.get("meta") or {}
        if isinstance(meta, dict) and meta.get("message"):
            return str(meta["message"])
        errors = payload.get("errors")
        if isinstance(errors, dict) and errors.get("message"):
            return str(errors["message"])
        return response.reason_phrase

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise IntegrationException(SERVICE_NAME, f"Timeout on {method} {path}") from e
        except httpx.HTTPError as e:
            raise IntegrationException(SERVICE_NAME, f"{method} {path} failed: {e}") from e

        if response.status_code >= 500:
            raise IntegrationException(SERVICE_NAME, self._error_message(response), response.status_code)

        logger.debug(f"YClients {method} {path} -> {response.status_code}")
        return response

    async def _read(self, method: str, path: str, **kwargs: Any) -> Any:
        """Request and unwrap ``data``; any error status raises."""
        response = await self._send(method, path, **kwargs)
        if response.is_error:
            raise IntegrationException(SERVICE_NAME, self._error_message(response), response.status_code)
        payload = response.json()
        if isinstance(payload, dict) and payload.get("success") is False:
            raise IntegrationException(SERVICE_NAME, self._error_message(response), response.status_code)
        return payload.get("data") if isinstance(payload, dict) else payload

    async def _mutate(self, method: str, path: str, **kwargs: Any) -> tuple[BookingResult, Any]:
        """Request a change; 4xx becomes a refused ``BookingResult``."""
        response = await self._send(method, path, **kwargs)
        if response.is_error:
            message = self._error_message(response)
            logger.warning(
                f"YClients refused {method} {path}: {message}",
                extra={"status_code": response.status_code},
            )
            return BookingResult(success=False, error=message), None

        payload = response.json() if response.content else {}
        if isinstance(payload, dict) and payload.get("success") is False:
            return BookingResult(success=False, error=self._error_message(response)), None
        data = payload.get("data") if isinstance(payload, dict) else payload
        return BookingResult(success=True), data

    # ------------------------------------------------------------------
    # IBookingGateway
    # ------------------------------------------------------------------

    async def get_available_slots(
        self,
        company_id: int,
        date: dt.date,
        service_ids: list[int] | None = None,
        staff_id: int | None = None,
    ) -> list[TimeSlot]:
        params = {"service_ids[]": service_ids} if service_ids else None
        data = await self._read("GET", f"/book_times/{company_id}/{staff_id or 0}/{date.isoformat()}", params=params)
        return [to_slot(item, staff_id) for item in data or []]

    async def _get_records(self, company_id: int, **params: Any) -> list[Booking]:
        data = await self._read("GET", f"/records/{company_id}", params=params)
        return [to_booking(item) for item in data or [] if not item.get("deleted")]

    async def get_staff_bookings(self, company_id: int, staff_id: int, date: dt.date) -> list[Booking]:
        return await self._get_records(
            company_id,
            staff_id=staff_id,
            start_date=date.isoformat(),
            end_date=date.isoformat(),
        )

    async def get_staff_schedule(
        self,
        company_id: int,
        staff_id: int,
        start: dt.date,
        end: dt.date,
    ) -> list[dict[str, Any]]:
        data = await self._read("GET", f"/schedule/{company_id}/{staff_id}/{start.isoformat()}/{end.isoformat()}")
        return [
            {"date": day.get("date"), "is_working": bool(day.get("is_working", True)), "slots": day.get("slots", [])}
            for day in data or []
        ]

    async def create_booking(self, request: BookingRequest) -> BookingResult:
        payload = {
            "phone": request.phone,
            "fullname": request.client_name or "",
            "email": "",
            "comment": request.comment or "Запись через WhatsApp",
            "api_id": request.api_id,
            "appointments": [
                {
                    "id": 0,
                    "services": request.service_ids,
                    "staff_id": request.staff_id or 0,
                    "datetime": format_datetime(request.datetime),
                }
            ],
        }
        result, data = await self._mutate("POST", f"/book_record/{request.company_id}", json=payload)
        if not result.success:
            return result

        first = data[0] if isinstance(data, list) and data else data or {}
        record_id = first.get("record_id") or first.get("id")
        logger.info(f"YClients booking created: {record_id}", extra={"company_id": request.company_id})
        return BookingResult(success=True, id=record_id)

    async def cancel_booking(self, booking_id: int, company_id: int) -> BookingResult:
        result, _ = await self._mutate("DELETE", f"/record/{company_id}/{booking_id}")
        return result.model_copy(update={"id": booking_id}) if result.success else result

    async def _update_record(self, company_id: int, booking_id: int, changes: dict[str, Any]) -> BookingResult:
        """YClients replaces the whole record on PUT; read it and send it back changed."""
        current = await self._read("GET", f"/record/{company_id}/{booking_id}")
        client = current.get("client") or {}
        payload = {
            "staff_id": current.get("staff_id"),
            "services": [{"id": s["id"]} for s in current.get("services") or []],
            "client": {"phone": client.get("phone"), "name": client.get("name")},
            "datetime": current.get("datetime"),
            "seance_length": current.get("seance_length"),
            "attendance": current.get("attendance", 0),
            "comment": current.get("comment") or "",
            "save_if_busy": False,
            **changes,
        }
        result, _ = await self._mutate("PUT", f"/record/{company_id}/{booking_id}", json=payload)
        return result.model_copy(update={"id": booking_id}) if result.success else result

    async def reschedule_booking(self, booking_id: int, new_datetime: dt.datetime, company_id: int) -> BookingResult:
        return await self._update_record(company_id, booking_id, {"datetime": format_datetime(new_datetime)})

    async def confirm_booking(self, booking_id: int, company_id: int) -> BookingResult:
        return await self._update_record(company_id, booking_id, {"attendance": ATTENDANCE_CONFIRMED})

    async def mark_no_show(self, booking_id: int, company_id: int) -> BookingResult:
        return await self._update_record(company_id, booking_id, {"attendance": ATTENDANCE_NO_SHOW})

    async def get_client_bookings(self, phone: str, company_id: int) -> list[Booking]:
        """Upcoming, not cancelled bookings of the client."""
        today = self._today()
        bookings = await self._get_records(
            company_id,
            client_phone=phone,
            start_date=today.isoformat(),
            end_date=(today + dt.timedelta(days=90)).isoformat(),
        )
        return [booking for booking in bookings if booking.status in ("active", "confirmed")]

    # ------------------------------------------------------------------
    # ICatalogLoader
    # ------------------------------------------------------------------

    async def load_company_data(self, company_id: int) -> dict[str, Any]:
        return await self._read("GET", f"/company/{company_id}") or {}

    async def load_client(self, phone: str, company_id: int) -> ClientInfo | None:
        data = await self._read("POST", f"/company/{company_id}/clients/search", json={"search_term": phone})
        matches = data if isinstance(data, list) else []
        return to_client(matches[0]) if matches else None

    async def load_services(self, company_id: int) -> list[Service]:
        services, categories = await asyncio.gather(
            self._read("GET", f"/company/{company_id}/services"),
            self._read("GET", f"/company/{company_id}/service_categories"),
        )
        category_titles = {item["id"]: item.get("title") for item in categories or []}
        return [to_service(item, category_titles) for item in services or [] if item.get("active", 1)]

    async def load_staff(self, company_id: int) -> list[StaffMember]:
        data = await self._read("GET", f"/company/{company_id}/staff")
        return [to_staff(item) for item in data or [] if is_active_staff(item)]

    async def load_staff_schedules(self, company_id: int, days: int = 7) -> dict[str, list[dict[str, Any]]]:
        staff = await self.load_staff(company_id)
        start = self._today()
        end = start + dt.timedelta(days=days)
        schedules = await asyncio.gather(
            *(self.get_staff_schedule(company_id, member.id, start, end) for member in staff),
            return_exceptions=True,
        )

        result = {}
        for member, schedule in zip(staff, schedules):
            if isinstance(schedule, BaseException):
                logger.warning(f"Schedule unavailable for staff {member.id}: {schedule}")
                continue
            result[str(member.id)] = schedule
        return result

    async def load_business_stats(self, company_id: int) -> dict[str, Any]:
        """Service popularity over the last 30 days of records."""
        today = self._today()
        records = await self._get_records(
            company_id,
            start_date=(today - dt.timedelta(days=BUSINESS_STATS_DAYS)).isoformat(),
            end_date=today.isoformat(),
        )
        counts = Counter(service.id for record in records for service in record.services)
        return {
            "period_days": BUSINESS_STATS_DAYS,
            "total_bookings": len(records),
            "popular_services": [
                {"service_id": service_id, "booking_count": count}
                for service_id, count in counts.most_common(POPULAR_SERVICES_LIMIT)
            ],
        }
