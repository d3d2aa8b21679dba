# ============================================================================
# Tests for YClientsClient
# ============================================================================
"""Unit tests for the YClients REST client.

Requests are answered by ``httpx.MockTransport``; each test routes by method
and path and inspects what the client sent.
"""

import datetime as dt
import json

import httpx
import pytest

from ai_admin.core.domain import IntegrationException
from ai_admin.domains.salon_booking.domain.entities import BookingRequest
from ai_admin.domains.salon_booking.infrastructure.external.yclients import YClientsClient
from tests.utils import COMPANY_ID, PHONE, TODAY

BASE_URL = "https://api.yclients.com/api/v1"


class Router:
    """Minimal request router for MockTransport."""

    def __init__(self):
        self.routes: dict[tuple[str, str], httpx.Response | Exception] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, status: int = 200, payload=None, content: bytes | None = None) -> None:
        if content is not None:
            self.routes[(method, "/api/v1" + path)] = httpx.Response(status, content=content)
        else:
            self.routes[(method, "/api/v1" + path)] = httpx.Response(status, json=payload)

    def fail(self, method: str, path: str, error: Exception) -> None:
        self.routes[(method, "/api/v1" + path)] = error

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes.get((request.method, request.url.path))
        if answer is None:
            return httpx.Response(404, json={"success": False, "meta": {"message": "Not found"}})
        if isinstance(answer, Exception):
            raise answer
        return answer

    def last(self, method: str) -> httpx.Request:
        return [r for r in self.requests if r.method == method][-1]


def ok(data) -> dict:
    return {"success": True, "data": data, "meta": []}


def record(record_id: int, hour: int, **extra) -> dict:
    data = {
        "id": record_id,
        "datetime": f"2024-01-02T{hour:02d}:00:00+03:00",
        "staff_id": 1,
        "staff": {"id": 1, "name": "Анна"},
        "services": [{"id": 2, "title": "Стрижка", "seance_length": 3600}],
        "seance_length": 3600,
        "attendance": 0,
        "deleted": False,
    }
    data.update(extra)
    return data


@pytest.fixture
def router() -> Router:
    return Router()


@pytest.fixture
def client(router) -> YClientsClient:
    return YClientsClient(
        BASE_URL,
        "partner-token",
        "user-token",
        transport=httpx.MockTransport(router),
        today=lambda: TODAY,
    )


# ============================================================================
# TRANSPORT
# ============================================================================


class TestTransport:
    @pytest.mark.asyncio
    async def test_auth_headers(self, client, router) -> None:
        router.add("GET", f"/company/{COMPANY_ID}", payload=ok({"id": COMPANY_ID, "title": "Salon"}))

        company = await client.load_company_data(COMPANY_ID)

        request = router.requests[0]
        assert company["title"] == "Salon"
        assert request.headers["Authorization"] == "Bearer partner-token, User user-token"
        assert request.headers["Accept"] == "application/vnd.yclients.v2+json"
        await client.close()

    @pytest.mark.asyncio
    async def test_partner_only_auth(self, router) -> None:
        client = YClientsClient(BASE_URL, "partner-token", transport=httpx.MockTransport(router))
        router.add("GET", f"/company/{COMPANY_ID}", payload=ok({}))

        await client.load_company_data(COMPANY_ID)

        assert router.requests[0].headers["Authorization"] == "Bearer partner-token"

    @pytest.mark.asyncio
    async def test_server_error_raises(self, client, router) -> None:
        router.add("GET", f"/company/{COMPANY_ID}", 502, payload={"success": False, "meta": {"message": "Bad gateway"}})

        with pytest.raises(IntegrationException) as exc_info:
            await client.load_company_data(COMPANY_ID)

        assert exc_info.value.status_code == 502
        assert "Bad gateway" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_read_client_error_raises(self, client, router) -> None:
        router.add("GET", f"/company/{COMPANY_ID}/staff", 403, payload={"success": False, "meta": {"message": "No access"}})

        with pytest.raises(IntegrationException) as exc_info:
            await client.load_staff(COMPANY_ID)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_connection_error_raises(self, client, router) -> None:
        router.fail("GET", f"/company/{COMPANY_ID}", httpx.ConnectError("refused"))

        with pytest.raises(IntegrationException):
            await client.load_company_data(COMPANY_ID)


# ============================================================================
# BOOKING GATEWAY
# ============================================================================


class TestBookingGateway:
    @pytest.mark.asyncio
    async def test_book_times(self, client, router) -> None:
        router.add(
            "GET",
            f"/book_times/{COMPANY_ID}/1/2024-01-02",
            payload=ok(
                [
                    {"time": "10:00", "seance_length": 3600, "datetime": "2024-01-02T10:00:00+03:00"},
                    {"time": "11:00", "seance_length": 3600, "datetime": "2024-01-02T11:00:00+03:00"},
                ]
            ),
        )

        slots = await client.get_available_slots(COMPANY_ID, dt.date(2024, 1, 2), [2], staff_id=1)

        assert [s.datetime for s in slots] == [dt.datetime(2024, 1, 2, 10), dt.datetime(2024, 1, 2, 11)]
        assert all(s.staff_id == 1 and s.seance_length == 3600 for s in slots)
        assert router.requests[0].url.params.get_list("service_ids[]") == ["2"]

    @pytest.mark.asyncio
    async def test_book_times_any_master(self, client, router) -> None:
        router.add("GET", f"/book_times/{COMPANY_ID}/0/2024-01-02", payload=ok([]))
        assert await client.get_available_slots(COMPANY_ID, dt.date(2024, 1, 2)) == []

    @pytest.mark.asyncio
    async def test_create_booking(self, client, router) -> None:
        router.add(
            "POST",
            f"/book_record/{COMPANY_ID}",
            201,
            payload=ok([{"id": 1, "record_id": 123, "record_hash": "abc"}]),
        )
        request = BookingRequest(
            company_id=COMPANY_ID,
            phone=PHONE,
            client_name="Ольга",
            service_ids=[2],
            staff_id=1,
            datetime=dt.datetime(2024, 1, 2, 14),
            api_id="key-1",
        )

        result = await client.create_booking(request)

        assert result.success is True
        assert result.id == 123
        sent = json.loads(router.last("POST").content)
        assert sent["api_id"] == "key-1"
        assert sent["fullname"] == "Ольга"
        assert sent["appointments"] == [
            {"id": 0, "services": [2], "staff_id": 1, "datetime": "2024-01-02 14:00:00"}
        ]

    @pytest.mark.asyncio
    async def test_create_refused(self, client, router) -> None:
        router.add(
            "POST",
            f"/book_record/{COMPANY_ID}",
            422,
            payload={"success": False, "data": None, "meta": {"message": "Время уже занято"}},
        )
        request = BookingRequest(
            company_id=COMPANY_ID, phone=PHONE, service_ids=[2], datetime=dt.datetime(2024, 1, 2, 14)
        )

        result = await client.create_booking(request)

        assert result.success is False
        assert result.error == "Время уже занято"

    @pytest.mark.asyncio
    async def test_cancel_without_body(self, client, router) -> None:
        router.add("DELETE", f"/record/{COMPANY_ID}/55", 204, content=b"")

        result = await client.cancel_booking(55, COMPANY_ID)

        assert result.success is True
        assert result.id == 55

    @pytest.mark.asyncio
    async def test_confirm_sends_full_record(self, client, router) -> None:
        router.add("GET", f"/record/{COMPANY_ID}/55", payload=ok(record(55, 12, client={"phone": PHONE, "name": "Ольга"})))
        router.add("PUT", f"/record/{COMPANY_ID}/55", payload=ok(record(55, 12, attendance=2)))

        result = await client.confirm_booking(55, COMPANY_ID)

        sent = json.loads(router.last("PUT").content)
        assert result.id == 55
        assert sent["attendance"] == 2
        assert sent["services"] == [{"id": 2}]
        assert sent["client"] == {"phone": PHONE, "name": "Ольга"}
        assert sent["save_if_busy"] is False

    @pytest.mark.asyncio
    async def test_reschedule(self, client, router) -> None:
        router.add("GET", f"/record/{COMPANY_ID}/55", payload=ok(record(55, 12)))
        router.add("PUT", f"/record/{COMPANY_ID}/55", payload=ok(record(55, 16)))

        await client.reschedule_booking(55, dt.datetime(2024, 1, 2, 16), COMPANY_ID)

        assert json.loads(router.last("PUT").content)["datetime"] == "2024-01-02 16:00:00"

    @pytest.mark.asyncio
    async def test_client_bookings_skip_deleted_and_past_states(self, client, router) -> None:
        router.add(
            "GET",
            f"/records/{COMPANY_ID}",
            payload=ok(
                [
                    record(1, 10),
                    record(2, 11, deleted=True),
                    record(3, 12, attendance=1),
                    record(4, 13, attendance=2),
                ]
            ),
        )

        bookings = await client.get_client_bookings(PHONE, COMPANY_ID)

        assert [(b.id, b.status) for b in bookings] == [(1, "active"), (4, "confirmed")]
        assert bookings[0].staff_name == "Анна"
        assert bookings[0].datetime == dt.datetime(2024, 1, 2, 10)
        params = router.requests[0].url.params
        assert params["client_phone"] == PHONE
        assert (params["start_date"], params["end_date"]) == ("2024-01-01", "2024-03-31")


# ============================================================================
# CATALOG LOADER
# ============================================================================


class TestCatalogLoader:
    @pytest.mark.asyncio
    async def test_services_with_categories(self, client, router) -> None:
        router.add(
            "GET",
            f"/company/{COMPANY_ID}/services",
            payload=ok(
                [
                    {"id": 2, "title": "Стрижка", "category_id": 10, "price_min": 1500, "price_max": 2500, "active": 1},
                    {"id": 9, "title": "Архив", "category_id": 10, "active": 0},
                ]
            ),
        )
        router.add("GET", f"/company/{COMPANY_ID}/service_categories", payload=ok([{"id": 10, "title": "Стрижки"}]))

        services = await client.load_services(COMPANY_ID)

        assert [(s.id, s.category) for s in services] == [(2, "Стрижки")]
        assert services[0].price_text == "1500-2500 ₽"

    @pytest.mark.asyncio
    async def test_staff_excludes_fired_and_hidden(self, client, router) -> None:
        router.add(
            "GET",
            f"/company/{COMPANY_ID}/staff",
            payload=ok(
                [
                    {"id": 1, "name": "Анна", "specialization": "стилист", "bookable": True},
                    {"id": 2, "name": "Ушла", "fired": 1},
                    {"id": 3, "name": "Скрыта", "hidden": 1},
                ]
            ),
        )

        staff = await client.load_staff(COMPANY_ID)

        assert [m.name for m in staff] == ["Анна"]

    @pytest.mark.asyncio
    async def test_client_search(self, client, router) -> None:
        router.add(
            "POST",
            f"/company/{COMPANY_ID}/clients/search",
            payload=ok([{"id": 7, "name": "Ольга", "phone": 79991234567, "visits": 4, "sex": 2}]),
        )

        found = await client.load_client(PHONE, COMPANY_ID)

        assert (found.id, found.name, found.phone, found.visits_count) == (7, "Ольга", PHONE, 4)
        assert found.extra == {"sex": 2}
        assert json.loads(router.last("POST").content) == {"search_term": PHONE}

    @pytest.mark.asyncio
    async def test_unknown_client(self, client, router) -> None:
        router.add("POST", f"/company/{COMPANY_ID}/clients/search", payload=ok([]))
        assert await client.load_client(PHONE, COMPANY_ID) is None

    @pytest.mark.asyncio
    async def test_schedules_skip_failing_master(self, client, router) -> None:
        router.add("GET", f"/company/{COMPANY_ID}/staff", payload=ok([{"id": 1, "name": "Анна"}, {"id": 4, "name": "Мария"}]))
        router.add(
            "GET",
            f"/schedule/{COMPANY_ID}/1/2024-01-01/2024-01-08",
            payload=ok([{"date": "2024-01-02", "is_working": 1}]),
        )
        router.add("GET", f"/schedule/{COMPANY_ID}/4/2024-01-01/2024-01-08", 500, payload={"success": False})

        schedules = await client.load_staff_schedules(COMPANY_ID)

        assert schedules == {"1": [{"date": "2024-01-02", "is_working": True, "slots": []}]}

    @pytest.mark.asyncio
    async def test_business_stats(self, client, router) -> None:
        router.add(
            "GET",
            f"/records/{COMPANY_ID}",
            payload=ok(
                [
                    record(1, 10),
                    record(2, 11),
                    record(3, 12, services=[{"id": 5, "title": "Маникюр"}]),
                    record(4, 13, deleted=True),
                ]
            ),
        )

        stats = await client.load_business_stats(COMPANY_ID)

        assert stats["total_bookings"] == 3
        assert stats["popular_services"] == [
            {"service_id": 2, "booking_count": 2},
            {"service_id": 5, "booking_count": 1},
        ]
        params = router.requests[0].url.params
        assert (params["start_date"], params["end_date"]) == ("2023-12-02", "2024-01-01")
