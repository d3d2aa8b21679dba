# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Salon Booking)
# Description: YClients payload to domain entity mapping.
# ============================================================================
"""YClients Mappers.

YClients returns datetimes with the salon's UTC offset. Entities keep the
salon's local wall time as naive datetimes so slots, bookings and parsed
command parameters compare directly.
"""

import datetime as dt
from typing import Any

from ....domain.entities import BookedService, Booking, ClientInfo, Service, StaffMember, TimeSlot


def parse_datetime(value: str) -> dt.datetime:
    return dt.datetime.fromisoformat(value.strip()).replace(tzinfo=None)


def format_datetime(value: dt.datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")


def to_service(raw: dict[str, Any], categories: dict[int, str] | None = None) -> Service:
    category_id = raw.get("category_id")
    return Service(
        id=raw["id"],
        title=raw.get("title") or "",
        category=(categories or {}).get(category_id) if category_id is not None else None,
        price_min=raw.get("price_min"),
        price_max=raw.get("price_max"),
        seance_length=raw.get("seance_length") or raw.get("duration"),
    )


def to_staff(raw: dict[str, Any]) -> StaffMember:
    return StaffMember(
        id=raw["id"],
        name=raw.get("name") or "",
        specialization=raw.get("specialization"),
        rating=raw.get("rating"),
        bookable=bool(raw.get("bookable", True)),
    )


def is_active_staff(raw: dict[str, Any]) -> bool:
    return not raw.get("fired") and not raw.get("hidden") and not raw.get("is_deleted")


def to_slot(raw: dict[str, Any], staff_id: int | None) -> TimeSlot:
    return TimeSlot(
        datetime=parse_datetime(raw["datetime"]),
        staff_id=staff_id,
        seance_length=raw.get("seance_length"),
    )


def to_booking(raw: dict[str, Any]) -> Booking:
    staff = raw.get("staff") or {}
    attendance = raw.get("attendance", 0)
    if raw.get("deleted"):
        status = "cancelled"
    elif attendance == 1:
        status = "completed"
    elif attendance == 2:
        status = "confirmed"
    elif attendance == -1:
        status = "no_show"
    else:
        status = "active"

    return Booking(
        id=raw["id"],
        datetime=parse_datetime(raw["datetime"]),
        staff_id=raw.get("staff_id") or staff.get("id"),
        staff_name=staff.get("name"),
        services=[
            BookedService(id=s["id"], title=s.get("title"), seance_length=s.get("seance_length"))
            for s in raw.get("services") or []
        ],
        seance_length=raw.get("seance_length"),
        length=raw.get("length"),
        status=status,
    )


def to_client(raw: dict[str, Any]) -> ClientInfo:
    known = {"id", "name", "phone", "visits", "visits_count"}
    return ClientInfo(
        id=raw.get("id"),
        name=raw.get("name"),
        phone=str(raw["phone"]) if raw.get("phone") else None,
        visits_count=int(raw.get("visits_count") or raw.get("visits") or 0),
        extra={key: value for key, value in raw.items() if key not in known},
    )
