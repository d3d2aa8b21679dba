"""Booking Entities.

Slots, bookings and booking requests exchanged with the booking gateway.
"""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_DURATION_SECONDS = 3600


class TimeSlot(BaseModel):
    """A free slot offered by the booking system."""

    model_config = ConfigDict(extra="ignore")

    datetime: dt.datetime
    staff_id: int | None = None
    staff_name: str | None = None
    seance_length: int | None = None  # seconds

    @property
    def time(self) -> str:
        return self.datetime.strftime("%H:%M")

    @property
    def start(self) -> dt.datetime:
        return self.datetime

    @property
    def end(self) -> dt.datetime:
        return self.datetime + dt.timedelta(seconds=self.seance_length or DEFAULT_DURATION_SECONDS)


class BookedService(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    title: str | None = None
    seance_length: int | None = None


class Booking(BaseModel):
    """An existing booking (record) in the CRM."""

    model_config = ConfigDict(extra="ignore")

    id: int
    datetime: dt.datetime
    staff_id: int | None = None
    staff_name: str | None = None
    services: list[BookedService] = Field(default_factory=list)
    seance_length: int | None = None
    length: int | None = None
    status: str | None = None

    @property
    def duration_seconds(self) -> int:
        """seance_length, then length, then the services' sum, then one hour."""
        if self.seance_length:
            return self.seance_length
        if self.length:
            return self.length
        services_total = sum(service.seance_length or 0 for service in self.services)
        return services_total or DEFAULT_DURATION_SECONDS

    @property
    def start(self) -> dt.datetime:
        return self.datetime

    @property
    def end(self) -> dt.datetime:
        return self.datetime + dt.timedelta(seconds=self.duration_seconds)

    def describe(self) -> str:
        services = ", ".join(s.title for s in self.services if s.title)
        parts = [self.datetime.strftime("%d.%m %H:%M")]
        if services:
            parts.append(services)
        if self.staff_name:
            parts.append(self.staff_name)
        return ", ".join(parts)


class BookingRequest(BaseModel):
    """Payload for creating a booking."""

    company_id: int
    phone: str
    client_name: str | None = None
    service_ids: list[int]
    staff_id: int | None = None  # None lets the salon pick any master
    datetime: dt.datetime
    comment: str | None = None
    api_id: str | None = None  # idempotency key


class BookingResult(BaseModel):
    """Outcome of a booking mutation."""

    success: bool
    id: int | None = None
    error: str | None = None
