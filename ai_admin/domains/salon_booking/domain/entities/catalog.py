"""Catalog Entities.

Read-only salon data loaded from the CRM: services, staff and the client card.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Service(BaseModel):
    """A bookable salon service."""

    model_config = ConfigDict(extra="ignore")

    id: int
    title: str
    category: str | None = None
    price_min: float | None = None
    price_max: float | None = None
    seance_length: int | None = None  # seconds
    score: int = 0  # ranking score for the current client

    @property
    def price_text(self) -> str:
        if self.price_min is None:
            return ""
        if self.price_max and self.price_max != self.price_min:
            return f"{self.price_min:g}-{self.price_max:g} ₽"
        return f"{self.price_min:g} ₽"


class StaffMember(BaseModel):
    """A master who can be booked."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    specialization: str | None = None
    rating: float | None = None
    bookable: bool = True


class ClientInfo(BaseModel):
    """Client card as stored in the CRM."""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    name: str | None = None
    phone: str | None = None
    visits_count: int = 0
    favorite_service_id: int | None = None
    favorite_staff_id: int | None = None
    extra: dict[str, Any] = Field(default_factory=dict)
