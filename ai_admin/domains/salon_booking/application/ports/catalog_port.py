# ============================================================================
# SCOPE: APPLICATION LAYER (Salon Booking)
# Description: Catalog loading port used on the cold context path.
# ============================================================================
"""Catalog Loader Port."""

from typing import Any, Protocol, runtime_checkable

from ...domain.entities import ClientInfo, Service, StaffMember


@runtime_checkable
class ICatalogLoader(Protocol):
    """Interface for loading company data, catalog and the client card.

    Implementations: YClientsClient
    """

    async def load_company_data(self, company_id: int) -> dict[str, Any]:
        ...

    async def load_client(self, phone: str, company_id: int) -> ClientInfo | None:
        ...

    async def load_services(self, company_id: int) -> list[Service]:
        ...

    async def load_staff(self, company_id: int) -> list[StaffMember]:
        ...

    async def load_staff_schedules(self, company_id: int, days: int = 7) -> dict[str, list[dict[str, Any]]]:
        """Working schedule per staff id for the next ``days`` days."""
        ...

    async def load_business_stats(self, company_id: int) -> dict[str, Any]:
        """Aggregates used for ranking, e.g. ``popular_services``."""
        ...
