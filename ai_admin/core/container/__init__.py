# ============================================================================
# SCOPE: GLOBAL
# Description: Main dependency injection container.
# ============================================================================
"""
Dependency Injection Container.

Composes the base container and the salon booking container.

Example:
    ```python
    container = AppContainer()
    container.start()
    use_case = container.salon_booking.create_process_message_use_case(generator)
    response = await use_case.execute(ProcessMessageRequest(phone, company_id, text))
    await container.stop()
    ```
"""

import logging
from typing import Any

from ai_admin.config.settings import Settings

from .base import BaseContainer
from .salon_booking import SalonBookingContainer

logger = logging.getLogger(__name__)


class AppContainer:
    """Application container (facade)."""

    def __init__(self, settings: Settings | None = None, setup_logging: bool = True):
        self._base = BaseContainer(settings, setup_logging=setup_logging)
        self.salon_booking = SalonBookingContainer(self._base)

    @property
    def settings(self) -> Settings:
        return self._base.settings

    @property
    def base(self) -> BaseContainer:
        return self._base

    def start(self) -> None:
        self._base.start()
        logger.info("AppContainer started")

    async def stop(self) -> None:
        await self.salon_booking.close()
        await self._base.stop()
        logger.info("AppContainer stopped")

    def get_health(self) -> dict[str, Any]:
        """Breaker states, limiter and cache stats, metrics summary."""
        return {
            "circuit_breakers": self._base.breakers.get_all_status(),
            "rate_limiters": self._base.rate_limiter.get_all_stats(),
            "context_cache": self._base.context_cache.get_stats(),
            "metrics": self._base.metrics.get_summary(),
        }


__all__ = ["AppContainer", "BaseContainer", "SalonBookingContainer"]
