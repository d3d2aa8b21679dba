# ============================================================================
# SCOPE: DOMAIN
# Description: Container for Salon Booking domain dependencies.
# ============================================================================
"""
Salon Booking Domain Container.

Wires YClients, the context stores and the application services into
ProcessMessageUseCase.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ai_admin.domains.salon_booking.application.services import (
    BUSINESS_EXCEPTIONS,
    NON_RETRYABLE_EXCEPTIONS,
    BookingService,
    CommandExecutor,
    ContextManager,
    ContextManagerConfig,
    ResponseProcessor,
)
from ai_admin.domains.salon_booking.application.use_cases import ProcessMessageUseCase
from ai_admin.domains.salon_booking.infrastructure.cache import (
    RedisBookingOwnershipStore,
    RedisSharedContextCache,
)
from ai_admin.domains.salon_booking.infrastructure.external.yclients import YClientsClient
from ai_admin.domains.salon_booking.infrastructure.persistence.sqlalchemy import SqlAlchemyDialogContextStore

if TYPE_CHECKING:
    from ai_admin.domains.salon_booking.application.ports import IResponseGenerator

    from .base import BaseContainer

logger = logging.getLogger(__name__)

YCLIENTS_BREAKER = "yclients"


class SalonBookingContainer:
    """Container for Salon Booking dependencies.

    Single Responsibility: Wire salon booking dependencies.
    """

    def __init__(self, base: "BaseContainer"):
        self._base = base
        self._yclients: YClientsClient | None = None
        self._context_manager: ContextManager | None = None
        self._booking_service: BookingService | None = None

    def get_yclients_client(self) -> YClientsClient:
        if self._yclients is None:
            settings = self._base.settings
            self._yclients = YClientsClient(
                base_url=settings.YCLIENTS_API_URL,
                partner_token=settings.YCLIENTS_PARTNER_TOKEN,
                user_token=settings.YCLIENTS_USER_TOKEN,
                timeout=settings.YCLIENTS_TIMEOUT,
            )
        return self._yclients

    def get_context_manager(self) -> ContextManager:
        if self._context_manager is None:
            settings = self._base.settings
            redis = self._base.get_redis()
            self._context_manager = ContextManager(
                store=SqlAlchemyDialogContextStore(
                    self._base.get_session_factory(),
                    max_messages=settings.CONTEXT_MAX_MESSAGES,
                    selection_ttl=settings.CONTEXT_SELECTION_TTL,
                    messages_ttl=settings.CONTEXT_MESSAGES_TTL,
                    preferences_ttl=settings.CONTEXT_PREFERENCES_TTL,
                ),
                catalog=self.get_yclients_client(),
                memory_cache=self._base.context_cache,
                shared_cache=RedisSharedContextCache(
                    redis,
                    default_ttl=settings.CONTEXT_FULL_TTL,
                    processing_ttl=settings.CONTEXT_PROCESSING_TTL,
                ),
                metrics=self._base.metrics,
                config=ContextManagerConfig(
                    freshness_seconds=settings.CONTEXT_FRESHNESS,
                    full_context_ttl=settings.CONTEXT_FULL_TTL,
                    messages_window=settings.CONTEXT_MESSAGES_WINDOW,
                ),
            )
        return self._context_manager

    def get_booking_service(self) -> BookingService:
        if self._booking_service is None:
            settings = self._base.settings
            self._booking_service = BookingService(
                gateway=self.get_yclients_client(),
                ownership_store=RedisBookingOwnershipStore(
                    self._base.get_redis(),
                    ttl=settings.BOOKING_OWNERSHIP_TTL,
                ),
                breaker=self._base.breakers.get_or_create(
                    YCLIENTS_BREAKER,
                    self._base.breaker_config(excluded_exceptions=BUSINESS_EXCEPTIONS),
                ),
                retryer=self._base.create_retryer(non_retryable_exceptions=NON_RETRYABLE_EXCEPTIONS),
                min_minutes_ahead=settings.BOOKING_MIN_MINUTES_AHEAD,
                max_days_ahead=settings.BOOKING_MAX_DAYS_AHEAD,
            )
        return self._booking_service

    def create_command_executor(self) -> CommandExecutor:
        return CommandExecutor(
            self.get_booking_service(),
            metrics=self._base.metrics,
            critical_commands=self._base.settings.CRITICAL_COMMANDS,
            slot_time_window=self._base.settings.SLOT_SEARCH_TIME_WINDOW,
            max_slots=self._base.settings.SLOT_SEARCH_MAX_RESULTS,
        )

    def create_process_message_use_case(self, generator: "IResponseGenerator") -> ProcessMessageUseCase:
        """Create the message pipeline around an AI text generator."""
        executor = self.create_command_executor()
        return ProcessMessageUseCase(
            context_manager=self.get_context_manager(),
            generator=generator,
            processor=ResponseProcessor(executor),
            executor=executor,
            rate_limiter=self._base.rate_limiter,
            metrics=self._base.metrics,
        )

    async def close(self) -> None:
        if self._yclients is not None:
            await self._yclients.close()
            self._yclients = None
