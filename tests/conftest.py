"""
Shared pytest fixtures for all tests.

This module provides the salon catalog, in-memory port fakes and fully wired
services used across the unit tests.
"""

import os

import pytest

from ai_admin.core.infrastructure import (
    CircuitBreaker,
    CircuitBreakerConfig,
    PerformanceMetrics,
    RetryConfig,
    Retryer,
)
from ai_admin.core.shared import LRUCache
from ai_admin.domains.salon_booking.application.services import (
    BUSINESS_EXCEPTIONS,
    NON_RETRYABLE_EXCEPTIONS,
    BookingService,
    CommandExecutor,
    ContextManager,
    ContextManagerConfig,
    ResponseProcessor,
)
from ai_admin.domains.salon_booking.domain.entities import (
    ConversationContext,
    Service,
    StaffMember,
)
from tests.utils import (
    COMPANY_ID,
    NOW,
    PHONE,
    TODAY,
    FakeBookingGateway,
    FakeCatalog,
    FakeClock,
    FakeNow,
    FakeSleep,
    InMemoryDialogContextStore,
    InMemoryOwnershipStore,
    InMemorySharedContextCache,
)

# Ensure test environment
os.environ["ENVIRONMENT"] = "test"


# ============================================================================
# TIME FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Monotonic clock shared by breakers, limiters and caches."""
    return FakeClock()


@pytest.fixture
def now() -> FakeNow:
    """Wall clock for context freshness."""
    return FakeNow()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


# ============================================================================
# CATALOG FIXTURES
# ============================================================================


@pytest.fixture
def services() -> list[Service]:
    return [
        Service(id=2, title="Стрижка женская", category="Стрижки", price_min=1500, price_max=2500, seance_length=3600),
        Service(id=3, title="Окрашивание", category="Окрашивание", price_min=4000, seance_length=7200),
        Service(id=5, title="Маникюр", category="Ногти", price_min=1200, seance_length=3600),
    ]


@pytest.fixture
def staff() -> list[StaffMember]:
    return [
        StaffMember(id=1, name="Анна", specialization="стилист", rating=4.9),
        StaffMember(id=4, name="Мария", specialization="колорист", rating=4.7),
    ]


@pytest.fixture
def context(services, staff) -> ConversationContext:
    """Loaded context for a returning conversation."""
    return ConversationContext(
        phone=PHONE,
        company_id=COMPANY_ID,
        company={"id": COMPANY_ID, "title": "Salon"},
        services=services,
        staff=staff,
        client_name="Ольга",
    )


# ============================================================================
# PORT FAKES
# ============================================================================


@pytest.fixture
def gateway() -> FakeBookingGateway:
    return FakeBookingGateway()


@pytest.fixture
def ownership_store() -> InMemoryOwnershipStore:
    return InMemoryOwnershipStore()


@pytest.fixture
def dialog_store() -> InMemoryDialogContextStore:
    return InMemoryDialogContextStore()


@pytest.fixture
def shared_cache() -> InMemorySharedContextCache:
    return InMemorySharedContextCache()


@pytest.fixture
def catalog(services, staff) -> FakeCatalog:
    return FakeCatalog(services=services, staff=staff)


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def metrics() -> PerformanceMetrics:
    return PerformanceMetrics()


@pytest.fixture
def breaker(clock) -> CircuitBreaker:
    return CircuitBreaker(
        "yclients",
        CircuitBreakerConfig(
            failure_threshold=3,
            reset_timeout=30.0,
            timeout=None,
            excluded_exceptions=BUSINESS_EXCEPTIONS,
        ),
        clock=clock,
    )


@pytest.fixture
def retryer(fake_sleep) -> Retryer:
    return Retryer(
        RetryConfig(
            max_attempts=3,
            initial_delay=0.1,
            jitter=False,
            non_retryable_exceptions=NON_RETRYABLE_EXCEPTIONS,
        ),
        sleep=fake_sleep,
    )


@pytest.fixture
def booking_service(gateway, ownership_store, breaker, retryer) -> BookingService:
    return BookingService(gateway, ownership_store, breaker, retryer, now=lambda: NOW)


@pytest.fixture
def executor(booking_service, metrics) -> CommandExecutor:
    return CommandExecutor(booking_service, metrics=metrics, today=lambda: TODAY)


@pytest.fixture
def processor(executor) -> ResponseProcessor:
    return ResponseProcessor(executor)


@pytest.fixture
def memory_cache(clock) -> LRUCache:
    return LRUCache(max_size=100, ttl=None, name="conversation_context", clock=clock)


@pytest.fixture
def context_manager(dialog_store, catalog, memory_cache, shared_cache, metrics, now) -> ContextManager:
    return ContextManager(
        dialog_store,
        catalog,
        memory_cache,
        shared_cache=shared_cache,
        metrics=metrics,
        config=ContextManagerConfig(freshness_seconds=300, full_context_ttl=3600),
        now=now,
    )
