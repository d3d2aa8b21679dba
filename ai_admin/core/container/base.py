# ============================================================================
# SCOPE: GLOBAL
# Description: Base container with shared resilience primitives and clients.
# ============================================================================
"""
Base Container - Shared Instances.

Single Responsibility: create the process-wide primitives (caches, breakers,
limiters, metrics) and the Redis/PostgreSQL handles once.
"""

import logging

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ai_admin.config.settings import Settings, get_settings
from ai_admin.core.infrastructure import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CompositeRateLimiter,
    PerformanceMetrics,
    RateLimitConfig,
    RetryConfig,
    Retryer,
)
from ai_admin.core.shared import LRUCache, configure_logging
from ai_admin.database import create_async_database_engine, create_session_factory

logger = logging.getLogger(__name__)


class BaseContainer:
    """
    Base container for shared instances.

    Nothing here is a module global, so each container (and each test) gets
    its own registry, limiter and metrics.
    """

    def __init__(self, settings: Settings | None = None, setup_logging: bool = True):
        self.settings = settings or get_settings()
        if setup_logging:
            configure_logging(
                self.settings.LOG_LEVEL,
                self.settings.LOG_FORMAT,
                log_file=self.settings.LOG_FILE,
                mask_phone_numbers=self.settings.LOG_MASK_PHONES,
            )

        self.metrics = PerformanceMetrics(max_samples=self.settings.METRICS_MAX_SAMPLES)
        self.context_cache: LRUCache = LRUCache(
            max_size=self.settings.CONTEXT_CACHE_MAX_SIZE,
            ttl=self.settings.CONTEXT_FRESHNESS,
            cleanup_interval=self.settings.CACHE_CLEANUP_INTERVAL,
            name="conversation_context",
        )
        self.breakers = CircuitBreakerRegistry(self.breaker_config())
        self.rate_limiter = CompositeRateLimiter()
        self.rate_limiter.add_limiter(
            "messages",
            RateLimitConfig(
                window_seconds=self.settings.RATE_LIMIT_WINDOW,
                max_requests=self.settings.RATE_LIMIT_MAX_REQUESTS,
                block_duration=self.settings.RATE_LIMIT_BLOCK_DURATION,
                violations_before_block=self.settings.RATE_LIMIT_VIOLATIONS_BEFORE_BLOCK,
                cleanup_interval=self.settings.RATE_LIMIT_CLEANUP_INTERVAL,
            ),
        )

        self._redis: aioredis.Redis | None = None
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

        logger.info("BaseContainer initialized", extra={"environment": self.settings.ENVIRONMENT})

    def breaker_config(self, excluded_exceptions: tuple = ()) -> CircuitBreakerConfig:
        """Settings-based breaker config with consumer-specific exclusions."""
        return CircuitBreakerConfig(
            failure_threshold=self.settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            reset_timeout=self.settings.CIRCUIT_BREAKER_RESET_TIMEOUT,
            timeout=self.settings.CIRCUIT_BREAKER_TIMEOUT,
            excluded_exceptions=excluded_exceptions,
        )

    def create_retryer(self, non_retryable_exceptions: tuple = ()) -> Retryer:
        """New retryer per consumer so retry stats stay separate."""
        return Retryer(
            RetryConfig(
                max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
                initial_delay=self.settings.RETRY_INITIAL_DELAY,
                max_delay=self.settings.RETRY_MAX_DELAY,
                exponential_base=self.settings.RETRY_EXPONENTIAL_BASE,
                jitter_factor=self.settings.RETRY_JITTER_FACTOR,
                non_retryable_exceptions=non_retryable_exceptions,
            )
        )

    def get_redis(self) -> aioredis.Redis:
        """Redis client (singleton). Connects lazily on first command."""
        if self._redis is None:
            self._redis = aioredis.Redis.from_url(
                self.settings.redis_url,
                decode_responses=True,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
        return self._redis

    def get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Async session factory (singleton)."""
        if self._session_factory is None:
            self._engine = create_async_database_engine(self.settings)
            self._session_factory = create_session_factory(self._engine)
        return self._session_factory

    def start(self) -> None:
        """Start background cleanup loops. Needs a running event loop."""
        self.context_cache.start_cleanup()
        self.rate_limiter.start_all()

    async def stop(self) -> None:
        """Stop background loops and close connections."""
        self.context_cache.stop_cleanup()
        self.rate_limiter.stop_all()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
