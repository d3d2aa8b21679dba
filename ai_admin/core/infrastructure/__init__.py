"""
Core Infrastructure Module

Provides cross-cutting infrastructure patterns for fault tolerance and observability.

Components:
- Circuit Breaker: Prevents cascading failures
- Retry: Configurable retry with exponential backoff
- Monitoring: Performance metrics collection
- Rate Limiter: Sliding window limits with escalating blocks
"""

from ai_admin.core.infrastructure.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitBreakerRegistry,
    CircuitBreakerStats,
    CircuitBreakerTimeoutError,
    CircuitState,
)
from ai_admin.core.infrastructure.monitoring import PerformanceMetrics
from ai_admin.core.infrastructure.rate_limiter import (
    CompositeRateLimiter,
    RateLimitConfig,
    RateLimitError,
    SlidingWindowRateLimiter,
)
from ai_admin.core.infrastructure.retry import (
    RetryConfig,
    Retryer,
    RetryExhaustedError,
    RetryStats,
)

__all__ = [
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitBreakerRegistry",
    "CircuitBreakerStats",
    "CircuitBreakerTimeoutError",
    "CircuitState",
    # Monitoring
    "PerformanceMetrics",
    # Rate Limiter
    "CompositeRateLimiter",
    "RateLimitConfig",
    "RateLimitError",
    "SlidingWindowRateLimiter",
    # Retry
    "RetryConfig",
    "Retryer",
    "RetryExhaustedError",
    "RetryStats",
]
