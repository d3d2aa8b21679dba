"""
Circuit Breaker Pattern Implementation

Prevents cascading failures by detecting repeated failures and temporarily
blocking requests to failing services.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from functools import wraps
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

StateChangeListener = Callable[["CircuitState", "CircuitState", "CircuitBreaker"], None]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation, requests pass through
    OPEN = "open"  # Failure threshold exceeded, requests blocked
    HALF_OPEN = "half_open"  # Single probe request allowed


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Consecutive failures before opening
    reset_timeout: float = 60.0  # Seconds in OPEN before a probe is allowed
    timeout: float | None = 30.0  # Per-operation timeout, None disables it
    excluded_exceptions: tuple = ()  # Exceptions that don't count as failures


@dataclass
class StateChange:
    """One entry of the state-change history."""

    from_state: CircuitState
    to_state: CircuitState
    timestamp: datetime
    failure_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_state.value,
            "to": self.to_state.value,
            "timestamp": self.timestamp.isoformat(),
            "failure_count": self.failure_count,
        }


@dataclass
class CircuitBreakerStats:
    """Statistics for circuit breaker."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    timeouts: int = 0
    state_changes: list[StateChange] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "rejected_requests": self.rejected_requests,
            "timeouts": self.timeouts,
            "state_changes": [change.to_dict() for change in self.state_changes],
            "success_rate": self.success_rate,
        }

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        if self.total_requests == 0:
            return 1.0
        return self.successful_requests / self.total_requests


class CircuitBreakerError(Exception):
    """Raised when circuit breaker is open."""

    code = "CIRCUIT_BREAKER_OPEN"

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class CircuitBreakerTimeoutError(TimeoutError):
    """Raised when the protected operation exceeds the breaker timeout."""

    code = "TIMEOUT"


class CircuitBreaker:
    """
    Circuit breaker implementation for fault tolerance.

    States:
    - CLOSED: Normal operation, all requests pass through
    - OPEN: Failure threshold reached, all requests rejected until reset_timeout
    - HALF_OPEN: One probe request allowed; its outcome closes or re-opens

    Example:
        ```python
        breaker = CircuitBreaker(name="yclients")

        @breaker
        async def call_external_api():
            return await http_client.get(url)

        # Or manual usage
        result = await breaker.execute(http_client.get, url)
        ```
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Identifier for this circuit breaker
            config: Configuration options
            clock: Monotonic time source, injectable for tests
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._stats = CircuitBreakerStats()
        self._listeners: list[StateChangeListener] = []
        self._probe_in_flight = False
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: float | None = None
        self.next_attempt_time: float | None = None

    @property
    def state(self) -> CircuitState:
        """Get current state."""
        return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        """Get statistics."""
        return self._stats

    @property
    def is_available(self) -> bool:
        """Check if circuit breaker would let a request through now."""
        if self._state == CircuitState.CLOSED:
            return True
        if self._state == CircuitState.OPEN:
            return self._should_attempt_reset()
        return not self._probe_in_flight

    def add_listener(self, listener: StateChangeListener) -> None:
        """Register a state-change listener ``(old_state, new_state, breaker)``."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt reset."""
        if self.next_attempt_time is None:
            return True
        return self._clock() >= self.next_attempt_time

    def _transition_to(self, new_state: CircuitState) -> None:
        """Transition to a new state."""
        if self._state == new_state:
            return

        old_state = self._state
        self._state = new_state

        if new_state == CircuitState.OPEN:
            self.next_attempt_time = self._clock() + self.config.reset_timeout
            self.success_count = 0
        else:
            self.next_attempt_time = None
            if new_state == CircuitState.CLOSED:
                self.failure_count = 0

        self._stats.state_changes.append(
            StateChange(
                from_state=old_state,
                to_state=new_state,
                timestamp=datetime.now(UTC),
                failure_count=self.failure_count,
            )
        )

        logger.info(
            f"Circuit breaker '{self.name}' state change: {old_state.value} -> {new_state.value}",
            extra={
                "circuit_breaker": self.name,
                "old_state": old_state.value,
                "new_state": new_state.value,
                "failure_count": self.failure_count,
            },
        )

        for listener in list(self._listeners):
            try:
                listener(old_state, new_state, self)
            except Exception as e:
                logger.error(f"Circuit breaker '{self.name}' listener error: {e}", exc_info=True)

    def _record_success(self) -> None:
        """Record a successful request."""
        self.failure_count = 0
        self.success_count += 1
        self._stats.successful_requests += 1

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)

    def _record_failure(self, exception: BaseException) -> None:
        """Record a failed request."""
        if isinstance(exception, self.config.excluded_exceptions):
            return

        self.failure_count += 1
        self.last_failure_time = self._clock()
        self._stats.failed_requests += 1

        logger.warning(
            f"Circuit breaker '{self.name}' failure {self.failure_count}/{self.config.failure_threshold}: {exception}",
            extra={"circuit_breaker": self.name, "failure_count": self.failure_count},
        )

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
        elif self.failure_count >= self.config.failure_threshold:
            self._transition_to(CircuitState.OPEN)

    def _reject(self) -> CircuitBreakerError:
        self._stats.rejected_requests += 1
        retry_after = None
        if self.next_attempt_time is not None:
            retry_after = max(0.0, self.next_attempt_time - self._clock())
        return CircuitBreakerError(
            f"Circuit breaker '{self.name}' is open",
            retry_after=retry_after,
        )

    def _before_request(self) -> bool:
        """
        Check state before allowing a request.

        Returns:
            True if this request is the half-open probe
        """
        self._stats.total_requests += 1

        if self._state == CircuitState.OPEN:
            if not self._should_attempt_reset():
                raise self._reject()
            self._transition_to(CircuitState.HALF_OPEN)

        if self._state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                raise self._reject()
            self._probe_in_flight = True
            return True
        return False

    async def _run_with_timeout(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        if asyncio.iscoroutinefunction(func):
            awaitable = func(*args, **kwargs)
        else:
            result = func(*args, **kwargs)
            if not asyncio.iscoroutine(result) and not isinstance(result, asyncio.Future):
                return result
            awaitable = result

        if self.config.timeout is None:
            return await awaitable

        try:
            return await asyncio.wait_for(awaitable, timeout=self.config.timeout)
        except asyncio.TimeoutError as e:
            self._stats.timeouts += 1
            raise CircuitBreakerTimeoutError(
                f"Operation timeout for '{self.name}' after {self.config.timeout}s"
            ) from e

    async def execute(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Execute a function through the circuit breaker.

        Args:
            func: Function to execute
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Result of the function

        Raises:
            CircuitBreakerError: If circuit is open
            CircuitBreakerTimeoutError: If the operation exceeds the timeout
            Exception: Original exception from function
        """
        is_probe = self._before_request()

        try:
            result = await self._run_with_timeout(func, *args, **kwargs)
        except Exception as e:
            self._record_failure(e)
            raise
        finally:
            if is_probe:
                self._probe_in_flight = False

        self._record_success()
        return result

    def __call__(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Decorator for async functions."""

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.execute(func, *args, **kwargs)

        return wrapper

    @asynccontextmanager
    async def guard(self) -> AsyncIterator["CircuitBreaker"]:
        """
        Protect a block instead of a single call. No timeout is applied.

        Example:
            ```python
            async with breaker.guard():
                await client.post(url, json=payload)
            ```
        """
        is_probe = self._before_request()
        try:
            yield self
        except Exception as e:
            self._record_failure(e)
            raise
        else:
            self._record_success()
        finally:
            if is_probe:
                self._probe_in_flight = False

    def force_open(self) -> None:
        """Open the circuit manually (maintenance, known outage)."""
        self._transition_to(CircuitState.OPEN)

    def force_close(self) -> None:
        """Close the circuit manually."""
        self._transition_to(CircuitState.CLOSED)

    def reset(self) -> None:
        """Reset circuit breaker to initial state."""
        self._state = CircuitState.CLOSED
        self._stats = CircuitBreakerStats()
        self._probe_in_flight = False
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
        self.next_attempt_time = None
        logger.info(f"Circuit breaker '{self.name}' reset")

    def get_status(self) -> dict[str, Any]:
        """Get current status."""
        return {
            "name": self.name,
            "state": self._state.value,
            "is_available": self.is_available,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time,
            "next_attempt_time": self.next_attempt_time,
            "stats": self._stats.to_dict(),
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "reset_timeout": self.config.reset_timeout,
                "timeout": self.config.timeout,
            },
        }


class CircuitBreakerRegistry:
    """
    Registry for managing one circuit breaker per named dependency.

    Instances are created by the application container, so tests can build
    isolated registries.

    Example:
        ```python
        registry = CircuitBreakerRegistry(default_config)
        breaker = registry.get_or_create("yclients")
        ```
    """

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get_or_create(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """
        Get or create a circuit breaker by name.

        Args:
            name: Circuit breaker name
            config: Configuration (only used on creation)

        Returns:
            Circuit breaker instance
        """
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name, config or self._default_config, clock=self._clock)
        return self._breakers[name]

    def get(self, name: str) -> CircuitBreaker | None:
        """Get a circuit breaker by name."""
        return self._breakers.get(name)

    def remove(self, name: str) -> bool:
        """Forget a circuit breaker."""
        return self._breakers.pop(name, None) is not None

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Get status of all circuit breakers."""
        return {name: breaker.get_status() for name, breaker in self._breakers.items()}

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        for breaker in self._breakers.values():
            breaker.reset()
