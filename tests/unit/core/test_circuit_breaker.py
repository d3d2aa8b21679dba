# ============================================================================
# Tests for CircuitBreaker resilience pattern
# ============================================================================
"""Unit tests for CircuitBreaker.

Tests the circuit breaker that protects the booking system integration from
cascading failures. Time is driven by an injected clock.
"""

import asyncio

import pytest

from ai_admin.core.domain import SlotUnavailableException
from ai_admin.core.infrastructure import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitBreakerRegistry,
    CircuitBreakerTimeoutError,
    CircuitState,
)
from tests.utils import FakeClock


async def failing() -> None:
    raise ConnectionError("down")


async def succeeding() -> str:
    return "ok"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker(clock) -> CircuitBreaker:
    return CircuitBreaker(
        "test",
        CircuitBreakerConfig(failure_threshold=3, reset_timeout=30.0, timeout=None),
        clock=clock,
    )


async def trip(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(ConnectionError):
            await breaker.execute(failing)


class TestCircuitBreakerConfig:
    """Tests for CircuitBreakerConfig."""

    def test_default_config_values(self) -> None:
        """Should have sensible default values."""
        config = CircuitBreakerConfig()
        assert config.failure_threshold == 5
        assert config.reset_timeout == 60.0
        assert config.timeout == 30.0
        assert config.excluded_exceptions == ()


class TestCircuitBreakerClosed:
    """Tests for the CLOSED state."""

    def test_starts_closed(self, breaker) -> None:
        assert breaker.state == CircuitState.CLOSED
        assert breaker.is_available is True

    @pytest.mark.asyncio
    async def test_passes_arguments_through(self, breaker) -> None:
        async def add(a: int, b: int) -> int:
            return a + b

        assert await breaker.execute(add, 2, 3) == 5

    @pytest.mark.asyncio
    async def test_accepts_sync_callables(self, breaker) -> None:
        assert await breaker.execute(lambda: 42) == 42

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker) -> None:
        await trip(breaker, 2)
        assert breaker.failure_count == 2

        await breaker.execute(succeeding)
        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_at_threshold(self, breaker) -> None:
        await trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_excluded_exceptions_do_not_count(self, clock) -> None:
        breaker = CircuitBreaker(
            "booking",
            CircuitBreakerConfig(failure_threshold=1, timeout=None, excluded_exceptions=(SlotUnavailableException,)),
            clock=clock,
        )

        async def taken() -> None:
            raise SlotUnavailableException()

        with pytest.raises(SlotUnavailableException):
            await breaker.execute(taken)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0


class TestCircuitBreakerOpen:
    """Tests for the OPEN state."""

    @pytest.mark.asyncio
    async def test_rejects_without_calling(self, breaker) -> None:
        await trip(breaker, 3)
        calls = []

        async def tracked() -> None:
            calls.append(1)

        with pytest.raises(CircuitBreakerError) as exc_info:
            await breaker.execute(tracked)

        assert calls == []
        assert exc_info.value.retry_after == pytest.approx(30.0)
        assert breaker.stats.rejected_requests == 1

    @pytest.mark.asyncio
    async def test_half_open_after_reset_timeout(self, breaker, clock) -> None:
        await trip(breaker, 3)
        clock.advance(29.9)
        assert breaker.is_available is False

        clock.advance(0.1)
        assert breaker.is_available is True

    @pytest.mark.asyncio
    async def test_successful_probe_closes(self, breaker, clock) -> None:
        await trip(breaker, 3)
        clock.advance(30)

        assert await breaker.execute(succeeding) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_failed_probe_reopens(self, breaker, clock) -> None:
        await trip(breaker, 3)
        clock.advance(30)

        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.next_attempt_time == clock() + 30


class TestCircuitBreakerHalfOpen:
    """Only one probe runs while HALF_OPEN."""

    @pytest.mark.asyncio
    async def test_concurrent_probe_rejected(self, breaker, clock) -> None:
        await trip(breaker, 3)
        clock.advance(30)

        release = asyncio.Event()

        async def slow() -> str:
            await release.wait()
            return "probe"

        probe = asyncio.create_task(breaker.execute(slow))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitBreakerError):
            await breaker.execute(succeeding)

        release.set()
        assert await probe == "probe"
        assert breaker.state == CircuitState.CLOSED


class TestCircuitBreakerTimeout:
    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, clock) -> None:
        breaker = CircuitBreaker(
            "slow",
            CircuitBreakerConfig(failure_threshold=1, timeout=0.01),
            clock=clock,
        )

        async def hang() -> None:
            await asyncio.sleep(1)

        with pytest.raises(CircuitBreakerTimeoutError):
            await breaker.execute(hang)

        assert breaker.state == CircuitState.OPEN
        assert breaker.stats.timeouts == 1


class TestCircuitBreakerListeners:
    @pytest.mark.asyncio
    async def test_listener_sees_transitions(self, breaker, clock) -> None:
        changes = []
        breaker.add_listener(lambda old, new, _: changes.append((old, new)))

        await trip(breaker, 3)
        clock.advance(30)
        await breaker.execute(succeeding)

        assert changes == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
            (CircuitState.HALF_OPEN, CircuitState.CLOSED),
        ]
        assert len(breaker.stats.state_changes) == 3

    @pytest.mark.asyncio
    async def test_listener_error_is_isolated(self, breaker) -> None:
        def broken(*_) -> None:
            raise RuntimeError("listener bug")

        breaker.add_listener(broken)
        await trip(breaker, 3)
        assert breaker.state == CircuitState.OPEN


class TestCircuitBreakerControls:
    def test_force_open_and_close(self, breaker) -> None:
        breaker.force_open()
        assert breaker.state == CircuitState.OPEN
        breaker.force_close()
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_reset_clears_stats(self, breaker) -> None:
        await trip(breaker, 3)
        breaker.reset()

        status = breaker.get_status()
        assert status["state"] == "closed"
        assert status["stats"]["failed_requests"] == 0

    @pytest.mark.asyncio
    async def test_decorator(self, breaker) -> None:
        @breaker
        async def greet(name: str) -> str:
            return f"hi {name}"

        assert await greet("anna") == "hi anna"

    @pytest.mark.asyncio
    async def test_guard_counts_block_outcomes(self, breaker) -> None:
        async with breaker.guard():
            pass
        for _ in range(3):
            with pytest.raises(ConnectionError):
                async with breaker.guard():
                    raise ConnectionError("down")

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerError):
            async with breaker.guard():
                pytest.fail("block must not run while open")

        assert breaker.stats.successful_requests == 1
        assert breaker.stats.rejected_requests == 1


class TestCircuitBreakerRegistry:
    def test_get_or_create_returns_same_instance(self) -> None:
        registry = CircuitBreakerRegistry()
        first = registry.get_or_create("yclients")
        assert registry.get_or_create("yclients") is first
        assert registry.get("other") is None

    def test_config_used_only_on_creation(self) -> None:
        registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=7))
        breaker = registry.get_or_create("a")
        assert breaker.config.failure_threshold == 7

        custom = registry.get_or_create("b", CircuitBreakerConfig(failure_threshold=2))
        assert custom.config.failure_threshold == 2
        assert registry.get_or_create("b", CircuitBreakerConfig(failure_threshold=9)).config.failure_threshold == 2

    def test_status_and_reset_all(self) -> None:
        registry = CircuitBreakerRegistry()
        registry.get_or_create("a").force_open()
        registry.get_or_create("b")

        assert registry.get_all_status()["a"]["state"] == "open"
        registry.reset_all()
        assert registry.get_all_status()["a"]["state"] == "closed"
        assert registry.remove("a") is True
        assert registry.remove("a") is False
