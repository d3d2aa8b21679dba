"""
Rate Limiter Infrastructure

Sliding window rate limiting per identifier (phone, IP) with escalating blocks.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


class RateLimitError(Exception):
    """Exception raised when rate limit is exceeded or the identifier is blocked."""

    EXCEEDED = "RATE_LIMIT_EXCEEDED"
    BLOCKED = "RATE_LIMIT_BLOCKED"

    def __init__(
        self,
        message: str,
        code: str,
        retry_at: float | None = None,
        retry_after: float | None = None,
        limiter: str | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.retry_at = retry_at  # limiter clock timestamp
        self.retry_after = retry_after  # seconds from now
        self.limiter = limiter


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    window_seconds: float = 60.0
    max_requests: int = 30
    block_duration: float = 300.0
    violations_before_block: int = 3
    cleanup_interval: float = 60.0


@dataclass
class RequestRecord:
    """Requests seen for one identifier inside the trailing window."""

    requests: list[float] = field(default_factory=list)
    violations: int = 0


@dataclass
class BlockRecord:
    """Hard block for one identifier."""

    since: float
    until: float
    reason: str


@dataclass
class RateLimiterStats:
    total_requests: int = 0
    allowed_requests: int = 0
    blocked_requests: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "allowed_requests": self.allowed_requests,
            "blocked_requests": self.blocked_requests,
        }


class SlidingWindowRateLimiter:
    """
    Sliding window rate limiter keyed by identifier.

    Every rejected request counts as a violation; every allowed request decays
    violations by one. Reaching ``violations_before_block`` puts the identifier
    into a hard block that takes precedence over the window.

    Example:
        ```python
        limiter = SlidingWindowRateLimiter(RateLimitConfig(max_requests=30, window_seconds=60))

        try:
            limiter.check_limit(phone)
        except RateLimitError as e:
            return f"Too many messages, retry in {e.retry_after:.0f}s"
        ```
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize sliding window limiter.

        Args:
            config: Window, limit and block settings
            name: Limiter name used in logs and errors
            clock: Monotonic time source, injectable for tests
        """
        self.config = config or RateLimitConfig()
        self.name = name
        self._clock = clock
        self._records: dict[str, RequestRecord] = {}
        self._blocks: dict[str, BlockRecord] = {}
        self._stats = RateLimiterStats()
        self._cleanup_task: asyncio.Task | None = None

    def _window_start(self, now: float) -> float:
        return now - self.config.window_seconds

    def _clean_old_requests(self, record: RequestRecord, now: float) -> None:
        """Remove requests outside the window."""
        cutoff = self._window_start(now)
        record.requests = [r for r in record.requests if r > cutoff]

    def get_block(self, identifier: str) -> BlockRecord | None:
        """Return the active block for identifier, dropping it if expired."""
        block = self._blocks.get(identifier)
        if block is None:
            return None
        if self._clock() >= block.until:
            del self._blocks[identifier]
            return None
        return block

    def is_blocked(self, identifier: str) -> bool:
        return self.get_block(identifier) is not None

    def check_limit(self, identifier: str) -> bool:
        """
        Count a request for identifier.

        Returns:
            True when the request is allowed

        Raises:
            RateLimitError: RATE_LIMIT_BLOCKED while a hard block is active,
                RATE_LIMIT_EXCEEDED when the window is full
        """
        self._stats.total_requests += 1
        now = self._clock()

        block = self.get_block(identifier)
        if block is not None:
            self._stats.blocked_requests += 1
            remaining = block.until - now
            raise RateLimitError(
                f"Rate limit exceeded. Blocked for {remaining:.0f} seconds",
                code=RateLimitError.BLOCKED,
                retry_at=block.until,
                retry_after=remaining,
                limiter=self.name,
            )

        record = self._records.setdefault(identifier, RequestRecord())
        self._clean_old_requests(record, now)

        if len(record.requests) >= self.config.max_requests:
            self._stats.blocked_requests += 1
            record.violations += 1

            if record.violations >= self.config.violations_before_block:
                self.block(identifier)

            retry_at = min(record.requests) + self.config.window_seconds
            raise RateLimitError(
                f"Rate limit exceeded: {self.config.max_requests} requests per "
                f"{self.config.window_seconds:g} seconds",
                code=RateLimitError.EXCEEDED,
                retry_at=retry_at,
                retry_after=max(0.0, retry_at - now),
                limiter=self.name,
            )

        record.requests.append(now)
        record.violations = max(0, record.violations - 1)
        self._stats.allowed_requests += 1
        return True

    def block(self, identifier: str, duration: float | None = None, reason: str = "Multiple rate limit violations") -> None:
        """Put identifier into a hard block."""
        now = self._clock()
        duration = self.config.block_duration if duration is None else duration
        self._blocks[identifier] = BlockRecord(since=now, until=now + duration, reason=reason)
        logger.warning(
            f"Rate limiter '{self.name}' blocked {identifier} for {duration:g}s",
            extra={"limiter": self.name, "identifier": identifier, "duration": duration, "reason": reason},
        )

    def unblock(self, identifier: str) -> bool:
        """Lift a hard block."""
        return self._blocks.pop(identifier, None) is not None

    def get_remaining_requests(self, identifier: str) -> int:
        """Requests still allowed in the current window."""
        record = self._records.get(identifier)
        if record is None:
            return self.config.max_requests
        cutoff = self._window_start(self._clock())
        active = [r for r in record.requests if r > cutoff]
        return max(0, self.config.max_requests - len(active))

    def get_violations(self, identifier: str) -> int:
        record = self._records.get(identifier)
        return record.violations if record else 0

    def reset(self, identifier: str) -> None:
        """Forget everything about identifier."""
        self._records.pop(identifier, None)
        self._blocks.pop(identifier, None)

    def cleanup(self) -> int:
        """
        Drop idle records and expired blocks.

        Returns:
            Number of records removed
        """
        now = self._clock()
        cleaned = 0

        for identifier in list(self._records):
            record = self._records[identifier]
            self._clean_old_requests(record, now)
            if not record.requests and record.violations == 0:
                del self._records[identifier]
                cleaned += 1

        for identifier in list(self._blocks):
            if now >= self._blocks[identifier].until:
                del self._blocks[identifier]
                cleaned += 1

        if cleaned:
            logger.debug(f"Rate limiter '{self.name}' cleanup: removed {cleaned} records")
        return cleaned

    def start_cleanup(self) -> None:
        """Start automatic cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    def stop(self) -> None:
        """Stop automatic cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    async def _cleanup_loop(self) -> None:
        interval = max(self.config.window_seconds, self.config.cleanup_interval)
        while True:
            try:
                await asyncio.sleep(interval)
                self.cleanup()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Rate limiter '{self.name}' cleanup error: {e}")

    def clear(self) -> None:
        self._records.clear()
        self._blocks.clear()
        self._stats = RateLimiterStats()

    def get_stats(self) -> dict[str, Any]:
        """Get limiter statistics."""
        return {
            "name": self.name,
            **self._stats.to_dict(),
            "active_identifiers": len(self._records),
            "blocked_identifiers": len(self._blocks),
            "config": {
                "window_seconds": self.config.window_seconds,
                "max_requests": self.config.max_requests,
                "block_duration": self.config.block_duration,
                "violations_before_block": self.config.violations_before_block,
            },
        }


class CompositeRateLimiter:
    """
    Several named limiters checked in registration order.

    Useful to layer a burst policy (per second) over a sustained one (per minute).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._limiters: dict[str, SlidingWindowRateLimiter] = {}

    def add_limiter(self, name: str, config: RateLimitConfig) -> SlidingWindowRateLimiter:
        """Create and register a limiter."""
        limiter = SlidingWindowRateLimiter(config, name=name, clock=self._clock)
        self._limiters[name] = limiter
        return limiter

    def get(self, name: str) -> SlidingWindowRateLimiter | None:
        return self._limiters.get(name)

    def check_limits(self, identifier: str) -> list[str]:
        """
        Check identifier against every limiter, stopping at the first rejection.

        Returns:
            Names of limiters that allowed the request

        Raises:
            RateLimitError: From the first limiter that rejects
        """
        allowed = []
        for name, limiter in self._limiters.items():
            limiter.check_limit(identifier)
            allowed.append(name)
        return allowed

    def start_all(self) -> None:
        for limiter in self._limiters.values():
            limiter.start_cleanup()

    def stop_all(self) -> None:
        for limiter in self._limiters.values():
            limiter.stop()

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: limiter.get_stats() for name, limiter in self._limiters.items()}
