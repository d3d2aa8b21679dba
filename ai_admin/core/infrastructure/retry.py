"""
Retry with exponential backoff.

Wraps calls to the booking system so that a dropped connection or a 5xx from
YClients is retried a few times before the user sees an error. Errors that
carry an HTTP ``status_code`` in the 4xx range (other than 429) are answers,
not outages, and are raised on the first attempt.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOO_MANY_REQUESTS = 429


@dataclass
class RetryConfig:
    """Backoff schedule and error classification."""

    max_attempts: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 10.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1
    retryable_exceptions: tuple = (Exception,)
    non_retryable_exceptions: tuple = ()


@dataclass
class RetryStats:
    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    retries: int = 0
    total_delay_seconds: float = 0.0
    last_exception: Exception | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_attempts": self.total_attempts,
            "successful_attempts": self.successful_attempts,
            "failed_attempts": self.failed_attempts,
            "retries": self.retries,
            "total_delay_seconds": round(self.total_delay_seconds, 3),
            "last_exception": str(self.last_exception) if self.last_exception else None,
        }


class RetryExhaustedError(Exception):
    """Every attempt failed with a transient error."""

    code = "RETRY_EXHAUSTED"

    def __init__(self, message: str, last_exception: Exception | None = None, attempts: int = 0):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def is_client_error(exception: BaseException) -> bool:
    """Whether the error reports an HTTP 4xx other than 429."""
    status = getattr(exception, "status_code", None)
    return isinstance(status, int) and 400 <= status < 500 and status != TOO_MANY_REQUESTS


class Retryer:
    """
    Runs an async callable until it succeeds, fails permanently or runs out of attempts.

    Example:
        ```python
        retryer = Retryer(RetryConfig(max_attempts=3, non_retryable_exceptions=(SlotUnavailableException,)))
        result = await retryer.execute(breaker.execute, gateway.create_booking, request)
        ```
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        on_retry: Callable[[int, Exception, float], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            config: Backoff schedule and error classification
            on_retry: Called with (attempt, error, delay) before each pause
            sleep: Awaitable sleep, replaced in tests
        """
        self.config = config or RetryConfig()
        self.on_retry = on_retry
        self._sleep = sleep
        self._stats = RetryStats()

    @property
    def stats(self) -> RetryStats:
        return self._stats

    def _calculate_delay(self, attempt: int) -> float:
        """Pause after the given failed attempt (1-based), capped and jittered."""
        delay = min(
            self.config.initial_delay * self.config.exponential_base ** (attempt - 1),
            self.config.max_delay,
        )
        if self.config.jitter:
            spread = delay * self.config.jitter_factor
            delay += random.uniform(-spread, spread)
        return max(0.0, delay)

    def _should_retry(self, exception: Exception) -> bool:
        if isinstance(exception, self.config.non_retryable_exceptions) or is_client_error(exception):
            return False
        return isinstance(exception, self.config.retryable_exceptions)

    async def execute(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """
        Await ``func(*args, **kwargs)`` with retries.

        Raises:
            RetryExhaustedError: The last attempt failed with a transient error
            Exception: A non-retryable error, unchanged
        """
        attempt = 0
        while True:
            attempt += 1
            self._stats.total_attempts += 1
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                self._stats.last_exception = e
                if not self._should_retry(e):
                    self._stats.failed_attempts += 1
                    raise
                if attempt >= self.config.max_attempts:
                    self._stats.failed_attempts += 1
                    raise RetryExhaustedError(
                        f"All {self.config.max_attempts} retry attempts exhausted: {e}",
                        last_exception=e,
                        attempts=attempt,
                    ) from e

                delay = self._calculate_delay(attempt)
                self._stats.retries += 1
                self._stats.total_delay_seconds += delay
                logger.warning(
                    f"Attempt {attempt}/{self.config.max_attempts} failed: {e}. Retrying in {delay:.2f}s",
                    extra={"attempt": attempt, "delay": delay, "error_type": type(e).__name__},
                )
                if self.on_retry is not None:
                    self.on_retry(attempt, e, delay)
                await self._sleep(delay)
            else:
                self._stats.successful_attempts += 1
                return result

    def __call__(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Use the retryer as a decorator on an async function."""

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.execute(func, *args, **kwargs)

        return wrapper

    def reset_stats(self) -> None:
        self._stats = RetryStats()
