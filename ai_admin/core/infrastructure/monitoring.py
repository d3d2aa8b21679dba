"""
Performance Metrics

Aggregates timing and count samples per operation and per command, plus
cache, AI provider and database counters. Durations are in milliseconds.
"""

import logging
import time
import uuid
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable

logger = logging.getLogger(__name__)


@dataclass
class OperationTrace:
    """An in-flight or completed operation."""

    trace_id: str
    operation_name: str
    start_time: float
    end_time: float | None = None
    duration_ms: float | None = None
    success: bool | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class TimingAggregate:
    """Count/success/failure/duration rollup for one operation or command."""

    count: int = 0
    success: int = 0
    failed: int = 0
    total_duration_ms: float = 0.0

    def record(self, success: bool, duration_ms: float) -> None:
        self.count += 1
        if success:
            self.success += 1
        else:
            self.failed += 1
        self.total_duration_ms += max(0.0, duration_ms)

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.count if self.count else 0.0

    @property
    def success_rate(self) -> float:
        return self.success / self.count if self.count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "success": self.success,
            "failed": self.failed,
            "avg_duration_ms": round(self.avg_duration_ms, 2),
            "success_rate": round(self.success_rate, 4),
        }


@dataclass
class CallAggregate:
    """Calls, errors and total time for an external dependency."""

    calls: int = 0
    errors: int = 0
    total_time_ms: float = 0.0
    tokens: int = 0

    def record(self, duration_ms: float, success: bool, tokens: int = 0) -> None:
        self.calls += 1
        if not success:
            self.errors += 1
        self.total_time_ms += max(0.0, duration_ms)
        self.tokens += tokens

    def to_dict(self) -> dict[str, Any]:
        return {
            "calls": self.calls,
            "errors": self.errors,
            "tokens": self.tokens,
            "avg_time_ms": round(self.total_time_ms / self.calls, 2) if self.calls else 0.0,
            "error_rate": round(self.errors / self.calls, 4) if self.calls else 0.0,
        }


def percentile(sorted_samples: list[float], fraction: float) -> float:
    """Nearest-rank percentile over an already sorted list."""
    if not sorted_samples:
        return 0.0
    index = min(int(len(sorted_samples) * fraction), len(sorted_samples) - 1)
    return sorted_samples[index]


class PerformanceMetrics:
    """
    In-process metrics collector.

    Owned by the application container and passed to whatever needs to record,
    so tests get an isolated collector.

    Example:
        ```python
        async with metrics.track_operation("load_context"):
            context = await manager.load_full_context(phone, company_id)
        ```
    """

    def __init__(self, max_samples: int = 1000, clock: Callable[[], float] = time.perf_counter):
        self.max_samples = max_samples
        self._clock = clock
        self._init_state()

    def reset(self) -> dict[str, Any]:
        """Clear every counter. Returns the summary taken just before clearing."""
        snapshot = self.get_summary()
        logger.info("Resetting performance metrics", extra={"snapshot": snapshot})
        self._init_state()
        return snapshot

    def _init_state(self) -> None:
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self._min_ms: float | None = None
        self._max_ms = 0.0
        self._total_ms = 0.0
        self._samples: deque[float] = deque(maxlen=self.max_samples)
        self._active: dict[str, OperationTrace] = {}
        self.operations: dict[str, TimingAggregate] = {}
        self.commands: dict[str, TimingAggregate] = {}
        self.cache = {"hits": 0, "misses": 0, "evictions": 0, "size": 0}
        self.ai_provider = CallAggregate()
        self.database = CallAggregate()

    def start_operation(self, name: str, **metadata: Any) -> str:
        """Start timing an operation; returns its trace id."""
        trace_id = str(uuid.uuid4())
        self._active[trace_id] = OperationTrace(
            trace_id=trace_id,
            operation_name=name,
            start_time=self._clock(),
            metadata=dict(metadata),
        )
        return trace_id

    def end_operation(self, trace_id: str, success: bool = True) -> OperationTrace | None:
        """Finish an operation started with ``start_operation``."""
        trace = self._active.pop(trace_id, None)
        if trace is None:
            logger.warning(f"Unknown operation trace {trace_id}")
            return None

        trace.end_time = self._clock()
        trace.duration_ms = (trace.end_time - trace.start_time) * 1000
        trace.success = success
        self._record_response(trace.operation_name, trace.duration_ms, success)
        return trace

    def _record_response(self, name: str, duration_ms: float, success: bool) -> None:
        self.total_requests += 1
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1

        self._min_ms = duration_ms if self._min_ms is None else min(self._min_ms, duration_ms)
        self._max_ms = max(self._max_ms, duration_ms)
        self._total_ms += duration_ms
        self._samples.append(duration_ms)

        self.operations.setdefault(name, TimingAggregate()).record(success, duration_ms)

    @asynccontextmanager
    async def track_operation(self, name: str, **metadata: Any) -> AsyncIterator[str]:
        """
        Time the enclosed block as one operation.

        A raised exception marks the operation failed and propagates.
        """
        trace_id = self.start_operation(name, **metadata)
        try:
            yield trace_id
        except BaseException:
            self.end_operation(trace_id, success=False)
            raise
        else:
            self.end_operation(trace_id, success=True)

    def record_command(self, name: str, success: bool = True, duration_ms: float = 0.0) -> None:
        self.commands.setdefault(name, TimingAggregate()).record(success, duration_ms)

    def update_cache_metrics(self, hits: int = 0, misses: int = 0, evictions: int = 0, size: int | None = None) -> None:
        self.cache["hits"] += hits
        self.cache["misses"] += misses
        self.cache["evictions"] += evictions
        if size is not None:
            self.cache["size"] = size

    def record_ai_call(self, duration_ms: float, success: bool = True, tokens: int = 0) -> None:
        self.ai_provider.record(duration_ms, success, tokens)

    def record_database_query(self, duration_ms: float, success: bool = True) -> None:
        self.database.record(duration_ms, success)

    def calculate_percentiles(self) -> dict[str, float]:
        ordered = sorted(self._samples)
        return {
            "p50": percentile(ordered, 0.50),
            "p95": percentile(ordered, 0.95),
            "p99": percentile(ordered, 0.99),
        }

    def get_summary(self) -> dict[str, Any]:
        """Snapshot of every metric."""
        cache_total = self.cache["hits"] + self.cache["misses"]
        percentiles = self.calculate_percentiles()
        return {
            "general": {
                "total_requests": self.total_requests,
                "successful_requests": self.successful_requests,
                "failed_requests": self.failed_requests,
                "success_rate": round(self.successful_requests / self.total_requests, 4) if self.total_requests else 0.0,
            },
            "performance": {
                "avg_response_ms": round(self._total_ms / self.total_requests, 2) if self.total_requests else 0.0,
                "min_response_ms": round(self._min_ms or 0.0, 2),
                "max_response_ms": round(self._max_ms, 2),
                "p50_response_ms": round(percentiles["p50"], 2),
                "p95_response_ms": round(percentiles["p95"], 2),
                "p99_response_ms": round(percentiles["p99"], 2),
            },
            "cache": {
                **self.cache,
                "hit_rate": round(self.cache["hits"] / cache_total, 4) if cache_total else 0.0,
            },
            "ai_provider": self.ai_provider.to_dict(),
            "database": self.database.to_dict(),
            "operations": {name: agg.to_dict() for name, agg in self.operations.items()},
            "commands": {name: agg.to_dict() for name, agg in self.commands.items()},
        }
