# ============================================================================
# Tests for PerformanceMetrics
# ============================================================================
"""Unit tests for the in-process metrics collector."""

import pytest

from ai_admin.core.infrastructure import PerformanceMetrics
from ai_admin.core.infrastructure.monitoring import percentile
from tests.utils import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=0.0)


@pytest.fixture
def metrics(clock) -> PerformanceMetrics:
    return PerformanceMetrics(max_samples=100, clock=clock)


class TestOperations:
    def test_start_and_end_operation(self, metrics, clock) -> None:
        trace_id = metrics.start_operation("load_context", phone="7999")
        clock.advance(0.25)
        trace = metrics.end_operation(trace_id)

        assert trace.duration_ms == pytest.approx(250)
        assert trace.metadata == {"phone": "7999"}
        summary = metrics.get_summary()
        assert summary["general"]["total_requests"] == 1
        assert summary["operations"]["load_context"]["count"] == 1

    def test_unknown_trace_is_ignored(self, metrics) -> None:
        assert metrics.end_operation("nope") is None
        assert metrics.total_requests == 0

    @pytest.mark.asyncio
    async def test_track_operation_success(self, metrics, clock) -> None:
        async with metrics.track_operation("process_message"):
            clock.advance(0.1)

        assert metrics.successful_requests == 1
        assert metrics.operations["process_message"].avg_duration_ms == pytest.approx(100)

    @pytest.mark.asyncio
    async def test_track_operation_failure_propagates(self, metrics) -> None:
        with pytest.raises(ValueError):
            async with metrics.track_operation("process_message"):
                raise ValueError("boom")

        assert metrics.failed_requests == 1
        assert metrics.operations["process_message"].failed == 1


class TestCounters:
    def test_commands(self, metrics) -> None:
        metrics.record_command("SEARCH_SLOTS", success=True, duration_ms=10)
        metrics.record_command("SEARCH_SLOTS", success=False, duration_ms=30)

        stats = metrics.get_summary()["commands"]["SEARCH_SLOTS"]
        assert stats["count"] == 2
        assert stats["failed"] == 1
        assert stats["avg_duration_ms"] == 20
        assert stats["success_rate"] == 0.5

    def test_cache_hit_rate(self, metrics) -> None:
        metrics.update_cache_metrics(hits=3, misses=1, size=4)
        cache = metrics.get_summary()["cache"]
        assert cache["hit_rate"] == 0.75
        assert cache["size"] == 4

    def test_ai_and_database_calls(self, metrics) -> None:
        metrics.record_ai_call(200, success=True, tokens=50)
        metrics.record_ai_call(400, success=False)
        metrics.record_database_query(5)

        summary = metrics.get_summary()
        assert summary["ai_provider"] == {
            "calls": 2,
            "errors": 1,
            "tokens": 50,
            "avg_time_ms": 300.0,
            "error_rate": 0.5,
        }
        assert summary["database"]["calls"] == 1

    def test_empty_summary_has_no_division_errors(self, metrics) -> None:
        summary = metrics.get_summary()
        assert summary["general"]["success_rate"] == 0.0
        assert summary["performance"]["p95_response_ms"] == 0.0
        assert summary["cache"]["hit_rate"] == 0.0


class TestPercentiles:
    def test_nearest_rank(self) -> None:
        samples = [float(i) for i in range(1, 101)]
        assert percentile(samples, 0.50) == 51.0
        assert percentile(samples, 0.99) == 100.0
        assert percentile([], 0.5) == 0.0

    def test_sample_window_is_bounded(self, clock) -> None:
        metrics = PerformanceMetrics(max_samples=10, clock=clock)
        for _ in range(25):
            metrics.end_operation(metrics.start_operation("op"))
        assert len(metrics._samples) == 10
        assert metrics.total_requests == 25


class TestReset:
    def test_reset_returns_snapshot_and_clears(self, metrics) -> None:
        metrics.record_command("SHOW_PRICES")
        snapshot = metrics.reset()

        assert "SHOW_PRICES" in snapshot["commands"]
        assert metrics.get_summary()["commands"] == {}
