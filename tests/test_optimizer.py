"""Tests for the performance optimizer.

Tests result caching, error accounting, per-thread caching and ordering,
the background sweep, and construction from config.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from threadhub.config_schema import AppConfig
from threadhub.core.errors import WorkerError
from threadhub.engine.models import Message, Thread
from threadhub.perf.cache import CacheManager
from threadhub.perf.monitor import PerformanceMonitor
from threadhub.perf.optimizer import PerformanceOptimizer, thread_priority
from threadhub.perf.scheduler import BatchScheduler

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def optimizer() -> PerformanceOptimizer:
    return PerformanceOptimizer.create(max_cache_size=100, batch_size=2, concurrency_limit=2)


def _thread(
    make_message: Callable[..., Message],
    thread_id: str,
    last_activity: datetime,
    message_count: int = 1,
    priority: float = 0.0,
) -> Thread:
    messages = [make_message(f"{thread_id}_{i}") for i in range(message_count)]
    return Thread(
        id=thread_id,
        subject="kickoff",
        participants=["john@example.com", "jane@example.com"],
        messages=messages,
        last_activity=last_activity,
        priority=priority,
    )


class TestThreadPriority:
    """Tests for thread_priority."""

    def test_recent_busy_thread(self, make_message: Callable[..., Message]) -> None:
        now = datetime.now(UTC)
        thread = _thread(make_message, "t1", now - timedelta(minutes=30), message_count=5)
        thread.participants = ["a", "b", "c"]

        assert thread_priority(thread, now) == pytest.approx(5 + 1 + 1)

    def test_day_old_thread(self, make_message: Callable[..., Message]) -> None:
        now = datetime.now(UTC)
        thread = _thread(make_message, "t1", now - timedelta(hours=5), priority=1.5)

        assert thread_priority(thread, now) == pytest.approx(1.5 + 2 + 0.2 + 2 / 3)

    def test_contributions_are_capped(self, make_message: Callable[..., Message]) -> None:
        now = datetime.now(UTC)
        thread = _thread(make_message, "t1", now - timedelta(days=3), message_count=40)
        thread.participants = [f"p{i}" for i in range(20)]

        assert thread_priority(thread, now) == pytest.approx(3 + 2)


# =============================================================================
# optimize
# =============================================================================


class TestOptimize:
    """Tests for PerformanceOptimizer.optimize."""

    async def test_runs_worker_over_items(self, optimizer: PerformanceOptimizer) -> None:
        results = await optimizer.optimize([1, 2, 3], lambda x: x * 2)

        assert results == [2, 4, 6]

    async def test_cached_result_skips_worker(self, optimizer: PerformanceOptimizer) -> None:
        worker = MagicMock(side_effect=lambda x: x + 1)

        first = await optimizer.optimize([1, 2], worker, cache_key="inbox")
        second = await optimizer.optimize([1, 2], worker, cache_key="inbox")

        assert first == second == [2, 3]
        assert worker.call_count == 2
        assert optimizer.get_metrics().cache_hit_rate_pct == pytest.approx(10.0)

    async def test_cache_priority_from_result_count(self, optimizer: PerformanceOptimizer) -> None:
        await optimizer.optimize(list(range(30)), str, cache_key="big")

        assert optimizer.cache.get_entry("big").priority == pytest.approx(3.0)

    async def test_worker_error_updates_error_rate(self, optimizer: PerformanceOptimizer) -> None:
        def worker(item: int) -> int:
            raise RuntimeError("no")

        with pytest.raises(WorkerError):
            await optimizer.optimize([1], worker, cache_key="fails")

        assert optimizer.get_metrics().error_rate_pct == pytest.approx(10.0)
        assert "fails" not in optimizer.cache

    async def test_slow_call_records_latency(self, optimizer: PerformanceOptimizer) -> None:
        optimizer.monitor.target_ms = 0.0

        await optimizer.optimize([1], str)

        assert optimizer.get_metrics().processing_time_ms > 0
        assert optimizer.get_trends().samples == 1


# =============================================================================
# optimize_threads
# =============================================================================


class TestOptimizeThreads:
    """Tests for PerformanceOptimizer.optimize_threads."""

    async def test_priority_order_and_caching(
        self,
        optimizer: PerformanceOptimizer,
        make_message: Callable[..., Message],
    ) -> None:
        now = datetime.now(UTC)
        stale = _thread(make_message, "stale", now - timedelta(days=10))
        fresh = _thread(make_message, "fresh", now - timedelta(minutes=5))
        worker = MagicMock(side_effect=lambda thread: f"summary of {thread.id}")

        results = await optimizer.optimize_threads([stale, fresh], worker)

        assert results == ["summary of fresh", "summary of stale"]
        assert "thread_context_fresh" in optimizer.cache
        assert "thread_context_stale" in optimizer.cache

        again = await optimizer.optimize_threads([stale, fresh], worker)

        assert again == results
        assert worker.call_count == 2

    async def test_only_misses_run(
        self,
        optimizer: PerformanceOptimizer,
        make_message: Callable[..., Message],
    ) -> None:
        now = datetime.now(UTC)
        first = _thread(make_message, "t1", now)
        second = _thread(make_message, "t2", now)
        optimizer.cache.put("thread_context_t1", "cached")

        async def worker(thread: Thread) -> str:
            return "computed"

        results = await optimizer.optimize_threads([first, second], worker)

        assert sorted(results) == ["cached", "computed"]

    async def test_cached_under_thread_priority(
        self,
        optimizer: PerformanceOptimizer,
        make_message: Callable[..., Message],
    ) -> None:
        now = datetime.now(UTC)
        thread = _thread(make_message, "t1", now - timedelta(days=2), message_count=5)

        await optimizer.optimize_threads([thread], lambda t: t.id)

        entry = optimizer.cache.get_entry("thread_context_t1")
        assert entry.priority == pytest.approx(1 + 2 / 3)

    async def test_worker_error(
        self,
        optimizer: PerformanceOptimizer,
        make_message: Callable[..., Message],
    ) -> None:
        thread = _thread(make_message, "t1", datetime.now(UTC))

        def worker(thread: Thread) -> str:
            raise KeyError("missing")

        with pytest.raises(WorkerError):
            await optimizer.optimize_threads([thread], worker)

        assert optimizer.get_metrics().error_rate_pct > 0

    async def test_worker_error_carries_completed_results(
        self, make_message: Callable[..., Message]
    ) -> None:
        optimizer = PerformanceOptimizer.create(batch_size=1, concurrency_limit=1)
        now = datetime.now(UTC)
        first = _thread(make_message, "t1", now, message_count=5)
        second = _thread(make_message, "t2", now - timedelta(days=3))

        def worker(thread: Thread) -> str:
            if thread.id == "t2":
                raise RuntimeError("boom")
            return f"summary of {thread.id}"

        with pytest.raises(WorkerError) as exc_info:
            await optimizer.optimize_threads([first, second], worker)

        assert exc_info.value.partial_results == ["summary of t1"]
        assert exc_info.value.batch_id is not None
        assert isinstance(exc_info.value.__cause__, WorkerError)

    async def test_none_result_is_cached(
        self,
        optimizer: PerformanceOptimizer,
        make_message: Callable[..., Message],
    ) -> None:
        thread = _thread(make_message, "t1", datetime.now(UTC))
        worker = MagicMock(return_value=None)

        first = await optimizer.optimize_threads([thread], worker)
        second = await optimizer.optimize_threads([thread], worker)

        assert first == second == [None]
        assert worker.call_count == 1
        assert optimizer.get_cache_stats().hits == 1


# =============================================================================
# Sweep and lifecycle
# =============================================================================


class TestSweep:
    """Tests for the background sweep."""

    def test_sweep_purges_and_tunes(self, fake_clock) -> None:
        cache = CacheManager(max_size=1000, ttl_seconds=60, clock=fake_clock)
        scheduler = BatchScheduler(batch_size=50)
        optimizer = PerformanceOptimizer(cache, scheduler, PerformanceMonitor(cache, scheduler))
        cache.put("k", "v")
        fake_clock.advance(61)
        optimizer.monitor.record(500.0, cache_hit=False)

        decision = optimizer.sweep()

        assert len(cache) == 0
        assert decision.changed
        assert scheduler.batch_size == 40

    def test_start_and_shutdown(self, optimizer: PerformanceOptimizer) -> None:
        optimizer.start_sweeper(interval_minutes=60)
        optimizer.start_sweeper(interval_minutes=60)
        assert optimizer.sweeper_running

        optimizer.shutdown()
        optimizer.shutdown()
        assert not optimizer.sweeper_running

    def test_clear_cache(self, optimizer: PerformanceOptimizer) -> None:
        optimizer.cache.put("k", "v")
        optimizer.clear_cache()

        assert optimizer.get_cache_stats().size == 0


class TestFromConfig:
    """Tests for PerformanceOptimizer.from_config."""

    def test_settings_applied(self, sample_config: AppConfig) -> None:
        optimizer = PerformanceOptimizer.from_config(sample_config)

        assert optimizer.cache.max_size == 200
        assert optimizer.cache.ttl_seconds == 12 * 3600
        assert optimizer.scheduler.batch_size == 20
        assert optimizer.scheduler.concurrency_limit == 3
        assert optimizer.monitor.target_ms == 75.0
