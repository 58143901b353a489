"""Caching, batching and monitoring around arbitrary per-item work.

The optimizer ties the cache, the batch scheduler and the performance
monitor together and runs the background sweep.

Usage:
    from threadhub.perf.optimizer import PerformanceOptimizer

    optimizer = PerformanceOptimizer.create(max_cache_size=1000, batch_size=50)
    optimizer.start_sweeper(interval_minutes=5)

    results = await optimizer.optimize(messages, analyze_message, cache_key="inbox:today")
    print(optimizer.get_metrics().model_dump(by_alias=True))

    optimizer.shutdown()

The sweep runs on an APScheduler background thread, independent of the
foreground calls: each tick purges expired cache entries and runs one
self-tuning step.
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.background import BackgroundScheduler

from threadhub.core.errors import WorkerError
from threadhub.core.logging import get_logger, start_run
from threadhub.perf.cache import DEFAULT_TTL_SECONDS, MISS, CacheManager, CacheStats
from threadhub.perf.monitor import (
    PerformanceMetrics,
    PerformanceMonitor,
    PerformanceTrend,
    TuningDecision,
)
from threadhub.perf.scheduler import BatchScheduler, CostModel, Worker

if TYPE_CHECKING:
    from threadhub.config_schema import AppConfig
    from threadhub.engine.models import Thread

logger = get_logger(__name__)

SWEEP_JOB_ID = "cache_sweep"

THREAD_CACHE_PREFIX = "thread_context_"


def thread_priority(thread: Thread, now: datetime) -> float:
    """Work priority of a thread.

    Stored priority, plus +5 for activity within the hour or +2 within the
    day, plus up to 3 for message count and up to 2 for participant count.
    """
    priority = thread.priority
    hours_since_activity = (now - thread.last_activity).total_seconds() / 3600
    if hours_since_activity < 1:
        priority += 5
    elif hours_since_activity < 24:
        priority += 2
    priority += min(len(thread.messages) / 5, 3)
    priority += min(len(thread.participants) / 3, 2)
    return priority


class PerformanceOptimizer:
    """Runs per-item work through the cache and the batch scheduler.

    Attributes:
        cache: Shared result cache
        scheduler: Batch scheduler
        monitor: Metrics and self-tuning
    """

    def __init__(
        self,
        cache: CacheManager,
        scheduler: BatchScheduler,
        monitor: PerformanceMonitor,
    ) -> None:
        self.cache = cache
        self.scheduler = scheduler
        self.monitor = monitor
        self._sweeper: BackgroundScheduler | None = None

    @classmethod
    def create(
        cls,
        max_cache_size: int = 1000,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        batch_size: int = 50,
        concurrency_limit: int = 5,
        performance_target_ms: float = 75.0,
    ) -> PerformanceOptimizer:
        """Build an optimizer with fresh components."""
        cache = CacheManager(max_size=max_cache_size, ttl_seconds=ttl_seconds)
        scheduler = BatchScheduler(batch_size=batch_size, concurrency_limit=concurrency_limit)
        monitor = PerformanceMonitor(cache, scheduler, target_ms=performance_target_ms)
        return cls(cache, scheduler, monitor)

    @classmethod
    def from_config(cls, config: AppConfig) -> PerformanceOptimizer:
        return cls.create(
            max_cache_size=config.cache.max_size,
            ttl_seconds=config.cache.ttl_hours * 3600,
            batch_size=config.batching.batch_size,
            concurrency_limit=config.batching.concurrency_limit,
            performance_target_ms=config.batching.performance_target_ms,
        )

    async def optimize(
        self,
        items: Sequence[Any],
        worker: Worker,
        cache_key: str | None = None,
        cost_model: CostModel | None = None,
    ) -> list[Any]:
        """Run worker over items in priority batches, caching the whole result.

        Args:
            items: Work items
            worker: Per-item callable, sync or async
            cache_key: When given, a cached result list is returned as-is and a
                fresh result list is cached under this key
            cost_model: Item classification for batching

        Returns:
            Worker results in batch execution order

        Raises:
            WorkerError: If the worker fails; carries results of completed batches
        """
        start_run()
        start = time.perf_counter()

        if cache_key is not None:
            cached = self.cache.get(cache_key, MISS)
            if cached is not MISS:
                self._record(start, cache_hit=True, items=len(items))
                return cached

        batches = self.scheduler.partition(items, cost_model)
        try:
            results = await self.scheduler.execute(batches, worker)
        except WorkerError:
            self._record(start, cache_hit=False, error=True, items=len(items))
            raise

        if cache_key is not None:
            self.cache.put(cache_key, results, priority=min(len(results) / 10, 10))

        elapsed_ms = self._record(start, cache_hit=False, items=len(items))
        logger.info(
            "optimize_complete",
            items=len(items),
            batches=len(batches),
            duration_ms=round(elapsed_ms, 1),
        )
        return results

    async def optimize_threads(self, threads: Sequence[Thread], worker: Worker) -> list[Any]:
        """Run worker over threads in priority order with per-thread caching.

        Each thread's result is cached under ``thread_context_<id>`` with the
        thread's priority; cached threads skip the worker.

        Returns:
            One result per thread, highest-priority thread first

        Raises:
            WorkerError: If the worker fails; carries results of completed batches
        """
        start_run()
        start = time.perf_counter()
        now = datetime.now(UTC)

        priorities = {thread.id: thread_priority(thread, now) for thread in threads}
        ordered = sorted(threads, key=lambda t: priorities[t.id], reverse=True)

        results: dict[str, Any] = {}
        misses: list[Thread] = []
        for thread in ordered:
            cached = self.cache.get(f"{THREAD_CACHE_PREFIX}{thread.id}", MISS)
            if cached is MISS:
                misses.append(thread)
            else:
                results[thread.id] = cached

        async def run(thread: Thread) -> tuple[str, Any]:
            result = worker(thread)
            if inspect.isawaitable(result):
                result = await result
            self.cache.put(f"{THREAD_CACHE_PREFIX}{thread.id}", result, priorities[thread.id])
            return thread.id, result

        # Threads are already ordered, so one uniform cost class keeps that order
        uniform = CostModel(classify=lambda _: "medium")
        batches = self.scheduler.partition(misses, uniform)
        try:
            pairs = await self.scheduler.execute(batches, run)
        except WorkerError as e:
            self._record(start, cache_hit=False, error=True, items=len(threads))
            raise WorkerError(
                str(e),
                batch_id=e.batch_id,
                partial_results=[result for _, result in e.partial_results],
            ) from e
        results.update(dict(pairs))

        self._record(start, cache_hit=not misses, items=len(threads))
        return [results[thread.id] for thread in ordered]

    def get_metrics(self) -> PerformanceMetrics:
        return self.monitor.metrics()

    def get_trends(self) -> PerformanceTrend:
        return self.monitor.trend()

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def sweep(self) -> TuningDecision:
        """One background tick: purge expired entries, then self-tune."""
        removed = self.cache.purge_expired()
        decision = self.monitor.self_tune()
        logger.debug("sweep_complete", expired_removed=removed, tuned=decision.changed)
        return decision

    def start_sweeper(self, interval_minutes: float = 5.0) -> None:
        """Start the periodic sweep on a background thread (idempotent)."""
        if self._sweeper is not None:
            return

        sweeper = BackgroundScheduler()
        sweeper.add_job(
            self.sweep,
            "interval",
            minutes=interval_minutes,
            id=SWEEP_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        sweeper.start()
        self._sweeper = sweeper
        logger.info("sweeper_started", interval_minutes=interval_minutes)

    def shutdown(self) -> None:
        """Stop the background sweep, if running."""
        if self._sweeper is None:
            return
        self._sweeper.shutdown(wait=False)
        self._sweeper = None
        logger.info("sweeper_stopped")

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None

    def clear_cache(self) -> None:
        self.cache.clear()

    def _record(self, start: float, cache_hit: bool, error: bool = False, items: int = 1) -> float:
        elapsed_ms = (time.perf_counter() - start) * 1000
        self.monitor.record(elapsed_ms, cache_hit=cache_hit, error=error, items=items)
        if elapsed_ms > self.monitor.target_ms:
            logger.warning(
                "performance_target_exceeded",
                duration_ms=round(elapsed_ms, 1),
                target_ms=self.monitor.target_ms,
            )
        return elapsed_ms
