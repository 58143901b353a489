"""Rolling performance metrics and the self-tuning controller.

Every optimize call is recorded as one observation. Cache hit rate and error
rate are exponentially weighted (weight 0.1 per observation); the last 100
metric snapshots are kept for trend analysis.

Self-tuning runs once per background sweep tick:
- Cache capacity grows x1.2 (cap 2000) below 50% hit rate and shrinks x0.9
  (floor 500) above 90%.
- Batch size shrinks x0.8 (floor 10) when recent latency exceeds 1.5x the
  target and grows x1.2 (cap 100) below 0.7x the target.
Growth is at least one step, so small sizes still grow; a size already
beyond a clamp is left where it is rather than pulled to the clamp.
The controller has no damping beyond these clamps, so it can oscillate when
a rate hovers around a threshold.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from threadhub.core.logging import get_logger
from threadhub.perf.cache import CacheManager
from threadhub.perf.scheduler import BatchScheduler

logger = get_logger(__name__)

EWMA_WEIGHT = 0.1
HISTORY_SIZE = 100
TREND_WINDOW = 10

CACHE_GROW_BELOW_PCT = 50.0
CACHE_SHRINK_ABOVE_PCT = 90.0
CACHE_GROW_FACTOR = 1.2
CACHE_SHRINK_FACTOR = 0.9
CACHE_MAX_SIZE_CAP = 2000
CACHE_MAX_SIZE_FLOOR = 500

LATENCY_SLOW_FACTOR = 1.5
LATENCY_FAST_FACTOR = 0.7
BATCH_SHRINK_FACTOR = 0.8
BATCH_GROW_FACTOR = 1.2
BATCH_SIZE_FLOOR = 10
BATCH_SIZE_CAP = 100


class PerformanceMetrics(BaseModel):
    """Latest performance metrics.

    Serializes with camelCase field names (``processingTimeMs``,
    ``memoryUsageBytes``, ``throughputPerSec``, ``cacheHitRatePct``,
    ``errorRatePct``) via ``model_dump(by_alias=True)``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    processing_time_ms: float = 0.0
    memory_usage_bytes: int = 0
    throughput_per_sec: float = 0.0
    cache_hit_rate_pct: float = 0.0
    error_rate_pct: float = 0.0


@dataclass(frozen=True, slots=True)
class PerformanceTrend:
    """Comparison of the latest 10 observations with the 10 before them.

    Attributes:
        average_processing_time_ms: Mean latency of the recent window
        improvement_pct: Latency improvement of the recent window over the older one
        cache_efficiency_pct: Mean cache hit rate over the recent window
        reliability_score: 100 minus the mean error rate over the recent window
        samples: Number of observations in history
    """

    average_processing_time_ms: float
    improvement_pct: float
    cache_efficiency_pct: float
    reliability_score: float
    samples: int


@dataclass(frozen=True, slots=True)
class TuningDecision:
    """What one self-tuning tick changed."""

    cache_max_size_before: int
    cache_max_size_after: int
    batch_size_before: int
    batch_size_after: int

    @property
    def changed(self) -> bool:
        return (
            self.cache_max_size_before != self.cache_max_size_after
            or self.batch_size_before != self.batch_size_after
        )


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _grow(value: int, factor: float, cap: int) -> int:
    """Scale up by at least one step, never past cap (or down to it)."""
    if value >= cap:
        return value
    return min(max(int(value * factor), value + 1), cap)


def _shrink(value: int, factor: float, floor: int) -> int:
    """Scale down, never below floor (or up to it)."""
    if value <= floor:
        return value
    return max(int(value * factor), floor)


class PerformanceMonitor:
    """Tracks rolling metrics and tunes cache capacity and batch size.

    Attributes:
        target_ms: Latency target for one optimize call
    """

    def __init__(
        self,
        cache: CacheManager,
        scheduler: BatchScheduler,
        target_ms: float = 75.0,
    ) -> None:
        self._cache = cache
        self._scheduler = scheduler
        self.target_ms = target_ms
        self._metrics = PerformanceMetrics()
        self._history: deque[PerformanceMetrics] = deque(maxlen=HISTORY_SIZE)
        self._lock = threading.Lock()

    def record(
        self,
        latency_ms: float,
        cache_hit: bool,
        error: bool = False,
        items: int = 1,
    ) -> PerformanceMetrics:
        """Add one observation and return the updated metrics."""
        memory_usage = self._cache.estimate_memory_usage()

        with self._lock:
            previous = self._metrics
            hit_rate = previous.cache_hit_rate_pct * (1 - EWMA_WEIGHT) + (
                100.0 if cache_hit else 0.0
            ) * EWMA_WEIGHT
            error_rate = previous.error_rate_pct * (1 - EWMA_WEIGHT) + (
                100.0 if error else 0.0
            ) * EWMA_WEIGHT
            throughput = items / (latency_ms / 1000) if latency_ms > 0 else 0.0

            self._metrics = PerformanceMetrics(
                processing_time_ms=latency_ms,
                memory_usage_bytes=memory_usage,
                throughput_per_sec=throughput,
                cache_hit_rate_pct=hit_rate,
                error_rate_pct=error_rate,
            )
            self._history.append(self._metrics)
            return self._metrics

    def metrics(self) -> PerformanceMetrics:
        with self._lock:
            return self._metrics

    def history(self) -> list[PerformanceMetrics]:
        with self._lock:
            return list(self._history)

    def trend(self) -> PerformanceTrend:
        """Compare the most recent 10 observations with the preceding 10."""
        with self._lock:
            history = list(self._history)
            current = self._metrics

        if len(history) < 2:
            return PerformanceTrend(
                average_processing_time_ms=current.processing_time_ms,
                improvement_pct=0.0,
                cache_efficiency_pct=current.cache_hit_rate_pct,
                reliability_score=100.0 - current.error_rate_pct,
                samples=len(history),
            )

        recent = history[-TREND_WINDOW:]
        older = history[-2 * TREND_WINDOW : -TREND_WINDOW]

        recent_avg = _mean([m.processing_time_ms for m in recent])
        older_avg = _mean([m.processing_time_ms for m in older]) if older else recent_avg
        improvement = (older_avg - recent_avg) / older_avg * 100 if older_avg > 0 else 0.0

        return PerformanceTrend(
            average_processing_time_ms=recent_avg,
            improvement_pct=improvement,
            cache_efficiency_pct=_mean([m.cache_hit_rate_pct for m in recent]),
            reliability_score=100.0 - _mean([m.error_rate_pct for m in recent]),
            samples=len(history),
        )

    def self_tune(self) -> TuningDecision:
        """Adjust cache capacity and batch size from the recent trend.

        Nothing changes until at least one observation has been recorded.
        """
        cache_before = self._cache.max_size
        batch_before = self._scheduler.batch_size

        with self._lock:
            has_samples = bool(self._history)
        if not has_samples:
            return TuningDecision(cache_before, cache_before, batch_before, batch_before)

        trend = self.trend()

        cache_after = cache_before
        if trend.cache_efficiency_pct < CACHE_GROW_BELOW_PCT:
            cache_after = _grow(cache_before, CACHE_GROW_FACTOR, CACHE_MAX_SIZE_CAP)
        elif trend.cache_efficiency_pct > CACHE_SHRINK_ABOVE_PCT:
            cache_after = _shrink(cache_before, CACHE_SHRINK_FACTOR, CACHE_MAX_SIZE_FLOOR)

        batch_after = batch_before
        if trend.average_processing_time_ms > self.target_ms * LATENCY_SLOW_FACTOR:
            batch_after = _shrink(batch_before, BATCH_SHRINK_FACTOR, BATCH_SIZE_FLOOR)
        elif trend.average_processing_time_ms < self.target_ms * LATENCY_FAST_FACTOR:
            batch_after = _grow(batch_before, BATCH_GROW_FACTOR, BATCH_SIZE_CAP)

        if cache_after != cache_before:
            self._cache.max_size = cache_after
        if batch_after != batch_before:
            self._scheduler.batch_size = batch_after

        decision = TuningDecision(cache_before, cache_after, batch_before, batch_after)
        if decision.changed:
            logger.info(
                "self_tune_applied",
                cache_max_size=cache_after,
                batch_size=batch_after,
                cache_efficiency_pct=round(trend.cache_efficiency_pct, 1),
                average_processing_time_ms=round(trend.average_processing_time_ms, 1),
            )
        return decision
