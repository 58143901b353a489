"""Performance layer.

This package wraps expensive per-item work:
- TTL + priority bounded result cache
- Priority batch scheduler with bounded batch concurrency
- Rolling performance monitor with self-tuning
- Optimizer tying them together with a background sweep
"""

from threadhub.perf.cache import CacheEntry, CacheManager, CacheStats
from threadhub.perf.monitor import (
    PerformanceMetrics,
    PerformanceMonitor,
    PerformanceTrend,
    TuningDecision,
)
from threadhub.perf.optimizer import PerformanceOptimizer, thread_priority
from threadhub.perf.scheduler import (
    Batch,
    BatchScheduler,
    BatchStatus,
    CostModel,
    message_complexity,
)

__all__ = [
    # Cache
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    # Scheduling
    "Batch",
    "BatchScheduler",
    "BatchStatus",
    "CostModel",
    "message_complexity",
    # Monitoring
    "PerformanceMetrics",
    "PerformanceMonitor",
    "PerformanceTrend",
    "TuningDecision",
    # Optimizer
    "PerformanceOptimizer",
    "thread_priority",
]
