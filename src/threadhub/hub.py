"""ThreadHub service: the public entry point.

Wires the threading engine (store, merger, linker) and the performance
layer (cache, scheduler, monitor) into one owned object. Nothing here is a
module-level singleton; build one ThreadHub per mailbox set and close it
when done.

Usage:
    from threadhub.config import get_config
    from threadhub.hub import ThreadHub

    hub = ThreadHub.from_config(get_config())
    threads = hub.process_messages(messages)
    linked = hub.link_cross_platform_threads()
    summaries = await hub.optimize_threads(threads, summarize)
    hub.close()
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from threadhub.config_schema import AppConfig
from threadhub.core.logging import get_logger, start_run
from threadhub.engine.linker import CrossPlatformLinker
from threadhub.engine.merger import ConsolidationResult, ThreadMerger
from threadhub.engine.models import CrossSourceThread, Message, Thread, ThreadOptions
from threadhub.engine.store import BatchOutcome, RejectedMessage, ThreadStore
from threadhub.perf.cache import CacheStats
from threadhub.perf.monitor import PerformanceMetrics, PerformanceTrend
from threadhub.perf.optimizer import PerformanceOptimizer
from threadhub.perf.scheduler import CostModel, Worker

logger = get_logger(__name__)


class ThreadHub:
    """Aggregates messages into threads and runs work over them.

    Attributes:
        store: Thread store
        merger: Consolidation pass over the store
        linker: Cross-source linker over the store
        optimizer: Cache, scheduler and monitor
        options: Default thread options
        consolidate_after_process: Run a merge pass after each process_messages
        sweep_interval_minutes: Default interval for the background sweep
    """

    def __init__(
        self,
        store: ThreadStore | None = None,
        optimizer: PerformanceOptimizer | None = None,
        options: ThreadOptions | None = None,
        consolidate_after_process: bool = True,
        linker: CrossPlatformLinker | None = None,
        sweep_interval_minutes: float = 5.0,
    ) -> None:
        self.store = store if store is not None else ThreadStore()
        self.merger = ThreadMerger(self.store)
        self.linker = linker or CrossPlatformLinker(self.store)
        self.optimizer = optimizer or PerformanceOptimizer.create()
        self.options = options or ThreadOptions()
        self.consolidate_after_process = consolidate_after_process
        self.sweep_interval_minutes = sweep_interval_minutes
        self.last_outcome: BatchOutcome | None = None

    @classmethod
    def from_config(cls, config: AppConfig) -> ThreadHub:
        return cls(
            optimizer=PerformanceOptimizer.from_config(config),
            options=ThreadOptions.from_config(config.threading),
            consolidate_after_process=config.threading.consolidate_after_process,
            sweep_interval_minutes=config.cache.sweep_interval_minutes,
        )

    def process_messages(
        self,
        messages: Iterable[Message | Mapping[str, Any]],
        options: ThreadOptions | None = None,
    ) -> list[Thread]:
        """Place messages into threads and return all threads.

        Malformed messages are skipped; see ``rejected`` for the last call.

        Args:
            messages: Messages or raw message mappings, in any order
            options: Overrides the hub's default thread options

        Returns:
            Snapshot of every thread in the store
        """
        start_run()

        outcome = self.store.process_batch(messages, options or self.options)
        self.last_outcome = outcome

        consolidation: ConsolidationResult | None = None
        if self.consolidate_after_process:
            consolidation = self.merger.consolidate()

        threads = self.store.threads()
        logger.info(
            "messages_processed",
            processed=outcome.processed,
            rejected=len(outcome.rejected),
            merges=len(consolidation.merges) if consolidation else 0,
            threads=len(threads),
        )
        return threads

    @property
    def rejected(self) -> list[RejectedMessage]:
        """Items rejected by the last process_messages call."""
        return list(self.last_outcome.rejected) if self.last_outcome else []

    def consolidate(self) -> ConsolidationResult:
        return self.merger.consolidate()

    def link_cross_platform_threads(self) -> list[CrossSourceThread]:
        return self.linker.link()

    def get_thread(self, thread_id: str) -> Thread:
        return self.store.get_thread(thread_id)

    def get_cross_source_thread(self, link_id: str) -> CrossSourceThread:
        return self.linker.get_cross_source_thread(link_id)

    async def optimize(
        self,
        items: Sequence[Any],
        worker: Worker,
        cache_key: str | None = None,
        cost_model: CostModel | None = None,
    ) -> list[Any]:
        return await self.optimizer.optimize(items, worker, cache_key, cost_model)

    async def optimize_threads(self, threads: Sequence[Thread], worker: Worker) -> list[Any]:
        return await self.optimizer.optimize_threads(threads, worker)

    def get_metrics(self) -> PerformanceMetrics:
        return self.optimizer.get_metrics()

    def get_trends(self) -> PerformanceTrend:
        return self.optimizer.get_trends()

    def get_cache_stats(self) -> CacheStats:
        return self.optimizer.get_cache_stats()

    def start(self, sweep_interval_minutes: float | None = None) -> None:
        """Start the background cache sweep (configured interval by default)."""
        self.optimizer.start_sweeper(sweep_interval_minutes or self.sweep_interval_minutes)

    def clear(self) -> None:
        """Drop all threads, links and cached results."""
        self.store.clear()
        self.linker.clear()
        self.optimizer.clear_cache()
        self.last_outcome = None

    def close(self) -> None:
        """Stop the background sweep and drop cached results."""
        self.optimizer.shutdown()
        self.optimizer.clear_cache()
