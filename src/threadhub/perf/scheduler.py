"""Priority batching with bounded batch-level concurrency.

Work items are classified by cost, chunked into fixed-size batches per cost
class, and executed heaviest-first with at most ``concurrency_limit`` batches
in flight. Inside a batch every item is dispatched at once; the limit
applies to batches, not items. A slot freed by a finished batch is refilled
immediately (rolling window, not waves).

Usage:
    from threadhub.perf.scheduler import BatchScheduler

    scheduler = BatchScheduler(batch_size=50, concurrency_limit=5)
    batches = scheduler.partition(messages)
    results = await scheduler.execute(batches, analyze_message)

A worker failure marks its batch failed and aborts execute with WorkerError.
Batches already in flight are allowed to finish (there is no cancellation);
results of every completed batch travel on the error. There is no timeout:
a worker that never returns hangs execute.
"""

from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from threadhub.core.errors import BatchStateError, WorkerError
from threadhub.engine.models import Message

CostClass = str

CLASS_WEIGHTS: dict[CostClass, int] = {"cheap": 1, "medium": 2, "expensive": 3}
CLASS_BASE_COST_MS: dict[CostClass, int] = {"cheap": 10, "medium": 25, "expensive": 50}

# Size contribution to batch priority is capped at this value
MAX_SIZE_SCORE = 5.0


class BatchStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[BatchStatus, set[BatchStatus]] = {
    BatchStatus.PENDING: {BatchStatus.PROCESSING},
    BatchStatus.PROCESSING: {BatchStatus.COMPLETED, BatchStatus.FAILED},
    BatchStatus.COMPLETED: set(),
    BatchStatus.FAILED: set(),
}


@dataclass(slots=True)
class Batch:
    """A group of items scheduled and executed as one concurrency unit.

    Attributes:
        id: Unique batch ID
        items: Items in submission order
        cost_class: Cost class shared by all items
        priority: Class weight plus a capped size score
        estimated_cost_ms: Base cost of the class times the item count
        status: pending -> processing -> completed | failed
        started_at: Monotonic time processing started
        finished_at: Monotonic time processing ended
    """

    id: str
    items: list[Any]
    cost_class: CostClass
    priority: float
    estimated_cost_ms: float
    status: BatchStatus = BatchStatus.PENDING
    started_at: float | None = None
    finished_at: float | None = None

    def transition(self, new_status: BatchStatus) -> None:
        """Move forward in the state machine.

        Raises:
            BatchStateError: On any backward or skipping transition
        """
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise BatchStateError(
                f"Batch {self.id} cannot move from {self.status} to {new_status}"
            )
        self.status = new_status
        if new_status is BatchStatus.PROCESSING:
            self.started_at = time.monotonic()
        else:
            self.finished_at = time.monotonic()


def message_complexity(item: Any) -> CostClass:
    """Cost class of an item from message size factors.

    Counts long bodies (>1000 chars), many recipients (>5), many cc (>3)
    and long subjects (>100 chars): three or more is expensive, one or more
    medium. Items that are not messages are medium.
    """
    if not isinstance(item, Message):
        return "medium"

    factors = [
        len(item.body) > 1000,
        len(item.to) > 5,
        len(item.cc) > 3,
        len(item.subject) > 100,
    ]
    score = sum(factors)
    if score >= 3:
        return "expensive"
    if score >= 1:
        return "medium"
    return "cheap"


@dataclass(frozen=True, slots=True)
class CostModel:
    """Caller-supplied classification of work items.

    Attributes:
        classify: Maps an item to a cost class
        weights: Priority weight per class
        base_cost_ms: Estimated per-item cost per class
    """

    classify: Callable[[Any], CostClass] = message_complexity
    weights: Mapping[CostClass, int] = field(default_factory=lambda: dict(CLASS_WEIGHTS))
    base_cost_ms: Mapping[CostClass, int] = field(
        default_factory=lambda: dict(CLASS_BASE_COST_MS)
    )

    def weight(self, cost_class: CostClass) -> int:
        return self.weights.get(cost_class, 1)

    def base_cost(self, cost_class: CostClass) -> int:
        return self.base_cost_ms.get(cost_class, CLASS_BASE_COST_MS["medium"])


Worker = Callable[[Any], Any] | Callable[[Any], Awaitable[Any]]


class BatchScheduler:
    """Partitions work into batches and runs them with bounded concurrency.

    Attributes:
        batch_size: Items per batch (adjusted by self-tuning)
        concurrency_limit: Maximum batches in flight
        peak_in_flight: Highest number of batches seen processing at once
    """

    def __init__(self, batch_size: int = 50, concurrency_limit: int = 5) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be at least 1, got {concurrency_limit}")
        self.batch_size = batch_size
        self.concurrency_limit = concurrency_limit
        self.peak_in_flight = 0

    def partition(
        self,
        items: Sequence[Any],
        cost_model: CostModel | None = None,
        batch_size: int | None = None,
    ) -> list[Batch]:
        """Split items into priority-ordered batches.

        Args:
            items: Work items
            cost_model: Item classification (defaults to message complexity)
            batch_size: Items per batch (defaults to the scheduler's current size)

        Returns:
            Batches sorted by descending priority
        """
        model = cost_model or CostModel()
        size = batch_size or self.batch_size

        groups: dict[CostClass, list[Any]] = {}
        for item in items:
            groups.setdefault(model.classify(item), []).append(item)

        batches: list[Batch] = []
        for cost_class in sorted(groups, key=model.weight):
            class_items = groups[cost_class]
            for start in range(0, len(class_items), size):
                chunk = class_items[start : start + size]
                batches.append(
                    Batch(
                        id=f"batch_{uuid.uuid4().hex[:12]}",
                        items=chunk,
                        cost_class=cost_class,
                        priority=model.weight(cost_class) + min(len(chunk) / 10, MAX_SIZE_SCORE),
                        estimated_cost_ms=model.base_cost(cost_class) * len(chunk),
                    )
                )

        batches.sort(key=lambda b: b.priority, reverse=True)
        return batches

    async def execute(
        self,
        batches: Sequence[Batch],
        worker: Worker,
        concurrency_limit: int | None = None,
    ) -> list[Any]:
        """Run batches with at most ``concurrency_limit`` in flight.

        A finished batch frees its slot for the next pending one at once. All
        items of a batch are dispatched together; async workers overlap, but a
        sync worker runs on the event loop, so its items run one after another.
        Failures are not logged here; the caller accounts for them.

        Args:
            batches: Pending batches, already in execution order
            worker: Per-item callable, sync or async
            concurrency_limit: Overrides the scheduler's limit for this call

        Returns:
            Item results, flattened in batch order

        Raises:
            WorkerError: If any item fails; carries results of completed batches
        """
        limit = concurrency_limit or self.concurrency_limit
        pending = list(batches)
        pending.reverse()  # pop() from the end keeps the given order

        results: dict[str, list[Any]] = {}
        running: dict[asyncio.Task[list[Any]], Batch] = {}
        failure: tuple[Batch, BaseException] | None = None

        while pending or running:
            while pending and failure is None and len(running) < limit:
                batch = pending.pop()
                batch.transition(BatchStatus.PROCESSING)
                task = asyncio.create_task(self._run_batch(batch, worker))
                running[task] = batch
                self.peak_in_flight = max(self.peak_in_flight, len(running))

            if not running:
                break

            done, _ = await asyncio.wait(set(running), return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                batch = running.pop(task)
                error = task.exception()
                if error is None:
                    batch.transition(BatchStatus.COMPLETED)
                    results[batch.id] = task.result()
                else:
                    batch.transition(BatchStatus.FAILED)
                    if failure is None:
                        failure = (batch, error)

        completed = [r for batch in batches if batch.id in results for r in results[batch.id]]

        if failure is not None:
            failed_batch, error = failure
            raise WorkerError(
                f"Worker failed in batch {failed_batch.id}: {error!r}",
                batch_id=failed_batch.id,
                partial_results=completed,
            ) from error

        return completed

    @staticmethod
    async def _run_batch(batch: Batch, worker: Worker) -> list[Any]:
        """Dispatch every item of a batch together and wait for all of them."""

        async def call(item: Any) -> Any:
            result = worker(item)
            if inspect.isawaitable(result):
                result = await result
            return result

        outcomes = await asyncio.gather(*(call(item) for item in batch.items), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return list(outcomes)
