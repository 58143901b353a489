"""Consolidation pass that merges near-duplicate threads.

Two threads merge when 0.6 * subject similarity + 0.4 * participant overlap
exceeds 0.85. The earlier-indexed thread always absorbs the later one, and a
thread absorbed during a pass is never considered again in that pass.

Candidate pairs come from a participant inverted index. Reaching the merge
threshold needs participant overlap above 0.625, so two threads with no
shared participant can never merge; skipping them yields the same merges,
in the same order, as comparing every pair.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from threadhub.core.logging import get_logger
from threadhub.engine.models import Thread
from threadhub.engine.similarity import participant_overlap, subject_similarity
from threadhub.engine.store import ThreadStore

logger = get_logger(__name__)

SUBJECT_WEIGHT = 0.6
PARTICIPANT_WEIGHT = 0.4
MERGE_THRESHOLD = 0.85


@dataclass(slots=True)
class ConsolidationResult:
    """Outcome of one consolidation pass.

    Attributes:
        merges: (target_id, source_id) pairs in the order they were applied
        threads_before: Thread count when the pass started
        threads_after: Thread count when the pass finished
    """

    merges: list[tuple[str, str]] = field(default_factory=list)
    threads_before: int = 0
    threads_after: int = 0


def thread_similarity(thread_a: Thread, thread_b: Thread) -> float:
    """Weighted blend of subject similarity and participant overlap."""
    return SUBJECT_WEIGHT * subject_similarity(
        thread_a.subject, thread_b.subject
    ) + PARTICIPANT_WEIGHT * participant_overlap(thread_a.participants, thread_b.participants)


class ThreadMerger:
    """Merges similar threads held by a ThreadStore.

    The pass is not incremental: every call rescans the whole population.
    How often to call it is up to the caller.
    """

    def __init__(self, store: ThreadStore) -> None:
        self._store = store

    def consolidate(self) -> ConsolidationResult:
        """Run one merge pass over all threads in the store."""
        with self._store.lock:
            threads = self._store.live_threads()
            result = ConsolidationResult(threads_before=len(threads))

            by_participant: dict[str, set[int]] = defaultdict(set)
            for position, thread in enumerate(threads):
                for participant in thread.participants:
                    by_participant[participant].add(position)

            absorbed: set[int] = set()
            for position, target in enumerate(threads):
                if position in absorbed:
                    continue

                floor = position
                while True:
                    candidate = self._next_candidate(target, by_participant, floor, absorbed)
                    if candidate is None:
                        break
                    floor = candidate

                    source = threads[candidate]
                    if thread_similarity(target, source) <= MERGE_THRESHOLD:
                        continue

                    self._store.merge_threads(target.id, source.id)
                    absorbed.add(candidate)
                    result.merges.append((target.id, source.id))
                    # Target gained the source's participants
                    for participant in target.participants:
                        by_participant[participant].add(position)

                    logger.info(
                        "threads_merged",
                        target_id=target.id,
                        source_id=source.id,
                        messages=len(target.messages),
                    )

            result.threads_after = len(self._store)

        if result.merges:
            logger.info(
                "consolidation_complete",
                merges=len(result.merges),
                threads_before=result.threads_before,
                threads_after=result.threads_after,
            )
        return result

    @staticmethod
    def _next_candidate(
        target: Thread,
        by_participant: dict[str, set[int]],
        floor: int,
        absorbed: set[int],
    ) -> int | None:
        """Lowest position after floor sharing a participant with target."""
        return min(
            (
                position
                for participant in target.participants
                for position in by_participant.get(participant, ())
                if position > floor and position not in absorbed
            ),
            default=None,
        )
