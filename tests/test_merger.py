"""Tests for the consolidation pass.

Tests the merge threshold, earlier-absorbs-later ordering, and the
candidate index over participants.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from threadhub.engine.matcher import ThreadMatcher
from threadhub.engine.merger import MERGE_THRESHOLD, ThreadMerger, thread_similarity
from threadhub.engine.models import Message
from threadhub.engine.store import ThreadStore

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=UTC)

X, Y, Z, W = "x@example.com", "y@example.com", "z@example.com", "w@example.com"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def split_store(never_matcher: ThreadMatcher) -> ThreadStore:
    """Store that opens a new thread for every unindexed message."""
    return ThreadStore(matcher=never_matcher)


class TestThreadSimilarity:
    """Tests for thread_similarity."""

    def test_weighted_blend(
        self, make_message: Callable[..., Message], split_store: ThreadStore
    ) -> None:
        a = split_store.process(make_message("m1", subject="Project Kickoff"))
        b = split_store.process(make_message("m2", subject="Project Kickoff - Updated"))

        assert thread_similarity(a, b) == pytest.approx(0.6 * 0.6 + 0.4 * 1.0)


class TestConsolidate:
    """Tests for ThreadMerger.consolidate."""

    def test_near_duplicates_merge(
        self, make_message: Callable[..., Message], split_store: ThreadStore
    ) -> None:
        first = split_store.process(make_message("m1", subject="Quarterly budget review", hours=3))
        second = split_store.process(make_message("m2", subject="Quarterly budget reviews", hours=1))

        result = ThreadMerger(split_store).consolidate()

        assert result.merges == [(first.id, second.id)]
        assert result.threads_before == 2
        assert result.threads_after == 1
        merged = split_store.get_thread(first.id)
        assert merged.message_ids == ["m2", "m1"]

    def test_below_threshold_stays_apart(
        self, make_message: Callable[..., Message], split_store: ThreadStore
    ) -> None:
        """0.6 * 0.6 + 0.4 * 1.0 = 0.76 is not above 0.85."""
        split_store.process(make_message("m1", subject="Project Kickoff"))
        split_store.process(make_message("m2", subject="Project Kickoff - Updated"))

        result = ThreadMerger(split_store).consolidate()

        assert result.merges == []
        assert len(split_store) == 2

    def test_disjoint_participants_never_merge(
        self, make_message: Callable[..., Message], split_store: ThreadStore
    ) -> None:
        split_store.process(make_message("m1", sender=X, to=[Y]))
        split_store.process(make_message("m2", sender=Z, to=[W]))

        assert ThreadMerger(split_store).consolidate().merges == []

    def test_earliest_thread_absorbs_all(
        self, make_message: Callable[..., Message], split_store: ThreadStore
    ) -> None:
        first = split_store.process(make_message("m1", hours=0))
        second = split_store.process(make_message("m2", hours=1))
        third = split_store.process(make_message("m3", hours=2))

        result = ThreadMerger(split_store).consolidate()

        assert result.merges == [(first.id, second.id), (first.id, third.id)]
        assert [t.id for t in split_store.threads()] == [first.id]
        assert split_store.get_thread(first.id).message_ids == ["m1", "m2", "m3"]

    def test_partial_overlap_merges(
        self, make_message: Callable[..., Message], split_store: ThreadStore
    ) -> None:
        """Identical subjects with 3 of 4 shared participants clear the threshold."""
        a = split_store.process(make_message("m1", subject="Budget", sender=X, to=[Y, Z]))
        b = split_store.process(make_message("m2", subject="Budget", sender=X, to=[Y, Z, W]))
        c = split_store.process(make_message("m3", subject="Budget", sender=W, to=[X, Y, Z]))

        result = ThreadMerger(split_store).consolidate()

        assert result.merges == [(a.id, b.id), (a.id, c.id)]

    def test_idempotent(
        self, make_message: Callable[..., Message], split_store: ThreadStore
    ) -> None:
        split_store.process(make_message("m1", subject="Quarterly budget review"))
        split_store.process(make_message("m2", subject="Quarterly budget reviews"))
        merger = ThreadMerger(split_store)

        merger.consolidate()
        second = merger.consolidate()

        assert second.merges == []
        assert second.threads_before == second.threads_after == 1


class TestConsolidateWithMatcher:
    """Consolidation over threads placed by the real matcher."""

    def test_resent_message_bridges_threads(self, make_message: Callable[..., Message]) -> None:
        """A re-sent message that widens a thread's participants triggers a merge."""
        store = ThreadStore()
        thread_a = store.process(make_message("a1", subject="Budget", sender=X, to=[Y]))
        thread_b = store.process(
            make_message("b1", subject="Budget", sender=Z, to=[W], hours=30 * 24)
        )
        store.process(make_message("a2", subject="Budget", sender=X, to=[Y, Z, W], hours=1))
        store.process(
            make_message("b1", subject="Budget", sender=Z, to=[W], cc=[X, Y], hours=30 * 24)
        )
        assert len(store) == 2

        result = ThreadMerger(store).consolidate()

        assert result.merges == [(thread_a.id, thread_b.id)]
        merged = store.get_thread(thread_a.id)
        assert merged.message_ids == ["a1", "a2", "b1"]
        assert merged.last_activity == T0 + timedelta(days=30)

    def test_merge_threshold_constant(self) -> None:
        assert MERGE_THRESHOLD == 0.85
