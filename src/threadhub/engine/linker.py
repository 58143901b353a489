"""Cross-source linking of equivalent threads.

Threads that appear separately in several accounts (e.g. the same
conversation synced from Gmail and a local Outlook store) are grouped into
a CrossSourceThread. Linking keeps the member threads intact, so its bar is
stricter than merging: participant overlap above 0.8 and subject similarity
above 0.9.

Usage:
    from threadhub.engine.linker import CrossPlatformLinker

    linker = CrossPlatformLinker(store)
    for linked in linker.link():
        print(linked.platforms, linked.analytics.thread_health)
"""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from threadhub.core.errors import NotFoundError
from threadhub.core.logging import get_logger
from threadhub.engine.models import (
    CrossSourceThread,
    Message,
    Thread,
    ThreadAnalytics,
    ThreadHealth,
    dedupe_addresses,
)
from threadhub.engine.similarity import participant_overlap, subject_similarity
from threadhub.engine.store import ThreadStore

logger = get_logger(__name__)

LINK_PARTICIPANT_THRESHOLD = 0.8
LINK_SUBJECT_THRESHOLD = 0.9

ACTIVE_DAYS = 7
STALE_DAYS = 30

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


def platform_for(source_tag: str) -> str:
    """Platform of a source tag, e.g. ``gmail`` for ``gmail_work``."""
    return source_tag.split("_", 1)[0]


def compute_analytics(
    messages: Sequence[Message],
    participants: Sequence[str],
    now: datetime,
) -> ThreadAnalytics:
    """Conversation statistics for a group of messages.

    Args:
        messages: Messages in any order
        participants: Participants to report engagement for (each starts at 0)
        now: Reference time for thread health

    Returns:
        ThreadAnalytics; a neutral snapshot (depth 0, health dead) when empty
    """
    if not messages:
        return ThreadAnalytics(
            conversation_depth=0,
            average_response_time_hours=0.0,
            participant_engagement={},
            thread_velocity=0.0,
            last_activity=None,
            thread_health="dead",
        )

    ordered = sorted(messages, key=lambda m: m.timestamp)
    first, last = ordered[0], ordered[-1]

    gaps = [
        (later.timestamp - earlier.timestamp).total_seconds() / SECONDS_PER_HOUR
        for earlier, later in zip(ordered, ordered[1:])
    ]
    average_response_time = sum(gaps) / len(gaps) if gaps else 0.0

    engagement = {participant.casefold(): 0 for participant in participants}
    for message in ordered:
        sender = message.sender.casefold()
        engagement[sender] = engagement.get(sender, 0) + 1

    span_days = (last.timestamp - first.timestamp).total_seconds() / SECONDS_PER_DAY
    velocity = len(ordered) / span_days if len(ordered) > 1 and span_days > 0 else 0.0

    age_days = (now - last.timestamp).total_seconds() / SECONDS_PER_DAY
    health: ThreadHealth
    if age_days < ACTIVE_DAYS:
        health = "active"
    elif age_days < STALE_DAYS:
        health = "stale"
    else:
        health = "dead"

    return ThreadAnalytics(
        conversation_depth=len(ordered),
        average_response_time_hours=average_response_time,
        participant_engagement=engagement,
        thread_velocity=velocity,
        last_activity=last.timestamp,
        thread_health=health,
    )


def _is_linked(thread: Thread, other: Thread) -> bool:
    return (
        participant_overlap(thread.participants, other.participants) > LINK_PARTICIPANT_THRESHOLD
        and subject_similarity(thread.subject, other.subject) > LINK_SUBJECT_THRESHOLD
    )


class CrossPlatformLinker:
    """Groups equivalent threads from different sources.

    Attributes:
        clock: Returns the current time; used for thread health
    """

    def __init__(
        self,
        store: ThreadStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self.clock = clock or (lambda: datetime.now(UTC))
        self._linked: dict[str, CrossSourceThread] = {}
        self._lock = threading.Lock()

    def link(self) -> list[CrossSourceThread]:
        """Run one linking pass over a snapshot of the store.

        Each thread joins at most one group per pass. Groups are seeded in
        store order; a seed collects every unlinked thread that passes both
        thresholds against it.
        """
        threads = self._store.threads()
        now = self.clock()
        processed: set[str] = set()
        results: list[CrossSourceThread] = []

        for thread in threads:
            if thread.id in processed:
                continue

            group = [thread]
            for other in threads:
                if other.id == thread.id or other.id in processed:
                    continue
                if _is_linked(thread, other):
                    group.append(other)

            if len(group) < 2:
                continue

            results.append(self._build(group, now))
            processed.update(member.id for member in group)

        with self._lock:
            for linked in results:
                self._linked[linked.id] = linked

        logger.info("cross_source_link_complete", links=len(results), threads=len(threads))
        return results

    def get_cross_source_thread(self, link_id: str) -> CrossSourceThread:
        """Look up a cross-source thread produced by an earlier pass.

        Raises:
            NotFoundError: If no pass produced that ID
        """
        with self._lock:
            linked = self._linked.get(link_id)
        if linked is None:
            raise NotFoundError("cross_source_thread", link_id)
        return linked

    def cross_source_threads(self) -> list[CrossSourceThread]:
        """All cross-source threads produced so far."""
        with self._lock:
            return list(self._linked.values())

    def clear(self) -> None:
        with self._lock:
            self._linked.clear()

    @staticmethod
    def _build(group: list[Thread], now: datetime) -> CrossSourceThread:
        member_ids = [member.id for member in group]
        messages = sorted(
            (message for member in group for message in member.messages),
            key=lambda m: m.timestamp,
        )
        participants = dedupe_addresses(p for member in group for p in member.participants)
        platforms = list(
            dict.fromkeys(platform_for(tag) for member in group for tag in member.sources)
        )
        digest = hashlib.sha256(",".join(sorted(member_ids)).encode("utf-8")).hexdigest()[:16]

        return CrossSourceThread(
            id=f"xthread_{digest}",
            member_thread_ids=member_ids,
            platforms=platforms,
            unified_subject=group[0].subject,
            participants=participants,
            messages=messages,
            analytics=compute_analytics(messages, participants, now),
        )
