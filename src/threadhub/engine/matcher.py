"""Scoring of incoming messages against existing threads."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from threadhub.engine.models import Message, Thread, ThreadOptions
from threadhub.engine.similarity import participant_overlap, subject_similarity, time_proximity

SUBJECT_WEIGHT = 0.4
PARTICIPANT_WEIGHT = 0.3
TIME_WEIGHT = 0.2
REFERENCES_WEIGHT = 0.1

# A thread must score strictly above this to be considered a match
MATCH_THRESHOLD = 0.5


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    """A thread that scored above the match threshold."""

    thread: Thread
    score: float


class ThreadMatcher:
    """Scores messages against threads with a weighted similarity blend.

    score = 0.4 * subject + 0.3 * participants + 0.2 * time + 0.1 * references
    """

    def score(self, message: Message, thread: Thread, options: ThreadOptions) -> float:
        """Score how well a message fits a thread, clamped to [0, 1]."""
        total = (
            SUBJECT_WEIGHT * subject_similarity(message.subject, thread.subject)
            + PARTICIPANT_WEIGHT * participant_overlap(message.participants, thread.participants)
            + TIME_WEIGHT
            * time_proximity(message.timestamp, thread.last_activity, options.time_window_hours)
            + REFERENCES_WEIGHT * self.references_score(message, thread)
        )
        return min(max(total, 0.0), 1.0)

    def references_score(self, message: Message, thread: Thread) -> float:
        """In-Reply-To / References linkage. Messages carry no reply headers yet."""
        return 0.0

    def find_best_match(
        self,
        message: Message,
        threads: Iterable[Thread],
        options: ThreadOptions,
    ) -> MatchCandidate | None:
        """Return the highest-scoring thread above the threshold, if any.

        Ties go to the thread seen first in iteration order.
        """
        best: MatchCandidate | None = None
        for thread in threads:
            score = self.score(message, thread, options)
            if score <= MATCH_THRESHOLD:
                continue
            if best is None or score > best.score:
                best = MatchCandidate(thread=thread, score=score)
        return best
