"""Threading engine.

This package reconstructs conversations from messages:
- Similarity primitives (subject, participants, time)
- Thread matcher for placing incoming messages
- Thread store owning threads and the message index
- Thread merger for periodic consolidation
- Cross-platform linker for threads seen in several accounts
"""

from threadhub.engine.linker import CrossPlatformLinker, compute_analytics
from threadhub.engine.matcher import MatchCandidate, ThreadMatcher
from threadhub.engine.merger import ConsolidationResult, ThreadMerger, thread_similarity
from threadhub.engine.models import (
    CrossSourceThread,
    Message,
    Thread,
    ThreadAnalytics,
    ThreadOptions,
    coerce_message,
)
from threadhub.engine.similarity import (
    edit_distance,
    normalize_subject,
    participant_overlap,
    subject_similarity,
    time_proximity,
)
from threadhub.engine.store import BatchOutcome, RejectedMessage, ThreadStore

__all__ = [
    # Models
    "CrossSourceThread",
    "Message",
    "Thread",
    "ThreadAnalytics",
    "ThreadOptions",
    "coerce_message",
    # Similarity
    "edit_distance",
    "normalize_subject",
    "participant_overlap",
    "subject_similarity",
    "time_proximity",
    # Matching and storage
    "BatchOutcome",
    "MatchCandidate",
    "RejectedMessage",
    "ThreadMatcher",
    "ThreadStore",
    # Consolidation and linking
    "ConsolidationResult",
    "CrossPlatformLinker",
    "ThreadMerger",
    "compute_analytics",
    "thread_similarity",
]
