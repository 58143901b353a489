"""Thread store: owns all threads and the message -> thread index.

Incoming messages are placed with the ThreadMatcher: an already-indexed
message updates its thread in place, a matching message joins the best
thread, anything else starts a new thread.

Usage:
    from threadhub.engine.store import ThreadStore

    store = ThreadStore()
    outcome = store.process_batch(messages, ThreadOptions(time_window_hours=72))
    for thread in store.threads():
        print(thread.id, len(thread.messages))

Every mutation is serialized by a single re-entrant lock, so the store can
be shared with components running on other threads. Accessors return
snapshots; callers must not expect changes to them to reach the store.
"""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from threadhub.core.errors import MessageValidationError, NotFoundError
from threadhub.core.logging import get_logger
from threadhub.engine.matcher import ThreadMatcher
from threadhub.engine.models import (
    Message,
    Thread,
    ThreadOptions,
    coerce_message,
    dedupe_addresses,
)
from threadhub.engine.similarity import normalize_subject

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RejectedMessage:
    """A batch item that failed validation.

    Attributes:
        index: Position of the item in the submitted batch
        message_id: ID of the item, if one could be read
        reason: Validation error message
    """

    index: int
    message_id: str | None
    reason: str


@dataclass(slots=True)
class BatchOutcome:
    """Result of processing a batch of messages.

    Attributes:
        thread_ids: Threads that received a message, in first-touched order
        processed: Number of messages placed into threads
        rejected: Items rejected by validation
    """

    thread_ids: list[str] = field(default_factory=list)
    processed: int = 0
    rejected: list[RejectedMessage] = field(default_factory=list)


def thread_id_for(message: Message) -> str:
    """Deterministic thread ID from normalized subject and sorted participants."""
    key = normalize_subject(message.subject) + ",".join(sorted(message.participants))
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
    return f"thread_{digest}"


class ThreadStore:
    """Owns the thread population and the message -> thread index.

    Attributes:
        matcher: ThreadMatcher used to place unindexed messages
    """

    def __init__(self, matcher: ThreadMatcher | None = None) -> None:
        self.matcher = matcher if matcher is not None else ThreadMatcher()
        # Insertion order is the store's index order
        self._threads: dict[str, Thread] = {}
        self._message_index: dict[str, str] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Writer lock; hold it to run a multi-step pass over live threads."""
        return self._lock

    def process(self, message: Message, options: ThreadOptions | None = None) -> Thread:
        """Place one message into a thread.

        Args:
            message: Validated message
            options: Matching options (defaults apply when omitted)

        Returns:
            Snapshot of the thread that now holds the message
        """
        opts = options or ThreadOptions()

        with self._lock:
            existing_id = self._message_index.get(message.id)
            if existing_id is not None:
                thread = self._threads[existing_id]
                self._attach(thread, message)
                return thread.snapshot()

            match = self.matcher.find_best_match(message, self._threads.values(), opts)
            if match is not None:
                self._attach(match.thread, message)
                logger.debug(
                    "message_attached",
                    message_id=message.id,
                    thread_id=match.thread.id,
                    score=round(match.score, 3),
                )
                return match.thread.snapshot()

            thread = self._create(message)
            return thread.snapshot()

    def process_batch(
        self,
        messages: Iterable[Message | Mapping[str, Any]],
        options: ThreadOptions | None = None,
    ) -> BatchOutcome:
        """Validate, sort chronologically, and place a batch of messages.

        Malformed items are rejected one by one; the rest of the batch is
        still processed. Later messages may join threads started by earlier
        ones, never the reverse.

        Args:
            messages: Messages or raw message mappings
            options: Matching options (defaults apply when omitted)

        Returns:
            BatchOutcome with touched thread IDs and rejected items
        """
        outcome = BatchOutcome()
        valid: list[Message] = []

        for index, item in enumerate(messages):
            try:
                valid.append(coerce_message(item))
            except MessageValidationError as e:
                outcome.rejected.append(
                    RejectedMessage(index=index, message_id=e.message_id, reason=str(e))
                )

        valid.sort(key=lambda m: m.timestamp)

        touched: dict[str, None] = {}
        with self._lock:
            for message in valid:
                thread = self.process(message, options)
                touched.setdefault(thread.id, None)
                outcome.processed += 1

        outcome.thread_ids = list(touched)
        return outcome

    def merge_threads(self, target_id: str, source_id: str) -> Thread:
        """Absorb the source thread into the target thread.

        Messages are concatenated and re-sorted, participants and sources are
        unioned, the source's index entries are repointed, and the source is
        removed.

        Raises:
            NotFoundError: If either thread does not exist
            ValueError: If both IDs are the same
        """
        if target_id == source_id:
            raise ValueError(f"Cannot merge thread {target_id} into itself")

        with self._lock:
            target = self._require(target_id)
            source = self._require(source_id)

            target.messages.extend(source.messages)
            self._refresh(target)
            for message in source.messages:
                self._message_index[message.id] = target.id
            del self._threads[source.id]

            return target.snapshot()

    def live_threads(self) -> list[Thread]:
        """Live thread objects in index order.

        Only for engine components that hold ``lock`` for the whole pass.
        """
        with self._lock:
            return list(self._threads.values())

    def threads(self) -> list[Thread]:
        """Snapshot of all threads in index order."""
        with self._lock:
            return [thread.snapshot() for thread in self._threads.values()]

    def get_thread(self, thread_id: str) -> Thread:
        """Snapshot of one thread.

        Raises:
            NotFoundError: If the thread does not exist
        """
        with self._lock:
            return self._require(thread_id).snapshot()

    def thread_for_message(self, message_id: str) -> Thread:
        """Snapshot of the thread holding a message.

        Raises:
            NotFoundError: If the message was never processed
        """
        with self._lock:
            thread_id = self._message_index.get(message_id)
            if thread_id is None:
                raise NotFoundError("message", message_id)
            return self._threads[thread_id].snapshot()

    def clear(self) -> None:
        """Drop all threads and index entries."""
        with self._lock:
            self._threads.clear()
            self._message_index.clear()

    def __len__(self) -> int:
        return len(self._threads)

    def __contains__(self, thread_id: object) -> bool:
        return thread_id in self._threads

    def _require(self, thread_id: str) -> Thread:
        thread = self._threads.get(thread_id)
        if thread is None:
            raise NotFoundError("thread", thread_id)
        return thread

    def _create(self, message: Message) -> Thread:
        base_id = thread_id_for(message)
        thread_id = base_id
        suffix = 2
        # Same subject and participants, but the existing thread did not match
        while thread_id in self._threads:
            thread_id = f"{base_id}-{suffix}"
            suffix += 1

        thread = Thread(
            id=thread_id,
            subject=normalize_subject(message.subject),
            participants=message.participants,
            messages=[message],
            last_activity=message.timestamp,
            sources=[message.source_tag],
        )
        self._threads[thread_id] = thread
        self._message_index[message.id] = thread_id

        logger.debug("thread_created", thread_id=thread_id, message_id=message.id)
        return thread

    def _attach(self, thread: Thread, message: Message) -> None:
        for position, existing in enumerate(thread.messages):
            if existing.id == message.id:
                thread.messages[position] = message
                break
        else:
            thread.messages.append(message)

        self._refresh(thread)
        self._message_index[message.id] = thread.id

    @staticmethod
    def _refresh(thread: Thread) -> None:
        """Re-sort messages and recompute the derived fields."""
        thread.messages.sort(key=lambda m: m.timestamp)
        thread.participants = dedupe_addresses(
            address for message in thread.messages for address in message.participants
        )
        thread.last_activity = thread.messages[-1].timestamp
        thread.sources = list(dict.fromkeys(m.source_tag for m in thread.messages))
