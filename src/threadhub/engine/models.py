"""Data model for messages, threads and cross-source threads.

Messages arrive from connectors and are immutable. Threads are owned and
mutated by the ThreadStore; everything handed to callers is a snapshot.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from threadhub.config_schema import ThreadingConfig
from threadhub.core.errors import MessageValidationError

ThreadStatus = Literal["active", "archived", "deleted"]
ThreadHealth = Literal["active", "stale", "dead"]


class Message(BaseModel):
    """An email-like message supplied by an upstream connector.

    Accepts ``from`` as an alias for ``sender`` so raw connector payloads
    validate directly.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    subject: str = ""
    sender: str = Field(min_length=1, validation_alias=AliasChoices("sender", "from"))
    to: tuple[str, ...] = ()
    cc: tuple[str, ...] = ()
    timestamp: datetime
    body: str = ""
    source: str | None = None

    @field_validator("id", "sender")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("timestamp")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC so all comparisons are well-defined."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def participants(self) -> list[str]:
        """Case-folded sender, recipients and cc addresses, first-seen order."""
        return dedupe_addresses([self.sender, *self.to, *self.cc])

    @property
    def source_tag(self) -> str:
        """Origin account tag, e.g. ``gmail_work`` for id ``gmail_work_1234``."""
        if self.source:
            return self.source
        parts = self.id.split("_")
        if len(parts) < 2:
            return self.id
        return f"{parts[0]}_{parts[1]}"


def dedupe_addresses(addresses: Iterable[str]) -> list[str]:
    """Case-fold addresses and drop duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for address in addresses:
        folded = address.strip().casefold()
        if folded:
            seen.setdefault(folded, None)
    return list(seen)


def coerce_message(item: Message | Mapping[str, Any]) -> Message:
    """Return item as a validated Message.

    Raises:
        MessageValidationError: If item is not a Message and does not validate
    """
    if isinstance(item, Message):
        return item
    if not isinstance(item, Mapping):
        raise MessageValidationError(
            f"Expected a message mapping, got {type(item).__name__}",
        )

    raw_id = item.get("id")
    message_id = raw_id if isinstance(raw_id, str) else None
    try:
        return Message.model_validate(item)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise MessageValidationError(
            f"Invalid message {message_id or '<no id>'}: {'; '.join(errors)}",
            message_id=message_id,
            errors=errors,
        ) from e


@dataclass(frozen=True, slots=True)
class ThreadOptions:
    """Options for placing messages into threads.

    Attributes:
        strict_mode: Reserved; accepted but not used by scoring
        time_window_hours: Window for the time-proximity score
        participant_threshold: Reserved; accepted but not used by scoring
        subject_similarity_threshold: Reserved for strict mode
    """

    strict_mode: bool = False
    time_window_hours: int = 168
    participant_threshold: float = 0.6
    subject_similarity_threshold: float = 0.8

    @classmethod
    def from_config(cls, config: ThreadingConfig) -> ThreadOptions:
        return cls(
            strict_mode=config.strict_mode,
            time_window_hours=config.time_window_hours,
            participant_threshold=config.participant_threshold,
            subject_similarity_threshold=config.subject_similarity_threshold,
        )


@dataclass(slots=True)
class Thread:
    """A reconstructed conversation.

    Attributes:
        id: Deterministic ID derived from the first message's subject and participants
        subject: Normalized subject of the first message
        participants: Case-folded union of all message participants
        messages: Messages sorted by timestamp
        last_activity: Latest message timestamp
        status: Lifecycle status
        priority: Priority score used when ordering thread work
        sources: Origin account tags of the messages
    """

    id: str
    subject: str
    participants: list[str]
    messages: list[Message]
    last_activity: datetime
    status: ThreadStatus = "active"
    priority: float = 0.0
    sources: list[str] = field(default_factory=list)

    @property
    def message_ids(self) -> list[str]:
        return [m.id for m in self.messages]

    def snapshot(self) -> Thread:
        """Copy that shares the immutable messages but not the containers."""
        return replace(
            self,
            participants=list(self.participants),
            messages=list(self.messages),
            sources=list(self.sources),
        )


@dataclass(frozen=True, slots=True)
class ThreadAnalytics:
    """Conversation statistics for a group of messages.

    Attributes:
        conversation_depth: Number of messages
        average_response_time_hours: Mean gap between consecutive messages
        participant_engagement: Sent-message count per participant
        thread_velocity: Messages per day over the conversation span
        last_activity: Newest message timestamp (None when there are no messages)
        thread_health: active (<7 days), stale (<30 days) or dead
    """

    conversation_depth: int
    average_response_time_hours: float
    participant_engagement: dict[str, int]
    thread_velocity: float
    last_activity: datetime | None
    thread_health: ThreadHealth


@dataclass(frozen=True, slots=True)
class CrossSourceThread:
    """Threads from different sources unified into one conversation.

    Attributes:
        id: Deterministic ID derived from the member thread IDs
        member_thread_ids: IDs of the linked threads, in store order
        platforms: Platforms derived from the members' source tags
        unified_subject: Subject of the first member
        participants: Union of member participants
        messages: Union of member messages sorted by timestamp
        analytics: Statistics over the unified messages
    """

    id: str
    member_thread_ids: list[str]
    platforms: list[str]
    unified_subject: str
    participants: list[str]
    messages: list[Message]
    analytics: ThreadAnalytics
