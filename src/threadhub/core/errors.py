"""Custom exception types for ThreadHub.

Error messages should say what failed, on which item, and why, so callers
can decide whether to drop the item, retry, or stop. No component retries
internally; retry policy belongs to the caller.
"""

from typing import Any


class ThreadHubError(Exception):
    """Base exception for all ThreadHub errors."""

    pass


class ConfigValidationError(ThreadHubError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(ThreadHubError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class MessageValidationError(ThreadHubError):
    """Raised when an incoming message is malformed or misses a required field.

    Batch processing rejects only the offending item and continues.

    Attributes:
        message_id: ID of the rejected message, if one could be read
        errors: Field-level error descriptions
    """

    def __init__(
        self,
        message: str,
        message_id: str | None = None,
        errors: list[str] | None = None,
    ):
        super().__init__(message)
        self.message_id = message_id
        self.errors = errors or []


class NotFoundError(ThreadHubError):
    """Raised when an accessor is called with an unknown thread ID or cache key.

    Attributes:
        kind: What was looked up ("thread", "message", "cache_key", ...)
        key: The identifier that was not found
    """

    def __init__(self, kind: str, key: str):
        super().__init__(f"Unknown {kind}: {key}")
        self.kind = kind
        self.key = key


class WorkerError(ThreadHubError):
    """Raised when a per-item worker fails inside a batch.

    The failing batch is marked failed and the enclosing execute call is
    aborted. Results of batches that had already completed are kept on the
    exception so the caller can decide whether they are usable.

    Attributes:
        batch_id: ID of the batch whose worker raised
        partial_results: Results from every batch that completed
    """

    def __init__(
        self,
        message: str,
        batch_id: str | None = None,
        partial_results: list[Any] | None = None,
    ):
        super().__init__(message)
        self.batch_id = batch_id
        self.partial_results = partial_results if partial_results is not None else []


class BatchStateError(ThreadHubError):
    """Raised on an illegal batch status transition (e.g. completed -> processing)."""

    pass


class CacheInconsistencyError(ThreadHubError):
    """Signals cache state written outside the single-writer discipline.

    The cache resolves concurrent writes to the same key as last-write-wins,
    so this is not raised in normal operation.
    """

    pass
