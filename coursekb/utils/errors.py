"""Custom exception hierarchy for coursekb.

All application exceptions inherit from :class:`CourseKBError`, which
carries an optional ``provider_name`` so error handlers can identify which
component or external service (e.g. "jina", "qdrant", "chunker") caused
the failure.

The hierarchy is organized by concern:

    CourseKBError  (base -- catch-all for any coursekb error)
    +-- ValidationError     (malformed caller input, raised before any I/O)
    +-- ProcessingError     (a pipeline stage failed; carries ``stage``)
    +-- VectorStoreError    (an operation-level vector store call failed)
    +-- EmbeddingError      (dense or sparse encoder failure)
    +-- RerankError         (reranking service failure)
    +-- ConfigurationError  (invalid settings at construction time)

Per-batch insert failures are NOT raised: they are collected into
``InsertResult.errors`` so one bad batch cannot abort a whole ingestion.
"""

from __future__ import annotations


class CourseKBError(Exception):
    """Base exception for all coursekb errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets
    for structured log output, e.g. ``[qdrant] Collection not found``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input and processing errors
# ---------------------------------------------------------------------------

class ValidationError(CourseKBError):
    """Raised when caller input is malformed (empty text, bad vectors, ...)."""

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._field = field

    @property
    def field(self) -> str | None:
        return self._field


class ProcessingError(CourseKBError):
    """Raised when an internal pipeline stage fails."""

    def __init__(
        self,
        message: str = "Document processing failed",
        provider_name: str | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._stage = stage

    @property
    def stage(self) -> str | None:
        return self._stage


# ---------------------------------------------------------------------------
# External service errors
# ---------------------------------------------------------------------------

class VectorStoreError(CourseKBError):
    """Raised when an operation-level vector store call fails or times out.

    Always chained from the underlying client exception.
    """

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
        operation: str | None = None,
        collection: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._operation = operation
        self._collection = collection

    @property
    def operation(self) -> str | None:
        return self._operation

    @property
    def collection(self) -> str | None:
        return self._collection


class EmbeddingError(CourseKBError):
    """Raised when a dense or sparse embedding call fails."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RerankError(CourseKBError):
    """Raised when the reranking service fails or returns a malformed body."""

    def __init__(
        self,
        message: str = "Rerank request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(CourseKBError):
    """Raised when settings are missing or out of range."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
