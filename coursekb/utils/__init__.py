"""Utility modules for coursekb.

- **errors** -- Exception hierarchy rooted at CourseKBError; each concern
  raises its own subclass so callers can handle failures granularly.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **concurrency** -- semaphore-throttled gather, labelled timeouts and
  batch splitting used by the vector ingestion service.
"""

from coursekb.utils.concurrency import split_batches, throttled_gather, with_timeout
from coursekb.utils.errors import (
    ConfigurationError,
    CourseKBError,
    EmbeddingError,
    ProcessingError,
    RerankError,
    ValidationError,
    VectorStoreError,
)
from coursekb.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "CourseKBError",
    "EmbeddingError",
    "ProcessingError",
    "RerankError",
    "ValidationError",
    "VectorStoreError",
    "configure_logging",
    "get_logger",
    "split_batches",
    "throttled_gather",
    "with_timeout",
]
