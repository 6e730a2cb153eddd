"""Vector layer: validated batched writes, filtered search and metered deletes.

:class:`VectorIngestionService` wraps an injected
:class:`~coursekb.interfaces.vector_store_client.IVectorStoreClient`;
:func:`build_filter` is the single place caller filters become store
filter clauses.
"""

from coursekb.services.vector.filters import build_filter
from coursekb.services.vector.vector_ingestion_service import (
    VectorIngestionService,
    normalize_point_id,
)

__all__ = ["VectorIngestionService", "build_filter", "normalize_point_id"]
