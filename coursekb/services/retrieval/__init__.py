"""Query-time retrieval over the vector layer.

:class:`HybridRetriever` dispatches semantic / keyword / hybrid searches,
post-filters and reranks.  :mod:`~coursekb.services.retrieval.fusion` holds
the rank-fusion math shared with the in-memory store.
"""

from coursekb.services.retrieval.fusion import (
    distribution_based_fusion,
    fuse_results,
    reciprocal_rank_fusion,
)
from coursekb.services.retrieval.hybrid_retriever import HybridRetriever

__all__ = [
    "HybridRetriever",
    "distribution_based_fusion",
    "fuse_results",
    "reciprocal_rank_fusion",
]
