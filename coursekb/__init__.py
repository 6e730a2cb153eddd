"""coursekb: course document ingestion and hybrid retrieval.

Documents are cleaned, split into token-bounded chunks, scored for quality,
embedded and written to a vector store that holds a dense and a sparse
vector per chunk.  Queries run semantic, keyword or fused hybrid search with
optional cross-encoder reranking.
"""

__version__ = "0.1.0"
