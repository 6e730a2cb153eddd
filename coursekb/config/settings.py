"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources (in priority order):
#
#   1. Environment variables, e.g. JINA_API_KEY=jina_abc123
#   2. The .env file in the working directory
#
# Field ``qdrant_url`` maps to env var ``QDRANT_URL`` automatically.
# Defaults below apply when neither source sets a value.
#
# Every service also accepts per-call overrides (ChunkingConfig,
# BatchConfig, CollectionConfig, RetrievalOptions) which are merged on
# top of these process-wide defaults.
# ──────────────────────────────────────────────────────────────────────
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """coursekb application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Chunking ===
    max_chunk_size: int = Field(default=1000, ge=1)
    min_chunk_size: int = Field(default=100, ge=0)
    overlap_size: int = Field(default=50, ge=0)
    chunking_strategy: Literal["fixed", "sentence", "paragraph", "semantic"] = "semantic"
    # "simple" counts regex word/punctuation tokens; "huggingface" loads
    # ``tokenizer_model`` through the tokenizers library.
    tokenizer: Literal["simple", "huggingface"] = "simple"
    tokenizer_model: str = "bert-base-uncased"

    # === Vector store ===
    vector_store_backend: Literal["qdrant", "memory"] = "qdrant"
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str = ""
    qdrant_timeout: int = 30
    vector_size: int = Field(default=1024, ge=1)
    vector_distance: Literal["Cosine", "Euclid", "Dot", "Manhattan"] = "Cosine"
    hnsw_m: int = 16
    hnsw_ef_construct: int = 100
    hnsw_on_disk: bool = False
    indexing_threshold: int = 20000
    memmap_threshold: int = 50000
    enable_sparse_vectors: bool = True

    # === Batching ===
    max_batch_size: int = Field(default=1000, ge=1, le=10000)
    max_concurrent_batches: int = Field(default=5, ge=1)
    wait_for_indexing: bool = False
    batch_group_delay: float = 0.1  # seconds between batch groups
    delete_settle_delay: float = 0.2  # seconds before the post-delete count
    operation_timeout: float = Field(default=30.0, ge=1.0)

    # === Embedding / rerank providers ===
    embedding_provider: Literal["jina", "openai"] = "jina"
    jina_api_key: str = ""
    jina_base_url: str = "https://api.jina.ai/v1"
    embedding_model: str = "jina-embeddings-v4"
    embedding_dimensions: int = 1024
    embedding_batch_size: int = 10
    embedding_batch_delay: float = 0.1
    rerank_model: str = "jina-reranker-m0"
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible APIs (TogetherAI, etc.)
    openai_embedding_model: str = ""
    sparse_model: str = "Qdrant/bm25"

    # === Retrieval ===
    search_mode: Literal["semantic", "keyword", "hybrid"] = "hybrid"
    fusion_mode: Literal["rrf", "dbsf"] = "rrf"
    enable_reranking: bool = True
    final_top_k: int = 10
    search_limit: int = 10
    hnsw_ef: int = 128

    # === App ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that have credentials configured."""
        providers: list[str] = []
        if self.jina_api_key:
            providers.append("jina")
        if self.openai_api_key:
            providers.append("openai")
        return providers
