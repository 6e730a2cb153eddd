"""Local sparse (keyword) encoder using fastembed.

Wraps ``fastembed.SparseTextEmbedding`` to implement :class:`ISparseEncoder`.
The default ``Qdrant/bm25`` model is a pure-Python BM25 term weighter, so
no ONNX download is needed; SPLADE-style models are also supported.
Queries go through ``query_embed``, which BM25 scores without document
length normalisation.
"""

from __future__ import annotations

import structlog

from coursekb.interfaces.sparse_encoder import ISparseEncoder
from coursekb.models.vector import SparseVector
from coursekb.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MODEL = "Qdrant/bm25"


class FastEmbedSparseEncoder(ISparseEncoder):
    """Sparse encoder backed by fastembed.  Loads the model on first use."""

    def __init__(self, model_name: str | None = None) -> None:
        self._model_name = model_name or _DEFAULT_MODEL
        self._model = None  # Lazy-loaded

    def _load_model(self) -> None:
        if self._model is not None:
            return
        try:
            from fastembed import SparseTextEmbedding

            self._model = SparseTextEmbedding(model_name=self._model_name)
            logger.info("fastembed_sparse_model_loaded", model=self._model_name)
        except Exception as exc:
            raise EmbeddingError(
                message=f"Failed to load fastembed sparse model '{self._model_name}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    @staticmethod
    def _convert(embedding) -> SparseVector:  # noqa: ANN001 -- fastembed SparseEmbedding
        return SparseVector(
            indices=[int(i) for i in embedding.indices.tolist()],
            values=[float(v) for v in embedding.values.tolist()],
        )

    async def encode(self, texts: list[str]) -> list[SparseVector]:
        if not texts:
            return []
        self._load_model()
        try:
            return [self._convert(e) for e in self._model.embed(texts)]
        except Exception as exc:
            raise EmbeddingError(
                message=f"Fastembed sparse encoding error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def encode_query(self, text: str) -> SparseVector:
        self._load_model()
        try:
            return self._convert(next(iter(self._model.query_embed(text))))
        except Exception as exc:
            raise EmbeddingError(
                message=f"Fastembed sparse query encoding error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return f"fastembed_{self._model_name.split('/')[-1]}"
