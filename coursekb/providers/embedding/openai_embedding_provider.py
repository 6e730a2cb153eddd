"""Embeddings through the OpenAI SDK.

Works against api.openai.com and any server speaking the same embeddings
endpoint (TogetherAI, Fireworks, a local Ollama) when ``openai_base_url`` is
set.  These models have no task adapters: passages and queries are embedded
the same way and ``task`` is ignored.
"""

from __future__ import annotations

import time

import openai
import structlog

from coursekb.config.settings import Settings
from coursekb.interfaces.embedding_provider import EmbeddingTask, IEmbeddingProvider
from coursekb.utils.concurrency import split_batches
from coursekb.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# Per-request input cap of the embeddings endpoint.
_MAX_INPUTS_PER_REQUEST = 2048

# Output sizes of fixed-dimension models we know about.
_FIXED_DIMENSIONS: dict[str, int] = {
    "text-embedding-ada-002": 1536,
    "BAAI/bge-large-en-v1.5": 1024,
    "intfloat/multilingual-e5-large-instruct": 1024,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider for OpenAI-compatible APIs.

    ``text-embedding-3-*`` models can shorten their output, so they are asked
    for ``embedding_dimensions`` and fit the collection without reindexing.
    Other models report their native size from ``_FIXED_DIMENSIONS``.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        self._model = settings.openai_embedding_model or "text-embedding-3-small"

        if settings.openai_base_url:
            self._client = openai.AsyncOpenAI(
                api_key=self._api_key, base_url=settings.openai_base_url
            )
            self._name = "openai-compatible_embedding"
        else:
            self._client = openai.AsyncOpenAI(api_key=self._api_key)
            self._name = "openai_embedding"

        self._request_dimensions = self._model.startswith("text-embedding-3")
        self._dimension = (
            settings.embedding_dimensions
            if self._request_dimensions
            else _FIXED_DIMENSIONS.get(self._model, settings.embedding_dimensions)
        )

    async def embed(
        self,
        texts: list[str],
        task: EmbeddingTask = "retrieval.passage",
    ) -> list[list[float]]:
        vectors: list[list[float]] = []
        for batch in split_batches(texts, _MAX_INPUTS_PER_REQUEST):
            vectors.extend(await self._embed_batch(batch))
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        return (await self.embed([text], task="retrieval.query"))[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        kwargs: dict = {"input": batch, "model": self._model}
        if self._request_dimensions:
            kwargs["dimensions"] = self._dimension

        started = time.monotonic()
        try:
            response = await self._client.embeddings.create(**kwargs)
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._name} API error: {exc}",
                provider_name=self._name,
            ) from exc

        vectors = [item.embedding for item in response.data]
        if len(vectors) != len(batch):
            raise EmbeddingError(
                message=f"{self._name} returned {len(vectors)} embeddings, expected {len(batch)}",
                provider_name=self._name,
            )

        logger.debug(
            "openai_embedding_batch",
            model=self._model,
            provider=self._name,
            batch_size=len(batch),
            tokens=response.usage.total_tokens if response.usage else None,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return vectors
