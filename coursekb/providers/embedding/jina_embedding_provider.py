"""Jina embeddings API provider adapter.

Implements :class:`IEmbeddingProvider` against ``POST {base}/embeddings``
with ``jina-embeddings-v4`` by default.  Passages and queries use separate
task adapters (``retrieval.passage`` / ``retrieval.query``), which Jina
models are trained for.  The ``httpx.AsyncClient`` is injected for
testability and connection pooling.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from coursekb.config.settings import Settings
from coursekb.interfaces.embedding_provider import EmbeddingTask, IEmbeddingProvider
from coursekb.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)


class JinaEmbeddingProvider(IEmbeddingProvider):
    """Dense embeddings from the Jina API.

    Texts are sent in batches of ``embedding_batch_size`` with
    ``embedding_batch_delay`` seconds between requests.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http_client
        self._api_key = settings.jina_api_key
        self._url = f"{settings.jina_base_url.rstrip('/')}/embeddings"
        self._model = settings.embedding_model
        self._dimension = settings.embedding_dimensions
        self._batch_size = max(1, settings.embedding_batch_size)
        self._batch_delay = settings.embedding_batch_delay

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: list[str],
        task: EmbeddingTask = "retrieval.passage",
    ) -> list[list[float]]:
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            if start > 0 and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)
            batch = texts[start : start + self._batch_size]
            body = await self._post(
                {
                    "model": self._model,
                    "task": task,
                    "dimensions": self._dimension,
                    "embedding_type": "float",
                    "input": batch,
                }
            )
            all_embeddings.extend(self._parse(body, expected=len(batch)))
            logger.info(
                "jina_embedding_batch",
                model=self._model,
                task=task,
                batch_size=len(batch),
                tokens=(body.get("usage") or {}).get("total_tokens"),
            )
        return all_embeddings

    async def embed_query(self, text: str) -> list[float]:
        result = await self.embed([text], task="retrieval.query")
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._model

    def is_available(self) -> bool:
        """Return ``True`` if a Jina API key is configured."""
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            response = await self._http.post(self._url, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise EmbeddingError(
                message=f"Jina embeddings API returned {exc.response.status_code}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise EmbeddingError(
                message=f"Jina embeddings request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _parse(self, body: dict[str, Any], expected: int) -> list[list[float]]:
        data = body.get("data")
        if not isinstance(data, list) or len(data) != expected:
            raise EmbeddingError(
                message=f"Jina embeddings response has {len(data or [])} items, expected {expected}",
                provider_name=self.get_provider_name(),
            )
        ordered = sorted(data, key=lambda item: item.get("index", 0))
        return [list(item["embedding"]) for item in ordered]
