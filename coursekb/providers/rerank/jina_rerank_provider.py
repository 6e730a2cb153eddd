"""Jina rerank API provider adapter.

Implements :class:`IRerankProvider` against ``POST {base}/rerank``
(``jina-reranker-m0`` by default).  Documents are sent as plain strings and
``return_documents`` is disabled; callers map hits back by ``index``.
"""

from __future__ import annotations

import httpx
import structlog

from coursekb.config.settings import Settings
from coursekb.interfaces.rerank_provider import IRerankProvider
from coursekb.models.retrieval import RerankHit
from coursekb.utils.errors import RerankError

logger = structlog.get_logger(logger_name=__name__)


class JinaRerankProvider(IRerankProvider):
    """Cross-encoder reranking via the Jina API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self._http = http_client
        self._api_key = settings.jina_api_key
        self._url = f"{settings.jina_base_url.rstrip('/')}/rerank"
        self._model = settings.rerank_model

    async def rerank(
        self,
        query: str,
        documents: list[str],
        top_n: int | None = None,
    ) -> list[RerankHit]:
        if not documents:
            return []

        payload: dict = {
            "model": self._model,
            "query": query,
            "documents": documents,
            "return_documents": False,
        }
        if top_n is not None:
            payload["top_n"] = top_n

        try:
            response = await self._http.post(
                self._url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RerankError(
                message=f"Jina rerank request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        results = body.get("results")
        if not isinstance(results, list):
            raise RerankError(
                message="Jina rerank response has no 'results' list",
                provider_name=self.get_provider_name(),
            )
        try:
            hits = [
                RerankHit(index=item["index"], relevance_score=item["relevance_score"])
                for item in results
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise RerankError(
                message=f"Malformed Jina rerank result: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        hits.sort(key=lambda h: h.relevance_score, reverse=True)
        logger.info(
            "jina_rerank_complete",
            model=self._model,
            documents=len(documents),
            returned=len(hits),
        )
        return hits[:top_n] if top_n is not None else hits

    def get_provider_name(self) -> str:
        return self._model
