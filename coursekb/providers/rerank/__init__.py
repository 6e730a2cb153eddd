"""Rerank provider implementations (currently Jina only)."""

from coursekb.providers.rerank.jina_rerank_provider import JinaRerankProvider

__all__ = ["JinaRerankProvider"]
