"""Unit tests for FastEmbedSparseEncoder."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from coursekb.models.vector import SparseVector
from coursekb.providers.sparse.fastembed_sparse_encoder import FastEmbedSparseEncoder
from coursekb.utils.errors import EmbeddingError


def _embedding(indices: list[int], values: list[float]) -> MagicMock:
    return MagicMock(indices=np.array(indices), values=np.array(values, dtype=np.float32))


class TestFastEmbedSparseEncoder:
    def test_provider_name(self) -> None:
        assert FastEmbedSparseEncoder().get_provider_name() == "fastembed_bm25"
        assert (
            FastEmbedSparseEncoder("prithivida/Splade_PP_en_v1").get_provider_name()
            == "fastembed_Splade_PP_en_v1"
        )

    @pytest.mark.asyncio
    async def test_model_loaded_once_on_first_use(self) -> None:
        model = MagicMock()
        model.embed.return_value = iter([_embedding([3, 11], [0.5, 1.25])])
        model.query_embed.return_value = iter([_embedding([11], [1.0])])

        with patch("fastembed.SparseTextEmbedding", return_value=model) as model_cls:
            encoder = FastEmbedSparseEncoder()
            model_cls.assert_not_called()

            docs = await encoder.encode(["vector search"])
            query = await encoder.encode_query("search")

        model_cls.assert_called_once_with(model_name="Qdrant/bm25")
        assert docs == [SparseVector(indices=[3, 11], values=[0.5, 1.25])]
        assert query == SparseVector(indices=[11], values=[1.0])
        assert all(isinstance(i, int) for i in docs[0].indices)

    @pytest.mark.asyncio
    async def test_empty_input_skips_model_load(self) -> None:
        with patch("fastembed.SparseTextEmbedding") as model_cls:
            assert await FastEmbedSparseEncoder().encode([]) == []
        model_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_load_failure(self) -> None:
        with patch("fastembed.SparseTextEmbedding", side_effect=OSError("no such model")):
            encoder = FastEmbedSparseEncoder("missing/model")
            with pytest.raises(EmbeddingError, match="missing/model") as exc_info:
                await encoder.encode(["text"])

        assert exc_info.value.provider_name == "fastembed_model"

    @pytest.mark.asyncio
    async def test_encode_failure_wrapped(self) -> None:
        model = MagicMock()
        model.query_embed.side_effect = RuntimeError("onnx crashed")
        with patch("fastembed.SparseTextEmbedding", return_value=model):
            with pytest.raises(EmbeddingError, match="onnx crashed"):
                await FastEmbedSparseEncoder().encode_query("text")
