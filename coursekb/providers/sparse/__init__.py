"""Sparse encoder implementations.

FastEmbedSparseEncoder imports fastembed lazily; the
model itself is only loaded on first encode.
"""

from coursekb.providers.sparse.fastembed_sparse_encoder import FastEmbedSparseEncoder

__all__ = ["FastEmbedSparseEncoder"]
