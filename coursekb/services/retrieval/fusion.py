"""Rank fusion and result deduplication.

``fuse_results`` merges result lists that were produced independently
(e.g. a semantic and a keyword search run one after the other) by keeping
the best score per point.  ``reciprocal_rank_fusion`` and
``distribution_based_fusion`` combine rankings the way a vector store does
server-side; the in-memory store uses them for its fused queries.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

from coursekb.models.vector import PointId, ScoredPoint

# Qdrant's default RRF constant; rank is 0-based.
RRF_K = 2


def _key(point_id: PointId) -> str:
    return str(point_id)


def fuse_results(results: Iterable[ScoredPoint], limit: int) -> list[ScoredPoint]:
    """Keep the highest-scoring entry per point id, sort descending, truncate to *limit*."""
    best: dict[str, ScoredPoint] = {}
    for point in results:
        key = _key(point.id)
        existing = best.get(key)
        if existing is None or point.score > existing.score:
            best[key] = point
    return sorted(best.values(), key=lambda p: p.score, reverse=True)[:limit]


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[ScoredPoint]],
    limit: int,
    k: int = RRF_K,
) -> list[ScoredPoint]:
    """Score each point by ``sum(1 / (k + rank))`` over every ranking it appears in."""
    scores: dict[str, float] = {}
    points: dict[str, ScoredPoint] = {}
    for ranking in rankings:
        for rank, point in enumerate(ranking):
            key = _key(point.id)
            scores[key] = scores.get(key, 0.0) + 1.0 / (k + rank)
            points.setdefault(key, point)
    return _rescored(points, scores, limit)


def distribution_based_fusion(
    rankings: Sequence[Sequence[ScoredPoint]],
    limit: int,
) -> list[ScoredPoint]:
    """Normalize each ranking's scores to ``[0, 1]`` over ``mean +/- 3 std``, then sum."""
    scores: dict[str, float] = {}
    points: dict[str, ScoredPoint] = {}
    for ranking in rankings:
        if not ranking:
            continue
        raw = np.array([p.score for p in ranking], dtype=float)
        mean, std = float(raw.mean()), float(raw.std())
        if std == 0.0:
            normalized = np.full(raw.shape, 0.5)
        else:
            low, high = mean - 3 * std, mean + 3 * std
            normalized = np.clip((raw - low) / (high - low), 0.0, 1.0)
        for point, value in zip(ranking, normalized):
            key = _key(point.id)
            scores[key] = scores.get(key, 0.0) + float(value)
            points.setdefault(key, point)
    return _rescored(points, scores, limit)


def _rescored(
    points: dict[str, ScoredPoint],
    scores: dict[str, float],
    limit: int,
) -> list[ScoredPoint]:
    ordered = sorted(scores.items(), key=lambda item: item[1], reverse=True)[:limit]
    return [points[key].model_copy(update={"score": score}) for key, score in ordered]
