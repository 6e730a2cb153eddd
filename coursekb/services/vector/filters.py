"""Compile caller-facing :class:`SearchFilters` into a :class:`PointFilter`.

Every search and delete in the vector layer goes through
:func:`build_filter`, so filter semantics are defined in exactly one place.
Clauses are ANDed; an empty filter set compiles to ``None`` ("no filter").
"""

from __future__ import annotations

from coursekb.models.vector import (
    DatetimeRangeClause,
    MatchAnyClause,
    MatchClause,
    PointFilter,
    RangeClause,
    SearchFilters,
)

INGESTION_TIMESTAMP_KEY = "ingestion_timestamp"


def build_filter(filters: SearchFilters | None) -> PointFilter | None:
    """Translate *filters* into backend-neutral filter clauses.

    Clause order: course, resources, quality range, language, custom
    clauses, then the ingestion-date range.
    """
    if filters is None:
        return None

    must: list = []
    if filters.course_id:
        must.append(MatchClause(key="course_id", value=filters.course_id))

    if filters.resource_ids:
        must.append(MatchAnyClause(key="resource_id", any=list(filters.resource_ids)))

    if filters.min_quality is not None or filters.max_quality is not None:
        must.append(
            RangeClause(key="quality_score", gte=filters.min_quality, lte=filters.max_quality)
        )

    if filters.language:
        must.append(MatchClause(key="language", value=filters.language))

    must.extend(filters.custom)

    if filters.date_from is not None or filters.date_to is not None:
        must.append(
            DatetimeRangeClause(
                key=INGESTION_TIMESTAMP_KEY, gte=filters.date_from, lte=filters.date_to
            )
        )

    return PointFilter(must=must) if must else None
