# =============================================================================
# coursekb/cli/ingest.py -- Knowledge-base CLI
# =============================================================================
#
# Operator CLI for the coursekb pipeline: analyze documents offline, push
# them into a vector collection, and query or maintain collections.
#
# Supported subcommands:
#
#   analyze     -- Preprocess + chunk + quality-assess a text file (no store)
#   ingest      -- Full pipeline: chunk, embed and insert into a collection
#   search      -- Semantic / keyword / hybrid retrieval with optional rerank
#   collections -- List collections with point counts and status
#   delete      -- Delete points of a course or resource from a collection
#   health      -- Report vector store health
#
# Every command prints a single JSON document on stdout; logs go to stderr.
#
# Provider Selection (see coursekb/main.py):
#   - Vector store: Qdrant (VECTOR_STORE_BACKEND=qdrant) or in-memory
#   - Embedding: Jina (JINA_API_KEY) or OpenAI-compatible (OPENAI_API_KEY)
#   - Sparse: fastembed BM25 when ENABLE_SPARSE_VECTORS=true
#   - Settings: environment / .env, optionally layered over --config FILE.yaml
#
# Usage examples:
#   python -m coursekb.cli.ingest analyze --file notes.md --strategy sentence
#   python -m coursekb.cli.ingest ingest --file notes.md --collection course_42 \
#       --course-id 42 --resource-id notes
#   python -m coursekb.cli.ingest search --collection course_42 --query "what is RRF?"
#   python -m coursekb.cli.ingest collections
# =============================================================================

"""Standalone CLI for analyzing, ingesting and searching course documents.

Usage::

    python -m coursekb.cli.ingest analyze --file notes.md

    python -m coursekb.cli.ingest ingest --file notes.md --collection course_42

    python -m coursekb.cli.ingest search --collection course_42 --query "fusion"

    python -m coursekb.cli.ingest collections
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from coursekb.config.loader import settings_from_config
from coursekb.config.settings import Settings
from coursekb.models.document import ChunkStrategy
from coursekb.models.retrieval import RetrievalOptions
from coursekb.models.vector import SearchFilters
from coursekb.utils.errors import CourseKBError
from coursekb.utils.logging import configure_logging

_STRATEGIES = [s.value for s in ChunkStrategy]


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _settings_for(args: argparse.Namespace) -> Settings:
    """Settings from --config (if given) with --backend applied last."""
    config_path = getattr(args, "config", None)
    if config_path:
        if not Path(config_path).is_file():
            raise FileNotFoundError(f"config file not found: {config_path}")
        app_settings = settings_from_config(config_path)
    else:
        app_settings = Settings()
    if getattr(args, "backend", None):
        app_settings = app_settings.model_copy(update={"vector_store_backend": args.backend})
    return app_settings


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _handle_analyze(args: argparse.Namespace, app_settings: Settings) -> int:
    from coursekb.services.ingestion.document_pipeline import DocumentPipeline

    pipeline = DocumentPipeline(settings=app_settings)
    result = pipeline.process(
        _read_text(args.file),
        document_id=args.document_id or Path(args.file).stem,
        strategy=args.strategy,
    )
    sizes = [c.token_count for c in result.chunks]
    _emit(
        {
            "document_id": result.document.id,
            "title": result.document.metadata.get("title"),
            "language": result.document.language,
            "structure": result.document.structure.model_dump(),
            "strategy": args.strategy or app_settings.chunking_strategy,
            "chunks": {
                "count": len(sizes),
                "total_tokens": sum(sizes),
                "average_tokens": round(sum(sizes) / len(sizes), 2) if sizes else 0,
                "min_tokens": min(sizes, default=0),
                "max_tokens": max(sizes, default=0),
            },
            "quality": result.report.model_dump(),
            "processing_time": round(result.processing_time, 4),
        }
    )
    return 0


async def _handle_ingest(args: argparse.Namespace, components: dict[str, Any]) -> int:
    if components["embedding_provider"] is None:
        print(
            "Error: no embedding provider configured. Set JINA_API_KEY or OPENAI_API_KEY.",
            file=sys.stderr,
        )
        return 1

    metadata = {"source_file": str(args.file)}
    result = await components["pipeline"].ingest(
        _read_text(args.file),
        document_id=args.document_id or Path(args.file).stem,
        collection=args.collection,
        course_id=args.course_id,
        resource_id=args.resource_id,
        metadata=metadata,
        strategy=args.strategy,
        quality_threshold=args.quality_threshold,
    )
    _emit(result.model_dump(mode="json"))
    if result.insert is not None and not result.insert.success:
        print(
            f"Error: {result.insert.failed_batches} of {result.insert.total_batches} "
            "batches failed",
            file=sys.stderr,
        )
        return 1
    return 0


async def _handle_search(args: argparse.Namespace, components: dict[str, Any]) -> int:
    options = RetrievalOptions(
        search_mode=args.mode,
        limit=args.limit,
        min_quality=args.min_quality,
        course_id=args.course_id,
        enable_reranking=False if args.no_rerank else None,
        filters=SearchFilters(course_id=args.course_id) if args.course_id else None,
    )
    results = await components["retriever"].search(args.collection, args.query, options)
    _emit(
        [
            {
                "rank": r.rank,
                "id": r.id,
                "score": r.score,
                "relevance_score": r.relevance_score,
                "document_id": r.payload.get("document_id"),
                "chunk_index": r.payload.get("chunk_index"),
                "text": r.text[: args.preview],
            }
            for r in results
        ]
    )
    return 0


async def _handle_collections(components: dict[str, Any]) -> int:
    infos = await components["vector_service"].list_collections()
    _emit([info.model_dump() for info in infos])
    return 0


async def _handle_delete(args: argparse.Namespace, components: dict[str, Any]) -> int:
    filters = SearchFilters(
        course_id=args.course_id,
        resource_ids=[args.resource_id] if args.resource_id else None,
    )
    result = await components["vector_service"].delete_by_filter(args.collection, filters)
    _emit(result.model_dump())
    return 0


async def _handle_health(components: dict[str, Any]) -> int:
    status = await components["vector_service"].health_check()
    _emit(status)
    return 0 if status["healthy"] else 1


async def _run_store_command(args: argparse.Namespace, app_settings: Settings) -> int:
    """Build the component graph, run one store-backed command, then close it."""
    from coursekb.main import build_components, close_components

    components = build_components(app_settings)
    try:
        if args.command == "ingest":
            return await _handle_ingest(args, components)
        if args.command == "search":
            return await _handle_search(args, components)
        if args.command == "collections":
            return await _handle_collections(components)
        if args.command == "delete":
            return await _handle_delete(args, components)
        return await _handle_health(components)
    finally:
        await close_components(components)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the coursekb CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m coursekb.cli.ingest",
        description="Analyze, ingest and search course documents.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- analyze --
    analyze_parser = subparsers.add_parser(
        "analyze", help="Chunk and quality-assess a text file without storing it"
    )
    analyze_parser.add_argument("--file", required=True, help="Path to a UTF-8 text file")
    analyze_parser.add_argument("--strategy", choices=_STRATEGIES, help="Chunking strategy")
    analyze_parser.add_argument("--document-id", dest="document_id", help="Document id")

    # -- ingest --
    ingest_parser = subparsers.add_parser("ingest", help="Chunk, embed and store a text file")
    ingest_parser.add_argument("--file", required=True, help="Path to a UTF-8 text file")
    ingest_parser.add_argument("--collection", required=True, help="Target collection")
    ingest_parser.add_argument("--course-id", dest="course_id", help="Course id payload tag")
    ingest_parser.add_argument("--resource-id", dest="resource_id", help="Resource id payload tag")
    ingest_parser.add_argument("--document-id", dest="document_id", help="Document id")
    ingest_parser.add_argument("--strategy", choices=_STRATEGIES, help="Chunking strategy")
    ingest_parser.add_argument(
        "--quality-threshold",
        dest="quality_threshold",
        type=float,
        help="Skip the document if its overall quality score is below this (0-100)",
    )

    # -- search --
    search_parser = subparsers.add_parser("search", help="Query a collection")
    search_parser.add_argument("--collection", required=True, help="Collection to search")
    search_parser.add_argument("--query", required=True, help="Query text")
    search_parser.add_argument(
        "--mode", choices=["semantic", "keyword", "hybrid"], help="Search mode"
    )
    search_parser.add_argument("--limit", type=int, help="Maximum results")
    search_parser.add_argument("--course-id", dest="course_id", help="Restrict to one course")
    search_parser.add_argument(
        "--min-quality", dest="min_quality", type=float, help="Minimum quality score"
    )
    search_parser.add_argument(
        "--no-rerank", dest="no_rerank", action="store_true", help="Disable reranking"
    )
    search_parser.add_argument(
        "--preview", type=int, default=200, help="Characters of chunk text to print"
    )

    # -- collections --
    subparsers.add_parser("collections", help="List collections")

    # -- delete --
    delete_parser = subparsers.add_parser(
        "delete", help="Delete the points of a course or resource"
    )
    delete_parser.add_argument("--collection", required=True, help="Collection name")
    delete_parser.add_argument("--course-id", dest="course_id", help="Course id to delete")
    delete_parser.add_argument("--resource-id", dest="resource_id", help="Resource id to delete")

    # -- health --
    subparsers.add_parser("health", help="Check vector store health")

    for sub in subparsers.choices.values():
        sub.add_argument(
            "--backend",
            choices=["qdrant", "memory"],
            help="Override VECTOR_STORE_BACKEND",
        )
        sub.add_argument("--config", help="YAML settings file; environment variables still win")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    ``analyze`` runs entirely in-process.  Every other command builds the
    full component graph from settings, runs once and closes it.  Exits 1
    on a coursekb error, an unusable ``--config`` or a partially failed
    ingest, with the message on stderr.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        app_settings = _settings_for(args)
    except (OSError, yaml.YAMLError, PydanticValidationError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )

    if args.command == "delete" and not (args.course_id or args.resource_id):
        print("Error: delete needs --course-id or --resource-id", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "analyze":
            exit_code = _handle_analyze(args, app_settings)
        else:
            exit_code = asyncio.run(_run_store_command(args, app_settings))
    except (CourseKBError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
