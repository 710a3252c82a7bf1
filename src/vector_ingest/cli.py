"""Command-line trigger for the ingestion pipeline.

    vector-ingest ingest docs/handbook.pdf notes/*.md
    vector-ingest delete docs/old.pdf
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Sequence

from vector_ingest.config import IngestionConfig, Settings, settings
from vector_ingest.exceptions import IngestionError, PersistenceError
from vector_ingest.ingestion.analyzer import AutoAnalyzer
from vector_ingest.ingestion.embedder import EmbeddingGenerator, RetryPolicy, build_embedding_provider
from vector_ingest.ingestion.loader import LocalFileSource
from vector_ingest.ingestion.orchestrator import IngestionOrchestrator

logger = logging.getLogger("vector_ingest")


def build_orchestrator(source: Settings) -> IngestionOrchestrator:
    """Wire the default local-file → OpenAI → Chroma pipeline from *source*."""
    from vector_ingest.storage.chroma_store import ChromaChunkSink

    config = IngestionConfig.from_settings(source)
    logger.info("Using embedding dimensions: %d", config.embedding_dimensions)
    generator = EmbeddingGenerator(
        build_embedding_provider(source),
        RetryPolicy(source.retry_max_attempts, source.retry_delay_seconds),
    )
    sink = ChromaChunkSink(
        source.chroma_collection,
        host=source.chroma_host,
        port=source.chroma_port,
    )
    if not sink.health_check():
        raise PersistenceError(f"Chroma at {source.chroma_host}:{source.chroma_port} is not reachable")
    return IngestionOrchestrator(
        config,
        source=LocalFileSource(),
        analyzer=AutoAnalyzer(),
        generator=generator,
        sink=sink,
    )


async def _run(orchestrator: IngestionOrchestrator, command: str, paths: Sequence[str]) -> int:
    failed = 0
    for path in paths:
        try:
            if command == "delete":
                await orchestrator.handle_delete(path)
            else:
                await orchestrator.handle_event(path)
        except IngestionError as exc:
            failed += 1
            logger.error("Ingestion of '%s' failed: %s", path, exc)
    return 1 if failed else 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Chunk, embed and store documents")
    sub = parser.add_subparsers(dest="command", required=True)
    ingest = sub.add_parser("ingest", help="Ingest (or re-ingest) documents")
    ingest.add_argument("paths", nargs="+", help="Document paths or file:// URIs")
    delete = sub.add_parser("delete", help="Send a delete event for documents")
    delete.add_argument("paths", nargs="+", help="Document paths or file:// URIs")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level.upper())

    try:
        orchestrator = build_orchestrator(settings)
    except IngestionError as exc:
        logger.error("Cannot start ingestion: %s", exc)
        return 2
    return asyncio.run(_run(orchestrator, args.command, args.paths))


if __name__ == "__main__":
    raise SystemExit(main())
