"""Ingestion orchestrator — read, chunk, batch, then embed and persist in parallel.

Flow for one document::

    Received → Extracting → Batching → Dispatching → Completed | Failed
                                           │
                                           └─ per batch: Embedding → Persisting

Extraction and batching run sequentially before any fan-out, so chunk
numbering is fixed up front.  Batch pipelines then run under a bounded
concurrency limit and may finish in any order.  Every batch is allowed to
settle; if any failed the whole document is reported failed and can be
re-ingested from scratch, since upserts are keyed by
``(document_uri, chunk_id)``.

Usage::

    orchestrator = IngestionOrchestrator(
        IngestionConfig(),
        source=LocalFileSource(),
        analyzer=AutoAnalyzer(),
        generator=EmbeddingGenerator(provider),
        sink=ChromaChunkSink(),
    )
    report = await orchestrator.handle_event("docs/handbook.pdf")
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from vector_ingest.config import IngestionConfig
from vector_ingest.exceptions import DocumentIngestionError
from vector_ingest.ingestion.analyzer import DocumentAnalyzer
from vector_ingest.ingestion.batcher import batch_chunks
from vector_ingest.ingestion.chunker import extract_chunks
from vector_ingest.ingestion.embedder import EmbeddingGenerator
from vector_ingest.ingestion.loader import ContentSource, content_syntax
from vector_ingest.ingestion.models import AnalyzedContent, Batch, Document, TextContent
from vector_ingest.ingestion.tokens import TokenCounter, estimate_tokens
from vector_ingest.storage.base import ChunkSinkBase

logger = logging.getLogger(__name__)


class IngestionState(str, Enum):
    RECEIVED = "received"
    EXTRACTING = "extracting"
    BATCHING = "batching"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchFailure(BaseModel):
    """A batch whose embed → persist pipeline did not succeed."""

    batch_index: int
    chunk_count: int
    error: str


class IngestionReport(BaseModel):
    """Outcome of one ingestion run."""

    document_uri: str
    state: IngestionState = IngestionState.RECEIVED
    chunk_count: int = 0
    batch_count: int = 0
    failed_batches: list[BatchFailure] = Field(default_factory=list)
    elapsed_seconds: float = 0.0


class IngestionOrchestrator:
    """Top-level driver for a single document.

    Parameters
    ----------
    config:
        Run configuration, read-only for the orchestrator's lifetime.
    source:
        Where document content is read from.
    analyzer:
        OCR / layout analyzer for documents that are not plain text.
    generator:
        Embedding generator (owns the retry policy).
    sink:
        Persistence backend.
    token_counter:
        Token estimator handed to the chunker.
    """

    def __init__(
        self,
        config: IngestionConfig,
        *,
        source: ContentSource,
        analyzer: DocumentAnalyzer,
        generator: EmbeddingGenerator,
        sink: ChunkSinkBase,
        token_counter: TokenCounter = estimate_tokens,
    ) -> None:
        self.config = config
        self._source = source
        self._analyzer = analyzer
        self._generator = generator
        self._sink = sink
        self._token_counter = token_counter

    # -- public API -----------------------------------------------------------

    async def handle_event(self, uri: str) -> Optional[IngestionReport]:
        """Ingest *uri* if it exists, otherwise treat the event as a delete."""
        logger.info("Starting processing of '%s'", uri)
        if await self._source.exists(uri):
            report = await self.ingest(uri)
        else:
            report = await self.handle_delete(uri)
        logger.info("Finished processing of '%s'", uri)
        return report

    async def ingest(self, uri: str) -> IngestionReport:
        """Run the full pipeline for *uri*.

        Raises
        ------
        ContentReadError, AnalyzerError
            When the document cannot be read or analyzed.
        DocumentIngestionError
            When at least one batch failed; carries the report.
        """
        started = time.monotonic()
        report = IngestionReport(document_uri=uri)

        document = await self._load_document(uri)

        self._transition(report, IngestionState.EXTRACTING)
        chunks = extract_chunks(
            document,
            self.config.max_tokens_per_chunk,
            self.config.overlap_tokens,
            token_counter=self._token_counter,
        )
        report.chunk_count = len(chunks)

        self._transition(report, IngestionState.BATCHING)
        batches = batch_chunks(chunks, self.config.max_batch_size)
        report.batch_count = len(batches)

        self._transition(report, IngestionState.DISPATCHING)
        logger.info(
            "Processing batches in parallel, total batches: %d, chunks count: %d",
            len(batches), len(chunks),
        )
        report.failed_batches = await self._dispatch(uri, batches)
        report.elapsed_seconds = round(time.monotonic() - started, 3)

        if report.failed_batches:
            self._transition(report, IngestionState.FAILED)
            msg = f"{len(report.failed_batches)} of {len(batches)} batches failed for '{uri}'"
            logger.error(msg)
            raise DocumentIngestionError(msg, report)

        self._transition(report, IngestionState.COMPLETED)
        logger.info(
            "Finished ingesting '%s', total chunks processed %d in %.1fs",
            uri, len(chunks), report.elapsed_seconds,
        )
        return report

    async def handle_delete(self, uri: str) -> None:
        """Delete events are acknowledged only; removal of stored chunks is not implemented."""
        logger.info("Handling delete event for '%s'", uri)
        return None

    # -- internals ------------------------------------------------------------

    def _transition(self, report: IngestionReport, state: IngestionState) -> None:
        logger.debug("'%s': %s -> %s", report.document_uri, report.state.value, state.value)
        report.state = state

    async def _load_document(self, uri: str) -> Document:
        syntax = content_syntax(uri)
        if syntax is not None:
            lines = await self._source.read_lines(uri)
            return Document(uri=uri, content=TextContent(lines=tuple(lines), syntax=syntax))

        logger.info("Analyzing document '%s'", uri)
        data = await self._source.read_bytes(uri)
        analysis = await self._analyzer.analyze(data)
        logger.info("Extracted content from '%s', # pages %d", uri, len(analysis.pages))
        return Document(uri=uri, content=AnalyzedContent(analysis=analysis))

    async def _dispatch(self, uri: str, batches: list[Batch]) -> list[BatchFailure]:
        if not batches:
            return []

        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def run(batch: Batch) -> None:
            async with semaphore:
                await self._process_batch(uri, batch)

        results = await asyncio.gather(*(run(b) for b in batches), return_exceptions=True)

        failures: list[BatchFailure] = []
        for batch, result in zip(batches, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.error("Batch %d of '%s' failed: %s", batch.index, uri, result)
                failures.append(
                    BatchFailure(batch_index=batch.index, chunk_count=len(batch), error=str(result))
                )
        return failures

    async def _process_batch(self, uri: str, batch: Batch) -> None:
        logger.info("Generating embeddings for batch %d of size %d", batch.index, len(batch))
        vectors = await self._generator.generate(batch, self.config.embedding_dimensions)

        logger.info("Persisting batch %d of size %d", batch.index, len(batch))
        await self._sink.upsert(uri, batch.chunks, vectors)
