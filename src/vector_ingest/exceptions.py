"""Error taxonomy for the ingestion pipeline.

Every error raised by this package derives from :class:`IngestionError` so
trigger code can catch a single type.  The split mirrors the blast radius
of each failure:

* fatal before processing begins — :class:`ConfigurationError`
* fatal for one document — :class:`ContentReadError`, :class:`AnalyzerError`
* fatal for one batch — :class:`EmbeddingTerminalError`, :class:`PersistenceError`
* retried by the generator — :class:`EmbeddingTransientError`
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vector_ingest.ingestion.orchestrator import IngestionReport


class IngestionError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(IngestionError):
    """A required setting is missing or a setting combination is invalid."""


class ContentReadError(IngestionError):
    """The content source could not read a document."""


class AnalyzerError(IngestionError):
    """The document analyzer (OCR / layout) failed."""


class ProviderErrorCategory(str, Enum):
    """Error classes an embedding provider can report."""

    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    OTHER = "other"


class EmbeddingError(IngestionError):
    """Embedding provider failure.

    Parameters
    ----------
    message:
        Human-readable description.
    category:
        Provider error class (see :class:`ProviderErrorCategory`).
    status:
        HTTP-like status code reported by the provider, if any.
    batch_size:
        Number of texts in the failed request, filled in by the generator.
    """

    def __init__(
        self,
        message: str,
        *,
        category: ProviderErrorCategory = ProviderErrorCategory.OTHER,
        status: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.status = status
        self.batch_size = batch_size


class EmbeddingTransientError(EmbeddingError):
    """Rate-limited or transiently unauthorized; safe to retry."""


class EmbeddingTerminalError(EmbeddingError):
    """Non-retryable provider failure, or the retry ceiling was reached."""


class PersistenceError(IngestionError):
    """The persistence sink rejected a batch."""


class DocumentIngestionError(IngestionError):
    """One or more batches of a document failed.

    The attached :attr:`report` lists every failed batch.  Because upserts
    are idempotent the whole document can be re-ingested from scratch.
    """

    def __init__(self, message: str, report: IngestionReport) -> None:
        super().__init__(message)
        self.report = report
