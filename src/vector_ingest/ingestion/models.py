"""Domain models for documents, chunks, batches and persisted records."""

from __future__ import annotations

import hashlib
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

_FROZEN = {"frozen": True}


# -- structured analysis (OCR / layout output) --------------------------------


class Word(BaseModel):
    content: str

    model_config = _FROZEN


class Line(BaseModel):
    content: str

    model_config = _FROZEN


class Paragraph(BaseModel):
    content: str
    page_number: int | None = None

    model_config = _FROZEN


class Page(BaseModel):
    """One analyzed page; ``page_number`` is 1-based."""

    page_number: int
    lines: tuple[Line, ...] = ()
    words: tuple[Word, ...] = ()

    model_config = _FROZEN


class StructuredAnalysis(BaseModel):
    """Read-only hierarchy produced by a document analyzer.

    Attributes
    ----------
    pages:
        Pages in document order, each with its lines and words.
    paragraphs:
        Paragraphs detected across the document (may be empty).
    content:
        Full text content as a single string.
    """

    pages: tuple[Page, ...] = ()
    paragraphs: tuple[Paragraph, ...] = ()
    content: str = ""

    model_config = _FROZEN


# -- documents ----------------------------------------------------------------


class TextContent(BaseModel):
    """Raw lines of a plain-text or markdown document."""

    kind: Literal["text"] = "text"
    lines: tuple[str, ...] = ()
    syntax: Literal["plain", "markdown"] = "plain"

    model_config = _FROZEN


class AnalyzedContent(BaseModel):
    """Content produced by running a binary document through an analyzer."""

    kind: Literal["analysis"] = "analysis"
    analysis: StructuredAnalysis

    model_config = _FROZEN


DocumentContent = Annotated[Union[TextContent, AnalyzedContent], Field(discriminator="kind")]


class Document(BaseModel):
    """A document identity plus its content, read once per ingestion run."""

    uri: str
    content: DocumentContent

    model_config = _FROZEN


# -- chunks / batches ---------------------------------------------------------


class Chunk(BaseModel):
    """A bounded, numbered span of document text."""

    text: str
    sequence_number: int = Field(ge=0)
    page_number: int | None = None

    model_config = _FROZEN


class Batch(BaseModel):
    """An ordered, non-empty group of chunks embedded in one provider call."""

    index: int = Field(ge=0)
    chunks: tuple[Chunk, ...]

    model_config = _FROZEN

    @field_validator("chunks")
    @classmethod
    def _not_empty(cls, value: tuple[Chunk, ...]) -> tuple[Chunk, ...]:
        if not value:
            raise ValueError("a batch must contain at least one chunk")
        return value

    @property
    def texts(self) -> list[str]:
        return [c.text for c in self.chunks]

    def __len__(self) -> int:
        return len(self.chunks)


class PersistedChunkRecord(BaseModel):
    """One row in the vector store; ``(document_uri, chunk_id)`` is the key."""

    document_uri: str
    chunk_id: int
    embedding: list[float]
    text: str
    page_number: int | None = None

    model_config = _FROZEN

    @property
    def record_id(self) -> str:
        """Deterministic store ID, so re-ingestion overwrites instead of duplicating."""
        digest = hashlib.sha256(self.document_uri.encode()).hexdigest()[:16]
        return f"{digest}_{self.chunk_id}"
