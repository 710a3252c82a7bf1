"""Shared configuration loaded from environment / ``.env``."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings

from vector_ingest.exceptions import ConfigurationError

DEFAULT_EMBEDDING_DIMENSIONS = 1536
DEFAULT_MAX_TOKENS_PER_CHUNK = 250
DEFAULT_OVERLAP_TOKENS = 0
DEFAULT_MAX_BATCH_SIZE = 10
DEFAULT_MAX_CONCURRENCY = 50


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Embedding provider
    openai_api_key: str = Field(default="", description="API key for the OpenAI embedding endpoint")
    embedding_provider: Literal["openai", "huggingface"] = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible embedding API. Leave empty to "
            "use OpenAI cloud."
        ),
    )
    embedding_dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS

    # Chunking / dispatch
    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    # Embedding retry
    retry_max_attempts: int = 100
    retry_delay_seconds: float = 10.0

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "documents"

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


class IngestionConfig(BaseModel):
    """Per-run configuration, fixed at run start and read-only thereafter.

    Attributes
    ----------
    embedding_dimensions:
        Length of every embedding vector requested from the provider.
    max_tokens_per_chunk:
        Estimated-token budget for a single chunk.
    overlap_tokens:
        Tokens copied from the tail of a chunk into the head of the next.
    max_batch_size:
        Chunks embedded together in one provider call.
    max_concurrency:
        Batch pipelines allowed in flight at the same time.
    """

    embedding_dimensions: int = Field(default=DEFAULT_EMBEDDING_DIMENSIONS, gt=0)
    max_tokens_per_chunk: int = Field(default=DEFAULT_MAX_TOKENS_PER_CHUNK, gt=0)
    overlap_tokens: int = Field(default=DEFAULT_OVERLAP_TOKENS, ge=0)
    max_batch_size: int = Field(default=DEFAULT_MAX_BATCH_SIZE, gt=0)
    max_concurrency: int = Field(default=DEFAULT_MAX_CONCURRENCY, gt=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_overlap(self) -> IngestionConfig:
        if self.overlap_tokens >= self.max_tokens_per_chunk:
            raise ConfigurationError(
                f"overlap_tokens ({self.overlap_tokens}) must be < "
                f"max_tokens_per_chunk ({self.max_tokens_per_chunk})"
            )
        return self

    @classmethod
    def from_settings(cls, source: Settings) -> IngestionConfig:
        """Build a run configuration from *source*, raising ``ConfigurationError``."""
        try:
            return cls(
                embedding_dimensions=source.embedding_dimensions,
                max_tokens_per_chunk=source.max_tokens_per_chunk,
                overlap_tokens=source.overlap_tokens,
                max_batch_size=source.max_batch_size,
                max_concurrency=source.max_concurrency,
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid ingestion settings: {exc}") from exc


# Entry points read this; library code receives IngestionConfig.
settings = Settings()
