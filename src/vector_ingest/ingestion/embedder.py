"""Embedding generation with a fixed-delay retry policy.

Providers turn a list of texts into vectors and report failures as
:class:`~vector_ingest.exceptions.EmbeddingTransientError` (rate-limited or
transiently unauthorized) or
:class:`~vector_ingest.exceptions.EmbeddingTerminalError` (anything else).

:class:`EmbeddingGenerator` makes single attempts that return an explicit
result value and drives the retry loop around them::

    generator = EmbeddingGenerator(OpenAIEmbeddingProvider(model="text-embedding-3-small"))
    vectors = await generator.generate(batch, dimensions=1536)
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Union

import openai
from langchain_openai import OpenAIEmbeddings

from vector_ingest.exceptions import (
    ConfigurationError,
    EmbeddingTerminalError,
    EmbeddingTransientError,
    ProviderErrorCategory,
)
from vector_ingest.ingestion.models import Batch

if TYPE_CHECKING:
    from vector_ingest.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 100
DEFAULT_RETRY_DELAY_SECONDS = 10.0


# -- providers ----------------------------------------------------------------


class EmbeddingProvider(ABC):
    """Backend-agnostic embedding interface."""

    @abstractmethod
    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        """Return one vector of length *dimensions* per text, in order."""
        ...


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI (or OpenAI-compatible) embeddings through LangChain.

    The client's own retries are disabled; :class:`EmbeddingGenerator`
    owns the retry policy.

    Parameters
    ----------
    model:
        Embedding model identifier.
    api_key:
        API key; a dummy value is fine for self-hosted gateways.
    base_url:
        Optional base URL of an OpenAI-compatible endpoint.
    """

    def __init__(self, model: str, *, api_key: str = "", base_url: str = "") -> None:
        self.model = model
        self._api_key = api_key
        self._base_url = base_url
        self._clients: dict[int, OpenAIEmbeddings] = {}

    def _client(self, dimensions: int) -> OpenAIEmbeddings:
        client = self._clients.get(dimensions)
        if client is None:
            kwargs: dict = {
                "model": self.model,
                "dimensions": dimensions,
                "api_key": self._api_key or "EMPTY",
                "max_retries": 0,
            }
            if self._base_url:
                kwargs["base_url"] = self._base_url
            client = self._clients[dimensions] = OpenAIEmbeddings(**kwargs)
        return client

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        try:
            return await self._client(dimensions).aembed_documents(texts)
        except openai.RateLimitError as exc:
            raise EmbeddingTransientError(
                f"Rate limited: {exc}", category=ProviderErrorCategory.RATE_LIMITED, status=exc.status_code
            ) from exc
        except openai.AuthenticationError as exc:
            raise EmbeddingTransientError(
                f"Unauthorized: {exc}", category=ProviderErrorCategory.UNAUTHORIZED, status=exc.status_code
            ) from exc
        except openai.APIStatusError as exc:
            raise EmbeddingTerminalError(f"Embedding request failed: {exc}", status=exc.status_code) from exc
        except openai.APIError as exc:
            raise EmbeddingTerminalError(f"Embedding request failed: {exc}") from exc


class HuggingFaceEmbeddingProvider(EmbeddingProvider):
    """Local sentence-transformer embeddings; every failure is terminal.

    The model's output size is fixed, so *dimensions* must match it.
    """

    def __init__(self, model: str) -> None:
        from langchain_huggingface import HuggingFaceEmbeddings

        self.model = model
        self._embedder = HuggingFaceEmbeddings(model_name=model)

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        try:
            return await asyncio.to_thread(self._embedder.embed_documents, texts)
        except Exception as exc:
            raise EmbeddingTerminalError(f"Local embedding failed: {exc}") from exc


def build_embedding_provider(source: Settings) -> EmbeddingProvider:
    """Return the provider configured in *source*."""
    if source.embedding_provider == "huggingface":
        logger.info("Using local HuggingFace embeddings: %s", source.embedding_model)
        return HuggingFaceEmbeddingProvider(source.embedding_model)

    if not source.openai_api_key and not source.embedding_base_url:
        raise ConfigurationError("OPENAI_API_KEY is required for the openai embedding provider")
    if source.embedding_base_url:
        logger.info("Using OpenAI-compatible embedding endpoint: %s", source.embedding_base_url)
    return OpenAIEmbeddingProvider(
        source.embedding_model,
        api_key=source.openai_api_key,
        base_url=source.embedding_base_url,
    )


# -- attempt results ----------------------------------------------------------


@dataclass(frozen=True)
class EmbeddingSuccess:
    vectors: list[list[float]]


@dataclass(frozen=True)
class TransientFailure:
    error: EmbeddingTransientError


@dataclass(frozen=True)
class TerminalFailure:
    error: EmbeddingTerminalError


EmbeddingAttempt = Union[EmbeddingSuccess, TransientFailure, TerminalFailure]


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry: no backoff growth, no jitter."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay_seconds < 0:
            raise ConfigurationError(f"delay_seconds must be >= 0, got {self.delay_seconds}")


# -- generator ----------------------------------------------------------------


@dataclass
class EmbeddingGenerator:
    """Embed one batch at a time, retrying transient provider failures.

    Stateless across calls; safe to share between concurrent batches.
    """

    provider: EmbeddingProvider
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def attempt(self, batch: Batch, dimensions: int) -> EmbeddingAttempt:
        """Make exactly one provider call for *batch* and classify the outcome."""
        try:
            vectors = await self.provider.embed(batch.texts, dimensions)
        except EmbeddingTransientError as exc:
            exc.batch_size = len(batch)
            return TransientFailure(exc)
        except EmbeddingTerminalError as exc:
            exc.batch_size = len(batch)
            return TerminalFailure(exc)

        if len(vectors) != len(batch):
            return TerminalFailure(
                EmbeddingTerminalError(
                    f"Provider returned {len(vectors)} vectors for {len(batch)} texts",
                    batch_size=len(batch),
                )
            )
        for vector in vectors:
            if len(vector) != dimensions:
                return TerminalFailure(
                    EmbeddingTerminalError(
                        f"Provider returned a vector of length {len(vector)}, expected {dimensions}",
                        batch_size=len(batch),
                    )
                )
        return EmbeddingSuccess(vectors)

    async def generate(self, batch: Batch, dimensions: int) -> list[list[float]]:
        """Return vectors aligned 1:1 with *batch*.

        Raises
        ------
        EmbeddingTerminalError
            On a non-retryable failure, or once the attempt ceiling is hit.
        """
        attempt_no = 0
        while True:
            attempt_no += 1
            result = await self.attempt(batch, dimensions)

            if isinstance(result, EmbeddingSuccess):
                if attempt_no > 1:
                    logger.info("Batch %d embedded after %d attempts", batch.index, attempt_no)
                return result.vectors

            if isinstance(result, TerminalFailure):
                err = result.error
                logger.error(
                    "Embedding failed for batch %d (size=%d, status=%s): %s",
                    batch.index, len(batch), err.status, err,
                )
                raise err

            transient = result.error
            if attempt_no >= self.policy.max_attempts:
                logger.error(
                    "Max retry attempts reached for batch %d (size=%d, status=%s)",
                    batch.index, len(batch), transient.status,
                )
                raise EmbeddingTerminalError(
                    f"Failed to generate embeddings after {attempt_no} attempts: {transient}",
                    category=transient.category,
                    status=transient.status,
                    batch_size=len(batch),
                ) from transient

            logger.warning(
                "Retry %d/%d for batch %d (size=%d, status=%s, %s); waiting %.1fs",
                attempt_no, self.policy.max_attempts, batch.index, len(batch),
                transient.status, transient.category.value, self.policy.delay_seconds,
            )
            await self.sleep(self.policy.delay_seconds)
