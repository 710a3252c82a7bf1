"""Unit tests for embedding generation and provider error mapping."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from vector_ingest.config import Settings
from vector_ingest.exceptions import (
    ConfigurationError,
    EmbeddingTerminalError,
    EmbeddingTransientError,
    ProviderErrorCategory,
)
from vector_ingest.ingestion.embedder import (
    EmbeddingGenerator,
    EmbeddingProvider,
    EmbeddingSuccess,
    OpenAIEmbeddingProvider,
    RetryPolicy,
    TerminalFailure,
    TransientFailure,
    build_embedding_provider,
)
from vector_ingest.ingestion.models import Batch, Chunk

DIM = 4


# ── Fakes ───────────────────────────────────────────────────────────────


class ScriptedProvider(EmbeddingProvider):
    """Raises the scripted exceptions in order, then returns vectors."""

    def __init__(self, failures: list[Exception] | None = None, *, length: int | None = None) -> None:
        self.failures = list(failures or [])
        self.length = length
        self.calls = 0

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        size = self.length if self.length is not None else dimensions
        return [[float(len(t))] * size for t in texts]


class AlwaysFailing(EmbeddingProvider):
    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls = 0

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        self.calls += 1
        raise self.error


def _rate_limited() -> EmbeddingTransientError:
    return EmbeddingTransientError("slow down", category=ProviderErrorCategory.RATE_LIMITED, status=429)


def _batch(n: int = 3) -> Batch:
    return Batch(index=0, chunks=tuple(Chunk(text="x" * (i + 1), sequence_number=i) for i in range(n)))


# ── EmbeddingGenerator ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_rate_limited_three_times_then_succeeds(fake_sleep, sleeps: list[float]) -> None:
    provider = ScriptedProvider([_rate_limited(), _rate_limited(), _rate_limited()])
    generator = EmbeddingGenerator(provider, sleep=fake_sleep)

    vectors = await generator.generate(_batch(3), DIM)

    assert provider.calls == 4
    assert sleeps == [10.0, 10.0, 10.0]
    assert vectors == [[1.0] * DIM, [2.0] * DIM, [3.0] * DIM]


@pytest.mark.asyncio
async def test_permanent_rate_limit_exhausts_ceiling(fake_sleep, sleeps: list[float]) -> None:
    provider = AlwaysFailing(_rate_limited())
    generator = EmbeddingGenerator(provider, sleep=fake_sleep)

    with pytest.raises(EmbeddingTerminalError) as info:
        await generator.generate(_batch(5), DIM)

    assert provider.calls == 100
    assert len(sleeps) == 99
    assert info.value.batch_size == 5
    assert info.value.status == 429
    assert info.value.category is ProviderErrorCategory.RATE_LIMITED


@pytest.mark.asyncio
async def test_single_attempt_policy_raises_without_sleeping(fake_sleep, sleeps: list[float]) -> None:
    provider = AlwaysFailing(_rate_limited())
    generator = EmbeddingGenerator(provider, RetryPolicy(max_attempts=1), sleep=fake_sleep)

    with pytest.raises(EmbeddingTerminalError, match="after 1 attempts") as info:
        await generator.generate(_batch(2), DIM)

    assert provider.calls == 1
    assert sleeps == []
    assert isinstance(info.value.__cause__, EmbeddingTransientError)


@pytest.mark.asyncio
async def test_unauthorized_is_retried(fake_sleep, sleeps: list[float]) -> None:
    unauthorized = EmbeddingTransientError("401", category=ProviderErrorCategory.UNAUTHORIZED, status=401)
    provider = ScriptedProvider([unauthorized])
    generator = EmbeddingGenerator(provider, RetryPolicy(max_attempts=3, delay_seconds=0.5), sleep=fake_sleep)

    await generator.generate(_batch(), DIM)

    assert provider.calls == 2
    assert sleeps == [0.5]


@pytest.mark.asyncio
async def test_other_failures_are_not_retried(fake_sleep, sleeps: list[float]) -> None:
    provider = AlwaysFailing(EmbeddingTerminalError("bad request", status=400))
    generator = EmbeddingGenerator(provider, sleep=fake_sleep)

    with pytest.raises(EmbeddingTerminalError, match="bad request") as info:
        await generator.generate(_batch(2), DIM)

    assert provider.calls == 1
    assert sleeps == []
    assert info.value.batch_size == 2


@pytest.mark.asyncio
async def test_wrong_vector_length_is_terminal(fake_sleep) -> None:
    generator = EmbeddingGenerator(ScriptedProvider(length=DIM + 1), sleep=fake_sleep)
    with pytest.raises(EmbeddingTerminalError, match="expected 4"):
        await generator.generate(_batch(), DIM)


@pytest.mark.asyncio
async def test_wrong_vector_count_is_terminal(fake_sleep) -> None:
    class Short(EmbeddingProvider):
        async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
            return [[0.0] * dimensions]

    generator = EmbeddingGenerator(Short(), sleep=fake_sleep)
    with pytest.raises(EmbeddingTerminalError, match="1 vectors for 3 texts"):
        await generator.generate(_batch(3), DIM)


@pytest.mark.asyncio
async def test_attempt_returns_explicit_results() -> None:
    batch = _batch(2)

    ok = await EmbeddingGenerator(ScriptedProvider()).attempt(batch, DIM)
    assert isinstance(ok, EmbeddingSuccess)
    assert len(ok.vectors) == 2

    transient = await EmbeddingGenerator(ScriptedProvider([_rate_limited()])).attempt(batch, DIM)
    assert isinstance(transient, TransientFailure)
    assert transient.error.batch_size == 2

    terminal = await EmbeddingGenerator(AlwaysFailing(EmbeddingTerminalError("boom"))).attempt(batch, DIM)
    assert isinstance(terminal, TerminalFailure)


def test_retry_policy_validation() -> None:
    with pytest.raises(ConfigurationError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ConfigurationError):
        RetryPolicy(delay_seconds=-1)


# ── OpenAIEmbeddingProvider ─────────────────────────────────────────────

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


def _status_error(cls: type, status: int) -> Exception:
    return cls("error", response=httpx.Response(status, request=_REQUEST), body=None)


def _provider_raising(error: Exception) -> OpenAIEmbeddingProvider:
    provider = OpenAIEmbeddingProvider("text-embedding-3-small", api_key="sk-test")
    provider._clients[DIM] = MagicMock(aembed_documents=AsyncMock(side_effect=error))
    return provider


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "category", "status"),
    [
        (_status_error(openai.RateLimitError, 429), ProviderErrorCategory.RATE_LIMITED, 429),
        (_status_error(openai.AuthenticationError, 401), ProviderErrorCategory.UNAUTHORIZED, 401),
    ],
)
async def test_openai_transient_errors(error: Exception, category: ProviderErrorCategory, status: int) -> None:
    with pytest.raises(EmbeddingTransientError) as info:
        await _provider_raising(error).embed(["a"], DIM)
    assert info.value.category is category
    assert info.value.status == status


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        _status_error(openai.BadRequestError, 400),
        _status_error(openai.InternalServerError, 500),
        openai.APIConnectionError(request=_REQUEST),
    ],
)
async def test_openai_other_errors_are_terminal(error: Exception) -> None:
    with pytest.raises(EmbeddingTerminalError):
        await _provider_raising(error).embed(["a"], DIM)


@pytest.mark.asyncio
async def test_openai_provider_returns_vectors() -> None:
    provider = OpenAIEmbeddingProvider("text-embedding-3-small", api_key="sk-test")
    provider._clients[DIM] = MagicMock(aembed_documents=AsyncMock(return_value=[[0.1] * DIM]))
    assert await provider.embed(["a"], DIM) == [[0.1] * DIM]


def test_openai_client_per_dimension_without_library_retries() -> None:
    with patch("vector_ingest.ingestion.embedder.OpenAIEmbeddings") as cls:
        provider = OpenAIEmbeddingProvider("m", api_key="k", base_url="http://gateway/v1")
        first = provider._client(256)
        assert provider._client(256) is first
        provider._client(1536)

    assert cls.call_count == 2
    kwargs: dict[str, Any] = cls.call_args_list[0].kwargs
    assert kwargs["dimensions"] == 256
    assert kwargs["max_retries"] == 0
    assert kwargs["base_url"] == "http://gateway/v1"


def test_build_provider_requires_api_key() -> None:
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        build_embedding_provider(Settings(_env_file=None, openai_api_key="", embedding_base_url=""))


def test_build_provider_openai() -> None:
    provider = build_embedding_provider(Settings(_env_file=None, openai_api_key="sk-test"))
    assert isinstance(provider, OpenAIEmbeddingProvider)
    assert provider.model == "text-embedding-3-small"
