"""Unit tests for record building and the Chroma sink."""

from __future__ import annotations

from unittest.mock import MagicMock
from uuid import uuid4

import chromadb
import pytest

from vector_ingest.exceptions import PersistenceError
from vector_ingest.ingestion.models import Chunk, PersistedChunkRecord
from vector_ingest.storage.base import build_records
from vector_ingest.storage.chroma_store import ChromaChunkSink

URI = "file:///docs/handbook.pdf"


def _chunks() -> list[Chunk]:
    return [
        Chunk(text="first chunk", sequence_number=0, page_number=1),
        Chunk(text="second chunk", sequence_number=1),
    ]


def _vectors() -> list[list[float]]:
    return [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]


@pytest.fixture()
def sink() -> ChromaChunkSink:
    return ChromaChunkSink(f"test-{uuid4().hex[:8]}", client=chromadb.EphemeralClient())


# ── build_records ───────────────────────────────────────────────────────


def test_build_records_pairs_chunks_and_vectors() -> None:
    records = build_records(URI, _chunks(), _vectors())
    assert [(r.chunk_id, r.text, r.page_number) for r in records] == [
        (0, "first chunk", 1),
        (1, "second chunk", None),
    ]
    assert records[1].embedding == [0.0, 1.0, 0.0]


def test_build_records_rejects_length_mismatch() -> None:
    with pytest.raises(PersistenceError):
        build_records(URI, _chunks(), _vectors()[:1])


def test_record_id_is_deterministic_per_document_and_chunk() -> None:
    a = PersistedChunkRecord(document_uri=URI, chunk_id=3, embedding=[0.0], text="x")
    b = PersistedChunkRecord(document_uri=URI, chunk_id=3, embedding=[1.0], text="y")
    other = PersistedChunkRecord(document_uri="file:///other.pdf", chunk_id=3, embedding=[0.0], text="x")
    assert a.record_id == b.record_id
    assert a.record_id != other.record_id
    assert a.record_id.endswith("_3")


# ── ChromaChunkSink ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_upsert_and_read_back(sink: ChromaChunkSink) -> None:
    await sink.upsert(URI, _chunks(), _vectors())

    records = await sink.get_document_records(URI)

    assert [r.chunk_id for r in records] == [0, 1]
    assert records[0].text == "first chunk"
    assert records[0].page_number == 1
    assert records[1].page_number is None
    assert records[0].embedding == pytest.approx([1.0, 0.0, 0.0])


@pytest.mark.asyncio
async def test_upserting_twice_yields_one_logical_record(sink: ChromaChunkSink) -> None:
    await sink.upsert(URI, _chunks(), _vectors())
    await sink.upsert(URI, _chunks(), _vectors())

    assert len(await sink.get_document_records(URI)) == 2


@pytest.mark.asyncio
async def test_documents_do_not_interfere(sink: ChromaChunkSink) -> None:
    await sink.upsert(URI, _chunks(), _vectors())
    await sink.upsert("file:///docs/other.md", _chunks()[:1], _vectors()[:1])

    assert len(await sink.get_document_records(URI)) == 2
    assert len(await sink.get_document_records("file:///docs/other.md")) == 1


@pytest.mark.asyncio
async def test_backend_errors_become_persistence_errors() -> None:
    client = MagicMock()
    client.get_or_create_collection.return_value.upsert.side_effect = RuntimeError("disk full")
    sink = ChromaChunkSink("broken", client=client)

    with pytest.raises(PersistenceError, match="disk full"):
        await sink.upsert(URI, _chunks(), _vectors())


def test_health_check() -> None:
    client = MagicMock()
    client.heartbeat.side_effect = ConnectionError("down")
    assert ChromaChunkSink("health", client=client).health_check() is False
    assert ChromaChunkSink("health", client=chromadb.EphemeralClient()).health_check() is True


def test_unreachable_backend_is_persistence_error() -> None:
    client = MagicMock()
    client.get_or_create_collection.side_effect = ConnectionError("connection refused")
    with pytest.raises(PersistenceError, match="connection refused"):
        ChromaChunkSink("documents", client=client)


@pytest.mark.asyncio
async def test_delete_document_is_not_supported_by_default(sink: ChromaChunkSink) -> None:
    with pytest.raises(NotImplementedError):
        await sink.delete_document(URI)
