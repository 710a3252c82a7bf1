"""Chroma implementation of the persistence sink."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

import chromadb

from vector_ingest.config import settings
from vector_ingest.exceptions import PersistenceError
from vector_ingest.ingestion.models import Chunk, PersistedChunkRecord
from vector_ingest.storage.base import ChunkSinkBase, build_records

logger = logging.getLogger(__name__)


def _record_metadata(record: PersistedChunkRecord) -> dict[str, Any]:
    # Chroma metadata values must be flat str/int/float/bool, never None.
    meta: dict[str, Any] = {"document_uri": record.document_uri, "chunk_id": record.chunk_id}
    if record.page_number is not None:
        meta["page_number"] = record.page_number
    return meta


class ChromaChunkSink(ChunkSinkBase):
    """Chroma-backed chunk store.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    client:
        Pre-built Chroma client (e.g. ``chromadb.EphemeralClient()``);
        overrides *host* / *port*.
    distance_metric:
        Distance function (``cosine`` | ``l2`` | ``ip``).
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        client: Any = None,
        distance_metric: str = "cosine",
    ) -> None:
        super().__init__(collection_name)
        try:
            self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": distance_metric},
            )
        except Exception as exc:
            raise PersistenceError(f"Cannot open Chroma collection '{collection_name}': {exc}") from exc

    async def upsert(
        self,
        document_uri: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[Sequence[float]],
    ) -> None:
        records = build_records(document_uri, chunks, vectors)
        if not records:
            return
        try:
            await asyncio.to_thread(
                self._collection.upsert,
                ids=[r.record_id for r in records],
                embeddings=[r.embedding for r in records],
                documents=[r.text for r in records],
                metadatas=[_record_metadata(r) for r in records],
            )
        except Exception as exc:
            raise PersistenceError(
                f"Chroma upsert of {len(records)} records for '{document_uri}' failed: {exc}"
            ) from exc
        logger.info(
            "Upserted %d records for '%s' into collection '%s'",
            len(records), document_uri, self.collection_name,
        )

    async def get_document_records(self, document_uri: str) -> list[PersistedChunkRecord]:
        """Return every stored record of *document_uri*, ordered by chunk id."""
        try:
            result = await asyncio.to_thread(
                self._collection.get,
                where={"document_uri": document_uri},
                include=["embeddings", "documents", "metadatas"],
            )
        except Exception as exc:
            raise PersistenceError(f"Chroma read for '{document_uri}' failed: {exc}") from exc

        records = [
            PersistedChunkRecord(
                document_uri=meta["document_uri"],
                chunk_id=meta["chunk_id"],
                embedding=[float(x) for x in embedding],
                text=text or "",
                page_number=meta.get("page_number"),
            )
            for embedding, text, meta in zip(result["embeddings"], result["documents"], result["metadatas"])
        ]
        return sorted(records, key=lambda r: r.chunk_id)

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
