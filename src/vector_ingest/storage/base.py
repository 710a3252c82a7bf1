"""Abstract base class for persistence sinks.

Adding a new backend (Azure SQL, Cosmos DB, pgvector …) only requires
subclassing :class:`ChunkSinkBase` and implementing the two abstract
methods; :meth:`ChunkSinkBase.delete_document` is optional.  The
orchestrator is backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from vector_ingest.exceptions import PersistenceError
from vector_ingest.ingestion.models import Chunk, PersistedChunkRecord


def build_records(
    document_uri: str,
    chunks: Sequence[Chunk],
    vectors: Sequence[Sequence[float]],
) -> list[PersistedChunkRecord]:
    """Pair *chunks* with *vectors* index by index."""
    if len(chunks) != len(vectors):
        raise PersistenceError(f"Got {len(vectors)} vectors for {len(chunks)} chunks of '{document_uri}'")
    return [
        PersistedChunkRecord(
            document_uri=document_uri,
            chunk_id=chunk.sequence_number,
            embedding=list(vector),
            text=chunk.text,
            page_number=chunk.page_number,
        )
        for chunk, vector in zip(chunks, vectors)
    ]


class ChunkSinkBase(ABC):
    """Backend-agnostic persistence interface.

    Implementations must upsert by ``(document_uri, chunk_id)`` and tolerate
    concurrent callers working on independent batches or documents.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / table / container.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    @abstractmethod
    async def upsert(
        self,
        document_uri: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[Sequence[float]],
    ) -> None:
        """Insert or overwrite one record per chunk.

        Raises
        ------
        PersistenceError
            When the backend rejects the write.
        """
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    async def delete_document(self, document_uri: str) -> None:
        """Remove every record of *document_uri*.

        Delete events are only acknowledged by the orchestrator today;
        backends that support removal override this.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support deleting documents")
