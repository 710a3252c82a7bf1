"""
Storage — persistence sinks for embedded chunks.

Public surface
--------------
- :class:`ChunkSinkBase` — abstract backend (subclass for other databases).
- :class:`ChromaChunkSink` — default Chroma backend.
- :func:`build_records` — pair chunks with their vectors.
"""

from vector_ingest.storage.base import ChunkSinkBase, build_records

__all__ = [
    "ChromaChunkSink",
    "ChunkSinkBase",
    "build_records",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaChunkSink to avoid pulling in chromadb at import time."""
    if name == "ChromaChunkSink":
        from vector_ingest.storage.chroma_store import ChromaChunkSink

        return ChromaChunkSink
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
