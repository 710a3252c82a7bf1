"""Group chunks into fixed-size batches for the embedding provider."""

from __future__ import annotations

from typing import Sequence

from vector_ingest.config import DEFAULT_MAX_BATCH_SIZE
from vector_ingest.exceptions import ConfigurationError
from vector_ingest.ingestion.models import Batch, Chunk


def batch_chunks(chunks: Sequence[Chunk], max_batch_size: int = DEFAULT_MAX_BATCH_SIZE) -> list[Batch]:
    """Partition *chunks* into consecutive batches of at most *max_batch_size*.

    Batch ``i`` holds ``chunks[i * max_batch_size : (i + 1) * max_batch_size]``;
    only the last batch may be smaller, and no batch is ever empty.
    """
    if max_batch_size < 1:
        raise ConfigurationError(f"max_batch_size must be >= 1, got {max_batch_size}")
    return [
        Batch(index=i, chunks=tuple(chunks[start : start + max_batch_size]))
        for i, start in enumerate(range(0, len(chunks), max_batch_size))
    ]
