"""Document → chunk → embedding → vector store ingestion pipeline."""

__version__ = "0.1.0"
