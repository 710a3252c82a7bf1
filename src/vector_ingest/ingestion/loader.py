"""Content sources — read a document's raw lines or bytes by URI."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import unquote, urlparse

from vector_ingest.exceptions import ContentReadError

logger = logging.getLogger(__name__)

PLAIN_TEXT_SUFFIXES = frozenset({".txt"})
MARKDOWN_SUFFIXES = frozenset({".md", ".markdown"})


class ContentSource(ABC):
    """Where documents come from.  Only read-to-completion is required."""

    @abstractmethod
    async def exists(self, uri: str) -> bool:
        """Return ``True`` when *uri* still refers to a readable document."""
        ...

    @abstractmethod
    async def read_lines(self, uri: str) -> list[str]:
        """Return the document's text as ordered lines (no line terminators)."""
        ...

    @abstractmethod
    async def read_bytes(self, uri: str) -> bytes:
        """Return the document's raw binary content."""
        ...


class LocalFileSource(ContentSource):
    """Read documents from the local filesystem.

    Parameters
    ----------
    root:
        Optional directory that relative paths are resolved against.

    Both plain paths and ``file://`` URIs are accepted.  Blocking I/O runs
    in a worker thread.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root) if root is not None else None

    def resolve(self, uri: str) -> Path:
        parsed = urlparse(uri)
        path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(uri)
        if self.root is not None and not path.is_absolute():
            path = self.root / path
        return path

    async def exists(self, uri: str) -> bool:
        return await asyncio.to_thread(self.resolve(uri).is_file)

    async def read_lines(self, uri: str) -> list[str]:
        path = self.resolve(uri)
        try:
            # utf-8-sig drops a leading BOM when present.
            text = await asyncio.to_thread(path.read_text, encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as exc:
            raise ContentReadError(f"Failed to read '{uri}': {exc}") from exc
        lines = text.splitlines()
        logger.debug("Read %d lines from %s", len(lines), path)
        return lines

    async def read_bytes(self, uri: str) -> bytes:
        path = self.resolve(uri)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise ContentReadError(f"Failed to read '{uri}': {exc}") from exc
        logger.debug("Read %d bytes from %s", len(data), path)
        return data


def content_syntax(uri: str) -> str | None:
    """Return ``"plain"`` / ``"markdown"`` for text documents, ``None`` for binaries."""
    suffix = Path(urlparse(uri).path or uri).suffix.lower()
    if suffix in PLAIN_TEXT_SUFFIXES:
        return "plain"
    if suffix in MARKDOWN_SUFFIXES:
        return "markdown"
    return None
