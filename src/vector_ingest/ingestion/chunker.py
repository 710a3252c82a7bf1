"""Text chunking strategies.

Documents are first broken into *units* (lines, paragraphs, synthesized
word runs, or a markdown block) and consecutive units are then merged into
chunks that stay within an estimated-token budget.  A unit is never split:
one that alone exceeds the budget becomes a chunk of its own.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Iterator, Sequence

from vector_ingest.config import DEFAULT_MAX_TOKENS_PER_CHUNK, DEFAULT_OVERLAP_TOKENS
from vector_ingest.exceptions import ConfigurationError
from vector_ingest.ingestion.models import Chunk, Document, StructuredAnalysis
from vector_ingest.ingestion.tokens import TokenCounter, estimate_tokens, tail_tokens

logger = logging.getLogger(__name__)

# Word-run size used when an analysis only has words.
MAX_WORDS_PER_UNIT = 40


@dataclass(frozen=True)
class _Unit:
    text: str
    page_number: int | None = None


class UnitSource(str, Enum):
    """Which part of a structured analysis feeds the chunker."""

    LINES = "lines"
    PARAGRAPHS = "paragraphs"
    WORDS = "words"
    CONTENT = "content"


# -- unit producers -----------------------------------------------------------


def _line_units(analysis: StructuredAnalysis) -> Iterator[_Unit]:
    for page in analysis.pages:
        for line in page.lines:
            yield _Unit(line.content, page.page_number)


def _paragraph_units(analysis: StructuredAnalysis) -> Iterator[_Unit]:
    for para in analysis.paragraphs:
        yield _Unit(para.content, para.page_number)


def _word_units(analysis: StructuredAnalysis) -> Iterator[_Unit]:
    words: list[str] = []
    page_number: int | None = None
    for page in analysis.pages:
        for word in page.words:
            if not words:
                page_number = page.page_number
            words.append(word.content)
            if len(words) > MAX_WORDS_PER_UNIT:
                yield _Unit(" ".join(words), page_number)
                words = []
    if words:
        yield _Unit(" ".join(words), page_number)


def _content_units(analysis: StructuredAnalysis) -> Iterator[_Unit]:
    yield _Unit(analysis.content)


# Priority order: the first predicate that holds picks the unit source.
_STRATEGIES: tuple[
    tuple[UnitSource, Callable[[StructuredAnalysis], bool], Callable[[StructuredAnalysis], Iterator[_Unit]]],
    ...,
] = (
    (UnitSource.LINES, lambda a: bool(a.pages) and bool(a.pages[0].lines), _line_units),
    (UnitSource.PARAGRAPHS, lambda a: bool(a.paragraphs), _paragraph_units),
    (UnitSource.WORDS, lambda a: bool(a.pages) and bool(a.pages[0].words), _word_units),
    (UnitSource.CONTENT, lambda a: True, _content_units),
)


def select_unit_source(analysis: StructuredAnalysis) -> UnitSource:
    """Return the unit source that :func:`chunk_analysis` will use for *analysis*."""
    return next(source for source, applies, _ in _STRATEGIES if applies(analysis))


# -- markdown -----------------------------------------------------------------

_FENCE_OPEN = re.compile(r"^ {0,3}(`{3,}|~{3,})")


def _closes_fence(line: str, marker: str) -> bool:
    pattern = rf" {{0,3}}{re.escape(marker[0])}{{{len(marker)},}}\s*"
    return re.fullmatch(pattern, line) is not None


def _is_table_row(line: str) -> bool:
    return line.lstrip().startswith("|")


def _markdown_units(lines: Sequence[str]) -> Iterator[_Unit]:
    """Yield one unit per line, keeping fenced code blocks and tables whole."""
    i = 0
    while i < len(lines):
        line = lines[i]
        fence = _FENCE_OPEN.match(line)
        if fence:
            marker = fence.group(1)
            block = [line]
            i += 1
            while i < len(lines):
                block.append(lines[i])
                i += 1
                if _closes_fence(block[-1], marker):
                    break
            yield _Unit("\n".join(block))
            continue
        if _is_table_row(line):
            block = []
            while i < len(lines) and _is_table_row(lines[i]):
                block.append(lines[i])
                i += 1
            yield _Unit("\n".join(block))
            continue
        yield _Unit(line)
        i += 1


# -- windowing ----------------------------------------------------------------


def _check_budget(max_tokens_per_chunk: int, overlap_tokens: int) -> None:
    if max_tokens_per_chunk < 1:
        raise ConfigurationError(f"max_tokens_per_chunk must be >= 1, got {max_tokens_per_chunk}")
    if overlap_tokens < 0:
        raise ConfigurationError(f"overlap_tokens must be >= 0, got {overlap_tokens}")
    if overlap_tokens >= max_tokens_per_chunk:
        raise ConfigurationError(
            f"overlap_tokens ({overlap_tokens}) must be < max_tokens_per_chunk ({max_tokens_per_chunk})"
        )


def _overlap_prefix(
    previous: str,
    unit_text: str,
    max_tokens_per_chunk: int,
    overlap_tokens: int,
    token_counter: TokenCounter,
) -> str:
    # The prefix never pushes the next chunk past the budget.
    budget = min(overlap_tokens, max_tokens_per_chunk - token_counter(unit_text))
    prefix = tail_tokens(previous, budget, token_counter)
    while prefix and token_counter(f"{prefix}\n{unit_text}") > max_tokens_per_chunk:
        _, _, prefix = prefix.partition(" ")
    return prefix


def _window(
    units: Iterable[_Unit],
    max_tokens_per_chunk: int,
    overlap_tokens: int,
    token_counter: TokenCounter,
) -> list[Chunk]:
    chunks: list[Chunk] = []
    parts: list[str] = []
    page_number: int | None = None
    has_unit = False  # current chunk holds more than an overlap prefix

    for unit in units:
        if not unit.text.strip():
            continue

        if has_unit and token_counter("\n".join([*parts, unit.text])) > max_tokens_per_chunk:
            text = "\n".join(parts)
            chunks.append(Chunk(text=text, sequence_number=len(chunks), page_number=page_number))
            prefix = _overlap_prefix(text, unit.text, max_tokens_per_chunk, overlap_tokens, token_counter)
            parts = [prefix] if prefix else []
            has_unit = False

        if not has_unit:
            page_number = unit.page_number
        parts.append(unit.text)
        has_unit = True

    if has_unit:
        chunks.append(Chunk(text="\n".join(parts), sequence_number=len(chunks), page_number=page_number))
    return chunks


# -- public API ---------------------------------------------------------------


def chunk_text_lines(
    lines: Sequence[str],
    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    *,
    token_counter: TokenCounter = estimate_tokens,
) -> list[Chunk]:
    """Chunk plain-text *lines*; each line is one unit."""
    _check_budget(max_tokens_per_chunk, overlap_tokens)
    return _window((_Unit(line) for line in lines), max_tokens_per_chunk, overlap_tokens, token_counter)


def chunk_markdown_lines(
    lines: Sequence[str],
    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    *,
    token_counter: TokenCounter = estimate_tokens,
) -> list[Chunk]:
    """Chunk markdown *lines* without splitting fenced code blocks or tables."""
    _check_budget(max_tokens_per_chunk, overlap_tokens)
    return _window(_markdown_units(lines), max_tokens_per_chunk, overlap_tokens, token_counter)


def chunk_analysis(
    analysis: StructuredAnalysis,
    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    *,
    token_counter: TokenCounter = estimate_tokens,
) -> list[Chunk]:
    """Chunk an analyzer result.

    The unit source is the first applicable of: page lines, paragraphs,
    word runs of the pages, and finally the full content string.
    """
    _check_budget(max_tokens_per_chunk, overlap_tokens)
    source, _, produce = next(s for s in _STRATEGIES if s[1](analysis))
    logger.debug("Chunking analysis using %s units", source.value)
    return _window(produce(analysis), max_tokens_per_chunk, overlap_tokens, token_counter)


def extract_chunks(
    document: Document,
    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    *,
    token_counter: TokenCounter = estimate_tokens,
) -> list[Chunk]:
    """Split *document* into ordered chunks numbered from 0.

    Parameters
    ----------
    document:
        Document whose content is either raw text lines or an analysis.
    max_tokens_per_chunk:
        Estimated-token budget per chunk.
    overlap_tokens:
        Tokens copied from the tail of each chunk into the next one.
    token_counter:
        Token estimator; defaults to a word count.

    Returns
    -------
    list[Chunk]
        Chunks in emission order; empty for an empty document.
    """
    content = document.content
    if content.kind == "analysis":
        chunks = chunk_analysis(content.analysis, max_tokens_per_chunk, overlap_tokens, token_counter=token_counter)
    elif content.syntax == "markdown":
        chunks = chunk_markdown_lines(content.lines, max_tokens_per_chunk, overlap_tokens, token_counter=token_counter)
    else:
        chunks = chunk_text_lines(content.lines, max_tokens_per_chunk, overlap_tokens, token_counter=token_counter)
    logger.info("Extracted %d chunks from '%s'", len(chunks), document.uri)
    return chunks
