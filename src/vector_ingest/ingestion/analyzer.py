"""Document analyzers — turn binary documents into a structured analysis.

* :class:`PdfTextAnalyzer` — text-layer PDFs via ``pypdf`` (pages → lines, words).
* :class:`TesseractAnalyzer` — scanned images via Tesseract OCR
  (pages → lines, words, plus paragraphs).
* :class:`AutoAnalyzer` — picks one of the above from the file signature.

Analysis is CPU bound, so every analyzer runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import io
import logging
from abc import ABC, abstractmethod
from collections import defaultdict

import pytesseract
from PIL import Image, ImageSequence, UnidentifiedImageError
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from vector_ingest.exceptions import AnalyzerError
from vector_ingest.ingestion.models import Line, Page, Paragraph, StructuredAnalysis, Word

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF"


class DocumentAnalyzer(ABC):
    """Opaque, latency-bearing OCR / layout step."""

    @abstractmethod
    async def analyze(self, data: bytes) -> StructuredAnalysis:
        """Return the structured analysis of *data*, raising ``AnalyzerError``."""
        ...


class PdfTextAnalyzer(DocumentAnalyzer):
    """Extract the embedded text layer of a PDF."""

    async def analyze(self, data: bytes) -> StructuredAnalysis:
        return await asyncio.to_thread(self._analyze, data)

    def _analyze(self, data: bytes) -> StructuredAnalysis:
        try:
            reader = PdfReader(io.BytesIO(data))
            texts = [page.extract_text() or "" for page in reader.pages]
        except (PyPdfError, ValueError) as exc:
            raise AnalyzerError(f"Failed to parse PDF: {exc}") from exc

        pages = tuple(
            Page(
                page_number=number,
                lines=tuple(Line(content=ln) for ln in text.splitlines() if ln.strip()),
                words=tuple(Word(content=w) for w in text.split()),
            )
            for number, text in enumerate(texts, 1)
        )
        logger.info("Extracted %d pages from PDF text layer", len(pages))
        return StructuredAnalysis(pages=pages, content="\n".join(texts))


class TesseractAnalyzer(DocumentAnalyzer):
    """OCR raster images (one page per frame) with Tesseract.

    Parameters
    ----------
    lang:
        Tesseract language code(s), e.g. ``"eng"`` or ``"eng+deu"``.
    tesseract_cmd:
        Optional path to the ``tesseract`` binary.
    """

    def __init__(self, lang: str = "eng", tesseract_cmd: str | None = None) -> None:
        self.lang = lang
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    async def analyze(self, data: bytes) -> StructuredAnalysis:
        return await asyncio.to_thread(self._analyze, data)

    def _analyze(self, data: bytes) -> StructuredAnalysis:
        try:
            with Image.open(io.BytesIO(data)) as image:
                frames = [
                    self._ocr_frame(frame.convert("RGB"), number)
                    for number, frame in enumerate(ImageSequence.Iterator(image), 1)
                ]
        except (UnidentifiedImageError, pytesseract.TesseractError, OSError) as exc:
            raise AnalyzerError(f"OCR failed: {exc}") from exc

        pages = tuple(page for page, _ in frames)
        paragraphs = tuple(p for _, paras in frames for p in paras)
        content = "\n".join(line.content for page in pages for line in page.lines)
        logger.info("OCR produced %d pages, %d paragraphs", len(pages), len(paragraphs))
        return StructuredAnalysis(pages=pages, paragraphs=paragraphs, content=content)

    def _ocr_frame(self, image: Image.Image, page_number: int) -> tuple[Page, list[Paragraph]]:
        data = pytesseract.image_to_data(image, lang=self.lang, output_type=pytesseract.Output.DICT)

        words: list[Word] = []
        lines: dict[tuple[int, int, int], list[str]] = defaultdict(list)
        paras: dict[tuple[int, int], list[str]] = defaultdict(list)
        for i, text in enumerate(data["text"]):
            text = (text or "").strip()
            if not text:
                continue
            block, par, line = data["block_num"][i], data["par_num"][i], data["line_num"][i]
            words.append(Word(content=text))
            lines[(block, par, line)].append(text)
            paras[(block, par)].append(text)

        page = Page(
            page_number=page_number,
            lines=tuple(Line(content=" ".join(ws)) for ws in lines.values()),
            words=tuple(words),
        )
        paragraphs = [Paragraph(content=" ".join(ws), page_number=page_number) for ws in paras.values()]
        return page, paragraphs


class AutoAnalyzer(DocumentAnalyzer):
    """Route PDFs to :class:`PdfTextAnalyzer` and everything else to OCR."""

    def __init__(
        self,
        pdf: DocumentAnalyzer | None = None,
        image: DocumentAnalyzer | None = None,
    ) -> None:
        self._pdf = pdf or PdfTextAnalyzer()
        self._image = image or TesseractAnalyzer()

    async def analyze(self, data: bytes) -> StructuredAnalysis:
        if data.startswith(PDF_SIGNATURE):
            return await self._pdf.analyze(data)
        return await self._image.analyze(data)
