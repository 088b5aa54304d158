from __future__ import annotations

import logging

from lectern.core.errors import ParseError
from lectern.domain.models.chunk import PageText, ParsedDocument

logger = logging.getLogger(__name__)


class PdfParser:
    """Extract the embedded text layer of a PDF, one entry per non-blank page."""

    def parse(self, data: bytes) -> ParsedDocument:
        if not data:
            raise ParseError("PDF content is empty.")
        fitz = self._load_pymupdf()

        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ParseError(f"Unable to open PDF: {exc}") from exc

        try:
            if doc.needs_pass:
                raise ParseError("PDF is password-protected.")
            try:
                total_pages = int(doc.page_count)
            except Exception as exc:
                raise ParseError(f"Unable to read PDF structure: {exc}") from exc
            if total_pages <= 0:
                raise ParseError("PDF has no pages.")

            pages: list[PageText] = []
            for page_index in range(total_pages):
                try:
                    raw = doc.load_page(page_index).get_text("text")
                except Exception as exc:
                    raise ParseError(f"Unable to read page {page_index + 1}: {exc}") from exc
                text = (raw or "").strip()
                # Image-only pages have no text layer; they still count toward total_pages.
                if text:
                    pages.append(PageText(page_number=page_index + 1, text=text))
        finally:
            doc.close()

        logger.debug("Parsed PDF: %d/%d pages carry text", len(pages), total_pages)
        return ParsedDocument(pages=pages, total_pages=total_pages)

    @staticmethod
    def _load_pymupdf():
        try:
            import fitz  # PyMuPDF
        except ImportError as exc:  # pragma: no cover - dependency guard
            raise RuntimeError(
                "PDF parsing dependency is missing. Install with `pip install -e .`."
            ) from exc
        return fitz
