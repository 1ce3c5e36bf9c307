"""PDF text extraction over an in-memory buffer."""

from __future__ import annotations

import io
import logging

from pypdf import PdfReader

from guideline_ingest.errors import ExtractionError
from guideline_ingest.models import Document, ExtractedText

logger = logging.getLogger(__name__)


class PdfTextExtractor:
    """Decode a PDF :class:`Document` into plain text with ``pypdf``."""

    page_separator = "\n\n"

    def extract(self, document: Document) -> ExtractedText:
        try:
            reader = PdfReader(io.BytesIO(document.content))
            pages = [page.extract_text() or "" for page in reader.pages]
        except Exception as exc:
            raise ExtractionError(f"Failed to parse PDF from {document.resolved_url}: {exc}") from exc

        text = self.page_separator.join(p for p in pages if p).strip()
        logger.info(
            "PDF parsed successfully: %d chars, %d pages (%s)",
            len(text),
            len(pages),
            document.resolved_url,
        )
        if not text:
            logger.warning("PDF from %s parsed but contains no text", document.resolved_url)
        return ExtractedText(text=text, page_count=len(pages))
