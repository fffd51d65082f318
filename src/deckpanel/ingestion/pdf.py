import logging
import re
from typing import List

import fitz  # PyMuPDF

from deckpanel.core.entities import SlideContent
from deckpanel.ingestion.base import DocumentParser

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class PdfParser(DocumentParser):
    """
    PDF exports of a deck via PyMuPDF, one page per slide.
    """

    extensions = (".pdf",)

    def parse(self, path: str) -> List[SlideContent]:
        slides: List[SlideContent] = []

        with fitz.open(path) as doc:
            for page_idx, page in enumerate(doc):
                text = _WHITESPACE.sub(" ", page.get_text("text")).strip()
                if text:
                    slides.append(SlideContent(slide_number=page_idx + 1, text=text))

        logger.info(f"Parsed {len(slides)} pages from {path}")
        return slides
