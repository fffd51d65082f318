import logging
from typing import List

from pptx import Presentation

from deckpanel.core.entities import SlideContent
from deckpanel.ingestion.base import DocumentParser

logger = logging.getLogger(__name__)


def _shape_lines(shape) -> List[str]:
    if shape.has_text_frame:
        lines = []
        for paragraph in shape.text_frame.paragraphs:
            text = "".join(run.text for run in paragraph.runs).strip()
            if text:
                lines.append(text)
        return lines

    # one line per table row, cells in column order
    if shape.has_table:
        lines = []
        for row in shape.table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                lines.append(" | ".join(c for c in cells if c))
        return lines

    # grouped shapes carry their text frames one level down
    if hasattr(shape, "shapes"):
        lines = []
        for child in shape.shapes:
            lines.extend(_shape_lines(child))
        return lines

    return []


class PowerPointParser(DocumentParser):
    """
    .pptx decks via python-pptx: one paragraph per line, speaker notes kept.
    """

    extensions = (".pptx",)

    def parse(self, path: str) -> List[SlideContent]:
        presentation = Presentation(path)
        slides: List[SlideContent] = []

        for number, slide in enumerate(presentation.slides, start=1):
            lines = []
            for shape in slide.shapes:
                lines.extend(_shape_lines(shape))
            text = "\n".join(lines).strip()
            if not text:
                logger.debug(f"Skipping slide {number} of {path}: no text")
                continue

            notes = None
            if slide.has_notes_slide:
                notes = slide.notes_slide.notes_text_frame.text.strip() or None

            slides.append(SlideContent(slide_number=number, text=text, notes=notes))

        logger.info(f"Parsed {len(slides)} slides from {path}")
        return slides
