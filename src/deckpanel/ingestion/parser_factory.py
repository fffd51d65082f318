"""
Parser Factory - Picks a document parser from the file extension.
"""
import os
from typing import List

from deckpanel.core.entities import SlideContent
from deckpanel.core.errors import UnsupportedDocumentError
from deckpanel.ingestion.base import DocumentParser
from deckpanel.ingestion.pdf import PdfParser
from deckpanel.ingestion.powerpoint import PowerPointParser

PARSERS = (PowerPointParser, PdfParser)


def create_parser(path: str) -> DocumentParser:
    """
    Create the parser for a deck file.

    Raises:
        UnsupportedDocumentError: If the extension is not .pptx or .pdf
    """
    extension = os.path.splitext(path)[1].lower()
    for parser_cls in PARSERS:
        if extension in parser_cls.extensions:
            return parser_cls()
    raise UnsupportedDocumentError(
        f"Unsupported file type: {extension or '(none)'}. Please provide a .pptx or .pdf file."
    )


def parse_document(path: str) -> List[SlideContent]:
    parser = create_parser(path)
    if not os.path.exists(path):
        raise FileNotFoundError(f"Deck not found: {path}")
    return parser.parse(path)
