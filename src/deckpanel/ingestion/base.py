"""
Base classes for Ingestion
"""
from abc import ABC, abstractmethod
from typing import List

from deckpanel.core.entities import SlideContent


class DocumentParser(ABC):
    """
    Base interface for deck parsers.
    """

    extensions: tuple = ()

    @abstractmethod
    def parse(self, path: str) -> List[SlideContent]:
        """
        Extract the text of each page, numbered from 1.
        Pages without text are left out.
        """
        raise NotImplementedError
