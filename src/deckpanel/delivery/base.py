"""
Module to contain base class for report delivery channels
"""
from abc import ABC, abstractmethod
from typing import List

from deckpanel.client.session import SessionState


class DeliveryChannel(ABC):
    """
    Base interface for all report delivery channels.
    """

    name: str

    @abstractmethod
    async def deliver(self, *, stem: str, state: SessionState) -> List[str]:
        """
        Deliver the report for a finished session and return where it went.
        Must raise exceptions on failure (handled upstream).
        """
        raise NotImplementedError
