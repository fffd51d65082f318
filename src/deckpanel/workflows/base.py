"""
Contains base class for streaming pipelines
"""
from abc import ABC, abstractmethod
from typing import AsyncIterator

from deckpanel.core.events import StreamEvent


class StreamingPipeline(ABC):
    """
    Produces a sequence of typed events for one run.
    The wire encoding is up to the caller.
    """

    name: str

    @abstractmethod
    def run(self) -> AsyncIterator[StreamEvent]:
        """
        Execute the pipeline, yielding events as they become available.
        Must end with exactly one terminal event (done or error) and
        never raise for upstream failures.
        """
        raise NotImplementedError
