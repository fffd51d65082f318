"""
Exception hierarchy shared by server and client.
"""
from typing import Optional


class DeckpanelError(Exception):
    """Base class for all deckpanel errors."""


class UpstreamError(DeckpanelError):
    """
    The completion service failed, timed out, or returned unusable output.
    Fatal to the request that triggered it.
    """


class MalformedCompletionError(UpstreamError):
    """The model answered a JSON request with something that is not a JSON object."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class UnsupportedDocumentError(DeckpanelError):
    """Uploaded file type cannot be parsed."""


class ApiError(DeckpanelError):
    """Client-side view of a failed HTTP request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
