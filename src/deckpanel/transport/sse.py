"""
Event-stream framing for pipeline events.

Each event is written as

    event: <name>
    data: <json>
    <blank line>

Only this module knows about the text framing; producers and consumers
deal in typed events from deckpanel.core.events.
"""
import json
import logging
from typing import AsyncIterable, AsyncIterator, List, Optional

from pydantic import ValidationError

from deckpanel.core.events import StreamEvent, event_from_payload

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/event-stream"

STREAM_HEADERS = {
    "Content-Type": CONTENT_TYPE,
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_event(event: StreamEvent) -> bytes:
    data = json.dumps(event.payload(), ensure_ascii=False)
    return f"event: {event.type.value}\ndata: {data}\n\n".encode("utf-8")


class EventDecoder:
    """
    Incremental decoder. Feed it lines (without the trailing newline);
    it returns an event whenever a blank line closes a complete record.
    Malformed records are logged and skipped.
    """

    def __init__(self):
        self._event: Optional[str] = None
        self._data: List[str] = []

    def feed(self, line: str) -> Optional[StreamEvent]:
        line = line.rstrip("\r")

        if not line:
            return self._flush()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        return None

    def _flush(self) -> Optional[StreamEvent]:
        name, data = self._event, self._data
        self._event, self._data = None, []

        if not name or not data:
            return None

        try:
            return event_from_payload(name, json.loads("\n".join(data)))
        except (ValueError, TypeError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(f"Skipping malformed '{name}' event: {e}")
            return None


async def iter_events(lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
    """
    Decode an async stream of text lines into typed events.
    """
    decoder = EventDecoder()
    async for line in lines:
        event = decoder.feed(line)
        if event is not None:
            yield event

    # stream ended without a trailing blank line
    event = decoder.feed("")
    if event is not None:
        yield event
