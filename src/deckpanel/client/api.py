"""
HTTP client for the deckpanel API.
"""
import logging
from typing import AsyncIterator, List, Optional

import httpx
from pydantic import ValidationError

from deckpanel.core.audiences import AudienceSegment
from deckpanel.core.entities import (
    AudienceSelection,
    Evaluation,
    Persona,
    RecommendationBatch,
    SlideContent,
)
from deckpanel.core.errors import ApiError
from deckpanel.core.events import ErrorEvent, StreamEvent, is_terminal
from deckpanel.transport.sse import iter_events

logger = logging.getLogger(__name__)


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}"


class DeckpanelClient:
    """
    Async client over httpx.

    Pass `transport` to talk to an in-process app (httpx.ASGITransport).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DeckpanelClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def stream_evaluation(
        self,
        *,
        slide_contents: List[SlideContent],
        goal: str,
        audience_selections: List[AudienceSelection],
        audience_context: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Start an evaluation and yield events as the server sends them.

        Request failures are reported as an ErrorEvent rather than raised,
        so callers handle every way a run can end in one place.
        """
        body = {
            "slideContents": [s.to_wire() for s in slide_contents],
            "goal": goal,
            "audienceSelections": [a.to_wire() for a in audience_selections],
        }
        if audience_context:
            body["audienceContext"] = audience_context

        try:
            async with self._client.stream("POST", "/api/evaluate", json=body) as response:
                if response.status_code >= 400:
                    await response.aread()
                    yield ErrorEvent(message=_error_text(response))
                    return

                async for event in iter_events(response.aiter_lines()):
                    yield event
                    if is_terminal(event):
                        return
        except httpx.HTTPError as e:
            logger.error(f"Evaluation stream failed: {e}")
            yield ErrorEvent(message=f"Connection to {self.base_url} failed: {e}")
            return

        yield ErrorEvent(message="Evaluation stream ended unexpectedly")

    async def fetch_recommendations(
        self,
        *,
        goal: str,
        personas: List[Persona],
        evaluations: List[Evaluation],
        slide_contents: List[SlideContent],
    ) -> RecommendationBatch:
        body = {
            "goal": goal,
            "personas": [p.to_wire() for p in personas],
            "evaluations": [e.to_wire() for e in evaluations],
            "slideContents": [s.to_wire() for s in slide_contents],
        }
        try:
            response = await self._client.post("/api/recommendations", json=body)
        except httpx.HTTPError as e:
            raise ApiError(f"Connection to {self.base_url} failed: {e}") from e

        if response.status_code >= 400:
            raise ApiError(_error_text(response), status_code=response.status_code)

        try:
            return RecommendationBatch.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ApiError(f"Unexpected recommendations response: {e}", status_code=response.status_code) from e

    async def list_audiences(self) -> List[AudienceSegment]:
        try:
            response = await self._client.get("/api/audiences")
        except httpx.HTTPError as e:
            raise ApiError(f"Connection to {self.base_url} failed: {e}") from e
        if response.status_code >= 400:
            raise ApiError(_error_text(response), status_code=response.status_code)

        return [
            AudienceSegment(
                id=item["id"],
                label=item["label"],
                evidence_expectations=item.get("evidenceExpectations", ""),
                communication_style=item.get("communicationStyle", ""),
                singular=bool(item.get("singular", False)),
            )
            for item in response.json().get("audiences", [])
        ]
