"""
Client session controller.

Screens: upload -> setup -> loading -> results -> recommendations,
with recommendations -> results as the only way back and reset to
upload from anywhere. The session is persisted after every change;
the store itself ignores saves while loading.
"""
import logging
import time
from typing import Callable, List, Optional

import aiosqlite

from deckpanel.client.api import DeckpanelClient
from deckpanel.client.history import EvaluationHistory
from deckpanel.client.session import Screen, SessionState, SessionStore
from deckpanel.core.entities import AudienceSelection, SlideContent
from deckpanel.core.errors import ApiError
from deckpanel.core.events import (
    DoneEvent,
    ErrorEvent,
    EvaluationEvent,
    PersonasEvent,
    StreamEvent,
    SummaryEvent,
)

logger = logging.getLogger(__name__)

EventCallback = Callable[[StreamEvent], None]


class RunProgress:
    """Wall-clock tracking for a run in progress."""

    def __init__(self, slow_after: float = 90.0, clock: Callable[[], float] = time.monotonic):
        self.slow_after = slow_after
        self._clock = clock
        self._started: Optional[float] = None
        self._stopped: Optional[float] = None

    def start(self) -> None:
        self._started = self._clock()
        self._stopped = None

    def stop(self) -> None:
        self._stopped = self._clock()

    @property
    def elapsed(self) -> float:
        if self._started is None:
            return 0.0
        end = self._stopped if self._stopped is not None else self._clock()
        return end - self._started

    @property
    def is_slow(self) -> bool:
        return self.elapsed > self.slow_after


class SessionController:
    def __init__(
        self,
        client: DeckpanelClient,
        store: SessionStore,
        *,
        history: Optional[EvaluationHistory] = None,
        slow_after: float = 90.0,
    ):
        self.client = client
        self.store = store
        self.history = history
        self.progress = RunProgress(slow_after)
        self.state = store.load() or SessionState()

    @property
    def screen(self) -> Screen:
        return self.state.screen

    def _go(self, screen: Screen) -> None:
        if screen is not self.state.screen:
            logger.debug(f"Session {self.store.session_key}: {self.state.screen.value} -> {screen.value}")
        self.state.screen = screen
        self.store.save(self.state)

    def _require(self, *screens: Screen) -> None:
        if self.state.screen not in screens:
            allowed = ", ".join(s.value for s in screens)
            raise ValueError(f"Not possible on the {self.state.screen.value} screen (needs {allowed})")

    # ==================== Setup ====================

    def load_deck(self, slide_contents: List[SlideContent], file_name: str = "") -> None:
        if not slide_contents:
            raise ValueError("The deck has no readable slides")
        self.state.clear_results()
        self.state.slide_contents = list(slide_contents)
        self.state.file_name = file_name
        self.state.last_error = None
        self._go(Screen.SETUP)

    def configure(
        self,
        *,
        goal: str,
        audience_selections: List[AudienceSelection],
        audience_context: str = "",
    ) -> None:
        self._require(Screen.SETUP)
        if not goal.strip():
            raise ValueError("A goal is required")
        if not audience_selections:
            raise ValueError("Select at least one audience")
        self.state.goal = goal.strip()
        self.state.audience_selections = list(audience_selections)
        self.state.audience_context = audience_context.strip()
        self.store.save(self.state)

    # ==================== Evaluation ====================

    async def run_evaluation(self, on_event: Optional[EventCallback] = None) -> bool:
        """
        Drive one evaluation stream to its end.

        State is updated as each event arrives. Returns True when the run
        reached results; on error the session goes back to setup with
        `last_error` set.
        """
        self._require(Screen.SETUP)
        if not self.state.goal or not self.state.audience_selections:
            raise ValueError("Configure a goal and audiences before running")

        self.state.clear_results()
        self.state.last_error = None
        self.progress.start()
        self._go(Screen.LOADING)

        try:
            async for event in self.client.stream_evaluation(
                slide_contents=self.state.slide_contents,
                goal=self.state.goal,
                audience_selections=self.state.audience_selections,
                audience_context=self.state.audience_context or None,
            ):
                await self._apply(event)
                if on_event:
                    on_event(event)
        finally:
            self.progress.stop()
            if self.state.screen is Screen.LOADING:
                # stream abandoned before a terminal event
                self.state.last_error = self.state.last_error or "Evaluation was interrupted"
                self._go(Screen.SETUP)

        return self.state.screen is Screen.RESULTS

    async def _apply(self, event: StreamEvent) -> None:
        if isinstance(event, PersonasEvent):
            self.state.personas = list(event.personas)
        elif isinstance(event, EvaluationEvent):
            self.state.evaluations.append(event.evaluation)
        elif isinstance(event, SummaryEvent):
            self.state.overall_summary = event.summary
        elif isinstance(event, DoneEvent):
            logger.info(
                f"Evaluation finished in {self.progress.elapsed:.1f}s "
                f"with {len(self.state.evaluations)} evaluations"
            )
            await self._record_history()
            self._go(Screen.RESULTS)
        elif isinstance(event, ErrorEvent):
            logger.error(f"Evaluation failed: {event.message}")
            self.state.clear_results()
            self.state.last_error = event.message
            self._go(Screen.SETUP)

    async def _record_history(self) -> None:
        if self.history is None:
            return
        try:
            await self.history.init_tables()
            self.state.history_id = await self.history.record(
                file_name=self.state.file_name,
                goal=self.state.goal,
                personas=self.state.personas,
                evaluations=self.state.evaluations,
            )
        except (aiosqlite.Error, OSError) as e:
            logger.warning(f"Could not record evaluation history: {e}")

    # ==================== Recommendations ====================

    async def show_recommendations(self) -> bool:
        """
        Go to the recommendations screen, fetching them only if this
        session has none yet. Returns False if the fetch failed.
        """
        self._require(Screen.RESULTS, Screen.RECOMMENDATIONS)
        if self.state.recommendations:
            self._go(Screen.RECOMMENDATIONS)
            return True
        return await self._fetch_recommendations()

    async def retry_recommendations(self) -> bool:
        """Re-issue the identical request after a failed fetch."""
        self._require(Screen.RECOMMENDATIONS, Screen.RESULTS)
        return await self._fetch_recommendations()

    async def _fetch_recommendations(self) -> bool:
        if not self.state.evaluations:
            raise ValueError("There are no evaluations to build recommendations from")

        self.state.last_error = None
        self.state.clear_recommendations()
        self._go(Screen.RECOMMENDATIONS)

        try:
            batch = await self.client.fetch_recommendations(
                goal=self.state.goal,
                personas=self.state.personas,
                evaluations=self.state.evaluations,
                slide_contents=self.state.slide_contents,
            )
        except ApiError as e:
            logger.error(f"Recommendations failed: {e}")
            self.state.last_error = str(e)
            self.store.save(self.state)
            return False

        self.state.main_advice = batch.main_advice
        self.state.structure_advice = list(batch.structure_advice)
        self.state.recommendations = list(batch.recommendations)
        self.store.save(self.state)

        if self.history is not None and self.state.history_id:
            try:
                await self.history.update_recommendations(self.state.history_id, self.state.recommendations)
            except (aiosqlite.Error, OSError) as e:
                logger.warning(f"Could not update evaluation history: {e}")
        return True

    # ==================== Navigation ====================

    def back(self) -> None:
        self._require(Screen.RECOMMENDATIONS)
        self.state.last_error = None
        self._go(Screen.RESULTS)

    def reset(self) -> None:
        self.state = SessionState()
        self.store.clear()
