"""
Client session state and its per-session JSON store.
"""
import logging
import re
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from deckpanel.core.entities import (
    AudienceSelection,
    Evaluation,
    OverallSummary,
    Persona,
    Recommendation,
    SlideContent,
    StructureAdvice,
)

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class Screen(str, Enum):
    UPLOAD = "upload"
    SETUP = "setup"
    LOADING = "loading"
    RESULTS = "results"
    RECOMMENDATIONS = "recommendations"


class SessionState(BaseModel):
    """
    Everything needed to resume a session mid-flow.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    screen: Screen = Screen.UPLOAD
    file_name: str = ""
    slide_contents: List[SlideContent] = Field(default_factory=list)
    goal: str = ""
    audience_selections: List[AudienceSelection] = Field(default_factory=list)
    audience_context: str = ""
    personas: List[Persona] = Field(default_factory=list)
    evaluations: List[Evaluation] = Field(default_factory=list)
    overall_summary: Optional[OverallSummary] = None
    main_advice: str = ""
    structure_advice: List[StructureAdvice] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    last_error: Optional[str] = None
    history_id: Optional[str] = None

    def clear_results(self) -> None:
        self.history_id = None
        self.personas = []
        self.evaluations = []
        self.overall_summary = None
        self.clear_recommendations()

    def clear_recommendations(self) -> None:
        self.main_advice = ""
        self.structure_advice = []
        self.recommendations = []


def restore_screen(state: SessionState) -> SessionState:
    """
    Correct a stored screen that cannot be resumed.

    A run in progress cannot be reattached, so loading goes back to setup;
    a recommendations screen without recommendations means the fetch was
    interrupted, so it goes back to results.
    """
    if state.screen is Screen.LOADING:
        state.screen = Screen.SETUP
    elif state.screen is Screen.RECOMMENDATIONS and not state.recommendations:
        state.screen = Screen.RESULTS
    return state


class SessionStore:
    """
    One JSON file per session key under `session_dir`.
    Persistence is best-effort: I/O problems are logged, never raised.
    """

    def __init__(self, session_dir: str, session_key: str = "default"):
        self.session_dir = Path(session_dir)
        self.session_key = _UNSAFE_KEY_CHARS.sub("_", session_key) or "default"
        self.path = self.session_dir / f"{self.session_key}.json"

    def save(self, state: SessionState) -> None:
        if state.screen is Screen.LOADING:
            return
        try:
            self.session_dir.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                state.model_dump_json(by_alias=True, exclude_none=True, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning(f"Could not save session {self.session_key}: {e}")

    def load(self) -> Optional[SessionState]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read session {self.session_key}: {e}")
            return None

        try:
            state = SessionState.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable session {self.session_key}: {e.error_count()} errors")
            return None

        return restore_screen(state)

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not clear session {self.session_key}: {e}")
