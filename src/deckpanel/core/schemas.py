"""
Pydantic schemas for structured model output.
Each completion is validated against one of these before it is trusted.
"""
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from deckpanel.core.entities import SENTIMENTS, Sentiment


class ModelOutput(BaseModel):
    """
    Lenient base: camelCase keys from the model, unknown keys ignored.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _as_text(value: Any) -> Any:
    # Models sometimes answer a text field with a list of lines
    if isinstance(value, list):
        return "\n".join(str(part) for part in value)
    return value


def _as_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return value


def _as_page_numbers(value: Any) -> List[int]:
    """Keep entries that read as whole page numbers (3, 3.0, "3"); drop the rest."""
    items = _as_list(value)
    if not isinstance(items, list):
        items = [items]

    pages = []
    for item in items:
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            pages.append(item)
        elif isinstance(item, float) and item.is_integer():
            pages.append(int(item))
        elif isinstance(item, str) and item.strip().isdigit():
            pages.append(int(item.strip()))
    return pages


def _as_id_list(value: Any) -> Any:
    items = _as_list(value)
    if not isinstance(items, list):
        return items
    return [str(item) for item in items if isinstance(item, (str, int)) and not isinstance(item, bool)]


class GeneratedPersona(ModelOutput):
    id: str = ""
    name: str
    title: str
    role: str = ""
    background: str = ""
    key_concerns: List[str] = Field(default_factory=list)
    audience_category_id: str = ""

    @field_validator("key_concerns", mode="before")
    @classmethod
    def coerce_lists(cls, value: Any) -> Any:
        return _as_list(value)


class PersonaPanelOutput(ModelOutput):
    """
    Schema for persona generation
    """
    personas: List[GeneratedPersona] = Field(..., min_length=1)


class EvaluationOutput(ModelOutput):
    """
    Schema for one persona's evaluation
    """
    reaction: str
    green_flags: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list)
    questions: List[str] = Field(default_factory=list)
    decision: str
    decision_sentiment: Sentiment = "mixed"

    @field_validator("reaction", "decision", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        return _as_text(value)

    @field_validator("green_flags", "red_flags", "questions", mode="before")
    @classmethod
    def coerce_lists(cls, value: Any) -> Any:
        return _as_list(value)

    @field_validator("decision_sentiment", mode="before")
    @classmethod
    def coerce_sentiment(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in SENTIMENTS:
            return value.strip().lower()
        return "mixed"


class SummaryOutput(ModelOutput):
    """
    Schema for the panel summary
    """
    summary: str
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)

    @field_validator("summary", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        return _as_text(value)

    @field_validator("strengths", "weaknesses", mode="before")
    @classmethod
    def coerce_lists(cls, value: Any) -> Any:
        return _as_list(value)


class RecommendationDraft(ModelOutput):
    number: Optional[int] = None
    title: str
    text: str
    priority: str = "consider"  # normalized during post-processing
    priority_rationale: str = ""
    related_persona_ids: List[str] = Field(default_factory=list)
    slide_numbers: List[int] = Field(default_factory=list)

    @field_validator("related_persona_ids", mode="before")
    @classmethod
    def coerce_ids(cls, value: Any) -> Any:
        return _as_id_list(value)

    @field_validator("slide_numbers", mode="before")
    @classmethod
    def coerce_pages(cls, value: Any) -> Any:
        return _as_page_numbers(value)


class StructureAdviceDraft(ModelOutput):
    action: str  # unknown actions are dropped during post-processing
    description: str
    rationale: str = ""
    related_persona_ids: List[str] = Field(default_factory=list)
    slide_numbers: List[int] = Field(default_factory=list)

    @field_validator("related_persona_ids", mode="before")
    @classmethod
    def coerce_ids(cls, value: Any) -> Any:
        return _as_id_list(value)

    @field_validator("slide_numbers", mode="before")
    @classmethod
    def coerce_pages(cls, value: Any) -> Any:
        return _as_page_numbers(value)

    @field_validator("action", mode="before")
    @classmethod
    def lower_action(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else ""


class RecommendationsOutput(ModelOutput):
    """
    Schema for the recommendation batch
    """
    main_advice: str
    structure_advice: List[StructureAdviceDraft] = Field(default_factory=list)
    recommendations: List[RecommendationDraft] = Field(..., min_length=1)

    @field_validator("main_advice", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        return _as_text(value)

    @field_validator("structure_advice", mode="before")
    @classmethod
    def coerce_lists(cls, value: Any) -> Any:
        return _as_list(value)
