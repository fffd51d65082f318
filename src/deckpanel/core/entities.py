"""
Domain entities exchanged between client and server.
Field names are snake_case in Python and camelCase on the wire.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

KnowledgeLevel = Literal["expert", "intermediate", "novice"]
Sentiment = Literal["positive", "negative", "mixed"]
Priority = Literal["top", "critical", "important", "consider"]
StructureAction = Literal["add", "delete", "reorder"]

DEFAULT_KNOWLEDGE_LEVEL: KnowledgeLevel = "intermediate"
SENTIMENTS = ("positive", "negative", "mixed")
PRIORITIES = ("top", "critical", "important", "consider")
STRUCTURE_ACTIONS = ("add", "delete", "reorder")


class WireModel(BaseModel):
    """
    Base for every model that crosses the HTTP boundary.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SlideContent(WireModel):
    slide_number: int = Field(..., ge=1)
    text: str
    notes: Optional[str] = None


class AudienceSelection(WireModel):
    category_id: str = Field(..., min_length=1)
    knowledge_level: Optional[KnowledgeLevel] = None


class Persona(WireModel):
    """
    Synthetic reviewer generated for one evaluation run.
    """
    id: str
    name: str
    title: str
    role: str
    background: str
    key_concerns: List[str] = Field(default_factory=list)
    audience_category_id: str
    knowledge_level: KnowledgeLevel = DEFAULT_KNOWLEDGE_LEVEL


class Evaluation(WireModel):
    """
    One persona's structured reaction to the deck.
    """
    persona_id: str
    reaction: str
    green_flags: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list)
    questions: List[str] = Field(default_factory=list)
    decision: str
    decision_sentiment: Sentiment


class OverallSummary(WireModel):
    text: str
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)


class Recommendation(WireModel):
    number: int = Field(..., ge=1)
    title: str
    text: str
    priority: Priority
    priority_rationale: str = ""
    related_persona_ids: List[str] = Field(default_factory=list)
    slide_numbers: List[int] = Field(default_factory=list)  # empty = applies to the whole deck


class StructureAdvice(WireModel):
    action: StructureAction
    description: str
    rationale: str = ""
    related_persona_ids: List[str] = Field(default_factory=list)
    slide_numbers: List[int] = Field(default_factory=list)


class RecommendationBatch(WireModel):
    """
    Result of one recommendation request.
    Exactly one recommendation carries the "top" priority.
    """
    main_advice: str
    structure_advice: List[StructureAdvice] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(..., min_length=1)

    @model_validator(mode="after")
    def exactly_one_top(self) -> "RecommendationBatch":
        tops = sum(1 for rec in self.recommendations if rec.priority == "top")
        if tops != 1:
            raise ValueError(f"Expected exactly one top-priority recommendation, got {tops}")
        numbers = [rec.number for rec in self.recommendations]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError(f"Recommendation numbers must run 1..n in order, got {numbers}")
        return self


def _check_unique_pages(slides: List[SlideContent]) -> List[SlideContent]:
    seen = set()
    for slide in slides:
        if slide.slide_number in seen:
            raise ValueError(f"Duplicate slide number {slide.slide_number}")
        seen.add(slide.slide_number)
    return slides


class EvaluateRequest(WireModel):
    """
    Body of POST /api/evaluate.
    """
    slide_contents: List[SlideContent] = Field(..., min_length=1)
    goal: str
    audience_selections: List[AudienceSelection] = Field(..., min_length=1)
    audience_context: Optional[str] = None

    @field_validator("goal")
    @classmethod
    def goal_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("goal must not be empty")
        return value.strip()

    @field_validator("slide_contents")
    @classmethod
    def unique_pages(cls, value: List[SlideContent]) -> List[SlideContent]:
        return _check_unique_pages(value)

    @field_validator("audience_context")
    @classmethod
    def blank_context_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    def knowledge_level_for(self, category_id: str) -> KnowledgeLevel:
        for selection in self.audience_selections:
            if selection.category_id == category_id and selection.knowledge_level:
                return selection.knowledge_level
        return DEFAULT_KNOWLEDGE_LEVEL


class RecommendationsRequest(WireModel):
    """
    Body of POST /api/recommendations.
    """
    goal: str
    personas: List[Persona] = Field(..., min_length=1)
    evaluations: List[Evaluation] = Field(..., min_length=1)
    slide_contents: List[SlideContent] = Field(..., min_length=1)

    @field_validator("goal")
    @classmethod
    def goal_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("goal must not be empty")
        return value.strip()

    @field_validator("slide_contents")
    @classmethod
    def unique_pages(cls, value: List[SlideContent]) -> List[SlideContent]:
        return _check_unique_pages(value)
