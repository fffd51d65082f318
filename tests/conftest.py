import asyncio
import copy
import inspect
from typing import Any, Callable, Dict, List

import pytest

from deckpanel.core.entities import Evaluation, Persona, SlideContent
from deckpanel.services.config import Config


def prompt_kind(system_prompt: str) -> str:
    if system_prompt.startswith("You simulate realistic audience panels"):
        return "personas"
    if system_prompt.startswith("You summarise a review panel"):
        return "summary"
    if system_prompt.startswith("You are a presentation coach"):
        return "recommendations"
    return "evaluation"


def persona_name(system_prompt: str) -> str:
    """Name from an evaluation prompt's first line: 'You are <name>, <title>.'"""
    first_line = system_prompt.splitlines()[0]
    return first_line[len("You are "):].split(",")[0]


class FakeGateway:
    """
    Scripted stand-in for the Ollama client.

    Each prompt kind maps to a dict, an exception, or a callable taking
    (system_prompt, user_prompt) that returns either (sync or async).
    """

    def __init__(self, **responses: Any):
        self.responses = responses
        self.calls: List[tuple] = []
        self.healthy = True

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)

    async def complete_json(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        kind = prompt_kind(system_prompt)
        self.calls.append((kind, system_prompt, user_prompt))
        response = self.responses[kind]
        if callable(response):
            response = response(system_prompt, user_prompt)
            if inspect.isawaitable(response):
                response = await response
        if isinstance(response, Exception):
            raise response
        return copy.deepcopy(response)

    async def complete_text(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append(("text", system_prompt, user_prompt))
        return "ok"

    async def health_check(self) -> bool:
        return self.healthy


PERSONAS_PAYLOAD = {
    "personas": [
        {
            "id": "persona-1",
            "name": "Ingrid Sandvik",
            "title": "Partner, Nordic Growth Fund",
            "role": "Lead investor",
            "background": "Backed three logistics startups through Series B.",
            "keyConcerns": ["unit economics", "market size", "team"],
            "audienceCategoryId": "investors",
        },
        {
            "id": "persona-2",
            "name": "Marcus Lindqvist",
            "title": "Chief Operating Officer",
            "role": "Executive sponsor",
            "background": "Ran operations for a national retailer.",
            "keyConcerns": ["rollout risk", "cost"],
            "audienceCategoryId": "c-level",
        },
        {
            "id": "persona-3",
            "name": "Sofia Berg",
            "title": "Angel investor",
            "role": "Co-investor",
            "background": "Former founder, exited in 2019.",
            "keyConcerns": ["traction"],
            "audienceCategoryId": "investors",
        },
    ]
}

SENTIMENT_BY_NAME = {
    "Ingrid Sandvik": "positive",
    "Marcus Lindqvist": "negative",
    "Sofia Berg": "mixed",
}


def evaluation_payload(name: str, sentiment: str = "positive") -> Dict[str, Any]:
    return {
        "reaction": f"{name} thinks slide 1 is strong.\nSlide 2 loses me.",
        "greenFlags": ["clear problem statement on slide 1"],
        "redFlags": ["no pricing on slide 2"],
        "questions": ["What is the payback period?"],
        "decision": f"{name} would take a second meeting.",
        "decisionSentiment": sentiment,
    }


def evaluation_by_name(system_prompt: str, user_prompt: str) -> Dict[str, Any]:
    name = persona_name(system_prompt)
    return evaluation_payload(name, SENTIMENT_BY_NAME.get(name, "positive"))


SUMMARY_PAYLOAD = {
    "summary": "The panel liked the problem framing but wanted pricing.",
    "strengths": ["Clear problem statement"],
    "weaknesses": ["Missing pricing"],
}

RECOMMENDATIONS_PAYLOAD = {
    "mainAdvice": "Lead with the pricing model; it is the panel's biggest open question.",
    "structureAdvice": [
        {
            "action": "delete",
            "description": "Drop the team photo slide",
            "rationale": "It adds nothing",
            "relatedPersonaIds": ["persona-2"],
            "slideNumbers": [3],
        }
    ],
    "recommendations": [
        {"number": 1, "title": "Add pricing table", "text": "Add a pricing table to slide 2.",
         "priority": "top", "priorityRationale": "Asked by all", "relatedPersonaIds": ["persona-1"],
         "slideNumbers": [2]},
        {"number": 2, "title": "Quantify the market", "text": "Replace the adjectives on slide 1 with TAM figures.",
         "priority": "critical", "relatedPersonaIds": ["persona-2"], "slideNumbers": [1]},
        {"number": 3, "title": "Tighten the close", "text": "End with one explicit ask.",
         "priority": "important", "relatedPersonaIds": [], "slideNumbers": []},
    ],
}


@pytest.fixture
def slides() -> List[SlideContent]:
    return [
        SlideContent(slide_number=1, text="Freight is broken\nShippers lose 12% to empty miles"),
        SlideContent(slide_number=2, text="Our platform matches loads in real time", notes="Mention the pilot"),
        SlideContent(slide_number=3, text="The team"),
    ]


@pytest.fixture
def evaluate_body() -> Dict[str, Any]:
    return {
        "slideContents": [
            {"slideNumber": 1, "text": "Freight is broken"},
            {"slideNumber": 2, "text": "Our platform matches loads in real time", "notes": "Mention the pilot"},
            {"slideNumber": 3, "text": "The team"},
        ],
        "goal": "Raise a 2M seed round",
        "audienceSelections": [
            {"categoryId": "investors", "knowledgeLevel": "expert"},
            {"categoryId": "c-level"},
        ],
        "audienceContext": "Nordic logistics investors",
    }


@pytest.fixture
def personas() -> List[Persona]:
    return [Persona.model_validate(p) for p in PERSONAS_PAYLOAD["personas"]]


@pytest.fixture
def evaluations(personas) -> List[Evaluation]:
    return [
        Evaluation.model_validate({"personaId": p.id, **evaluation_payload(p.name, SENTIMENT_BY_NAME[p.name])})
        for p in personas
    ]


@pytest.fixture
def fake_llm() -> FakeGateway:
    return FakeGateway(
        personas=PERSONAS_PAYLOAD,
        evaluation=evaluation_by_name,
        summary=SUMMARY_PAYLOAD,
        recommendations=RECOMMENDATIONS_PAYLOAD,
    )


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        SESSION_DIR=str(tmp_path / "sessions"),
        HISTORY_DATABASE_PATH=str(tmp_path / "history.db"),
        REPORT_DIR=str(tmp_path / "output"),
    )


def delayed(delays: Dict[str, float], handler: Callable) -> Callable:
    """Wrap an evaluation handler so each persona answers after its own delay."""

    async def respond(system_prompt: str, user_prompt: str):
        await asyncio.sleep(delays.get(persona_name(system_prompt), 0))
        return handler(system_prompt, user_prompt)

    return respond
