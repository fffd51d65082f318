"""
Typed events produced by the evaluation pipeline.
The wire encoding lives in deckpanel.transport.sse.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Union

from deckpanel.core.entities import Evaluation, OverallSummary, Persona


class EventType(str, Enum):
    PERSONAS = "personas"
    EVALUATION = "evaluation"
    SUMMARY = "summary"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class PersonasEvent:
    personas: List[Persona]
    type = EventType.PERSONAS

    def payload(self) -> Any:
        return [persona.to_wire() for persona in self.personas]


@dataclass(frozen=True)
class EvaluationEvent:
    evaluation: Evaluation
    type = EventType.EVALUATION

    def payload(self) -> Any:
        return self.evaluation.to_wire()


@dataclass(frozen=True)
class SummaryEvent:
    summary: OverallSummary
    type = EventType.SUMMARY

    def payload(self) -> Any:
        return self.summary.to_wire()


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    type = EventType.ERROR

    def payload(self) -> Any:
        return {"message": self.message}


@dataclass(frozen=True)
class DoneEvent:
    type = EventType.DONE

    def payload(self) -> Any:
        return {}


StreamEvent = Union[PersonasEvent, EvaluationEvent, SummaryEvent, ErrorEvent, DoneEvent]

TERMINAL_EVENTS = frozenset({EventType.ERROR, EventType.DONE})


def is_terminal(event: StreamEvent) -> bool:
    return event.type in TERMINAL_EVENTS


def event_from_payload(name: str, data: Any) -> StreamEvent:
    """
    Rebuild a typed event from its name and decoded JSON payload.
    Raises ValueError for unknown names and pydantic errors for bad payloads.
    """
    event_type = EventType(name)

    if event_type is EventType.PERSONAS:
        return PersonasEvent(personas=[Persona.model_validate(p) for p in data])
    if event_type is EventType.EVALUATION:
        return EvaluationEvent(evaluation=Evaluation.model_validate(data))
    if event_type is EventType.SUMMARY:
        return SummaryEvent(summary=OverallSummary.model_validate(data))
    if event_type is EventType.ERROR:
        message = data.get("message") if isinstance(data, dict) else None
        return ErrorEvent(message=message or "Evaluation failed")
    return DoneEvent()
