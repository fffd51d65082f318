"""
Panel evaluation pipeline.

Generating -> Evaluating -> Summarizing -> Done, with Failed reachable
from the first three phases. Events are yielded in the order they are
produced; the last one is always done or error.
"""
import logging
import time
import uuid
from contextlib import aclosing
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

from deckpanel.core.audiences import resolve_segments, segment_for_persona
from deckpanel.core.entities import EvaluateRequest, Evaluation, Persona
from deckpanel.core.events import (
    DoneEvent,
    ErrorEvent,
    EvaluationEvent,
    PersonasEvent,
    StreamEvent,
    SummaryEvent,
)
from deckpanel.processing.evaluator import evaluate_persona
from deckpanel.processing.persona_generator import generate_personas
from deckpanel.processing.prompts import format_slide_text
from deckpanel.processing.summarizer import summarize_panel
from deckpanel.services.config import Config
from deckpanel.services.llm import CompletionGateway
from deckpanel.workflows.base import StreamingPipeline
from deckpanel.workflows.fanout import FailurePolicy, FanOut

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    GENERATING = "generating"
    EVALUATING = "evaluating"
    SUMMARIZING = "summarizing"
    DONE = "done"
    FAILED = "failed"


class PanelEvaluationPipeline(StreamingPipeline):
    """
    Runs one evaluation request end to end.
    A pipeline instance is single-use.
    """

    name = "panel-evaluation"

    def __init__(
        self,
        request: EvaluateRequest,
        llm: CompletionGateway,
        *,
        min_personas: int = 1,
        max_personas: int = 7,
        slide_sample_chars: int = 500,
        failure_policy: FailurePolicy = FailurePolicy.ABORT,
    ):
        self.request = request
        self.llm = llm
        self.min_personas = min_personas
        self.max_personas = max_personas
        self.slide_sample_chars = slide_sample_chars
        self.failure_policy = FailurePolicy(failure_policy)

        self.segments = resolve_segments(s.category_id for s in request.audience_selections)
        self.slide_text = format_slide_text(request.slide_contents)
        self.run_id = uuid.uuid4().hex[:12]
        self.phase: Optional[Phase] = None

    @classmethod
    def from_config(cls, request: EvaluateRequest, llm: CompletionGateway, config: Config) -> "PanelEvaluationPipeline":
        return cls(
            request,
            llm,
            min_personas=config.MIN_PERSONAS,
            max_personas=config.MAX_PERSONAS,
            slide_sample_chars=config.SLIDE_SAMPLE_CHARS,
            failure_policy=FailurePolicy(config.EVALUATION_FAILURE_POLICY),
        )

    def _log_extra(self) -> Dict[str, str]:
        return {"run_id": self.run_id, "phase": self.phase.value if self.phase else ""}

    def _enter(self, phase: Phase) -> None:
        self.phase = phase
        logger.info(f"Run {self.run_id} entering {phase.value}", extra=self._log_extra())

    def _fail(self, message: str) -> ErrorEvent:
        logger.error(f"Run {self.run_id} failed during {self.phase.value}: {message}", extra=self._log_extra())
        self.phase = Phase.FAILED
        return ErrorEvent(message=message)

    async def _generate(self) -> List[Persona]:
        personas = await generate_personas(
            llm=self.llm,
            goal=self.request.goal,
            segments=self.segments,
            audience_context=self.request.audience_context,
            slide_sample=self.slide_text[: self.slide_sample_chars],
            min_personas=self.min_personas,
            max_personas=self.max_personas,
        )
        return [
            p.model_copy(update={"knowledge_level": self.request.knowledge_level_for(p.audience_category_id)})
            for p in personas
        ]

    def _evaluation_job(self, persona: Persona):
        segment = segment_for_persona(persona.audience_category_id, self.segments)
        if segment.id != persona.audience_category_id:
            logger.warning(
                f"Persona {persona.id} has unknown category {persona.audience_category_id!r}, "
                f"evaluating as {segment.id}",
                extra={**self._log_extra(), "persona_id": persona.id},
            )

        async def job() -> Evaluation:
            return await evaluate_persona(
                llm=self.llm,
                persona=persona,
                segment=segment,
                goal=self.request.goal,
                slide_text=self.slide_text,
            )

        return job

    async def run(self) -> AsyncIterator[StreamEvent]:
        started = time.monotonic()

        # ---- Generating ----
        self._enter(Phase.GENERATING)
        try:
            personas = await self._generate()
        except Exception as e:
            yield self._fail(f"Persona generation failed: {e}")
            return

        yield PersonasEvent(personas=personas)

        # ---- Evaluating ----
        self._enter(Phase.EVALUATING)
        by_id = {p.id: p for p in personas}
        evaluations: List[Evaluation] = []
        skipped: List[str] = []

        fanout: FanOut[str, Evaluation] = FanOut(self.failure_policy)
        jobs = {p.id: self._evaluation_job(p) for p in personas}

        async with aclosing(fanout.run(jobs)) as outcomes:
            async for outcome in outcomes:
                if outcome.result.ok:
                    evaluations.append(outcome.result.value)
                    yield EvaluationEvent(evaluation=outcome.result.value)
                    continue

                name = by_id[outcome.key].name
                if self.failure_policy is FailurePolicy.ABORT:
                    yield self._fail(f"Evaluation failed for {name}: {outcome.result.reason}")
                    return
                logger.warning(f"Skipping {name}: {outcome.result.reason}", extra=self._log_extra())
                skipped.append(outcome.key)

        if not evaluations:
            yield self._fail("No persona evaluation completed")
            return

        # ---- Summarizing ----
        self._enter(Phase.SUMMARIZING)
        evaluated = {e.persona_id for e in evaluations}
        try:
            summary = await summarize_panel(
                llm=self.llm,
                goal=self.request.goal,
                personas=[p for p in personas if p.id in evaluated],
                evaluations=evaluations,
            )
        except Exception as e:
            yield self._fail(f"Summary failed: {e}")
            return

        yield SummaryEvent(summary=summary)

        self._enter(Phase.DONE)
        logger.info(
            f"Run {self.run_id} finished in {time.monotonic() - started:.1f}s "
            f"({len(evaluations)} evaluations, {len(skipped)} skipped)",
            extra=self._log_extra(),
        )
        yield DoneEvent()
