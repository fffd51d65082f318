import logging

from deckpanel.core.audiences import AudienceSegment
from deckpanel.core.entities import Evaluation, Persona
from deckpanel.core.result import validate_completion
from deckpanel.core.schemas import EvaluationOutput
from deckpanel.processing.prompts import build_evaluation_prompt
from deckpanel.services.llm import CompletionGateway

logger = logging.getLogger(__name__)


async def evaluate_persona(
    *,
    llm: CompletionGateway,
    persona: Persona,
    segment: AudienceSegment,
    goal: str,
    slide_text: str,
) -> Evaluation:
    """
    Simulate one persona reviewing the deck.

    Safe to run concurrently for different personas: every input is
    read-only and the result is a new object.
    """
    prompt = build_evaluation_prompt(persona, segment, goal, slide_text)
    payload = await llm.complete_json(prompt.system, prompt.user)

    result = validate_completion(EvaluationOutput, payload, context=f"Evaluation for {persona.id}")
    if not result.ok:
        logger.error(result.reason, extra={"persona_id": persona.id})
    parsed = result.unwrap()

    raw_sentiment = payload.get("decisionSentiment", payload.get("decision_sentiment"))
    if raw_sentiment != parsed.decision_sentiment:
        logger.warning(
            f"Normalized decisionSentiment {raw_sentiment!r} to {parsed.decision_sentiment!r}",
            extra={"persona_id": persona.id},
        )

    return Evaluation(
        persona_id=persona.id,
        reaction=parsed.reaction,
        green_flags=parsed.green_flags,
        red_flags=parsed.red_flags,
        questions=parsed.questions,
        decision=parsed.decision,
        decision_sentiment=parsed.decision_sentiment,
    )
