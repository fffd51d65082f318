import logging
from typing import List, Optional

from deckpanel.core.audiences import AudienceSegment
from deckpanel.core.entities import Persona
from deckpanel.core.errors import UpstreamError
from deckpanel.core.result import validate_completion
from deckpanel.core.schemas import GeneratedPersona, PersonaPanelOutput
from deckpanel.processing.prompts import build_persona_generation_prompt
from deckpanel.services.llm import CompletionGateway

logger = logging.getLogger(__name__)


def _assign_ids(generated: List[GeneratedPersona]) -> List[GeneratedPersona]:
    """
    Keep the model's ids when they are unique and non-blank, otherwise renumber all of them.
    """
    ids = [g.id.strip() for g in generated]
    if all(ids) and len(set(ids)) == len(ids):
        return generated
    logger.warning(f"Persona ids from model were blank or duplicated ({ids}), renumbering")
    return [g.model_copy(update={"id": f"persona-{i}"}) for i, g in enumerate(generated, start=1)]


async def generate_personas(
    *,
    llm: CompletionGateway,
    goal: str,
    segments: List[AudienceSegment],
    audience_context: Optional[str] = None,
    slide_sample: Optional[str] = None,
    min_personas: int = 1,
    max_personas: int = 7,
) -> List[Persona]:
    """
    Ask the model for a review panel in a single call.

    Personas come back with the default knowledge level; the caller
    attaches the level selected for each audience category.

    Raises:
        UpstreamError: if the model fails or returns fewer than `min_personas` usable personas
    """
    if not segments:
        raise ValueError("At least one audience segment is required")

    prompt = build_persona_generation_prompt(
        goal,
        segments,
        audience_context=audience_context,
        slide_sample=slide_sample,
        min_personas=min_personas,
        max_personas=max_personas,
    )
    payload = await llm.complete_json(prompt.system, prompt.user)

    result = validate_completion(PersonaPanelOutput, payload, context="Persona generation")
    if not result.ok:
        logger.error(result.reason)
    panel = result.unwrap()

    generated = panel.personas
    if len(generated) > max_personas:
        logger.warning(f"Model generated {len(generated)} personas, keeping the first {max_personas}")
        generated = generated[:max_personas]
    if len(generated) < min_personas:
        raise UpstreamError(f"Model generated {len(generated)} personas, at least {min_personas} are required")

    selected = {segment.id for segment in segments}
    for g in generated:
        if g.audience_category_id not in selected:
            logger.warning(
                f"Persona {g.name!r} has category {g.audience_category_id!r} outside the selection, "
                f"its evaluation will use {segments[0].id!r}"
            )

    generated = _assign_ids(generated)

    personas = [
        Persona(
            id=g.id.strip(),
            name=g.name,
            title=g.title,
            role=g.role,
            background=g.background,
            key_concerns=g.key_concerns,
            audience_category_id=g.audience_category_id,
        )
        for g in generated
    ]

    logger.info(f"Generated {len(personas)} personas: {', '.join(p.name for p in personas)}")
    return personas
