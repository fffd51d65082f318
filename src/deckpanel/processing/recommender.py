import logging
from typing import List, Set, Tuple

from deckpanel.core.entities import (
    PRIORITIES,
    STRUCTURE_ACTIONS,
    Recommendation,
    RecommendationBatch,
    RecommendationsRequest,
    StructureAdvice,
)
from deckpanel.core.errors import UpstreamError
from deckpanel.core.result import validate_completion
from deckpanel.core.schemas import RecommendationDraft, RecommendationsOutput
from deckpanel.processing.prompts import build_recommendations_prompt
from deckpanel.services.llm import CompletionGateway

logger = logging.getLogger(__name__)

PRIORITY_RANK = {priority: rank for rank, priority in enumerate(PRIORITIES)}


def _known(values, allowed) -> list:
    seen = set()
    kept = []
    for value in values:
        if value in allowed and value not in seen:
            seen.add(value)
            kept.append(value)
    return kept


def _normalize_priority(raw: str) -> str:
    priority = (raw or "").strip().lower()
    return priority if priority in PRIORITY_RANK else "consider"


def normalize_batch(
    output: RecommendationsOutput,
    *,
    persona_ids: Set[str],
    page_numbers: Set[int],
    enforce_deletion_consistency: bool = True,
) -> RecommendationBatch:
    """
    Turn the model's draft into a batch that satisfies the batch invariants.

    - unknown priorities become "consider"
    - structure advice with an unknown action is dropped
    - unknown page numbers and persona ids are dropped
    - pages marked for deletion are removed from tactical recommendations
      (a recommendation left without any of its pages is dropped)
    - recommendations are ordered by tier, exactly one is "top", numbers run 1..n
    """
    structure: List[StructureAdvice] = []
    deleted_pages: Set[int] = set()

    for advice in output.structure_advice:
        if advice.action not in STRUCTURE_ACTIONS:
            logger.warning(f"Dropping structure advice with unknown action {advice.action!r}: {advice.description}")
            continue
        pages = _known(advice.slide_numbers, page_numbers)
        if advice.action == "delete":
            deleted_pages.update(pages)
        structure.append(
            StructureAdvice(
                action=advice.action,
                description=advice.description,
                rationale=advice.rationale,
                related_persona_ids=_known(advice.related_persona_ids, persona_ids),
                slide_numbers=pages,
            )
        )

    kept: List[Tuple[str, RecommendationDraft, List[int]]] = []
    for draft in output.recommendations:
        priority = _normalize_priority(draft.priority)
        pages = _known(draft.slide_numbers, page_numbers)

        if enforce_deletion_consistency and deleted_pages:
            surviving = [n for n in pages if n not in deleted_pages]
            if pages and not surviving:
                logger.warning(f"Dropping recommendation '{draft.title}': all its slides {pages} are marked for deletion")
                continue
            pages = surviving

        kept.append((priority, draft, pages))

    if not kept:
        raise UpstreamError("Recommendation synthesis left no usable recommendations")

    kept.sort(key=lambda item: PRIORITY_RANK[item[0]])

    recommendations = []
    for index, (priority, draft, pages) in enumerate(kept):
        if index == 0:
            priority = "top"
        elif priority == "top":
            priority = "critical"
        recommendations.append(
            Recommendation(
                number=index + 1,
                title=draft.title,
                text=draft.text,
                priority=priority,
                priority_rationale=draft.priority_rationale,
                related_persona_ids=_known(draft.related_persona_ids, persona_ids),
                slide_numbers=pages,
            )
        )

    return RecommendationBatch(
        main_advice=output.main_advice.strip(),
        structure_advice=structure,
        recommendations=recommendations,
    )


async def synthesize_recommendations(
    *,
    llm: CompletionGateway,
    request: RecommendationsRequest,
    enforce_deletion_consistency: bool = True,
) -> RecommendationBatch:
    """
    Ranked, actionable recommendations for the whole evaluation set.
    """
    prompt = build_recommendations_prompt(
        request.goal,
        request.personas,
        request.evaluations,
        request.slide_contents,
    )
    payload = await llm.complete_json(prompt.system, prompt.user)

    result = validate_completion(RecommendationsOutput, payload, context="Recommendations")
    if not result.ok:
        logger.error(result.reason)
    output = result.unwrap()

    batch = normalize_batch(
        output,
        persona_ids={p.id for p in request.personas},
        page_numbers={s.slide_number for s in request.slide_contents},
        enforce_deletion_consistency=enforce_deletion_consistency,
    )
    logger.info(
        f"Synthesized {len(batch.recommendations)} recommendations "
        f"and {len(batch.structure_advice)} structure suggestions"
    )
    return batch
