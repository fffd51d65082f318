from typing import List

from deckpanel.core.entities import Evaluation, OverallSummary, Persona
from deckpanel.core.result import validate_completion
from deckpanel.core.schemas import SummaryOutput
from deckpanel.processing.prompts import build_summary_prompt
from deckpanel.services.llm import CompletionGateway


async def summarize_panel(
    *,
    llm: CompletionGateway,
    goal: str,
    personas: List[Persona],
    evaluations: List[Evaluation],
) -> OverallSummary:
    """
    Third-person synthesis grounded in the finished evaluations.
    Must only be called once every evaluation exists.
    """
    if not evaluations:
        raise ValueError("Cannot summarize a panel without evaluations")

    prompt = build_summary_prompt(goal, personas, evaluations)
    payload = await llm.complete_json(prompt.system, prompt.user)
    parsed = validate_completion(SummaryOutput, payload, context="Panel summary").unwrap()

    return OverallSummary(
        text=parsed.summary.strip(),
        strengths=parsed.strengths,
        weaknesses=parsed.weaknesses,
    )
