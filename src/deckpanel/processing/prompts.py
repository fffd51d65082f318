"""
Prompt builders for every model call in the pipeline.
Each builder returns a (system, user) pair.
"""
from typing import Dict, List, NamedTuple, Optional

from deckpanel.core.audiences import AudienceSegment
from deckpanel.core.entities import DEFAULT_KNOWLEDGE_LEVEL, Evaluation, Persona, SlideContent
from deckpanel.core.scoring import sentiment_counts


class Prompt(NamedTuple):
    system: str
    user: str


KNOWLEDGE_LEVEL_GUIDANCE: Dict[str, str] = {
    "expert": (
        "You are an expert in this field. You expect rigorous methodology and technical depth, "
        "you notice shallow explanations and oversimplifications, and your questions probe for "
        "deep understanding."
    ),
    "intermediate": (
        "You understand the general concepts but need context for specialised topics. You follow "
        "well-explained logic, get lost in unexplained jargon, and appreciate clear examples."
    ),
    "novice": (
        "You have little familiarity with this domain. You need foundational explanations, jargon "
        "and assumed knowledge overwhelm you, and you judge mostly on clarity and accessibility."
    ),
}


def format_slide_text(slides: List[SlideContent]) -> str:
    """
    Concatenate pages, each labelled with its page number.
    """
    blocks = []
    for slide in slides:
        block = f"[Slide {slide.slide_number}]\n{slide.text}"
        if slide.notes:
            block += f"\n(Speaker notes: {slide.notes})"
        blocks.append(block)
    return "\n\n".join(blocks)


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {item}" for item in items) if items else "- (none)"


def build_persona_generation_prompt(
    goal: str,
    segments: List[AudienceSegment],
    *,
    audience_context: Optional[str] = None,
    slide_sample: Optional[str] = None,
    min_personas: int = 1,
    max_personas: int = 7,
) -> Prompt:
    segment_lines = "\n".join(
        f"- {s.label} (id: {s.id}{', usually one person' if s.singular else ''}): "
        f"looks for {s.evidence_expectations}. Communication style: {s.communication_style}"
        for s in segments
    )

    system = f"""You simulate realistic audience panels for presentation reviews.

Create a panel of between {min_personas} and {max_personas} distinct personas who would
realistically sit in the room for this presentation.

PANEL SIZE:
- Decide the size yourself. Some audience categories are singular in real organisations
  (a person has one direct manager) while others are plural (a board, several investors).
- Give singular categories exactly one persona. Plural categories may get two or three when
  that makes the panel more realistic.
- Every selected category should be represented by at least one persona.

NAMES AND CULTURE:
- Infer the likely country, region and industry from the goal, the audience context and the
  slide sample. Give personas names, titles and backgrounds that fit that context.

EACH PERSONA:
- a believable professional with a full name and a specific job title
- a clear role relative to the presenter (decision-maker, budget holder, end user, ...)
- one or two sentences of background explaining what shaped their perspective
- three or four concrete concerns they would bring to this presentation

Respond with a JSON object:
{{
  "personas": [
    {{
      "id": "persona-1",
      "name": "Full name",
      "title": "Job title",
      "role": "Role relative to the presenter",
      "background": "1-2 sentences",
      "keyConcerns": ["concern", "concern", "concern"],
      "audienceCategoryId": "one of the category ids listed by the user"
    }}
  ]
}}
Ids must be unique: persona-1, persona-2, and so on."""

    parts = [f"PRESENTATION GOAL: {goal}", f"SELECTED AUDIENCE CATEGORIES:\n{segment_lines}"]
    if audience_context:
        parts.append(f"ABOUT THE AUDIENCE: {audience_context}")
    if slide_sample:
        parts.append(f"SLIDE SAMPLE (for context only):\n{slide_sample}")
    parts.append("Generate the panel.")

    return Prompt(system=system, user="\n\n".join(parts))


def build_evaluation_prompt(
    persona: Persona,
    segment: AudienceSegment,
    goal: str,
    slide_text: str,
) -> Prompt:
    level = persona.knowledge_level or DEFAULT_KNOWLEDGE_LEVEL
    guidance = KNOWLEDGE_LEVEL_GUIDANCE.get(level, KNOWLEDGE_LEVEL_GUIDANCE[DEFAULT_KNOWLEDGE_LEVEL])

    system = f"""You are {persona.name}, {persona.title}.

BACKGROUND: {persona.background}

WHAT CONCERNS YOU ABOUT PRESENTATIONS LIKE THIS:
{_bullets(persona.key_concerns)}

WHAT YOU LOOK FOR:
{segment.evidence_expectations}

HOW YOU THINK AND TALK:
{segment.communication_style}

KNOWLEDGE LEVEL: {level.upper()}
{guidance}

You are in the audience while this deck is presented live. Think out loud as an inner
monologue: one thought per line, short and long thoughts mixed, reacting as each slide lands.

- Refer to concrete content and slide numbers.
- Your attention is uneven. Note where a slide pulls you in and where it loses you.
- Your trust moves as the deck goes on. Note what raises it and what erodes it.
- Notice numbers or claims that contradict each other across slides.
- Write 15 to 25 lines.

Then give your verdict on the goal "{goal}" in one or two direct sentences, in the words
someone in your position would use for that kind of decision (invest, sign, approve, apply...).

Respond with a JSON object:
{{
  "reaction": "inner monologue, one thought per line separated by \\n",
  "greenFlags": ["2-4 specific things that worked"],
  "redFlags": ["2-4 specific concerns or weaknesses"],
  "questions": ["2-3 questions you would ask in Q&A"],
  "decision": "your verdict in 1-2 sentences",
  "decisionSentiment": "positive | negative | mixed"
}}
decisionSentiment: "positive" means yes, "negative" means no, "mixed" means on the fence or
yes with major reservations."""

    user = f"""PRESENTATION GOAL: {goal}

SLIDE CONTENT:
{slide_text}

The presenter just finished. What went through your mind, and what is your verdict?"""

    return Prompt(system=system, user=user)


def _panel_feedback(personas: List[Persona], evaluations: List[Evaluation], *, full: bool) -> str:
    by_id = {p.id: p for p in personas}
    blocks = []
    for ev in evaluations:
        persona = by_id.get(ev.persona_id)
        who = f"{persona.name} ({persona.title}) [id: {persona.id}]" if persona else ev.persona_id
        lines = [f"{who}: {ev.decision} [{ev.decision_sentiment}]"]
        if full:
            lines.append(f"Reaction:\n{ev.reaction}")
        lines.append(f"Green flags: {'; '.join(ev.green_flags) or 'none'}")
        lines.append(f"Red flags: {'; '.join(ev.red_flags) or 'none'}")
        if full and ev.questions:
            lines.append(f"Questions: {'; '.join(ev.questions)}")
        blocks.append("\n".join(lines))
    return ("\n\n---\n\n" if full else "\n\n").join(blocks)


def build_summary_prompt(goal: str, personas: List[Persona], evaluations: List[Evaluation]) -> Prompt:
    system = """You summarise a review panel's collective reaction to a presentation.

Produce:
1. a 2-3 sentence summary of what the panel thought overall
2. 2-4 strengths the panel praised
3. 2-4 weaknesses the panel criticised or flagged

Rules:
- Write in the third person about "the panel".
- Use only points the panelists actually made in their flags and verdicts. Do not add
  claims of your own.
- Each strength or weakness is one clear sentence that names the concrete content.

Respond with a JSON object:
{
  "summary": "2-3 sentences",
  "strengths": ["..."],
  "weaknesses": ["..."]
}"""

    counts = sentiment_counts(evaluations)
    user = f"""PRESENTATION GOAL: {goal}

PANEL VERDICTS ({counts['positive']} positive, {counts['mixed']} mixed, {counts['negative']} negative):
{_panel_feedback(personas, evaluations, full=False)}

Summarise the panel's collective reaction."""

    return Prompt(system=system, user=user)


def recommendation_count(panel_size: int) -> int:
    return max(3, min(panel_size + 1, 7))


def priority_plan(count: int) -> Dict[str, int]:
    """
    How many recommendations of each tier to ask for.
    """
    critical = min(2, max(0, count - 2))
    important = min(3, max(0, count - 1 - critical))
    return {
        "top": 1,
        "critical": critical,
        "important": important,
        "consider": count - 1 - critical - important,
    }


def build_recommendations_prompt(
    goal: str,
    personas: List[Persona],
    evaluations: List[Evaluation],
    slides: List[SlideContent],
) -> Prompt:
    count = recommendation_count(len(evaluations))
    plan = priority_plan(count)
    page_index = "\n".join(
        f"- Slide {s.slide_number}: {(s.text.splitlines() or [''])[0][:80]}" for s in slides
    )

    system = f"""You are a presentation coach turning a review panel's feedback into
{count} actionable recommendations ranked by impact.

PRIORITY TIERS (use exactly these counts):
- "top": {plan['top']} (the single change that would shift the outcome most)
- "critical": {plan['critical']}
- "important": {plan['important']}
- "consider": {plan['consider']}

EACH RECOMMENDATION:
- encodes exactly one action (add, remove, replace, reword, move...)
- tells the presenter exactly what to do, with the concrete content to change
- lists the slide numbers it applies to in "slideNumbers", or [] if it applies to the whole deck
- has a 3-6 word title and a one-sentence priorityRationale
- lists the persona ids that raised the concern in "relatedPersonaIds"

STRUCTURE ADVICE:
Suggestions to add, delete or reorder whole slides go in "structureAdvice", not in
"recommendations". Put the affected slide numbers in "slideNumbers". A slide you advise
deleting must not appear in any recommendation's slideNumbers.

MAIN ADVICE:
"mainAdvice" is a 2-3 sentence strategic assessment of the deck's core issue or biggest
opportunity, distinct from the tactical recommendations.

Respond with a JSON object:
{{
  "mainAdvice": "...",
  "structureAdvice": [
    {{"action": "add | delete | reorder", "description": "...", "rationale": "...",
      "relatedPersonaIds": ["persona-1"], "slideNumbers": [4]}}
  ],
  "recommendations": [
    {{"number": 1, "title": "...", "text": "...", "priority": "top",
      "priorityRationale": "...", "relatedPersonaIds": ["persona-1"], "slideNumbers": [3]}}
  ]
}}"""

    user = f"""PRESENTATION GOAL: {goal}

SLIDES:
{page_index}

PANEL FEEDBACK:
{_panel_feedback(personas, evaluations, full=True)}

Write the {count} recommendations, ranked by impact."""

    return Prompt(system=system, user=user)
