"""
File delivery channel
"""
import json
import logging
from pathlib import Path
from typing import List

from deckpanel.client.session import SessionState
from deckpanel.core.audiences import get_segment
from deckpanel.core.scoring import panel_score, score_label, sentiment_counts
from deckpanel.delivery.base import DeliveryChannel

logger = logging.getLogger(__name__)

KNOWLEDGE_LEVEL_LABELS = {
    "expert": "Expert in the field",
    "intermediate": "Understands general concepts",
    "novice": "Novice",
}


def _category_label(category_id: str) -> str:
    segment = get_segment(category_id)
    return segment.label if segment else category_id


class FileDelivery(DeliveryChannel):
    name = "file"

    def __init__(self, output_dir: str = "output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def build_report(self, state: SessionState) -> dict:
        score = panel_score(state.evaluations)
        return {
            "fileName": state.file_name,
            "goal": state.goal,
            "score": score,
            "scoreLabel": score_label(score),
            "sentiments": sentiment_counts(state.evaluations),
            "overallSummary": state.overall_summary.to_wire() if state.overall_summary else None,
            "personas": [p.to_wire() for p in state.personas],
            "evaluations": [e.to_wire() for e in state.evaluations],
            "mainAdvice": state.main_advice,
            "structureAdvice": [a.to_wire() for a in state.structure_advice],
            "recommendations": [r.to_wire() for r in state.recommendations],
        }

    async def deliver(self, *, stem: str, state: SessionState) -> List[str]:
        if not state.evaluations:
            raise ValueError("Nothing to export: the session has no evaluations")

        base = self.output_dir / stem
        json_path = base.with_suffix(".json")
        md_path = base.with_suffix(".md")

        report = self.build_report(state)
        json_path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")

        by_persona = {e.persona_id: e for e in state.evaluations}
        md_lines = list[str]()
        md_lines.append(f"# Deck review: {state.file_name or 'presentation'}")
        md_lines.append(f"**Goal:** {state.goal}")
        md_lines.append(f"**Panel score:** {report['score']}% ({report['scoreLabel']})")
        md_lines.append("")

        if state.overall_summary:
            md_lines.append("## Summary")
            md_lines.append(state.overall_summary.text)
            md_lines.append("")
            md_lines.append("**Strengths**")
            md_lines.extend(f"- {s}" for s in state.overall_summary.strengths)
            md_lines.append("")
            md_lines.append("**Weaknesses**")
            md_lines.extend(f"- {w}" for w in state.overall_summary.weaknesses)
            md_lines.append("")

        md_lines.append("## Panel")
        for persona in state.personas:
            evaluation = by_persona.get(persona.id)
            if evaluation is None:
                continue
            md_lines.append(f"### {persona.name}, {persona.title}")
            md_lines.append(
                f"*{_category_label(persona.audience_category_id)} · "
                f"{KNOWLEDGE_LEVEL_LABELS.get(persona.knowledge_level, persona.knowledge_level)}*"
            )
            md_lines.append(f"**Verdict ({evaluation.decision_sentiment}):** {evaluation.decision}")
            md_lines.extend(f"- + {flag}" for flag in evaluation.green_flags)
            md_lines.extend(f"- - {flag}" for flag in evaluation.red_flags)
            md_lines.append("")

        if state.recommendations:
            md_lines.append("## Recommendations")
            if state.main_advice:
                md_lines.append(state.main_advice)
                md_lines.append("")
            for advice in state.structure_advice:
                pages = f" (slides {', '.join(map(str, advice.slide_numbers))})" if advice.slide_numbers else ""
                md_lines.append(f"- **{advice.action.upper()}**{pages}: {advice.description}")
            if state.structure_advice:
                md_lines.append("")
            for rec in state.recommendations:
                pages = ", ".join(map(str, rec.slide_numbers)) or "whole deck"
                md_lines.append(f"{rec.number}. **{rec.title}** [{rec.priority}] ({pages})")
                md_lines.append(f"   {rec.text}")
            md_lines.append("")

        md_path.write_text("\n".join(md_lines), encoding="utf-8")
        logger.info(f"Report written to {json_path} and {md_path}")
        return [str(json_path), str(md_path)]
