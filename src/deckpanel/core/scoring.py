"""
Module to score a panel's verdicts
"""
from typing import Dict, Iterable, List

from deckpanel.core.entities import SENTIMENTS, Evaluation

SENTIMENT_WEIGHTS = {
    "positive": 1.0,
    "mixed": 0.5,
    "negative": 0.0,
}

SCORE_LABELS = (
    (80, "High chance"),
    (60, "Good chance"),
    (40, "Moderate"),
    (20, "Challenging"),
)


def sentiment_counts(evaluations: Iterable[Evaluation]) -> Dict[str, int]:
    counts = {sentiment: 0 for sentiment in SENTIMENTS}
    for evaluation in evaluations:
        counts[evaluation.decision_sentiment] += 1
    return counts


def panel_score(evaluations: List[Evaluation]) -> int:
    """
    Share of the panel leaning towards yes, 0-100.
    Mixed verdicts count half.
    """
    if not evaluations:
        return 0
    total = sum(SENTIMENT_WEIGHTS[e.decision_sentiment] for e in evaluations)
    # half-up rounding
    return int(total * 100 / len(evaluations) + 0.5)


def score_label(score: int) -> str:
    for threshold, label in SCORE_LABELS:
        if score >= threshold:
            return label
    return "Low chance"
