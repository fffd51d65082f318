"""
Workflows module - Pipeline orchestration for panel evaluation.
"""
from deckpanel.workflows.base import StreamingPipeline
from deckpanel.workflows.evaluation import PanelEvaluationPipeline, Phase
from deckpanel.workflows.fanout import FailurePolicy, FanOut, Outcome

__all__ = [
    "StreamingPipeline",
    "PanelEvaluationPipeline",
    "Phase",
    "FailurePolicy",
    "FanOut",
    "Outcome",
]
