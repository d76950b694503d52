from .shape import ShapeBreakdown, score_breakdown, score_shape
from .timing import (
    concurrency_score,
    score_overlap,
    speech_lag,
    speech_start_relation,
    speech_timing,
    synchronization_score,
)
from .feedback import generate_stroke_feedback, revision_color, summary_message

__all__ = [
    "ShapeBreakdown",
    "score_breakdown",
    "score_shape",
    "concurrency_score",
    "score_overlap",
    "speech_lag",
    "speech_start_relation",
    "speech_timing",
    "synchronization_score",
    "generate_stroke_feedback",
    "revision_color",
    "summary_message",
]
