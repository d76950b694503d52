from __future__ import annotations

"""Session summaries: JSON payloads and human-readable text."""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

from ..analysis.timing import speech_timing
from ..models.attempt import SessionScore, StrokeColor, StrokeFeedback, StrokeResult


def session_payload(
    score: SessionScore,
    results: Iterable[StrokeResult],
    feedback: Optional[Mapping[int, StrokeFeedback]] = None,
    colors: Optional[Mapping[int, StrokeColor]] = None,
) -> Dict[str, Any]:
    """JSON-ready structure for one character attempt."""
    feedback = feedback or {}
    colors = colors or {}
    strokes = []
    for r in results:
        fb = feedback.get(r.index)
        color = colors.get(r.index)
        strokes.append(
            {
                "index": r.index,
                "name": r.name,
                "type": r.stroke_type.value,
                "shape_accuracy": round(r.shape_accuracy, 2),
                "concurrency_score": round(r.concurrency_score, 2),
                "outcome": r.outcome.value,
                "heard": r.heard,
                "speech_timing": speech_timing(r.stroke_started_at, r.stroke_ended_at, r.speech),
                "color": color.value if color is not None else None,
                "feedback": (
                    {"shape": fb.shape_message, "naming": fb.naming_message, "timing": fb.timing_message}
                    if fb is not None
                    else None
                ),
            }
        )
    return {
        "recorded": score.recorded,
        "expected": score.expected,
        "completion_ratio": round(score.completion_ratio, 4),
        "shape_accuracy": round(score.shape_accuracy, 2),
        "naming_correctness": round(score.naming_correctness, 2),
        "concurrency_score": round(score.concurrency_score, 2),
        "overall": round(score.overall, 2),
        "summary": score.summary_message,
        "strokes": strokes,
    }


def write_stats(payload: Dict[str, Any], path: str) -> None:
    """Write stats as JSON to path."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)


def format_summary(score: SessionScore, results: Iterable[StrokeResult]) -> str:
    """Return a human-readable summary of a scored character."""
    lines = [
        f"Strokes: {score.recorded}/{score.expected}",
        f"Shape: {score.shape_accuracy:.1f}  Naming: {score.naming_correctness:.1f}  "
        f"Timing: {score.concurrency_score:.1f}",
        f"Overall: {score.overall:.1f}",
    ]
    for r in sorted(results, key=lambda x: x.index):
        heard = f" heard='{r.heard}'" if r.heard else ""
        lines.append(
            f"Stroke {r.index + 1} ({r.name}): shape {r.shape_accuracy:.1f}, "
            f"timing {r.concurrency_score:.1f}, {r.outcome.value}{heard}"
        )
    lines.append(score.summary_message)
    return "\n".join(lines)
