from __future__ import annotations

"""Categorical feedback text for strokes and whole characters."""

from typing import List, Sequence, Tuple

from ..models.attempt import SpeechOutcome, StrokeColor, StrokeFeedback, StrokeResult

# (threshold, message), checked top-down
SHAPE_BANDS: Sequence[Tuple[float, str]] = (
    (90.0, "Excellent stroke!"),
    (70.0, "Good stroke shape."),
    (50.0, "Okay stroke, check the reference shape."),
)
SHAPE_FALLBACK = "Try drawing the stroke shape more carefully."

TIMING_BANDS: Sequence[Tuple[float, str]] = (
    (85.0, "Great timing - speech and writing synced!"),
    (60.0, "Good timing synchronization."),
    (30.0, "Try to speak while drawing the stroke."),
)
TIMING_FALLBACK = "Work on synchronizing your speech and writing."

OVERALL_BANDS: Sequence[Tuple[float, str]] = (
    (90.0, "Excellent work!"),
    (75.0, "Very good job!"),
    (60.0, "Good effort!"),
    (40.0, "Keep practicing."),
)
OVERALL_FALLBACK = "Let's try again."

NO_DATA_MESSAGE = "No strokes were analyzed."


def band(score: float, bands: Sequence[Tuple[float, str]], fallback: str) -> str:
    for threshold, message in bands:
        if score >= threshold:
            return message
    return fallback


def naming_message(result: StrokeResult) -> str:
    name = result.name
    if result.outcome is SpeechOutcome.MATCHED:
        return f"Correct name: '{name}'!"
    if result.outcome is SpeechOutcome.UNAVAILABLE:
        return f"Speech recognition was unavailable; the name '{name}' was not checked."
    heard = result.heard.strip()
    if heard:
        return f"Hmm, heard '{heard}'. Expected: '{name}'."
    return f"Remember to say the stroke name ('{name}') aloud!"


def generate_stroke_feedback(result: StrokeResult) -> StrokeFeedback:
    shape = band(result.shape_accuracy, SHAPE_BANDS, SHAPE_FALLBACK)
    timing = ""
    if result.speech_attempted:
        timing = band(result.concurrency_score, TIMING_BANDS, TIMING_FALLBACK)
    return StrokeFeedback(shape_message=shape, naming_message=naming_message(result), timing_message=timing)


def revision_color(shape_accuracy: float, threshold: float) -> StrokeColor:
    """Rendering class from shape accuracy alone."""
    if shape_accuracy < threshold:
        return StrokeColor.NEEDS_REVISION
    return StrokeColor.ACCEPTABLE


def summary_message(
    overall: float,
    shape_accuracy: float,
    naming_correctness: float,
    concurrency: float,
    completion_ratio: float,
    had_speech: bool,
    encourage_below: float = 0.5,
) -> str:
    parts: List[str] = []
    if completion_ratio < 1.0:
        parts.append(f"You completed {int(completion_ratio * 100)}% of the character.")
        if completion_ratio < encourage_below:
            parts.append("Try to complete the full character next time.")
    parts.append(band(overall, OVERALL_BANDS, OVERALL_FALLBACK))
    if shape_accuracy < 60:
        parts.append("Focus on stroke shape accuracy.")
    if naming_correctness < 60:
        parts.append("Remember to say the correct stroke names.")
    if had_speech and concurrency < 40:
        parts.append("Try to speak while writing.")
    return " ".join(parts)
