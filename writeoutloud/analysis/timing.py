from __future__ import annotations

"""Temporal overlap between drawing a stroke and speaking its name."""

from typing import Dict, Optional

from ..models.attempt import SpeechSegment


def score_overlap(stroke_start: float, stroke_end: float, speech_start: float, speech_end: float) -> float:
    """Jaccard similarity of two time intervals, in [0, 1].

    Invalid intervals (start > end) and disjoint intervals give 0.
    Two identical intervals give 1, including two identical instants.
    """
    if stroke_start > stroke_end or speech_start > speech_end:
        return 0.0
    overlap_start = max(stroke_start, speech_start)
    overlap_end = min(stroke_end, speech_end)
    if overlap_start > overlap_end:
        return 0.0
    overlap = overlap_end - overlap_start
    union = (stroke_end - stroke_start) + (speech_end - speech_start) - overlap
    if union <= 0:
        # both intervals collapse onto the same instant
        return 1.0 if stroke_start == speech_start else 0.0
    return float(min(1.0, max(0.0, overlap / union)))


def concurrency_score(stroke_start: float, stroke_end: float, speech: Optional[SpeechSegment]) -> float:
    """Concurrency on 0..100; no finalized speech counts as zero overlap."""
    if speech is None:
        return 0.0
    return score_overlap(stroke_start, stroke_end, speech.started_at, speech.ended_at) * 100.0


def speech_start_relation(stroke_start: float, stroke_end: float, speech_start: float) -> int:
    """-1 if speech began before the stroke, 1 if after it ended, 0 if during."""
    if speech_start < stroke_start:
        return -1
    if speech_start > stroke_end:
        return 1
    return 0


def speech_lag(stroke_start: float, speech_start: float) -> float:
    """Seconds from pen-down to speech onset; negative when speech led."""
    return speech_start - stroke_start


def synchronization_score(stroke_start: float, stroke_end: float, speech_start: float, speech_end: float) -> float:
    """Overlap with a lag penalty of up to 30%, on 0..100."""
    overlap = score_overlap(stroke_start, stroke_end, speech_start, speech_end)
    duration = max(stroke_end - stroke_start, 0.1)
    relative_delay = min(abs(speech_lag(stroke_start, speech_start)) / duration, 1.0)
    penalty = relative_delay * 0.3
    return max(0.0, min(100.0, overlap * (1.0 - penalty) * 100.0))


def speech_timing(stroke_start: float, stroke_end: float, speech: Optional[SpeechSegment]) -> Optional[Dict[str, float]]:
    """Start relation, lag and synchronization of a finalized utterance, or None."""
    if speech is None:
        return None
    return {
        "relation": speech_start_relation(stroke_start, stroke_end, speech.started_at),
        "lag_s": round(speech_lag(stroke_start, speech.started_at), 3),
        "synchronization": round(
            synchronization_score(stroke_start, stroke_end, speech.started_at, speech.ended_at), 2
        ),
    }
