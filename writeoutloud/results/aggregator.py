from __future__ import annotations

"""Session aggregator: append-only stroke history and final scoring.

Owned by one practice session for one character attempt and replaced
wholesale when the character changes. ``record`` is the only mutation and
is called from the session's consumer thread only.
"""

from typing import Dict, List, Optional, Tuple

from ..analysis.feedback import NO_DATA_MESSAGE, revision_color, summary_message
from ..app.explain import trace as xtrace
from ..config.settings import SessionPolicy
from ..models.attempt import SessionScore, SpeechOutcome, StrokeColor, StrokeResult


class SessionAggregator:
    def __init__(self, expected_strokes: int, policy: Optional[SessionPolicy] = None) -> None:
        self.expected_strokes = int(expected_strokes)
        self.policy = policy or SessionPolicy()
        self._history: List[StrokeResult] = []
        self._indices: set[int] = set()

    # --- history ---

    def record(self, result: StrokeResult) -> bool:
        """Append a result; duplicates and out-of-range indices are rejected, not raised."""
        if result.index in self._indices:
            print(f"[WARN] Stroke {result.index} already recorded; ignoring duplicate result.")
            xtrace("record_rejected", {"index": result.index, "reason": "duplicate"})
            return False
        if not (0 <= result.index < self.expected_strokes):
            print(f"[WARN] Stroke index {result.index} outside 0..{self.expected_strokes - 1}; ignoring.")
            xtrace("record_rejected", {"index": result.index, "reason": "out_of_range"})
            return False
        self._history.append(result)
        self._indices.add(result.index)
        return True

    @property
    def history(self) -> Tuple[StrokeResult, ...]:
        """Results in recording order."""
        return tuple(self._history)

    @property
    def results(self) -> Tuple[StrokeResult, ...]:
        """Results ordered by stroke index."""
        return tuple(sorted(self._history, key=lambda r: r.index))

    @property
    def recorded_count(self) -> int:
        return len(self._history)

    @property
    def is_complete(self) -> bool:
        return self.expected_strokes > 0 and len(self._indices) == self.expected_strokes

    def get(self, index: int) -> Optional[StrokeResult]:
        for r in self._history:
            if r.index == index:
                return r
        return None

    # --- rendering ---

    def stroke_color(self, index: int) -> Optional[StrokeColor]:
        r = self.get(index)
        if r is None:
            return None
        return revision_color(r.shape_accuracy, self.policy.revision_threshold)

    def colors(self) -> Dict[int, StrokeColor]:
        return {r.index: revision_color(r.shape_accuracy, self.policy.revision_threshold) for r in self.results}

    # --- scoring ---

    def final_score(self) -> SessionScore:
        """Weighted score over whatever was recorded (partial characters included)."""
        n = len(self._history)
        if n == 0:
            return SessionScore(
                shape_accuracy=0.0,
                naming_correctness=0.0,
                concurrency_score=0.0,
                overall=0.0,
                summary_message=NO_DATA_MESSAGE,
                recorded=0,
                expected=self.expected_strokes,
            )

        shape_avg = sum(r.shape_accuracy for r in self._history) / n
        matched = sum(1 for r in self._history if r.outcome is SpeechOutcome.MATCHED)
        naming = matched / n * 100.0
        with_speech = [r for r in self._history if r.speech_attempted]
        concurrency = sum(r.concurrency_score for r in with_speech) / len(with_speech) if with_speech else 0.0

        w = self.policy.weights
        overall = shape_avg * w["shape"] + naming * w["naming"] + concurrency * w["concurrency"]
        overall = max(0.0, min(100.0, overall))

        ratio = n / self.expected_strokes if self.expected_strokes > 0 else 1.0
        message = summary_message(
            overall,
            shape_avg,
            naming,
            concurrency,
            completion_ratio=ratio,
            had_speech=bool(with_speech),
            encourage_below=self.policy.encourage_below_ratio,
        )
        return SessionScore(
            shape_accuracy=shape_avg,
            naming_correctness=naming,
            concurrency_score=concurrency,
            overall=overall,
            summary_message=message,
            recorded=n,
            expected=self.expected_strokes,
            speech_attempts=len(with_speech),
        )
