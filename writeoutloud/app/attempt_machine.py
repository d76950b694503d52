from __future__ import annotations

"""Per-stroke attempt lifecycle.

    AWAITING_DRAW -> AWAITING_SPEECH -> READY -> SCORED

Drawing and speech arrive on independent timelines, so speech may be
finalized (or fail) while the stroke is still being drawn; in that case the
pen-up moves straight to READY. By the time READY is reached the speech
outcome is always MATCHED, NOT_MATCHED or UNAVAILABLE, never PENDING.

The machine is plain data plus transitions: no clocks, threads or I/O.
The session arms timers and decides when to call ``expire``.
"""

from enum import Enum
from typing import Optional, Sequence

from ..analysis.timing import concurrency_score
from ..models.attempt import DrawnStrokeSample, SpeechOutcome, SpeechSegment, StrokeAttempt, StrokeResult
from ..models.character import ExpectedStroke, Point


class AttemptState(str, Enum):
    AWAITING_DRAW = "awaiting_draw"
    AWAITING_SPEECH = "awaiting_speech_or_timeout"
    READY = "ready"
    SCORED = "scored"


class InvalidTransition(RuntimeError):
    pass


class StrokeAttemptMachine:
    def __init__(self, index: int, expected: ExpectedStroke) -> None:
        self.index = index
        self.expected = expected
        self.attempt = StrokeAttempt(index=index, expected=expected)
        self.state = AttemptState.AWAITING_DRAW
        self.result: Optional[StrokeResult] = None

    # --- queries ---

    @property
    def accepting_input(self) -> bool:
        return self.state in (AttemptState.AWAITING_DRAW, AttemptState.AWAITING_SPEECH)

    @property
    def speech_resolved(self) -> bool:
        return self.attempt.outcome is not SpeechOutcome.PENDING

    @property
    def waiting_for_speech_start(self) -> bool:
        """True while only the short grace period applies (no speech onset yet)."""
        return self.state is AttemptState.AWAITING_SPEECH and self.attempt.speech_started_at is None

    # --- drawing ---

    def begin_stroke(self, at: float) -> bool:
        if self.state is not AttemptState.AWAITING_DRAW:
            return False
        self.attempt.stroke_started_at = at
        return True

    def end_stroke(self, at: float, points: Sequence[Point]) -> bool:
        """Accept the drawn path; False (and a fresh attempt) when it is invalid."""
        if self.state is not AttemptState.AWAITING_DRAW:
            return False
        started = self.attempt.stroke_started_at if self.attempt.stroke_started_at is not None else at
        sample = DrawnStrokeSample(
            stroke_index=self.index,
            points=tuple((float(p[0]), float(p[1])) for p in points),
            started_at=started,
            ended_at=at,
        )
        if not sample.is_valid:
            self.reset()
            return False
        self.attempt.drawn = sample
        self.state = AttemptState.READY if self.speech_resolved else AttemptState.AWAITING_SPEECH
        return True

    def reset(self) -> None:
        """Invalidate the attempt; the same index must be redrawn (and re-spoken)."""
        self.attempt = StrokeAttempt(index=self.index, expected=self.expected)
        self.state = AttemptState.AWAITING_DRAW

    # --- speech ---

    def speech_started(self, at: float) -> bool:
        if not self.accepting_input or self.speech_resolved:
            return False
        if self.attempt.speech_started_at is None:
            self.attempt.speech_started_at = at
        return True

    def speech_finalized(self, segment: SpeechSegment) -> bool:
        if not self.accepting_input or self.speech_resolved:
            return False
        self.attempt.speech = segment
        if self.attempt.speech_started_at is None:
            self.attempt.speech_started_at = segment.started_at
        self.attempt.outcome = SpeechOutcome.MATCHED if segment.matches_expected else SpeechOutcome.NOT_MATCHED
        self._advance_if_drawn()
        return True

    def speech_failed(self) -> bool:
        """Speech engine error or unavailability."""
        if not self.accepting_input or self.speech_resolved:
            return False
        self.attempt.outcome = SpeechOutcome.UNAVAILABLE
        self._advance_if_drawn()
        return True

    def expire(self) -> bool:
        """Grace period over: resolve speech without a transcription.

        No onset at all counts as not attempted (NOT_MATCHED); an utterance
        that started but never finalized counts as UNAVAILABLE.
        """
        if self.state is not AttemptState.AWAITING_SPEECH:
            return False
        if self.attempt.speech_started_at is None:
            self.attempt.outcome = SpeechOutcome.NOT_MATCHED
        else:
            self.attempt.outcome = SpeechOutcome.UNAVAILABLE
        self.state = AttemptState.READY
        return True

    def _advance_if_drawn(self) -> None:
        if self.state is AttemptState.AWAITING_SPEECH:
            self.state = AttemptState.READY

    # --- scoring ---

    def mark_scored(self, shape_accuracy: float) -> StrokeResult:
        if self.state is not AttemptState.READY or self.attempt.drawn is None:
            raise InvalidTransition(f"stroke {self.index} cannot be scored from state {self.state.value}")
        drawn = self.attempt.drawn
        self.result = StrokeResult(
            index=self.index,
            stroke_type=self.expected.stroke_type,
            name=self.expected.name,
            shape_accuracy=float(min(100.0, max(0.0, shape_accuracy))),
            concurrency_score=concurrency_score(drawn.started_at, drawn.ended_at, self.attempt.speech),
            outcome=self.attempt.outcome,
            speech=self.attempt.speech,
            speech_attempted=self.attempt.speech_attempted,
            stroke_started_at=drawn.started_at,
            stroke_ended_at=drawn.ended_at,
        )
        self.state = AttemptState.SCORED
        return self.result
