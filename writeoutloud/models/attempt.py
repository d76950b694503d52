from __future__ import annotations

"""Per-stroke attempt records, results and session-level scores.

Timestamps are plain float seconds on a single clock shared by the drawing
and speech collaborators (e.g. ``time.monotonic()`` or epoch seconds).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .character import ExpectedStroke, Point
from .stroke_type import StrokeType


class SpeechOutcome(str, Enum):
    PENDING = "pending"
    MATCHED = "matched"
    NOT_MATCHED = "not_matched"
    UNAVAILABLE = "unavailable"


class StrokeColor(str, Enum):
    ACCEPTABLE = "acceptable"
    NEEDS_REVISION = "needs_revision"


@dataclass(frozen=True)
class DrawnStrokeSample:
    stroke_index: int
    points: Tuple[Point, ...]
    started_at: float
    ended_at: float

    @property
    def is_valid(self) -> bool:
        return len(self.points) > 0 and self.started_at <= self.ended_at

    @property
    def duration(self) -> float:
        return max(0.0, self.ended_at - self.started_at)


@dataclass(frozen=True)
class SpeechSegment:
    started_at: float
    ended_at: float
    transcript: str
    matches_expected: bool
    confidence: float = 1.0

    def __post_init__(self) -> None:
        if not (0.0 <= float(self.confidence) <= 1.0):
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")

    @property
    def duration(self) -> float:
        return max(0.0, self.ended_at - self.started_at)


@dataclass
class StrokeAttempt:
    """The open unit of work for one stroke index; owned by the attempt machine."""

    index: int
    expected: ExpectedStroke
    stroke_started_at: Optional[float] = None
    drawn: Optional[DrawnStrokeSample] = None
    speech_started_at: Optional[float] = None
    speech: Optional[SpeechSegment] = None
    outcome: SpeechOutcome = SpeechOutcome.PENDING

    @property
    def speech_attempted(self) -> bool:
        return self.speech_started_at is not None or self.speech is not None


@dataclass(frozen=True)
class StrokeResult:
    index: int
    stroke_type: StrokeType
    name: str
    shape_accuracy: float
    concurrency_score: float
    outcome: SpeechOutcome
    speech: Optional[SpeechSegment]
    speech_attempted: bool
    stroke_started_at: float
    stroke_ended_at: float

    def __post_init__(self) -> None:
        if self.outcome is SpeechOutcome.PENDING:
            raise ValueError("a scored stroke cannot carry a pending speech outcome")

    @property
    def heard(self) -> str:
        return self.speech.transcript if self.speech is not None else ""


@dataclass(frozen=True)
class StrokeFeedback:
    shape_message: str
    naming_message: str
    timing_message: str = ""


@dataclass(frozen=True)
class SessionScore:
    shape_accuracy: float
    naming_correctness: float
    concurrency_score: float
    overall: float
    summary_message: str
    recorded: int
    expected: int
    speech_attempts: int = 0

    @property
    def completion_ratio(self) -> float:
        if self.expected <= 0:
            return 0.0
        return self.recorded / self.expected
