from .stroke_type import StrokeType
from .character import Character, ExpectedStroke, Point, Rect
from .attempt import (
    DrawnStrokeSample,
    SessionScore,
    SpeechOutcome,
    SpeechSegment,
    StrokeAttempt,
    StrokeColor,
    StrokeFeedback,
    StrokeResult,
)

__all__ = [
    "StrokeType",
    "Character",
    "ExpectedStroke",
    "Point",
    "Rect",
    "DrawnStrokeSample",
    "SessionScore",
    "SpeechOutcome",
    "SpeechSegment",
    "StrokeAttempt",
    "StrokeColor",
    "StrokeFeedback",
    "StrokeResult",
]
