from __future__ import annotations

"""Inbound event records and a tiny pub/sub bus for outbound results.

Collaborators never touch session state directly: every callback becomes
one of the records below on the session's inbox and is applied on the
consumer thread, one at a time.
"""

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.attempt import StrokeColor, StrokeFeedback, StrokeResult
from ..models.character import Point
from .explain import trace as xtrace

# Outbound topics
STROKE_REJECTED = "stroke_rejected"
STROKE_SCORED = "stroke_scored"
EVENT_DROPPED = "event_dropped"
CHARACTER_COMPLETED = "character_completed"


class EventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, handler: Callable[[Any], None]) -> None:
        self._subs.setdefault(event, []).append(handler)

    def emit(self, event: str, payload: Any) -> None:
        for h in self._subs.get(event, []):
            try:
                h(payload)
            except Exception as e:
                # a failing subscriber must not stall scoring
                print(f"[WARN] {event} handler failed: {e!r}")
                xtrace("handler_failed", {"event": event, "error": repr(e)})


# --- Inbound (collaborator -> session) ---


@dataclass(frozen=True)
class InboundEvent:
    generation: int
    index: Optional[int]

    @property
    def kind(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class StrokeBegan(InboundEvent):
    at: float = 0.0


@dataclass(frozen=True)
class StrokeEnded(InboundEvent):
    at: float = 0.0
    points: Tuple[Point, ...] = ()


@dataclass(frozen=True)
class SpeechStarted(InboundEvent):
    at: float = 0.0


@dataclass(frozen=True)
class SpeechStopped(InboundEvent):
    at: float = 0.0


@dataclass(frozen=True)
class SpeechFinalized(InboundEvent):
    transcript: str = ""
    matches_expected: Optional[bool] = None
    confidence: float = 1.0
    started_at: float = 0.0
    ended_at: float = 0.0


@dataclass(frozen=True)
class SpeechFailed(InboundEvent):
    reason: str = "error"


@dataclass(frozen=True)
class GraceExpired(InboundEvent):
    token: int = 0


@dataclass(frozen=True)
class ShapeScored(InboundEvent):
    future: Optional[Future] = field(default=None, compare=False)


# --- Outbound payloads ---


@dataclass(frozen=True)
class StrokeOutcome:
    result: StrokeResult
    feedback: StrokeFeedback
    color: StrokeColor


@dataclass(frozen=True)
class StrokeRejected:
    index: int
    reason: str


@dataclass(frozen=True)
class DroppedEvent:
    kind: str
    index: Optional[int]
    reason: str
