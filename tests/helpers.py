from __future__ import annotations

"""Shared fixtures for the test suites."""

from concurrent.futures import Executor, Future
from typing import Any, Callable, Dict, List, Optional, Tuple

from writeoutloud.app.events import (
    CHARACTER_COMPLETED,
    EVENT_DROPPED,
    STROKE_REJECTED,
    STROKE_SCORED,
    EventBus,
)
from writeoutloud.models.attempt import SpeechOutcome, SpeechSegment, StrokeResult
from writeoutloud.models.character import Character, ExpectedStroke
from writeoutloud.models.stroke_type import StrokeType

KOU = Character(
    id="kou",
    glyph="口",
    pinyin="kǒu",
    meaning="mouth",
    strokes=(
        ExpectedStroke.build(1, StrokeType.SHU, "shù", [(100, 100), (100, 400)]),
        ExpectedStroke.build(2, StrokeType.HENGZHE, "héngzhé", [(100, 100), (400, 100), (400, 400)]),
        ExpectedStroke.build(3, StrokeType.HENG, "héng", [(100, 400), (400, 400)]),
    ),
)

REN = Character(
    id="ren",
    glyph="人",
    pinyin="rén",
    meaning="person",
    strokes=(
        ExpectedStroke.build(1, StrokeType.PIE, "piě", [(250, 100), (175, 260), (100, 400)]),
        ExpectedStroke.build(2, StrokeType.NA, "nà", [(250, 100), (325, 260), (400, 400)]),
    ),
)


def quiet_config() -> Dict[str, Any]:
    return {"stats": {"enabled": False}}


class DeferredExecutor(Executor):
    """Holds submitted work until ``run_all`` is called."""

    def __init__(self) -> None:
        self.pending: List[Tuple[Future, Callable[..., Any], tuple, dict]] = []

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        fut: Future = Future()
        self.pending.append((fut, fn, args, kwargs))
        return fut

    def run_all(self) -> int:
        done = 0
        while self.pending:
            fut, fn, args, kwargs = self.pending.pop(0)
            try:
                fut.set_result(fn(*args, **kwargs))
            except Exception as e:
                fut.set_exception(e)
            done += 1
        return done


class Recorder:
    """Collects everything the session publishes."""

    def __init__(self, bus: EventBus) -> None:
        self.scored: List[Any] = []
        self.rejected: List[Any] = []
        self.dropped: List[Any] = []
        self.completed: List[Any] = []
        bus.subscribe(STROKE_SCORED, self.scored.append)
        bus.subscribe(STROKE_REJECTED, self.rejected.append)
        bus.subscribe(EVENT_DROPPED, self.dropped.append)
        bus.subscribe(CHARACTER_COMPLETED, self.completed.append)

    def results(self) -> List[StrokeResult]:
        return [o.result for o in self.scored]

    def dropped_reasons(self) -> List[str]:
        return [d.reason for d in self.dropped]


def make_result(
    index: int,
    shape: float = 80.0,
    concurrency: float = 0.0,
    outcome: SpeechOutcome = SpeechOutcome.UNAVAILABLE,
    attempted: bool = False,
    transcript: Optional[str] = None,
    name: str = "héng",
) -> StrokeResult:
    speech = None
    if transcript is not None:
        speech = SpeechSegment(0.0, 1.0, transcript, outcome is SpeechOutcome.MATCHED)
    return StrokeResult(
        index=index,
        stroke_type=StrokeType.HENG,
        name=name,
        shape_accuracy=shape,
        concurrency_score=concurrency,
        outcome=outcome,
        speech=speech,
        speech_attempted=attempted,
        stroke_started_at=0.0,
        stroke_ended_at=1.0,
    )
