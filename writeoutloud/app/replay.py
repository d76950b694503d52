from __future__ import annotations

"""Deterministic replay of recorded drawing/speech event scripts.

A script is YAML::

    character: kou
    events:
      - {t: 0.00, type: stroke_begin}
      - {t: 0.05, type: speech_started}
      - {t: 0.60, type: stroke_end, expected: true}
      - {t: 0.70, type: speech_finalized, transcript: shu, start: 0.05, end: 0.65}

``t`` is script time in seconds. Event types mirror the session's inbound
surface; ``index`` tags an event with a stroke index. ``stroke_end`` takes
either ``points`` or ``expected: true`` (the expected path of the open
stroke, optionally moved by ``offset: [dx, dy]`` and ``scale: k``).
Timers run on script time, so grace periods expire identically every run.
"""

from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import yaml

from ..models.attempt import SessionScore, StrokeResult
from ..models.character import Character, Point
from .events import CHARACTER_COMPLETED, STROKE_SCORED, EventBus, StrokeOutcome
from .session_manager import PracticeSession
from .timers import ManualTimerFactory

EVENT_TYPES = (
    "stroke_begin",
    "stroke_end",
    "speech_started",
    "speech_stopped",
    "speech_finalized",
    "speech_error",
    "speech_unavailable",
)


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        fut: Future = Future()
        try:
            fut.set_result(fn(*args, **kwargs))
        except Exception as e:
            fut.set_exception(e)
        return fut


@dataclass(frozen=True)
class ScriptEvent:
    t: float
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReplayScript:
    character: Optional[str]
    events: List[ScriptEvent]


@dataclass
class ReplayReport:
    character: Character
    score: SessionScore
    results: List[StrokeResult]
    outcomes: List[StrokeOutcome]


def parse_script(data: Dict[str, Any]) -> ReplayScript:
    events: List[ScriptEvent] = []
    for i, raw in enumerate(data.get("events") or []):
        if not isinstance(raw, dict):
            raise ValueError(f"event #{i}: expected a mapping, got {type(raw).__name__}")
        kind = str(raw.get("type", ""))
        if kind not in EVENT_TYPES:
            raise ValueError(f"event #{i}: unknown type '{kind}'")
        if "t" not in raw:
            raise ValueError(f"event #{i}: missing 't'")
        payload = {k: v for k, v in raw.items() if k not in ("t", "type")}
        events.append(ScriptEvent(t=float(raw["t"]), type=kind, data=payload))
    # stable: equal timestamps keep file order
    events.sort(key=lambda e: e.t)
    character = data.get("character")
    return ReplayScript(character=str(character) if character is not None else None, events=events)


def load_script(path: str) -> ReplayScript:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return parse_script(data)


def _points_for(ev: ScriptEvent, character: Character, current: Optional[int]) -> List[Point]:
    if "points" in ev.data:
        return [(float(p[0]), float(p[1])) for p in (ev.data.get("points") or [])]
    if not ev.data.get("expected"):
        return []
    index = ev.data.get("index", current)
    if index is None:
        return []
    stroke = character.expected_stroke(int(index))
    dx, dy = ev.data.get("offset", (0.0, 0.0))
    k = float(ev.data.get("scale", 1.0))
    return [(x * k + float(dx), y * k + float(dy)) for x, y in stroke.path]


def _dispatch(ev: ScriptEvent, session: PracticeSession, character: Character) -> None:
    index = ev.data.get("index")
    index = int(index) if index is not None else None
    if ev.type == "stroke_begin":
        session.on_stroke_begin(ev.t, stroke_index=index)
    elif ev.type == "stroke_end":
        session.on_stroke_end(ev.t, _points_for(ev, character, session.current_index), stroke_index=index)
    elif ev.type == "speech_started":
        session.on_speech_started(ev.t, stroke_index=index)
    elif ev.type == "speech_stopped":
        session.on_speech_stopped(ev.t, stroke_index=index)
    elif ev.type == "speech_finalized":
        matches = ev.data.get("matches")
        session.on_speech_finalized(
            str(ev.data.get("transcript", "")),
            bool(matches) if matches is not None else None,
            float(ev.data.get("confidence", 1.0)),
            float(ev.data.get("start", ev.t)),
            float(ev.data.get("end", ev.t)),
            stroke_index=index,
        )
    elif ev.type == "speech_error":
        session.on_speech_error(stroke_index=index)
    elif ev.type == "speech_unavailable":
        session.on_speech_unavailable(stroke_index=index)


def run_replay(
    script: ReplayScript,
    character: Character,
    cfg: Optional[Dict[str, Any]] = None,
    *,
    bus: Optional[EventBus] = None,
) -> ReplayReport:
    """Feed a script through a fresh session and return the final score."""
    bus = bus or EventBus()
    outcomes: List[StrokeOutcome] = []
    completed: List[SessionScore] = []
    bus.subscribe(STROKE_SCORED, outcomes.append)
    bus.subscribe(CHARACTER_COMPLETED, completed.append)

    start = script.events[0].t if script.events else 0.0
    timers = ManualTimerFactory(now=start)
    session = PracticeSession(cfg, bus=bus, executor=InlineExecutor(), timer_factory=timers)
    try:
        session.select_character(character)
        for ev in script.events:
            timers.advance_to(ev.t)
            session.pump()
            _dispatch(ev, session, character)
            session.pump()
        timers.fire_all()
        session.pump()
        score = completed[-1] if completed else session.finish()
        results = session.results()
    finally:
        session.close()
    return ReplayReport(character=character, score=score, results=results, outcomes=outcomes)
