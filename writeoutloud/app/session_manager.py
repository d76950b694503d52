from __future__ import annotations

"""Practice session: fuses drawing and speech events per stroke.

Collaborator callbacks (``on_*``) may be called from any thread; they only
enqueue an event. ``pump``/``drain`` apply queued events one at a time on
the caller's thread, which is the only place session state changes.
Shape scoring runs on an executor and its completion comes back through the
same queue, so ``SessionAggregator.record`` always runs on the consumer.

Exactly one stroke attempt is open (accepting input) at a time. Once its
speech is resolved it closes, its shape computation is submitted and the
next index opens. Events explicitly tagged with another index are dropped
as stale; untagged events apply to the open attempt, except speech that
started before an earlier attempt was closed mid-utterance.
"""

import queue
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from ..analysis.feedback import generate_stroke_feedback, revision_color
from ..analysis.shape import ShapeBreakdown, score_breakdown
from ..analysis.timing import speech_timing
from ..config.config import validate_config, with_defaults
from ..config.settings import ScoringConfig, SessionPolicy, TimingConfig
from ..models.attempt import SessionScore, SpeechSegment, StrokeColor, StrokeFeedback, StrokeResult
from ..models.character import Character, Point
from ..results.aggregator import SessionAggregator
from ..speech.matching import matches_expected
from .attempt_machine import AttemptState, InvalidTransition, StrokeAttemptMachine
from .events import (
    CHARACTER_COMPLETED,
    EVENT_DROPPED,
    STROKE_REJECTED,
    STROKE_SCORED,
    DroppedEvent,
    EventBus,
    GraceExpired,
    InboundEvent,
    ShapeScored,
    SpeechFailed,
    SpeechFinalized,
    SpeechStarted,
    SpeechStopped,
    StrokeBegan,
    StrokeEnded,
    StrokeOutcome,
    StrokeRejected,
)
from .explain import trace as xtrace
from .timers import ThreadingTimerFactory, TimerHandle


@dataclass(frozen=True)
class SessionContext:
    session_id: str
    started_at: datetime
    character_id: str
    glyph: str
    stroke_count: int


@dataclass
class RuntimeState:
    generation: int = 0
    timer_token: int = 0
    completed: bool = False
    ended_at: Optional[datetime] = None
    feedback: Dict[int, StrokeFeedback] = field(default_factory=dict)
    # close time of an attempt whose utterance started but never finalized
    unfinished_speech_before: Optional[float] = None


class PracticeSession:
    def __init__(
        self,
        cfg: Optional[Dict[str, Any]] = None,
        *,
        bus: Optional[EventBus] = None,
        executor: Optional[Executor] = None,
        timer_factory: Any = None,
    ) -> None:
        self.cfg = validate_config(with_defaults(cfg or {}))
        self.scoring = ScoringConfig.from_cfg(self.cfg)
        self.timing = TimingConfig.from_cfg(self.cfg)
        self.policy = SessionPolicy.from_cfg(self.cfg)
        self.bus = bus or EventBus()
        self._own_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.policy.shape_workers, thread_name_prefix="shape-score"
        )
        self._timers = timer_factory or ThreadingTimerFactory()
        self._inbox: "queue.Queue[InboundEvent]" = queue.Queue()

        self.ctx: Optional[SessionContext] = None
        self.state = RuntimeState()
        self.character: Optional[Character] = None
        self.aggregator: Optional[SessionAggregator] = None
        self._machine: Optional[StrokeAttemptMachine] = None
        self._in_flight: Dict[int, StrokeAttemptMachine] = {}
        self._breakdowns: Dict[int, ShapeBreakdown] = {}
        self._timer: Optional[TimerHandle] = None

    # --- lifecycle ---

    def select_character(self, character: Character) -> None:
        """Start a fresh attempt at a character, discarding everything in flight."""
        self._cancel_timer()
        generation = self.state.generation + 1
        self.state = RuntimeState(generation=generation)
        self.character = character
        self.aggregator = SessionAggregator(character.stroke_count, self.policy)
        self._in_flight = {}
        self._breakdowns = {}
        self._machine = self._open(0)
        self.ctx = SessionContext(
            session_id=str(uuid4()),
            started_at=datetime.now(timezone.utc),
            character_id=character.id,
            glyph=character.glyph,
            stroke_count=character.stroke_count,
        )
        xtrace(
            "character_selected",
            {"character": character.glyph, "strokes": character.stroke_count, "generation": generation},
        )

    def close(self) -> None:
        self._cancel_timer()
        if self._own_executor:
            self._executor.shutdown(wait=False)

    def __enter__(self) -> "PracticeSession":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # --- queries ---

    @property
    def current_index(self) -> Optional[int]:
        """Index of the open attempt, or None when every stroke has been drawn."""
        return self._machine.index if self._machine is not None else None

    @property
    def current_state(self) -> Optional[AttemptState]:
        return self._machine.state if self._machine is not None else None

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def completed(self) -> bool:
        return self.state.completed

    def stroke_color(self, index: int) -> Optional[StrokeColor]:
        if self.aggregator is None:
            return None
        return self.aggregator.stroke_color(index)

    def stroke_colors(self) -> Dict[int, StrokeColor]:
        return self.aggregator.colors() if self.aggregator is not None else {}

    def feedback_for(self, index: int) -> Optional[StrokeFeedback]:
        return self.state.feedback.get(index)

    def breakdown_for(self, index: int) -> Optional[ShapeBreakdown]:
        return self._breakdowns.get(index)

    def results(self) -> List[StrokeResult]:
        """Recorded stroke results in arrival order."""
        return list(self.aggregator.results) if self.aggregator is not None else []

    # --- inbound surface (any thread) ---

    def on_stroke_begin(self, timestamp: float, *, stroke_index: Optional[int] = None) -> None:
        self._post(StrokeBegan(self.state.generation, stroke_index, at=float(timestamp)))

    def on_stroke_end(
        self, timestamp: float, points: Sequence[Point], *, stroke_index: Optional[int] = None
    ) -> None:
        pts = tuple((float(p[0]), float(p[1])) for p in points)
        self._post(StrokeEnded(self.state.generation, stroke_index, at=float(timestamp), points=pts))

    def on_speech_started(self, timestamp: float, *, stroke_index: Optional[int] = None) -> None:
        self._post(SpeechStarted(self.state.generation, stroke_index, at=float(timestamp)))

    def on_speech_stopped(self, timestamp: float, *, stroke_index: Optional[int] = None) -> None:
        self._post(SpeechStopped(self.state.generation, stroke_index, at=float(timestamp)))

    def on_speech_finalized(
        self,
        transcript: str,
        matches_expected: Optional[bool],
        confidence: float,
        start: float,
        end: float,
        *,
        stroke_index: Optional[int] = None,
    ) -> None:
        self._post(
            SpeechFinalized(
                self.state.generation,
                stroke_index,
                transcript=transcript or "",
                matches_expected=matches_expected,
                confidence=float(confidence),
                started_at=float(start),
                ended_at=float(end),
            )
        )

    def on_speech_error(self, *, stroke_index: Optional[int] = None) -> None:
        self._post(SpeechFailed(self.state.generation, stroke_index, reason="error"))

    def on_speech_unavailable(self, *, stroke_index: Optional[int] = None) -> None:
        self._post(SpeechFailed(self.state.generation, stroke_index, reason="unavailable"))

    def _post(self, event: InboundEvent) -> None:
        self._inbox.put(event)

    # --- consumer ---

    def pump(self) -> int:
        """Apply every queued event on this thread; returns how many were handled."""
        handled = 0
        while True:
            try:
                event = self._inbox.get_nowait()
            except queue.Empty:
                return handled
            self._handle(event)
            handled += 1

    def drain(self, timeout: float = 5.0) -> bool:
        """Pump until no shape computation is in flight; False on timeout."""
        deadline = time.monotonic() + timeout
        self.pump()
        while self._in_flight:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            try:
                event = self._inbox.get(timeout=remaining)
            except queue.Empty:
                return False
            self._handle(event)
            self.pump()
        return True

    def finish(self, timeout: float = 5.0) -> SessionScore:
        """Score the character now, partial or not.

        A drawn stroke still waiting for speech is resolved and scored; an
        attempt that was never drawn is abandoned.
        """
        if self.aggregator is None:
            return SessionAggregator(0, self.policy).final_score()
        self.pump()
        machine = self._machine
        if machine is not None and machine.state is AttemptState.AWAITING_SPEECH:
            machine.expire()
            self._close(machine)
        self.drain(timeout)
        self._cancel_timer()
        if self._machine is not None:
            xtrace("attempt_abandoned", {"index": self._machine.index, "state": self._machine.state.value})
            self._machine = None
        if self.state.completed:
            return self.aggregator.final_score()
        return self._complete(self.aggregator)

    def _handle(self, event: InboundEvent) -> None:
        if event.generation != self.state.generation:
            self._drop(event, "previous_character")
            return
        if isinstance(event, ShapeScored):
            self._on_shape_scored(event)
            return
        if isinstance(event, GraceExpired):
            self._on_grace_expired(event)
            return

        machine = self._machine
        if machine is None:
            self._drop(event, "no_open_attempt")
            return
        if event.index is not None and event.index != machine.index and not self._hands_over(event, machine):
            self._drop(event, "stale_index")
            return
        if event.index is None and self._is_stale_speech(event, machine):
            self._drop(event, "stale_speech")
            return

        handler: Dict[type, Callable[[Any, StrokeAttemptMachine], None]] = {
            StrokeBegan: self._on_stroke_began,
            StrokeEnded: self._on_stroke_ended,
            SpeechStarted: self._on_speech_started,
            SpeechStopped: self._on_speech_stopped,
            SpeechFinalized: self._on_speech_finalized,
            SpeechFailed: self._on_speech_failed,
        }
        handler[type(event)](event, machine)

    @staticmethod
    def _hands_over(event: InboundEvent, machine: StrokeAttemptMachine) -> bool:
        """Pen-down tagged for the next stroke while this one still waits for speech."""
        return (
            isinstance(event, StrokeBegan)
            and machine.state is AttemptState.AWAITING_SPEECH
            and event.index == machine.index + 1
        )

    def _is_stale_speech(self, event: InboundEvent, machine: StrokeAttemptMachine) -> bool:
        """Untagged speech left over from an attempt closed mid-utterance.

        Anything timestamped before that attempt closed belongs to it. A
        failure report carries no time, so it is the old utterance's unless
        the open attempt has heard an onset of its own.
        """
        before = self.state.unfinished_speech_before
        if before is None:
            return False
        if isinstance(event, SpeechStarted):
            return event.at < before
        if isinstance(event, SpeechFinalized):
            stale = min(event.started_at, event.ended_at) < before
        elif isinstance(event, SpeechFailed):
            stale = machine.attempt.speech_started_at is None
        else:
            return False
        if stale:
            # the old utterance is resolved; nothing more will follow it
            self.state.unfinished_speech_before = None
        return stale

    def _drop(self, event: InboundEvent, reason: str) -> None:
        xtrace("event_dropped", {"kind": event.kind, "index": event.index, "reason": reason})
        self.bus.emit(EVENT_DROPPED, DroppedEvent(kind=event.kind, index=event.index, reason=reason))

    # --- event handlers ---

    def _on_stroke_began(self, event: StrokeBegan, machine: StrokeAttemptMachine) -> None:
        if machine.state is AttemptState.AWAITING_SPEECH:
            # Pen-down for the next stroke: stop waiting for this one's speech.
            machine.expire()
            xtrace("speech_force_resolved", {"index": machine.index, "outcome": machine.attempt.outcome.value})
            self._close(machine)
            self._note_unfinished_speech(machine, event.at)
            machine = self._machine
            if machine is None:
                self._drop(event, "no_open_attempt")
                return
        machine.begin_stroke(event.at)

    def _on_stroke_ended(self, event: StrokeEnded, machine: StrokeAttemptMachine) -> None:
        if machine.state is not AttemptState.AWAITING_DRAW:
            self._drop(event, "already_drawn")
            return
        if not machine.end_stroke(event.at, event.points):
            reason = "empty_path" if not event.points else "invalid_interval"
            xtrace("stroke_rejected", {"index": machine.index, "reason": reason})
            self.bus.emit(STROKE_REJECTED, StrokeRejected(index=machine.index, reason=reason))
            return
        if machine.state is AttemptState.READY:
            self._close(machine)
        else:
            self._arm_timer(machine)

    def _on_speech_started(self, event: SpeechStarted, machine: StrokeAttemptMachine) -> None:
        if not machine.speech_started(event.at):
            self._drop(event, "speech_already_resolved")
            return
        if machine.state is AttemptState.AWAITING_SPEECH:
            self._arm_timer(machine)

    def _on_speech_stopped(self, event: SpeechStopped, machine: StrokeAttemptMachine) -> None:
        xtrace("speech_stopped", {"index": machine.index, "at": event.at})

    def _on_speech_finalized(self, event: SpeechFinalized, machine: StrokeAttemptMachine) -> None:
        matched = event.matches_expected
        if matched is None:
            matched = matches_expected(event.transcript, machine.expected.name)
        start, end = event.started_at, event.ended_at
        if start > end:
            start, end = end, start
        segment = SpeechSegment(
            started_at=start,
            ended_at=end,
            transcript=event.transcript,
            matches_expected=bool(matched),
            confidence=min(1.0, max(0.0, event.confidence)),
        )
        if not machine.speech_finalized(segment):
            self._drop(event, "speech_already_resolved")
            return
        xtrace("speech_finalized", {"index": machine.index, "transcript": event.transcript, "matched": bool(matched)})
        if machine.state is AttemptState.READY:
            self._close(machine)

    def _on_speech_failed(self, event: SpeechFailed, machine: StrokeAttemptMachine) -> None:
        if not machine.speech_failed():
            self._drop(event, "speech_already_resolved")
            return
        xtrace("speech_failed", {"index": machine.index, "reason": event.reason})
        if machine.state is AttemptState.READY:
            self._close(machine)

    def _on_grace_expired(self, event: GraceExpired) -> None:
        machine = self._machine
        if machine is None or machine.index != event.index or event.token != self.state.timer_token:
            self._drop(event, "timer_superseded")
            return
        if machine.expire():
            xtrace("grace_expired", {"index": machine.index, "outcome": machine.attempt.outcome.value})
            self._close(machine)
            onset = machine.attempt.speech_started_at
            drawn = machine.attempt.drawn
            if onset is not None and drawn is not None:
                # the finalize wait was armed at pen-up or at a later onset
                closed_at = max(drawn.ended_at, onset) + self.timing.speech_finalize_timeout_s
                self._note_unfinished_speech(machine, closed_at)

    def _note_unfinished_speech(self, machine: StrokeAttemptMachine, closed_at: float) -> None:
        if machine.attempt.speech_started_at is None or machine.attempt.speech is not None:
            return
        self.state.unfinished_speech_before = closed_at
        xtrace("speech_left_open", {"index": machine.index, "closed_at": closed_at})

    # --- timers ---

    def _arm_timer(self, machine: StrokeAttemptMachine) -> None:
        self._cancel_timer()
        self.state.timer_token += 1
        token = self.state.timer_token
        generation = self.state.generation
        index = machine.index
        if machine.waiting_for_speech_start:
            delay = self.timing.speech_grace_s
        else:
            delay = self.timing.speech_finalize_timeout_s
        self._timer = self._timers.start(delay, lambda: self._post(GraceExpired(generation, index, token=token)))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # --- scoring ---

    def _open(self, index: int) -> Optional[StrokeAttemptMachine]:
        if self.character is None or index >= self.character.stroke_count:
            return None
        return StrokeAttemptMachine(index, self.character.expected_stroke(index))

    def _close(self, machine: StrokeAttemptMachine) -> None:
        """Hand a READY attempt to the shape scorer and open the next index."""
        self._cancel_timer()
        drawn = machine.attempt.drawn
        if drawn is None:
            raise InvalidTransition(f"stroke {machine.index} cannot close before it is drawn")
        self.state.unfinished_speech_before = None
        index = machine.index
        generation = self.state.generation
        self._in_flight[index] = machine
        future = self._executor.submit(
            score_breakdown, drawn.points, machine.expected.path, machine.expected.stroke_type, self.scoring
        )
        future.add_done_callback(lambda f: self._post(ShapeScored(generation, index, future=f)))
        self._machine = self._open(index + 1)

    def _on_shape_scored(self, event: ShapeScored) -> None:
        machine = self._in_flight.pop(event.index, None) if event.index is not None else None
        if machine is None or event.future is None:
            self._drop(event, "not_in_flight")
            return
        try:
            breakdown = event.future.result()
            shape = breakdown.score
            self._breakdowns[machine.index] = breakdown
        except Exception as e:
            print(f"[WARN] Shape scoring failed for stroke {machine.index}: {e!r}")
            xtrace("shape_failed", {"index": machine.index, "error": repr(e)})
            shape = 0.0

        aggregator = self.aggregator
        if aggregator is None:
            self._drop(event, "no_character")
            return
        result = machine.mark_scored(shape)
        if not aggregator.record(result):
            return
        feedback = generate_stroke_feedback(result)
        color = revision_color(result.shape_accuracy, self.policy.revision_threshold)
        self.state.feedback[result.index] = feedback
        xtrace(
            "stroke_scored",
            {
                "index": result.index,
                "shape": round(result.shape_accuracy, 2),
                "concurrency": round(result.concurrency_score, 2),
                "outcome": result.outcome.value,
                "breakdown": self._breakdowns[result.index].as_dict() if result.index in self._breakdowns else None,
                "speech_timing": speech_timing(result.stroke_started_at, result.stroke_ended_at, result.speech),
            },
        )
        self.bus.emit(STROKE_SCORED, StrokeOutcome(result=result, feedback=feedback, color=color))

        if self._machine is None and not self._in_flight and not self.state.completed:
            self._complete(aggregator)

    def _complete(self, aggregator: SessionAggregator) -> SessionScore:
        score = aggregator.final_score()
        self.state.completed = True
        self.state.ended_at = datetime.now(timezone.utc)
        xtrace(
            "character_completed",
            {
                "recorded": score.recorded,
                "expected": score.expected,
                "overall": round(score.overall, 2),
            },
        )
        self._persist()
        self.bus.emit(CHARACTER_COMPLETED, score)
        return score

    def _persist(self) -> None:
        stats_cfg = self.cfg["stats"]
        if not stats_cfg.get("enabled") or self.ctx is None or self.aggregator is None:
            return
        if not self.aggregator.results:
            return
        from ..storage.store import append_stroke_results, init_store, rows_from_results, validate_records

        data_dir = Path(str(stats_cfg["data_dir"]))
        rows = rows_from_results(
            self.aggregator.results,
            session_id=self.ctx.session_id,
            session_start=self.ctx.started_at,
            character=self.ctx.character_id,
        )
        try:
            init_store(data_dir)
            append_stroke_results(validate_records(rows), data_dir)
        except (OSError, ValueError) as e:
            print(f"[WARN] Could not write stroke stats to {data_dir}: {e}")
