import contextlib
import io
import json
import time
import unittest
from concurrent.futures import Future
from unittest import mock

from writeoutloud.app import explain
from writeoutloud.app.attempt_machine import AttemptState, InvalidTransition, StrokeAttemptMachine
from writeoutloud.app.events import EventBus, ShapeScored
from writeoutloud.app.replay import InlineExecutor
from writeoutloud.app.session_manager import PracticeSession
from writeoutloud.app.timers import ManualTimerFactory
from writeoutloud.models.attempt import SpeechOutcome, StrokeColor

from tests.helpers import KOU, REN, DeferredExecutor, Recorder, quiet_config


class PracticeSessionTestBase(unittest.TestCase):
    def setUp(self) -> None:
        self.bus = EventBus()
        self.rec = Recorder(self.bus)
        self.timers = ManualTimerFactory()
        self.executor = InlineExecutor()
        self.session = PracticeSession(
            quiet_config(), bus=self.bus, executor=self.executor, timer_factory=self.timers
        )
        self.session.select_character(KOU)

    def tearDown(self) -> None:
        self.session.close()

    def at(self, t: float) -> None:
        """Advance script time, firing due timers, and apply queued events."""
        self.timers.advance_to(t)
        self.session.pump()

    def draw(self, index: int, start: float, end: float, **kw) -> None:
        self.at(start)
        self.session.on_stroke_begin(start, **kw)
        self.session.pump()
        self.at(end)
        self.session.on_stroke_end(end, KOU.expected_stroke(index).path, **kw)
        self.session.pump()


class StrokeFusionTests(PracticeSessionTestBase):
    def test_spoken_while_drawn(self) -> None:
        s = self.session
        s.on_stroke_begin(0.0)
        s.on_speech_started(0.0)
        s.pump()
        self.at(1.0)
        s.on_stroke_end(1.0, KOU.expected_stroke(0).path)
        s.on_speech_finalized("shù", None, 0.9, 0.0, 1.0)
        s.pump()

        self.assertEqual(len(self.rec.scored), 1)
        outcome = self.rec.scored[0]
        self.assertIs(outcome.result.outcome, SpeechOutcome.MATCHED)
        self.assertEqual(outcome.result.concurrency_score, 100.0)
        self.assertGreaterEqual(outcome.result.shape_accuracy, 99.0)
        self.assertIs(outcome.color, StrokeColor.ACCEPTABLE)
        self.assertTrue(outcome.feedback.timing_message)
        self.assertEqual(s.current_index, 1)
        self.assertEqual(s.aggregator.recorded_count, 1)
        self.assertIsNotNone(s.breakdown_for(0))

    def test_speech_unavailable(self) -> None:
        self.session.on_speech_unavailable()
        self.draw(0, 0.0, 1.0)

        result = self.rec.results()[0]
        self.assertIs(result.outcome, SpeechOutcome.UNAVAILABLE)
        self.assertEqual(result.concurrency_score, 0.0)
        self.assertFalse(result.speech_attempted)
        fb = self.session.feedback_for(0)
        self.assertEqual(fb.timing_message, "")
        self.assertIn("unavailable", fb.naming_message)

    def test_scored_trace_carries_speech_timing(self) -> None:
        out = io.StringIO()
        explain.enable(True)
        try:
            with contextlib.redirect_stdout(out):
                self.session.on_speech_finalized("shù", None, 0.9, 0.25, 1.0)
                self.draw(0, 0.0, 1.0)
        finally:
            explain.enable(False)
        line = next(l for l in out.getvalue().splitlines() if l.startswith("[EXPLAIN] stroke_scored"))
        payload = json.loads(line.split(" :: ", 1)[1])
        self.assertEqual(payload["speech_timing"]["relation"], 0)
        self.assertAlmostEqual(payload["speech_timing"]["lag_s"], 0.25)

    def test_collaborator_flag_overrides_name_check(self) -> None:
        self.session.on_speech_finalized("something else", True, 0.5, 0.0, 1.0)
        self.draw(0, 0.0, 1.0)
        self.assertIs(self.rec.results()[0].outcome, SpeechOutcome.MATCHED)

    def test_confidence_is_clamped(self) -> None:
        self.session.on_speech_finalized("shu", None, 1.7, 0.0, 1.0)
        self.draw(0, 0.0, 1.0)
        self.assertEqual(self.rec.results()[0].speech.confidence, 1.0)

    def test_empty_stroke_rejected_then_redrawn(self) -> None:
        s = self.session
        s.on_stroke_begin(0.0)
        s.on_stroke_end(0.5, [])
        s.pump()
        self.assertEqual([r.reason for r in self.rec.rejected], ["empty_path"])
        self.assertEqual(s.current_index, 0)
        self.assertIs(s.current_state, AttemptState.AWAITING_DRAW)
        self.assertEqual(s.aggregator.recorded_count, 0)

        s.on_speech_error()
        self.draw(0, 1.0, 2.0)
        self.assertEqual(s.aggregator.recorded_count, 1)
        self.assertEqual(self.rec.results()[0].stroke_started_at, 1.0)


class GracePeriodTests(PracticeSessionTestBase):
    def test_silence_expires_after_grace(self) -> None:
        self.draw(0, 0.0, 1.0)
        self.assertIs(self.session.current_state, AttemptState.AWAITING_SPEECH)

        self.at(1.2)
        self.assertEqual(self.rec.scored, [])
        self.at(1.35)
        result = self.rec.results()[0]
        self.assertIs(result.outcome, SpeechOutcome.NOT_MATCHED)
        self.assertFalse(result.speech_attempted)
        self.assertEqual(self.session.current_index, 1)

    def test_started_but_never_finalized(self) -> None:
        self.session.on_speech_started(0.1)
        self.draw(0, 0.0, 1.0)
        self.at(1.5)
        self.assertEqual(self.rec.scored, [])
        self.at(6.0)
        result = self.rec.results()[0]
        self.assertIs(result.outcome, SpeechOutcome.UNAVAILABLE)
        self.assertTrue(result.speech_attempted)

    def test_late_onset_extends_the_wait(self) -> None:
        self.draw(0, 0.0, 1.0)
        self.at(1.1)
        self.session.on_speech_started(1.1)
        self.session.pump()
        self.at(1.4)
        self.assertEqual(self.rec.scored, [])

        self.session.on_speech_finalized("shu", None, 0.8, 1.1, 1.6)
        self.at(1.6)
        result = self.rec.results()[0]
        self.assertIs(result.outcome, SpeechOutcome.MATCHED)
        self.assertEqual(result.concurrency_score, 0.0)

    def test_grace_armed_only_while_waiting(self) -> None:
        self.session.on_speech_finalized("shu", None, 1.0, 0.0, 1.0)
        self.draw(0, 0.0, 1.0)
        self.assertEqual(self.timers.pending(), [])
        self.draw(1, 2.0, 3.0)
        self.at(10.0)
        self.assertEqual(len(self.rec.scored), 2)
        self.assertIs(self.rec.results()[1].outcome, SpeechOutcome.NOT_MATCHED)


class OrderingTests(PracticeSessionTestBase):
    def test_stale_index_dropped(self) -> None:
        s = self.session
        s.on_speech_finalized("héng", None, 1.0, 0.0, 1.0, stroke_index=2)
        s.on_stroke_begin(0.0, stroke_index=1)
        s.pump()
        self.assertEqual(self.rec.dropped_reasons(), ["stale_index", "stale_index"])
        self.assertEqual([d.index for d in self.rec.dropped], [2, 1])
        self.assertIs(s.current_state, AttemptState.AWAITING_DRAW)
        self.assertEqual(s.aggregator.recorded_count, 0)

    def test_next_pen_down_force_resolves(self) -> None:
        self.draw(0, 0.0, 1.0)
        # pen-down for stroke 2 before the grace period ran out
        self.at(1.1)
        self.session.on_stroke_begin(1.1)
        self.session.pump()
        self.assertEqual(self.rec.results()[0].outcome, SpeechOutcome.NOT_MATCHED)
        self.assertEqual(self.session.current_index, 1)

        self.session.on_speech_unavailable()
        self.at(2.0)
        self.session.on_stroke_end(2.0, KOU.expected_stroke(1).path)
        self.session.pump()
        second = self.rec.results()[1]
        self.assertEqual(second.index, 1)
        self.assertEqual(second.stroke_started_at, 1.1)

    def test_pen_up_for_next_stroke_does_not_touch_open_one(self) -> None:
        self.draw(0, 0.0, 1.0)
        self.session.on_stroke_end(1.1, KOU.expected_stroke(1).path, stroke_index=1)
        self.session.on_stroke_end(1.2, KOU.expected_stroke(1).path)
        self.session.pump()
        self.assertEqual(self.rec.dropped_reasons(), ["stale_index", "already_drawn"])
        self.assertIs(self.session.current_state, AttemptState.AWAITING_SPEECH)

        self.session.on_speech_finalized("shù", None, 1.0, 0.0, 1.0)
        self.session.pump()
        result = self.rec.results()[0]
        self.assertEqual(result.index, 0)
        self.assertEqual(result.stroke_ended_at, 1.0)
        self.assertIs(result.outcome, SpeechOutcome.MATCHED)

    def test_pen_down_tagged_for_next_stroke_hands_over(self) -> None:
        self.session.on_speech_started(0.2)
        self.draw(0, 0.0, 1.0)
        self.session.on_stroke_begin(1.1, stroke_index=1)
        self.session.pump()
        self.assertIs(self.rec.results()[0].outcome, SpeechOutcome.UNAVAILABLE)
        self.assertEqual(self.session.current_index, 1)
        self.assertEqual(self.rec.dropped, [])

    def test_late_transcript_stays_with_its_stroke(self) -> None:
        s = self.session
        s.on_speech_started(0.2)
        self.draw(0, 0.0, 1.0)
        # fast writer: next pen-down before stroke 1's name was transcribed
        self.at(1.1)
        s.on_stroke_begin(1.1)
        s.pump()
        self.at(1.3)
        s.on_speech_finalized("shù", None, 0.9, 0.2, 0.9)
        s.pump()

        self.at(1.4)
        s.on_speech_started(1.4)
        s.pump()
        self.at(1.9)
        s.on_stroke_end(1.9, KOU.expected_stroke(1).path)
        s.pump()
        self.at(1.95)
        s.on_speech_finalized("héngzhé", None, 0.9, 1.4, 1.95)
        s.pump()

        first, second = self.rec.results()
        self.assertIs(first.outcome, SpeechOutcome.UNAVAILABLE)
        self.assertEqual(first.heard, "")
        self.assertEqual(second.index, 1)
        self.assertIs(second.outcome, SpeechOutcome.MATCHED)
        self.assertEqual(second.heard, "héngzhé")
        self.assertEqual(self.rec.dropped_reasons(), ["stale_speech"])
        self.assertEqual(s.current_index, 2)
        self.assertIs(s.current_state, AttemptState.AWAITING_DRAW)

    def test_late_failure_after_finalize_timeout_is_dropped(self) -> None:
        s = self.session
        s.on_speech_started(0.2)
        self.draw(0, 0.0, 1.0)
        self.at(6.1)
        self.assertIs(self.rec.results()[0].outcome, SpeechOutcome.UNAVAILABLE)

        s.on_speech_error()
        s.pump()
        self.assertEqual(self.rec.dropped_reasons(), ["stale_speech"])
        self.assertIs(s.current_state, AttemptState.AWAITING_DRAW)

        self.at(6.5)
        s.on_stroke_begin(6.5)
        s.on_speech_started(6.5)
        s.pump()
        self.at(7.0)
        s.on_stroke_end(7.0, KOU.expected_stroke(1).path)
        s.on_speech_finalized("héngzhé", None, 0.9, 6.5, 7.0)
        s.pump()
        self.assertIs(self.rec.results()[1].outcome, SpeechOutcome.MATCHED)

    def test_results_recorded_only_when_pumped(self) -> None:
        deferred = DeferredExecutor()
        s = PracticeSession(quiet_config(), bus=self.bus, executor=deferred, timer_factory=self.timers)
        s.select_character(KOU)
        s.on_speech_unavailable()
        s.on_stroke_begin(0.0)
        s.on_stroke_end(1.0, KOU.expected_stroke(0).path)
        s.pump()
        self.assertEqual(s.in_flight, 1)
        self.assertEqual(deferred.run_all(), 1)
        self.assertEqual(s.aggregator.recorded_count, 0)
        self.assertTrue(s.drain(timeout=1.0))
        self.assertEqual(s.aggregator.recorded_count, 1)
        self.assertEqual(s.in_flight, 0)

    def test_shape_failure_scores_zero(self) -> None:
        self.session.on_speech_unavailable()
        with mock.patch("writeoutloud.app.session_manager.score_breakdown", side_effect=RuntimeError("boom")):
            self.draw(0, 0.0, 1.0)
        result = self.rec.results()[0]
        self.assertEqual(result.shape_accuracy, 0.0)
        self.assertIs(self.rec.scored[0].color, StrokeColor.NEEDS_REVISION)


class CharacterLifecycleTests(PracticeSessionTestBase):
    def _speak_unavailable_and_draw(self, index: int, start: float) -> None:
        self.session.on_speech_unavailable()
        self.draw(index, start, start + 0.5)

    def test_completion_event(self) -> None:
        for i in range(KOU.stroke_count):
            self._speak_unavailable_and_draw(i, float(i))
        self.assertEqual(len(self.rec.completed), 1)
        score = self.rec.completed[0]
        self.assertEqual(score.recorded, 3)
        self.assertEqual(score.completion_ratio, 1.0)
        self.assertTrue(self.session.completed)
        self.assertIsNone(self.session.current_index)
        self.assertEqual(len(self.session.stroke_colors()), 3)

        # nothing left to draw
        self.session.on_stroke_begin(9.0)
        self.session.pump()
        self.assertEqual(self.rec.dropped_reasons(), ["no_open_attempt"])
        self.assertEqual(self.session.finish().recorded, 3)
        self.assertEqual(len(self.rec.completed), 1)

    def test_finish_partial(self) -> None:
        self._speak_unavailable_and_draw(0, 0.0)
        self.draw(1, 1.0, 1.5)
        score = self.session.finish()
        self.assertEqual(score.recorded, 2)
        self.assertEqual(score.expected, 3)
        self.assertIn("You completed 66%", score.summary_message)
        self.assertIs(self.rec.results()[1].outcome, SpeechOutcome.NOT_MATCHED)
        self.assertEqual(len(self.rec.completed), 1)

    def test_no_character_selected(self) -> None:
        s = PracticeSession(quiet_config(), bus=self.bus, executor=self.executor, timer_factory=self.timers)
        self.assertEqual(s.results(), [])
        self.assertEqual(s.finish().recorded, 0)

        machine = StrokeAttemptMachine(0, KOU.expected_stroke(0))
        with self.assertRaises(InvalidTransition):
            s._close(machine)

        # a shape result with nowhere to be recorded
        machine.speech_failed()
        machine.begin_stroke(0.0)
        machine.end_stroke(1.0, KOU.expected_stroke(0).path)
        s._in_flight[0] = machine
        done: Future = Future()
        done.set_result(mock.Mock(score=80.0))
        s._post(ShapeScored(0, 0, future=done))
        s.pump()
        self.assertEqual(self.rec.dropped_reasons(), ["no_character"])
        self.assertEqual(self.rec.scored, [])
        s.close()

    def test_finish_with_nothing_drawn(self) -> None:
        score = self.session.finish()
        self.assertEqual(score.recorded, 0)
        self.assertEqual(score.overall, 0.0)

    def test_select_character_discards_in_flight_work(self) -> None:
        deferred = DeferredExecutor()
        s = PracticeSession(quiet_config(), bus=self.bus, executor=deferred, timer_factory=self.timers)
        s.select_character(KOU)
        s.on_speech_unavailable()
        s.on_stroke_begin(0.0)
        s.on_stroke_end(1.0, KOU.expected_stroke(0).path)
        s.pump()
        # an event queued before the switch but applied after it
        s.on_speech_started(1.2)

        s.select_character(REN)
        deferred.run_all()
        s.pump()
        self.assertEqual(s.aggregator.recorded_count, 0)
        self.assertEqual(s.aggregator.expected_strokes, 2)
        self.assertEqual(s.current_index, 0)
        self.assertEqual(self.rec.scored, [])
        self.assertEqual(self.rec.dropped_reasons(), ["previous_character", "previous_character"])

    def test_stats_written_on_completion(self) -> None:
        import tempfile
        from pathlib import Path

        from writeoutloud.storage.store import load_all

        with tempfile.TemporaryDirectory() as tmp:
            cfg = {"stats": {"enabled": True, "data_dir": tmp}}
            s = PracticeSession(cfg, bus=EventBus(), executor=InlineExecutor(), timer_factory=ManualTimerFactory())
            s.select_character(REN)
            for i in range(REN.stroke_count):
                s.on_speech_unavailable()
                s.on_stroke_begin(float(i))
                s.on_stroke_end(float(i) + 0.5, REN.expected_stroke(i).path)
                s.pump()
            self.assertTrue(s.completed)
            df = load_all(Path(tmp))
            self.assertEqual(len(df), 2)
            self.assertEqual(set(df["character"]), {"ren"})
            s.close()


class ThreadedSessionTests(unittest.TestCase):
    def test_worker_pool_and_real_timers(self) -> None:
        bus = EventBus()
        rec = Recorder(bus)
        cfg = {"stats": {"enabled": False}, "timing": {"speech_grace_s": 0.05}}
        with PracticeSession(cfg, bus=bus) as s:
            s.select_character(REN)
            s.on_speech_unavailable()
            s.on_stroke_begin(0.0)
            s.on_stroke_end(0.5, REN.expected_stroke(0).path)
            s.pump()
            self.assertTrue(s.drain(timeout=5.0))

            s.on_stroke_begin(1.0)
            s.on_stroke_end(1.5, REN.expected_stroke(1).path)
            s.pump()
            # the grace timer fires on its own thread
            deadline = time.monotonic() + 5.0
            while not s.completed and time.monotonic() < deadline:
                s.drain(timeout=0.1)
                time.sleep(0.01)
        self.assertEqual(len(rec.completed), 1)
        self.assertIs(rec.results()[1].outcome, SpeechOutcome.NOT_MATCHED)


if __name__ == "__main__":
    unittest.main()
