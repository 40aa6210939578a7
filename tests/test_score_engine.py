"""Tests for the focus curve, score policies and the score engine."""

from __future__ import annotations

import random

import pytest

from flowstate.scoring.buffer import GracePeriodBuffer
from flowstate.scoring.curve import LinearCurve, PiecewiseCurve, clamp_score
from flowstate.scoring.engine import EVENT_POSE_TICK, ScoreEngine
from flowstate.scoring.policy import (
    EVENT_DISTRACTION,
    EVENT_KEYSTROKE,
    EVENT_PASSIVE,
    EVENT_PRODUCTIVE,
    EVENT_TAB_SWITCH,
    SCORE_EVENTS,
    get_score_policy,
)
from flowstate.scoring.pose import HumanState


class TestPiecewiseCurve:
    def test_known_points(self):
        """The curve matches its segment formulas."""
        curve = PiecewiseCurve()
        assert curve.score(0) == 0.0
        assert curve.score(300) == pytest.approx(1.25)
        assert curve.score(600) == pytest.approx(5.0)
        assert curve.score(1200) == pytest.approx(15.002)
        assert curve.score(1800) == pytest.approx(31.67)
        assert curve.score(3500) == pytest.approx(97.783, abs=1e-3)

    def test_clamped_to_hundred(self):
        """The curve never exceeds 100."""
        assert PiecewiseCurve().score(10_000) == 100.0

    def test_non_decreasing(self):
        """F(tau) never decreases as tau grows."""
        curve = PiecewiseCurve()
        scores = [curve.score(tau) for tau in range(0, 4000)]
        assert all(b >= a for a, b in zip(scores, scores[1:]))

    def test_flow_threshold_crossed_near_3043(self):
        """The curve first exceeds 80 around tau 3043."""
        curve = PiecewiseCurve()
        assert curve.score(3042) <= 80.0
        assert curve.score(3043) > 80.0

    @pytest.mark.parametrize("tau", [150, 600, 1200, 2500])
    def test_inverse_recovers_tau(self, tau):
        """inverse(F(tau)) recovers tau."""
        curve = PiecewiseCurve()
        assert curve.inverse(curve.score(tau)) == pytest.approx(tau, abs=1e-6)

    def test_inverse_in_gap_maps_to_jump(self):
        """Scores inside the curve jump map to the jump point."""
        assert PiecewiseCurve().inverse(28.0) == 1800.0

    def test_inverse_bounds(self):
        """inverse handles negative scores and 100."""
        curve = PiecewiseCurve()
        assert curve.inverse(-5) == 0.0
        assert curve.score(curve.inverse(100.0)) == pytest.approx(100.0)


class TestLinearCurve:
    def test_identity(self):
        """The linear curve maps tau to score one to one."""
        curve = LinearCurve()
        assert curve.score(42) == 42
        assert curve.inverse(42) == 42

    def test_clamped(self):
        """Scores are clamped to [0, 100]."""
        assert LinearCurve().score(150) == 100.0

    def test_slope_must_be_positive(self):
        """A non-positive slope raises ValueError."""
        with pytest.raises(ValueError):
            LinearCurve(slope=0)


class TestScorePolicy:
    def test_dynamic_distraction_penalty(self):
        """The time_curve penalty is floor(10 + 0.3 * score)."""
        policy = get_score_policy("time_curve")
        assert policy.distraction_penalty(0) == 10
        assert policy.distraction_penalty(50) == 25
        assert policy.distraction_penalty(95) == 38

    def test_flat_distraction_penalty(self):
        """The event_delta penalty is a flat 15."""
        policy = get_score_policy("event_delta")
        assert policy.distraction_penalty(0) == 15
        assert policy.distraction_penalty(90) == 15

    def test_unknown_event(self):
        """An unknown event name raises ValueError."""
        with pytest.raises(ValueError):
            get_score_policy("time_curve").delta_for("sneeze", 10)

    def test_unknown_policy(self):
        """An unknown policy name raises ValueError."""
        with pytest.raises(ValueError, match="Unknown score policy"):
            get_score_policy("vibes")


class TestClampScore:
    @pytest.mark.parametrize("value,expected", [(-3, 0), (0, 0), (55.5, 55.5), (120, 100)])
    def test_clamp(self, value, expected):
        """clamp_score bounds values to [0, 100]."""
        assert clamp_score(value) == expected


class TestTimeCurveEngine:
    def _engine(self, score: float = 0.0, tau=None) -> ScoreEngine:
        engine = ScoreEngine(get_score_policy("time_curve"))
        engine.restore(score, tau)
        return engine

    def test_starts_at_zero(self):
        """A new engine starts at tau 0 and score 0."""
        engine = self._engine()
        assert engine.tau == 0
        assert engine.score == 0.0

    def test_tick_adds_one_second(self):
        """A tick outside the penalty zone adds one second."""
        engine = self._engine()
        update = engine.apply_tick(in_penalty_zone=False)
        assert update.event == EVENT_POSE_TICK
        assert (update.old_tau, update.new_tau) == (0, 1)

    def test_penalty_tick_removes_four_seconds_floored_at_zero(self):
        """A penalty tick removes four seconds, never below zero."""
        engine = self._engine(tau=10)
        assert engine.apply_tick(in_penalty_zone=True).new_tau == 6
        engine = self._engine(tau=2)
        assert engine.apply_tick(in_penalty_zone=True).new_tau == 0

    def test_score_follows_tau(self):
        """The score is always F(tau)."""
        engine = self._engine(tau=2500)
        assert engine.score == PiecewiseCurve().score(2500)

    def test_restore_from_score_only(self):
        """Restoring a score alone derives tau from the curve."""
        engine = self._engine(score=50.0)
        assert engine.tau == 2272
        assert engine.score == pytest.approx(50.03, abs=0.01)

    def test_passive_gain(self):
        """A passive tick raises the score by about two points."""
        engine = self._engine(tau=2500)
        before = engine.score
        update = engine.apply_event(EVENT_PASSIVE)
        assert update.changed
        assert before + 2.0 <= engine.score < before + 2.05

    def test_tab_switch(self):
        """A tab switch lowers the score by about one point."""
        engine = self._engine(tau=2500)
        before = engine.score
        engine.apply_event(EVENT_TAB_SWITCH)
        assert before - 1.05 < engine.score <= before - 1.0

    def test_distraction_penalty_grows_with_score(self):
        """Higher scores lose more to a distraction."""
        engine = self._engine(tau=3300)
        before = engine.score
        engine.apply_event(EVENT_DISTRACTION)
        assert engine.score <= before - (10 + 0.3 * before) + 1
        assert engine.score < before - 25

    def test_distraction_across_curve_gap(self):
        """A target inside the curve gap lands below it, never above the target."""
        engine = self._engine(score=50.0)
        before = engine.score
        engine.apply_event(EVENT_DISTRACTION)
        assert engine.tau == 1799
        assert engine.score <= before - 25

    def test_no_keystroke_or_productive_gain(self):
        """Keystrokes and productive verdicts leave tau unchanged."""
        engine = self._engine(tau=2000)
        assert not engine.apply_event(EVENT_KEYSTROKE).changed
        assert not engine.apply_event(EVENT_PRODUCTIVE).changed
        assert engine.tau == 2000

    def test_unknown_event_raises(self):
        """apply_event rejects unknown events."""
        with pytest.raises(ValueError):
            self._engine().apply_event("nap")

    def test_monotonic_without_penalties(self):
        """Without penalties the score never decreases."""
        engine = self._engine()
        scores = []
        for i in range(3600):
            if i % 60 == 0:
                engine.apply_event(EVENT_PASSIVE)
            engine.apply_tick(in_penalty_zone=False)
            scores.append(engine.score)
        assert all(b >= a for a, b in zip(scores, scores[1:]))

    def test_score_always_bounded(self):
        """Random event sequences keep the score in [0, 100]."""
        rng = random.Random(7)
        engine = self._engine()
        events = sorted(SCORE_EVENTS)
        for _ in range(5000):
            if rng.random() < 0.5:
                engine.apply_tick(in_penalty_zone=rng.random() < 0.3)
            else:
                engine.apply_event(rng.choice(events))
            assert 0.0 <= engine.score <= 100.0
            assert engine.tau >= 0

    def test_score_saturates_at_hundred(self):
        """Long focus saturates at 100."""
        engine = self._engine(score=99.0)
        for _ in range(5):
            engine.apply_event(EVENT_PASSIVE)
        assert engine.score == 100.0

    def test_repeated_distractions_floor_at_zero(self):
        """Repeated distractions stop at zero."""
        engine = self._engine(score=40.0)
        for _ in range(10):
            engine.apply_event(EVENT_DISTRACTION)
        assert engine.score == 0.0
        assert engine.tau == 0


class TestGraceWindowOnFocusTime:
    def _run(self, states: list[HumanState], tau: int = 1000) -> list[int]:
        engine = ScoreEngine(get_score_policy("time_curve"))
        engine.restore(0.0, tau)
        buffer = GracePeriodBuffer()
        taus = []
        for state in states:
            buffer.update(state)
            taus.append(engine.apply_tick(buffer.in_penalty_zone).new_tau)
        return taus

    def test_short_distraction_never_decrements(self):
        """Four bad ticks then FOCUSED never decrement tau."""
        taus = self._run([HumanState.DISTRACTED] * 4 + [HumanState.FOCUSED])
        assert taus == [1001, 1002, 1003, 1004, 1005]

    def test_long_distraction_costs_four_per_tick(self):
        """Ten or more bad ticks decrement tau by four each."""
        taus = self._run([HumanState.DISTRACTED] * 12)
        assert taus[8] == 1009
        assert taus[9:] == [1005, 1001, 997]


class TestEventDeltaEngine:
    def _engine(self, score: float) -> ScoreEngine:
        return ScoreEngine(get_score_policy("event_delta"), initial_score=score)

    def test_flat_deltas(self):
        """event_delta applies the flat deltas."""
        engine = self._engine(50.0)
        assert engine.apply_event(EVENT_PRODUCTIVE).new_score == 55.0
        assert engine.apply_event(EVENT_DISTRACTION).new_score == 40.0
        assert engine.apply_event(EVENT_KEYSTROKE).new_score == 41.0
        assert engine.apply_event(EVENT_TAB_SWITCH).new_score == 39.0
        assert engine.apply_event(EVENT_PASSIVE).new_score == 41.0

    def test_ticks_have_no_effect(self):
        """event_delta ignores pose ticks."""
        engine = self._engine(50.0)
        assert not engine.apply_tick(in_penalty_zone=True).changed
        assert not engine.apply_tick(in_penalty_zone=False).changed
        assert engine.score == 50.0

    def test_clamped(self):
        """Scores are clamped to [0, 100]."""
        engine = self._engine(98.0)
        engine.apply_event(EVENT_PRODUCTIVE)
        assert engine.score == 100.0
        engine = self._engine(10.0)
        engine.apply_event(EVENT_DISTRACTION)
        assert engine.score == 0.0
