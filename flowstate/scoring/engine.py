"""Score engine: sole owner of the focus score and cumulative focus time.

The score is always curve.score(tau). Pose ticks move tau directly; named
events are expressed in score points and converted into a tau change through
the inverse curve, so the score stays within [0, 100] and consistent with tau.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from flowstate.scoring.curve import clamp_score
from flowstate.scoring.policy import SCORE_EVENTS, ScorePolicy

logger = logging.getLogger(__name__)

EVENT_POSE_TICK = "pose_tick"

_EPSILON = 1e-9


@dataclass(frozen=True)
class ScoreUpdate:
    """Outcome of one score update."""

    event: str
    old_score: float
    new_score: float
    old_tau: int
    new_tau: int

    @property
    def changed(self) -> bool:
        return self.old_tau != self.new_tau

    def to_dict(self) -> dict:
        """Convert to a plain dict for JSON serialization."""
        return {
            "event": self.event,
            "old_score": self.old_score,
            "new_score": self.new_score,
            "old_tau": self.old_tau,
            "new_tau": self.new_tau,
        }


class ScoreEngine:
    """Applies pose ticks and named events to the focus score.

    Args:
        policy: Score update policy (see flowstate.scoring.policy).
        initial_score: Score to start from when nothing was persisted.
    """

    def __init__(self, policy: ScorePolicy, initial_score: float = 0.0) -> None:
        self._policy = policy
        self._tau = 0
        self.restore(initial_score)

    @property
    def policy(self) -> ScorePolicy:
        return self._policy

    @property
    def score(self) -> float:
        """Current focus score in [0, 100]."""
        return self._policy.curve.score(self._tau)

    @property
    def tau(self) -> int:
        """Cumulative focus time in seconds (always >= 0)."""
        return self._tau

    def restore(self, score: float, tau: Optional[int] = None) -> None:
        """Seed the engine from persisted values.

        When tau is missing it is derived from the score through the curve.
        """
        if tau is None:
            tau = math.ceil(self._policy.curve.inverse(clamp_score(score)) - _EPSILON)
        self._tau = max(0, int(tau))

    def apply_tick(self, in_penalty_zone: bool) -> ScoreUpdate:
        """Apply one pose-detection tick.

        Args:
            in_penalty_zone: Whether the grace buffer's streak has reached the penalty zone.
        """
        if in_penalty_zone:
            new_tau = max(0, self._tau - self._policy.tick_penalty)
        else:
            new_tau = self._tau + self._policy.tick_gain
        return self._commit(EVENT_POSE_TICK, new_tau)

    def apply_event(self, event: str) -> ScoreUpdate:
        """Apply a named score event (productive, distraction, tab_switch, keystroke, passive).

        Raises:
            ValueError: If the event name is unknown.
        """
        if event not in SCORE_EVENTS:
            raise ValueError(f"Unknown score event: {event!r}")
        delta = self._policy.delta_for(event, self.score)
        return self._commit(event, self._tau_after_delta(delta))

    def _tau_after_delta(self, delta: float) -> int:
        """Focus time whose score is the current score shifted by delta."""
        if delta == 0:
            return self._tau

        curve = self._policy.curve
        target = clamp_score(self.score + delta)
        raw = curve.inverse(target)

        if delta > 0:
            return max(self._tau, math.ceil(raw - _EPSILON))

        new_tau = math.floor(raw + _EPSILON)
        # Curve gaps: step below the gap so the penalty is not swallowed
        if new_tau > 0 and curve.score(new_tau) > target:
            new_tau -= 1
        return min(self._tau, max(0, new_tau))

    def _commit(self, event: str, new_tau: int) -> ScoreUpdate:
        old_score = self.score
        old_tau = self._tau
        self._tau = new_tau
        update = ScoreUpdate(
            event=event,
            old_score=old_score,
            new_score=self.score,
            old_tau=old_tau,
            new_tau=new_tau,
        )
        if event != EVENT_POSE_TICK:
            logger.info(
                "Score update: [%s] %.2f -> %.2f (tau=%d)",
                event, old_score, update.new_score, new_tau,
            )
        return update
