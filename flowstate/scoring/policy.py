"""Score update policies.

One ScorePolicy drives the Score Engine. Two named presets exist:

- "time_curve" (default): the score is a function of cumulative focus time.
  Pose ticks add or remove focus seconds and event deltas are converted into
  focus time through the inverse curve. No flat bonus for productive content
  and no gain per keystroke; distraction penalties grow with the score.
- "event_delta": the score moves by flat event deltas only (identity curve,
  pose ticks have no effect).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Union

from flowstate.scoring.curve import LinearCurve, PiecewiseCurve

Curve = Union[PiecewiseCurve, LinearCurve]

# Score event names
EVENT_PRODUCTIVE = "productive"
EVENT_DISTRACTION = "distraction"
EVENT_TAB_SWITCH = "tab_switch"
EVENT_KEYSTROKE = "keystroke"
EVENT_PASSIVE = "passive"

SCORE_EVENTS = frozenset({
    EVENT_PRODUCTIVE,
    EVENT_DISTRACTION,
    EVENT_TAB_SWITCH,
    EVENT_KEYSTROKE,
    EVENT_PASSIVE,
})


@dataclass(frozen=True)
class ScorePolicy:
    """Constants for one coherent score update policy.

    Attributes:
        name: Preset name.
        curve: Maps focus time to score.
        tick_gain: Focus seconds added per pose tick outside the penalty zone.
        tick_penalty: Focus seconds removed per pose tick in the penalty zone.
        productive_bonus: Score points for confirmed productive content.
        distraction_flat: Score points removed for a distraction (when not dynamic).
        distraction_dynamic: Use floor(base + ratio * score) instead of the flat penalty.
        distraction_base: Base of the dynamic penalty.
        distraction_ratio: Share of the current score added to the dynamic penalty.
        tab_switch: Score points removed when the tab is hidden.
        keystroke: Score points added per (throttled) keystroke.
        passive_gain: Score points added per passive tick.
    """

    name: str
    curve: Curve
    tick_gain: int
    tick_penalty: int
    productive_bonus: float
    distraction_flat: float
    distraction_dynamic: bool
    distraction_base: float
    distraction_ratio: float
    tab_switch: float
    keystroke: float
    passive_gain: float

    def distraction_penalty(self, score: float) -> float:
        """Points removed by a confirmed distraction at the given score."""
        if self.distraction_dynamic:
            return float(math.floor(self.distraction_base + self.distraction_ratio * score))
        return self.distraction_flat

    def delta_for(self, event: str, score: float) -> float:
        """Score delta for a named event.

        Raises:
            ValueError: If the event name is unknown.
        """
        if event == EVENT_PRODUCTIVE:
            return self.productive_bonus
        if event == EVENT_DISTRACTION:
            return -self.distraction_penalty(score)
        if event == EVENT_TAB_SWITCH:
            return -self.tab_switch
        if event == EVENT_KEYSTROKE:
            return self.keystroke
        if event == EVENT_PASSIVE:
            return self.passive_gain
        raise ValueError(f"Unknown score event: {event!r}")


SCORE_PRESETS: dict[str, ScorePolicy] = {
    "time_curve": ScorePolicy(
        name="time_curve",
        curve=PiecewiseCurve(),
        tick_gain=1,
        tick_penalty=4,
        productive_bonus=0.0,
        distraction_flat=15.0,
        distraction_dynamic=True,
        distraction_base=10.0,
        distraction_ratio=0.3,
        tab_switch=1.0,
        keystroke=0.0,
        passive_gain=2.0,
    ),
    "event_delta": ScorePolicy(
        name="event_delta",
        curve=LinearCurve(),
        tick_gain=0,
        tick_penalty=0,
        productive_bonus=5.0,
        distraction_flat=15.0,
        distraction_dynamic=False,
        distraction_base=10.0,
        distraction_ratio=0.3,
        tab_switch=2.0,
        keystroke=1.0,
        passive_gain=2.0,
    ),
}


def get_score_policy(name: str) -> ScorePolicy:
    """Look up a named score policy preset.

    Raises:
        ValueError: If the preset name is unknown.
    """
    try:
        return SCORE_PRESETS[name]
    except KeyError:
        raise ValueError(
            f"Unknown score policy: {name!r} (expected one of {sorted(SCORE_PRESETS)})"
        ) from None
