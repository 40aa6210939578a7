"""Grace-period buffer for bad pose readings.

Counts consecutive DISTRACTED/ABSENT ticks. The label itself passes through
unchanged; the streak decides whether a tick still counts as focus time or
costs the user focus time.
"""

from __future__ import annotations

from flowstate.scoring.pose import HumanState

# Under this many bad ticks there is no quality signal yet
GRACE_WINDOW_TICKS = 5
# From this many bad ticks on, each tick shrinks focus time
PENALTY_ZONE_TICKS = 10

_BAD_STATES = frozenset({HumanState.DISTRACTED, HumanState.ABSENT})


class GracePeriodBuffer:
    """Tracks the distraction streak across detection ticks.

    Args:
        grace_window_ticks: Streak length below which readings are in the grace window.
        penalty_zone_ticks: Streak length at which the penalty zone starts.
    """

    def __init__(
        self,
        grace_window_ticks: int = GRACE_WINDOW_TICKS,
        penalty_zone_ticks: int = PENALTY_ZONE_TICKS,
    ) -> None:
        if not 0 < grace_window_ticks <= penalty_zone_ticks:
            raise ValueError(
                "grace_window_ticks must be positive and not exceed penalty_zone_ticks"
            )
        self._grace_window = grace_window_ticks
        self._penalty_zone = penalty_zone_ticks
        self._streak = 0

    @property
    def streak(self) -> int:
        """Consecutive DISTRACTED/ABSENT ticks (always >= 0)."""
        return self._streak

    @property
    def in_grace_window(self) -> bool:
        """True while the bad-reading streak is still too short to mean anything."""
        return self._streak < self._grace_window

    @property
    def in_penalty_zone(self) -> bool:
        """True once the streak is long enough to cost focus time."""
        return self._streak >= self._penalty_zone

    def update(self, raw_state: HumanState) -> HumanState:
        """Feed one tick's raw label and return it unchanged."""
        if raw_state in _BAD_STATES:
            self._streak += 1
        else:
            self._streak = 0
        return raw_state

    def reset(self) -> None:
        """Clear the streak (e.g. at session start)."""
        self._streak = 0
