"""Signal fusion: combines the webcam attention label with input activity.

Looking away while actively typing or clicking is reinterpreted as note
taking rather than distraction.

    | Human state  | Recently active | Fused verdict     |
    |--------------|-----------------|-------------------|
    | FOCUSED      | any             | PRODUCTIVE        |
    | NOTE_TAKING  | yes             | PRODUCTIVE        |
    | NOTE_TAKING  | no              | MAYBE_PRODUCTIVE  |
    | DISTRACTED   | yes             | PRODUCTIVE        |
    | DISTRACTED   | no              | UNPRODUCTIVE      |
    | ABSENT       | any             | ABSENT            |
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from flowstate.scoring.pose import HumanState

ACTIVE_WINDOW_SECONDS = 5.0


class FusedVerdict(str, Enum):
    """Combined attention classification."""

    PRODUCTIVE = "PRODUCTIVE"
    MAYBE_PRODUCTIVE = "MAYBE_PRODUCTIVE"
    UNPRODUCTIVE = "UNPRODUCTIVE"
    ABSENT = "ABSENT"


@dataclass(frozen=True)
class FusionResult:
    """Result of fusing one human state with input recency."""

    verdict: FusedVerdict
    human_state: HumanState
    recently_active: bool
    reasoning: str

    def to_dict(self) -> dict:
        """Convert to a plain dict for JSON serialization."""
        return {
            "verdict": self.verdict.value,
            "human_state": self.human_state.value,
            "recently_active": self.recently_active,
            "reasoning": self.reasoning,
        }


# (human_state, recently_active) -> (verdict, reasoning)
_FUSION_TABLE: dict[tuple[HumanState, bool], tuple[FusedVerdict, str]] = {
    (HumanState.FOCUSED, True): (
        FusedVerdict.PRODUCTIVE, "Facing screen while working",
    ),
    (HumanState.FOCUSED, False): (
        FusedVerdict.PRODUCTIVE, "Facing screen; likely reading or watching",
    ),
    (HumanState.NOTE_TAKING, True): (
        FusedVerdict.PRODUCTIVE, "Looking down while typing; taking notes",
    ),
    (HumanState.NOTE_TAKING, False): (
        FusedVerdict.MAYBE_PRODUCTIVE, "Looking down with no input; maybe reading",
    ),
    (HumanState.DISTRACTED, True): (
        FusedVerdict.PRODUCTIVE, "Looking away but actively working",
    ),
    (HumanState.DISTRACTED, False): (
        FusedVerdict.UNPRODUCTIVE, "Looking away with no input",
    ),
    (HumanState.ABSENT, True): (
        FusedVerdict.ABSENT, "No face detected",
    ),
    (HumanState.ABSENT, False): (
        FusedVerdict.ABSENT, "No face detected and no input",
    ),
}


def is_recently_active(
    last_input: Optional[float],
    now: float,
    window_seconds: float = ACTIVE_WINDOW_SECONDS,
) -> bool:
    """True if the last input event happened less than window_seconds ago."""
    if last_input is None:
        return False
    return (now - last_input) < window_seconds


def fuse(human_state: HumanState, recently_active: bool) -> FusionResult:
    """Combine a human-attention state with input recency."""
    verdict, reasoning = _FUSION_TABLE[(human_state, recently_active)]
    return FusionResult(
        verdict=verdict,
        human_state=human_state,
        recently_active=recently_active,
        reasoning=reasoning,
    )
