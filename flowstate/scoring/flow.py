"""Flow-state machine: turns the continuous score into NORMAL / FLOW.

Enters FLOW when the score rises above the threshold and leaves it when the
score falls back to or below the threshold. A transition is emitted only when
the state actually changes, so repeated updates on one side of the boundary
are no-ops.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

FLOW_THRESHOLD = 80.0


class FlowState(str, Enum):
    NORMAL = "NORMAL"
    FLOW = "FLOW"


class FlowTransition(str, Enum):
    """Transition events emitted by the state machine."""

    ENTER = "ENTER"  # EnableFlowProtection
    EXIT = "EXIT"  # DisableFlowProtection


@dataclass(frozen=True)
class TransitionEvent:
    transition: FlowTransition
    score: float
    timestamp: float


class FlowStateMachine:
    """Applies the flow threshold to score updates.

    Args:
        threshold: Score above which the user is in flow.
    """

    def __init__(self, threshold: float = FLOW_THRESHOLD) -> None:
        self._threshold = threshold
        self._state = FlowState.NORMAL

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def is_flow(self) -> bool:
        return self._state is FlowState.FLOW

    def restore(self, is_flow: bool) -> None:
        """Set the state from persisted values without emitting a transition."""
        self._state = FlowState.FLOW if is_flow else FlowState.NORMAL

    def update(self, score: float, timestamp: float) -> Optional[TransitionEvent]:
        """Re-evaluate the state for a new score.

        Returns:
            The transition if the state changed, otherwise None.
        """
        if self._state is FlowState.NORMAL and score > self._threshold:
            self._state = FlowState.FLOW
            logger.info("Entering flow state (score=%.2f)", score)
            return TransitionEvent(FlowTransition.ENTER, score, timestamp)

        if self._state is FlowState.FLOW and score <= self._threshold:
            self._state = FlowState.NORMAL
            logger.info("Leaving flow state (score=%.2f)", score)
            return TransitionEvent(FlowTransition.EXIT, score, timestamp)

        return None
