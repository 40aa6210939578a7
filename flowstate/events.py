"""Events consumed by the focus session.

Every signal (pose tick, input activity, passive timer, page navigation,
relevance verdict, goal change, session boundary) reaches the session as one
of these immutable events and is processed in arrival order.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from flowstate.relevance.verdict import RelevanceVerdict
from flowstate.scoring.pose import FaceLandmarks

# Activity event types reported by observing surfaces
ACTIVITY_CLICK = "click"
ACTIVITY_KEYSTROKE = "keystroke"
ACTIVITY_SCROLL = "scroll"
ACTIVITY_TAB_HIDDEN = "tab_hidden"

ACTIVITY_TYPES = frozenset({
    ACTIVITY_CLICK,
    ACTIVITY_KEYSTROKE,
    ACTIVITY_SCROLL,
    ACTIVITY_TAB_HIDDEN,
})


@dataclass(frozen=True)
class PoseTick:
    """One detection tick; landmarks is None when no face was found."""

    landmarks: Optional[FaceLandmarks]
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ActivityEvent:
    type: str  # click, keystroke, scroll, tab_hidden
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.type not in ACTIVITY_TYPES:
            raise ValueError(f"Unknown activity type: {self.type!r}")


@dataclass(frozen=True)
class PassiveTick:
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class PageNavigated:
    """The user navigated; invalidates the current verdict."""

    page_id: int
    url: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class PageVerdict:
    """Relevance verdict for a page view, tagged with the page it belongs to."""

    page_id: int
    url: str
    title: str
    verdict: RelevanceVerdict
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class GoalChanged:
    goal: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SessionStarted:
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SessionStopped:
    timestamp: float = field(default_factory=time.time)
