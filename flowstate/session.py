"""Focus session: the single owner of all mutable scoring state.

Score, focus time, distraction streak, flow state, goal, current verdict and
session history live here and are only changed by events taken off one
asyncio queue, one at a time. Producers (pose loop, passive timer, REST
routes, content analysis) only submit events.

Per event:
    PoseTick       -> pose classifier -> grace buffer -> fusion -> tick on tau
    ActivityEvent  -> input recency; tab switch / throttled keystroke deltas
    PassiveTick    -> passive gain unless the user is distracted
    PageNavigated  -> invalidates the current verdict
    PageVerdict    -> distraction penalty + warning, or productive bonus
After every score update the flow state is re-evaluated, transitions are
broadcast, and the state is persisted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Union

from flowstate.config import EngineConfig
from flowstate.events import (
    ACTIVITY_KEYSTROKE,
    ACTIVITY_TAB_HIDDEN,
    ActivityEvent,
    GoalChanged,
    PageNavigated,
    PageVerdict,
    PassiveTick,
    PoseTick,
    SessionStarted,
    SessionStopped,
)
from flowstate.history.report import EVENT_FLOW_ENTER, EVENT_FLOW_EXIT
from flowstate.history.store import (
    KEY_FLOW_SCORE,
    KEY_FOCUS_TIME,
    KEY_IS_FLOW_STATE,
    KEY_USER_GOAL,
    HistoryStore,
)
from flowstate.notification.dispatcher import (
    BroadcastDispatcher,
    format_distraction_warning,
)
from flowstate.relevance.content import ContentAnalyzer, ContentObserver
from flowstate.relevance.oracle import RelevanceOracle
from flowstate.relevance.verdict import RelevanceVerdict
from flowstate.scoring.buffer import GracePeriodBuffer
from flowstate.scoring.engine import ScoreEngine, ScoreUpdate
from flowstate.scoring.flow import FlowStateMachine, FlowTransition
from flowstate.scoring.fusion import FusedVerdict, FusionResult, fuse, is_recently_active
from flowstate.scoring.policy import (
    EVENT_DISTRACTION,
    EVENT_KEYSTROKE,
    EVENT_PASSIVE,
    EVENT_PRODUCTIVE,
    EVENT_TAB_SWITCH,
    get_score_policy,
)
from flowstate.scoring.pose import HumanState, classify_pose, get_pose_thresholds
from flowstate.scoring.throttle import Throttle

logger = logging.getLogger(__name__)

Event = Union[
    PoseTick,
    ActivityEvent,
    PassiveTick,
    PageNavigated,
    PageVerdict,
    GoalChanged,
    SessionStarted,
    SessionStopped,
]

EVENT_PASSIVE_SKIP = "passive_skip"
EVENT_SESSION_START = "session_start"
EVENT_SESSION_STOP = "session_stop"


class FocusSession:
    """Serialized owner of the focus score and everything derived from it.

    Args:
        config: Engine settings (policy, thresholds, timers).
        store: Persistence for state and history.
        dispatcher: Surface broadcast dispatcher.
        oracle: Relevance oracle for page analysis.
        clock: Wall clock, used only for timestamps of internally generated records.
    """

    def __init__(
        self,
        config: EngineConfig,
        store: HistoryStore,
        dispatcher: BroadcastDispatcher,
        oracle: Optional[RelevanceOracle] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._store = store
        self._dispatcher = dispatcher
        self._clock = clock

        self._engine = ScoreEngine(
            get_score_policy(config.score_policy),
            initial_score=config.initial_score,
        )
        self._pose_thresholds = get_pose_thresholds(config.pose_preset)
        self._buffer = GracePeriodBuffer(
            grace_window_ticks=config.grace_window_ticks,
            penalty_zone_ticks=config.penalty_zone_ticks,
        )
        self._flow = FlowStateMachine(threshold=config.flow_threshold)
        self._keystrokes: Throttle[ActivityEvent] = Throttle(
            config.keystroke_throttle_seconds
        )
        self._analyzer = ContentAnalyzer(
            oracle=oracle or RelevanceOracle(backend="none"),
            emit=self.submit,
            goal=lambda: self._goal,
            blocklist=lambda: self._config.blocklist,
            max_attempts=config.content_max_attempts,
            retry_interval=config.content_retry_interval,
        )

        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._goal = config.default_goal
        self._last_input: Optional[float] = None
        self._human_state = HumanState.ABSENT
        self._fusion: Optional[FusionResult] = None
        self._current_page_id: Optional[int] = None
        self._current_url: Optional[str] = None
        self._current_verdict: Optional[RelevanceVerdict] = None
        self._session_id: Optional[int] = None
        self._session_active = False
        self._history: list[dict] = []

    # --- Read-only views ---

    @property
    def score(self) -> float:
        return self._engine.score

    @property
    def focus_time(self) -> int:
        return self._engine.tau

    @property
    def is_flow(self) -> bool:
        return self._flow.is_flow

    @property
    def goal(self) -> str:
        return self._goal

    @property
    def streak(self) -> int:
        return self._buffer.streak

    @property
    def current_verdict(self) -> Optional[RelevanceVerdict]:
        return self._current_verdict

    @property
    def session_active(self) -> bool:
        return self._session_active

    @property
    def history(self) -> list[dict]:
        """Copy of this process's history records, oldest first."""
        return list(self._history)

    @property
    def pending_events(self) -> int:
        return self._queue.qsize()

    @property
    def analyzer(self) -> ContentAnalyzer:
        return self._analyzer

    def status(self) -> dict:
        """Snapshot of the current state. No side effects."""
        return {
            "flowScore": round(self._engine.score, 2),
            "isFlowState": self._flow.is_flow,
            "userGoal": self._goal,
            "currentVerdict": (
                self._current_verdict.to_dict() if self._current_verdict else None
            ),
            "focusTime": self._engine.tau,
            "distractionStreak": self._buffer.streak,
            "humanState": self._human_state.value,
            "fusedVerdict": self._fusion.verdict.value if self._fusion else None,
            "currentUrl": self._current_url,
            "sessionId": self._session_id,
            "sessionActive": self._session_active,
        }

    def apply_config(self, config: EngineConfig) -> None:
        """Swap in new settings.

        Blocklist, default goal and distraction threshold take effect
        immediately; score policy, presets and buffer sizes on the next start.
        """
        self._config = config

    # --- Startup ---

    async def load(self) -> None:
        """Restore goal, score, focus time and flow state from the store."""
        state = await self._store.load_state()

        goal = state.get(KEY_USER_GOAL)
        if isinstance(goal, str) and goal.strip():
            self._goal = goal

        score = state.get(KEY_FLOW_SCORE)
        tau = state.get(KEY_FOCUS_TIME)
        if isinstance(score, (int, float)):
            self._engine.restore(
                float(score), tau if isinstance(tau, int) else None,
            )
        self._flow.restore(bool(state.get(KEY_IS_FLOW_STATE, False)))

        logger.info(
            "Session state loaded: score=%.2f tau=%d flow=%s goal=%r",
            self._engine.score, self._engine.tau, self._flow.is_flow, self._goal,
        )

    # --- Producers ---

    def submit(self, event: Event) -> None:
        """Queue an event for processing. Never blocks."""
        self._queue.put_nowait(event)

    def navigate(self, url: str, observer: ContentObserver) -> int:
        """Start analyzing a newly viewed page.

        Cancels the previous page's analysis before the new one starts.
        Returns the page id.
        """
        # The analysis task cannot run before the next await, so the
        # navigation is always queued ahead of its verdict.
        page_id = self._analyzer.navigate(url, observer)
        self.submit(PageNavigated(page_id=page_id, url=url))
        return page_id

    # --- Consumer ---

    async def run(self) -> None:
        """Process queued events forever, one at a time."""
        while True:
            event = await self._queue.get()
            try:
                await self.handle(event)
            except Exception:
                logger.exception("Failed to process %s", type(event).__name__)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Process every queued event now."""
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self.handle(event)
            finally:
                self._queue.task_done()

    async def shutdown(self) -> None:
        """Cancel page analysis and persist the final state."""
        self._analyzer.cancel()
        await self._persist()

    async def handle(self, event: Event) -> None:
        """Apply one event to the session state."""
        if isinstance(event, PoseTick):
            await self._on_pose_tick(event)
        elif isinstance(event, ActivityEvent):
            await self._on_activity(event)
        elif isinstance(event, PassiveTick):
            await self._on_passive_tick(event)
        elif isinstance(event, PageNavigated):
            self._on_navigated(event)
        elif isinstance(event, PageVerdict):
            await self._on_verdict(event)
        elif isinstance(event, GoalChanged):
            await self._on_goal_changed(event)
        elif isinstance(event, SessionStarted):
            await self._on_session_started(event)
        elif isinstance(event, SessionStopped):
            await self._on_session_stopped(event)
        else:
            raise TypeError(f"Unsupported event: {event!r}")

    # --- Handlers ---

    async def _on_pose_tick(self, event: PoseTick) -> None:
        raw = classify_pose(event.landmarks, self._pose_thresholds)
        self._human_state = self._buffer.update(raw)
        self._fusion = fuse(
            self._human_state,
            is_recently_active(
                self._last_input, event.timestamp, self._config.active_window_seconds,
            ),
        )

        update = self._engine.apply_tick(self._buffer.in_penalty_zone)

        logger.debug(
            "Pose: %s -> %s (streak=%d%s) | tau=%d | score=%.2f",
            raw.value,
            self._fusion.verdict.value,
            self._buffer.streak,
            ", grace" if self._buffer.streak and self._buffer.in_grace_window else "",
            update.new_tau,
            update.new_score,
        )
        await self._after_update(update, event.timestamp, record=False)
        await self._flush_keystrokes(event.timestamp)

    async def _on_activity(self, event: ActivityEvent) -> None:
        if event.type == ACTIVITY_TAB_HIDDEN:
            update = self._engine.apply_event(EVENT_TAB_SWITCH)
            await self._after_update(update, event.timestamp)
            return

        self._last_input = event.timestamp
        if event.type == ACTIVITY_KEYSTROKE:
            if self._keystrokes.offer(event, event.timestamp) is not None:
                await self._apply_keystroke(event.timestamp)

    async def _flush_keystrokes(self, now: float) -> None:
        if self._keystrokes.flush(now) is not None:
            await self._apply_keystroke(now)

    async def _apply_keystroke(self, timestamp: float) -> None:
        update = self._engine.apply_event(EVENT_KEYSTROKE)
        await self._after_update(update, timestamp, record=update.changed)

    async def _on_passive_tick(self, event: PassiveTick) -> None:
        await self._flush_keystrokes(event.timestamp)

        distracted_content = (
            self._current_verdict is not None
            and self._current_verdict.is_distraction(
                self._config.distraction_score_threshold
            )
        )
        distracted_pose = (
            self._fusion is not None
            and self._fusion.verdict is FusedVerdict.UNPRODUCTIVE
        )
        if distracted_content or distracted_pose:
            await self._record(EVENT_PASSIVE_SKIP, event.timestamp)
            return

        update = self._engine.apply_event(EVENT_PASSIVE)
        await self._after_update(update, event.timestamp)

    def _on_navigated(self, event: PageNavigated) -> None:
        self._current_page_id = event.page_id
        self._current_url = event.url
        self._current_verdict = None
        logger.info("Navigated to %s (page %d)", event.url, event.page_id)

    async def _on_verdict(self, event: PageVerdict) -> None:
        if event.page_id != self._current_page_id:
            logger.info(
                "Discarding stale verdict for page %d (current page %s)",
                event.page_id, self._current_page_id,
            )
            return

        verdict = event.verdict
        self._current_verdict = verdict

        if verdict.fallback:
            logger.info("Relevance unavailable for %r; score unaffected", event.title)
            return

        if verdict.is_distraction(self._config.distraction_score_threshold):
            logger.info(
                "Distraction detected (score %d/10): %r", verdict.score, event.title,
            )
            update = self._engine.apply_event(EVENT_DISTRACTION)
            await self._after_update(update, event.timestamp)
            await self._dispatcher.show_warning(
                format_distraction_warning(self._goal, verdict.reason)
            )
        else:
            logger.info(
                "Productive content (score %d/10): %r", verdict.score, event.title,
            )
            update = self._engine.apply_event(EVENT_PRODUCTIVE)
            await self._after_update(update, event.timestamp)

    async def _on_goal_changed(self, event: GoalChanged) -> None:
        goal = event.goal.strip() or self._config.default_goal
        self._goal = goal
        await self._store.save_state({KEY_USER_GOAL: goal})
        logger.info("New goal set: %r", goal)

    async def _on_session_started(self, event: SessionStarted) -> None:
        if self._session_active:
            return
        self._session_id = await self._store.start_session(self._goal, event.timestamp)
        self._session_active = True
        self._buffer.reset()
        self._keystrokes.reset()
        self._history.clear()
        await self._record(EVENT_SESSION_START, event.timestamp)
        await self._persist()
        logger.info("Session started (id=%s, goal=%r)", self._session_id, self._goal)

    async def _on_session_stopped(self, event: SessionStopped) -> None:
        if not self._session_active:
            return
        await self._record(EVENT_SESSION_STOP, event.timestamp)
        if self._session_id is not None:
            await self._store.end_session(self._session_id, event.timestamp)
        await self._persist()
        logger.info("Session stopped (id=%s)", self._session_id)
        self._session_active = False

    # --- Shared update path ---

    async def _after_update(
        self, update: ScoreUpdate, timestamp: float, record: bool = True,
    ) -> None:
        """Re-evaluate flow state, broadcast transitions, record and persist."""
        transition = self._flow.update(update.new_score, timestamp)

        if record:
            await self._record(update.event, timestamp)

        if transition is not None:
            if transition.transition is FlowTransition.ENTER:
                await self._record(EVENT_FLOW_ENTER, timestamp)
                await self._dispatcher.enable_flow_protection()
            else:
                await self._record(EVENT_FLOW_EXIT, timestamp)
                await self._dispatcher.disable_flow_protection()

        if update.changed or transition is not None:
            await self._persist()

    async def _record(self, event: str, timestamp: float) -> None:
        entry = {
            "timestamp": timestamp,
            "event": event,
            "score": round(self._engine.score, 2),
        }
        self._history.append(entry)
        await self._store.append_history(
            self._session_id, timestamp, event, entry["score"],
        )

    async def _persist(self) -> None:
        await self._store.save_state({
            KEY_USER_GOAL: self._goal,
            KEY_FLOW_SCORE: self._engine.score,
            KEY_IS_FLOW_STATE: self._flow.is_flow,
            KEY_FOCUS_TIME: self._engine.tau,
        })
