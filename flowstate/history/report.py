"""Post-session report built from the session history.

Computes:
- Session duration and goal
- Event log (passive samples excluded) with offsets from the session start
- Distraction count, peak and final score
- Flow blocks (periods between entering and leaving flow)
"""

from __future__ import annotations

import datetime
import math
from typing import Optional

from flowstate.history.store import HistoryStore


EVENT_FLOW_ENTER = "flow_enter"
EVENT_FLOW_EXIT = "flow_exit"


async def compute_session_report(
    store: HistoryStore,
    session_id: Optional[int] = None,
) -> Optional[dict]:
    """Build the report for a session.

    Args:
        store: HistoryStore instance (must be opened).
        session_id: Session to report on. Defaults to the latest session.

    Returns:
        Report dict, or None if there is no such session.
    """
    if session_id is None:
        session = await store.get_latest_session()
    else:
        session = await store.get_session(session_id)

    if session is None:
        return None

    history = await store.get_history(session_id=session["id"])
    return build_session_report(session, history)


def build_session_report(session: dict, history: list[dict]) -> dict:
    """Summarize one session.

    Args:
        session: Session record with id, goal, start_time and end_time (None while running).
        history: History records sorted by timestamp ascending.
    """
    start = session["start_time"]
    end = session["end_time"]
    if end is None:
        end = history[-1]["timestamp"] if history else start

    events = [
        {
            "event": entry["event"],
            "score": round(entry["score"], 2),
            "offset_seconds": round(entry["timestamp"] - start),
        }
        for entry in history
        if "passive" not in entry["event"]
    ]

    scores = [entry["score"] for entry in history]
    flow_blocks = _extract_flow_blocks(history, end)

    return {
        "session_id": session["id"],
        "goal": session["goal"],
        "start_time": start,
        "end_time": session["end_time"],
        "duration_minutes": math.ceil((end - start) / 60.0),
        "events": events,
        "distraction_count": sum(
            1 for entry in history if "distraction" in entry["event"]
        ),
        "peak_score": round(max(scores), 2) if scores else 0.0,
        "final_score": round(scores[-1], 2) if scores else 0.0,
        "flow_blocks": flow_blocks,
        "flow_minutes": round(sum(b["duration_min"] for b in flow_blocks), 1),
    }


def _extract_flow_blocks(history: list[dict], session_end: float) -> list[dict]:
    """Pair flow_enter/flow_exit events into blocks.

    A block still open at the end of the history closes at session_end.
    """
    blocks: list[dict] = []
    block_start: Optional[float] = None

    for entry in history:
        if entry["event"] == EVENT_FLOW_ENTER and block_start is None:
            block_start = entry["timestamp"]
        elif entry["event"] == EVENT_FLOW_EXIT and block_start is not None:
            blocks.append(_flow_block(block_start, entry["timestamp"]))
            block_start = None

    if block_start is not None:
        blocks.append(_flow_block(block_start, max(session_end, block_start)))

    return blocks


def _flow_block(start: float, end: float) -> dict:
    return {
        "start": datetime.datetime.fromtimestamp(start).strftime("%H:%M"),
        "end": datetime.datetime.fromtimestamp(end).strftime("%H:%M"),
        "duration_min": round((end - start) / 60.0, 1),
    }
