"""REST API routes for the Flow Facilitator Engine.

Endpoints:
    GET  /api/health               -> Health check
    GET  /api/status               -> Current focus status snapshot
    PUT  /api/goal                 -> Set the user's goal
    POST /api/activity             -> Report a click / keystroke / scroll / tab switch
    POST /api/pose                 -> Report face landmarks (or null when no face)
    POST /api/navigation           -> Report a page navigation
    POST /api/navigation/metadata  -> Report late page metadata for the current page
    POST /api/session/start        -> Start a focus session
    POST /api/session/stop         -> Stop the focus session
    GET  /api/history              -> Session history records
    GET  /api/reports/latest       -> Report for the latest session
    GET  /api/reports/{session_id} -> Report for a specific session
    GET  /api/settings             -> Current engine settings
    PUT  /api/settings             -> Update engine settings
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from flowstate.config import EngineConfig, load_config, save_config
from flowstate.events import (
    ACTIVITY_TYPES,
    ActivityEvent,
    GoalChanged,
    PoseTick,
    SessionStarted,
    SessionStopped,
)
from flowstate.history.report import compute_session_report
from flowstate.relevance.content import MetadataSlot, PageMetadata
from flowstate.scoring.pose import FaceLandmarks
from flowstate.session import FocusSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# --- Request/Response models ---


class HealthResponse(BaseModel):
    status: str = "ok"
    session_active: bool = False
    uptime_seconds: float = 0.0


class GoalUpdate(BaseModel):
    goal: str


class ActivityRequest(BaseModel):
    type: str
    timestamp: Optional[float] = None


class PointModel(BaseModel):
    x: float
    y: float


class LandmarksModel(BaseModel):
    nose: PointModel
    left_eye: PointModel
    right_eye: PointModel
    jaw: PointModel


class PoseRequest(BaseModel):
    landmarks: Optional[LandmarksModel] = None
    timestamp: Optional[float] = None


class NavigationRequest(BaseModel):
    url: str
    title: Optional[str] = None
    description: Optional[str] = None


class MetadataRequest(BaseModel):
    page_id: Optional[int] = None
    title: str
    description: Optional[str] = None


class SettingsResponse(BaseModel):
    default_goal: str
    score_policy: str
    pose_preset: str
    flow_threshold: float
    oracle_backend: str
    oracle_model: str
    oracle_timeout: float
    distraction_score_threshold: int
    blocklist: list[str]
    camera_enabled: bool
    camera_index: int
    pose_interval: float
    passive_interval: float


class SettingsUpdate(BaseModel):
    default_goal: Optional[str] = None
    score_policy: Optional[str] = None
    pose_preset: Optional[str] = None
    flow_threshold: Optional[float] = Field(None, ge=0.0, le=100.0)
    oracle_backend: Optional[str] = None
    oracle_model: Optional[str] = None
    oracle_timeout: Optional[float] = Field(None, gt=0.0)
    distraction_score_threshold: Optional[int] = Field(None, ge=0, le=10)
    blocklist: Optional[list[str]] = None
    camera_enabled: Optional[bool] = None
    camera_index: Optional[int] = None
    pose_interval: Optional[float] = Field(None, gt=0.0)
    passive_interval: Optional[float] = Field(None, gt=0.0)


# --- Shared state (set by main.py at startup) ---

_engine_state: dict = {
    "start_time": None,
    "session": None,
    "history_store": None,
    "metadata_slot": None,
    "page_id": None,
}


def set_engine_state(key: str, value: object) -> None:
    """Set a shared engine state value (called from main.py)."""
    _engine_state[key] = value


def get_engine_state(key: str) -> object:
    """Get a shared engine state value."""
    return _engine_state.get(key)


def _require_session() -> FocusSession:
    session = _engine_state.get("session")
    if session is None:
        raise HTTPException(status_code=503, detail="Engine not running")
    return session


def _require_store():
    store = _engine_state.get("history_store")
    if store is None:
        raise HTTPException(status_code=503, detail="History store not available")
    return store


# --- Route handlers ---


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    session = _engine_state.get("session")
    start_time = _engine_state.get("start_time")
    uptime = time.time() - start_time if start_time else 0.0

    return HealthResponse(
        status="ok",
        session_active=session.session_active if session is not None else False,
        uptime_seconds=round(uptime, 1),
    )


@router.get("/status")
async def get_status() -> dict:
    """Current score, flow state, goal and verdict."""
    return _require_session().status()


@router.put("/goal")
async def update_goal(body: GoalUpdate) -> dict:
    session = _require_session()
    session.submit(GoalChanged(goal=body.goal))
    return {"status": "ok"}


@router.post("/activity")
async def report_activity(body: ActivityRequest) -> dict:
    """Record one user interaction."""
    session = _require_session()
    if body.type not in ACTIVITY_TYPES:
        raise HTTPException(status_code=422, detail=f"Unknown activity type: {body.type}")
    event = (
        ActivityEvent(type=body.type, timestamp=body.timestamp)
        if body.timestamp is not None
        else ActivityEvent(type=body.type)
    )
    session.submit(event)
    return {"status": "ok"}


@router.post("/pose")
async def report_pose(body: PoseRequest) -> dict:
    """Record one pose sample from a browser-side detector."""
    session = _require_session()
    landmarks = (
        FaceLandmarks.from_dict(body.landmarks.model_dump())
        if body.landmarks is not None
        else None
    )
    event = (
        PoseTick(landmarks=landmarks, timestamp=body.timestamp)
        if body.timestamp is not None
        else PoseTick(landmarks=landmarks)
    )
    session.submit(event)
    return {"status": "ok"}


@router.post("/navigation")
async def report_navigation(body: NavigationRequest) -> dict:
    """Start analyzing a newly viewed page."""
    session = _require_session()
    slot = MetadataSlot()
    if body.title:
        slot.fill(PageMetadata(title=body.title, description=body.description))

    page_id = session.navigate(body.url, slot)
    set_engine_state("metadata_slot", slot)
    set_engine_state("page_id", page_id)
    return {"status": "ok", "page_id": page_id}


@router.post("/navigation/metadata")
async def report_metadata(body: MetadataRequest) -> dict:
    """Fill in metadata for the page currently being analyzed."""
    slot = _engine_state.get("metadata_slot")
    current = _engine_state.get("page_id")
    if slot is None or (body.page_id is not None and body.page_id != current):
        return {"status": "ignored"}
    slot.fill(PageMetadata(title=body.title, description=body.description))
    return {"status": "ok", "page_id": current}


@router.post("/session/start")
async def start_session() -> dict:
    session = _require_session()
    session.submit(SessionStarted())
    return {"status": "ok", "message": "Session starting"}


@router.post("/session/stop")
async def stop_session() -> dict:
    session = _require_session()
    session.submit(SessionStopped())
    return {"status": "ok", "message": "Session stopping"}


@router.get("/history")
async def get_history(
    session_id: Optional[int] = Query(None, description="Session id (defaults to all)"),
    limit: int = Query(1000, ge=1, le=10000, description="Max entries to return"),
) -> dict:
    """Get session history records in chronological order."""
    store = _require_store()
    history = await store.get_history(session_id=session_id, limit=limit)
    return {"history": history, "count": len(history)}


@router.get("/sessions")
async def list_sessions(
    limit: int = Query(50, ge=1, le=500, description="Max sessions to return"),
) -> dict:
    """List recorded sessions, newest first."""
    store = _require_store()
    sessions = await store.list_sessions(limit=limit)
    return {"sessions": sessions, "count": len(sessions)}


@router.get("/reports/latest")
async def get_latest_report() -> dict:
    store = _require_store()
    report = await compute_session_report(store)
    if report is None:
        raise HTTPException(status_code=404, detail="No sessions recorded yet")
    return report


@router.get("/reports/{session_id}")
async def get_report(session_id: int) -> dict:
    store = _require_store()
    report = await compute_session_report(store, session_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"No session found: {session_id}")
    return report


@router.get("/settings", response_model=SettingsResponse)
async def get_settings() -> SettingsResponse:
    """Get current engine settings."""
    config = load_config()
    return _config_to_response(config)


@router.put("/settings", response_model=SettingsResponse)
async def update_settings(update: SettingsUpdate) -> SettingsResponse:
    """Update engine settings. Only provided fields are updated.

    Changes are saved to disk and take effect on the next engine start,
    except for the ones the running engine re-reads through
    apply_config_callback.
    """
    config = load_config()

    update_data = update.model_dump(exclude_none=True)
    for key, value in update_data.items():
        if hasattr(config, key):
            setattr(config, key, value)

    try:
        config.validate()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    save_config(config)

    apply_callback = _engine_state.get("apply_config_callback")
    if apply_callback is not None:
        await apply_callback(config)

    return _config_to_response(config)


def _config_to_response(config: EngineConfig) -> SettingsResponse:
    """Convert an EngineConfig to a SettingsResponse."""
    return SettingsResponse(
        default_goal=config.default_goal,
        score_policy=config.score_policy,
        pose_preset=config.pose_preset,
        flow_threshold=config.flow_threshold,
        oracle_backend=config.oracle_backend,
        oracle_model=config.oracle_model,
        oracle_timeout=config.oracle_timeout,
        distraction_score_threshold=config.distraction_score_threshold,
        blocklist=list(config.blocklist),
        camera_enabled=config.camera_enabled,
        camera_index=config.camera_index,
        pose_interval=config.pose_interval,
        passive_interval=config.passive_interval,
    )
