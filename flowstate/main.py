"""FastAPI entry point for the Flow Facilitator Engine.

Runs on localhost:18181. Owns the focus session and its background tasks:
- Session consumer (applies queued events one at a time)
- Pose loop (webcam + FaceLandmarker -> pose ticks, once per second)
- Passive loop (passive focus gain, once per minute)

Observing surfaces connect over /ws/surface; activity, navigation and
browser-side pose samples arrive over the REST API.

Usage:
    python -m flowstate.main
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowstate.api import websocket
from flowstate.api.routes import router as api_router
from flowstate.api.routes import set_engine_state
from flowstate.config import EngineConfig, load_config
from flowstate.events import PassiveTick, PoseTick
from flowstate.history.store import HistoryStore
from flowstate.notification.dispatcher import BroadcastDispatcher
from flowstate.relevance.oracle import RelevanceOracle
from flowstate.session import FocusSession

logger = logging.getLogger(__name__)

# --- Global state ---

_background_tasks: list[asyncio.Task] = []
_config: EngineConfig = EngineConfig()

# Components
_history_store = HistoryStore()
_dispatcher: Optional[BroadcastDispatcher] = None
_oracle: Optional[RelevanceOracle] = None
_session: Optional[FocusSession] = None


# --- Pose detection ---


async def _pose_loop(session: FocusSession) -> None:
    """Background task: webcam pose detection, one tick per pose_interval.

    Reads from global _config so settings changes take effect dynamically.
    Exits (leaving the engine running without a camera) if the camera
    cannot be opened.
    """
    if not _config.camera_enabled:
        logger.info("Camera disabled in config, skipping pose loop.")
        return

    try:
        from flowstate.camera.capture import CameraCapture
    except ImportError as e:
        logger.error("Failed to import camera modules: %s", e)
        return

    camera = CameraCapture(camera_index=_config.camera_index)
    try:
        await asyncio.to_thread(camera.open)
    except RuntimeError as e:
        logger.error("Failed to open camera: %s", e)
        return

    try:
        while True:
            if not _config.camera_enabled:
                logger.info("Camera disabled, stopping pose loop.")
                return

            try:
                landmarks = await asyncio.to_thread(camera.read_landmarks)
            except RuntimeError as e:
                # A failed read is a missing detection, not a missing face
                logger.debug("Frame capture failed: %s", e)
                await asyncio.sleep(_config.pose_interval)
                continue

            session.submit(PoseTick(landmarks=landmarks))
            await asyncio.sleep(_config.pose_interval)
    finally:
        camera.close()


# --- Passive focus gain ---


async def _passive_loop(session: FocusSession) -> None:
    """Background task: one passive tick per passive_interval."""
    while True:
        await asyncio.sleep(_config.passive_interval)
        session.submit(PassiveTick())


# --- Settings ---


async def apply_config(new_config: EngineConfig) -> None:
    """Apply a new config to the running engine (called from settings API)."""
    global _config

    _config = new_config
    if _session is not None:
        _session.apply_config(new_config)
    logger.info("Applied updated config to running engine.")


async def start_engine() -> None:
    """Build the session and start all background tasks."""
    global _config, _dispatcher, _oracle, _session

    _config = load_config()
    try:
        _config.validate()
    except ValueError as e:
        logger.error("Invalid config (%s), using defaults.", e)
        _config = EngineConfig()

    _dispatcher = BroadcastDispatcher(send_timeout=_config.surface_send_timeout)
    _oracle = RelevanceOracle.from_config(_config)
    _oracle.preload()
    _session = FocusSession(_config, _history_store, _dispatcher, _oracle)
    await _session.load()

    set_engine_state("session", _session)
    set_engine_state("start_time", time.time())
    websocket.configure(_dispatcher, _session)

    logger.info("Starting engine tasks...")

    _background_tasks.extend([
        asyncio.create_task(_session.run(), name="session_consumer"),
        asyncio.create_task(_pose_loop(_session), name="pose_loop"),
        asyncio.create_task(_passive_loop(_session), name="passive_loop"),
    ])


async def stop_engine() -> None:
    """Stop all background tasks and persist the final state."""
    global _session

    logger.info("Stopping engine tasks...")

    for task in _background_tasks:
        task.cancel()

    await asyncio.gather(*_background_tasks, return_exceptions=True)
    _background_tasks.clear()

    if _session is not None:
        await _session.shutdown()
        _session = None
        set_engine_state("session", None)

    if _oracle is not None:
        await asyncio.to_thread(_oracle.close)

    logger.info("All engine tasks stopped.")


# --- FastAPI app ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: open history store, start the engine."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    await _history_store.open()
    set_engine_state("history_store", _history_store)
    set_engine_state("apply_config_callback", apply_config)

    await start_engine()

    yield

    # Shutdown
    await stop_engine()
    await _history_store.close()


app = FastAPI(
    title="Flow Facilitator Engine",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow extension pages and local surfaces to access the API
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)
app.include_router(websocket.router)


def main() -> None:
    """Run the engine server."""
    config = load_config()
    uvicorn.run(
        "flowstate.main:app",
        host="127.0.0.1",
        port=config.engine_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
