"""WebSocket endpoint for observing surfaces.

Provides /ws/surface. Every connection is registered with the broadcast
dispatcher and receives surface commands:
- {"type": "ENTER_FLOW_MODE", "timestamp": ...}
- {"type": "EXIT_FLOW_MODE", "timestamp": ...}
- {"type": "SHOW_WARNING", "message": ..., "timestamp": ...}

Surfaces may also report activity over the same connection:
- {"type": "activity", "activity": "keystroke"}
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from flowstate.events import ACTIVITY_TYPES, ActivityEvent
from flowstate.notification.dispatcher import BroadcastDispatcher
from flowstate.session import FocusSession

logger = logging.getLogger(__name__)

router = APIRouter()

_dispatcher: Optional[BroadcastDispatcher] = None
_session: Optional[FocusSession] = None


def configure(dispatcher: BroadcastDispatcher, session: Optional[FocusSession]) -> None:
    """Attach the dispatcher and session (called from main.py)."""
    global _dispatcher, _session
    _dispatcher = dispatcher
    _session = session


class WebSocketSurface:
    """Adapts a WebSocket connection to the dispatcher's Surface protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self.surface_id = f"ws-{uuid.uuid4().hex[:8]}"
        self._websocket = websocket

    async def send(self, message: dict) -> None:
        await self._websocket.send_text(json.dumps(message))


def _handle_client_message(data: str) -> Optional[str]:
    """Apply one client message. Returns a reply, if any."""
    if data == "ping":
        return "pong"

    try:
        message = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Ignoring non-JSON surface message: %r", data[:80])
        return None

    if not isinstance(message, dict) or message.get("type") != "activity":
        return None

    activity = message.get("activity")
    if activity not in ACTIVITY_TYPES or _session is None:
        return None

    _session.submit(ActivityEvent(type=activity))
    return None


@router.websocket("/ws/surface")
async def websocket_surface(websocket: WebSocket) -> None:
    """WebSocket endpoint for one observing surface (page/window)."""
    await websocket.accept()
    if _dispatcher is None:
        await websocket.close(code=1013)
        return

    surface = WebSocketSurface(websocket)
    await _dispatcher.register(surface)
    try:
        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            reply = _handle_client_message(data)
            if reply is not None:
                await websocket.send_text(reply)
    finally:
        await _dispatcher.unregister(surface)
