"""Broadcast dispatcher: sends surface commands to every observing surface.

Delivery is fire-and-forget. Each surface gets a bounded amount of time; a
surface that errors, times out or is gone is dropped from the registry and
skipped, never retried, and never fails the broadcast as a whole.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

ENTER_FLOW_MODE = "ENTER_FLOW_MODE"
EXIT_FLOW_MODE = "EXIT_FLOW_MODE"
SHOW_WARNING = "SHOW_WARNING"

SEND_TIMEOUT_SECONDS = 2.0


class Surface(Protocol):
    """An open page/window that reacts to surface commands."""

    surface_id: str

    async def send(self, message: dict) -> None: ...


def format_distraction_warning(goal: str, reason: str) -> str:
    """Warning text shown when the current page does not match the goal."""
    return f'Distraction Detected! This doesn\'t align with "{goal}".\nReason: {reason}'


class BroadcastDispatcher:
    """Registry of observing surfaces with best-effort fan-out.

    Args:
        send_timeout: Seconds allowed per surface for one command.
    """

    def __init__(self, send_timeout: float = SEND_TIMEOUT_SECONDS) -> None:
        self._send_timeout = send_timeout
        self._surfaces: dict[str, Surface] = {}
        self._lock = asyncio.Lock()

    @property
    def surface_count(self) -> int:
        """Number of registered surfaces."""
        return len(self._surfaces)

    async def register(self, surface: Surface) -> None:
        async with self._lock:
            self._surfaces[surface.surface_id] = surface
        logger.info("Surface registered: %s. Total: %d", surface.surface_id, len(self._surfaces))

    async def unregister(self, surface: Surface) -> None:
        async with self._lock:
            self._surfaces.pop(surface.surface_id, None)
        logger.info("Surface removed: %s. Total: %d", surface.surface_id, len(self._surfaces))

    async def _send_one(self, surface: Surface, message: dict) -> bool:
        try:
            await asyncio.wait_for(surface.send(message), timeout=self._send_timeout)
            return True
        except Exception as e:
            logger.debug("Skipping surface %s (%s): %r", surface.surface_id, message["type"], e)
            return False

    async def broadcast(self, command: str, message: Optional[str] = None) -> int:
        """Send a command to all registered surfaces.

        Returns:
            Number of surfaces the command was delivered to.
        """
        payload: dict = {"type": command, "timestamp": time.time()}
        if message is not None:
            payload["message"] = message

        async with self._lock:
            surfaces = list(self._surfaces.values())

        results = await asyncio.gather(
            *(self._send_one(surface, payload) for surface in surfaces)
        )

        failed = [s for s, ok in zip(surfaces, results) if not ok]
        if failed:
            async with self._lock:
                for surface in failed:
                    if self._surfaces.get(surface.surface_id) is surface:
                        del self._surfaces[surface.surface_id]

        delivered = len(surfaces) - len(failed)
        logger.info("Broadcast %s to %d/%d surfaces", command, delivered, len(surfaces))
        return delivered

    async def enable_flow_protection(self) -> int:
        """Tell every surface to hide distractions (entering flow)."""
        return await self.broadcast(ENTER_FLOW_MODE)

    async def disable_flow_protection(self) -> int:
        """Tell every surface to restore hidden UI (leaving flow)."""
        return await self.broadcast(EXIT_FLOW_MODE)

    async def show_warning(self, message: str) -> int:
        return await self.broadcast(SHOW_WARNING, message=message)
