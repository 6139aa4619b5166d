"""Periodic deactivation of idle guest sessions."""

import asyncio
import logging

from models.errors import StorageError
from services.session_manager import SessionManager

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Run `SessionManager.cleanup_expired_sessions` on a fixed interval."""

    def __init__(self, session_manager: SessionManager, interval_seconds: int = 3_600) -> None:
        """
        Args:
            session_manager: Shared session manager owning the idle timeout.
            interval_seconds: Seconds to sleep between sweeps.
        """
        self._sessions = session_manager
        self.interval_seconds = interval_seconds

    async def sweep_once(self) -> int:
        return await self._sessions.cleanup_expired_sessions()

    async def run_periodic_cleanup(self) -> None:
        """Repeatedly sweep idle sessions until cancelled."""
        while True:
            try:
                await self.sweep_once()
            except StorageError as exc:
                logger.error("Session sweep failed, retrying next tick: %s", exc)
            await asyncio.sleep(self.interval_seconds)
