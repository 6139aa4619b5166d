"""Guest session lifecycle: issue, resolve, deactivate and sweep."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Optional, Tuple
from uuid import uuid4

from dal.session_dal import SessionDAL
from models.session_record import GuestSession
from utils.chat_validation import validate_guest_identity
from utils.clock import utc_now

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class SessionManager:
    """Issue and validate the guest identity used to gate chat submission."""

    def __init__(self, session_dal: SessionDAL, idle_timeout_seconds: int = 86_400) -> None:
        self._dal = session_dal
        self.idle_timeout = timedelta(seconds=idle_timeout_seconds)

    async def create_session(
        self,
        name: str,
        city: Optional[str] = None,
        country: Optional[str] = None,
    ) -> Tuple[GuestSession, str]:
        """Create an active session and return it with the client-held token.

        The token is random, returned once, and only its digest is stored.
        """
        name, city, country = validate_guest_identity(name, city, country)
        token = secrets.token_urlsafe(TOKEN_BYTES)
        draft = GuestSession(id=uuid4().hex, name=name, city=city, country=country)
        session = await self._dal.create_session(draft, token)
        logger.info("Created live chat session %s for %s", session.id, session.name)
        return session, token

    async def find_session_by_id(self, session_id: str) -> Optional[GuestSession]:
        return await self._dal.get_session_by_id(session_id)

    async def find_session_by_token(self, token: Optional[str]) -> Optional[GuestSession]:
        if not token:
            return None
        return await self._dal.get_session_by_token(token)

    async def invalidate_session(self, session_id: str) -> bool:
        """Deactivate a session; succeeds silently if it is already inactive.

        Returns False only when no such session exists.
        """
        existed = await self._dal.deactivate_session(session_id)
        if existed:
            logger.info("Deactivated live chat session %s", session_id)
        else:
            logger.warning("Cannot deactivate unknown session %s", session_id)
        return existed

    async def touch_session(self, session_id: str) -> bool:
        return await self._dal.touch_session(session_id)

    async def cleanup_expired_sessions(self) -> int:
        """Deactivate sessions idle for longer than the timeout; return how many."""
        cutoff = utc_now() - self.idle_timeout
        count = await self._dal.deactivate_idle_sessions(cutoff)
        logger.info("Cleaned up %d expired sessions", count)
        return count
