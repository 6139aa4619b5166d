"""Message persistence and the moderation queue."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import uuid4

from dal.message_dal import MessageDAL
from models.errors import NotFoundError, SessionInactiveError
from models.message_record import MessageRecord, MessageStatus, SenderKind
from services.session_manager import SessionManager
from utils.chat_validation import clean_message_text

logger = logging.getLogger(__name__)


class MessageStore:
    """Durable record of chat messages and their moderation status."""

    def __init__(
        self,
        message_dal: MessageDAL,
        session_manager: SessionManager,
        max_message_length: int = 500,
    ) -> None:
        self._dal = message_dal
        self._sessions = session_manager
        self.max_message_length = max_message_length

    async def create_message(
        self,
        session_id: str,
        text: str,
        sender: SenderKind = SenderKind.USER,
    ) -> MessageRecord:
        """Store a pending message for an active session.

        Raises:
            ValidationError: text is empty or too long.
            NotFoundError: the session does not exist.
            SessionInactiveError: the session has been blocked or expired.
        """
        cleaned = clean_message_text(text, self.max_message_length)
        message = await self._dal.create_message_for_active_session(uuid4().hex, session_id, cleaned, sender)
        if message is None:
            session = await self._sessions.find_session_by_id(session_id)
            if session is None:
                raise NotFoundError("Session not found", details={"session_id": session_id})
            raise SessionInactiveError("Session is no longer active", details={"session_id": session_id})

        await self._sessions.touch_session(session_id)
        logger.info("Stored pending message %s from session %s", message.id, session_id)
        return message

    async def get_pending_messages(self, limit: int = 50, offset: int = 0) -> List[MessageRecord]:
        return await self._dal.list_pending(limit=limit, offset=offset)

    async def get_message_by_id(self, message_id: str) -> Optional[MessageRecord]:
        return await self._dal.get_message_by_id(message_id)

    async def get_approved_messages(self, limit: int = 20, offset: int = 0) -> Tuple[List[MessageRecord], int]:
        return await self._dal.list_approved(limit=limit, offset=offset)

    async def update_message_status(
        self,
        message_id: str,
        new_status: MessageStatus,
        moderator_id: str,
        moderated_at: datetime,
    ) -> bool:
        """Conditionally move a pending message to a terminal status.

        Only the moderation engine calls this; it returns False when another
        caller already moved the message out of `pending`.
        """
        return await self._dal.update_status_if_pending(message_id, new_status, moderator_id, moderated_at)
