"""Guest message submission shared by the HTTP and websocket entry points."""

from __future__ import annotations

import logging

from models.errors import BroadcastError
from models.events import ADMIN_CHANNEL, message_new_event
from models.message_record import MessageRecord
from services.message_store import MessageStore
from services.realtime.broadcaster import Broadcaster

logger = logging.getLogger(__name__)


class SubmissionService:
    """Store a guest message and announce it to the moderation console."""

    def __init__(self, message_store: MessageStore, broadcaster: Broadcaster) -> None:
        self.messages = message_store
        self.broadcaster = broadcaster

    async def submit(self, session_id: str, text: str) -> MessageRecord:
        """Store `text` as a pending message; errors from the store propagate."""
        message = await self.messages.create_message(session_id, text)
        try:
            await self.broadcaster.publish(ADMIN_CHANNEL, message_new_event(message))
        except BroadcastError as exc:
            logger.warning("Moderator console was not told about message %s: %s", message.id, exc)
        return message
