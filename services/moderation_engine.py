"""Moderation state machine and its side effects.

A message moves from `pending` to exactly one of `approved`, `rejected` or
`blocked`. The transition is a conditional write keyed on the prior status, so
when several moderators act on the same message one of them wins and the rest
see AlreadyModeratedError. Side effects run after the write and can never
revert it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import List, Optional, Set, Union

from models.errors import AlreadyModeratedError, BroadcastError, NotFoundError, StorageError
from models.events import (
    ADMIN_CHANNEL,
    FEED_CHANNEL,
    message_approved_event,
    message_moderated_event,
)
from models.message_record import MessageRecord, MessageStatus
from models.moderation import ModerationAction
from services.message_store import MessageStore
from services.notification_service import NotificationService
from services.realtime.broadcaster import Broadcaster
from services.session_manager import SessionManager
from utils.clock import utc_now

logger = logging.getLogger(__name__)


class ModerationEngine:
    """Apply moderation actions to chat messages."""

    def __init__(
        self,
        message_store: MessageStore,
        session_manager: SessionManager,
        broadcaster: Broadcaster,
        notifier: Optional[NotificationService] = None,
        publish_attempts: int = 3,
        retry_delay: float = 0.05,
    ) -> None:
        self.messages = message_store
        self.sessions = session_manager
        self.broadcaster = broadcaster
        self.notifier = notifier
        self.publish_attempts = max(1, publish_attempts)
        self.retry_delay = retry_delay
        self._notifications: Set[asyncio.Task] = set()

    async def moderate(
        self,
        message_id: str,
        action: Union[str, ModerationAction],
        moderator_id: str,
    ) -> MessageRecord:
        """Apply `action` to a pending message and return the updated message.

        Raises:
            ValidationError: `action` is not approve, reject or block.
            NotFoundError: no message has `message_id`.
            AlreadyModeratedError: the message is no longer pending.
        """
        parsed = ModerationAction.parse(action)

        message = await self.messages.get_message_by_id(message_id)
        if message is None:
            raise NotFoundError("Message not found", details={"message_id": message_id})
        if message.status is not MessageStatus.PENDING:
            raise AlreadyModeratedError(message_id, message.status.value)

        moderated_at = utc_now()
        won = await self.messages.update_message_status(
            message_id, parsed.target_status, moderator_id, moderated_at
        )
        if not won:
            current = await self.messages.get_message_by_id(message_id)
            status = current.status.value if current else "unknown"
            logger.info("Moderation of %s by %s lost the race (now %s)", message_id, moderator_id, status)
            raise AlreadyModeratedError(message_id, status)

        updated = replace(
            message, status=parsed.target_status, moderated_by=moderator_id, moderated_at=moderated_at
        )

        logger.info("Message %s %s by %s", message_id, updated.status.value, moderator_id)
        await self._apply_side_effects(updated, parsed)
        return updated

    async def get_pending_messages(self, limit: int = 50, offset: int = 0) -> List[MessageRecord]:
        return await self.messages.get_pending_messages(limit=limit, offset=offset)

    async def get_message_by_id(self, message_id: str) -> Optional[MessageRecord]:
        return await self.messages.get_message_by_id(message_id)

    async def _apply_side_effects(self, message: MessageRecord, action: ModerationAction) -> None:
        if action is ModerationAction.APPROVE:
            await self._publish_with_retry(FEED_CHANNEL, message_approved_event(message))
        elif action is ModerationAction.BLOCK:
            await self._block_session(message.session_id)

        try:
            await self.broadcaster.publish(ADMIN_CHANNEL, message_moderated_event(message, action))
        except BroadcastError as exc:
            logger.warning("Moderator console update for %s failed: %s", message.id, exc)

        if self.notifier is not None:
            task = asyncio.create_task(self.notifier.notify(message_moderated_event(message, action)))
            self._notifications.add(task)
            task.add_done_callback(self._notifications.discard)

    async def _publish_with_retry(self, channel: str, event: dict) -> bool:
        """Publish `event`, retrying briefly; the moderation result never depends on it."""
        for attempt in range(1, self.publish_attempts + 1):
            try:
                await self.broadcaster.publish(channel, event)
                return True
            except BroadcastError as exc:
                logger.error(
                    "Publishing %s to %s failed (attempt %d/%d): %s",
                    event.get("type"), channel, attempt, self.publish_attempts, exc,
                )
                if attempt < self.publish_attempts:
                    await asyncio.sleep(self.retry_delay * attempt)
        return False

    async def _block_session(self, session_id: str) -> None:
        try:
            await self.sessions.invalidate_session(session_id)
        except StorageError as exc:
            logger.error("Failed to block session %s after moderation: %s", session_id, exc)

    async def flush_notifications(self) -> None:
        """Wait for notifications still being delivered in the background."""
        if self._notifications:
            await asyncio.gather(*list(self._notifications))
