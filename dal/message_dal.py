"""Async Data Access Layer for the messages table.

Reads always join the owning session so callers get the sender's display
name, city and country alongside the message.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import aiosqlite

from models.errors import StorageError
from models.message_record import MessageRecord, MessageStatus, SenderKind
from utils.clock import from_db, to_db, utc_now
from utils.database_init import AsyncDatabaseInitializer


class MessageDAL:
    """Data access layer for chat message records."""

    _SELECT = (
        "SELECT m.id, m.session_id, m.text, m.sender, m.status, m.moderated_by, "
        "m.moderated_at, m.created_at, s.name, s.city, s.country "
        "FROM messages m JOIN sessions s ON s.id = m.session_id"
    )

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_message_for_active_session(
        self,
        message_id: str,
        session_id: str,
        text: str,
        sender: SenderKind = SenderKind.USER,
        created_at: Optional[datetime] = None,
    ) -> Optional[MessageRecord]:
        """Insert a pending message only if its session is currently active.

        The session check and the insert are one statement, so a block that
        lands concurrently either happens before (no row) or after (row kept).

        Returns:
            The stored MessageRecord, or None when the session is missing or inactive.
        """
        created_at = created_at or utc_now()
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    "INSERT INTO messages (id, session_id, text, sender, status, created_at) "
                    "SELECT ?, id, ?, ?, ?, ? FROM sessions WHERE id = ? AND is_active = 1",
                    (message_id, text, sender.value, MessageStatus.PENDING.value, to_db(created_at), session_id),
                )
                await conn.commit()
                if cur.rowcount == 0:
                    return None
                cur = await conn.execute(f"{self._SELECT} WHERE m.id = ?", (message_id,))
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError("Failed to store message") from exc
        return self._row_to_record(row) if row else None

    async def get_message_by_id(self, message_id: str) -> Optional[MessageRecord]:
        """Return MessageRecord for `message_id`, or None if not found."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(f"{self._SELECT} WHERE m.id = ?", (message_id,))
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to read message {message_id}") from exc
        return self._row_to_record(row) if row else None

    async def list_pending(self, limit: int = 50, offset: int = 0) -> List[MessageRecord]:
        """List listener messages awaiting moderation, oldest first.

        Args:
            limit: Maximum number of rows to return.
            offset: Rows to skip.
        """
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    f"{self._SELECT} WHERE m.status = ? AND m.sender = ? "
                    "ORDER BY m.created_at ASC, m.rowid ASC LIMIT ? OFFSET ?",
                    (MessageStatus.PENDING.value, SenderKind.USER.value, limit, offset),
                )
                rows = await cur.fetchall()
        except (aiosqlite.Error, OverflowError) as exc:
            raise StorageError("Failed to list pending messages") from exc
        return [self._row_to_record(r) for r in rows]

    async def list_approved(self, limit: int = 20, offset: int = 0) -> Tuple[List[MessageRecord], int]:
        """Return a page of approved messages (newest first) and the total count."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    f"{self._SELECT} WHERE m.status = ? "
                    "ORDER BY m.created_at DESC, m.rowid DESC LIMIT ? OFFSET ?",
                    (MessageStatus.APPROVED.value, limit, offset),
                )
                rows = await cur.fetchall()
                cur = await conn.execute(
                    "SELECT COUNT(*) FROM messages WHERE status = ?",
                    (MessageStatus.APPROVED.value,),
                )
                total = await cur.fetchone()
        except (aiosqlite.Error, OverflowError) as exc:
            raise StorageError("Failed to list approved messages") from exc
        return [self._row_to_record(r) for r in rows], int(total[0]) if total else 0

    async def update_status_if_pending(
        self,
        message_id: str,
        new_status: MessageStatus,
        moderator_id: str,
        moderated_at: datetime,
    ) -> bool:
        """Move a pending message to `new_status` in one conditional write.

        Returns True if this call performed the transition, False if the
        message was missing or no longer pending.
        """
        try:
            async with self._db.connection() as conn:
                await conn.execute(
                    "UPDATE messages SET status = ?, moderated_by = ?, moderated_at = ? "
                    "WHERE id = ? AND status = ?",
                    (new_status.value, moderator_id, to_db(moderated_at), message_id, MessageStatus.PENDING.value),
                )
                await conn.commit()
                cur = await conn.execute("SELECT changes()")
                changed = await cur.fetchone()
                return bool(changed and changed[0] > 0)
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to update status of message {message_id}") from exc

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> MessageRecord:
        """Convert a joined DB row tuple into a MessageRecord."""
        return MessageRecord(
            id=row[0],
            session_id=row[1],
            text=row[2],
            sender=SenderKind(row[3]),
            status=MessageStatus(row[4]),
            moderated_by=row[5],
            moderated_at=from_db(row[6]),
            created_at=from_db(row[7]),
            sender_name=row[8],
            city=row[9],
            country=row[10],
        )
