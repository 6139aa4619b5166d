"""Async Data Access Layer for the sessions table.

Every mutation is a single SQL statement so concurrent handlers never
interleave a read and a write on the same row.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Optional, Sequence

import aiosqlite

from models.errors import StorageError
from models.session_record import GuestSession
from utils.clock import from_db, to_db, utc_now
from utils.database_init import AsyncDatabaseInitializer


def hash_token(token: str) -> str:
    """Return the stored digest for a client-held session token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionDAL:
    """Data access layer for guest session records."""

    _COLUMNS = (
        "id",
        "name",
        "city",
        "country",
        "is_active",
        "created_at",
        "last_active_at",
    )
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_session(self, session: GuestSession, token: str) -> GuestSession:
        """Insert an active session row keyed by `session.id`.

        Args:
            session: GuestSession carrying id and display fields.
            token: Raw client token; only its digest is persisted.

        Returns:
            The stored session with timestamps filled in.
        """
        now = session.created_at or utc_now()
        try:
            async with self._db.connection() as conn:
                await conn.execute(
                    "INSERT INTO sessions (id, token_hash, name, city, country, is_active, created_at, last_active_at) "
                    "VALUES (?, ?, ?, ?, ?, 1, ?, ?)",
                    (session.id, hash_token(token), session.name, session.city, session.country, to_db(now), to_db(now)),
                )
                await conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError("Failed to create session") from exc
        return GuestSession(
            id=session.id,
            name=session.name,
            city=session.city,
            country=session.country,
            is_active=True,
            created_at=now,
            last_active_at=now,
        )

    async def get_session_by_id(self, session_id: str) -> Optional[GuestSession]:
        """Return the session for `session_id`, or None if not found."""
        return await self._fetch_one(f"SELECT {self._COLUMN_LIST} FROM sessions WHERE id = ?", (session_id,))

    async def get_session_by_token(self, token: str) -> Optional[GuestSession]:
        """Return the session whose token digest matches `token`, or None."""
        return await self._fetch_one(
            f"SELECT {self._COLUMN_LIST} FROM sessions WHERE token_hash = ?",
            (hash_token(token),),
        )

    async def deactivate_session(self, session_id: str) -> bool:
        """Mark a session inactive. Returns True if the row exists."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute("UPDATE sessions SET is_active = 0 WHERE id = ?", (session_id,))
                await conn.commit()
                return cur.rowcount > 0
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to deactivate session {session_id}") from exc

    async def touch_session(self, session_id: str, seen_at: Optional[datetime] = None) -> bool:
        """Record activity on an active session. Returns True if a row changed."""
        seen_at = seen_at or utc_now()
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    "UPDATE sessions SET last_active_at = ? WHERE id = ? AND is_active = 1",
                    (to_db(seen_at), session_id),
                )
                await conn.commit()
                return cur.rowcount > 0
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to record activity for session {session_id}") from exc

    async def deactivate_idle_sessions(self, cutoff: datetime) -> int:
        """Deactivate active sessions last seen before `cutoff`; return count changed."""
        try:
            async with self._db.connection() as conn:
                await conn.execute(
                    "UPDATE sessions SET is_active = 0 WHERE is_active = 1 AND last_active_at < ?",
                    (to_db(cutoff),),
                )
                await conn.commit()
                cur = await conn.execute("SELECT changes()")
                changed = await cur.fetchone()
                return int(changed[0]) if changed and changed[0] is not None else 0
        except aiosqlite.Error as exc:
            raise StorageError("Failed to deactivate idle sessions") from exc

    async def _fetch_one(self, sql: str, params: tuple) -> Optional[GuestSession]:
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(sql, params)
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError("Failed to read session") from exc
        return self._row_to_record(row) if row else None

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> GuestSession:
        """Convert a DB row tuple into a GuestSession."""
        return GuestSession(
            id=row[0],
            name=row[1],
            city=row[2],
            country=row[3],
            is_active=bool(row[4]),
            created_at=from_db(row[5]),
            last_active_at=from_db(row[6]),
        )
