import os
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        token_hash TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        city TEXT,
        country TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        last_active_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL REFERENCES sessions(id),
        text TEXT NOT NULL,
        sender TEXT NOT NULL DEFAULT 'user',
        status TEXT NOT NULL DEFAULT 'pending',
        moderated_by TEXT,
        moderated_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_status_created ON messages(status, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_sessions_active_seen ON sessions(is_active, last_active_at)",
)


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite database holding guest sessions and chat messages.

    - The database file is located at `<db_dir>/livechat.db`, where `db_dir` is
      the explicit `db_dir` argument or the DATABASE_DIR environment variable.
      A RuntimeError is raised if neither is usable.
    - The first call to `ensure_database()` creates the schema. With
      `reset=True` any existing file is deleted first (useful for demos and
      throwaway environments; sessions and messages are an audit trail, so the
      default keeps them).
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for `connection()` to call it.
    """

    def __init__(
        self,
        db_dir: Optional[Path | str] = None,
        reset: bool = False,
        busy_timeout: float = 5.0,
    ) -> None:
        raw_dir = str(db_dir) if db_dir is not None else os.getenv("DATABASE_DIR")

        if raw_dir is None or not raw_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )

        path = Path(raw_dir).expanduser()

        if path.exists() and not path.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={raw_dir!r} points to a file, not a directory "
                f"({path}). Please set DATABASE_DIR to a directory path."
            )

        try:
            path.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create or access database directory at {path}"
            ) from exc

        self.db_dir = path
        self.db_path = self.db_dir / "livechat.db"
        self.reset = reset
        self.busy_timeout = busy_timeout

        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure the SQLite database and its tables exist at `self.db_path`.

        On first call this will:
            - Delete any existing database file when `reset` is set.
            - Switch the file to WAL journaling so readers do not block the
              single writer.
            - Create the sessions and messages tables and their indexes.

        Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        if self.reset and self.db_path.exists():
            try:
                self.db_path.unlink()
            except Exception as exc:
                raise RuntimeError(
                    f"Failed to delete existing database at {self.db_path}"
                ) from exc

        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path, timeout=self.busy_timeout) as db:
                    await db.execute("PRAGMA journal_mode=WAL;")
                    for statement in SCHEMA_STATEMENTS:
                        await db.execute(statement)
                    await db.commit()
                break
            except FileNotFoundError:
                # On some platforms a transient missing file error may occur; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The schema is created on first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path, timeout=self.busy_timeout)
        try:
            await conn.execute("PRAGMA foreign_keys=ON;")
            yield conn
        finally:
            await conn.close()
