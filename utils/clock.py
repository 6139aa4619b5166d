"""UTC timestamp helpers for values stored as TEXT in SQLite."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db(value: datetime) -> str:
    """Fixed-width ISO 8601 so lexical order in SQL matches time order."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)
