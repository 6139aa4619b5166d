from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class GuestSession:
    """In-memory representation of a row in the sessions table.

    Attributes:
        id: Opaque session id (uuid hex).
        name: Display name chosen by the guest.
        city: Optional city shown next to approved messages.
        country: Optional country shown next to approved messages.
        is_active: False once blocked, invalidated or swept for inactivity.
        created_at: UTC timestamp of session creation.
        last_active_at: UTC timestamp of the last submission or connection.
    """

    id: str
    name: str
    city: Optional[str] = None
    country: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None

    def public_view(self) -> Dict[str, Any]:
        """Fields safe to hand back to the guest or show to moderators."""
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "country": self.country,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
