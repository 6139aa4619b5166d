from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class MessageStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    BLOCKED = "blocked"

    @property
    def is_terminal(self) -> bool:
        return self is not MessageStatus.PENDING


class SenderKind(str, Enum):
    USER = "user"
    STAFF = "staff"


@dataclass
class MessageRecord:
    """In-memory representation of a row in the messages table.

    Rows are always read joined with their owning session, so the sender's
    display fields travel with the message.

    Attributes:
        id: Message id (uuid hex).
        session_id: Owning guest session.
        text: Sanitised message text.
        sender: Whether a listener or staff member wrote it.
        status: Moderation status; leaves `pending` exactly once.
        created_at: UTC timestamp of submission.
        moderated_by: Moderator id, set together with `status`.
        moderated_at: UTC timestamp of the moderation decision.
        sender_name: Display name of the owning session.
        city: City of the owning session.
        country: Country of the owning session.
    """

    id: str
    session_id: str
    text: str
    sender: SenderKind = SenderKind.USER
    status: MessageStatus = MessageStatus.PENDING
    created_at: Optional[datetime] = None
    moderated_by: Optional[str] = None
    moderated_at: Optional[datetime] = None
    sender_name: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation used by the HTTP and websocket layers."""
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "text": self.text,
            "sender": self.sender.value,
            "status": self.status.value,
            "senderName": self.sender_name,
            "city": self.city,
            "country": self.country,
            "moderatedBy": self.moderated_by,
            "moderatedAt": _iso(self.moderated_at),
            "createdAt": _iso(self.created_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
