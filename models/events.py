"""Payloads published on the broadcast channels."""

from __future__ import annotations

from typing import Any, Dict, Optional

from models.message_record import MessageRecord
from models.moderation import ModerationAction

FEED_CHANNEL = "feed:public"
ADMIN_CHANNEL = "livechat:admin"

MESSAGE_APPROVED = "message_approved"
MESSAGE_NEW = "message_new"
MESSAGE_MODERATED = "message_moderated"
USER_TYPING = "user_typing"


def message_approved_event(message: MessageRecord) -> Dict[str, Any]:
    """Build the public feed event for an approved message."""
    return {
        "type": MESSAGE_APPROVED,
        "data": {
            "id": message.id,
            "text": message.text,
            "senderName": message.sender_name,
            "city": message.city,
            "country": message.country,
            "createdAt": message.created_at.isoformat() if message.created_at else None,
            "moderatedAt": message.moderated_at.isoformat() if message.moderated_at else None,
        },
    }


def message_new_event(message: MessageRecord) -> Dict[str, Any]:
    """Announce a freshly submitted message to the moderation console."""
    return {"type": MESSAGE_NEW, "data": message.to_dict()}


def message_moderated_event(message: MessageRecord, action: ModerationAction) -> Dict[str, Any]:
    """Tell every moderator console that a message left the pending queue."""
    data = message.to_dict()
    data["action"] = action.value
    return {"type": MESSAGE_MODERATED, "data": data}


def user_typing_event(session_id: str, sender_name: Optional[str], is_typing: bool) -> Dict[str, Any]:
    return {
        "type": USER_TYPING,
        "data": {"sessionId": session_id, "senderName": sender_name, "isTyping": bool(is_typing)},
    }
