"""Moderation actions accepted by the moderation engine."""

from __future__ import annotations

from enum import Enum
from typing import Union

from models.errors import ValidationError
from models.message_record import MessageStatus


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    BLOCK = "block"

    @property
    def target_status(self) -> MessageStatus:
        """Terminal status a pending message moves to under this action."""
        return _TARGET_STATUS[self]

    @classmethod
    def parse(cls, raw: Union[str, "ModerationAction", None]) -> "ModerationAction":
        """Return the action for `raw`, raising ValidationError when unknown."""
        if isinstance(raw, cls):
            return raw
        value = (raw or "").strip().lower() if isinstance(raw, str) else ""
        try:
            return cls(value)
        except ValueError as exc:
            allowed = ", ".join(action.value for action in cls)
            raise ValidationError(
                f"Invalid action: {raw}. Must be one of: {allowed}",
                details={"action": raw},
            ) from exc


_TARGET_STATUS = {
    ModerationAction.APPROVE: MessageStatus.APPROVED,
    ModerationAction.REJECT: MessageStatus.REJECTED,
    ModerationAction.BLOCK: MessageStatus.BLOCKED,
}
