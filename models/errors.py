"""Exception taxonomy shared by the live chat components."""

from __future__ import annotations

from typing import Any, Optional


class LivechatError(Exception):
    """Base exception for the live chat service."""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(LivechatError):
    """Malformed input (bad action, empty text, invalid guest name)."""

    pass


class NotFoundError(LivechatError):
    """Referenced message or session does not exist."""

    pass


class AlreadyModeratedError(LivechatError):
    """Message left the pending state before this moderation attempt."""

    def __init__(self, message_id: str, current_status: str):
        super().__init__(
            f"Message already moderated with status: {current_status}",
            details={"message_id": message_id, "current_status": current_status},
        )
        self.message_id = message_id
        self.current_status = current_status


class SessionInactiveError(LivechatError):
    """Submission attempted from a blocked or expired guest session."""

    pass


class StorageError(LivechatError):
    """Underlying persistence failure."""

    pass


class BroadcastError(LivechatError):
    """Publishing to, or subscribing on, the broadcast layer failed."""

    pass


class AuthenticationError(LivechatError):
    """Missing or invalid credentials."""

    pass


class AuthorizationError(LivechatError):
    """Authenticated caller lacks the required role."""

    pass
