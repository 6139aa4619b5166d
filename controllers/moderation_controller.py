"""Moderator operations over the live chat queue."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import HTTPException, Request

from models.errors import AlreadyModeratedError, LivechatError, NotFoundError, ValidationError
from utils.auth import Moderator

logger = logging.getLogger(__name__)

_SUCCESS_MESSAGES = {
    "approved": "Message approved successfully",
    "rejected": "Message rejected successfully",
    "blocked": "Message blocked successfully",
}


async def list_pending(request: Request, limit: int, offset: int) -> List[Dict[str, Any]]:
    engine = request.app.state.moderation_engine
    try:
        messages = await engine.get_pending_messages(limit=limit, offset=offset)
    except LivechatError as exc:
        logger.error("Listing pending messages failed: %s", exc)
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return [m.to_dict() for m in messages]


async def get_message(request: Request, message_id: str) -> Dict[str, Any]:
    engine = request.app.state.moderation_engine
    try:
        message = await engine.get_message_by_id(message_id)
    except LivechatError as exc:
        logger.error("Reading message %s failed: %s", message_id, exc)
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return message.to_dict()


async def moderate_message(request: Request, message_id: str, action: str, moderator: Moderator) -> Dict[str, Any]:
    """Apply a moderation action on behalf of `moderator`.

    Returns:
        The updated message plus the action applied and a human-readable summary.

    Raises:
        HTTPException(400) invalid action, 404 unknown message, 409 already moderated.
    """
    engine = request.app.state.moderation_engine
    try:
        message = await engine.moderate(message_id, action, moderator.id)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except AlreadyModeratedError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": exc.message, "currentStatus": exc.current_status},
        ) from exc
    except LivechatError as exc:
        logger.error("Moderation of %s failed: %s", message_id, exc)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    result = message.to_dict()
    result["action"] = action.strip().lower()
    result["detail"] = _SUCCESS_MESSAGES.get(message.status.value, "Message moderated successfully")
    return result


async def connection_stats(request: Request) -> Dict[str, Any]:
    return request.app.state.gateway.stats()


async def cleanup_sessions(request: Request) -> Dict[str, Any]:
    manager = request.app.state.session_manager
    try:
        count = await manager.cleanup_expired_sessions()
    except LivechatError as exc:
        logger.error("Session sweep failed: %s", exc)
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return {"deactivated": count}
