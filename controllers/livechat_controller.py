"""Guest-facing live chat operations: sessions, submission and history."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from models.errors import LivechatError, NotFoundError, SessionInactiveError, ValidationError
from models.session_record import GuestSession

logger = logging.getLogger(__name__)

GUEST_FAILURE = "Submission failed, please try again."


async def start_session(
    request: Request,
    name: str,
    city: Optional[str] = None,
    country: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a guest session and return the token the client must keep.

    Args:
        request: FastAPI Request object (used to access app.state for shared services).
        name: Display name shown next to approved messages.
        city: Optional city.
        country: Optional country.

    Returns:
        A dict containing: sessionToken, sessionId, user, createdAt.
    """
    manager = request.app.state.session_manager
    try:
        session, token = await manager.create_session(name, city=city, country=country)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except LivechatError as exc:
        logger.error("Session creation failed: %s", exc)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    return {
        "sessionToken": token,
        "sessionId": session.id,
        "user": {"name": session.name, "city": session.city, "country": session.country},
        "createdAt": session.created_at.isoformat() if session.created_at else None,
    }


async def submit_message(request: Request, session: GuestSession, text: str) -> Dict[str, Any]:
    """Store a guest message for moderation.

    Raises:
        HTTPException(400) for bad text, 403 for an inactive session and 500
        (with a generic reason) for anything else.
    """
    submissions = request.app.state.submission_service
    try:
        message = await submissions.submit(session.id, text)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except SessionInactiveError as exc:
        raise HTTPException(status_code=403, detail="Session is no longer active") from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=403, detail="Session is no longer active") from exc
    except LivechatError as exc:
        logger.error("Submission from session %s failed: %s", session.id, exc)
        raise HTTPException(status_code=500, detail=GUEST_FAILURE) from exc
    return message.to_dict()


async def approved_history(request: Request, page: int, limit: int) -> Dict[str, Any]:
    """Return a page of approved messages, newest first, with pagination info."""
    store = request.app.state.message_store
    offset = (page - 1) * limit
    try:
        messages, total = await store.get_approved_messages(limit=limit, offset=offset)
    except LivechatError as exc:
        logger.error("Listing approved messages failed: %s", exc)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    return {
        "messages": [m.to_dict() for m in messages],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if limit else 0,
        },
    }
