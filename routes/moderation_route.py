"""FastAPI routes for the moderation console."""

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from controllers.moderation_controller import (
    cleanup_sessions,
    connection_stats,
    get_message,
    list_pending,
    moderate_message,
)
from utils.auth import Moderator, get_current_moderator

router = APIRouter(prefix="/api/livechat", tags=["moderation"])


class ModeratePayload(BaseModel):
    action: str


@router.get("/messages/pending")
async def pending_messages_route(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=1_000_000),
    moderator: Moderator = Depends(get_current_moderator),
):
    return await list_pending(request, limit, offset)


@router.get("/messages/{message_id}")
async def message_route(
    request: Request,
    message_id: str,
    moderator: Moderator = Depends(get_current_moderator),
):
    return await get_message(request, message_id)


@router.post("/messages/{message_id}/moderate")
async def moderate_message_route(
    request: Request,
    message_id: str,
    payload: ModeratePayload,
    moderator: Moderator = Depends(get_current_moderator),
):
    return await moderate_message(request, message_id, payload.action, moderator)


@router.get("/stats")
async def stats_route(request: Request, moderator: Moderator = Depends(get_current_moderator)):
    return await connection_stats(request)


@router.post("/sessions/cleanup")
async def cleanup_sessions_route(request: Request, moderator: Moderator = Depends(get_current_moderator)):
    return await cleanup_sessions(request)
