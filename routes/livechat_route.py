"""FastAPI routes for guest live chat sessions and messages."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from controllers.livechat_controller import approved_history, start_session, submit_message
from models.session_record import GuestSession
from utils.auth import get_guest_session

router = APIRouter(prefix="/api/livechat", tags=["livechat"])


class SessionPayload(BaseModel):
    name: str
    city: Optional[str] = None
    country: Optional[str] = None


class MessagePayload(BaseModel):
    text: str


@router.post("/session", status_code=201)
async def start_session_route(request: Request, payload: SessionPayload):
    return await start_session(request, payload.name, payload.city, payload.country)


@router.post("/messages", status_code=201)
async def submit_message_route(
    request: Request,
    payload: MessagePayload,
    session: GuestSession = Depends(get_guest_session),
):
    return await submit_message(request, session, payload.text)


@router.get("/messages/approved")
async def approved_messages_route(
    request: Request,
    page: int = Query(1, ge=1, le=100_000),
    limit: int = Query(20, ge=1, le=100),
):
    return await approved_history(request, page, limit)
