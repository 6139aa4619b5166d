"""WebSocket endpoints for the public feed, guest chat and moderation console."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, WebSocket

from models.errors import AuthenticationError, AuthorizationError, BroadcastError, LivechatError
from models.events import ADMIN_CHANNEL, FEED_CHANNEL
from services.realtime.connection_gateway import ConnectionGateway
from services.realtime.ws_chat import ChatMessageHandler

logger = logging.getLogger(__name__)

router = APIRouter()

POLICY_VIOLATION = 1008


def _gateway(websocket: WebSocket) -> ConnectionGateway:
	return websocket.app.state.gateway


async def _reject(websocket: WebSocket, detail: str) -> None:
	await websocket.send_json({"type": "error", "detail": detail})
	await websocket.close(code=POLICY_VIOLATION)


@router.websocket("/ws/feed")
async def public_feed_socket(websocket: WebSocket):
	"""Stream approved messages to the homepage widget."""
	await websocket.accept()
	gateway = _gateway(websocket)
	try:
		connection = await gateway.open(websocket, "feed", (FEED_CHANNEL,))
	except BroadcastError:
		return
	await gateway.send(connection, {"type": "connection_success", "channels": list(connection.channels)})
	await gateway.serve(connection)


@router.websocket("/ws/chat")
async def guest_chat_socket(websocket: WebSocket, token: Optional[str] = None):
	"""Let an active guest session submit messages and watch the feed."""
	await websocket.accept()
	try:
		session = await websocket.app.state.session_manager.find_session_by_token(token)
		if session is not None and session.is_active:
			await websocket.app.state.session_manager.touch_session(session.id)
	except LivechatError as exc:
		logger.error("Session lookup for chat socket failed: %s", exc)
		await _reject(websocket, "Session lookup failed")
		return
	if session is None:
		await _reject(websocket, "Invalid session")
		return
	if not session.is_active:
		await _reject(websocket, "Session is no longer active")
		return

	gateway = _gateway(websocket)
	try:
		connection = await gateway.open(websocket, "chat", (FEED_CHANNEL,), session_id=session.id)
	except BroadcastError:
		return
	await gateway.send(connection, {"type": "connection_success", "session": session.public_view()})
	handler = ChatMessageHandler(gateway, websocket.app.state.submission_service, session)
	await gateway.serve(connection, handler)


@router.websocket("/ws/moderation")
async def moderation_socket(websocket: WebSocket, token: Optional[str] = None):
	"""Push new submissions and moderation outcomes to moderator consoles."""
	await websocket.accept()
	try:
		moderator = websocket.app.state.moderator_auth.verify(token)
	except (AuthenticationError, AuthorizationError) as exc:
		await _reject(websocket, exc.message)
		return

	gateway = _gateway(websocket)
	try:
		connection = await gateway.open(websocket, "moderation", (ADMIN_CHANNEL, FEED_CHANNEL))
	except BroadcastError:
		return
	await gateway.send(connection, {"type": "connection_success", "moderator": moderator.id})
	await gateway.serve(connection)
