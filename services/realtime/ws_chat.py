"""Dispatch inbound guest websocket frames to the appropriate handlers."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

from models.errors import BroadcastError, LivechatError, SessionInactiveError, ValidationError
from models.events import ADMIN_CHANNEL, user_typing_event
from models.session_record import GuestSession
from services.realtime.connection_gateway import Connection, ConnectionGateway
from services.submission_service import SubmissionService

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Submission failed, please try again."


class ChatMessageHandler:
	"""Route websocket frames for a single guest chat connection."""

	def __init__(self, gateway: ConnectionGateway, submissions: SubmissionService, session: GuestSession) -> None:
		self.gateway = gateway
		self.submissions = submissions
		self.session = session

	async def __call__(self, connection: Connection, raw: str) -> None:
		try:
			payload = json.loads(raw)
		except ValueError:
			await self._send_error(connection, None, "Payload must be JSON")
			return
		if not isinstance(payload, dict):
			await self._send_error(connection, None, "Payload must be a JSON object")
			return
		await self.handle(connection, payload)

	async def handle(self, connection: Connection, payload: Dict[str, Any]) -> None:
		"""Process a single inbound websocket payload."""
		request_id = payload.get("request_id")
		message_type = payload.get("type")
		try:
			if message_type == "message_send":
				result = await self._send_message(payload)
			elif message_type == "user_typing":
				result = await self._typing(payload)
			else:
				raise ValidationError("Unsupported message type.")
			if result is not None:
				result["request_id"] = request_id
				await self.gateway.send(connection, result)
		except (ValidationError, SessionInactiveError) as exc:
			await self._send_error(connection, request_id, exc.message)
		except LivechatError as exc:
			logger.error("Chat frame from session %s failed: %s", self.session.id, exc)
			await self._send_error(connection, request_id, GENERIC_FAILURE)

	async def _send_message(self, payload: Dict[str, Any]) -> Dict[str, Any]:
		message = await self.submissions.submit(self.session.id, payload.get("text"))
		return {
			"type": "message_ack",
			"messageId": message.id,
			"status": message.status.value,
			"createdAt": message.created_at.isoformat() if message.created_at else None,
		}

	async def _typing(self, payload: Dict[str, Any]) -> None:
		event = user_typing_event(self.session.id, self.session.name, bool(payload.get("isTyping")))
		try:
			await self.gateway.broadcaster.publish(ADMIN_CHANNEL, event)
		except BroadcastError as exc:
			logger.debug("Typing indicator for %s dropped: %s", self.session.id, exc)
		return None

	async def _send_error(self, connection: Connection, request_id: Any, detail: str) -> None:
		await self.gateway.send(connection, {"type": "error", "request_id": request_id, "detail": detail})
