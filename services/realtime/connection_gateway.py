"""Bridge broadcast subscriptions to connected websocket clients."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import uuid4

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from models.errors import BroadcastError
from services.realtime.broadcaster import Broadcaster, Subscription

logger = logging.getLogger(__name__)

FrameHandler = Callable[["Connection", str], Awaitable[None]]


class ConnectionState(str, Enum):
	CONNECTING = "connecting"
	OPEN = "open"
	CLOSED = "closed"


@dataclass
class Connection:
	"""One websocket client and the subscription feeding it."""

	websocket: WebSocket
	kind: str
	channels: tuple[str, ...]
	session_id: Optional[str] = None
	id: str = field(default_factory=lambda: uuid4().hex)
	state: ConnectionState = ConnectionState.CONNECTING
	subscription: Optional[Subscription] = None
	forwarder: Optional[asyncio.Task] = None
	send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class ConnectionGateway:
	"""Track open connections and forward channel events to each of them."""

	def __init__(self, broadcaster: Broadcaster) -> None:
		self.broadcaster = broadcaster
		self._connections: Dict[str, Connection] = {}

	async def open(
		self,
		websocket: WebSocket,
		kind: str,
		channels: tuple[str, ...],
		session_id: Optional[str] = None,
	) -> Connection:
		"""Subscribe an accepted websocket to `channels` and start forwarding."""
		connection = Connection(websocket=websocket, kind=kind, channels=channels, session_id=session_id)
		self._connections[connection.id] = connection
		try:
			connection.subscription = await self.broadcaster.subscribe(*channels)
		except BroadcastError as exc:
			logger.warning("Could not subscribe %s connection to %s: %s", kind, ", ".join(channels), exc)
			await self.close(connection, code=1011)
			raise
		connection.state = ConnectionState.OPEN
		connection.forwarder = asyncio.create_task(self._forward(connection))
		logger.info("Opened %s connection %s on %s", kind, connection.id, ", ".join(channels))
		return connection

	async def serve(self, connection: Connection, handler: Optional[FrameHandler] = None) -> None:
		"""Read inbound frames until the client goes away, then close."""
		try:
			while connection.state is ConnectionState.OPEN:
				frame = await connection.websocket.receive()
				if frame["type"] == "websocket.disconnect":
					break
				raw = frame.get("text")
				if raw is None:
					await self.send(connection, {"type": "error", "detail": "Only text frames are supported"})
					continue
				if handler is not None:
					await handler(connection, raw)
		except WebSocketDisconnect:
			pass
		finally:
			await self.close(connection)

	async def send(self, connection: Connection, payload: Dict[str, Any]) -> bool:
		"""Send a JSON payload if the connection is still open."""
		return await self._send_text(connection, json.dumps(payload))

	async def close(self, connection: Connection, code: int = 1000) -> None:
		"""Unsubscribe and release the connection; idempotent."""
		if connection.state is ConnectionState.CLOSED:
			return
		connection.state = ConnectionState.CLOSED
		self._connections.pop(connection.id, None)

		forwarder = connection.forwarder
		if forwarder is not None and forwarder is not asyncio.current_task():
			forwarder.cancel()
			try:
				await forwarder
			except asyncio.CancelledError:
				pass
		if connection.subscription is not None:
			await connection.subscription.close()

		websocket = connection.websocket
		if WebSocketState.DISCONNECTED not in (websocket.client_state, websocket.application_state):
			try:
				await websocket.close(code=code)
			except (WebSocketDisconnect, RuntimeError):
				logger.debug("Websocket %s already closed by the client", connection.id)
		logger.info("Closed %s connection %s", connection.kind, connection.id)

	async def close_all(self) -> None:
		for connection in list(self._connections.values()):
			await self.close(connection, code=1001)

	def stats(self) -> Dict[str, Any]:
		"""Counts of open connections per kind, with guest session ids."""
		by_kind: Dict[str, int] = {}
		for connection in self._connections.values():
			by_kind[connection.kind] = by_kind.get(connection.kind, 0) + 1
		return {
			"activeConnections": len(self._connections),
			"byKind": by_kind,
			"sessions": sorted(
				{c.session_id for c in self._connections.values() if c.session_id is not None}
			),
		}

	async def _forward(self, connection: Connection) -> None:
		subscription = connection.subscription
		if subscription is None:
			return
		try:
			async for message in subscription:
				if not await self._send_text(connection, message.data):
					break
		except BroadcastError as exc:
			logger.warning("Subscription for connection %s failed: %s", connection.id, exc)
		if connection.state is ConnectionState.OPEN:
			await self.close(connection, code=1011)

	async def _send_text(self, connection: Connection, text: str) -> bool:
		if connection.state is not ConnectionState.OPEN:
			return False
		async with connection.send_lock:
			try:
				await connection.websocket.send_text(text)
			except (WebSocketDisconnect, RuntimeError) as exc:
				logger.info("Dropping connection %s after failed send: %s", connection.id, exc)
				return False
		return True
