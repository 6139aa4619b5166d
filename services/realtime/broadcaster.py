"""Channel-based publish/subscribe fan-out for live chat events.

Two backends share one contract: every subscription that is open when an
event is published receives it exactly once, in publish order for that
channel; nothing is queued for subscribers that arrive later.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from models.errors import BroadcastError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BroadcastMessage:
    """One delivered event: the channel it came from and its JSON text."""

    channel: str
    data: str

    def payload(self) -> Dict[str, Any]:
        return json.loads(self.data)


def _serialize(channel: str, payload: Dict[str, Any]) -> str:
    try:
        return json.dumps(payload, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise BroadcastError(f"Event for {channel} is not JSON serialisable") from exc


class Subscription(ABC):
    """Live, push-based stream of events for one or more channels."""

    def __init__(self, channels: tuple[str, ...]) -> None:
        self.channels = channels
        self.closed = False

    @abstractmethod
    async def next_message(self) -> Optional[BroadcastMessage]:
        """Wait for the next event; None once the subscription is closed."""

    @abstractmethod
    async def close(self) -> None:
        """Stop receiving events. Safe to call more than once."""

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> BroadcastMessage:
        message = await self.next_message()
        if message is None:
            raise StopAsyncIteration
        return message

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class Broadcaster(ABC):
    """Publish events to named channels and hand out subscriptions."""

    @abstractmethod
    async def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        """Deliver `payload` to current subscribers; return how many were reached."""

    @abstractmethod
    async def subscribe(self, *channels: str) -> Subscription:
        """Open a subscription on `channels`."""

    @abstractmethod
    async def close(self) -> None:
        """Release every subscription and any transport handle."""


_CLOSED = object()


class InMemorySubscription(Subscription):
    def __init__(self, owner: "InMemoryBroadcaster", channels: tuple[str, ...], max_queue_size: int = 256) -> None:
        super().__init__(channels)
        self._owner = owner
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size + 1)
        self._max_queue_size = max_queue_size

    def deliver(self, message: BroadcastMessage) -> bool:
        """Queue `message`; False when this subscriber has fallen too far behind."""
        if self.closed:
            return False
        if self._queue.qsize() >= self._max_queue_size:
            return False
        self._queue.put_nowait(message)
        return True

    def evict(self) -> None:
        """Stop this subscription after the queued events have been read."""
        self.closed = True
        self._queue.put_nowait(_CLOSED)

    async def next_message(self) -> Optional[BroadcastMessage]:
        if self.closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._owner._remove(self)
        self._queue.put_nowait(_CLOSED)


class InMemoryBroadcaster(Broadcaster):
    """Single-process fan-out over asyncio queues."""

    def __init__(self, max_queue_size: int = 256) -> None:
        self._subscribers: Dict[str, Set[InMemorySubscription]] = {}
        self._lock = asyncio.Lock()
        self.max_queue_size = max_queue_size

    async def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        message = BroadcastMessage(channel=channel, data=_serialize(channel, payload))
        async with self._lock:
            targets = list(self._subscribers.get(channel, set()))
            dropped = [s for s in targets if not s.deliver(message)]
            for subscription in dropped:
                self._detach(subscription)
                subscription.evict()
        for subscription in dropped:
            logger.warning("Dropped slow subscriber on %s", ", ".join(subscription.channels))
        reached = len(targets) - len(dropped)
        logger.debug("Published %s to %d subscriber(s) on %s", payload.get("type"), reached, channel)
        return reached

    async def subscribe(self, *channels: str) -> Subscription:
        if not channels:
            raise ValueError("At least one channel is required.")
        subscription = InMemorySubscription(self, tuple(channels), self.max_queue_size)
        async with self._lock:
            for channel in channels:
                self._subscribers.setdefault(channel, set()).add(subscription)
        return subscription

    async def _remove(self, subscription: InMemorySubscription) -> None:
        async with self._lock:
            self._detach(subscription)

    def _detach(self, subscription: InMemorySubscription) -> None:
        for channel in subscription.channels:
            subscribers = self._subscribers.get(channel)
            if not subscribers:
                continue
            subscribers.discard(subscription)
            if not subscribers:
                self._subscribers.pop(channel, None)

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, set()))

    async def close(self) -> None:
        async with self._lock:
            subscriptions = {s for subs in self._subscribers.values() for s in subs}
        for subscription in subscriptions:
            await subscription.close()


class RedisSubscription(Subscription):
    def __init__(self, owner: "RedisBroadcaster", pubsub, channels: tuple[str, ...], poll_timeout: float = 1.0) -> None:
        super().__init__(channels)
        self._owner = owner
        self._pubsub = pubsub
        self._poll_timeout = poll_timeout

    async def next_message(self) -> Optional[BroadcastMessage]:
        while not self.closed:
            try:
                raw = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=self._poll_timeout)
            except RedisError as exc:
                raise BroadcastError("Lost connection to the broadcast bus") from exc
            if raw is None or raw.get("type") != "message":
                continue
            data = raw["data"]
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            channel = raw["channel"]
            if isinstance(channel, bytes):
                channel = channel.decode("utf-8")
            return BroadcastMessage(channel=channel, data=data)
        return None

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._owner._subscriptions.discard(self)
        try:
            await self._pubsub.unsubscribe(*self.channels)
            await self._pubsub.aclose()
        except RedisError as exc:
            logger.warning("Error closing redis subscription on %s: %s", self.channels, exc)


class RedisBroadcaster(Broadcaster):
    """Fan-out through redis pub/sub so several processes share the channels."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client
        self._subscriptions: Set[RedisSubscription] = set()

    @classmethod
    def from_url(cls, url: str) -> "RedisBroadcaster":
        return cls(aioredis.Redis.from_url(url, decode_responses=True))

    async def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        data = _serialize(channel, payload)
        try:
            receivers = await self._client.publish(channel, data)
        except RedisError as exc:
            raise BroadcastError(f"Failed to publish to {channel}") from exc
        logger.debug("Published %s to %s (%s receiver(s))", payload.get("type"), channel, receivers)
        return int(receivers or 0)

    async def subscribe(self, *channels: str) -> Subscription:
        if not channels:
            raise ValueError("At least one channel is required.")
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(*channels)
        except RedisError as exc:
            raise BroadcastError(f"Failed to subscribe to {', '.join(channels)}") from exc
        subscription = RedisSubscription(self, pubsub, tuple(channels))
        self._subscriptions.add(subscription)
        return subscription

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.close()
        self._subscriptions.clear()
        try:
            await self._client.aclose()
        except RedisError as exc:
            logger.warning("Error closing redis connection: %s", exc)
