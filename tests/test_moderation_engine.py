"""
Tests for the moderation state machine and its broadcast side effects.
"""

import asyncio

import pytest

from models.errors import (
    AlreadyModeratedError,
    BroadcastError,
    NotFoundError,
    SessionInactiveError,
    StorageError,
    ValidationError,
)
from models.events import ADMIN_CHANNEL, FEED_CHANNEL
from models.message_record import MessageStatus
from services.moderation_engine import ModerationEngine
from services.notification_service import NotificationService
from services.realtime.broadcaster import InMemoryBroadcaster
from services.session_manager import SessionManager


class FailingFeedBroadcaster(InMemoryBroadcaster):
    """Broadcaster whose public feed channel is always down."""

    def __init__(self):
        super().__init__()
        self.feed_attempts = 0

    async def publish(self, channel, payload):
        if channel == FEED_CHANNEL:
            self.feed_attempts += 1
            raise BroadcastError("feed unavailable")
        return await super().publish(channel, payload)


class SessionStoreDown(SessionManager):
    """Session manager whose deactivation always hits a storage failure."""

    async def invalidate_session(self, session_id):
        raise StorageError("database is locked")


class GatedNotifier(NotificationService):
    """Notifier whose delivery waits until the test releases it."""

    def __init__(self):
        self.release = asyncio.Event()
        self.delivered = []

    async def deliver(self, event):
        await self.release.wait()
        self.delivered.append(event)


class RecordingNotifier(NotificationService):
    def __init__(self):
        self.events = []

    async def deliver(self, event):
        self.events.append(event)


async def _pending_message(session_manager, message_store, text="Salam dari Jakarta"):
    session, _ = await session_manager.create_session("Ani", city="Jakarta", country="Indonesia")
    message = await message_store.create_message(session.id, text)
    return session, message


@pytest.mark.asyncio
async def test_approve_moves_message_and_publishes_once(engine, session_manager, message_store, broadcaster):
    _, message = await _pending_message(session_manager, message_store)
    feed = await broadcaster.subscribe(FEED_CHANNEL)

    updated = await engine.moderate(message.id, "approve", "mod1")

    assert updated.status is MessageStatus.APPROVED
    assert updated.moderated_by == "mod1"
    assert updated.moderated_at is not None

    event = (await asyncio.wait_for(feed.next_message(), timeout=1)).payload()
    assert event["type"] == "message_approved"
    assert event["data"]["id"] == message.id
    assert event["data"]["text"] == "Salam dari Jakarta"
    assert event["data"]["senderName"] == "Ani"
    assert event["data"]["city"] == "Jakarta"
    assert event["data"]["country"] == "Indonesia"
    assert event["data"]["moderatedAt"] is not None

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(feed.next_message(), timeout=0.1)

    stored = await message_store.get_message_by_id(message.id)
    assert stored.status is MessageStatus.APPROVED
    assert message.id not in [m.id for m in await engine.get_pending_messages()]


@pytest.mark.asyncio
async def test_reject_publishes_nothing_to_feed(engine, session_manager, message_store, broadcaster):
    _, message = await _pending_message(session_manager, message_store)
    feed = await broadcaster.subscribe(FEED_CHANNEL)

    updated = await engine.moderate(message.id, "reject", "mod1")

    assert updated.status is MessageStatus.REJECTED
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(feed.next_message(), timeout=0.1)


@pytest.mark.asyncio
async def test_moderators_see_every_decision(engine, session_manager, message_store, broadcaster):
    _, message = await _pending_message(session_manager, message_store)
    console = await broadcaster.subscribe(ADMIN_CHANNEL)

    await engine.moderate(message.id, "reject", "mod1")

    event = (await asyncio.wait_for(console.next_message(), timeout=1)).payload()
    assert event["type"] == "message_moderated"
    assert event["data"]["id"] == message.id
    assert event["data"]["status"] == "rejected"
    assert event["data"]["action"] == "reject"


@pytest.mark.asyncio
async def test_block_deactivates_session(engine, session_manager, message_store):
    session, message = await _pending_message(session_manager, message_store)

    updated = await engine.moderate(message.id, "block", "mod1")

    assert updated.status is MessageStatus.BLOCKED
    assert (await session_manager.find_session_by_id(session.id)).is_active is False
    with pytest.raises(SessionInactiveError):
        await message_store.create_message(session.id, "one more")


@pytest.mark.asyncio
async def test_block_leaves_other_pending_messages_alone(engine, session_manager, message_store):
    session, first = await _pending_message(session_manager, message_store)
    second = await message_store.create_message(session.id, "second")

    await engine.moderate(first.id, "block", "mod1")

    assert (await message_store.get_message_by_id(second.id)).status is MessageStatus.PENDING


@pytest.mark.asyncio
async def test_moderated_message_cannot_be_moderated_again(engine, session_manager, message_store):
    _, message = await _pending_message(session_manager, message_store)
    await engine.moderate(message.id, "reject", "mod1")

    with pytest.raises(AlreadyModeratedError) as excinfo:
        await engine.moderate(message.id, "approve", "mod2")

    assert excinfo.value.current_status == "rejected"
    stored = await message_store.get_message_by_id(message.id)
    assert stored.status is MessageStatus.REJECTED
    assert stored.moderated_by == "mod1"


@pytest.mark.asyncio
async def test_concurrent_moderation_has_exactly_one_winner(engine, session_manager, message_store, broadcaster):
    _, message = await _pending_message(session_manager, message_store)
    feed = await broadcaster.subscribe(FEED_CHANNEL)

    results = await asyncio.gather(
        engine.moderate(message.id, "approve", "mod1"),
        engine.moderate(message.id, "reject", "mod2"),
        engine.moderate(message.id, "approve", "mod3"),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, AlreadyModeratedError)]
    assert len(winners) == 1
    assert len(losers) == 2

    stored = await message_store.get_message_by_id(message.id)
    assert stored.status is winners[0].status
    assert stored.moderated_by == winners[0].moderated_by

    expected_feed_events = 1 if stored.status is MessageStatus.APPROVED else 0
    received = 0
    while True:
        try:
            await asyncio.wait_for(feed.next_message(), timeout=0.1)
        except asyncio.TimeoutError:
            break
        received += 1
    assert received == expected_feed_events


@pytest.mark.asyncio
async def test_unknown_message_is_not_found(engine):
    with pytest.raises(NotFoundError):
        await engine.moderate("missing", "approve", "mod1")


@pytest.mark.asyncio
async def test_invalid_action_leaves_message_pending(engine, session_manager, message_store):
    _, message = await _pending_message(session_manager, message_store)

    with pytest.raises(ValidationError):
        await engine.moderate(message.id, "delete", "mod1")

    assert (await message_store.get_message_by_id(message.id)).status is MessageStatus.PENDING


@pytest.mark.asyncio
async def test_feed_failure_does_not_revert_approval(session_manager, message_store):
    broadcaster = FailingFeedBroadcaster()
    engine = ModerationEngine(message_store, session_manager, broadcaster, publish_attempts=3, retry_delay=0)
    _, message = await _pending_message(session_manager, message_store)

    updated = await engine.moderate(message.id, "approve", "mod1")

    assert updated.status is MessageStatus.APPROVED
    assert broadcaster.feed_attempts == 3
    assert (await message_store.get_message_by_id(message.id)).status is MessageStatus.APPROVED


@pytest.mark.asyncio
async def test_notifier_receives_moderation_event(session_manager, message_store, broadcaster):
    notifier = RecordingNotifier()
    engine = ModerationEngine(message_store, session_manager, broadcaster, notifier=notifier, retry_delay=0)
    _, message = await _pending_message(session_manager, message_store)

    await engine.moderate(message.id, "approve", "mod1")
    await engine.flush_notifications()

    assert [e["type"] for e in notifier.events] == ["message_moderated"]
    assert notifier.events[0]["data"]["moderatedBy"] == "mod1"


@pytest.mark.asyncio
async def test_block_stands_when_session_cannot_be_deactivated(session_dal, message_store, broadcaster):
    sessions = SessionStoreDown(session_dal)
    engine = ModerationEngine(message_store, sessions, broadcaster, retry_delay=0)
    session, _ = await sessions.create_session("Ani")
    message = await message_store.create_message(session.id, "spam")

    updated = await engine.moderate(message.id, "block", "mod1")

    assert updated.status is MessageStatus.BLOCKED
    assert (await message_store.get_message_by_id(message.id)).status is MessageStatus.BLOCKED


@pytest.mark.asyncio
async def test_slow_notifier_does_not_delay_moderation(session_manager, message_store, broadcaster):
    notifier = GatedNotifier()
    engine = ModerationEngine(message_store, session_manager, broadcaster, notifier=notifier, retry_delay=0)
    _, message = await _pending_message(session_manager, message_store)

    updated = await asyncio.wait_for(engine.moderate(message.id, "reject", "mod1"), timeout=1)

    assert updated.status is MessageStatus.REJECTED
    assert notifier.delivered == []

    notifier.release.set()
    await engine.flush_notifications()

    assert [e["data"]["id"] for e in notifier.delivered] == [message.id]
