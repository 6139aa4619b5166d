"""
Unit tests for message persistence and the moderation queue.
"""

import pytest

from models.errors import NotFoundError, SessionInactiveError, StorageError, ValidationError
from models.message_record import MessageStatus, SenderKind
from utils.chat_validation import sanitize_text
from utils.clock import utc_now


@pytest.mark.asyncio
async def test_create_message_is_pending_with_sender_details(message_store, session_manager):
    session, _ = await session_manager.create_session("Siti", city="Bandung", country="Indonesia")

    message = await message_store.create_message(session.id, "  Hello  ")

    assert message.status is MessageStatus.PENDING
    assert message.sender is SenderKind.USER
    assert message.text == "Hello"
    assert message.session_id == session.id
    assert message.sender_name == "Siti"
    assert message.city == "Bandung"
    assert message.country == "Indonesia"
    assert message.moderated_by is None
    assert message.moderated_at is None
    assert (await message_store.get_message_by_id(message.id)) == message


@pytest.mark.asyncio
async def test_message_text_is_sanitised(message_store, session_manager):
    session, _ = await session_manager.create_session("Siti")

    message = await message_store.create_message(session.id, "<b>hi</b>")

    assert message.text == "&lt;b&gt;hi&lt;&#x2F;b&gt;"


def test_sanitize_escapes_ampersand_first():
    assert sanitize_text("a & <b>") == "a &amp; &lt;b&gt;"


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "x" * 201, None])
async def test_invalid_text_is_rejected(message_store, session_manager, text):
    session, _ = await session_manager.create_session("Siti")

    with pytest.raises(ValidationError):
        await message_store.create_message(session.id, text)


@pytest.mark.asyncio
async def test_inactive_session_cannot_submit(message_store, session_manager):
    session, _ = await session_manager.create_session("Siti")
    await message_store.create_message(session.id, "before")

    await session_manager.invalidate_session(session.id)

    for text in ("after", "again"):
        with pytest.raises(SessionInactiveError):
            await message_store.create_message(session.id, text)


@pytest.mark.asyncio
async def test_unknown_session_cannot_submit(message_store):
    with pytest.raises(NotFoundError):
        await message_store.create_message("missing", "Hello")


@pytest.mark.asyncio
async def test_pending_queue_is_oldest_first_and_user_only(message_store, session_manager):
    session, _ = await session_manager.create_session("Siti")
    first = await message_store.create_message(session.id, "first")
    await message_store.create_message(session.id, "from the studio", sender=SenderKind.STAFF)
    second = await message_store.create_message(session.id, "second")
    third = await message_store.create_message(session.id, "third")
    await message_store.update_message_status(second.id, MessageStatus.APPROVED, "mod1", utc_now())

    pending = await message_store.get_pending_messages()

    assert [m.id for m in pending] == [first.id, third.id]


@pytest.mark.asyncio
async def test_pending_queue_pages(message_store, session_manager):
    session, _ = await session_manager.create_session("Siti")
    created = [await message_store.create_message(session.id, f"message {i}") for i in range(5)]

    page = await message_store.get_pending_messages(limit=2, offset=2)

    assert [m.id for m in page] == [created[2].id, created[3].id]


@pytest.mark.asyncio
async def test_conditional_status_update_only_applies_once(message_store, session_manager):
    session, _ = await session_manager.create_session("Siti")
    message = await message_store.create_message(session.id, "Hello")

    assert await message_store.update_message_status(message.id, MessageStatus.REJECTED, "mod1", utc_now()) is True
    assert await message_store.update_message_status(message.id, MessageStatus.APPROVED, "mod2", utc_now()) is False

    stored = await message_store.get_message_by_id(message.id)
    assert stored.status is MessageStatus.REJECTED
    assert stored.moderated_by == "mod1"


@pytest.mark.asyncio
async def test_approved_history_lists_newest_first_with_total(message_store, session_manager):
    session, _ = await session_manager.create_session("Siti")
    older = await message_store.create_message(session.id, "older")
    newer = await message_store.create_message(session.id, "newer")
    rejected = await message_store.create_message(session.id, "rejected")
    for message, status in ((older, MessageStatus.APPROVED), (newer, MessageStatus.APPROVED), (rejected, MessageStatus.REJECTED)):
        await message_store.update_message_status(message.id, status, "mod1", utc_now())

    messages, total = await message_store.get_approved_messages(limit=10)

    assert total == 2
    assert [m.id for m in messages] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_out_of_range_paging_is_a_storage_error(message_store):
    with pytest.raises(StorageError):
        await message_store.get_pending_messages(offset=10**20)
    with pytest.raises(StorageError):
        await message_store.get_approved_messages(offset=10**20)
