"""
Unit tests for guest session lifecycle.
"""

from datetime import timedelta

import pytest

from models.errors import ValidationError
from services.session_sweeper import SessionSweeper
from utils.clock import utc_now


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_create_returns_active_session_and_token(self, session_manager):
        session, token = await session_manager.create_session("Budi Santoso", city="Jakarta", country="Indonesia")

        assert session.is_active is True
        assert session.name == "Budi Santoso"
        assert session.city == "Jakarta"
        assert session.country == "Indonesia"
        assert session.created_at is not None
        assert len(token) >= 32

    @pytest.mark.asyncio
    async def test_tokens_are_unique_and_resolve_to_their_session(self, session_manager):
        first, first_token = await session_manager.create_session("Ani")
        second, second_token = await session_manager.create_session("Ani")

        assert first_token != second_token
        assert (await session_manager.find_session_by_token(first_token)).id == first.id
        assert (await session_manager.find_session_by_token(second_token)).id == second.id

    @pytest.mark.asyncio
    async def test_token_is_not_stored_in_clear(self, session_manager, db_initializer):
        _, token = await session_manager.create_session("Ani")

        async with db_initializer.connection() as conn:
            cur = await conn.execute("SELECT token_hash FROM sessions")
            (stored,) = await cur.fetchone()

        assert stored != token

    @pytest.mark.asyncio
    async def test_unknown_token_resolves_to_none(self, session_manager):
        assert await session_manager.find_session_by_token("not-a-token") is None
        assert await session_manager.find_session_by_token(None) is None

    @pytest.mark.asyncio
    async def test_blank_city_and_country_become_none(self, session_manager):
        session, _ = await session_manager.create_session("  Ani  ", city="  ", country="")

        assert session.name == "Ani"
        assert session.city is None
        assert session.country is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "A", "x" * 51, "Robert'); DROP TABLE"])
    async def test_invalid_names_are_rejected(self, session_manager, name):
        with pytest.raises(ValidationError):
            await session_manager.create_session(name)


class TestInvalidateSession:
    @pytest.mark.asyncio
    async def test_invalidate_is_idempotent(self, session_manager):
        session, _ = await session_manager.create_session("Ani")

        assert await session_manager.invalidate_session(session.id) is True
        assert await session_manager.invalidate_session(session.id) is True

        stored = await session_manager.find_session_by_id(session.id)
        assert stored is not None
        assert stored.is_active is False

    @pytest.mark.asyncio
    async def test_invalidate_unknown_session_returns_false(self, session_manager):
        assert await session_manager.invalidate_session("missing") is False


class TestCleanupExpiredSessions:
    @pytest.mark.asyncio
    async def test_only_idle_sessions_are_deactivated(self, session_manager, session_dal):
        idle, _ = await session_manager.create_session("Idle Listener")
        recent, _ = await session_manager.create_session("Recent Listener")
        await session_dal.touch_session(idle.id, seen_at=utc_now() - timedelta(hours=2))

        count = await session_manager.cleanup_expired_sessions()

        assert count == 1
        assert (await session_manager.find_session_by_id(idle.id)).is_active is False
        assert (await session_manager.find_session_by_id(recent.id)).is_active is True

    @pytest.mark.asyncio
    async def test_sweep_does_not_count_already_inactive_sessions(self, session_manager, session_dal):
        session, _ = await session_manager.create_session("Ani")
        await session_dal.touch_session(session.id, seen_at=utc_now() - timedelta(hours=2))
        await session_manager.invalidate_session(session.id)

        assert await session_manager.cleanup_expired_sessions() == 0

    @pytest.mark.asyncio
    async def test_sweeper_runs_cleanup(self, session_manager, session_dal):
        session, _ = await session_manager.create_session("Ani")
        await session_dal.touch_session(session.id, seen_at=utc_now() - timedelta(days=2))

        assert await SessionSweeper(session_manager, interval_seconds=60).sweep_once() == 1
