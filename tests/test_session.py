"""Tests for the session lifecycle."""

import asyncio
from datetime import datetime, timedelta, UTC

from magicwizards.schemas import Channel, SessionStatus
from magicwizards.session import OUTPUT_EXCERPT_CHARS, SessionStore
from magicwizards.storage import InMemoryStorage


class TestSessionStore:
    """Test opening and closing sessions."""

    def test_open_creates_running_row(self):
        """Opened sessions are running and persisted."""
        storage = InMemoryStorage()
        store = SessionStore(storage)

        async def scenario():
            session = await store.open("t1", "builder", Channel.TELEGRAM, user_id="u1")
            return session, await storage.get_session(session.id)

        session, stored = asyncio.run(scenario())

        assert stored.status == SessionStatus.RUNNING
        assert stored.user_id == "u1"
        assert stored.ended_at is None

    def test_complete(self):
        """Completion stores cost, turns and a truncated excerpt."""
        storage = InMemoryStorage()
        store = SessionStore(storage)

        async def scenario():
            session = await store.open("t1", "builder", Channel.API)
            changed = await store.complete(
                session, cost_usd=0.03, turns=1, output_text="z" * 5000, external_session_id="ext-1"
            )
            return changed, await storage.get_session(session.id)

        changed, stored = asyncio.run(scenario())

        assert changed is True
        assert stored.status == SessionStatus.COMPLETED
        assert stored.total_cost_usd == 0.03
        assert stored.turn_count == 1
        assert len(stored.output_excerpt) == OUTPUT_EXCERPT_CHARS
        assert stored.external_session_id == "ext-1"
        assert stored.ended_at >= stored.started_at

    def test_fail(self):
        """Failure stores the message with zero cost and turns."""
        storage = InMemoryStorage()
        store = SessionStore(storage)

        async def scenario():
            session = await store.open("t1", "ops", Channel.API)
            await store.fail(session, "provider exploded")
            return await storage.get_session(session.id)

        stored = asyncio.run(scenario())

        assert stored.status == SessionStatus.FAILED
        assert stored.error_message == "provider exploded"
        assert stored.total_cost_usd == 0.0
        assert stored.turn_count == 0

    def test_terminal_status_is_final(self):
        """A closed session is never closed again."""
        storage = InMemoryStorage()
        store = SessionStore(storage)

        async def scenario():
            session = await store.open("t1", "builder", Channel.API)
            await store.complete(session, cost_usd=0.01, turns=1, output_text="ok")
            again = await store.fail(session, "late")
            return again, await storage.get_session(session.id)

        again, stored = asyncio.run(scenario())

        assert again is False
        assert stored.status == SessionStatus.COMPLETED
        assert stored.error_message is None

    def test_ended_at_never_before_started_at(self):
        """A start time in the future still yields ended_at >= started_at."""
        storage = InMemoryStorage()
        store = SessionStore(storage)

        async def scenario():
            session = await store.open("t1", "builder", Channel.API)
            session.started_at = datetime.now(UTC) + timedelta(minutes=5)
            await store.fail(session, "skewed")
            return session

        session = asyncio.run(scenario())

        assert session.ended_at == session.started_at
