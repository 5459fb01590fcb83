"""Tests for storage backends."""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
import tempfile

import pytest

from magicwizards.schemas import (
    Channel,
    MemoryEntry,
    SessionStatus,
    TenantConfig,
    TenantIdentity,
    UsageEvent,
    WizardSession,
)
from magicwizards.storage import InMemoryStorage, SQLiteStorage


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        yield InMemoryStorage()
    else:
        backend = SQLiteStorage(db_path=str(tmp_path / "wizards.db"))
        yield backend
        backend.close()


def test_tenant_roundtrip(storage):
    """Tenants are stored and updated by id."""
    async def scenario():
        await storage.upsert_tenant(TenantConfig(id="t1", plan="pro", status="active"))
        await storage.upsert_tenant(
            TenantConfig(id="t1", plan="pro", status="suspended", wizard_model="gpt-4o")
        )
        return await storage.get_tenant("t1"), await storage.get_tenant("missing")

    tenant, missing = asyncio.run(scenario())

    assert tenant.status == "suspended"
    assert tenant.wizard_model == "gpt-4o"
    assert not tenant.is_active
    assert missing is None


def test_find_identities_only_active(storage):
    """Inactive identity rows are never returned."""
    async def scenario():
        await storage.add_identity(TenantIdentity("t1", Channel.TELEGRAM, "100"))
        await storage.add_identity(
            TenantIdentity("t2", Channel.TELEGRAM, "100", is_active=False)
        )
        await storage.add_identity(TenantIdentity("t3", Channel.TELEGRAM, "200"))
        return await storage.find_identities(Channel.TELEGRAM, "100")

    identities = asyncio.run(scenario())

    assert [i.tenant_id for i in identities] == ["t1"]
    assert identities[0].channel == Channel.TELEGRAM


def test_close_session_only_once(storage):
    """A session closes once; later closes are no-ops."""
    session = WizardSession(tenant_id="t1", wizard_id="builder", channel=Channel.API)
    completed = replace(
        session,
        status=SessionStatus.COMPLETED,
        ended_at=session.started_at,
        total_cost_usd=0.5,
        turn_count=1,
        output_excerpt="done",
    )
    failed = replace(session, status=SessionStatus.FAILED, error_message="late failure")

    async def scenario():
        await storage.insert_session(session)
        first = await storage.close_session(session.id, completed)
        second = await storage.close_session(session.id, failed)
        return first, second, await storage.get_session(session.id)

    first, second, stored = asyncio.run(scenario())

    assert first is True
    assert second is False
    assert stored.status == SessionStatus.COMPLETED
    assert stored.total_cost_usd == 0.5
    assert stored.error_message is None


def test_close_unknown_session(storage):
    """Closing a session that does not exist reports False."""
    session = WizardSession(tenant_id="t1", wizard_id="builder", channel=Channel.API)
    closed = replace(session, status=SessionStatus.FAILED)
    assert asyncio.run(storage.close_session(session.id, closed)) is False


def test_one_usage_event_per_session(storage):
    """A second usage event for the same session is ignored."""
    event = UsageEvent("t1", "s1", 0.25, 1, "openai", "gpt-4.1-mini")
    duplicate = UsageEvent("t1", "s1", 0.75, 1, "openai", "gpt-4.1-mini")

    async def scenario():
        first = await storage.add_usage_event(event)
        second = await storage.add_usage_event(duplicate)
        return first, second, await storage.list_usage_events("t1")

    first, second, events = asyncio.run(scenario())

    assert first is True
    assert second is False
    assert [e.cost_usd for e in events] == [0.25]


def test_usage_events_since(storage):
    """Usage events can be filtered by recorded time and tenant."""
    now = datetime.now(timezone.utc)
    old = UsageEvent("t1", "s-old", 1.0, 1, "openai", "m", recorded_at=now - timedelta(days=40))
    new = UsageEvent("t1", "s-new", 2.0, 1, "openai", "m", recorded_at=now)
    other = UsageEvent("t2", "s-other", 3.0, 1, "openai", "m", recorded_at=now)

    async def scenario():
        for event in (old, new, other):
            await storage.add_usage_event(event)
        return await storage.list_usage_events("t1", since=now - timedelta(days=1))

    events = asyncio.run(scenario())

    assert [e.session_id for e in events] == ["s-new"]
    assert events[0].recorded_at.tzinfo is not None


def test_memories_ordered_by_importance_then_recency(storage):
    """Memories come back most important, then most recent, first."""
    now = datetime.now(timezone.utc)
    entries = [
        MemoryEntry("t1", "old low", user_id="u1", importance_score=1, created_at=now - timedelta(hours=2)),
        MemoryEntry("t1", "new low", user_id="u1", importance_score=1, created_at=now),
        MemoryEntry("t1", "high", user_id="u1", importance_score=5, created_at=now - timedelta(days=3)),
        MemoryEntry("t1", "other user", user_id="u2", importance_score=9, created_at=now),
    ]

    async def scenario():
        for entry in entries:
            await storage.add_memory(entry)
        return (
            await storage.list_memories("t1", "u1", 10),
            await storage.list_memories("t1", "u1", 2),
        )

    everything, limited = asyncio.run(scenario())

    assert [m.content for m in everything] == ["high", "new low", "old low"]
    assert [m.content for m in limited] == ["high", "new low"]


def test_sqlite_storage_persists_across_instances():
    """SQLite storage keeps rows across instances."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = f"{tmpdir}/wizards.db"
        session = WizardSession(tenant_id="t1", wizard_id="ops", channel=Channel.TELEGRAM, user_id="u1")

        storage = SQLiteStorage(db_path=db_path)
        asyncio.run(storage.insert_session(session))
        storage.close()

        storage2 = SQLiteStorage(db_path=db_path)
        sessions = asyncio.run(storage2.list_sessions("t1"))
        storage2.close()

        assert len(sessions) == 1
        assert sessions[0].id == session.id
        assert sessions[0].channel == Channel.TELEGRAM
        assert sessions[0].status == SessionStatus.RUNNING
        assert sessions[0].started_at == session.started_at
