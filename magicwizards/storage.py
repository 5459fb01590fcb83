"""Storage backends for tenants, identities, sessions, usage events and memories."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

from magicwizards.schemas import (
    Channel,
    MemoryEntry,
    SessionStatus,
    TenantConfig,
    TenantIdentity,
    UsageEvent,
    WizardSession,
)


class StorageBackend(Protocol):
    """
    Storage backend interface.

    Every row is scoped by tenant id. All methods are coroutines: the
    runtime treats each call as a suspension point.
    """

    async def get_tenant(self, tenant_id: str) -> Optional[TenantConfig]:
        ...

    async def upsert_tenant(self, tenant: TenantConfig) -> TenantConfig:
        ...

    async def find_identities(self, channel: Channel, external_chat_id: str) -> List[TenantIdentity]:
        ...

    async def add_identity(self, identity: TenantIdentity) -> TenantIdentity:
        ...

    async def insert_session(self, session: WizardSession) -> WizardSession:
        ...

    async def close_session(self, session_id: str, closed: WizardSession) -> bool:
        ...

    async def get_session(self, session_id: str) -> Optional[WizardSession]:
        ...

    async def list_sessions(self, tenant_id: str) -> List[WizardSession]:
        ...

    async def add_usage_event(self, event: UsageEvent) -> bool:
        ...

    async def list_usage_events(
        self, tenant_id: str, since: Optional[datetime] = None
    ) -> List[UsageEvent]:
        ...

    async def add_memory(self, entry: MemoryEntry) -> MemoryEntry:
        ...

    async def list_memories(self, tenant_id: str, user_id: str, limit: int) -> List[MemoryEntry]:
        ...


def _memory_order(entry: MemoryEntry) -> tuple:
    return (-entry.importance_score, -entry.created_at.timestamp())


class InMemoryStorage:
    """In-memory storage backend (default)."""

    def __init__(self):
        self._tenants: Dict[str, TenantConfig] = {}
        self._identities: List[TenantIdentity] = []
        self._sessions: Dict[str, WizardSession] = {}
        self._usage_events: List[UsageEvent] = []
        self._memories: List[MemoryEntry] = []

    async def get_tenant(self, tenant_id: str) -> Optional[TenantConfig]:
        return self._tenants.get(tenant_id)

    async def upsert_tenant(self, tenant: TenantConfig) -> TenantConfig:
        self._tenants[tenant.id] = tenant
        return tenant

    async def find_identities(self, channel: Channel, external_chat_id: str) -> List[TenantIdentity]:
        return [
            identity
            for identity in self._identities
            if identity.is_active
            and identity.channel == channel
            and identity.external_chat_id == external_chat_id
        ]

    async def add_identity(self, identity: TenantIdentity) -> TenantIdentity:
        self._identities.append(identity)
        return identity

    async def insert_session(self, session: WizardSession) -> WizardSession:
        self._sessions[session.id] = replace(session)
        return session

    async def close_session(self, session_id: str, closed: WizardSession) -> bool:
        current = self._sessions.get(session_id)
        if current is None or current.status is not SessionStatus.RUNNING:
            return False
        self._sessions[session_id] = replace(closed, id=session_id)
        return True

    async def get_session(self, session_id: str) -> Optional[WizardSession]:
        session = self._sessions.get(session_id)
        return replace(session) if session else None

    async def list_sessions(self, tenant_id: str) -> List[WizardSession]:
        return [replace(s) for s in self._sessions.values() if s.tenant_id == tenant_id]

    async def add_usage_event(self, event: UsageEvent) -> bool:
        if any(e.session_id == event.session_id for e in self._usage_events):
            return False
        self._usage_events.append(event)
        return True

    async def list_usage_events(
        self, tenant_id: str, since: Optional[datetime] = None
    ) -> List[UsageEvent]:
        return [
            e
            for e in self._usage_events
            if e.tenant_id == tenant_id and (since is None or e.recorded_at >= since)
        ]

    async def add_memory(self, entry: MemoryEntry) -> MemoryEntry:
        self._memories.append(entry)
        return entry

    async def list_memories(self, tenant_id: str, user_id: str, limit: int) -> List[MemoryEntry]:
        entries = [
            m for m in self._memories if m.tenant_id == tenant_id and m.user_id == user_id
        ]
        return sorted(entries, key=_memory_order)[:limit]


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SQLiteStorage:
    """
    SQLite-backed storage backend.

    sqlite3 is blocking, so each call runs in a worker thread; a lock
    serializes access to the shared connection.
    """

    def __init__(self, db_path: str = "wizards.db"):
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS tenants (
                id TEXT PRIMARY KEY,
                plan TEXT NOT NULL,
                status TEXT NOT NULL,
                wizard_provider TEXT,
                wizard_model TEXT,
                wizard_budget_usd REAL
            );
            CREATE TABLE IF NOT EXISTS tenant_identities (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                channel TEXT NOT NULL,
                external_chat_id TEXT NOT NULL,
                external_user_id TEXT,
                user_id TEXT,
                is_active INTEGER NOT NULL DEFAULT 1
            );
            CREATE TABLE IF NOT EXISTS wizard_sessions (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                user_id TEXT,
                wizard_id TEXT NOT NULL,
                channel TEXT NOT NULL,
                external_session_id TEXT,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                ended_at TEXT,
                total_cost_usd REAL NOT NULL DEFAULT 0,
                turn_count INTEGER NOT NULL DEFAULT 0,
                output_excerpt TEXT,
                error_message TEXT
            );
            CREATE TABLE IF NOT EXISTS usage_events (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                session_id TEXT NOT NULL UNIQUE,
                cost_usd REAL NOT NULL,
                turns INTEGER NOT NULL,
                provider TEXT NOT NULL,
                model TEXT NOT NULL,
                recorded_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS user_memories (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                user_id TEXT,
                external_user_ref TEXT,
                content TEXT NOT NULL,
                importance_score REAL NOT NULL,
                created_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_identities_chat
                ON tenant_identities(channel, external_chat_id);
            CREATE INDEX IF NOT EXISTS idx_sessions_tenant ON wizard_sessions(tenant_id);
            CREATE INDEX IF NOT EXISTS idx_usage_tenant_time ON usage_events(tenant_id, recorded_at);
            CREATE INDEX IF NOT EXISTS idx_memories_user ON user_memories(tenant_id, user_id);
            """
        )
        self._conn.commit()

    def _locked(self, fn: Callable[..., Any], *args: Any) -> Any:
        with self._lock:
            return fn(*args)

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(self._locked, fn, *args)

    # Tenants --------------------------------------------------------------

    def _row_to_tenant(self, row: sqlite3.Row) -> TenantConfig:
        return TenantConfig(
            id=row["id"],
            plan=row["plan"],
            status=row["status"],
            wizard_provider=row["wizard_provider"],
            wizard_model=row["wizard_model"],
            wizard_budget_usd=row["wizard_budget_usd"],
        )

    def _get_tenant(self, tenant_id: str) -> Optional[TenantConfig]:
        row = self._conn.execute("SELECT * FROM tenants WHERE id = ?", (tenant_id,)).fetchone()
        return self._row_to_tenant(row) if row else None

    async def get_tenant(self, tenant_id: str) -> Optional[TenantConfig]:
        return await self._run(self._get_tenant, tenant_id)

    def _upsert_tenant(self, tenant: TenantConfig) -> TenantConfig:
        self._conn.execute(
            """
            INSERT INTO tenants (id, plan, status, wizard_provider, wizard_model, wizard_budget_usd)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                plan=excluded.plan,
                status=excluded.status,
                wizard_provider=excluded.wizard_provider,
                wizard_model=excluded.wizard_model,
                wizard_budget_usd=excluded.wizard_budget_usd
            """,
            (
                tenant.id,
                tenant.plan,
                tenant.status,
                tenant.wizard_provider,
                tenant.wizard_model,
                tenant.wizard_budget_usd,
            ),
        )
        self._conn.commit()
        return tenant

    async def upsert_tenant(self, tenant: TenantConfig) -> TenantConfig:
        return await self._run(self._upsert_tenant, tenant)

    # Identities -----------------------------------------------------------

    def _find_identities(self, channel: Channel, external_chat_id: str) -> List[TenantIdentity]:
        rows = self._conn.execute(
            """
            SELECT * FROM tenant_identities
            WHERE channel = ? AND external_chat_id = ? AND is_active = 1
            """,
            (Channel(channel).value, external_chat_id),
        ).fetchall()
        return [
            TenantIdentity(
                id=row["id"],
                tenant_id=row["tenant_id"],
                channel=Channel(row["channel"]),
                external_chat_id=row["external_chat_id"],
                external_user_id=row["external_user_id"],
                user_id=row["user_id"],
                is_active=bool(row["is_active"]),
            )
            for row in rows
        ]

    async def find_identities(self, channel: Channel, external_chat_id: str) -> List[TenantIdentity]:
        return await self._run(self._find_identities, channel, external_chat_id)

    def _add_identity(self, identity: TenantIdentity) -> TenantIdentity:
        self._conn.execute(
            """
            INSERT INTO tenant_identities
                (id, tenant_id, channel, external_chat_id, external_user_id, user_id, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                identity.id,
                identity.tenant_id,
                Channel(identity.channel).value,
                identity.external_chat_id,
                identity.external_user_id,
                identity.user_id,
                1 if identity.is_active else 0,
            ),
        )
        self._conn.commit()
        return identity

    async def add_identity(self, identity: TenantIdentity) -> TenantIdentity:
        return await self._run(self._add_identity, identity)

    # Sessions -------------------------------------------------------------

    def _row_to_session(self, row: sqlite3.Row) -> WizardSession:
        return WizardSession(
            id=row["id"],
            tenant_id=row["tenant_id"],
            user_id=row["user_id"],
            wizard_id=row["wizard_id"],
            channel=Channel(row["channel"]),
            external_session_id=row["external_session_id"],
            status=SessionStatus(row["status"]),
            started_at=_from_iso(row["started_at"]),
            ended_at=_from_iso(row["ended_at"]),
            total_cost_usd=row["total_cost_usd"],
            turn_count=row["turn_count"],
            output_excerpt=row["output_excerpt"],
            error_message=row["error_message"],
        )

    def _insert_session(self, session: WizardSession) -> WizardSession:
        self._conn.execute(
            """
            INSERT INTO wizard_sessions
                (id, tenant_id, user_id, wizard_id, channel, external_session_id,
                 status, started_at, total_cost_usd, turn_count)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session.id,
                session.tenant_id,
                session.user_id,
                session.wizard_id,
                Channel(session.channel).value,
                session.external_session_id,
                SessionStatus(session.status).value,
                _to_iso(session.started_at),
                session.total_cost_usd,
                session.turn_count,
            ),
        )
        self._conn.commit()
        return session

    async def insert_session(self, session: WizardSession) -> WizardSession:
        return await self._run(self._insert_session, session)

    def _close_session(self, session_id: str, closed: WizardSession) -> bool:
        cur = self._conn.execute(
            """
            UPDATE wizard_sessions SET
                status = ?,
                ended_at = ?,
                total_cost_usd = ?,
                turn_count = ?,
                output_excerpt = ?,
                error_message = ?,
                external_session_id = COALESCE(?, external_session_id)
            WHERE id = ? AND status = ?
            """,
            (
                SessionStatus(closed.status).value,
                _to_iso(closed.ended_at),
                closed.total_cost_usd,
                closed.turn_count,
                closed.output_excerpt,
                closed.error_message,
                closed.external_session_id,
                session_id,
                SessionStatus.RUNNING.value,
            ),
        )
        self._conn.commit()
        return cur.rowcount > 0

    async def close_session(self, session_id: str, closed: WizardSession) -> bool:
        return await self._run(self._close_session, session_id, closed)

    def _get_session(self, session_id: str) -> Optional[WizardSession]:
        row = self._conn.execute(
            "SELECT * FROM wizard_sessions WHERE id = ?", (session_id,)
        ).fetchone()
        return self._row_to_session(row) if row else None

    async def get_session(self, session_id: str) -> Optional[WizardSession]:
        return await self._run(self._get_session, session_id)

    def _list_sessions(self, tenant_id: str) -> List[WizardSession]:
        rows = self._conn.execute(
            "SELECT * FROM wizard_sessions WHERE tenant_id = ? ORDER BY started_at ASC",
            (tenant_id,),
        ).fetchall()
        return [self._row_to_session(row) for row in rows]

    async def list_sessions(self, tenant_id: str) -> List[WizardSession]:
        return await self._run(self._list_sessions, tenant_id)

    # Usage events ---------------------------------------------------------

    def _add_usage_event(self, event: UsageEvent) -> bool:
        cur = self._conn.execute(
            """
            INSERT OR IGNORE INTO usage_events
                (id, tenant_id, session_id, cost_usd, turns, provider, model, recorded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.tenant_id,
                event.session_id,
                event.cost_usd,
                event.turns,
                event.provider,
                event.model,
                _to_iso(event.recorded_at),
            ),
        )
        self._conn.commit()
        return cur.rowcount > 0

    async def add_usage_event(self, event: UsageEvent) -> bool:
        return await self._run(self._add_usage_event, event)

    def _list_usage_events(self, tenant_id: str, since: Optional[datetime]) -> List[UsageEvent]:
        if since is None:
            rows = self._conn.execute(
                "SELECT * FROM usage_events WHERE tenant_id = ? ORDER BY recorded_at ASC",
                (tenant_id,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                """
                SELECT * FROM usage_events
                WHERE tenant_id = ? AND recorded_at >= ?
                ORDER BY recorded_at ASC
                """,
                (tenant_id, _to_iso(since)),
            ).fetchall()
        return [
            UsageEvent(
                id=row["id"],
                tenant_id=row["tenant_id"],
                session_id=row["session_id"],
                cost_usd=row["cost_usd"],
                turns=row["turns"],
                provider=row["provider"],
                model=row["model"],
                recorded_at=_from_iso(row["recorded_at"]),
            )
            for row in rows
        ]

    async def list_usage_events(
        self, tenant_id: str, since: Optional[datetime] = None
    ) -> List[UsageEvent]:
        return await self._run(self._list_usage_events, tenant_id, since)

    # Memories -------------------------------------------------------------

    def _add_memory(self, entry: MemoryEntry) -> MemoryEntry:
        self._conn.execute(
            """
            INSERT INTO user_memories
                (id, tenant_id, user_id, external_user_ref, content, importance_score, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.tenant_id,
                entry.user_id,
                entry.external_user_ref,
                entry.content,
                entry.importance_score,
                _to_iso(entry.created_at),
            ),
        )
        self._conn.commit()
        return entry

    async def add_memory(self, entry: MemoryEntry) -> MemoryEntry:
        return await self._run(self._add_memory, entry)

    def _list_memories(self, tenant_id: str, user_id: str, limit: int) -> List[MemoryEntry]:
        rows = self._conn.execute(
            """
            SELECT * FROM user_memories
            WHERE tenant_id = ? AND user_id = ?
            ORDER BY importance_score DESC, created_at DESC
            LIMIT ?
            """,
            (tenant_id, user_id, limit),
        ).fetchall()
        return [
            MemoryEntry(
                id=row["id"],
                tenant_id=row["tenant_id"],
                user_id=row["user_id"],
                external_user_ref=row["external_user_ref"],
                content=row["content"],
                importance_score=row["importance_score"],
                created_at=_from_iso(row["created_at"]),
            )
            for row in rows
        ]

    async def list_memories(self, tenant_id: str, user_id: str, limit: int) -> List[MemoryEntry]:
        return await self._run(self._list_memories, tenant_id, user_id, limit)

    def close(self) -> None:
        with self._lock:
            self._conn.close()
