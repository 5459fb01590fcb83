"""
Session lifecycle for Magic Wizards.

A session records one run:
- Opened as running before any provider call
- Closed exactly once as completed or failed
- Never re-opened
"""

import logging
from dataclasses import replace
from datetime import datetime, UTC
from typing import Optional

from magicwizards.schemas import Channel, SessionStatus, WizardSession
from magicwizards.storage import StorageBackend


logger = logging.getLogger(__name__)

OUTPUT_EXCERPT_CHARS = 1000


class SessionStore:
    """
    Opens and closes wizard sessions on a storage backend.

    Example:
        ```python
        sessions = SessionStore(storage)
        session = await sessions.open("tenant-1", "builder", Channel.API)
        await sessions.complete(session, cost_usd=0.002, turns=1, output_text="...")
        ```
    """

    def __init__(self, storage: StorageBackend):
        self._storage = storage

    async def open(
        self,
        tenant_id: str,
        wizard_id: str,
        channel: Channel,
        user_id: Optional[str] = None,
    ) -> WizardSession:
        """Create a running session row."""
        session = WizardSession(
            tenant_id=tenant_id,
            wizard_id=wizard_id,
            channel=channel,
            user_id=user_id,
        )
        return await self._storage.insert_session(session)

    async def complete(
        self,
        session: WizardSession,
        cost_usd: float,
        turns: int,
        output_text: str,
        external_session_id: Optional[str] = None,
    ) -> bool:
        """
        Mark a session completed.

        Returns:
            False if the session was already closed.
        """
        closed = replace(
            session,
            status=SessionStatus.COMPLETED,
            ended_at=self._end_time(session),
            total_cost_usd=cost_usd,
            turn_count=turns,
            output_excerpt=output_text[:OUTPUT_EXCERPT_CHARS],
            external_session_id=external_session_id or session.external_session_id,
        )
        return await self._close(session, closed)

    async def fail(self, session: WizardSession, error_message: str) -> bool:
        """Mark a session failed with zero cost and turns."""
        closed = replace(
            session,
            status=SessionStatus.FAILED,
            ended_at=self._end_time(session),
            total_cost_usd=0.0,
            turn_count=0,
            error_message=error_message,
        )
        return await self._close(session, closed)

    async def _close(self, session: WizardSession, closed: WizardSession) -> bool:
        changed = await self._storage.close_session(session.id, closed)
        if changed:
            session.status = closed.status
            session.ended_at = closed.ended_at
            session.total_cost_usd = closed.total_cost_usd
            session.turn_count = closed.turn_count
            session.output_excerpt = closed.output_excerpt
            session.error_message = closed.error_message
            session.external_session_id = closed.external_session_id
        else:
            logger.warning(
                "session_already_closed session_id=%s tenant_id=%s attempted_status=%s",
                session.id,
                session.tenant_id,
                closed.status.value,
            )
        return changed

    @staticmethod
    def _end_time(session: WizardSession) -> datetime:
        # Clock skew must not produce ended_at < started_at
        return max(datetime.now(UTC), session.started_at)
