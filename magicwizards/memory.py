"""
User memory for Magic Wizards.

Short textual facts about a user, read before a run to enrich the prompt
and written after a successful run. Both directions are best-effort: a
storage failure is logged and never reaches the caller.
"""

import logging
from typing import Optional

from magicwizards.schemas import MemoryEntry
from magicwizards.storage import StorageBackend


logger = logging.getLogger(__name__)

CONTEXT_LIMIT = 20
EXCERPT_CHARS = 600
MAX_CONTENT_CHARS = 4000
CONTEXT_HEADER = "What I know about this user:"


def build_memory_content(prompt: str, reply: str) -> str:
    """Summary of one exchange, as stored."""
    content = f"User asked: {prompt[:EXCERPT_CHARS]}\nAssistant replied: {reply[:EXCERPT_CHARS]}"
    return content[:MAX_CONTENT_CHARS]


def build_prompt_with_context(prompt: str, context: str) -> str:
    """Prepend memory context to a prompt; no context leaves it untouched."""
    if not context:
        return prompt
    return f"{context}\n\nUser request:\n{prompt}"


class MemoryService:
    """Reads and writes user memories on a storage backend."""

    def __init__(self, storage: StorageBackend, context_limit: int = CONTEXT_LIMIT):
        self._storage = storage
        self.context_limit = context_limit

    async def get_context(self, tenant_id: str, user_id: Optional[str]) -> str:
        """
        Render the user's most important memories.

        Returns an empty string when there is no user, no memory, or the
        read fails.
        """
        if not user_id:
            return ""
        try:
            entries = await self._storage.list_memories(tenant_id, user_id, self.context_limit)
        except Exception as exc:
            logger.warning(
                "memory_read_failed tenant_id=%s user_id=%s error=%s", tenant_id, user_id, exc
            )
            return ""

        lines = [entry.content for entry in entries if entry.content]
        if not lines:
            return ""
        return CONTEXT_HEADER + "\n" + "\n".join(f"- {line}" for line in lines)

    async def save(
        self,
        tenant_id: str,
        prompt: str,
        reply: str,
        user_id: Optional[str] = None,
        external_user_ref: Optional[str] = None,
    ) -> Optional[MemoryEntry]:
        """
        Persist a summary of one exchange.

        Skipped when neither a user id nor an external user reference is
        known. Returns the stored entry, or None if skipped or failed.
        """
        if not user_id and not external_user_ref:
            return None

        entry = MemoryEntry(
            tenant_id=tenant_id,
            content=build_memory_content(prompt, reply),
            user_id=user_id,
            external_user_ref=external_user_ref,
            importance_score=1.0,
        )
        try:
            return await self._storage.add_memory(entry)
        except Exception as exc:
            logger.warning(
                "memory_save_failed tenant_id=%s user_id=%s error=%s", tenant_id, user_id, exc
            )
            return None
