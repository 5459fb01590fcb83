"""
Telegram formatting and delivery.

Replies are HTML-escaped and split below the platform message limit,
breaking at the last newline or space where one exists.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Protocol

import requests


logger = logging.getLogger(__name__)

TELEGRAM_LIMIT = 4096
TELEGRAM_API_BASE = "https://api.telegram.org"
SEND_TIMEOUT_SECONDS = 15
MAX_ESCAPED_CHAR_LEN = len("&amp;")


def escape_telegram_html(text: str) -> str:
    """Escape the three characters Telegram's HTML parse mode reserves."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def iter_telegram_chunks(text: str, limit: int = TELEGRAM_LIMIT) -> Iterator[tuple[str, str]]:
    """
    Yield (chunk, separator) pairs covering the whole text.

    The separator is the newline or space consumed at a soft break, or ""
    after a hard cut and after the last chunk, so joining every
    chunk + separator gives back the input.
    """
    if limit < 1:
        raise ValueError("limit must be positive")

    remaining = text
    while len(remaining) > limit:
        # A break right at the limit still leaves a chunk of exactly `limit`
        window = remaining[: limit + 1]
        split_at = max(window.rfind("\n"), window.rfind(" "))
        if split_at > 0:
            yield remaining[:split_at], remaining[split_at]
            remaining = remaining[split_at + 1:]
        else:
            yield remaining[:limit], ""
            remaining = remaining[limit:]
    if remaining:
        yield remaining, ""


def split_telegram_message(text: str, limit: int = TELEGRAM_LIMIT) -> list[str]:
    """Split text into chunks of at most `limit` characters."""
    return [chunk for chunk, _ in iter_telegram_chunks(text, limit)]


def render_telegram_chunks(text: str, limit: int = TELEGRAM_LIMIT) -> list[str]:
    """
    Split then escape, keeping every escaped chunk within the limit.

    Escaping can grow a chunk up to five times; oversized chunks are
    split again with a narrower width, always measured against `limit`.
    """
    if limit < MAX_ESCAPED_CHAR_LEN:
        raise ValueError(f"limit must be at least {MAX_ESCAPED_CHAR_LEN}")
    return _render_chunks(text, limit, limit)


def _render_chunks(text: str, width: int, limit: int) -> list[str]:
    rendered = []
    for chunk in split_telegram_message(text, width):
        escaped = escape_telegram_html(chunk)
        if len(escaped) <= limit:
            rendered.append(escaped)
        else:
            # width 1 always fits: one escaped character is at most "&amp;"
            rendered.extend(_render_chunks(chunk, max(1, width // 2), limit))
    return rendered


@dataclass(frozen=True)
class InboundMessage:
    """The parts of a Telegram update the runtime needs."""
    chat_id: int
    text: str
    user_id: Optional[int] = None


def parse_update(update: dict[str, Any]) -> Optional[InboundMessage]:
    """Extract a text message from an update; anything else yields None."""
    message = update.get("message") if isinstance(update, dict) else None
    if not isinstance(message, dict):
        return None

    text = message.get("text")
    chat = message.get("chat") or {}
    chat_id = chat.get("id")
    if not isinstance(text, str) or not text or chat_id is None:
        return None

    sender = message.get("from") or {}
    return InboundMessage(chat_id=chat_id, text=text, user_id=sender.get("id"))


class MessageSender(Protocol):
    """Outbound chat delivery."""

    async def send_text(self, chat_id: int, text: str) -> None:
        ...


class TelegramSender:
    """
    Sends replies through the Telegram Bot API.

    Failures are logged, never raised: a reply that cannot be delivered
    must not fail the run that produced it.
    """

    def __init__(
        self,
        bot_token: str,
        api_base: str = TELEGRAM_API_BASE,
        timeout: float = SEND_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.bot_token = bot_token
        self.api_base = api_base
        self.timeout = timeout
        self._http = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/bot{self.bot_token}/sendMessage"

    async def send_text(self, chat_id: int, text: str) -> None:
        for chunk in render_telegram_chunks(text):
            await asyncio.to_thread(self._post_chunk, chat_id, chunk)

    def _post_chunk(self, chat_id: int, chunk: str) -> None:
        payload = {
            "chat_id": chat_id,
            "text": chunk,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            response = self._http.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("telegram_send_failed chat_id=%s error=%s", chat_id, exc)
            return

        if not response.ok:
            logger.error(
                "telegram_send_failed chat_id=%s status=%s response=%s",
                chat_id,
                response.status_code,
                response.text[:500],
            )
