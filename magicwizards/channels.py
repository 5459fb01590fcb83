"""
Channel adapters for Magic Wizards.

Translate an external trigger into a control plane run and the result
back into the channel's shape:
- Direct calls return a JSON-ready dict
- Telegram updates are answered with chat messages
"""

import logging
import time
from typing import Any, Optional

from magicwizards.control_plane import WizardControlPlane
from magicwizards.cost_control import BudgetExceededError
from magicwizards.schemas import Channel
from magicwizards.telegram import MessageSender, parse_update
from magicwizards.tenants import IdentityResolver


logger = logging.getLogger(__name__)

NOT_LINKED_MESSAGE = "This chat is not linked to a tenant. Please contact your workspace admin."
TENANT_INACTIVE_MESSAGE = "Your tenant is inactive or missing. Please contact support."
BUDGET_REACHED_MESSAGE = (
    "Your workspace has reached its monthly Magic Wizards budget. "
    "Please contact your workspace admin."
)
RUN_FAILED_MESSAGE = "Magic Wizards hit an error while processing your request."


class DirectChannel:
    """Programmatic calls: tenant id (or the sandbox id) plus a prompt."""

    def __init__(self, control_plane: WizardControlPlane):
        self.control_plane = control_plane

    async def run(
        self,
        tenant_id: Any,
        prompt: Any,
        wizard_id: Optional[str] = None,
    ) -> dict[str, Any]:
        response = await self.control_plane.run_for_tenant(
            tenant_id=tenant_id,
            prompt=prompt,
            wizard_id=wizard_id,
            channel=Channel.API,
        )
        return {
            "text": response.text,
            "wizardId": response.wizard_id,
            "costUsd": response.cost_usd,
            "turns": response.turns,
        }


class TelegramChannel:
    """
    Handles inbound Telegram updates.

    Every outcome is answered in the chat: the reply, or one of the fixed
    not-linked / inactive / budget / error messages. Nothing is raised to
    the webhook, which has already acknowledged the update.
    """

    def __init__(
        self,
        control_plane: WizardControlPlane,
        sender: MessageSender,
        identities: Optional[IdentityResolver] = None,
    ):
        self.control_plane = control_plane
        self.sender = sender
        self.identities = identities or IdentityResolver(control_plane.storage)

    async def handle_update(self, update: dict[str, Any]) -> None:
        message = parse_update(update)
        if message is None:
            return

        external_user_id = str(message.user_id) if message.user_id is not None else None
        identity = await self.identities.resolve(
            Channel.TELEGRAM, str(message.chat_id), external_user_id
        )
        if identity is None:
            await self.sender.send_text(message.chat_id, NOT_LINKED_MESSAGE)
            return

        tenant = await self.control_plane.tenants.get(identity.tenant_id)
        if tenant is None or not tenant.is_active:
            await self.sender.send_text(message.chat_id, TENANT_INACTIVE_MESSAGE)
            return

        started = time.perf_counter()
        try:
            response = await self.control_plane.run_for_tenant(
                tenant_id=identity.tenant_id,
                prompt=message.text,
                channel=Channel.TELEGRAM,
                user_id=identity.user_id,
                external_user_ref=external_user_id,
                conversation_id=str(message.chat_id),
                tenant=tenant,
            )
            await self.sender.send_text(message.chat_id, response.text)
        except BudgetExceededError:
            await self.sender.send_text(message.chat_id, BUDGET_REACHED_MESSAGE)
            return
        except Exception as exc:
            logger.error(
                "telegram_wizard_run_failed tenant_id=%s error=%s", identity.tenant_id, exc
            )
            await self.sender.send_text(message.chat_id, RUN_FAILED_MESSAGE)
            return

        logger.info(
            "telegram_wizard_run_completed tenant_id=%s wizard_id=%s cost_usd=%.6f "
            "turns=%d duration_ms=%d",
            identity.tenant_id,
            response.wizard_id,
            response.cost_usd,
            response.turns,
            int((time.perf_counter() - started) * 1000),
        )
