"""FastAPI server for Magic Wizards."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from magicwizards import __version__
from magicwizards.channels import DirectChannel, TelegramChannel
from magicwizards.config import Settings
from magicwizards.control_plane import WizardControlPlane
from magicwizards.errors import WizardError
from magicwizards.metrics import configure_logging
from magicwizards.storage import SQLiteStorage
from magicwizards.telegram import MessageSender, TelegramSender
from magicwizards.tenants import TenantInactiveError, TenantNotFoundError
from magicwizards.validation import ValidationError


logger = logging.getLogger("magicwizards.api")

SERVICE_NAME = "magicwizards-wizards-api"
SUPPORTED_PLATFORMS = ("telegram",)


class RunWizardRequest(BaseModel):
    # Presence is checked by the control plane so missing fields map to 400
    tenantId: Optional[str] = None
    prompt: Optional[str] = None
    wizardId: Optional[str] = None


class RunWizardResponse(BaseModel):
    text: str
    wizardId: str
    costUsd: float
    turns: int


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


def create_app(
    settings: Optional[Settings] = None,
    control_plane: Optional[WizardControlPlane] = None,
    sender: Optional[MessageSender] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Process settings. Read from the environment if not provided.
        control_plane: Wizard control plane. SQLite-backed with all shipped adapters if not provided.
        sender: Outbound chat sender. Telegram Bot API if not provided.
    """
    settings = settings or Settings.from_env()
    settings.validate()
    configure_logging(settings.log_level)

    plane = control_plane or WizardControlPlane(
        storage=SQLiteStorage(db_path=settings.db_path),
        default_wizard_id=settings.default_wizard_id,
    )
    direct = DirectChannel(plane)
    telegram = TelegramChannel(plane, sender or TelegramSender(settings.telegram_bot_token))

    app = FastAPI(title="Magic Wizards API", version=__version__)
    app.state.settings = settings
    app.state.control_plane = plane

    def _require_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
        if settings.api_key and x_api_key != settings.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, exc)

    @app.exception_handler(TenantNotFoundError)
    async def _tenant_not_found(request: Request, exc: TenantNotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(TenantInactiveError)
    async def _tenant_inactive(request: Request, exc: TenantInactiveError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(WizardError)
    async def _wizard_error(request: Request, exc: WizardError) -> JSONResponse:
        return _error(500, exc)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "service": SERVICE_NAME, "env": settings.env}

    @app.get("/metrics", dependencies=[Depends(_require_api_key)])
    def metrics() -> Dict[str, Any]:
        return plane.metrics.get_stats()

    @app.post(
        "/run-wizard",
        response_model=RunWizardResponse,
        dependencies=[Depends(_require_api_key)],
    )
    async def run_wizard(req: RunWizardRequest) -> Dict[str, Any]:
        return await direct.run(req.tenantId, req.prompt, wizard_id=req.wizardId)

    @app.get("/tenants/{tenant_id}/usage", dependencies=[Depends(_require_api_key)])
    async def tenant_usage(tenant_id: str) -> Dict[str, Any]:
        return await plane.get_usage_summary(tenant_id)

    @app.post("/webhooks/{platform}")
    async def webhook(
        platform: str,
        request: Request,
        background_tasks: BackgroundTasks,
        x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
    ) -> JSONResponse:
        if platform not in SUPPORTED_PLATFORMS:
            return JSONResponse(status_code=404, content={"ok": False})

        secret = settings.telegram_webhook_secret
        if secret and x_telegram_bot_api_secret_token != secret:
            logger.warning("telegram_webhook_rejected reason=secret_mismatch")
            return JSONResponse(status_code=401, content={"ok": False})

        try:
            update = await request.json()
        except ValueError:
            logger.warning("telegram_webhook_invalid_body")
            update = None

        # Acknowledge now; the run happens after the response is sent
        if isinstance(update, dict):
            background_tasks.add_task(telegram.handle_update, update)
        return JSONResponse(status_code=200, content={"ok": True})

    return app
