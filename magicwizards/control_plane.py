"""
Magic Wizards control plane.

The single entry point that executes one tenant run end to end:
admission, session, memory, resolution, dispatch and recording.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from magicwizards.config import get_cost_profile
from magicwizards.cost_control import BudgetExceededError, BudgetGovernor, UsageRecorder
from magicwizards.definitions import DEFAULT_WIZARD_ID, pick_wizard
from magicwizards.memory import MemoryService, build_prompt_with_context
from magicwizards.metrics import MetricsCollector
from magicwizards.runtime import WizardRuntime
from magicwizards.schemas import (
    Channel,
    ResolvedDecision,
    RunRequest,
    TenantConfig,
    WizardContext,
    WizardDefinition,
    WizardMessage,
    WizardSession,
)
from magicwizards.session import SessionStore
from magicwizards.storage import InMemoryStorage, StorageBackend
from magicwizards.tenants import TenantDirectory, TenantNotFoundError
from magicwizards.validation import (
    apply_wizard_id,
    extract_wizard_selection,
    is_sandbox_tenant,
    validate_prompt,
    validate_tenant_id,
)


logger = logging.getLogger(__name__)

TURNS_PER_RUN = 1


@dataclass
class WizardRunResponse:
    """
    Response from a wizard run.

    Contains the reply plus routing metadata.
    """
    text: str
    wizard_id: str
    cost_usd: float
    turns: int
    provider: str
    model: str
    decision: ResolvedDecision
    session_id: Optional[str] = None

    @property
    def reason(self) -> str:
        """Why this model handled the run."""
        return self.decision.reason.value


class WizardControlPlane:
    """
    Runs wizards on behalf of tenants.

    States per run: admission, session-open, executing, recording, done;
    or admission-rejected / failed.

    Example:
        ```python
        from magicwizards import WizardControlPlane

        plane = WizardControlPlane()
        response = await plane.run_for_tenant("__mock__", "Say hello in one sentence.")

        print(response.text)
        print(f"Used: {response.provider}/{response.model} ({response.reason})")
        print(f"Cost: ${response.cost_usd:.4f}")
        ```
    """

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        runtime: Optional[WizardRuntime] = None,
        wizards: Optional[dict[str, WizardDefinition]] = None,
        metrics: Optional[MetricsCollector] = None,
        default_wizard_id: str = DEFAULT_WIZARD_ID,
    ):
        """
        Initialize the control plane.

        Args:
            storage: Persistence backend. Uses in-memory if not provided.
            runtime: Resolver plus adapter registry. Uses all shipped adapters if not provided.
            wizards: Wizard catalog. Uses the built-in wizards if not provided.
            metrics: Metrics collector. A fresh one if not provided.
            default_wizard_id: Wizard used when a prompt selects none.
        """
        self.storage = storage if storage is not None else InMemoryStorage()
        self.runtime = runtime or WizardRuntime()
        self.wizards = wizards
        self.metrics = metrics or MetricsCollector()
        self.default_wizard_id = default_wizard_id

        self.tenants = TenantDirectory(self.storage)
        self.governor = BudgetGovernor(self.storage)
        self.recorder = UsageRecorder(self.storage)
        self.sessions = SessionStore(self.storage)
        self.memory = MemoryService(self.storage)

    async def run_for_tenant(
        self,
        tenant_id: str,
        prompt: str,
        wizard_id: Optional[str] = None,
        channel: Channel = Channel.API,
        user_id: Optional[str] = None,
        external_user_ref: Optional[str] = None,
        history: Optional[list[WizardMessage]] = None,
        conversation_id: Optional[str] = None,
        tenant: Optional[TenantConfig] = None,
    ) -> WizardRunResponse:
        """
        Run a wizard for a tenant.

        Args:
            tenant_id: Tenant id, or the sandbox id for unpersisted test runs.
            prompt: User prompt; may carry an inline `/wizard <id> ` prefix.
            wizard_id: Explicit wizard; ignored when the prompt selects one inline.
            channel: Ingestion path.
            user_id: Internal user, for memory.
            external_user_ref: Channel user reference, for memory.
            history: Prior conversation turns.
            conversation_id: Channel conversation id.
            tenant: Already-loaded tenant config, skips the lookup.

        Returns:
            WizardRunResponse with text, cost and routing metadata.

        Raises:
            ValidationError: If tenant id or prompt are invalid.
            TenantNotFoundError / TenantInactiveError: If the tenant cannot run.
            BudgetExceededError: If the tenant is over its monthly ceiling.
            ProviderError: If dispatch or the provider call fails.
        """
        tenant_id = validate_tenant_id(tenant_id)
        prompt = validate_prompt(prompt)

        # =======================================================================
        # Tenant and wizard selection
        # =======================================================================
        if tenant is None:
            tenant = await self.tenants.require_active(tenant_id)
        sandbox = is_sandbox_tenant(tenant.id)

        selection = extract_wizard_selection(
            apply_wizard_id(prompt, wizard_id), self.default_wizard_id
        )
        wizard = pick_wizard(selection.wizard_id, self.wizards, self.default_wizard_id)

        # =======================================================================
        # Admission
        # =======================================================================
        if not sandbox:
            try:
                await self.governor.check_budget(tenant.id, tenant.plan)
            except BudgetExceededError as exc:
                self.metrics.record_rejected(tenant.id, exc.spent, exc.limit)
                raise

        self.metrics.record_started(tenant.id, wizard.id, Channel(channel).value)
        started = time.perf_counter()

        session: Optional[WizardSession] = None
        if not sandbox:
            session = await self.sessions.open(tenant.id, wizard.id, channel, user_id)
        session_id = session.id if session else None

        # =======================================================================
        # Execution
        # =======================================================================
        try:
            context = "" if sandbox else await self.memory.get_context(tenant.id, user_id)
            request = self._build_request(
                tenant=tenant,
                wizard=wizard,
                prompt=build_prompt_with_context(selection.prompt, context),
                channel=channel,
                user_id=user_id,
                history=history,
                conversation_id=conversation_id,
            )
            decision = self.runtime.resolve(request)
            self.metrics.record_decision(
                tenant.id,
                session_id,
                decision.target.provider,
                decision.target.model,
                decision.reason.value,
            )
            result = await self.runtime.run(request, decision)
        except (Exception, asyncio.CancelledError) as exc:
            if session is not None:
                error_message = str(exc) or type(exc).__name__
                try:
                    # A cancelled caller must still leave a terminal session row
                    await asyncio.shield(self.sessions.fail(session, error_message))
                except Exception:
                    logger.exception("session_fail_write_failed session_id=%s", session.id)
            logger.error(
                "wizard_execution_failed tenant_id=%s wizard_id=%s session_id=%s error=%s",
                tenant.id,
                wizard.id,
                session_id,
                exc,
            )
            self.metrics.record_failed(tenant.id, session_id, type(exc).__name__, str(exc))
            raise

        # =======================================================================
        # Recording
        # =======================================================================
        if session is not None:
            try:
                await self.sessions.complete(
                    session,
                    cost_usd=result.usage.cost_usd,
                    turns=TURNS_PER_RUN,
                    output_text=result.text,
                    external_session_id=result.external_session_id,
                )
                await self.recorder.record_usage(session, result, turns=TURNS_PER_RUN)
            except Exception as exc:
                logger.error(
                    "wizard_recording_failed tenant_id=%s wizard_id=%s session_id=%s "
                    "provider=%s model=%s cost_usd=%.6f error=%s",
                    tenant.id,
                    wizard.id,
                    session_id,
                    result.provider,
                    result.model,
                    result.usage.cost_usd,
                    exc,
                )
                self.metrics.record_failed(tenant.id, session_id, type(exc).__name__, str(exc))
                raise
            await self.memory.save(
                tenant.id,
                selection.prompt,
                result.text,
                user_id=user_id,
                external_user_ref=external_user_ref,
            )

        duration_ms = int((time.perf_counter() - started) * 1000)
        self.metrics.record_completed(tenant.id, session_id, result.usage.cost_usd, duration_ms)
        logger.info(
            "wizard_run_completed tenant_id=%s wizard_id=%s session_id=%s "
            "provider=%s model=%s reason=%s cost_usd=%.6f duration_ms=%d",
            tenant.id,
            wizard.id,
            session_id,
            result.provider,
            result.model,
            decision.reason.value,
            result.usage.cost_usd,
            duration_ms,
        )

        return WizardRunResponse(
            text=result.text,
            wizard_id=wizard.id,
            cost_usd=result.usage.cost_usd,
            turns=TURNS_PER_RUN,
            provider=result.provider,
            model=result.model,
            decision=decision,
            session_id=session_id,
        )

    def _build_request(
        self,
        tenant: TenantConfig,
        wizard: WizardDefinition,
        prompt: str,
        channel: Channel,
        user_id: Optional[str],
        history: Optional[list[WizardMessage]],
        conversation_id: Optional[str],
    ) -> RunRequest:
        preferred_provider = tenant.wizard_provider
        preferred_model = tenant.wizard_model
        if preferred_model and not preferred_provider:
            providers = get_cost_profile(tenant.plan).preferred_providers
            preferred_provider = providers[0] if providers else None

        return RunRequest(
            wizard=wizard,
            context=WizardContext(
                tenant_id=tenant.id,
                user_id=user_id,
                channel=channel,
                conversation_id=conversation_id,
            ),
            prompt=prompt,
            history=list(history or []),
            preferred_provider=preferred_provider,
            preferred_model=preferred_model,
            max_budget_usd=tenant.wizard_budget_usd,
        )

    async def get_usage_summary(self, tenant_id: str) -> dict:
        """
        Month-to-date usage for a tenant against its plan ceiling.

        Raises:
            TenantNotFoundError: If the tenant does not exist.
        """
        tenant = await self.tenants.get(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)

        profile = get_cost_profile(tenant.plan)
        usage = await self.governor.get_monthly_usage(tenant.id)
        return {
            "tenantId": tenant.id,
            "plan": profile.plan,
            "windowStart": usage.window_start.isoformat(),
            "costUsd": round(usage.total_cost_usd, 6),
            "turns": usage.total_turns,
            "sessions": usage.session_count,
            "limitUsd": profile.monthly_budget_usd,
            "remainingUsd": round(max(0.0, profile.monthly_budget_usd - usage.total_cost_usd), 6),
        }
