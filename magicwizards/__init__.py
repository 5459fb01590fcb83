"""
Magic Wizards - cost-governed wizard runtime for multi-tenant apps.

Simple usage:
    import asyncio
    from magicwizards import WizardControlPlane

    plane = WizardControlPlane()
    response = asyncio.run(plane.run_for_tenant("__mock__", "Say hello in one sentence."))
    print(response.text)      # "[MOCK:mock-model] Builder Wizard received: ..."
    print(response.cost_usd)  # 0.0

Routing only (no provider call):
    from magicwizards import resolve_model_for_request, RunRequest, WizardContext, get_wizard

    request = RunRequest(
        wizard=get_wizard("ops"),
        context=WizardContext(tenant_id="tenant-1"),
        prompt="We need to delete the production database",
    )
    decision = resolve_model_for_request(request)
    print(decision.reason)    # high_risk_escalation

Persistence:
    from magicwizards import WizardControlPlane, SQLiteStorage

    plane = WizardControlPlane(storage=SQLiteStorage("wizards.db"))
"""

from magicwizards.errors import WizardError
from magicwizards.schemas import (
    Channel,
    DecisionReason,
    ModelPolicy,
    ModelTarget,
    ResolvedDecision,
    RunRequest,
    RunResult,
    TenantConfig,
    TenantIdentity,
    UsageEvent,
    WizardContext,
    WizardDefinition,
    WizardMessage,
)
from magicwizards.config import get_cost_profile, get_pricing, set_pricing, set_cost_profiles
from magicwizards.definitions import get_wizard, pick_wizard, list_wizards, UnknownWizardError
from magicwizards.policy import ModelPolicyResolver, resolve_model_for_request
from magicwizards.adapters import (
    AdapterRegistry,
    MockAdapter,
    ProviderError,
    UnregisteredProviderError,
    MissingCredentialsError,
    ProviderCallError,
)
from magicwizards.validation import ValidationError, SANDBOX_TENANT_ID
from magicwizards.cost_control import BudgetExceededError, BudgetGovernor
from magicwizards.tenants import TenantNotFoundError, TenantInactiveError
from magicwizards.storage import InMemoryStorage, SQLiteStorage
from magicwizards.runtime import WizardRuntime
from magicwizards.control_plane import WizardControlPlane, WizardRunResponse


__version__ = "0.1.0"
__all__ = [
    # Entry points
    "WizardControlPlane",
    "WizardRunResponse",
    "WizardRuntime",
    # Catalog and routing
    "get_wizard",
    "pick_wizard",
    "list_wizards",
    "ModelPolicyResolver",
    "resolve_model_for_request",
    "AdapterRegistry",
    "MockAdapter",
    # Types
    "Channel",
    "DecisionReason",
    "ModelPolicy",
    "ModelTarget",
    "ResolvedDecision",
    "RunRequest",
    "RunResult",
    "TenantConfig",
    "TenantIdentity",
    "UsageEvent",
    "WizardContext",
    "WizardDefinition",
    "WizardMessage",
    # Configuration
    "get_cost_profile",
    "get_pricing",
    "set_pricing",
    "set_cost_profiles",
    "SANDBOX_TENANT_ID",
    # Cost control and storage
    "BudgetGovernor",
    "InMemoryStorage",
    "SQLiteStorage",
    # Errors
    "WizardError",
    "ValidationError",
    "UnknownWizardError",
    "ProviderError",
    "UnregisteredProviderError",
    "MissingCredentialsError",
    "ProviderCallError",
    "BudgetExceededError",
    "TenantNotFoundError",
    "TenantInactiveError",
]
