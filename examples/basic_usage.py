"""
Basic usage examples for Magic Wizards.

Everything here runs against the sandbox tenant, so no provider keys are needed.
"""

import asyncio

from magicwizards import (
    BudgetExceededError,
    InMemoryStorage,
    ModelPolicyResolver,
    RunRequest,
    TenantConfig,
    UsageEvent,
    WizardContext,
    WizardControlPlane,
    get_wizard,
)


def example_routing():
    """Inspect routing decisions without calling a provider."""
    print("=" * 60)
    print("Example 1: Routing")
    print("=" * 60)

    resolver = ModelPolicyResolver()
    prompts = [
        "Write a short welcome message",
        "Migrate the production database to the new schema",
        "Design the architecture for a multi-region rollout",
    ]
    for prompt in prompts:
        request = RunRequest(
            wizard=get_wizard("builder"),
            context=WizardContext(tenant_id="__mock__"),
            prompt=prompt,
        )
        decision = resolver.resolve(request)
        print(f"{prompt[:45]:45} -> {decision.target.provider}/{decision.target.model} "
              f"({decision.reason.value})")
    print()


async def example_sandbox_run():
    """Run a wizard against the sandbox tenant."""
    print("=" * 60)
    print("Example 2: Sandbox Run")
    print("=" * 60)

    plane = WizardControlPlane()
    response = await plane.run_for_tenant("__mock__", "/wizard ops Check the deploy status")

    print(f"Wizard: {response.wizard_id}")
    print(f"Reply: {response.text}")
    print(f"Cost: ${response.cost_usd:.6f}")
    print()


async def example_budget():
    """A tenant over its monthly ceiling is rejected before any provider call."""
    print("=" * 60)
    print("Example 3: Budget Governance")
    print("=" * 60)

    storage = InMemoryStorage()
    await storage.upsert_tenant(TenantConfig(id="acme", plan="free", status="active"))
    await storage.add_usage_event(UsageEvent("acme", "s-1", 16.0, 4, "openai", "gpt-4.1-mini"))

    plane = WizardControlPlane(storage=storage)
    try:
        await plane.run_for_tenant("acme", "Draft the weekly report")
    except BudgetExceededError as e:
        print(f"Rejected: {e}")

    print(await plane.get_usage_summary("acme"))
    print()


if __name__ == "__main__":
    example_routing()
    asyncio.run(example_sandbox_run())
    asyncio.run(example_budget())
