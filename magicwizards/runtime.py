"""
Wizard runtime: model policy resolution plus adapter dispatch.

Holds no per-run state. The adapter registry is built once and only read
afterwards, so one runtime can serve any number of concurrent runs.
"""

from typing import Optional

from magicwizards.adapters import AdapterRegistry, default_adapters
from magicwizards.policy import ModelPolicyResolver
from magicwizards.schemas import ResolvedDecision, RunRequest, RunResult


class WizardRuntime:
    """
    Executes one run request against the resolved provider.

    Example:
        ```python
        runtime = WizardRuntime(AdapterRegistry([MockAdapter()]))
        decision = runtime.resolve(request)
        result = await runtime.run(request, decision)
        ```
    """

    def __init__(
        self,
        registry: Optional[AdapterRegistry] = None,
        resolver: Optional[ModelPolicyResolver] = None,
    ):
        self.registry = registry if registry is not None else AdapterRegistry(default_adapters())
        self.resolver = resolver or ModelPolicyResolver()

    def resolve(self, request: RunRequest) -> ResolvedDecision:
        """Pick the model target without calling anything."""
        return self.resolver.resolve(request)

    async def run(
        self,
        request: RunRequest,
        decision: Optional[ResolvedDecision] = None,
    ) -> RunResult:
        """
        Dispatch a request to the adapter for its resolved provider.

        Raises:
            UnregisteredProviderError: If no adapter serves the provider.
            ProviderError: On credential or provider-call failure.
        """
        decision = decision or self.resolve(request)
        adapter = self.registry.require(decision.target.provider, decision.reason.value)
        return await adapter.run(request, decision.target)
