"""
Model policy resolution for Magic Wizards.

Maps a run request to a (provider, model) target and a reason code.
Pure and deterministic: no I/O, no clock, no randomness.
"""

from typing import Optional

from magicwizards.classifier import KeywordClassifier, PromptClassifier
from magicwizards.schemas import (
    DecisionReason,
    EscalationTrigger,
    ModelTarget,
    ResolvedDecision,
    RunRequest,
)


LONG_CONTEXT_THRESHOLD_CHARS = 9000


def history_length(request: RunRequest) -> int:
    """Total characters across the request's conversation history."""
    return sum(len(message.content) for message in request.history)


class ModelPolicyResolver:
    """
    Resolves the model target for a run.

    The decision order (first match wins):
    1. Explicit provider and model
    2. Provider only
    3. High-risk prompt
    4. Long conversation history
    5. High-complexity prompt
    6. Cheap default

    Steps 4 and 5 escalate only through a declared rule; a wizard without
    a long_context rule falls through to the complexity check.
    """

    def __init__(
        self,
        classifier: Optional[PromptClassifier] = None,
        long_context_threshold: int = LONG_CONTEXT_THRESHOLD_CHARS,
    ):
        self.classifier = classifier or KeywordClassifier()
        self.long_context_threshold = long_context_threshold

    def resolve(self, request: RunRequest) -> ResolvedDecision:
        """
        Resolve the target for a request.

        Args:
            request: The run request.

        Returns:
            ResolvedDecision with target and reason.
        """
        policy = request.wizard.model_policy

        # =======================================================================
        # STEP 1-2: Caller overrides
        # =======================================================================
        if request.preferred_provider and request.preferred_model:
            return ResolvedDecision(
                target=ModelTarget(request.preferred_provider, request.preferred_model),
                reason=DecisionReason.EXPLICIT_OVERRIDE,
            )

        if request.preferred_provider:
            # Keep the model within the chosen provider's tier where the policy allows
            if request.preferred_provider == policy.standard.provider:
                model = policy.standard.model
            else:
                model = policy.cheap.model
            return ResolvedDecision(
                target=ModelTarget(request.preferred_provider, model),
                reason=DecisionReason.PREFERRED_PROVIDER,
            )

        if request.preferred_model:
            return ResolvedDecision(
                target=ModelTarget(policy.standard.provider, request.preferred_model),
                reason=DecisionReason.EXPLICIT_OVERRIDE,
            )

        # =======================================================================
        # STEP 3-5: Escalation triggers, in priority order
        # =======================================================================
        prompt = request.prompt

        if self.classifier.is_high_risk(prompt):
            target = policy.escalation_for(EscalationTrigger.HIGH_RISK)
            if target is not None:
                return ResolvedDecision(target, DecisionReason.HIGH_RISK_ESCALATION)
            return ResolvedDecision(policy.premium, DecisionReason.HIGH_RISK_PREMIUM)

        if history_length(request) > self.long_context_threshold:
            target = policy.escalation_for(EscalationTrigger.LONG_CONTEXT)
            if target is not None:
                return ResolvedDecision(target, DecisionReason.LONG_CONTEXT_ESCALATION)

        if self.classifier.is_high_complexity(prompt):
            target = policy.escalation_for(EscalationTrigger.HIGH_COMPLEXITY)
            if target is not None:
                return ResolvedDecision(target, DecisionReason.HIGH_COMPLEXITY_ESCALATION)
            return ResolvedDecision(policy.standard, DecisionReason.HIGH_COMPLEXITY_STANDARD)

        # =======================================================================
        # STEP 6: Default
        # =======================================================================
        return ResolvedDecision(policy.cheap, DecisionReason.CHEAP_DEFAULT)


_default_resolver: Optional[ModelPolicyResolver] = None


def resolve_model_for_request(request: RunRequest) -> ResolvedDecision:
    """Resolve with the default keyword classifier."""
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = ModelPolicyResolver()
    return _default_resolver.resolve(request)
