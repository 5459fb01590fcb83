"""Tests for model policy resolution."""

from dataclasses import replace

import pytest

from magicwizards.definitions import (
    BUILDER_WIZARD,
    CHEAP_TARGET,
    PREMIUM_TARGET,
    STANDARD_TARGET,
    get_wizard,
)
from magicwizards.policy import (
    LONG_CONTEXT_THRESHOLD_CHARS,
    ModelPolicyResolver,
    history_length,
    resolve_model_for_request,
)
from magicwizards.schemas import (
    DecisionReason,
    EscalationRule,
    EscalationTrigger,
    ModelPolicy,
    ModelTarget,
    Role,
    RunRequest,
    WizardContext,
    WizardMessage,
)


BARE_POLICY = ModelPolicy(cheap=CHEAP_TARGET, standard=STANDARD_TARGET, premium=PREMIUM_TARGET)
BARE_WIZARD = replace(BUILDER_WIZARD, id="bare", model_policy=BARE_POLICY)


def make_request(prompt="Say hello in one sentence.", wizard=BUILDER_WIZARD, history=None, **kwargs):
    return RunRequest(
        wizard=wizard,
        context=WizardContext(tenant_id="tenant-1"),
        prompt=prompt,
        history=history or [],
        **kwargs,
    )


def long_history(chars):
    return [WizardMessage(role=Role.USER, content="x" * chars)]


class TestCallerOverrides:
    """Test explicit provider/model overrides."""

    @pytest.mark.parametrize("prompt", [
        "Say hello",
        "We need to delete the production database",
        "Compare the architecture trade-off for the migration",
        "",
    ])
    def test_explicit_pair_wins_regardless_of_prompt(self, prompt):
        """Both provider and model are used verbatim."""
        request = make_request(
            prompt,
            history=long_history(20_000),
            preferred_provider="google",
            preferred_model="gemini-2.0-flash",
        )

        decision = ModelPolicyResolver().resolve(request)

        assert decision.target == ModelTarget("google", "gemini-2.0-flash")
        assert decision.reason == DecisionReason.EXPLICIT_OVERRIDE

    def test_provider_matching_standard_uses_standard_model(self):
        """The standard provider gets the standard model."""
        request = make_request(preferred_provider="anthropic")

        decision = ModelPolicyResolver().resolve(request)

        assert decision.target == ModelTarget("anthropic", STANDARD_TARGET.model)
        assert decision.reason == DecisionReason.PREFERRED_PROVIDER

    def test_other_provider_uses_cheap_model(self):
        """Any other provider gets the cheap model."""
        request = make_request(
            "We need to delete the production database",
            preferred_provider="openai",
        )

        decision = ModelPolicyResolver().resolve(request)

        assert decision.target == ModelTarget("openai", CHEAP_TARGET.model)
        assert decision.reason == DecisionReason.PREFERRED_PROVIDER

    def test_model_only_uses_standard_provider(self):
        """A model without a provider is served by the standard provider."""
        request = make_request(preferred_model="claude-3-5-haiku-latest")

        decision = ModelPolicyResolver().resolve(request)

        assert decision.target == ModelTarget("anthropic", "claude-3-5-haiku-latest")
        assert decision.reason == DecisionReason.EXPLICIT_OVERRIDE


class TestEscalation:
    """Test risk, long-context and complexity escalation."""

    @pytest.mark.parametrize("prompt", [
        "We need to delete the production database",
        "Update BILLING details",
        "Review the RBAC setup",
        "Who has access control here?",
        "grant permission to the intern",
    ])
    def test_high_risk_never_cheap(self, prompt):
        """High-risk prompts are never routed to the cheap target."""
        for wizard in (BUILDER_WIZARD, BARE_WIZARD):
            decision = ModelPolicyResolver().resolve(make_request(prompt, wizard=wizard))
            assert decision.target != wizard.model_policy.cheap

    def test_high_risk_uses_declared_rule(self):
        """A declared high_risk rule is used."""
        decision = ModelPolicyResolver().resolve(
            make_request("We need to delete the production database")
        )

        assert decision.target == PREMIUM_TARGET
        assert decision.reason == DecisionReason.HIGH_RISK_ESCALATION

    def test_high_risk_without_rule_uses_premium(self):
        """Without a rule, high risk goes to the premium target."""
        decision = ModelPolicyResolver().resolve(
            make_request("We need to delete the production database", wizard=BARE_WIZARD)
        )

        assert decision.target == PREMIUM_TARGET
        assert decision.reason == DecisionReason.HIGH_RISK_PREMIUM

    def test_risk_beats_long_context_and_complexity(self):
        """Risk is checked before the other triggers."""
        custom_target = ModelTarget("google", "gemini-2.5-pro")
        policy = replace(
            BARE_POLICY,
            escalation=(
                EscalationRule(EscalationTrigger.LONG_CONTEXT, custom_target),
                EscalationRule(EscalationTrigger.HIGH_COMPLEXITY, custom_target),
            ),
        )
        wizard = replace(BUILDER_WIZARD, model_policy=policy)
        request = make_request(
            "Refactor the security policy before production",
            wizard=wizard,
            history=long_history(10_000),
        )

        decision = ModelPolicyResolver().resolve(request)

        assert decision.reason == DecisionReason.HIGH_RISK_PREMIUM

    def test_long_context_uses_declared_rule(self):
        """History longer than the threshold escalates."""
        request = make_request(history=long_history(LONG_CONTEXT_THRESHOLD_CHARS + 1))

        decision = ModelPolicyResolver().resolve(request)

        assert decision.target == STANDARD_TARGET
        assert decision.reason == DecisionReason.LONG_CONTEXT_ESCALATION

    def test_history_at_threshold_is_not_long(self):
        """Exactly the threshold is not long context."""
        request = make_request(history=long_history(LONG_CONTEXT_THRESHOLD_CHARS))

        decision = ModelPolicyResolver().resolve(request)

        assert decision.reason == DecisionReason.CHEAP_DEFAULT

    def test_history_length_sums_all_messages(self):
        """History length counts every message."""
        request = make_request(history=[
            WizardMessage(Role.USER, "abc"),
            WizardMessage(Role.ASSISTANT, "defgh"),
        ])
        assert history_length(request) == 8

    def test_long_context_without_rule_falls_through(self):
        """A missing long_context rule falls through to the next checks."""
        plain = make_request(wizard=BARE_WIZARD, history=long_history(20_000))
        complex_prompt = make_request(
            "Compare both approaches", wizard=BARE_WIZARD, history=long_history(20_000)
        )

        assert ModelPolicyResolver().resolve(plain).reason == DecisionReason.CHEAP_DEFAULT
        assert (
            ModelPolicyResolver().resolve(complex_prompt).reason
            == DecisionReason.HIGH_COMPLEXITY_STANDARD
        )

    def test_complexity_uses_declared_rule(self):
        """Complexity keywords escalate via the rule."""
        decision = ModelPolicyResolver().resolve(
            make_request("Plan the migration to the new architecture")
        )

        assert decision.target == STANDARD_TARGET
        assert decision.reason == DecisionReason.HIGH_COMPLEXITY_ESCALATION

    def test_complexity_without_rule_uses_standard(self):
        """Without a rule, complexity goes to the standard target."""
        decision = ModelPolicyResolver().resolve(
            make_request("Optimize this query", wizard=BARE_WIZARD)
        )

        assert decision.target == STANDARD_TARGET
        assert decision.reason == DecisionReason.HIGH_COMPLEXITY_STANDARD


class TestDefaults:
    """Test the cheap default and resolver wiring."""

    @pytest.mark.parametrize("prompt", ["Say hello in one sentence.", "", "What time is it?"])
    def test_plain_prompt_is_cheap(self, prompt):
        """Short history and no keywords resolve to the cheap target."""
        decision = ModelPolicyResolver().resolve(make_request(prompt, history=long_history(100)))

        assert decision.target == CHEAP_TARGET
        assert decision.reason == DecisionReason.CHEAP_DEFAULT

    def test_resolution_is_deterministic(self):
        """The same request always resolves the same way."""
        resolver = ModelPolicyResolver()
        request = make_request("Review the architecture", wizard=get_wizard("research"))

        decisions = {resolver.resolve(request) for _ in range(5)}

        assert len(decisions) == 1

    def test_custom_classifier_is_used(self):
        """A pluggable classifier replaces the keyword scan."""

        class AlwaysRisky:
            def is_high_risk(self, text):
                return True

            def is_high_complexity(self, text):
                return False

        decision = ModelPolicyResolver(classifier=AlwaysRisky()).resolve(make_request("hi"))

        assert decision.reason == DecisionReason.HIGH_RISK_ESCALATION

    def test_module_level_resolver(self):
        """resolve_model_for_request uses the default classifier."""
        decision = resolve_model_for_request(make_request("Drop billing tables"))
        assert decision.reason == DecisionReason.HIGH_RISK_ESCALATION
