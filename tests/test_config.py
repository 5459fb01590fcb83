"""Tests for configuration."""

import pytest

from magicwizards.config import (
    ConfigurationError,
    Settings,
    calculate_cost,
    get_cost_profile,
    get_pricing,
    set_cost_profiles,
    set_pricing,
)


class TestCostProfiles:
    """Test plan cost profiles."""

    def test_known_plans(self):
        """Built-in plans carry their ceilings."""
        assert get_cost_profile("free").monthly_budget_usd == 15.0
        assert get_cost_profile("pro").monthly_budget_usd == 150.0
        assert get_cost_profile("enterprise").monthly_budget_usd == 1000.0

    def test_unknown_plan_falls_back_to_free(self):
        """Unknown or missing plan names never raise."""
        for plan in ("starter", "", None):
            profile = get_cost_profile(plan)
            assert profile.plan == "free"
            assert profile.allow_premium_escalation is False

    def test_preferred_providers_order(self):
        """Preferred providers keep their declared order."""
        assert get_cost_profile("pro").preferred_providers[0] == "anthropic"
        assert get_cost_profile("free").preferred_providers[0] == "openai"

    def test_set_cost_profiles(self):
        """Profiles can be replaced at runtime."""
        set_cost_profiles({"free": {"monthly_budget_usd": 1.0}})
        assert get_cost_profile("anything").monthly_budget_usd == 1.0

    def test_set_cost_profiles_validates(self):
        """A profile without a ceiling is rejected."""
        with pytest.raises(ValueError):
            set_cost_profiles({"free": {"preferred_providers": []}})

    def test_env_override(self, monkeypatch):
        """Profiles can come from the environment."""
        monkeypatch.setenv(
            "MAGIC_WIZARDS_COST_PROFILES_JSON",
            '{"team": {"monthly_budget_usd": 42, "preferred_providers": ["google"]}}',
        )
        profile = get_cost_profile("team")
        assert profile.monthly_budget_usd == 42.0
        assert profile.preferred_providers == ("google",)


class TestPricing:
    """Test pricing and cost calculation."""

    def test_calculate_cost_known_model(self):
        """Cost follows the per-million rates."""
        assert calculate_cost("gpt-4.1-mini", 1_000_000, 1_000_000) == pytest.approx(2.0)

    def test_calculate_cost_unknown_model_uses_fallback(self):
        """Unpriced models use the standard-tier fallback."""
        assert calculate_cost("mystery-model", 1000, 1000) == pytest.approx(0.018)

    def test_set_pricing(self):
        """Pricing can be replaced at runtime."""
        set_pricing({"tiny": {"input": 1.0, "output": 1.0}})
        assert "tiny" in get_pricing()
        assert calculate_cost("tiny", 1_000_000, 0) == pytest.approx(1.0)

    def test_set_pricing_validates(self):
        """Rates must include input and output."""
        with pytest.raises(ValueError):
            set_pricing({"tiny": {"input": 1.0}})
        with pytest.raises(ValueError):
            set_pricing({})


class TestSettings:
    """Test process settings."""

    def test_defaults(self):
        """An empty environment gives development defaults."""
        settings = Settings.from_env({})

        assert settings.is_development
        assert settings.port == 8787
        assert settings.default_wizard_id == "builder"
        settings.validate()

    def test_port_precedence(self):
        """WIZARDS_API_PORT wins over PORT."""
        assert Settings.from_env({"PORT": "9000"}).port == 9000
        assert Settings.from_env({"PORT": "9000", "WIZARDS_API_PORT": "9100"}).port == 9100

    def test_invalid_port(self):
        """A non-numeric port is a configuration error."""
        with pytest.raises(ConfigurationError):
            Settings.from_env({"PORT": "eighty"})

    def test_production_requires_bot_token(self):
        """Outside development the Telegram bot token is required."""
        settings = Settings.from_env({"MAGIC_WIZARDS_ENV": "production"})
        with pytest.raises(ConfigurationError, match="MAGIC_WIZARDS_TELEGRAM_BOT_TOKEN"):
            settings.validate()

        Settings.from_env({
            "MAGIC_WIZARDS_ENV": "production",
            "MAGIC_WIZARDS_TELEGRAM_BOT_TOKEN": "123:abc",
        }).validate()
