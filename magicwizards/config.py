"""Global configuration for Magic Wizards."""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from magicwizards.errors import WizardError
from magicwizards.schemas import TenantCostProfile


class ConfigurationError(WizardError):
    """Raised when required configuration is missing or malformed."""
    pass


# USD per 1M tokens
DEFAULT_PRICING: Dict[str, Dict[str, float]] = {
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
    "gpt-4.1": {"input": 2.00, "output": 8.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "claude-3-5-haiku-latest": {"input": 0.80, "output": 4.00},
    "claude-sonnet-4-0": {"input": 3.00, "output": 15.00},
    "claude-opus-4-1": {"input": 15.00, "output": 75.00},
    "gemini-2.0-flash": {"input": 0.10, "output": 0.40},
    "gemini-2.5-pro": {"input": 1.25, "output": 10.00},
}

# Unpriced models are billed at standard-tier rates
FALLBACK_RATES: Dict[str, float] = {"input": 3.00, "output": 15.00}

DEFAULT_COST_PROFILES: Dict[str, Dict[str, Any]] = {
    "free": {
        "monthly_budget_usd": 15.0,
        "preferred_providers": ["openai", "google", "mock"],
        "allow_premium_escalation": False,
    },
    "pro": {
        "monthly_budget_usd": 150.0,
        "preferred_providers": ["anthropic", "openai", "google", "mock"],
        "allow_premium_escalation": True,
    },
    "enterprise": {
        "monthly_budget_usd": 1000.0,
        "preferred_providers": ["anthropic", "openai", "google", "mistral", "mock"],
        "allow_premium_escalation": True,
    },
}

FALLBACK_PLAN = "free"

DEFAULT_HIGH_RISK_KEYWORDS: List[str] = [
    "delete",
    "billing",
    "production",
    "security",
    "rbac",
    "rls",
    "access control",
    "permission",
]

DEFAULT_COMPLEXITY_KEYWORDS: List[str] = [
    "analyze",
    "architecture",
    "refactor",
    "security",
    "compliance",
    "compare",
    "tradeoff",
    "trade-off",
    "optimize",
    "optimization",
    "multi-tenant",
    "migration",
    "policy",
]

_pricing: Dict[str, Dict[str, float]] = copy.deepcopy(DEFAULT_PRICING)
_cost_profiles: Dict[str, Dict[str, Any]] = copy.deepcopy(DEFAULT_COST_PROFILES)


def _parse_json_env(var_name: str) -> Any:
    value = os.getenv(var_name)
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


def get_pricing() -> Dict[str, Dict[str, float]]:
    """Return pricing configuration, with optional env override."""
    parsed = _parse_json_env("MAGIC_WIZARDS_PRICING_JSON")
    if isinstance(parsed, dict) and parsed:
        return parsed
    return _pricing


def set_pricing(pricing: Dict[str, Dict[str, float]]) -> None:
    """Set pricing at runtime."""
    if not isinstance(pricing, dict) or not pricing:
        raise ValueError("pricing must be a non-empty dict")
    for model, rates in pricing.items():
        if not isinstance(rates, dict) or "input" not in rates or "output" not in rates:
            raise ValueError(f"pricing for {model} must include 'input' and 'output'")
    global _pricing
    _pricing = copy.deepcopy(pricing)


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Cost in USD of a call from its token usage."""
    rates = get_pricing().get(model, FALLBACK_RATES)
    input_cost = (input_tokens / 1_000_000) * rates["input"]
    output_cost = (output_tokens / 1_000_000) * rates["output"]
    return round(input_cost + output_cost, 6)


def _cost_profile_table() -> Dict[str, Dict[str, Any]]:
    parsed = _parse_json_env("MAGIC_WIZARDS_COST_PROFILES_JSON")
    if isinstance(parsed, dict) and parsed:
        return parsed
    return _cost_profiles


def _to_profile(plan: str, raw: Dict[str, Any]) -> TenantCostProfile:
    return TenantCostProfile(
        plan=plan,
        monthly_budget_usd=float(raw.get("monthly_budget_usd", 0.0)),
        preferred_providers=tuple(raw.get("preferred_providers", ())),
        allow_premium_escalation=bool(raw.get("allow_premium_escalation", False)),
    )


def get_cost_profile(plan: Optional[str]) -> TenantCostProfile:
    """
    Look up the cost profile for a plan.

    Unknown or empty plan names get the free profile. Never raises.
    """
    table = _cost_profile_table()
    if plan and plan in table:
        return _to_profile(plan, table[plan])
    fallback = table.get(FALLBACK_PLAN) or DEFAULT_COST_PROFILES[FALLBACK_PLAN]
    return _to_profile(FALLBACK_PLAN, fallback)


def set_cost_profiles(profiles: Dict[str, Dict[str, Any]]) -> None:
    """Replace the cost profile table at runtime."""
    if not isinstance(profiles, dict) or not profiles:
        raise ValueError("profiles must be a non-empty dict")
    for plan, raw in profiles.items():
        if not isinstance(raw, dict) or "monthly_budget_usd" not in raw:
            raise ValueError(f"profile for {plan} must include 'monthly_budget_usd'")
    global _cost_profiles
    _cost_profiles = copy.deepcopy(profiles)


def reset_defaults() -> None:
    """Restore built-in pricing and cost profiles."""
    global _pricing, _cost_profiles
    _pricing = copy.deepcopy(DEFAULT_PRICING)
    _cost_profiles = copy.deepcopy(DEFAULT_COST_PROFILES)


def get_high_risk_keywords() -> List[str]:
    parsed = _parse_json_env("MAGIC_WIZARDS_HIGH_RISK_KEYWORDS_JSON")
    if isinstance(parsed, list) and parsed:
        return [str(word) for word in parsed]
    return list(DEFAULT_HIGH_RISK_KEYWORDS)


def get_complexity_keywords() -> List[str]:
    parsed = _parse_json_env("MAGIC_WIZARDS_COMPLEXITY_KEYWORDS_JSON")
    if isinstance(parsed, list) and parsed:
        return [str(word) for word in parsed]
    return list(DEFAULT_COMPLEXITY_KEYWORDS)


@dataclass(frozen=True)
class Settings:
    """Process-level settings for the API server and channel adapters."""

    env: str = "development"
    host: str = "0.0.0.0"
    port: int = 8787
    db_path: str = "wizards.db"
    telegram_bot_token: str = ""
    telegram_webhook_secret: str = ""
    default_wizard_id: str = "builder"
    api_key: str = ""
    log_level: str = "INFO"

    @property
    def is_development(self) -> bool:
        return self.env == "development"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        source = os.environ if env is None else env
        port_raw = source.get("WIZARDS_API_PORT") or source.get("PORT") or "8787"
        try:
            port = int(port_raw)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid port: {port_raw!r}") from exc
        return cls(
            env=source.get("MAGIC_WIZARDS_ENV", "development"),
            host=source.get("HOST", "0.0.0.0"),
            port=port,
            db_path=source.get("MAGIC_WIZARDS_DB_PATH", "wizards.db"),
            telegram_bot_token=source.get("MAGIC_WIZARDS_TELEGRAM_BOT_TOKEN", ""),
            telegram_webhook_secret=source.get("MAGIC_WIZARDS_TELEGRAM_WEBHOOK_SECRET", ""),
            default_wizard_id=source.get("MAGIC_WIZARDS_DEFAULT_WIZARD_ID", "builder"),
            api_key=source.get("MAGIC_WIZARDS_API_KEY", ""),
            log_level=source.get("MAGIC_WIZARDS_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Fail fast on settings a non-development deployment cannot run without."""
        if not self.is_development and not self.telegram_bot_token:
            raise ConfigurationError(
                "Missing required environment variable: MAGIC_WIZARDS_TELEGRAM_BOT_TOKEN"
            )
