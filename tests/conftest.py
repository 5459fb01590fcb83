"""Shared test setup."""

import pytest

from magicwizards.config import reset_defaults


_ENV_OVERRIDES = (
    "MAGIC_WIZARDS_PRICING_JSON",
    "MAGIC_WIZARDS_COST_PROFILES_JSON",
    "MAGIC_WIZARDS_HIGH_RISK_KEYWORDS_JSON",
    "MAGIC_WIZARDS_COMPLEXITY_KEYWORDS_JSON",
)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Every test starts from built-in pricing, profiles and keywords."""
    for name in _ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    reset_defaults()
    yield
    reset_defaults()
