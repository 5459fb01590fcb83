"""
Wizard definitions for Magic Wizards.

Each wizard is a named task profile: instructions, tool allow-list,
turn/budget ceilings and a model policy.
"""

from typing import Optional

from magicwizards.errors import WizardError
from magicwizards.schemas import (
    EscalationRule,
    EscalationTrigger,
    ModelPolicy,
    ModelTarget,
    Provider,
    WizardDefinition,
)


class UnknownWizardError(WizardError):
    """Raised when a wizard id is not in the catalog."""
    pass


CHEAP_TARGET = ModelTarget(provider=Provider.OPENAI.value, model="gpt-4.1-mini")
STANDARD_TARGET = ModelTarget(provider=Provider.ANTHROPIC.value, model="claude-sonnet-4-0")
PREMIUM_TARGET = ModelTarget(provider=Provider.ANTHROPIC.value, model="claude-opus-4-1")

SHARED_ESCALATION: tuple[EscalationRule, ...] = (
    EscalationRule(when=EscalationTrigger.HIGH_COMPLEXITY, target=STANDARD_TARGET),
    EscalationRule(when=EscalationTrigger.LONG_CONTEXT, target=STANDARD_TARGET),
    EscalationRule(when=EscalationTrigger.HIGH_RISK, target=PREMIUM_TARGET),
)

SHARED_POLICY = ModelPolicy(
    cheap=CHEAP_TARGET,
    standard=STANDARD_TARGET,
    premium=PREMIUM_TARGET,
    escalation=SHARED_ESCALATION,
)


# =============================================================================
# DEFAULT WIZARDS
# =============================================================================

RESEARCH_WIZARD = WizardDefinition(
    id="research",
    name="Research Wizard",
    description="Deep research with citations and explicit uncertainty handling.",
    system_prompt=(
        "You are Research Wizard. Search broadly, compare sources, cite clearly, "
        "and flag uncertainty."
    ),
    allowed_tools=("web-search", "browser", "fetch"),
    max_turns=16,
    max_budget_usd=1.25,
    model_policy=SHARED_POLICY,
)

BUILDER_WIZARD = WizardDefinition(
    id="builder",
    name="Builder Wizard",
    description=(
        "Implementation-focused wizard for backend and frontend changes with safe defaults."
    ),
    system_prompt=(
        "You are Builder Wizard. Ship clean, secure, testable changes, especially "
        "for multi-tenant systems."
    ),
    allowed_tools=("code-edit", "tests", "terminal", "docs"),
    max_turns=14,
    max_budget_usd=1.0,
    model_policy=SHARED_POLICY,
)

OPS_WIZARD = WizardDefinition(
    id="ops",
    name="Ops Wizard",
    description=(
        "Infrastructure and reliability wizard with emphasis on rollback-safe automation."
    ),
    system_prompt=(
        "You are Ops Wizard. Prioritize reliability, observability, and low-risk "
        "operational workflows."
    ),
    allowed_tools=("terminal", "cloud", "metrics", "alerts"),
    max_turns=12,
    max_budget_usd=0.9,
    model_policy=SHARED_POLICY,
)

SALES_WIZARD = WizardDefinition(
    id="sales",
    name="Sales Wizard",
    description=(
        "Sales and GTM wizard for crisp messaging, qualification, and outreach strategy."
    ),
    system_prompt=(
        "You are Sales Wizard. Be concise, clear, and outcome-focused. Keep messaging "
        "practical and measurable."
    ),
    allowed_tools=("crm", "email", "calendar", "docs"),
    max_turns=10,
    max_budget_usd=0.65,
    model_policy=SHARED_POLICY,
)

DEFAULT_WIZARDS: dict[str, WizardDefinition] = {
    wizard.id: wizard
    for wizard in (RESEARCH_WIZARD, BUILDER_WIZARD, OPS_WIZARD, SALES_WIZARD)
}

DEFAULT_WIZARD_ID = BUILDER_WIZARD.id


def get_wizard(
    wizard_id: str,
    wizards: Optional[dict[str, WizardDefinition]] = None,
) -> WizardDefinition:
    """Get a wizard by id, raising if it is not defined."""
    catalog = wizards if wizards is not None else DEFAULT_WIZARDS
    wizard = catalog.get(wizard_id)
    if wizard is None:
        raise UnknownWizardError(f"Wizard \"{wizard_id}\" is not defined.")
    return wizard


def pick_wizard(
    wizard_id: Optional[str],
    wizards: Optional[dict[str, WizardDefinition]] = None,
    default_wizard_id: str = DEFAULT_WIZARD_ID,
) -> WizardDefinition:
    """Get a wizard by id, falling back to the default wizard, then the builder."""
    catalog = wizards if wizards is not None else DEFAULT_WIZARDS
    if wizard_id and wizard_id in catalog:
        return catalog[wizard_id]
    return catalog.get(default_wizard_id) or catalog.get(DEFAULT_WIZARD_ID, BUILDER_WIZARD)


def list_wizards(wizards: Optional[dict[str, WizardDefinition]] = None) -> list[WizardDefinition]:
    """Return all wizards in catalog order."""
    catalog = wizards if wizards is not None else DEFAULT_WIZARDS
    return list(catalog.values())
