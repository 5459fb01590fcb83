"""
Data schemas for Magic Wizards.

All catalog, request, decision, result and persisted-row structures.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Optional
import uuid


class Provider(str, Enum):
    """External model vendors a run can be routed to."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    MISTRAL = "mistral"
    TOGETHER = "together"
    FIREWORKS = "fireworks"
    GROQ = "groq"
    OLLAMA = "ollama"
    MOCK = "mock"


class Role(str, Enum):
    """Conversation roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Channel(str, Enum):
    """Ingestion path of a run."""
    TELEGRAM = "telegram"
    MOBILE = "mobile"
    API = "api"


class EscalationTrigger(str, Enum):
    """Conditions that can override the default model choice."""
    HIGH_COMPLEXITY = "high_complexity"
    LONG_CONTEXT = "long_context"
    HIGH_RISK = "high_risk"


class DecisionReason(str, Enum):
    """Why the resolver picked a target."""
    EXPLICIT_OVERRIDE = "explicit_override"
    PREFERRED_PROVIDER = "preferred_provider"
    HIGH_RISK_ESCALATION = "high_risk_escalation"
    HIGH_RISK_PREMIUM = "high_risk_premium"
    LONG_CONTEXT_ESCALATION = "long_context_escalation"
    HIGH_COMPLEXITY_ESCALATION = "high_complexity_escalation"
    HIGH_COMPLEXITY_STANDARD = "high_complexity_standard"
    CHEAP_DEFAULT = "cheap_default"


class SessionStatus(str, Enum):
    """Lifecycle states of a wizard session."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.RUNNING


@dataclass(frozen=True)
class WizardMessage:
    """One prior turn of conversation history."""
    role: Role
    content: str


@dataclass(frozen=True)
class ModelTarget:
    """A (provider, model) pair chosen for one run."""
    provider: str
    model: str


@dataclass(frozen=True)
class EscalationRule:
    """Overrides the default target when its trigger fires."""
    when: EscalationTrigger
    target: ModelTarget


@dataclass(frozen=True)
class ModelPolicy:
    """
    Tiered model targets for a wizard.

    The escalation tuple is looked up by trigger; the order of the tuple
    itself does not matter because the resolver checks triggers in a fixed
    priority.
    """
    cheap: ModelTarget
    standard: ModelTarget
    premium: ModelTarget
    escalation: tuple[EscalationRule, ...] = ()

    def escalation_for(self, trigger: EscalationTrigger) -> Optional[ModelTarget]:
        """Return the declared target for a trigger, if any."""
        for rule in self.escalation:
            if rule.when == trigger:
                return rule.target
        return None


@dataclass(frozen=True)
class WizardDefinition:
    """
    Immutable catalog entry for a wizard.

    Built once from static configuration at import time.
    """
    id: str
    name: str
    description: str
    system_prompt: str
    allowed_tools: tuple[str, ...]
    max_turns: int
    max_budget_usd: float
    model_policy: ModelPolicy


@dataclass
class WizardContext:
    """Who a run is on behalf of and where it came from."""
    tenant_id: str
    user_id: Optional[str] = None
    channel: Channel = Channel.API
    conversation_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RunRequest:
    """
    One invocation of a wizard.

    Created per call and discarded afterwards.
    """
    wizard: WizardDefinition
    context: WizardContext
    prompt: str
    history: list[WizardMessage] = field(default_factory=list)
    preferred_provider: Optional[str] = None
    preferred_model: Optional[str] = None
    max_budget_usd: Optional[float] = None
    max_turns: Optional[int] = None

    @property
    def effective_max_turns(self) -> int:
        return self.max_turns if self.max_turns is not None else self.wizard.max_turns

    @property
    def effective_max_budget_usd(self) -> float:
        if self.max_budget_usd is not None:
            return self.max_budget_usd
        return self.wizard.max_budget_usd


@dataclass(frozen=True)
class ResolvedDecision:
    """Output of model policy resolution."""
    target: ModelTarget
    reason: DecisionReason


@dataclass
class RunUsage:
    """Cost and optional token counts for one run."""
    cost_usd: float = 0.0
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


@dataclass
class RunResult:
    """Normalized adapter output, regardless of which provider served it."""
    text: str
    provider: str
    model: str
    usage: RunUsage = field(default_factory=RunUsage)
    external_session_id: Optional[str] = None
    raw: Any = None  # Opaque provider payload, diagnostics only


@dataclass
class WizardSession:
    """Persisted record of one run's lifecycle."""
    tenant_id: str
    wizard_id: str
    channel: Channel
    user_id: Optional[str] = None
    external_session_id: Optional[str] = None
    status: SessionStatus = SessionStatus.RUNNING
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ended_at: Optional[datetime] = None
    total_cost_usd: float = 0.0
    turn_count: int = 0
    output_excerpt: Optional[str] = None
    error_message: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class UsageEvent:
    """Append-only cost fact for one completed run."""
    tenant_id: str
    session_id: str
    cost_usd: float
    turns: int
    provider: str
    model: str
    recorded_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class TenantCostProfile:
    """Per-plan budget ceiling and provider preferences."""
    plan: str
    monthly_budget_usd: float
    preferred_providers: tuple[str, ...]
    allow_premium_escalation: bool


@dataclass
class TenantConfig:
    """Tenant row as the runtime sees it."""
    id: str
    plan: str
    status: str
    wizard_provider: Optional[str] = None
    wizard_model: Optional[str] = None
    wizard_budget_usd: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass
class TenantIdentity:
    """Link from an external channel identity to a tenant and user."""
    tenant_id: str
    channel: Channel
    external_chat_id: str
    external_user_id: Optional[str] = None
    user_id: Optional[str] = None
    is_active: bool = True
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class MemoryEntry:
    """A short textual fact remembered about a user."""
    tenant_id: str
    content: str
    user_id: Optional[str] = None
    external_user_ref: Optional[str] = None
    importance_score: float = 1.0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
