"""
Cost control for Magic Wizards.

Budget admission happens before any provider call:
- Month-to-date spend is summed from usage events only
- A tenant is rejected once spend strictly exceeds its plan ceiling
- Every completed run appends exactly one usage event
"""

import logging
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Optional

from magicwizards.config import get_cost_profile
from magicwizards.errors import WizardError
from magicwizards.schemas import RunResult, UsageEvent, WizardSession
from magicwizards.storage import StorageBackend


logger = logging.getLogger(__name__)


class BudgetExceededError(WizardError):
    """Raised when a tenant's monthly budget has been exceeded."""
    def __init__(self, tenant_id: str, spent: float, limit: float):
        self.tenant_id = tenant_id
        self.spent = spent
        self.limit = limit
        super().__init__(
            f"Monthly wizard budget exceeded for tenant {tenant_id}: "
            f"${spent:.4f} spent of ${limit:.4f} limit"
        )


@dataclass
class MonthlyUsage:
    """Month-to-date aggregate for one tenant."""
    tenant_id: str
    window_start: datetime
    total_cost_usd: float
    total_turns: int
    session_count: int


@dataclass
class BudgetStatus:
    """Outcome of an admitted budget check."""
    tenant_id: str
    plan: str
    limit_usd: float
    usage: MonthlyUsage

    @property
    def remaining_usd(self) -> float:
        return max(0.0, self.limit_usd - self.usage.total_cost_usd)


def billing_window_start(now: Optional[datetime] = None) -> datetime:
    """First day of the current calendar month, 00:00:00 UTC."""
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    now = now.astimezone(UTC)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class BudgetGovernor:
    """
    Read-only budget admission.

    The check is a full aggregation over the month's usage events, so two
    concurrent runs close to the ceiling can both be admitted. Only a
    reserve-then-settle ledger would close that gap.

    Example:
        ```python
        governor = BudgetGovernor(storage)
        status = await governor.check_budget("tenant-1", "pro")
        print(status.remaining_usd)
        ```
    """

    def __init__(self, storage: StorageBackend):
        self._storage = storage

    async def get_monthly_usage(
        self,
        tenant_id: str,
        now: Optional[datetime] = None,
    ) -> MonthlyUsage:
        window_start = billing_window_start(now)
        events = await self._storage.list_usage_events(tenant_id, since=window_start)
        return MonthlyUsage(
            tenant_id=tenant_id,
            window_start=window_start,
            total_cost_usd=sum(event.cost_usd for event in events),
            total_turns=sum(event.turns for event in events),
            session_count=len({event.session_id for event in events}),
        )

    async def check_budget(
        self,
        tenant_id: str,
        plan: Optional[str],
        now: Optional[datetime] = None,
    ) -> BudgetStatus:
        """
        Check a tenant's month-to-date spend against its plan ceiling.

        Args:
            tenant_id: The tenant to check.
            plan: Plan name; unknown plans use the free profile.
            now: Clock override for tests.

        Returns:
            BudgetStatus for the admitted tenant.

        Raises:
            BudgetExceededError: If spend strictly exceeds the ceiling.
        """
        profile = get_cost_profile(plan)
        usage = await self.get_monthly_usage(tenant_id, now)

        if usage.total_cost_usd > profile.monthly_budget_usd:
            logger.warning(
                "wizard_budget_exceeded tenant_id=%s plan=%s spent=%.6f limit=%.2f",
                tenant_id,
                profile.plan,
                usage.total_cost_usd,
                profile.monthly_budget_usd,
            )
            raise BudgetExceededError(tenant_id, usage.total_cost_usd, profile.monthly_budget_usd)

        return BudgetStatus(
            tenant_id=tenant_id,
            plan=profile.plan,
            limit_usd=profile.monthly_budget_usd,
            usage=usage,
        )


class UsageRecorder:
    """Appends one usage event per completed session."""

    def __init__(self, storage: StorageBackend):
        self._storage = storage

    async def record_usage(
        self,
        session: WizardSession,
        result: RunResult,
        turns: int = 1,
    ) -> Optional[UsageEvent]:
        """
        Record usage for a completed run.

        Returns:
            The stored event, or None if the session already has one.
        """
        event = UsageEvent(
            tenant_id=session.tenant_id,
            session_id=session.id,
            cost_usd=result.usage.cost_usd,
            turns=turns,
            provider=result.provider,
            model=result.model,
        )
        if not await self._storage.add_usage_event(event):
            logger.info("usage_already_recorded session_id=%s", session.id)
            return None
        return event
