from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from solveur.core.errors import QuotaExceeded
from solveur.domain.plans import METRIC_API_CALLS, METRIC_TYPES, UNLIMITED, get_plan_limits
from solveur.persistence.repos import tenants as tenants_repo
from solveur.persistence.repos import usage as usage_repo


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    current: int
    limit: int
    # None when the plan is unlimited.
    remaining: int | None


@dataclass(frozen=True)
class UsageDay:
    date: date
    metrics: dict[str, int]


class QuotaService:
    """Per-tenant, per-UTC-day usage gate.

    Checking and committing are separate: ``check_and_reserve`` only reads, and
    ``confirm`` is called after the paid downstream work succeeded so failed
    requests are never charged.
    """

    def __init__(self, *, time_provider: Callable[[], datetime] | None = None) -> None:
        # Allow time injection for deterministic rollover tests.
        self._time_provider = time_provider or _utc_now

    def today(self) -> date:
        return _day_start(self._time_provider()).date()

    async def check_and_reserve(
        self,
        session: AsyncSession,
        tenant_id: str,
        metric: str = METRIC_API_CALLS,
        amount: int = 1,
        *,
        plan: str | None = None,
    ) -> QuotaDecision:
        if plan is None:
            tenant = await tenants_repo.get_tenant(session, tenant_id)
            plan = tenant.plan if tenant is not None else None
        limit = get_plan_limits(plan).for_metric(metric)
        current = await usage_repo.get_count(session, tenant_id, self.today(), metric)
        if limit == UNLIMITED:
            return QuotaDecision(allowed=True, current=current, limit=limit, remaining=None)
        return QuotaDecision(
            allowed=current + amount <= limit,
            current=current,
            limit=limit,
            remaining=max(0, limit - current),
        )

    async def enforce(
        self,
        session: AsyncSession,
        tenant_id: str,
        metric: str = METRIC_API_CALLS,
        amount: int = 1,
        *,
        plan: str | None = None,
    ) -> QuotaDecision:
        decision = await self.check_and_reserve(session, tenant_id, metric, amount, plan=plan)
        if not decision.allowed:
            logger.info(
                "quota_exceeded tenant_id=%s metric=%s current=%s limit=%s",
                tenant_id,
                metric,
                decision.current,
                decision.limit,
            )
            raise QuotaExceeded(
                f"Daily {metric.lower().replace('_', ' ')} limit reached for your plan.",
                metric=metric,
                current=decision.current,
                limit=decision.limit,
            )
        return decision

    async def confirm(
        self,
        session: AsyncSession,
        tenant_id: str,
        metric: str = METRIC_API_CALLS,
        amount: int = 1,
        *,
        commit: bool = True,
    ) -> int:
        # Single-statement upsert; concurrent confirms never lose an increment.
        count = await usage_repo.increment(session, tenant_id, self.today(), metric, amount)
        if commit:
            await session.commit()
        return count

    async def usage_summary(self, session: AsyncSession, tenant_id: str, days: int = 30) -> list[UsageDay]:
        # Dense daily history, oldest first, zero-filled for days without usage.
        days = max(1, min(int(days), 366))
        today = self.today()
        since = today - timedelta(days=days - 1)
        counters = await usage_repo.list_counters(session, tenant_id, since=since)
        grid: dict[date, dict[str, int]] = {
            since + timedelta(days=offset): {metric: 0 for metric in METRIC_TYPES} for offset in range(days)
        }
        for counter in counters:
            if counter.date in grid:
                grid[counter.date][counter.metric_type] = int(counter.count)
        return [UsageDay(date=day, metrics=metrics) for day, metrics in sorted(grid.items())]


_quota_service: QuotaService | None = None


def get_quota_service() -> QuotaService:
    global _quota_service
    if _quota_service is None:
        _quota_service = QuotaService()
    return _quota_service


def reset_quota_service() -> None:
    # Reset cached services for deterministic tests.
    global _quota_service
    _quota_service = None


def _utc_now() -> datetime:
    # Use UTC for consistent quota period boundaries.
    return datetime.now(timezone.utc)


def _day_start(now: datetime) -> datetime:
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc)
