from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from solveur.core.errors import QuotaExceeded
from solveur.domain.plans import METRIC_API_CALLS, UNLIMITED, get_plan_limits
from solveur.persistence.repos import usage as usage_repo
from solveur.services.quota import QuotaService
from solveur.tests.utils.seed import create_tenant, set_usage


def _fixed_clock(moment: datetime):
    return lambda: moment


@pytest.mark.asyncio
async def test_check_at_boundary_allows_then_denies_without_mutation(session) -> None:
    tenant = await create_tenant(session, plan="FREE")
    quota = QuotaService(time_provider=_fixed_clock(datetime(2026, 3, 1, 12, tzinfo=timezone.utc)))
    today = quota.today()

    await set_usage(session, tenant_id=tenant.id, day=today, metric=METRIC_API_CALLS, count=999)
    decision = await quota.check_and_reserve(session, tenant.id, METRIC_API_CALLS)
    assert decision.allowed is True
    assert (decision.current, decision.limit, decision.remaining) == (999, 1000, 1)
    # Checking never writes.
    assert await usage_repo.get_count(session, tenant.id, today, METRIC_API_CALLS) == 999

    assert await quota.confirm(session, tenant.id, METRIC_API_CALLS) == 1000
    denied = await quota.check_and_reserve(session, tenant.id, METRIC_API_CALLS)
    assert denied.allowed is False
    assert denied.remaining == 0
    assert await usage_repo.get_count(session, tenant.id, today, METRIC_API_CALLS) == 1000


@pytest.mark.asyncio
async def test_enforce_raises_with_details(session) -> None:
    tenant = await create_tenant(session, plan="FREE")
    quota = QuotaService()
    await set_usage(session, tenant_id=tenant.id, day=quota.today(), metric=METRIC_API_CALLS, count=1000)
    with pytest.raises(QuotaExceeded) as excinfo:
        await quota.enforce(session, tenant.id, METRIC_API_CALLS)
    assert excinfo.value.details == {"metric": METRIC_API_CALLS, "current": 1000, "limit": 1000}
    assert excinfo.value.status_code == 429


@pytest.mark.asyncio
async def test_unlimited_plan_is_always_allowed(session) -> None:
    tenant = await create_tenant(session, plan="ENTERPRISE")
    quota = QuotaService()
    await set_usage(session, tenant_id=tenant.id, day=quota.today(), metric=METRIC_API_CALLS, count=10**9)
    decision = await quota.check_and_reserve(session, tenant.id, METRIC_API_CALLS)
    assert decision.allowed is True
    assert decision.limit == UNLIMITED
    assert decision.remaining is None


@pytest.mark.asyncio
async def test_counters_roll_over_at_utc_midnight(session) -> None:
    tenant = await create_tenant(session)
    late = QuotaService(time_provider=_fixed_clock(datetime(2026, 3, 1, 23, 59, tzinfo=timezone.utc)))
    await set_usage(session, tenant_id=tenant.id, day=late.today(), metric=METRIC_API_CALLS, count=1000)
    assert (await late.check_and_reserve(session, tenant.id)).allowed is False

    # 01:30 in UTC+2 is still 23:30 on the previous UTC day.
    offset = timezone(timedelta(hours=2))
    same_day = QuotaService(time_provider=_fixed_clock(datetime(2026, 3, 2, 1, 30, tzinfo=offset)))
    assert same_day.today() == date(2026, 3, 1)

    next_day = QuotaService(time_provider=_fixed_clock(datetime(2026, 3, 2, 0, 1, tzinfo=timezone.utc)))
    decision = await next_day.check_and_reserve(session, tenant.id)
    assert decision.allowed is True
    assert decision.current == 0


def test_unknown_plan_falls_back_to_free_limits() -> None:
    assert get_plan_limits("PLATINUM") == get_plan_limits("FREE")
    assert get_plan_limits(None).api_calls == 1000


@pytest.mark.asyncio
async def test_usage_summary_is_dense_and_oldest_first(session) -> None:
    tenant = await create_tenant(session)
    quota = QuotaService(time_provider=_fixed_clock(datetime(2026, 3, 10, 8, tzinfo=timezone.utc)))
    await set_usage(session, tenant_id=tenant.id, day=date(2026, 3, 8), metric=METRIC_API_CALLS, count=7)
    history = await quota.usage_summary(session, tenant.id, days=3)
    assert [day.date for day in history] == [date(2026, 3, 8), date(2026, 3, 9), date(2026, 3, 10)]
    assert history[0].metrics[METRIC_API_CALLS] == 7
    assert history[1].metrics[METRIC_API_CALLS] == 0
    assert set(history[2].metrics) >= {"API_CALLS", "DOCUMENTS"}
