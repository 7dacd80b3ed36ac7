from __future__ import annotations

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.domain.models import UsageCounter
from solveur.persistence.guards import tenant_predicate


def _insert_for(session: AsyncSession):
    # ON CONFLICT upserts are dialect constructs; pick the one matching the bound engine.
    bind = session.get_bind()
    if bind.dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def get_count(session: AsyncSession, tenant_id: str, day: date, metric_type: str) -> int:
    result = await session.execute(
        select(UsageCounter.count).where(
            tenant_predicate(UsageCounter, tenant_id),
            UsageCounter.date == day,
            UsageCounter.metric_type == metric_type,
        )
    )
    value = result.scalar_one_or_none()
    return int(value or 0)


async def increment(
    session: AsyncSession, tenant_id: str, day: date, metric_type: str, amount: int
) -> int:
    """Add ``amount`` to the (tenant, day, metric) counter in a single statement.

    The row is created on first use; concurrent increments serialize on the
    unique key inside the database, so no update is lost.
    """
    insert = _insert_for(session)
    stmt = insert(UsageCounter).values(
        tenant_id=tenant_id, date=day, metric_type=metric_type, count=amount
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[UsageCounter.tenant_id, UsageCounter.date, UsageCounter.metric_type],
        set_={"count": UsageCounter.count + stmt.excluded.count, "updated_at": func.now()},
    ).returning(UsageCounter.count)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def list_counters(
    session: AsyncSession, tenant_id: str, *, since: date, metric_type: str | None = None
) -> list[UsageCounter]:
    stmt = select(UsageCounter).where(tenant_predicate(UsageCounter, tenant_id), UsageCounter.date >= since)
    if metric_type:
        stmt = stmt.where(UsageCounter.metric_type == metric_type)
    result = await session.execute(stmt.order_by(UsageCounter.date.asc(), UsageCounter.metric_type.asc()))
    return list(result.scalars().all())


async def totals_by_tenant(session: AsyncSession, metric_type: str) -> dict[str, int]:
    result = await session.execute(
        select(UsageCounter.tenant_id, func.sum(UsageCounter.count))
        .where(UsageCounter.metric_type == metric_type)
        .group_by(UsageCounter.tenant_id)
    )
    return {tenant_id: int(total or 0) for tenant_id, total in result.all()}


async def total(session: AsyncSession, metric_type: str) -> int:
    result = await session.execute(
        select(func.coalesce(func.sum(UsageCounter.count), 0)).where(UsageCounter.metric_type == metric_type)
    )
    return int(result.scalar_one())
