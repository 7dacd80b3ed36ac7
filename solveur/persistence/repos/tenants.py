from __future__ import annotations

from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.domain.models import Tenant


async def get_tenant(session: AsyncSession, tenant_id: str) -> Tenant | None:
    result = await session.execute(select(Tenant).where(Tenant.id == tenant_id))
    return result.scalar_one_or_none()


async def get_tenant_by_slug(session: AsyncSession, slug: str) -> Tenant | None:
    # Slugs are stored lowercase; normalize lookups the same way.
    result = await session.execute(select(Tenant).where(Tenant.slug == slug.strip().lower()))
    return result.scalar_one_or_none()


async def create_tenant(
    session: AsyncSession,
    *,
    tenant_id: str,
    slug: str,
    name: str,
    plan: str,
    status: str,
    domain: str | None = None,
    settings_json: dict[str, Any] | None = None,
    metadata_json: dict[str, Any] | None = None,
) -> Tenant:
    tenant = Tenant(
        id=tenant_id,
        slug=slug,
        name=name,
        plan=plan,
        status=status,
        domain=domain,
        settings_json=settings_json or {},
        metadata_json=metadata_json or {},
    )
    session.add(tenant)
    return tenant


async def list_tenants(session: AsyncSession, *, offset: int = 0, limit: int = 100) -> list[Tenant]:
    result = await session.execute(
        select(Tenant).order_by(Tenant.created_at.desc(), Tenant.id).offset(offset).limit(limit)
    )
    return list(result.scalars().all())


async def set_status(session: AsyncSession, tenant_id: str, status: str) -> int:
    result = await session.execute(update(Tenant).where(Tenant.id == tenant_id).values(status=status))
    return int(result.rowcount or 0)


async def count_tenants(session: AsyncSession, *, status: str | None = None) -> int:
    stmt = select(func.count()).select_from(Tenant)
    if status:
        stmt = stmt.where(Tenant.status == status)
    result = await session.execute(stmt)
    return int(result.scalar_one())
