from __future__ import annotations

from datetime import date
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from solveur.domain.models import Tenant, UsageCounter, User
from solveur.persistence.repos import tenants as tenants_repo
from solveur.persistence.repos import users as users_repo
from solveur.services.auth.passwords import hash_password_async


async def create_tenant(
    session: AsyncSession,
    *,
    slug: str | None = None,
    name: str = "Acme Corp",
    plan: str = "FREE",
    status: str = "ACTIVE",
) -> Tenant:
    # Insert a tenant directly, bypassing onboarding, for tests that only need a scope.
    tenant = await tenants_repo.create_tenant(
        session,
        tenant_id=uuid4().hex,
        slug=slug or f"t-{uuid4().hex[:10]}",
        name=name,
        plan=plan,
        status=status,
    )
    await session.commit()
    return tenant


async def create_user(
    session: AsyncSession,
    *,
    tenant_id: str,
    email: str | None = None,
    password: str = "correct-horse-battery",
    role: str = "MEMBER",
    is_superuser: bool = False,
) -> User:
    user = await users_repo.create_user(
        session,
        user_id=uuid4().hex,
        tenant_id=tenant_id,
        email=email or f"user-{uuid4().hex[:8]}@example.com",
        name="Test User",
        password_hash=await hash_password_async(password),
        role=role,
        is_superuser=is_superuser,
    )
    await session.commit()
    return user


async def set_usage(session: AsyncSession, *, tenant_id: str, day: date, metric: str, count: int) -> None:
    session.add(UsageCounter(tenant_id=tenant_id, date=day, metric_type=metric, count=count))
    await session.commit()


def tenant_headers(tenant: Tenant, *, role: str = "OWNER", user_id: str | None = None) -> dict[str, str]:
    # Mirror what the gateway injects after authenticating a request.
    headers = {"x-tenant-id": tenant.id, "x-user-role": role}
    if user_id:
        headers["x-user-id"] = user_id
    return headers
