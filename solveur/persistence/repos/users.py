from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.domain.models import User
from solveur.persistence.guards import tenant_predicate


async def get_user(session: AsyncSession, user_id: str) -> User | None:
    # Cross-tenant lookup; only the admin console and token validation use it.
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(session: AsyncSession, tenant_id: str, email: str) -> User | None:
    result = await session.execute(
        select(User).where(tenant_predicate(User, tenant_id), User.email == email.strip().lower())
    )
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    *,
    user_id: str,
    tenant_id: str,
    email: str,
    name: str | None,
    password_hash: str | None,
    role: str,
    is_superuser: bool = False,
) -> User:
    user = User(
        id=user_id,
        tenant_id=tenant_id,
        email=email.strip().lower(),
        name=name,
        password_hash=password_hash,
        role=role,
        status="ACTIVE",
        is_superuser=is_superuser,
    )
    session.add(user)
    return user


async def list_users(
    session: AsyncSession, *, tenant_id: str | None = None, offset: int = 0, limit: int = 100
) -> list[User]:
    stmt = select(User)
    if tenant_id:
        stmt = stmt.where(tenant_predicate(User, tenant_id))
    result = await session.execute(stmt.order_by(User.created_at.desc(), User.id).offset(offset).limit(limit))
    return list(result.scalars().all())


async def update_user(session: AsyncSession, user_id: str, **values) -> int:
    result = await session.execute(update(User).where(User.id == user_id).values(**values))
    return int(result.rowcount or 0)


async def count_users(
    session: AsyncSession, *, tenant_id: str | None = None, status: str | None = None
) -> int:
    stmt = select(func.count()).select_from(User)
    if tenant_id:
        stmt = stmt.where(tenant_predicate(User, tenant_id))
    if status:
        stmt = stmt.where(User.status == status)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def count_users_by_tenant(session: AsyncSession, *, status: str | None = None) -> dict[str, int]:
    stmt = select(User.tenant_id, func.count()).group_by(User.tenant_id)
    if status:
        stmt = stmt.where(User.status == status)
    result = await session.execute(stmt)
    return {tenant_id: int(count) for tenant_id, count in result.all()}
