from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.domain.models import Personality
from solveur.persistence.guards import tenant_predicate


async def get_personality(session: AsyncSession, tenant_id: str, personality_id: str) -> Personality | None:
    # Return None for tenant mismatch to keep 404 semantics.
    result = await session.execute(
        select(Personality).where(tenant_predicate(Personality, tenant_id), Personality.id == personality_id)
    )
    return result.scalar_one_or_none()


async def get_active(session: AsyncSession, tenant_id: str) -> Personality | None:
    # Newest wins if a legacy row set ever holds more than one active personality.
    result = await session.execute(
        select(Personality)
        .where(tenant_predicate(Personality, tenant_id), Personality.is_active.is_(True))
        .order_by(Personality.created_at.desc(), Personality.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_personalities(session: AsyncSession, tenant_id: str) -> list[Personality]:
    result = await session.execute(
        select(Personality)
        .where(tenant_predicate(Personality, tenant_id))
        .order_by(Personality.created_at.desc(), Personality.id.desc())
    )
    return list(result.scalars().all())


async def deactivate_others(session: AsyncSession, tenant_id: str, keep_id: str | None) -> int:
    stmt = (
        update(Personality)
        .where(tenant_predicate(Personality, tenant_id), Personality.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session="fetch")
    )
    if keep_id is not None:
        stmt = stmt.where(Personality.id != keep_id)
    result = await session.execute(stmt)
    return int(result.rowcount or 0)


async def count_active(session: AsyncSession, tenant_id: str) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Personality)
        .where(tenant_predicate(Personality, tenant_id), Personality.is_active.is_(True))
    )
    return int(result.scalar_one())
