from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from solveur.core.errors import AdminActionInvalid, AdminNotFound
from solveur.domain.models import Tenant, User
from solveur.domain.plans import METRIC_API_CALLS, TENANT_STATUSES
from solveur.persistence.repos import conversations as conversations_repo
from solveur.persistence.repos import knowledge as knowledge_repo
from solveur.persistence.repos import tenants as tenants_repo
from solveur.persistence.repos import usage as usage_repo
from solveur.persistence.repos import users as users_repo
from solveur.services.audit import record_event


logger = logging.getLogger(__name__)

USER_STATUSES = ("ACTIVE", "SUSPENDED")


@dataclass(frozen=True)
class SystemStats:
    total_tenants: int
    total_users: int
    total_documents: int
    active_conversations: int
    total_api_calls: int


@dataclass(frozen=True)
class TenantOverview:
    id: str
    name: str
    slug: str
    plan: str
    status: str
    created_at: datetime | None
    users_count: int
    api_calls_count: int


async def system_stats(session: AsyncSession) -> SystemStats:
    return SystemStats(
        total_tenants=await tenants_repo.count_tenants(session, status="ACTIVE"),
        total_users=await users_repo.count_users(session, status="ACTIVE"),
        total_documents=await knowledge_repo.count_documents(session),
        active_conversations=await conversations_repo.count_conversations(session, status="ACTIVE"),
        total_api_calls=await usage_repo.total(session, METRIC_API_CALLS),
    )


async def tenant_overviews(session: AsyncSession, *, offset: int = 0, limit: int = 100) -> list[TenantOverview]:
    tenants = await tenants_repo.list_tenants(session, offset=offset, limit=limit)
    users_by_tenant = await users_repo.count_users_by_tenant(session, status="ACTIVE")
    calls_by_tenant = await usage_repo.totals_by_tenant(session, METRIC_API_CALLS)
    return [
        TenantOverview(
            id=tenant.id,
            name=tenant.name,
            slug=tenant.slug,
            plan=tenant.plan,
            status=tenant.status,
            created_at=tenant.created_at,
            users_count=users_by_tenant.get(tenant.id, 0),
            api_calls_count=calls_by_tenant.get(tenant.id, 0),
        )
        for tenant in tenants
    ]


async def set_tenant_status(
    session: AsyncSession, *, actor: User, tenant_id: str, status: str, request_id: str | None = None
) -> Tenant:
    if status not in TENANT_STATUSES:
        raise AdminActionInvalid(f"status must be one of: {', '.join(TENANT_STATUSES)}", allowed=list(TENANT_STATUSES))
    tenant = await tenants_repo.get_tenant(session, tenant_id)
    if tenant is None:
        raise AdminNotFound("Tenant not found", tenant_id=tenant_id)
    previous = tenant.status
    tenant.status = status
    await record_event(
        session=session,
        tenant_id=tenant.id,
        actor_type="superuser",
        actor_id=actor.id,
        event_type="TENANT_STATUS_UPDATED",
        resource_type="tenant",
        resource_id=tenant.id,
        request_id=request_id,
        metadata={"from": previous, "to": status},
    )
    await session.commit()
    logger.info("tenant_status_updated tenant_id=%s from=%s to=%s actor_id=%s", tenant.id, previous, status, actor.id)
    return tenant


async def set_user_status(
    session: AsyncSession, *, actor: User, user_id: str, status: str, request_id: str | None = None
) -> User:
    if status not in USER_STATUSES:
        raise AdminActionInvalid(f"status must be one of: {', '.join(USER_STATUSES)}", allowed=list(USER_STATUSES))
    user = await users_repo.get_user(session, user_id)
    if user is None:
        raise AdminNotFound("User not found", user_id=user_id)
    if user.id == actor.id and status != "ACTIVE":
        # A superuser locking themselves out leaves nobody to undo it.
        raise AdminActionInvalid("Superusers cannot suspend their own account")
    previous = user.status
    user.status = status
    await record_event(
        session=session,
        tenant_id=user.tenant_id,
        actor_type="superuser",
        actor_id=actor.id,
        event_type="USER_STATUS_UPDATED",
        resource_type="user",
        resource_id=user.id,
        request_id=request_id,
        metadata={"from": previous, "to": status},
    )
    await session.commit()
    return user


async def set_superuser(
    session: AsyncSession, *, actor: User, user_id: str, is_superuser: bool, request_id: str | None = None
) -> User:
    user = await users_repo.get_user(session, user_id)
    if user is None:
        raise AdminNotFound("User not found", user_id=user_id)
    if user.id == actor.id and not is_superuser:
        raise AdminActionInvalid("Superusers cannot revoke their own access")
    user.is_superuser = is_superuser
    await record_event(
        session=session,
        tenant_id=user.tenant_id,
        actor_type="superuser",
        actor_id=actor.id,
        event_type="USER_SUPERUSER_UPDATED",
        resource_type="user",
        resource_id=user.id,
        request_id=request_id,
        metadata={"is_superuser": is_superuser},
    )
    await session.commit()
    return user
