from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from solveur.core.errors import AuthError, TenantNotFound
from solveur.domain.models import Tenant, User
from solveur.domain.plans import TENANT_ACTIVE
from solveur.persistence.repos import tenants as tenants_repo
from solveur.persistence.repos import users as users_repo
from solveur.services.audit import record_event
from solveur.services.auth.passwords import verify_password_async
from solveur.services.auth.sessions import issue_session_token


logger = logging.getLogger(__name__)

USER_ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class SignInResult:
    user: User
    tenant: Tenant
    token: str
    expires_at: datetime


async def _active_tenant(session: AsyncSession, tenant_slug: str) -> Tenant:
    tenant = await tenants_repo.get_tenant_by_slug(session, tenant_slug)
    if tenant is None or tenant.status != TENANT_ACTIVE:
        raise TenantNotFound("Invalid tenant or tenant is not active")
    return tenant


async def sign_in(
    session: AsyncSession,
    *,
    tenant_slug: str,
    email: str,
    password: str,
    request_id: str | None = None,
) -> SignInResult:
    tenant = await _active_tenant(session, tenant_slug)
    user = await users_repo.get_user_by_email(session, tenant.id, email)
    # One message for unknown users and bad passwords so sign-in cannot enumerate accounts.
    if user is None or user.status != USER_ACTIVE or not user.password_hash:
        raise AuthError("Invalid email or password")

    if not await verify_password_async(password, user.password_hash):
        await record_event(
            session=session,
            tenant_id=tenant.id,
            actor_type="user",
            actor_id=user.id,
            event_type="LOGIN_FAILED",
            outcome="failure",
            resource_type="user",
            resource_id=user.id,
            request_id=request_id,
            metadata={"reason": "invalid_password"},
            commit=True,
        )
        logger.info("login_failed tenant_id=%s user_id=%s", tenant.id, user.id)
        raise AuthError("Invalid email or password")

    token, expires_at = issue_session_token(
        user_id=user.id,
        tenant_id=tenant.id,
        tenant_slug=tenant.slug,
        role=user.role,
        is_superuser=user.is_superuser,
    )
    user.last_login_at = datetime.now(timezone.utc)
    await record_event(
        session=session,
        tenant_id=tenant.id,
        actor_type="user",
        actor_id=user.id,
        actor_role=user.role,
        event_type="LOGIN_SUCCESS",
        outcome="success",
        resource_type="user",
        resource_id=user.id,
        request_id=request_id,
    )
    await session.commit()
    logger.info("login_succeeded tenant_id=%s user_id=%s", tenant.id, user.id)
    return SignInResult(user=user, tenant=tenant, token=token, expires_at=expires_at)


async def request_password_reset(
    session: AsyncSession, *, tenant_slug: str, email: str, request_id: str | None = None
) -> None:
    """Record a reset request; callers always answer with the same message.

    Delivery of reset mail belongs to the notification service and is not
    triggered from here.
    """
    tenant = await _active_tenant(session, tenant_slug)
    user = await users_repo.get_user_by_email(session, tenant.id, email)
    if user is None or user.status != USER_ACTIVE:
        return
    await record_event(
        session=session,
        tenant_id=tenant.id,
        actor_type="user",
        actor_id=user.id,
        event_type="PASSWORD_RESET_REQUESTED",
        resource_type="user",
        resource_id=user.id,
        request_id=request_id,
        commit=True,
    )
