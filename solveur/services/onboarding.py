from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.core.config import get_settings
from solveur.core.errors import SlugInvalid, SlugUnavailable
from solveur.domain.models import Tenant, User
from solveur.domain.plans import DEFAULT_PLAN, TENANT_ACTIVE
from solveur.persistence.repos import tenants as tenants_repo
from solveur.persistence.repos import users as users_repo
from solveur.services.audit import record_event
from solveur.services.auth.passwords import hash_password_async
from solveur.services.personality import create_personality, industry_personality


logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9-]{2,50}$")
ROLE_OWNER = "OWNER"


@dataclass(frozen=True)
class SlugCheck:
    slug: str
    available: bool
    # "invalid" | "reserved" | "taken" when unavailable.
    reason: str | None = None


@dataclass(frozen=True)
class TenantSignup:
    name: str
    slug: str
    owner_email: str
    owner_name: str
    owner_password: str
    industry: str | None = None
    size: str | None = None
    domain: str | None = None
    setup: dict[str, Any] | None = None


@dataclass(frozen=True)
class OnboardingResult:
    tenant: Tenant
    owner: User


def reserved_slugs() -> frozenset[str]:
    raw = get_settings().reserved_slugs
    return frozenset(item.strip().lower() for item in raw.split(",") if item.strip())


async def check_slug(session: AsyncSession, slug: str) -> SlugCheck:
    normalized = (slug or "").strip().lower()
    if not SLUG_PATTERN.match(normalized):
        return SlugCheck(slug=normalized, available=False, reason="invalid")
    if normalized in reserved_slugs():
        return SlugCheck(slug=normalized, available=False, reason="reserved")
    if await tenants_repo.get_tenant_by_slug(session, normalized) is not None:
        return SlugCheck(slug=normalized, available=False, reason="taken")
    return SlugCheck(slug=normalized, available=True)


async def onboard_tenant(
    session: AsyncSession, signup: TenantSignup, *, request_id: str | None = None
) -> OnboardingResult:
    """Create a tenant with its owner and starter personality in one transaction.

    New tenants start on FREE and ACTIVE. The personality comes from the
    industry template (technology when the industry is unknown).
    """
    check = await check_slug(session, signup.slug)
    if check.reason == "invalid":
        raise SlugInvalid(slug=check.slug)
    if not check.available:
        raise SlugUnavailable(slug=check.slug, reason=check.reason)

    industry = signup.industry or "technology"
    tenant = await tenants_repo.create_tenant(
        session,
        tenant_id=uuid4().hex,
        slug=check.slug,
        name=signup.name.strip(),
        plan=DEFAULT_PLAN,
        status=TENANT_ACTIVE,
        domain=signup.domain,
        metadata_json={"industry": signup.industry, "size": signup.size, "setup": signup.setup},
    )
    owner = await users_repo.create_user(
        session,
        user_id=uuid4().hex,
        tenant_id=tenant.id,
        email=signup.owner_email,
        name=signup.owner_name,
        password_hash=await hash_password_async(signup.owner_password),
        role=ROLE_OWNER,
    )
    await session.flush()
    await create_personality(session, tenant.id, industry_personality(tenant.name, industry), commit=False)
    await record_event(
        session=session,
        tenant_id=tenant.id,
        actor_type="user",
        actor_id=owner.id,
        actor_role=ROLE_OWNER,
        event_type="TENANT_CREATED",
        resource_type="tenant",
        resource_id=tenant.id,
        request_id=request_id,
        metadata={
            "tenantName": tenant.name,
            "tenantSlug": tenant.slug,
            "industry": signup.industry,
            "size": signup.size,
        },
    )
    try:
        await session.commit()
    except IntegrityError as exc:
        # Two signups raced for the same slug or domain; the loser gets the same 409.
        await session.rollback()
        raise SlugUnavailable(slug=check.slug, reason="taken") from exc
    logger.info("tenant_onboarded tenant_id=%s slug=%s industry=%s", tenant.id, tenant.slug, industry)
    return OnboardingResult(tenant=tenant, owner=owner)
