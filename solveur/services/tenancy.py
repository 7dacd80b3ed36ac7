from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from solveur.core.config import get_settings
from solveur.core.errors import TenantInactive, TenantNotFound
from solveur.domain.models import Tenant
from solveur.domain.plans import TENANT_ACTIVE, PlanLimits
from solveur.domain.plans import get_plan_limits as _plan_limits
from solveur.persistence.repos import tenants as tenants_repo


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantSignal:
    # Identity hints injected by the trusted gateway, in precedence order.
    tenant_id: str | None = None
    tenant_slug: str | None = None
    subdomain: str | None = None

    @property
    def empty(self) -> bool:
        return not (self.tenant_id or self.tenant_slug or self.subdomain)


def subdomain_from_host(host: str | None, root_domain: str) -> str | None:
    # acme.solveur.app -> "acme"; the bare root and nested labels carry no tenant.
    if not host:
        return None
    hostname = host.split(":", 1)[0].strip().lower().rstrip(".")
    root = root_domain.strip().lower().lstrip(".")
    if not root or hostname == root or not hostname.endswith(f".{root}"):
        return None
    label = hostname[: -len(root) - 1]
    if not label or "." in label or label == "www":
        return None
    return label


def signal_from_headers(headers: Mapping[str, str], *, root_domain: str | None = None) -> TenantSignal:
    root = root_domain if root_domain is not None else get_settings().tenant_root_domain
    tenant_id = (headers.get("x-tenant-id") or "").strip() or None
    tenant_slug = (headers.get("x-tenant-slug") or "").strip().lower() or None
    return TenantSignal(
        tenant_id=tenant_id,
        tenant_slug=tenant_slug,
        subdomain=subdomain_from_host(headers.get("host"), root),
    )


async def resolve_tenant(session: AsyncSession, signal: TenantSignal) -> Tenant:
    """Map a request's tenant signal to an ACTIVE tenant.

    Explicit id beats slug, slug beats subdomain. Read-only; raises
    ``TenantNotFound`` or ``TenantInactive``.
    """
    tenant: Tenant | None = None
    if signal.tenant_id:
        tenant = await tenants_repo.get_tenant(session, signal.tenant_id)
    elif signal.tenant_slug:
        tenant = await tenants_repo.get_tenant_by_slug(session, signal.tenant_slug)
    elif signal.subdomain:
        tenant = await tenants_repo.get_tenant_by_slug(session, signal.subdomain)

    if tenant is None:
        raise TenantNotFound()
    if tenant.status != TENANT_ACTIVE:
        logger.info("tenant_inactive tenant_id=%s status=%s", tenant.id, tenant.status)
        raise TenantInactive(status=tenant.status)
    return tenant


def get_plan_limits(plan: str | None) -> PlanLimits:
    return _plan_limits(plan)
