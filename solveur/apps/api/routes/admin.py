from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.apps.api.deps import get_db, require_superuser
from solveur.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from solveur.apps.api.response import ApiModel, SuccessEnvelope, get_request_id, success_response
from solveur.domain.models import User
from solveur.persistence.repos import users as users_repo
from solveur.services import admin as admin_service


router = APIRouter(prefix="/admin", tags=["admin"], responses=DEFAULT_ERROR_RESPONSES)


class AdminUserResponse(ApiModel):
    id: str
    tenant_id: str
    email: str
    name: str | None
    role: str
    status: str
    is_superuser: bool
    last_login_at: str | None
    created_at: str


class SystemStatsResponse(ApiModel):
    total_tenants: int
    total_users: int
    total_documents: int
    active_conversations: int
    total_api_calls: int


class TenantOverviewResponse(ApiModel):
    id: str
    name: str
    slug: str
    plan: str
    status: str
    created_at: str | None
    users_count: int
    api_calls_count: int


class TenantStatusResponse(ApiModel):
    id: str
    name: str
    slug: str
    plan: str
    status: str


class StatusUpdateRequest(ApiModel):
    status: str


class SuperuserUpdateRequest(ApiModel):
    is_superuser: bool


def _user_response(user: User) -> AdminUserResponse:
    return AdminUserResponse(
        id=user.id,
        tenant_id=user.tenant_id,
        email=user.email,
        name=user.name,
        role=user.role,
        status=user.status,
        is_superuser=user.is_superuser,
        last_login_at=user.last_login_at.isoformat() if user.last_login_at else None,
        created_at=user.created_at.isoformat(),
    )


@router.get("/me", response_model=SuccessEnvelope[AdminUserResponse] | AdminUserResponse)
async def admin_me(request: Request, actor: User = Depends(require_superuser)) -> dict:
    return success_response(request=request, data=_user_response(actor))


@router.get("/stats", response_model=SuccessEnvelope[SystemStatsResponse] | SystemStatsResponse)
async def admin_stats(
    request: Request,
    _actor: User = Depends(require_superuser),
    db: AsyncSession = Depends(get_db),
) -> dict:
    stats = await admin_service.system_stats(db)
    payload = SystemStatsResponse(
        total_tenants=stats.total_tenants,
        total_users=stats.total_users,
        total_documents=stats.total_documents,
        active_conversations=stats.active_conversations,
        total_api_calls=stats.total_api_calls,
    )
    return success_response(request=request, data=payload)


@router.get(
    "/tenants",
    response_model=SuccessEnvelope[list[TenantOverviewResponse]] | list[TenantOverviewResponse],
)
async def admin_tenants(
    request: Request,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    _actor: User = Depends(require_superuser),
    db: AsyncSession = Depends(get_db),
) -> dict:
    overviews = await admin_service.tenant_overviews(db, offset=offset, limit=limit)
    payload = [
        TenantOverviewResponse(
            id=item.id,
            name=item.name,
            slug=item.slug,
            plan=item.plan,
            status=item.status,
            created_at=item.created_at.isoformat() if item.created_at else None,
            users_count=item.users_count,
            api_calls_count=item.api_calls_count,
        )
        for item in overviews
    ]
    return success_response(request=request, data=payload)


@router.put("/tenants/{tenant_id}/status", response_model=SuccessEnvelope[TenantStatusResponse] | TenantStatusResponse)
async def admin_set_tenant_status(
    tenant_id: str,
    request: Request,
    payload: StatusUpdateRequest,
    actor: User = Depends(require_superuser),
    db: AsyncSession = Depends(get_db),
) -> dict:
    tenant = await admin_service.set_tenant_status(
        db, actor=actor, tenant_id=tenant_id, status=payload.status.upper(), request_id=get_request_id(request)
    )
    data = TenantStatusResponse(id=tenant.id, name=tenant.name, slug=tenant.slug, plan=tenant.plan, status=tenant.status)
    return success_response(request=request, data=data)


@router.get("/users", response_model=SuccessEnvelope[list[AdminUserResponse]] | list[AdminUserResponse])
async def admin_users(
    request: Request,
    tenant_id: str | None = Query(default=None, alias="tenantId"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    _actor: User = Depends(require_superuser),
    db: AsyncSession = Depends(get_db),
) -> dict:
    users = await users_repo.list_users(db, tenant_id=tenant_id, offset=offset, limit=limit)
    return success_response(request=request, data=[_user_response(user) for user in users])


@router.put("/users/{user_id}/status", response_model=SuccessEnvelope[AdminUserResponse] | AdminUserResponse)
async def admin_set_user_status(
    user_id: str,
    request: Request,
    payload: StatusUpdateRequest,
    actor: User = Depends(require_superuser),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await admin_service.set_user_status(
        db, actor=actor, user_id=user_id, status=payload.status.upper(), request_id=get_request_id(request)
    )
    return success_response(request=request, data=_user_response(user))


@router.put("/users/{user_id}/superuser", response_model=SuccessEnvelope[AdminUserResponse] | AdminUserResponse)
async def admin_set_superuser(
    user_id: str,
    request: Request,
    payload: SuperuserUpdateRequest,
    actor: User = Depends(require_superuser),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await admin_service.set_superuser(
        db, actor=actor, user_id=user_id, is_superuser=payload.is_superuser, request_id=get_request_id(request)
    )
    return success_response(request=request, data=_user_response(user))
