from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.apps.api.deps import get_current_tenant, get_db, get_quota
from solveur.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from solveur.apps.api.response import ApiModel, SuccessEnvelope, success_response
from solveur.domain.models import Tenant
from solveur.domain.plans import METRIC_API_CALLS, get_plan_limits
from solveur.persistence.repos import conversations as conversations_repo
from solveur.persistence.repos import knowledge as knowledge_repo
from solveur.persistence.repos import usage as usage_repo
from solveur.persistence.repos import users as users_repo
from solveur.services.quota import QuotaService


router = APIRouter(prefix="/usage", tags=["usage"], responses=DEFAULT_ERROR_RESPONSES)


class PlanLimitsResponse(ApiModel):
    users: int
    conversations: int
    documents: int
    api_calls: int
    storage: int


class UsageSnapshotResponse(ApiModel):
    date: str
    plan: str
    api_calls: int
    conversations: int
    users: int
    documents: int
    storage_bytes: int
    # -1 marks an unlimited allowance.
    limits: PlanLimitsResponse


class UsageDayResponse(ApiModel):
    date: str
    metrics: dict[str, int]


@router.get("", response_model=SuccessEnvelope[UsageSnapshotResponse] | UsageSnapshotResponse)
async def get_usage(
    request: Request,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
    quota: QuotaService = Depends(get_quota),
) -> dict:
    today = quota.today()
    limits = get_plan_limits(tenant.plan)
    data = UsageSnapshotResponse(
        date=today.isoformat(),
        plan=tenant.plan,
        api_calls=await usage_repo.get_count(db, tenant.id, today, METRIC_API_CALLS),
        conversations=await conversations_repo.count_conversations(db, tenant_id=tenant.id, status="ACTIVE"),
        users=await users_repo.count_users(db, tenant_id=tenant.id, status="ACTIVE"),
        documents=await knowledge_repo.count_documents(db, tenant_id=tenant.id),
        storage_bytes=await knowledge_repo.total_storage_bytes(db, tenant.id),
        limits=PlanLimitsResponse(
            users=limits.users,
            conversations=limits.conversations,
            documents=limits.documents,
            api_calls=limits.api_calls,
            storage=limits.storage,
        ),
    )
    return success_response(request=request, data=data)


@router.get("/history", response_model=SuccessEnvelope[list[UsageDayResponse]] | list[UsageDayResponse])
async def get_usage_history(
    request: Request,
    days: int = Query(default=30, ge=1, le=366),
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
    quota: QuotaService = Depends(get_quota),
) -> dict:
    history = await quota.usage_summary(db, tenant.id, days)
    data = [UsageDayResponse(date=day.date.isoformat(), metrics=day.metrics) for day in history]
    return success_response(request=request, data=data)
