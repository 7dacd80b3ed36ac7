from __future__ import annotations

import re
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.apps.api.deps import get_db
from solveur.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from solveur.apps.api.response import ApiModel, SuccessEnvelope, get_request_id, success_response
from solveur.domain.models import Tenant
from solveur.persistence.repos import tenants as tenants_repo
from solveur.services.auth.passwords import MAX_PASSWORD_BYTES, password_too_long
from solveur.services.onboarding import TenantSignup, check_slug, onboard_tenant


router = APIRouter(prefix="/tenants", tags=["tenants"], responses=DEFAULT_ERROR_RESPONSES)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class TenantCreateRequest(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    slug: str = Field(min_length=1, max_length=50)
    owner_email: str = Field(min_length=3, max_length=320)
    owner_name: str = Field(min_length=1, max_length=200)
    owner_password: str = Field(min_length=8, max_length=128)
    industry: str | None = None
    size: str | None = None
    domain: str | None = None
    setup: dict[str, Any] | None = None

    @field_validator("owner_email")
    @classmethod
    def _email_shape(cls, value: str) -> str:
        value = value.strip()
        if not _EMAIL_PATTERN.match(value):
            raise ValueError("invalid email address")
        return value

    @field_validator("owner_password")
    @classmethod
    def _password_fits_bcrypt(cls, value: str) -> str:
        if password_too_long(value):
            raise ValueError(f"password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
        return value


class TenantResponse(ApiModel):
    id: str
    name: str
    slug: str
    domain: str | None
    plan: str
    status: str
    settings: dict[str, Any] | None
    created_at: str


class OwnerResponse(ApiModel):
    id: str
    email: str
    name: str | None
    role: str


class OnboardingResponse(ApiModel):
    tenant: TenantResponse
    user: OwnerResponse


class SlugCheckResponse(ApiModel):
    slug: str
    available: bool
    reason: str | None = None


def _to_response(tenant: Tenant) -> TenantResponse:
    return TenantResponse(
        id=tenant.id,
        name=tenant.name,
        slug=tenant.slug,
        domain=tenant.domain,
        plan=tenant.plan,
        status=tenant.status,
        settings=tenant.settings_json,
        created_at=tenant.created_at.isoformat(),
    )


@router.post("", status_code=201, response_model=SuccessEnvelope[OnboardingResponse] | OnboardingResponse)
async def create_tenant(
    request: Request,
    payload: TenantCreateRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await onboard_tenant(
        db,
        TenantSignup(
            name=payload.name,
            slug=payload.slug,
            owner_email=payload.owner_email,
            owner_name=payload.owner_name,
            owner_password=payload.owner_password,
            industry=payload.industry,
            size=payload.size,
            domain=payload.domain,
            setup=payload.setup,
        ),
        request_id=get_request_id(request),
    )
    owner = result.owner
    data = OnboardingResponse(
        tenant=_to_response(result.tenant),
        user=OwnerResponse(id=owner.id, email=owner.email, name=owner.name, role=owner.role),
    )
    return success_response(request=request, data=data)


# Declared before the bare lookup so "check-slug" is never read as a query on /tenants.
@router.get("/check-slug", response_model=SuccessEnvelope[SlugCheckResponse] | SlugCheckResponse)
async def check_slug_availability(
    request: Request,
    slug: str = Query(min_length=1, max_length=100),
    db: AsyncSession = Depends(get_db),
) -> dict:
    check = await check_slug(db, slug)
    data = SlugCheckResponse(slug=check.slug, available=check.available, reason=check.reason)
    return success_response(request=request, data=data)


@router.get("", response_model=SuccessEnvelope[TenantResponse] | TenantResponse)
async def get_tenant_by_slug(
    request: Request,
    slug: str = Query(min_length=1, max_length=100),
    db: AsyncSession = Depends(get_db),
) -> dict:
    tenant = await tenants_repo.get_tenant_by_slug(db, slug.strip().lower())
    if tenant is None:
        raise HTTPException(status_code=404, detail={"code": "TENANT_NOT_FOUND", "message": "Tenant not found"})
    return success_response(request=request, data=_to_response(tenant))
