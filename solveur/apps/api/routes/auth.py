from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.apps.api.deps import get_db
from solveur.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from solveur.apps.api.response import ApiModel, SuccessEnvelope, get_request_id, success_response
from solveur.core.config import get_settings
from solveur.services.auth.credentials import request_password_reset, sign_in
from solveur.services.auth.sso import build_authorization_url


router = APIRouter(prefix="/auth", tags=["auth"], responses=DEFAULT_ERROR_RESPONSES)

SESSION_COOKIE = "auth-token"
RESET_MESSAGE = "If an account with that email exists, we've sent a password reset link."


class SignInRequest(ApiModel):
    tenant_slug: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)


class SignedInUser(ApiModel):
    id: str
    email: str
    name: str | None
    role: str
    tenant_id: str
    tenant_slug: str
    is_superuser: bool


class SignInResponse(ApiModel):
    success: bool = True
    token: str
    expires_at: str
    user: SignedInUser


class ForgotPasswordRequest(ApiModel):
    tenant_slug: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=320)


class ForgotPasswordResponse(ApiModel):
    success: bool = True
    message: str


class SsoRequest(ApiModel):
    tenant_slug: str = Field(min_length=1, max_length=100)
    redirect_to: str | None = Field(default=None, max_length=2000)


class SsoResponse(ApiModel):
    url: str


@router.post("/signin", response_model=SuccessEnvelope[SignInResponse] | SignInResponse)
async def signin(
    request: Request,
    response: Response,
    payload: SignInRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await sign_in(
        db,
        tenant_slug=payload.tenant_slug.strip().lower(),
        email=payload.email,
        password=payload.password,
        request_id=get_request_id(request),
    )
    settings = get_settings()
    # Browsers carry the session in an httpOnly cookie; API clients use the returned token.
    response.set_cookie(
        SESSION_COOKIE,
        result.token,
        httponly=True,
        secure=request.url.scheme == "https",
        samesite="strict",
        max_age=settings.auth_session_ttl_hours * 3600,
        path="/",
    )
    user = result.user
    data = SignInResponse(
        token=result.token,
        expires_at=result.expires_at.isoformat(),
        user=SignedInUser(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            tenant_id=result.tenant.id,
            tenant_slug=result.tenant.slug,
            is_superuser=user.is_superuser,
        ),
    )
    return success_response(request=request, data=data)


@router.post("/forgot-password", response_model=SuccessEnvelope[ForgotPasswordResponse] | ForgotPasswordResponse)
async def forgot_password(
    request: Request,
    payload: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    await request_password_reset(
        db,
        tenant_slug=payload.tenant_slug.strip().lower(),
        email=payload.email,
        request_id=get_request_id(request),
    )
    # Same answer whether or not the account exists.
    return success_response(request=request, data=ForgotPasswordResponse(message=RESET_MESSAGE))


@router.post("/sso/{provider}", response_model=SuccessEnvelope[SsoResponse] | SsoResponse)
async def sso_start(provider: str, request: Request, payload: SsoRequest) -> dict:
    url = build_authorization_url(provider, payload.tenant_slug.strip().lower(), payload.redirect_to)
    return success_response(request=request, data=SsoResponse(url=url))
