from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.apps.api.response import get_request_id
from solveur.core.errors import AuthError
from solveur.domain.models import Tenant, User
from solveur.persistence.db import get_session
from solveur.persistence.repos import users as users_repo
from solveur.providers.embeddings.base import EmbeddingClient
from solveur.providers.llm.base import CompletionProvider
from solveur.providers.vectors.base import VectorSearchClient
from solveur.services.auth.sessions import decode_session_token
from solveur.services.quota import QuotaService
from solveur.services.tenancy import TenantSignal, resolve_tenant, signal_from_headers


ROLE_ORDER = {"MEMBER": 1, "ADMIN": 2, "OWNER": 3}
DEFAULT_ROLE = "MEMBER"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


class Principal(BaseModel):
    # Identity asserted by the gateway headers or a signed session token.
    user_id: str | None = None
    tenant_id: str | None = None
    tenant_slug: str | None = None
    role: str = DEFAULT_ROLE
    is_superuser: bool = False
    auth_method: str = "headers"


def _auth_error(message: str) -> HTTPException:
    # Normalize auth errors for clients without leaking internal details.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden_error(message: str) -> HTTPException:
    # Use 403 for authenticated principals lacking permissions.
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "AUTH_FORBIDDEN", "message": message},
    )


def _parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _auth_error("Missing or invalid bearer token")
    return parts[1]


def normalize_role(value: str | None) -> str:
    role = (value or DEFAULT_ROLE).strip().upper()
    return role if role in ROLE_ORDER else DEFAULT_ROLE


def role_allows(*, role: str, minimum_role: str) -> bool:
    return ROLE_ORDER.get(role, 0) >= ROLE_ORDER[minimum_role]


async def get_principal(request: Request) -> Principal:
    # A session token wins over gateway headers; the cookie is the browser's copy of it.
    token = _parse_bearer_token(request.headers.get("Authorization")) or request.cookies.get("auth-token")
    if token:
        try:
            claims = decode_session_token(token)
        except AuthError as exc:
            raise _auth_error(exc.message) from exc
        return Principal(
            user_id=claims.user_id,
            tenant_id=claims.tenant_id,
            tenant_slug=claims.tenant_slug or None,
            role=normalize_role(claims.role),
            is_superuser=claims.is_superuser,
            auth_method="session",
        )
    return Principal(
        user_id=(request.headers.get("x-user-id") or "").strip() or None,
        tenant_id=(request.headers.get("x-tenant-id") or "").strip() or None,
        tenant_slug=(request.headers.get("x-tenant-slug") or "").strip().lower() or None,
        role=normalize_role(request.headers.get("x-user-role")),
    )


def get_tenant_signal(request: Request, principal: Principal = Depends(get_principal)) -> TenantSignal:
    if principal.auth_method == "session":
        # The token's tenant is authoritative; headers cannot redirect a signed session.
        return TenantSignal(tenant_id=principal.tenant_id)
    return signal_from_headers(request.headers)


async def get_current_tenant(
    signal: TenantSignal = Depends(get_tenant_signal),
    db: AsyncSession = Depends(get_db),
) -> Tenant:
    return await resolve_tenant(db, signal)


def require_role(minimum_role: str):
    # Dependency factory to enforce tenant roles at the route level.
    async def _dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not role_allows(role=principal.role, minimum_role=minimum_role):
            raise _forbidden_error("Insufficient role for this operation")
        return principal

    return _dependency


async def require_superuser(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> User:
    # Re-read the user so a revoked superuser loses access before their token expires.
    if not principal.user_id:
        raise _auth_error("Authentication required")
    user = await users_repo.get_user(db, principal.user_id)
    if user is None or user.status != "ACTIVE":
        raise _auth_error("Authentication required")
    if not user.is_superuser:
        raise _forbidden_error("Superuser access required")
    return user


def request_id(request: Request) -> str:
    return get_request_id(request)


def get_embedding_client(request: Request) -> EmbeddingClient:
    return request.app.state.embedder


def get_vector_client(request: Request) -> VectorSearchClient:
    return request.app.state.vectors


def get_completion_provider(request: Request) -> CompletionProvider:
    return request.app.state.completer


def get_quota(request: Request) -> QuotaService:
    return request.app.state.quota
