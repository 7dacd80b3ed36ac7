from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from solveur.core.config import get_settings
from solveur.core.errors import AuthError


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    tenant_id: str
    tenant_slug: str
    role: str
    is_superuser: bool
    expires_at: datetime


def issue_session_token(
    *,
    user_id: str,
    tenant_id: str,
    tenant_slug: str,
    role: str,
    is_superuser: bool,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    settings = get_settings()
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(hours=settings.auth_session_ttl_hours)
    payload = {
        "sub": user_id,
        "tenant_id": tenant_id,
        "tenant_slug": tenant_slug,
        "role": role,
        "is_superuser": is_superuser,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(payload, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)
    return token, expires_at


def decode_session_token(token: str) -> SessionClaims:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            options={"require": ["sub", "exp", "tenant_id"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Session expired") from exc
    except jwt.PyJWTError as exc:
        raise AuthError("Invalid session token") from exc
    return SessionClaims(
        user_id=str(payload["sub"]),
        tenant_id=str(payload["tenant_id"]),
        tenant_slug=str(payload.get("tenant_slug") or ""),
        role=str(payload.get("role") or "MEMBER"),
        is_superuser=bool(payload.get("is_superuser", False)),
        expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
    )
