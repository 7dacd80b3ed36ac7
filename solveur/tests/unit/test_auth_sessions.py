from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import threading

import bcrypt
import jwt
import pytest
from sqlalchemy import select

from solveur.core.config import get_settings
from solveur.core.errors import AuthError, TenantNotFound
from solveur.domain.models import AuditEvent
from solveur.services.auth.credentials import request_password_reset, sign_in
from solveur.services.auth.passwords import (
    MAX_PASSWORD_BYTES,
    hash_password,
    hash_password_async,
    verify_password,
    verify_password_async,
)
from solveur.services.auth.sessions import decode_session_token, issue_session_token
from solveur.tests.utils.seed import create_tenant, create_user


def test_password_hash_roundtrip_and_sso_only_users() -> None:
    hashed = hash_password("s3cret-pass", rounds=4)
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed) is True
    assert verify_password("wrong", hashed) is False
    assert verify_password("anything", None) is False
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_passwords_over_bcrypt_limit_are_refused() -> None:
    with pytest.raises(ValueError):
        hash_password("p" * (MAX_PASSWORD_BYTES + 1), rounds=4)
    # Multi-byte characters count by encoded length.
    with pytest.raises(ValueError):
        hash_password("é" * 40, rounds=4)
    hashed = hash_password("p" * MAX_PASSWORD_BYTES, rounds=4)
    assert verify_password("p" * MAX_PASSWORD_BYTES, hashed) is True
    assert verify_password("p" * (MAX_PASSWORD_BYTES + 1), hashed) is False


@pytest.mark.asyncio
async def test_async_password_helpers_run_off_the_event_loop(monkeypatch) -> None:
    loop_thread = threading.get_ident()
    seen: list[int] = []
    real_hashpw = bcrypt.hashpw
    real_checkpw = bcrypt.checkpw

    def tracking_hashpw(password: bytes, salt: bytes) -> bytes:
        seen.append(threading.get_ident())
        return real_hashpw(password, salt)

    def tracking_checkpw(password: bytes, hashed: bytes) -> bool:
        seen.append(threading.get_ident())
        return real_checkpw(password, hashed)

    monkeypatch.setattr(bcrypt, "hashpw", tracking_hashpw)
    monkeypatch.setattr(bcrypt, "checkpw", tracking_checkpw)

    hashed, _ = await asyncio.gather(hash_password_async("s3cret-pass"), asyncio.sleep(0))
    assert await verify_password_async("s3cret-pass", hashed) is True
    assert len(seen) == 2
    assert loop_thread not in seen


def test_session_token_claims() -> None:
    issued = datetime(2026, 5, 1, 12, tzinfo=timezone.utc)
    token, expires_at = issue_session_token(
        user_id="u1", tenant_id="t1", tenant_slug="acme", role="ADMIN", is_superuser=False, now=issued
    )
    assert expires_at == issued + timedelta(hours=get_settings().auth_session_ttl_hours)

    # Decoding checks exp against the wall clock, so issue a fresh one for the decode.
    token, _ = issue_session_token(user_id="u1", tenant_id="t1", tenant_slug="acme", role="ADMIN", is_superuser=True)
    claims = decode_session_token(token)
    assert (claims.user_id, claims.tenant_id, claims.tenant_slug, claims.role) == ("u1", "t1", "acme", "ADMIN")
    assert claims.is_superuser is True


def test_expired_and_forged_tokens_rejected() -> None:
    old = datetime.now(timezone.utc) - timedelta(days=30)
    expired, _ = issue_session_token(
        user_id="u1", tenant_id="t1", tenant_slug="acme", role="MEMBER", is_superuser=False, now=old
    )
    with pytest.raises(AuthError, match="expired"):
        decode_session_token(expired)

    forged = jwt.encode(
        {"sub": "u1", "tenant_id": "t1", "exp": int(datetime.now(timezone.utc).timestamp()) + 60},
        "some-other-secret-that-is-long-enough",
        algorithm="HS256",
    )
    with pytest.raises(AuthError):
        decode_session_token(forged)
    with pytest.raises(AuthError):
        decode_session_token("not-a-token")


@pytest.mark.asyncio
async def test_sign_in_issues_token_and_audits(session) -> None:
    tenant = await create_tenant(session, slug="acme")
    user = await create_user(session, tenant_id=tenant.id, email="ana@acme.example", role="ADMIN")

    result = await sign_in(session, tenant_slug="acme", email="ANA@acme.example", password="correct-horse-battery")

    assert result.user.id == user.id
    assert result.user.last_login_at is not None
    claims = decode_session_token(result.token)
    assert (claims.user_id, claims.tenant_id, claims.role) == (user.id, tenant.id, "ADMIN")
    events = (await session.execute(select(AuditEvent.event_type))).scalars().all()
    assert events == ["LOGIN_SUCCESS"]


@pytest.mark.asyncio
async def test_sign_in_failures_share_one_message(session) -> None:
    tenant = await create_tenant(session, slug="acme")
    await create_user(session, tenant_id=tenant.id, email="ana@acme.example")

    with pytest.raises(AuthError) as wrong_password:
        await sign_in(session, tenant_slug="acme", email="ana@acme.example", password="nope")
    with pytest.raises(AuthError) as unknown_user:
        await sign_in(session, tenant_slug="acme", email="ghost@acme.example", password="nope")
    assert wrong_password.value.message == unknown_user.value.message == "Invalid email or password"

    failed = (await session.execute(select(AuditEvent))).scalar_one()
    assert failed.event_type == "LOGIN_FAILED"
    assert failed.outcome == "failure"


@pytest.mark.asyncio
async def test_sign_in_rejects_inactive_tenant(session) -> None:
    tenant = await create_tenant(session, slug="frozen", status="SUSPENDED")
    await create_user(session, tenant_id=tenant.id, email="ana@frozen.example")
    with pytest.raises(TenantNotFound):
        await sign_in(session, tenant_slug="frozen", email="ana@frozen.example", password="correct-horse-battery")


@pytest.mark.asyncio
async def test_password_reset_only_audits_existing_accounts(session) -> None:
    tenant = await create_tenant(session, slug="acme")
    await create_user(session, tenant_id=tenant.id, email="ana@acme.example")

    await request_password_reset(session, tenant_slug="acme", email="ghost@acme.example")
    assert (await session.execute(select(AuditEvent))).scalars().all() == []

    await request_password_reset(session, tenant_slug="acme", email="ana@acme.example")
    event = (await session.execute(select(AuditEvent))).scalar_one()
    assert event.event_type == "PASSWORD_RESET_REQUESTED"
