from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
from uuid import uuid4

from solveur.persistence.db import SessionLocal
from solveur.persistence.repos import tenants as tenants_repo
from solveur.persistence.repos import users as users_repo
from solveur.services.audit import record_event
from solveur.services.auth.passwords import MAX_PASSWORD_BYTES, hash_password_async, password_too_long


SYSTEM_TENANT_SLUG = "system"
MIN_PASSWORD_LENGTH = 8


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create a platform superuser in the system tenant")
    parser.add_argument("--email", required=True, help="Superuser email")
    parser.add_argument("--name", required=True, help="Display name")
    parser.add_argument("--password", default=None, help="Password (prompted when omitted)")
    return parser


async def _create_superuser(email: str, name: str, password: str) -> int:
    async with SessionLocal() as session:
        tenant = await tenants_repo.get_tenant_by_slug(session, SYSTEM_TENANT_SLUG)
        if tenant is None:
            # The system tenant is reserved for platform operators and never onboarded.
            tenant = await tenants_repo.create_tenant(
                session,
                tenant_id=uuid4().hex,
                slug=SYSTEM_TENANT_SLUG,
                name="System",
                plan="ENTERPRISE",
                status="ACTIVE",
                metadata_json={"isSystemTenant": True},
            )
            await session.flush()
        if await users_repo.get_user_by_email(session, tenant.id, email) is not None:
            raise ValueError(f"A user with email {email} already exists in the system tenant")
        user = await users_repo.create_user(
            session,
            user_id=uuid4().hex,
            tenant_id=tenant.id,
            email=email,
            name=name,
            password_hash=await hash_password_async(password),
            role="OWNER",
            is_superuser=True,
        )
        await record_event(
            session=session,
            tenant_id=tenant.id,
            actor_type="system",
            actor_id="create_superuser",
            event_type="SUPERUSER_CREATED",
            resource_type="user",
            resource_id=user.id,
        )
        await session.commit()
        print(f"Superuser created: {user.email} ({user.id})")
        return 0


def main() -> int:
    args = _build_parser().parse_args()
    password = args.password or getpass.getpass("Superuser password: ")
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long", file=sys.stderr)
        return 2
    if password_too_long(password):
        print(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long", file=sys.stderr)
        return 2
    try:
        return asyncio.run(_create_superuser(args.email.strip().lower(), args.name.strip(), password))
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"create_superuser failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
