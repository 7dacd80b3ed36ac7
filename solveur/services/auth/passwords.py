from __future__ import annotations

import asyncio

import bcrypt

from solveur.core.config import get_settings


# bcrypt only reads the first 72 bytes; newer releases refuse longer secrets outright.
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str, *, rounds: int | None = None) -> str:
    if password_too_long(password):
        raise ValueError(f"password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    cost = rounds or get_settings().auth_bcrypt_rounds
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(cost)).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    # SSO-only users have no hash and can never sign in with a password.
    if not password_hash or password_too_long(password):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


async def hash_password_async(password: str, *, rounds: int | None = None) -> str:
    # bcrypt is CPU bound; keep it off the event loop so other requests keep flowing.
    return await asyncio.to_thread(hash_password, password, rounds=rounds)


async def verify_password_async(password: str, password_hash: str | None) -> bool:
    return await asyncio.to_thread(verify_password, password, password_hash)
