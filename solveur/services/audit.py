from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.domain.models import AuditEvent


logger = logging.getLogger(__name__)

# Key fragments that mark credentials or tenant-authored text.
_REDACT_FRAGMENTS = ("password", "token", "secret", "authorization", "api_key", "content", "message")
REDACTED = "[REDACTED]"


def sanitize_metadata(value: Any) -> Any:
    if isinstance(value, list):
        return [sanitize_metadata(item) for item in value]
    if not isinstance(value, dict):
        return value
    return {
        str(key): REDACTED
        if any(fragment in str(key).lower() for fragment in _REDACT_FRAGMENTS)
        else sanitize_metadata(item)
        for key, item in value.items()
    }


async def record_event(
    session: AsyncSession,
    *,
    tenant_id: str | None,
    event_type: str,
    actor_type: str = "system",
    actor_id: str | None = None,
    actor_role: str | None = None,
    outcome: str = "success",
    resource_type: str | None = None,
    resource_id: str | None = None,
    request_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    commit: bool = False,
) -> None:
    """Add an audit row to the caller's transaction.

    With ``commit`` the row is committed here; a failed write is logged and
    rolled back rather than raised, so sign-in and admin actions still answer.
    """
    session.add(
        AuditEvent(
            occurred_at=datetime.now(timezone.utc),
            tenant_id=tenant_id,
            actor_type=actor_type,
            actor_id=actor_id,
            actor_role=actor_role,
            event_type=event_type,
            outcome=outcome,
            resource_type=resource_type,
            resource_id=resource_id,
            request_id=request_id,
            metadata_json=sanitize_metadata(metadata or {}),
        )
    )
    if not commit:
        return
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("audit_event_write_failed event_type=%s request_id=%s", event_type, request_id, exc_info=exc)
