from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.db import set_tenant_context
from clinicflow.models import AuditLog

_log = logging.getLogger("clinicflow.audit")


async def record(
    session: AsyncSession,
    *,
    clinic_id: UUID | None,
    actor_user_id: UUID | None,
    action: str,
    target_type: str,
    target_id: UUID | None = None,
    meta: dict[str, Any] | None = None,
) -> AuditLog | None:
    """Append an audit row inside the caller's transaction.

    Users without a clinic have no audit trail; the call is a no-op then.
    """
    if clinic_id is None:
        _log.debug("audit skipped, no clinic", extra={"action": action})
        return None

    await set_tenant_context(session, clinic_id)
    row = AuditLog(
        clinic_id=clinic_id,
        actor_user_id=actor_user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta=meta or {},
    )
    session.add(row)
    await session.flush()
    return row


async def list_for_clinic(session: AsyncSession, clinic_id: UUID, *, limit: int = 100) -> list[AuditLog]:
    """Newest first. Binds the tenant so the RLS policy on audit_logs admits the rows."""
    await set_tenant_context(session, clinic_id)
    res = await session.execute(
        select(AuditLog)
        .where(AuditLog.clinic_id == clinic_id)
        .order_by(AuditLog.occurred_at.desc())
        .limit(limit)
    )
    return list(res.scalars())
