from __future__ import annotations
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildpipe.db.models import AuditEvent, AuditEventType

# source text never lands in the audit trail
_SCRUBBED_KEYS = frozenset({"files", "content"})


def scrub_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if k not in _SCRUBBED_KEYS}


async def write_audit_event(
    session: AsyncSession,
    *,
    job_id: str,
    event_type: AuditEventType,
    payload: Dict[str, Any],
    commit: bool = True
) -> AuditEvent:
    event = AuditEvent(job_id=job_id, event_type=event_type, payload=scrub_payload(payload))
    session.add(event)
    if commit:
        await session.commit()
    return event


async def list_audit_events(session: AsyncSession, job_id: str) -> List[AuditEvent]:
    res = await session.execute(
        select(AuditEvent).where(AuditEvent.job_id == job_id).order_by(AuditEvent.id.asc())
    )
    return list(res.scalars().all())
