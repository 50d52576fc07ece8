"""Job store: persistence for build jobs and their audit trail.

``claim()`` is the one operation with a concurrency contract: it moves a
single ``queued`` job to ``running`` and no two callers ever receive the
same job. Everything else is plain CRUD; log appends are safe without
locking because only the runner holding a job writes to it.
"""

from __future__ import annotations

import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from buildpipe.core.audit import list_audit_events, scrub_payload, write_audit_event
from buildpipe.core.config import settings
from buildpipe.core.errors import NotFoundError
from buildpipe.db.models import AuditEventType, BuildJobRow
from buildpipe.domain.models import BuildJob, BuildRequest, BuildStatus, JobPatch

_TERMINAL = {BuildStatus.SUCCEEDED, BuildStatus.FAILED}
_CLAIM_RETRIES = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_job_id() -> str:
    return str(uuid.uuid4())


def _trim_logs(lines: List[str], limit: int) -> List[str]:
    if limit > 0 and len(lines) > limit:
        return lines[len(lines) - limit:]
    return lines


@dataclass(frozen=True)
class JobEvent:
    id: int
    job_id: str
    event_type: AuditEventType
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


class JobStore(Protocol):
    async def submit(self, request: BuildRequest) -> BuildJob: ...

    async def get(self, job_id: str) -> Optional[BuildJob]: ...

    async def claim(self, runner_id: str) -> Optional[BuildJob]: ...

    async def update(self, job_id: str, patch: JobPatch) -> BuildJob: ...

    async def list_jobs(self, *, status: Optional[BuildStatus] = None, limit: int = 50) -> List[BuildJob]: ...

    async def latest_for_project(self, project_id: str) -> Optional[BuildJob]: ...

    async def record_event(self, job_id: str, event_type: AuditEventType, payload: Dict[str, Any]) -> None: ...

    async def list_events(self, job_id: str) -> List[JobEvent]: ...


# ---------------------------------------------------------------------------
# in-memory
# ---------------------------------------------------------------------------


class InMemoryJobStore:
    """Process-local store. Critical sections never await, so one lock
    serializes them across threads and coroutines alike."""

    def __init__(self, *, max_log_lines: Optional[int] = None) -> None:
        self._max_log_lines = settings.max_log_lines if max_log_lines is None else max_log_lines
        self._jobs: Dict[str, BuildJob] = {}
        self._queue: Deque[str] = deque()
        self._events: List[JobEvent] = []
        self._lock = threading.Lock()

    async def submit(self, request: BuildRequest) -> BuildJob:
        job = BuildJob(id=_new_job_id(), request=request, created_at=_utcnow())
        with self._lock:
            self._jobs[job.id] = job
            self._queue.append(job.id)
        return job.model_copy(deep=True)

    async def get(self, job_id: str) -> Optional[BuildJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    async def claim(self, runner_id: str) -> Optional[BuildJob]:
        with self._lock:
            while self._queue:
                job_id = self._queue.popleft()
                job = self._jobs.get(job_id)
                if job is None or job.status != BuildStatus.QUEUED:
                    continue
                job.status = BuildStatus.RUNNING
                job.runner_id = runner_id
                job.started_at = _utcnow()
                return job.model_copy(deep=True)
        return None

    async def update(self, job_id: str, patch: JobPatch) -> BuildJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError("job not found")
            if patch.logs:
                job.logs = _trim_logs([*job.logs, *patch.logs], self._max_log_lines)
            for name, value in patch.replaced_fields().items():
                setattr(job, name, value)
            if job.status in _TERMINAL and job.finished_at is None:
                job.finished_at = _utcnow()
            return job.model_copy(deep=True)

    async def list_jobs(self, *, status: Optional[BuildStatus] = None, limit: int = 50) -> List[BuildJob]:
        with self._lock:
            jobs = [j for j in self._jobs.values() if status is None or j.status == status]
            # dicts keep insertion order, newest last
            return [j.model_copy(deep=True) for j in reversed(jobs)][:limit]

    async def latest_for_project(self, project_id: str) -> Optional[BuildJob]:
        with self._lock:
            for job in reversed(list(self._jobs.values())):
                if job.request.project_id == project_id and job.request.files:
                    return job.model_copy(deep=True)
        return None

    async def record_event(self, job_id: str, event_type: AuditEventType, payload: Dict[str, Any]) -> None:
        with self._lock:
            self._events.append(
                JobEvent(
                    id=len(self._events) + 1,
                    job_id=job_id,
                    event_type=event_type,
                    payload=scrub_payload(payload),
                    created_at=_utcnow(),
                )
            )

    async def list_events(self, job_id: str) -> List[JobEvent]:
        with self._lock:
            return [e for e in self._events if e.job_id == job_id]


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


def _row_to_job(row: BuildJobRow) -> BuildJob:
    return BuildJob(
        id=row.id,
        status=row.status,
        request=BuildRequest.model_validate(row.request),
        logs=list(row.logs or []),
        compiler_errors=list(row.compiler_errors or []),
        error=row.error,
        exit_code=row.exit_code,
        next_job_id=row.next_job_id,
        auto_fix_in_progress=bool(row.auto_fix_in_progress),
        runner_id=row.runner_id,
        created_at=row.created_at,
        started_at=row.started_at,
        finished_at=row.finished_at,
    )


class SqlJobStore:
    """Store backed by the ``build_jobs`` / ``audit_events`` tables.

    ``claim`` is a compare-and-swap: pick the oldest queued id, then
    ``UPDATE ... WHERE id = :id AND status = 'queued'``. A rowcount of 0
    means another runner won the race and we try the next candidate.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession], *, max_log_lines: Optional[int] = None) -> None:
        self._session_factory = session_factory
        self._max_log_lines = settings.max_log_lines if max_log_lines is None else max_log_lines

    async def submit(self, request: BuildRequest) -> BuildJob:
        row = BuildJobRow(
            id=_new_job_id(),
            status=BuildStatus.QUEUED,
            project_id=request.project_id,
            request=request.model_dump(mode="json"),
            logs=[],
            compiler_errors=[],
            auto_fix_in_progress=False,
            created_at=_utcnow(),
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _row_to_job(row)

    async def get(self, job_id: str) -> Optional[BuildJob]:
        async with self._session_factory() as session:
            row = await session.get(BuildJobRow, job_id)
            return _row_to_job(row) if row else None

    async def claim(self, runner_id: str) -> Optional[BuildJob]:
        async with self._session_factory() as session:
            for _ in range(_CLAIM_RETRIES):
                res = await session.execute(
                    select(BuildJobRow.id)
                    .where(BuildJobRow.status == BuildStatus.QUEUED)
                    .order_by(BuildJobRow.created_at.asc(), BuildJobRow.id.asc())
                    .limit(1)
                )
                candidate = res.scalar_one_or_none()
                if candidate is None:
                    await session.commit()
                    return None

                swapped = await session.execute(
                    update(BuildJobRow)
                    .where(BuildJobRow.id == candidate, BuildJobRow.status == BuildStatus.QUEUED)
                    .values(status=BuildStatus.RUNNING, runner_id=runner_id, started_at=_utcnow())
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                if swapped.rowcount == 1:
                    row = await session.get(BuildJobRow, candidate, populate_existing=True)
                    return _row_to_job(row) if row else None
        return None

    async def update(self, job_id: str, patch: JobPatch) -> BuildJob:
        async with self._session_factory() as session:
            row = await session.get(BuildJobRow, job_id)
            if row is None:
                raise NotFoundError("job not found")
            if patch.logs:
                row.logs = _trim_logs([*(row.logs or []), *patch.logs], self._max_log_lines)
            for name, value in patch.replaced_fields().items():
                setattr(row, name, value)
            if row.status in _TERMINAL and row.finished_at is None:
                row.finished_at = _utcnow()
            await session.commit()
            await session.refresh(row)
            return _row_to_job(row)

    async def list_jobs(self, *, status: Optional[BuildStatus] = None, limit: int = 50) -> List[BuildJob]:
        stmt = select(BuildJobRow).order_by(BuildJobRow.created_at.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(BuildJobRow.status == status)
        async with self._session_factory() as session:
            res = await session.execute(stmt)
            return [_row_to_job(r) for r in res.scalars().all()]

    async def latest_for_project(self, project_id: str) -> Optional[BuildJob]:
        async with self._session_factory() as session:
            res = await session.execute(
                select(BuildJobRow)
                .where(BuildJobRow.project_id == project_id)
                .order_by(BuildJobRow.created_at.desc())
            )
            for row in res.scalars():
                if (row.request or {}).get("files"):
                    return _row_to_job(row)
        return None

    async def record_event(self, job_id: str, event_type: AuditEventType, payload: Dict[str, Any]) -> None:
        async with self._session_factory() as session:
            await write_audit_event(session, job_id=job_id, event_type=event_type, payload=payload)

    async def list_events(self, job_id: str) -> List[JobEvent]:
        async with self._session_factory() as session:
            return [
                JobEvent(
                    id=e.id,
                    job_id=e.job_id,
                    event_type=e.event_type,
                    payload=dict(e.payload or {}),
                    created_at=e.created_at,
                )
                for e in await list_audit_events(session, job_id)
            ]
