from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, String, DateTime, Enum, Text, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from buildpipe.db.base import Base
from buildpipe.domain.models import BuildStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BuildJobRow(Base):
    __tablename__ = "build_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)  # UUID string
    status: Mapped[BuildStatus] = mapped_column(Enum(BuildStatus), nullable=False, default=BuildStatus.QUEUED, index=True)

    project_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    # full BuildRequest (files included); immutable once the job exists
    request: Mapped[dict] = mapped_column(JSON, nullable=False)

    logs: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    compiler_errors: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    exit_code: Mapped[int | None] = mapped_column(Integer, nullable=True)

    next_job_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    auto_fix_in_progress: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    runner_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class AuditEventType(str, enum.Enum):
    JOB_CREATED = "JOB_CREATED"
    JOB_CLAIMED = "JOB_CLAIMED"
    STATUS_CHANGED = "STATUS_CHANGED"
    CHAIN_LINKED = "CHAIN_LINKED"
    AUTO_FIX_REQUESTED = "AUTO_FIX_REQUESTED"
    AUTO_FIX_RELEASED = "AUTO_FIX_RELEASED"


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    job_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    event_type: Mapped[AuditEventType] = mapped_column(Enum(AuditEventType), nullable=False)

    # JSON payload: status pairs, runner ids, linked job ids. Never file contents.
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
