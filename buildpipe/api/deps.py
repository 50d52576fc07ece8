from __future__ import annotations

from fastapi import Request

from buildpipe.core.config import settings
from buildpipe.db.session import AsyncSessionLocal
from buildpipe.domain.job_service import JobService
from buildpipe.domain.job_store import InMemoryJobStore, JobStore, SqlJobStore


def build_store(backend: str = "") -> JobStore:
    backend = (backend or settings.job_store_backend).lower()
    if backend == "memory":
        return InMemoryJobStore()
    if backend == "sql":
        return SqlJobStore(AsyncSessionLocal)
    raise ValueError(f"unknown job store backend: {backend}")


def get_job_service(request: Request) -> JobService:
    return request.app.state.job_service
