from fastapi import APIRouter, Depends, Request

from buildpipe.api.deps import get_job_service
from buildpipe.domain.job_service import JobService
from buildpipe.domain.job_store import SqlJobStore

router = APIRouter(tags=["health"])


@router.get("/")
def root(request: Request):
    return {"service": "buildpipe", "version": request.app.version}


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/ready")
def ready(service: JobService = Depends(get_job_service)):
    backend = "sql" if isinstance(service.store, SqlJobStore) else "memory"
    return {"ready": True, "store": backend}
