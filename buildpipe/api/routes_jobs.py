from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Response

from buildpipe.api.deps import get_job_service
from buildpipe.api.schemas_events import AuditEventResponse
from buildpipe.api.schemas_jobs import (
    ClaimResponse,
    JobCreatedResponse,
    JobCreateRequest,
    JobRetryRequest,
    ReleaseAutoFixRequest,
)
from buildpipe.domain.job_service import JobService
from buildpipe.domain.models import BuildJob, BuildStatus, JobPatch

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobCreatedResponse, status_code=201)
async def create_job(req: JobCreateRequest, service: JobService = Depends(get_job_service)):
    job = await service.submit(req.to_build_request())
    return JobCreatedResponse(id=job.id, status=job.status)


@router.get("", response_model=list[BuildJob])
async def list_jobs(
    status: Optional[BuildStatus] = None,
    limit: int = Query(50, ge=1, le=500),
    service: JobService = Depends(get_job_service),
):
    return await service.list_jobs(status=status, limit=limit)


@router.post("/claim", response_model=ClaimResponse, responses={204: {"description": "No queued job"}})
async def claim_job(
    runner_id: str = Header("", alias="X-Runner-Id"),
    service: JobService = Depends(get_job_service),
):
    job = await service.claim(runner_id or "anonymous")
    if job is None:
        return Response(status_code=204)
    return ClaimResponse(job=job)


@router.get("/{job_id}", response_model=BuildJob)
async def get_job(job_id: str, service: JobService = Depends(get_job_service)):
    return await service.get(job_id)


@router.get("/{job_id}/events", response_model=list[AuditEventResponse])
async def get_job_events(job_id: str, service: JobService = Depends(get_job_service)):
    events = await service.events(job_id)
    return [AuditEventResponse.model_validate(e) for e in events]


@router.post("/{job_id}/update", response_model=BuildJob)
async def update_job(
    job_id: str,
    patch: JobPatch,
    background: BackgroundTasks,
    service: JobService = Depends(get_job_service),
):
    outcome = await service.apply_update(job_id, patch)
    if outcome.auto_fix_requested:
        background.add_task(service.notify_auto_fix, outcome.job)
    return outcome.job


@router.post("/{job_id}/retry", response_model=JobCreatedResponse, status_code=201)
async def retry_job(job_id: str, req: JobRetryRequest, service: JobService = Depends(get_job_service)):
    job = await service.submit_retry(job_id, req.files, project_name=req.project_name)
    return JobCreatedResponse(id=job.id, status=job.status)


@router.post("/{job_id}/release-auto-fix", response_model=BuildJob)
async def release_auto_fix(
    job_id: str,
    req: Optional[ReleaseAutoFixRequest] = None,
    service: JobService = Depends(get_job_service),
):
    return await service.release_auto_fix(job_id, reason=req.reason if req else None)
