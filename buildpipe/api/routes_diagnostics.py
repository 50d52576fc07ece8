from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from buildpipe.api.deps import get_job_service
from buildpipe.api.schemas_diagnostics import DiagnosticEntry, JobDiagnosticsResponse
from buildpipe.diagnostics.classifier import classify_all
from buildpipe.diagnostics.report import DiagnosticReport, aggregate_runs
from buildpipe.domain.job_service import JobService
from buildpipe.domain.models import BuildStatus, ErrorCategory

router = APIRouter(tags=["diagnostics"])


@router.get("/jobs/{job_id}/diagnostics", response_model=JobDiagnosticsResponse)
async def job_diagnostics(
    job_id: str,
    chain: bool = False,
    service: JobService = Depends(get_job_service),
):
    jobs = await service.chain(job_id) if chain else [await service.get(job_id)]
    entries = [
        DiagnosticEntry(
            job_id=job.id,
            raw=d.raw,
            message=d.message,
            category=d.category,
            symbol=d.symbol,
            suggestion=d.suggestion,
        )
        for job in jobs
        for d in classify_all(job.compiler_errors)
    ]
    return JobDiagnosticsResponse(
        job_ids=[j.id for j in jobs],
        report=aggregate_runs(j.compiler_errors for j in jobs),
        diagnostics=entries,
    )


@router.get("/diagnostics/summary", response_model=DiagnosticReport)
async def diagnostics_summary(
    category: Optional[ErrorCategory] = None,
    limit: int = Query(200, ge=1, le=1000),
    top: Optional[int] = Query(None, ge=1),
    service: JobService = Depends(get_job_service),
):
    """Error patterns across recent failed builds."""
    failed = await service.list_jobs(status=BuildStatus.FAILED, limit=limit)
    return aggregate_runs((j.compiler_errors for j in failed), category=category, top=top)
