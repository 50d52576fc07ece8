from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from buildpipe.api.deps import get_job_service
from buildpipe.api.schemas_jobs import ExportRequest
from buildpipe.domain.job_service import JobService
from buildpipe.export.packager import ExportedArchive, export_project

router = APIRouter(prefix="/projects", tags=["projects"])


def _zip_response(archive: ExportedArchive) -> Response:
    return Response(
        content=archive.content,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{archive.filename}"',
            "X-Project-Name": archive.project_name,
        },
    )


@router.post("/{project_id}/export")
async def export_inline(project_id: str, req: ExportRequest):
    archive = export_project(req.files, req.project_name, req.bundle_id, req.development_team)
    return _zip_response(archive)


@router.get("/{project_id}/export")
async def export_stored(project_id: str, service: JobService = Depends(get_job_service)):
    """Archive of the files attached to the project's most recent job."""
    job = await service.project_files(project_id)
    req = job.request
    archive = export_project(req.files, req.project_name, req.bundle_id, req.development_team)
    return _zip_response(archive)
