from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import httpx

from buildpipe.core.config import settings
from buildpipe.core.errors import ConflictError, NoSourceFilesError, NotFoundError
from buildpipe.db.models import AuditEventType
from buildpipe.domain.job_store import JobEvent, JobStore
from buildpipe.domain.models import BuildJob, BuildRequest, BuildStatus, JobPatch, SourceFile
from buildpipe.domain.state_machine import ensure_transition_allowed
from buildpipe.synth.naming import (
    normalize_source_files,
    resolve_bundle_id,
    sanitize_development_team,
    sanitize_project_name,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateOutcome:
    job: BuildJob
    auto_fix_requested: bool = False


def _has_swift(files: Sequence[SourceFile]) -> bool:
    return any(f.path.endswith(".swift") for f in files)


class JobService:
    """Job lifecycle on top of a :class:`JobStore`.

    The store only persists; status rules, audit events and the auto-fix
    chain live here so every backend behaves the same.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        webhook_url: Optional[str] = None,
        http_client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ) -> None:
        self.store = store
        self._webhook_url = settings.auto_fix_webhook_url if webhook_url is None else webhook_url
        self._http_client_factory = http_client_factory or (lambda: httpx.AsyncClient(timeout=10.0))

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    async def get(self, job_id: str) -> BuildJob:
        job = await self.store.get(job_id)
        if job is None:
            raise NotFoundError("job not found")
        return job

    async def list_jobs(self, *, status: Optional[BuildStatus] = None, limit: int = 50) -> List[BuildJob]:
        return await self.store.list_jobs(status=status, limit=limit)

    async def events(self, job_id: str) -> List[JobEvent]:
        await self.get(job_id)
        return await self.store.list_events(job_id)

    async def chain(self, job_id: str) -> List[BuildJob]:
        """Every attempt of the chain ``job_id`` belongs to, oldest first."""
        job = await self.get(job_id)
        seen = {job.id}
        while job.request.parent_job_id and job.request.parent_job_id not in seen:
            parent = await self.store.get(job.request.parent_job_id)
            if parent is None:
                break
            seen.add(parent.id)
            job = parent

        chain = [job]
        while job.next_job_id and job.next_job_id not in {j.id for j in chain}:
            nxt = await self.store.get(job.next_job_id)
            if nxt is None:
                break
            chain.append(nxt)
            job = nxt
        return chain

    async def project_files(self, project_id: str) -> BuildJob:
        job = await self.store.latest_for_project(project_id)
        if job is None:
            raise NotFoundError(f"no stored files for project {project_id}")
        return job

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    async def submit(self, request: BuildRequest) -> BuildJob:
        files = normalize_source_files(request.files)
        if files and not _has_swift(files):
            raise NoSourceFilesError()
        if not request.files:
            # runner falls back to the project's stored files
            await self.project_files(request.project_id)

        request = request.model_copy(update={
            "files": files,
            "project_name": sanitize_project_name(request.project_name),
            "bundle_id": resolve_bundle_id(request.bundle_id),
            "development_team": sanitize_development_team(request.development_team) or None,
        })
        job = await self.store.submit(request)
        await self.store.record_event(job.id, AuditEventType.JOB_CREATED, {
            "project_id": request.project_id,
            "project_name": request.project_name,
            "file_count": len(request.files),
            "attempt": request.attempt,
            "parent_job_id": request.parent_job_id,
        })
        logger.info("Queued job %s for project %s (attempt %d/%d)",
                    job.id, request.project_id, request.attempt, request.max_attempts)
        return job

    async def claim(self, runner_id: str) -> Optional[BuildJob]:
        job = await self.store.claim(runner_id)
        if job is not None:
            await self.store.record_event(job.id, AuditEventType.JOB_CLAIMED, {"runner_id": runner_id})
            logger.info("Job %s claimed by %s", job.id, runner_id)
        return job

    async def apply_update(self, job_id: str, patch: JobPatch) -> UpdateOutcome:
        current = await self.get(job_id)
        if patch.status is not None:
            ensure_transition_allowed(current.status, patch.status)

        job = await self.store.update(job_id, patch)
        if patch.status is not None and patch.status != current.status:
            await self.store.record_event(job_id, AuditEventType.STATUS_CHANGED, {
                "from": current.status.value,
                "to": patch.status.value,
                "exit_code": job.exit_code,
                "compiler_errors": len(job.compiler_errors),
            })
            logger.info("Job %s: %s -> %s", job_id, current.status.value, patch.status.value)

        if self._wants_auto_fix(job):
            job = await self.store.update(job_id, JobPatch(auto_fix_in_progress=True))
            await self.store.record_event(job_id, AuditEventType.AUTO_FIX_REQUESTED, {
                "attempt": job.request.attempt,
                "max_attempts": job.request.max_attempts,
            })
            return UpdateOutcome(job=job, auto_fix_requested=True)
        return UpdateOutcome(job=job)

    def _wants_auto_fix(self, job: BuildJob) -> bool:
        # infra failures carry no compiler errors and are never chained
        return (
            bool(self._webhook_url)
            and job.status == BuildStatus.FAILED
            and bool(job.compiler_errors)
            and job.request.auto_fix
            and job.request.attempts_remaining
            and job.next_job_id is None
            and not job.auto_fix_in_progress
        )

    async def notify_auto_fix(self, job: BuildJob) -> None:
        """POST the failed job to the auto-fix webhook.

        Runs after the response is sent. If the hook cannot be reached the
        in-progress flag is released so pollers see a terminal failure.
        """
        body = {
            "failedJobId": job.id,
            "projectId": job.request.project_id,
            "attempt": job.request.attempt,
            "maxAttempts": job.request.max_attempts,
            "compilerErrors": job.compiler_errors,
        }
        try:
            async with self._http_client_factory() as client:
                resp = await client.post(self._webhook_url, json=body)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Auto-fix webhook failed for job %s: %s", job.id, e)
            await self.release_auto_fix(job.id, reason=f"webhook failed: {e}")

    async def submit_retry(
        self,
        failed_job_id: str,
        files: Sequence[SourceFile],
        *,
        project_name: Optional[str] = None,
    ) -> BuildJob:
        failed = await self.get(failed_job_id)
        if failed.status != BuildStatus.FAILED:
            raise ConflictError(f"job {failed_job_id} is {failed.status.value}, not failed")
        if not failed.compiler_errors:
            raise ConflictError(f"job {failed_job_id} failed without compiler errors; infra failures are not retried")
        if failed.next_job_id:
            raise ConflictError(f"job {failed_job_id} already continues as {failed.next_job_id}")
        if not failed.request.attempts_remaining:
            raise ConflictError(
                f"job {failed_job_id} used {failed.request.attempt} of {failed.request.max_attempts} attempts"
            )
        if not _has_swift(files):
            raise NoSourceFilesError()

        prev = failed.request
        successor = await self.submit(prev.model_copy(update={
            "files": list(files),
            "project_name": project_name or prev.project_name,
            "auto_fix": True,
            "attempt": prev.attempt + 1,
            "parent_job_id": failed.id,
        }))
        await self.store.update(failed.id, JobPatch(
            next_job_id=successor.id,
            auto_fix_in_progress=False,
            logs=[f"Auto-fix attempt {prev.attempt + 1}/{prev.max_attempts} queued as job {successor.id}"],
        ))
        await self.store.record_event(failed.id, AuditEventType.CHAIN_LINKED, {
            "next_job_id": successor.id,
            "attempt": prev.attempt + 1,
        })
        logger.info("Job %s continues as %s", failed.id, successor.id)
        return successor

    async def release_auto_fix(self, job_id: str, *, reason: Optional[str] = None) -> BuildJob:
        job = await self.get(job_id)
        if not job.auto_fix_in_progress:
            return job
        job = await self.store.update(job_id, JobPatch(auto_fix_in_progress=False))
        await self.store.record_event(job_id, AuditEventType.AUTO_FIX_RELEASED, {"reason": reason})
        return job
