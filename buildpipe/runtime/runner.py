"""Remote build runner.

One job at a time: claim, package, extract, ``xcodebuild``, report. Every
failure inside a job becomes a ``failed`` report; nothing escapes into the
claim loop, which keeps polling until stopped.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol

import httpx

from buildpipe.core.config import settings
from buildpipe.core.errors import BuildPipeError
from buildpipe.domain.models import BuildJob, BuildStatus, JobPatch
from buildpipe.export.packager import export_project
from buildpipe.runtime.diagnostics import extract_compiler_errors
from buildpipe.runtime.log_stream import LogStreamer
from buildpipe.runtime.process import find_xcodebuild, run_streaming, xcodebuild_args
from buildpipe.runtime.workspace import extract_archive, locate_project

logger = logging.getLogger(__name__)

_REPORT_ATTEMPTS = 3


class RunnerQueue(Protocol):
    async def claim(self) -> Optional[BuildJob]: ...

    async def update(self, job_id: str, patch: JobPatch) -> None: ...

    async def export_archive(self, project_id: str) -> bytes: ...


def default_runner_id() -> str:
    return settings.runner_id or f"runner_{os.getpid()}"


class BuildRunner:
    def __init__(
        self,
        queue: RunnerQueue,
        *,
        runner_id: Optional[str] = None,
        poll_interval: Optional[float] = None,
        error_backoff: Optional[float] = None,
        flush_interval: Optional[float] = None,
        build_timeout: Optional[float] = None,
    ) -> None:
        self.queue = queue
        self.runner_id = runner_id or default_runner_id()
        self.poll_interval = settings.runner_poll_interval if poll_interval is None else poll_interval
        self.error_backoff = settings.runner_error_backoff if error_backoff is None else error_backoff
        self.flush_interval = settings.log_flush_interval if flush_interval is None else flush_interval
        self.build_timeout = settings.build_timeout_seconds if build_timeout is None else build_timeout
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        self._stopping.set()

    async def _pause(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_forever(self) -> None:
        logger.info("Runner %s polling for jobs", self.runner_id)
        while not self._stopping.is_set():
            try:
                job = await self.run_once()
            except httpx.HTTPError as e:
                logger.warning("Queue unreachable: %s", e)
                await self._pause(self.error_backoff)
                continue
            except Exception:
                logger.exception("Runner loop error")
                await self._pause(self.error_backoff)
                continue
            if job is None:
                await self._pause(self.poll_interval)
        logger.info("Runner %s stopped", self.runner_id)

    async def run_once(self) -> Optional[BuildJob]:
        job = await self.queue.claim()
        if job is None:
            return None
        logger.info("Claimed job %s (%s, attempt %d)", job.id, job.request.project_name, job.request.attempt)
        patch = await self.validate_job(job)
        logger.info("Job %s finished: %s", job.id, patch.status.value if patch.status else "?")
        return job

    # ------------------------------------------------------------------
    # one job
    # ------------------------------------------------------------------

    async def _archive_for(self, job: BuildJob) -> bytes:
        req = job.request
        if req.files:
            exported = export_project(req.files, req.project_name, req.bundle_id, req.development_team)
            return exported.content
        return await self.queue.export_archive(req.project_id)

    async def validate_job(self, job: BuildJob) -> JobPatch:
        try:
            await self.queue.update(job.id, JobPatch(
                status=BuildStatus.RUNNING,
                logs=[f"Runner {self.runner_id} validating…"],
            ))
            patch = await self._build(job)
        except BuildPipeError as e:
            # packaging, toolchain, spawn and timeout failures: no diagnostics
            logger.warning("Job %s infra failure: %s", job.id, e.message)
            patch = JobPatch(status=BuildStatus.FAILED, error=e.message, compiler_errors=[],
                             logs=[f"Runner error: {e.message}"])
        except Exception as e:
            logger.exception("Job %s runner error", job.id)
            patch = JobPatch(status=BuildStatus.FAILED, error=str(e) or "Runner error", compiler_errors=[],
                             logs=[f"Runner error: {e}"])
        await self._report(job.id, patch)
        return patch

    async def _report(self, job_id: str, patch: JobPatch) -> None:
        for attempt in range(1, _REPORT_ATTEMPTS + 1):
            try:
                await self.queue.update(job_id, patch)
                return
            except httpx.HTTPError as e:
                if attempt == _REPORT_ATTEMPTS:
                    raise
                logger.warning("Reporting job %s failed (attempt %d): %s", job_id, attempt, e)
                await self._pause(self.error_backoff)

    async def _build(self, job: BuildJob) -> JobPatch:
        content = await self._archive_for(job)

        with tempfile.TemporaryDirectory(prefix="buildpipe-") as tmp:
            root = Path(tmp)
            extract_archive(content, root)
            project = locate_project(root, job.request.project_name)
            scheme = project.stem
            xcodebuild, searched = await asyncio.to_thread(find_xcodebuild, settings.xcodebuild_path)
            argv = xcodebuild_args(xcodebuild, str(project), scheme, settings.simulator_destination)

            output: List[str] = []
            streamer = LogStreamer(
                lambda lines: self.queue.update(job.id, JobPatch(logs=lines)),
                interval=self.flush_interval,
                tolerate=(httpx.HTTPError,),
            )

            async def on_line(line: str) -> None:
                output.append(line)
                await streamer.add(line)

            await streamer.add("xcodebuild " + " ".join(argv[1:]))
            await streamer.flush(force=True)
            try:
                code = await run_streaming(
                    argv,
                    cwd=str(project.parent),
                    on_line=on_line,
                    timeout=self.build_timeout or None,
                    searched=searched,
                )
            finally:
                await streamer.flush(force=True)
            # lines the queue never acknowledged ride along with the result
            unsent = streamer.take()

        if code == 0:
            return JobPatch(status=BuildStatus.SUCCEEDED, exit_code=0, logs=[*unsent, "✅ Build succeeded"])
        return JobPatch(
            status=BuildStatus.FAILED,
            exit_code=code,
            error="xcodebuild failed",
            compiler_errors=extract_compiler_errors(output, settings.max_compiler_errors),
            logs=[*unsent, "❌ Build failed (see logs above)"],
        )
