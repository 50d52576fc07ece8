"""HTTP client for the build queue API.

Used by the runner (claim / update / export) and by anyone who submits a
build and waits for its chain to finish (submit / poll).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from buildpipe.core.config import settings
from buildpipe.core.errors import PackagingError
from buildpipe.domain.models import BuildJob, BuildRequest, JobPatch, SourceFile
from buildpipe.poll.client import PollResult, poll

logger = logging.getLogger(__name__)

RUNNER_ID_HEADER = "X-Runner-Id"


class QueueClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        runner_id: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.server_url).rstrip("/")
        self.runner_id = runner_id
        headers = {RUNNER_ID_HEADER: runner_id} if runner_id else {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "QueueClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # submission side
    # ------------------------------------------------------------------

    async def submit(self, request: BuildRequest) -> str:
        resp = await self._client.post("/jobs", json=request.model_dump(mode="json", by_alias=True))
        resp.raise_for_status()
        return resp.json()["id"]

    async def get_job(self, job_id: str) -> BuildJob:
        resp = await self._client.get(f"/jobs/{job_id}")
        resp.raise_for_status()
        return BuildJob.model_validate(resp.json())

    async def retry(self, job_id: str, files: Sequence[SourceFile]) -> str:
        body = {"files": [f.model_dump(mode="json", by_alias=True) for f in files]}
        resp = await self._client.post(f"/jobs/{job_id}/retry", json=body)
        resp.raise_for_status()
        return resp.json()["id"]

    async def poll(
        self,
        job_id: str,
        *,
        interval: Optional[float] = None,
        ceiling: Optional[float] = None,
    ) -> PollResult:
        return await poll(
            job_id,
            self.get_job,
            interval=settings.poll_interval if interval is None else interval,
            ceiling=settings.poll_ceiling if ceiling is None else ceiling,
        )

    # ------------------------------------------------------------------
    # runner side
    # ------------------------------------------------------------------

    async def claim(self) -> Optional[BuildJob]:
        resp = await self._client.post("/jobs/claim")
        if resp.status_code == 204:
            return None
        resp.raise_for_status()
        job = resp.json().get("job")
        return BuildJob.model_validate(job) if job else None

    async def update(self, job_id: str, patch: JobPatch) -> None:
        body: Dict[str, Any] = patch.model_dump(mode="json", by_alias=True, exclude_unset=True)
        resp = await self._client.post(f"/jobs/{job_id}/update", json=body)
        resp.raise_for_status()

    async def append_logs(self, job_id: str, lines: List[str]) -> None:
        await self.update(job_id, JobPatch(logs=lines))

    async def export_archive(self, project_id: str) -> bytes:
        try:
            resp = await self._client.get(f"/projects/{project_id}/export")
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PackagingError(f"Failed to download project archive: {e}") from e
        return resp.content
