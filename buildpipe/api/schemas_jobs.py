from typing import List, Optional

from pydantic import Field

from buildpipe.core.config import settings
from buildpipe.domain.models import BuildJob, BuildRequest, BuildStatus, SourceFile, WireModel


class JobCreateRequest(WireModel):
    project_id: str
    files: List[SourceFile] = Field(default_factory=list)
    project_name: str = ""
    bundle_id: str = ""
    development_team: Optional[str] = None
    auto_fix: bool = False
    max_attempts: Optional[int] = Field(default=None, ge=1)

    def to_build_request(self) -> BuildRequest:
        return BuildRequest(
            project_id=self.project_id,
            files=self.files,
            project_name=self.project_name,
            bundle_id=self.bundle_id,
            development_team=self.development_team,
            auto_fix=self.auto_fix,
            max_attempts=self.max_attempts or settings.auto_fix_max_attempts,
        )


class JobCreatedResponse(WireModel):
    id: str
    status: BuildStatus


class ClaimResponse(WireModel):
    job: BuildJob


class JobRetryRequest(WireModel):
    files: List[SourceFile]
    project_name: Optional[str] = None


class ReleaseAutoFixRequest(WireModel):
    reason: Optional[str] = None


class ExportRequest(WireModel):
    files: List[SourceFile]
    project_name: str = ""
    bundle_id: str = ""
    development_team: Optional[str] = None
