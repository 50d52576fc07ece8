from __future__ import annotations

import enum
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from buildpipe.core.config import settings


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BuildStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ErrorCategory(str, enum.Enum):
    MISSING_IMPORT = "missing_import"
    TYPE_MISMATCH = "type_mismatch"
    TRAILING_CLOSURE = "trailing_closure"
    MISSING_CONFORMANCE = "missing_conformance"
    MEMBER_NOT_FOUND = "member_not_found"
    MISSING_RETURN = "missing_return"
    AMBIGUOUS_REFERENCE = "ambiguous_reference"
    ARGUMENT_MISMATCH = "argument_mismatch"
    DEPRECATED_API = "deprecated_api"
    BINDING_ERROR = "binding_error"
    OTHER = "other"


class SourceFile(WireModel):
    path: str
    content: str = ""


class WidgetTargetSpec(WireModel):
    name: str
    bundle_id: str
    source_paths: List[str]
    manifest_path: str


class ProjectDescriptorSpec(WireModel):
    project_name: str
    bundle_id: str
    development_team: Optional[str] = None
    deployment_baseline: str = "17.0"
    privacy_permissions: Dict[str, str] = Field(default_factory=dict)
    widget_target: Optional[WidgetTargetSpec] = None


class BuildRequest(WireModel):
    project_id: str
    files: List[SourceFile] = Field(default_factory=list)
    project_name: str
    bundle_id: str
    development_team: Optional[str] = None
    auto_fix: bool = False
    attempt: int = 1
    max_attempts: int = Field(default_factory=lambda: settings.auto_fix_max_attempts)
    parent_job_id: Optional[str] = None

    @property
    def attempts_remaining(self) -> bool:
        return self.attempt < self.max_attempts


class BuildJob(WireModel):
    id: str
    status: BuildStatus = BuildStatus.QUEUED
    request: BuildRequest
    logs: List[str] = Field(default_factory=list)
    compiler_errors: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    exit_code: Optional[int] = None
    next_job_id: Optional[str] = None
    auto_fix_in_progress: bool = False
    runner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        if self.status == BuildStatus.SUCCEEDED:
            return True
        return (
            self.status == BuildStatus.FAILED
            and self.next_job_id is None
            and not self.auto_fix_in_progress
        )


class JobPatch(WireModel):
    """Partial update. ``logs`` is appended; every other set field replaces."""

    status: Optional[BuildStatus] = None
    logs: List[str] = Field(default_factory=list)
    compiler_errors: Optional[List[str]] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None
    next_job_id: Optional[str] = None
    auto_fix_in_progress: Optional[bool] = None

    def replaced_fields(self) -> Dict[str, object]:
        data = self.model_dump(exclude_unset=True, exclude={"logs"})
        return {k: v for k, v in data.items() if v is not None or k == "error"}
