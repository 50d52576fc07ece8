from typing import List, Optional

from pydantic import Field

from buildpipe.diagnostics.report import DiagnosticReport
from buildpipe.domain.models import ErrorCategory, WireModel


class DiagnosticEntry(WireModel):
    job_id: str
    raw: str
    message: str
    category: ErrorCategory
    symbol: Optional[str] = None
    suggestion: str


class JobDiagnosticsResponse(WireModel):
    job_ids: List[str]
    report: DiagnosticReport
    diagnostics: List[DiagnosticEntry] = Field(default_factory=list)
