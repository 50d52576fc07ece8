from datetime import datetime
from typing import Optional

from pydantic import ConfigDict

from buildpipe.db.models import AuditEventType
from buildpipe.domain.models import WireModel


class AuditEventResponse(WireModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: str
    event_type: AuditEventType
    payload: dict
    created_at: Optional[datetime] = None
