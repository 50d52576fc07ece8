from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Set

from buildpipe.domain.models import BuildStatus

_ALLOWED: Dict[BuildStatus, Set[BuildStatus]] = {
    # queued -> running happens only through JobStore.claim()
    BuildStatus.QUEUED: {BuildStatus.FAILED},
    BuildStatus.RUNNING: {BuildStatus.SUCCEEDED, BuildStatus.FAILED},
    BuildStatus.SUCCEEDED: set(),
    BuildStatus.FAILED: set(),
}

@dataclass(frozen=True)
class TransitionError(Exception):
    from_status: BuildStatus
    to_status: BuildStatus
    def __str__(self) -> str:
        return f"invalid transition: {self.from_status.value} -> {self.to_status.value}"

def is_transition_allowed(from_status: BuildStatus, to_status: BuildStatus) -> bool:
    # re-reporting the current status is a no-op (runners re-send "running")
    return from_status == to_status or to_status in _ALLOWED.get(from_status, set())

def ensure_transition_allowed(from_status: BuildStatus, to_status: BuildStatus) -> None:
    if not is_transition_allowed(from_status, to_status):
        raise TransitionError(from_status=from_status, to_status=to_status)
