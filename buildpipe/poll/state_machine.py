from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Optional, Set

from buildpipe.domain.models import BuildJob, BuildStatus


class PollPhase(str, enum.Enum):
    POLLING_CURRENT = "polling_current"
    FOLLOWING_CHAIN = "following_chain"
    WAITING_FOR_FIX = "waiting_for_fix"
    DONE = "done"
    TIMED_OUT = "timed_out"


TERMINAL_PHASES: Set[PollPhase] = {PollPhase.DONE, PollPhase.TIMED_OUT}

# phases after which the driver waits one interval before fetching again
SLEEPING_PHASES: Set[PollPhase] = {PollPhase.POLLING_CURRENT, PollPhase.WAITING_FOR_FIX}


@dataclass(frozen=True)
class PollState:
    job_id: str
    phase: PollPhase = PollPhase.POLLING_CURRENT
    attempts: int = 1
    job: Optional[BuildJob] = None

    @property
    def finished(self) -> bool:
        return self.phase in TERMINAL_PHASES


def transition(state: PollState, job: BuildJob, elapsed: float, ceiling: float) -> PollState:
    """Next state after observing ``job`` (the snapshot of ``state.job_id``)."""
    if state.finished:
        raise ValueError(f"poll already finished ({state.phase.value})")

    if job.status == BuildStatus.SUCCEEDED:
        nxt = replace(state, phase=PollPhase.DONE, job=job)
    elif job.status == BuildStatus.FAILED and job.next_job_id:
        nxt = replace(
            state,
            phase=PollPhase.FOLLOWING_CHAIN,
            job_id=job.next_job_id,
            attempts=state.attempts + 1,
            job=job,
        )
    elif job.status == BuildStatus.FAILED and job.auto_fix_in_progress:
        nxt = replace(state, phase=PollPhase.WAITING_FOR_FIX, job=job)
    elif job.status == BuildStatus.FAILED:
        nxt = replace(state, phase=PollPhase.DONE, job=job)
    else:
        nxt = replace(state, phase=PollPhase.POLLING_CURRENT, job=job)

    # a terminal result observed exactly at the ceiling still counts
    if not nxt.finished and elapsed >= ceiling:
        return replace(nxt, phase=PollPhase.TIMED_OUT)
    return nxt
