from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from buildpipe.core.errors import PollTimeoutError
from buildpipe.domain.models import BuildJob
from buildpipe.poll.state_machine import SLEEPING_PHASES, PollPhase, PollState, transition

logger = logging.getLogger(__name__)

FetchJob = Callable[[str], Awaitable[BuildJob]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class PollResult:
    job: BuildJob
    attempts: int
    elapsed: float


async def poll(
    job_id: str,
    fetch: FetchJob,
    *,
    interval: float = 3.0,
    ceiling: float = 600.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> PollResult:
    """Follow ``job_id`` along its auto-fix chain until a terminal result.

    Returns the succeeded job, or the last failed job when nothing more is
    coming. Raises :class:`PollTimeoutError` once ``ceiling`` seconds pass.
    """
    started = clock()
    state = PollState(job_id=job_id)
    while True:
        job = await fetch(state.job_id)
        elapsed = clock() - started
        prev_phase = state.phase
        state = transition(state, job, elapsed, ceiling)

        if state.phase != prev_phase:
            logger.debug("poll %s: %s -> %s", state.job_id, prev_phase.value, state.phase.value)
        if state.phase == PollPhase.DONE:
            return PollResult(job=job, attempts=state.attempts, elapsed=elapsed)
        if state.phase == PollPhase.TIMED_OUT:
            raise PollTimeoutError(state.job_id, state.attempts, elapsed)
        if state.phase == PollPhase.FOLLOWING_CHAIN:
            logger.info("Job %s continues as %s (attempt %d)", job.id, state.job_id, state.attempts)
        if state.phase in SLEEPING_PHASES:
            await sleep(interval)
