"""Tests for the poll state machine and client loop."""

import pytest

from buildpipe.core.errors import PollTimeoutError
from buildpipe.domain.models import BuildJob, BuildStatus
from buildpipe.poll.client import poll
from buildpipe.poll.state_machine import PollPhase, PollState, transition
from tests.conftest import MISSING_TYPE_ERROR, make_request


def _job(job_id="j1", status=BuildStatus.QUEUED, **fields):
    return BuildJob(id=job_id, status=status, request=make_request(), **fields)


def _failed(job_id="j1", **fields):
    return _job(job_id, BuildStatus.FAILED, compiler_errors=[MISSING_TYPE_ERROR], **fields)


class FakeTime:
    """Clock plus sleep: sleeping advances the clock."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _fetcher(script):
    """Serve successive snapshots per job id; the last one repeats."""
    calls = []

    async def fetch(job_id):
        calls.append(job_id)
        snapshots = script[job_id]
        return snapshots.pop(0) if len(snapshots) > 1 else snapshots[0]

    return fetch, calls


# ═══════════════════════════════════════════════════════════════════════════
# transition
# ═══════════════════════════════════════════════════════════════════════════


class TestTransition:
    def test_queued_and_running_keep_polling(self):
        state = PollState(job_id="j1")
        assert transition(state, _job(), 0, 600).phase == PollPhase.POLLING_CURRENT
        assert transition(state, _job(status=BuildStatus.RUNNING), 0, 600).phase == PollPhase.POLLING_CURRENT

    def test_success_is_done(self):
        nxt = transition(PollState(job_id="j1"), _job(status=BuildStatus.SUCCEEDED), 0, 600)
        assert nxt.phase == PollPhase.DONE
        assert nxt.finished

    def test_failure_with_successor_follows_chain(self):
        nxt = transition(PollState(job_id="j1"), _failed(next_job_id="j2"), 0, 600)
        assert nxt.phase == PollPhase.FOLLOWING_CHAIN
        assert nxt.job_id == "j2"
        assert nxt.attempts == 2

    def test_failure_with_fix_in_progress_waits(self):
        nxt = transition(PollState(job_id="j1"), _failed(auto_fix_in_progress=True), 0, 600)
        assert nxt.phase == PollPhase.WAITING_FOR_FIX
        assert nxt.job_id == "j1"

    def test_plain_failure_is_done(self):
        assert transition(PollState(job_id="j1"), _failed(), 0, 600).phase == PollPhase.DONE

    def test_ceiling_times_out(self):
        nxt = transition(PollState(job_id="j1"), _job(status=BuildStatus.RUNNING), 600, 600)
        assert nxt.phase == PollPhase.TIMED_OUT

    def test_terminal_result_at_ceiling_counts(self):
        nxt = transition(PollState(job_id="j1"), _job(status=BuildStatus.SUCCEEDED), 601, 600)
        assert nxt.phase == PollPhase.DONE

    def test_finished_state_rejects_input(self):
        with pytest.raises(ValueError):
            transition(PollState(job_id="j1", phase=PollPhase.DONE), _job(), 0, 600)


# ═══════════════════════════════════════════════════════════════════════════
# poll loop
# ═══════════════════════════════════════════════════════════════════════════


class TestPoll:
    @pytest.mark.asyncio
    async def test_waits_for_success(self):
        t = FakeTime()
        fetch, calls = _fetcher({"j1": [_job(), _job(status=BuildStatus.RUNNING), _job(status=BuildStatus.SUCCEEDED)]})

        result = await poll("j1", fetch, interval=3, ceiling=600, clock=t.clock, sleep=t.sleep)

        assert result.job.status == BuildStatus.SUCCEEDED
        assert result.attempts == 1
        assert result.elapsed == 6
        assert calls == ["j1", "j1", "j1"]
        assert t.sleeps == [3, 3]

    @pytest.mark.asyncio
    async def test_follows_chain_to_success(self):
        t = FakeTime()
        fetch, calls = _fetcher({
            "j1": [_failed(auto_fix_in_progress=True), _failed(next_job_id="j2")],
            "j2": [_job("j2", BuildStatus.RUNNING), _job("j2", BuildStatus.SUCCEEDED)],
        })

        result = await poll("j1", fetch, interval=3, ceiling=600, clock=t.clock, sleep=t.sleep)

        assert result.job.id == "j2"
        assert result.attempts == 2
        assert calls == ["j1", "j1", "j2", "j2"]
        # no wait between learning of j2 and fetching it
        assert t.sleeps == [3, 3]

    @pytest.mark.asyncio
    async def test_returns_last_failure(self):
        t = FakeTime()
        fetch, _ = _fetcher({"j1": [_failed()]})

        result = await poll("j1", fetch, clock=t.clock, sleep=t.sleep)

        assert result.job.status == BuildStatus.FAILED
        assert result.job.compiler_errors == [MISSING_TYPE_ERROR]

    @pytest.mark.asyncio
    async def test_timeout_is_not_a_failure(self):
        t = FakeTime()
        fetch, _ = _fetcher({"j1": [_job(status=BuildStatus.RUNNING)]})

        with pytest.raises(PollTimeoutError) as info:
            await poll("j1", fetch, interval=3, ceiling=10, clock=t.clock, sleep=t.sleep)

        assert info.value.job_id == "j1"
        assert info.value.elapsed >= 10
        assert info.value.status_code == 504
