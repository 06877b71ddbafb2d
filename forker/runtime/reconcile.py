"""Reconciliation loop: mirror remote job states onto the forked checks.

Each iteration:
1. fetch the job snapshot of the run (transient/not-found/empty -> wait)
2. keep tracked jobs only; when prerequisites (``needs``) are configured
   and not all completed, skip the update step
3. push every changed (status, conclusion) to its check, never moving a
   check backwards in ``unset < in_progress < completed``
4. stop once every tracked job is completed in the snapshot and every
   check has recorded that completion
5. otherwise sleep the poll interval and start over

Local status normalisation: ``waiting``/``pending``/``requested`` are unset
(blocked, not running), ``queued`` counts as ``in_progress``, and a
completed job carries its conclusion verbatim.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Mapping, Optional

import structlog

from domain.models import CheckRun, RemoteJob, WorkflowRun

from ..bootstrap import FORK_CHECK_UPDATES, FORK_POLL_ITERATIONS
from ..core.errors import NotFoundError, TransientError
from ..core.facade import RemoteFacade
from .models import STATUS_RANK, CheckState, ForkOutcome
from .provisioner import forked_summary

SleepFn = Callable[[float], Awaitable[None]]

RUNNING_STATUSES = frozenset({"queued", "in_progress"})
DEFAULT_CONCLUSION = "neutral"


def normalize_status(status: Optional[str]) -> Optional[str]:
    if status == "completed":
        return "completed"
    if status in RUNNING_STATUSES:
        return "in_progress"
    return None


def normalize(job: RemoteJob) -> tuple[Optional[str], Optional[str]]:
    """Local (status, conclusion) for a remote job."""
    status = normalize_status(job.status)
    if status != "completed":
        return status, None
    return status, job.conclusion or DEFAULT_CONCLUSION


class Reconciler:
    def __init__(
        self,
        api: RemoteFacade,
        run: WorkflowRun,
        checks: Mapping[str, CheckRun],
        *,
        needs: Iterable[str] = (),
        poll_interval: float = 10.0,
        failing_conclusions: Iterable[str] = ("failure",),
        sleep: SleepFn = asyncio.sleep,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.api = api
        self.run = run
        self.states: dict[str, CheckState] = {
            job: CheckState(check_id=check.id, check_name=check.name) for job, check in checks.items()
        }
        self.needs = tuple(needs)
        self.poll_interval = poll_interval
        self.failing_conclusions = frozenset(failing_conclusions)
        self._sleep = sleep
        self.logger = (logger or structlog.get_logger()).bind(component="reconciler", run_id=run.id)
        self.iterations = 0

    @property
    def tracked(self) -> tuple[str, ...]:
        return tuple(self.states)

    async def run_until_complete(self) -> ForkOutcome:
        started = datetime.now(timezone.utc)
        self.logger.info("forking_job_status", jobs=list(self.tracked), run_url=self.run.html_url)
        while not await self.step():
            await self._sleep(self.poll_interval)
        outcome = self.outcome(started_at=started, finished_at=datetime.now(timezone.utc))
        self.logger.info(
            "all_jobs_completed",
            iterations=outcome.iterations,
            updates=outcome.updates,
            conclusions=outcome.conclusions,
            failing=list(outcome.failing),
        )
        return outcome

    async def step(self) -> bool:
        """Run one iteration; ``True`` once every tracked job is completed."""
        self.iterations += 1
        FORK_POLL_ITERATIONS.inc()
        try:
            jobs = await self.api.list_jobs(self.run.id)
        except (TransientError, NotFoundError) as exc:
            self.logger.warning("list_jobs_failed", error=str(exc), iteration=self.iterations)
            return False
        if not jobs:
            self.logger.warning("no_jobs_yet", run_url=self.run.html_url, iteration=self.iterations)
            return False

        snapshot = {job.name: job for job in jobs}
        if not self._needs_satisfied(snapshot):
            self.logger.debug("waiting_for_needs", needs=list(self.needs))
            return False

        tracked = {name: snapshot[name] for name in self.tracked if name in snapshot}
        if not tracked:
            self.logger.warning("no_tracked_jobs_found", jobs=list(self.tracked), run_url=self.run.html_url)
        for name, job in tracked.items():
            await self._apply(name, job)

        # A failed final update leaves its check open: keep polling.
        return (
            len(tracked) == len(self.states)
            and all(job.is_completed for job in tracked.values())
            and all(state.completed for state in self.states.values())
        )

    def _needs_satisfied(self, snapshot: Mapping[str, RemoteJob]) -> bool:
        for name in self.needs:
            job = snapshot.get(name)
            if job is None or not job.is_completed:
                return False
        return True

    async def _apply(self, name: str, job: RemoteJob) -> None:
        state = self.states[name]
        status, conclusion = normalize(job)
        if state.matches(status, conclusion):
            self.logger.debug("check_unchanged", check=state.check_name)
            return
        if state.completed or STATUS_RANK.get(status, 0) < state.rank:
            self.logger.debug(
                "check_regression_ignored",
                check=state.check_name,
                current=state.status,
                observed=job.status,
            )
            return

        self.logger.info(
            "updating_check",
            check=state.check_name,
            job_url=job.html_url,
            status=job.status,
            conclusion=job.conclusion,
        )
        try:
            await self.api.update_check(
                state.check_id,
                status,
                conclusion,
                title=name,
                summary=forked_summary(job.html_url),
                details_url=job.html_url,
            )
        except (TransientError, NotFoundError) as exc:
            # Not recorded: the next snapshot retries the transition.
            self.logger.warning("check_update_failed", check=state.check_name, error=str(exc))
            return
        state.record(status, conclusion)
        FORK_CHECK_UPDATES.labels(status=status or "unset").inc()

    def outcome(self, *, started_at: Optional[datetime] = None, finished_at: Optional[datetime] = None) -> ForkOutcome:
        conclusions = {name: state.conclusion for name, state in self.states.items()}
        failing = tuple(name for name, conclusion in conclusions.items() if conclusion in self.failing_conclusions)
        return ForkOutcome(
            run=self.run,
            conclusions=conclusions,
            iterations=self.iterations,
            updates=sum(state.updates for state in self.states.values()),
            failing=failing,
            started_at=started_at,
            finished_at=finished_at,
        )


__all__ = ["Reconciler", "normalize", "normalize_status"]
