"""Run resolution: find the one authoritative workflow run for a commit.

Rules:
1. An existing run for (workflow, head_sha) is reused; the most recently
   created one wins and nothing is dispatched.
2. Otherwise the workflow is dispatched once, then the run list is polled
   with a fixed backoff until the new run becomes visible.
3. A transient failure while dispatching goes back to step 1 before any new
   attempt, so a dispatch that did reach GitHub is found instead of repeated.
4. Transient and not-found answers from the run listing mean "not ready
   yet": nothing is dispatched on such an answer, the listing is retried.

Polling is unbounded here; the orchestrator deadline stops it.
"""
from __future__ import annotations

import asyncio
import contextlib
import time
from typing import AsyncIterator, Awaitable, Callable, Mapping, Optional

import structlog
from filelock import FileLock, Timeout

from domain.models import WorkflowRun

from ..core.errors import NotFoundError, TransientError
from ..core.facade import RemoteFacade
from ..utils import latest_run

SleepFn = Callable[[float], Awaitable[None]]

LOCK_POLL_INTERVAL = 0.05


class RunResolver:
    def __init__(
        self,
        api: RemoteFacade,
        *,
        workflow_id: str,
        head_sha: str,
        ref: str,
        inputs: Mapping[str, str],
        poll_interval: float = 3.0,
        lock_file: Optional[str] = None,
        lock_timeout: float = 300.0,
        sleep: SleepFn = asyncio.sleep,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.api = api
        self.workflow_id = workflow_id
        self.head_sha = head_sha
        self.ref = ref
        self.inputs = dict(inputs)
        self.poll_interval = poll_interval
        self.lock_file = lock_file
        self.lock_timeout = lock_timeout
        self._sleep = sleep
        self.logger = (logger or structlog.get_logger()).bind(
            component="resolver", workflow_id=workflow_id, head_sha=head_sha
        )
        self.dispatched = False
        self.attempts = 0

    async def resolve(self) -> WorkflowRun:
        async with self._single_flight():
            while True:
                self.attempts += 1
                runs = await self._list_runs()
                run = latest_run(runs or [])
                if run is not None:
                    self.logger.info(
                        "run_resolved",
                        run_id=run.id,
                        url=run.html_url,
                        dispatched=self.dispatched,
                        candidates=len(runs),
                        attempts=self.attempts,
                    )
                    return run
                if runs is not None and not self.dispatched:
                    self.dispatched = await self._dispatch()
                else:
                    self.logger.debug("run_not_visible_yet", attempts=self.attempts)
                await self._sleep(self.poll_interval)

    async def _list_runs(self) -> Optional[list[WorkflowRun]]:
        """Runs for the commit; ``None`` when the answer is unknown yet."""
        try:
            return await self.api.list_runs(self.workflow_id, self.head_sha)
        except NotFoundError as exc:
            self.logger.warning("workflow_runs_not_found", error=str(exc))
            return None
        except TransientError as exc:
            self.logger.warning("list_runs_transient_error", error=str(exc))
            return None

    async def _dispatch(self) -> bool:
        self.logger.info("dispatching", ref=self.ref)
        try:
            await self.api.dispatch(self.workflow_id, self.ref, self.inputs)
        except TransientError as exc:
            self.logger.warning("dispatch_transient_error", error=str(exc))
            return False
        self.logger.info("dispatched", ref=self.ref)
        return True

    @contextlib.asynccontextmanager
    async def _single_flight(self) -> AsyncIterator[None]:
        """Hold the dispatch lock (if configured) until a run is visible."""
        if not self.lock_file:
            yield
            return
        lock = FileLock(self.lock_file, thread_local=False)
        try:
            await self._acquire(lock)
            yield
        finally:
            if lock.is_locked:
                lock.release()

    async def _acquire(self, lock: FileLock) -> None:
        # Non-blocking attempts only: a cancelled wait never leaves the lock
        # taken by a worker thread.
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                lock.acquire(timeout=0)
                return
            except Timeout:
                if time.monotonic() >= deadline:
                    self.logger.warning("dispatch_lock_busy", lock=self.lock_file)
                    return
            await asyncio.sleep(LOCK_POLL_INTERVAL)
