"""Orchestrator: resolve the run, provision the checks, reconcile until done.

The whole sequence runs under one deadline (``FORK_TIMEOUT_SECONDS``, ``0``
disables it). Fatal remote errors are tagged with the stage they surfaced
in so the entrypoint can name the failing step.
"""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import structlog

from domain.models import ForkOptions

from ..bootstrap import FORK_DURATION_SECONDS, FORK_RUNS_TOTAL, AppContext, Settings
from ..github import GitHubApi
from ..inputs import unpack_inputs
from ..runtime.models import ForkOutcome
from ..runtime.provisioner import provision_checks
from ..runtime.reconcile import Reconciler
from ..runtime.resolver import RunResolver
from .errors import ForkError, ForkTimeoutError, JobFailure, RemoteError
from .facade import RemoteFacade
from .naming import CheckNamespace

SleepFn = Callable[[float], Awaitable[None]]


async def _run_stages(
    api: RemoteFacade,
    options: ForkOptions,
    settings: Settings,
    *,
    sleep: SleepFn,
    logger: structlog.BoundLogger,
) -> ForkOutcome:
    stage = "resolve"
    try:
        resolver = RunResolver(
            api,
            workflow_id=options.workflow_id,
            head_sha=options.head_sha,
            ref=options.ref,
            inputs=options.inputs,
            poll_interval=settings.run_poll_interval_seconds,
            lock_file=settings.dispatch_lock_file,
            lock_timeout=settings.dispatch_lock_timeout_seconds,
            sleep=sleep,
            logger=logger,
        )
        run = await resolver.resolve()

        stage = "provision"
        checks = await provision_checks(
            api,
            options.jobs,
            options.head_sha,
            run=run,
            namespace=CheckNamespace(options.prefix),
            attempts=settings.create_check_attempts,
            backoff=settings.retry_backoff_seconds,
            logger=logger,
        )

        stage = "reconcile"
        reconciler = Reconciler(
            api,
            run,
            checks,
            needs=options.needs,
            poll_interval=settings.job_poll_interval_seconds,
            failing_conclusions=settings.failing_conclusions,
            sleep=sleep,
            logger=logger,
        )
        return await reconciler.run_until_complete()
    except RemoteError as exc:
        exc.step = stage
        raise


async def fork(
    api: RemoteFacade,
    options: ForkOptions,
    settings: Settings,
    *,
    sleep: SleepFn = asyncio.sleep,
    logger: Optional[structlog.BoundLogger] = None,
) -> ForkOutcome:
    """Fork the jobs of ``options`` onto local checks.

    Raises:
        ForkTimeoutError: the deadline expired first.
        JobFailure: every job completed but one concluded failing.
        ForkError: any other fatal condition (remote, provisioning).
    """
    log = (logger or structlog.get_logger()).bind(component="orchestrator", repo=options.full_name)
    log.info("fork_started", **options.to_log_dict())
    started = datetime.now(timezone.utc)
    t0 = time.perf_counter()
    timeout = settings.fork_timeout_seconds
    stages = _run_stages(api, options, settings, sleep=sleep, logger=log)
    try:
        if timeout > 0:
            outcome = await asyncio.wait_for(stages, timeout=timeout)
        else:
            outcome = await stages
    except asyncio.TimeoutError as exc:
        FORK_RUNS_TOTAL.labels(result="timeout").inc()
        log.error("fork_timeout", timeout_seconds=timeout)
        raise ForkTimeoutError(
            f"jobs did not complete within {timeout:g}s", timeout_seconds=timeout
        ) from exc
    except ForkError as exc:
        FORK_RUNS_TOTAL.labels(result="error").inc()
        log.error("fork_failed", step=exc.step, error=str(exc))
        raise
    finally:
        FORK_DURATION_SECONDS.observe(time.perf_counter() - t0)

    outcome.started_at = started
    outcome.finished_at = datetime.now(timezone.utc)
    if outcome.failed:
        FORK_RUNS_TOTAL.labels(result="failure").inc()
        log.error("fork_jobs_failed", failing=list(outcome.failing), conclusions=outcome.conclusions)
        raise JobFailure(
            f"jobs concluded failing: {', '.join(outcome.failing)}", outcome=outcome
        )
    FORK_RUNS_TOTAL.labels(result="success").inc()
    log.info(
        "fork_succeeded",
        run_id=outcome.run.id,
        iterations=outcome.iterations,
        updates=outcome.updates,
        duration_seconds=round(outcome.duration_seconds, 3),
    )
    return outcome


async def fork_inputs(ctx: AppContext, *, sleep: SleepFn = asyncio.sleep) -> ForkOutcome:
    """Unpack the configured inputs and fork them with a real GitHub client."""
    options = unpack_inputs(ctx.settings)
    ctx.logger.info("workflow_inputs", **options.to_log_dict())
    async with GitHubApi.from_settings(ctx.settings, options.owner, options.repo, logger=ctx.logger) as api:
        return await fork(api, options, ctx.settings, sleep=sleep, logger=ctx.logger)


__all__ = ["fork", "fork_inputs"]
