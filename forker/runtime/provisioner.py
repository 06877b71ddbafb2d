"""Check provisioning: one check run per tracked job, created concurrently.

A partial check set is useless to reconcile against, so any creation that
still fails after its retries aborts the whole invocation with
``ProvisionError``.
"""
from __future__ import annotations

import asyncio
from typing import Iterable, Optional

import structlog

from domain.models import CheckRun, WorkflowRun

from ..bootstrap import FORK_CHECKS_CREATED
from ..core.errors import ProvisionError, TransientError
from ..core.facade import RemoteFacade
from ..core.naming import CheckNamespace
from ..utils import retryable, unique


def forked_summary(url: Optional[str]) -> str:
    return f"Forked from {url}" if url else ""


async def provision_checks(
    api: RemoteFacade,
    jobs: Iterable[str],
    head_sha: str,
    *,
    run: WorkflowRun,
    namespace: CheckNamespace = CheckNamespace(),
    attempts: int = 3,
    backoff: float = 3.0,
    logger: Optional[structlog.BoundLogger] = None,
) -> dict[str, CheckRun]:
    """Create the checks and return them keyed by (plain) job name."""
    log = (logger or structlog.get_logger()).bind(component="provisioner", run_id=run.id)
    tracked = unique(jobs)
    names = namespace.check_names(tracked)
    log.info("creating_checks", checks=list(names.values()), run_url=run.html_url)

    @retryable(TransientError, attempts=attempts, backoff=backoff)
    async def _create(job: str) -> CheckRun:
        return await api.create_check(
            names[job],
            head_sha,
            summary=forked_summary(run.html_url),
            details_url=run.html_url or None,
        )

    results = await asyncio.gather(*(_create(job) for job in tracked), return_exceptions=True)

    checks: dict[str, CheckRun] = {}
    failed: list[str] = []
    for job, result in zip(tracked, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            log.error("check_creation_failed", job=job, check=names[job], error=str(result))
            failed.append(job)
            continue
        FORK_CHECKS_CREATED.inc()
        checks[job] = result

    if failed:
        raise ProvisionError(
            f"could not create checks for {', '.join(failed)}",
            jobs=tuple(failed),
        )
    log.info("checks_created", count=len(checks))
    return checks


__all__ = ["provision_checks", "forked_summary"]
