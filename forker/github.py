"""GitHub REST facade used by the fork engine.

Five operations, nothing else: dispatch a workflow, list the runs of a
workflow for a commit, list the jobs of a run, create a check run and update
a check run. The facade owns no state besides the HTTP client.

Failure mapping:
- transport errors, 429, 5xx and 403 with an exhausted rate limit -> TransientError
- 404 -> NotFoundError
- any other non-2xx answer -> RemoteError (fatal)

Idempotent reads are retried in-client with a fixed backoff (tenacity);
writes are never retried here, callers decide.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional
from urllib.parse import quote

import httpx
import structlog

from domain.models import CheckRun, RemoteJob, WorkflowRun

from .bootstrap import FORK_DISPATCHES_TOTAL, FORK_REMOTE_ERRORS, FORK_REQUEST_DURATION, Settings
from .core.errors import NotFoundError, RemoteError, TransientError
from .utils import Timer, retryable

JOBS_PER_PAGE = 100


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    if "retry-after" in response.headers:
        return True
    try:
        return "rate limit" in response.text.lower()
    except Exception:  # pragma: no cover - undecodable body
        return False


class GitHubApi:
    """Thin async wrapper over the GitHub REST endpoints the engine needs."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: Optional[str],
        *,
        base_url: str = "https://api.github.com",
        api_version: str = "2022-11-28",
        timeout: float = 20.0,
        attempts: int = 3,
        backoff: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.attempts = attempts
        self.backoff = backoff
        self.logger = (logger or structlog.get_logger()).bind(component="github", repo=f"{owner}/{repo}")
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": api_version,
            "User-Agent": "check-forker",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        owner: str,
        repo: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> "GitHubApi":
        return cls(
            owner,
            repo,
            settings.token,
            base_url=settings.api_url,
            api_version=settings.api_version,
            timeout=settings.httpx_timeout,
            attempts=settings.request_attempts,
            backoff=settings.retry_backoff_seconds,
            transport=transport,
            logger=logger,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GitHubApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------
    @property
    def _repo_path(self) -> str:
        return f"/repos/{quote(self.owner, safe='')}/{quote(self.repo, safe='')}"

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> httpx.Response:
        try:
            with Timer() as timer:
                response = await self._client.request(method, path, params=params, json=payload)
        except httpx.TransportError as exc:
            FORK_REMOTE_ERRORS.labels(operation=operation, kind="transport").inc()
            self.logger.warning("github_transport_error", operation=operation, error=str(exc))
            raise TransientError(f"{operation}: {exc}") from exc
        FORK_REQUEST_DURATION.labels(operation=operation).observe(timer.elapsed or 0.0)

        status = response.status_code
        if status < 400:
            return response
        message = f"{operation}: HTTP {status} {response.text[:200]}"
        if status == 404:
            FORK_REMOTE_ERRORS.labels(operation=operation, kind="not_found").inc()
            self.logger.debug("github_not_found", operation=operation, path=path)
            raise NotFoundError(message, status_code=status)
        if status == 429 or status >= 500 or (status == 403 and _is_rate_limited(response)):
            FORK_REMOTE_ERRORS.labels(operation=operation, kind="transient").inc()
            self.logger.warning("github_transient_error", operation=operation, status=status)
            raise TransientError(message, status_code=status)
        FORK_REMOTE_ERRORS.labels(operation=operation, kind="fatal").inc()
        self.logger.error("github_request_failed", operation=operation, status=status, body=response.text[:500])
        raise RemoteError(message, status_code=status)

    async def _get(self, operation: str, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        call = retryable(TransientError, attempts=self.attempts, backoff=self.backoff)(self._request)
        response = await call(operation, "GET", path, params=params)
        return response.json()

    # ------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------
    async def dispatch(self, workflow_id: str, ref: str, inputs: Mapping[str, str]) -> None:
        """Trigger a ``workflow_dispatch`` run. Not idempotent."""
        self.logger.info("dispatching_workflow", workflow_id=workflow_id, ref=ref)
        await self._request(
            "dispatch",
            "POST",
            f"{self._repo_path}/actions/workflows/{quote(str(workflow_id), safe='')}/dispatches",
            payload={"ref": ref, "inputs": dict(inputs)},
        )
        FORK_DISPATCHES_TOTAL.inc()

    async def list_runs(self, workflow_id: str, head_sha: str) -> list[WorkflowRun]:
        data = await self._get(
            "list_runs",
            f"{self._repo_path}/actions/workflows/{quote(str(workflow_id), safe='')}/runs",
            params={"head_sha": head_sha, "per_page": 100},
        )
        return [WorkflowRun.from_api(item) for item in data.get("workflow_runs") or []]

    async def list_jobs(self, run_id: int) -> list[RemoteJob]:
        jobs: list[RemoteJob] = []
        page = 1
        while True:
            data = await self._get(
                "list_jobs",
                f"{self._repo_path}/actions/runs/{run_id}/jobs",
                params={"per_page": JOBS_PER_PAGE, "page": page},
            )
            batch = data.get("jobs") or []
            jobs.extend(RemoteJob.from_api(item) for item in batch)
            total = int(data.get("total_count") or 0)
            if len(batch) < JOBS_PER_PAGE or len(jobs) >= total:
                return jobs
            page += 1

    # ------------------------------------------------------------
    # Check runs
    # ------------------------------------------------------------
    async def create_check(
        self,
        name: str,
        head_sha: str,
        *,
        summary: str = "",
        details_url: Optional[str] = None,
    ) -> CheckRun:
        payload: dict[str, Any] = {
            "name": name,
            "head_sha": head_sha,
            "output": {"title": name, "summary": summary},
        }
        if details_url:
            payload["details_url"] = details_url
        response = await self._request("create_check", "POST", f"{self._repo_path}/check-runs", payload=payload)
        check = CheckRun.from_api(response.json())
        self.logger.info("check_created", check=check.name, url=check.html_url)
        return check

    async def update_check(
        self,
        check_id: int,
        status: Optional[str],
        conclusion: Optional[str],
        *,
        title: str,
        summary: str = "",
        details_url: Optional[str] = None,
    ) -> CheckRun:
        """Apply a status transition.

        ``status=None`` leaves the remote status untouched; a conclusion is
        only sent with ``completed`` since GitHub completes any check that
        receives one.
        """
        payload: dict[str, Any] = {"output": {"title": title, "summary": summary}}
        if status:
            payload["status"] = status
        if status == "completed" and conclusion:
            payload["conclusion"] = conclusion
        if details_url:
            payload["details_url"] = details_url
        response = await self._request(
            "update_check", "PATCH", f"{self._repo_path}/check-runs/{check_id}", payload=payload
        )
        return CheckRun.from_api(response.json())


__all__ = ["GitHubApi", "JOBS_PER_PAGE"]
