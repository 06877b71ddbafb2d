"""Contract of the remote capability consumed by the fork engine.

``forker.github.GitHubApi`` is the production implementation; tests drive
the engine with in-memory fakes honouring the same signatures.
"""
from __future__ import annotations

from typing import Mapping, Optional, Protocol

from domain.models import CheckRun, RemoteJob, WorkflowRun


class RemoteFacade(Protocol):
    async def dispatch(self, workflow_id: str, ref: str, inputs: Mapping[str, str]) -> None: ...

    async def list_runs(self, workflow_id: str, head_sha: str) -> list[WorkflowRun]: ...

    async def list_jobs(self, run_id: int) -> list[RemoteJob]: ...

    async def create_check(
        self,
        name: str,
        head_sha: str,
        *,
        summary: str = "",
        details_url: Optional[str] = None,
    ) -> CheckRun: ...

    async def update_check(
        self,
        check_id: int,
        status: Optional[str],
        conclusion: Optional[str],
        *,
        title: str,
        summary: str = "",
        details_url: Optional[str] = None,
    ) -> CheckRun: ...


__all__ = ["RemoteFacade"]
