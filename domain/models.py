from __future__ import annotations
from typing import Optional, Any
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime


class WorkflowRun(BaseModel):
    """One execution of a remote workflow.

    Parsed straight from the ``workflow_runs`` entries of the GitHub API; any
    field we do not use is ignored.
    """
    model_config = ConfigDict(extra="ignore")

    id: int
    created_at: datetime
    status: Optional[str] = None
    conclusion: Optional[str] = None
    html_url: str = ""
    head_sha: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "WorkflowRun":
        return cls.model_validate(data)


class RemoteJob(BaseModel):
    """A job inside a workflow run (read-only snapshot)."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    name: str
    status: str
    conclusion: Optional[str] = None
    html_url: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RemoteJob":
        return cls.model_validate(data)


class CheckRun(BaseModel):
    """A check run created on the local commit."""
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    status: Optional[str] = None
    conclusion: Optional[str] = None
    head_sha: Optional[str] = None
    html_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "CheckRun":
        return cls.model_validate(data)


class ForkOptions(BaseModel):
    """Fixed input record of one fork invocation."""
    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    ref: str
    workflow_id: str
    inputs: dict[str, str] = Field(default_factory=dict)
    jobs: tuple[str, ...]
    head_sha: str
    prefix: str = ""
    needs: tuple[str, ...] = ()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "repo": self.full_name,
            "ref": self.ref,
            "workflow_id": self.workflow_id,
            "inputs": dict(self.inputs),
            "jobs": list(self.jobs),
            "head_sha": self.head_sha,
            "prefix": self.prefix,
            "needs": list(self.needs),
        }
