"""Error taxonomy for the fork engine.

Transient and not-found conditions are retried where they are raised; the
remaining types are fatal for the invocation and are mapped to an exit code
by the entrypoint.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from ..runtime.models import ForkOutcome


class ForkError(Exception):
    """Base class for every error raised by the fork engine."""

    step = "fork"


class RemoteError(ForkError):
    """Non-retryable failure answered by the remote API."""

    step = "remote"

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientError(RemoteError):
    """Network, rate-limit or 5xx failure; retried with a fixed backoff."""


class NotFoundError(RemoteError):
    """The remote resource does not exist (yet)."""


class InputError(ForkError, ValueError):
    """Configuration could not be turned into fork options."""

    step = "inputs"


class ProvisionError(ForkError):
    """One or more check runs could not be created."""

    step = "provision"

    def __init__(self, message: str, *, jobs: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.jobs = jobs


class JobFailure(ForkError):
    """A tracked job concluded with a failing conclusion."""

    step = "reconcile"

    def __init__(self, message: str, *, outcome: "ForkOutcome") -> None:
        super().__init__(message)
        self.outcome = outcome


class ForkTimeoutError(ForkError, TimeoutError):
    """The overall fork deadline expired before every job completed."""

    step = "timeout"

    def __init__(self, message: str, *, timeout_seconds: float) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


__all__ = [
    "ForkError",
    "RemoteError",
    "TransientError",
    "NotFoundError",
    "InputError",
    "ProvisionError",
    "JobFailure",
    "ForkTimeoutError",
]
