"""check-forker: mirror the jobs of a remote GitHub Actions run onto local checks.

The package dispatches (or reuses) one workflow run for a commit, creates a
check run per tracked job and keeps those checks in step with the remote jobs
until every one of them has completed.

MODULES:
    - bootstrap: Settings, structured logging, metrics and application context
    - inputs: action inputs -> ForkOptions (profiles, labels, prefix)
    - github: GitHub REST client implementing the remote facade
    - core.orchestrator: resolve -> provision -> reconcile under one deadline
    - runtime: the three stages and their state records

USAGE:
    from forker import fork, ForkOptions
    outcome = await fork(api, options, settings)
"""

from .bootstrap import Settings, bootstrap  # noqa: F401
from .core.errors import (  # noqa: F401
    ForkError,
    ForkTimeoutError,
    InputError,
    JobFailure,
    NotFoundError,
    ProvisionError,
    RemoteError,
    TransientError,
)
from .core.naming import CheckNamespace  # noqa: F401
from .core.orchestrator import fork, fork_inputs  # noqa: F401
from .github import GitHubApi  # noqa: F401
from .inputs import unpack_inputs  # noqa: F401
from .runtime import CheckState, ForkOutcome  # noqa: F401
from domain.models import ForkOptions  # noqa: F401

__all__ = [
    "Settings",
    "bootstrap",
    "ForkError",
    "ForkTimeoutError",
    "InputError",
    "JobFailure",
    "NotFoundError",
    "ProvisionError",
    "RemoteError",
    "TransientError",
    "CheckNamespace",
    "fork",
    "fork_inputs",
    "GitHubApi",
    "unpack_inputs",
    "CheckState",
    "ForkOutcome",
    "ForkOptions",
]
