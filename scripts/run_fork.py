"""Run a one-off fork from a workstation.

Usage:
  python scripts/run_fork.py --repo owner/name --workflow ci.yml --ref main \
      --sha <commit> --jobs '["build", "test"]'

Every flag overrides the matching INPUT_* variable; anything not given is read
from the environment (or .env) exactly like the action does.
"""
from __future__ import annotations

import argparse
import asyncio
import os, sys

# Ensure project root on path for direct execution
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from forker.bootstrap import bootstrap, write_metrics  # noqa: E402
from forker.core.errors import ForkError, JobFailure  # noqa: E402
from forker.core.orchestrator import fork_inputs  # noqa: E402

OVERRIDES = {
    "repo": "INPUT_REPO",
    "workflow": "INPUT_WORKFLOW_ID",
    "ref": "INPUT_REF",
    "sha": "INPUT_HEAD_SHA",
    "jobs": "INPUT_JOBS",
    "inputs": "INPUT_INPUTS",
    "needs": "INPUT_NEEDS",
    "prefix": "INPUT_PREFIX",
    "timeout": "FORK_TIMEOUT_SECONDS",
}


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser()
    p.add_argument("--repo", help="owner/name of the repository running the workflow")
    p.add_argument("--workflow", help="Workflow id or file name")
    p.add_argument("--ref", help="Git ref to dispatch on")
    p.add_argument("--sha", help="Commit the checks are created on")
    p.add_argument("--jobs", help="JSON list of job names to fork")
    p.add_argument("--inputs", help="JSON object of workflow inputs")
    p.add_argument("--needs", help="JSON list of prerequisite job names")
    p.add_argument("--prefix", help="Check name prefix")
    p.add_argument("--timeout", help="Overall deadline in seconds (0 disables)")
    return p.parse_args()


async def main() -> int:
    args = parse_args()
    for attr, env in OVERRIDES.items():
        value = getattr(args, attr)
        if value is not None:
            os.environ[env] = value
    ctx = await bootstrap(force=True)
    try:
        outcome = await fork_inputs(ctx)
    except JobFailure as exc:
        print(f"Failing jobs: {', '.join(exc.outcome.failing)} (run {exc.outcome.run.html_url})")
        return 1
    except ForkError as exc:
        print(f"Fork failed at {exc.step}: {exc}")
        return 1
    finally:
        write_metrics(ctx.settings, ctx.logger)
    print(
        f"Forked {len(outcome.conclusions)} jobs from {outcome.run.html_url} "
        f"({outcome.iterations} polls, {outcome.updates} check updates)"
    )
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
