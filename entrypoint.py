"""GitHub Action entrypoint.

Behavior:
 - Settings come from the environment (``INPUT_*`` action inputs, ``GITHUB_*``
   defaults of the running workflow, optional ``.env``).
 - Forks the configured jobs once; exit code 0 when every tracked job
   completed without a failing conclusion.
 - Any fork error is printed as a ``::error::`` workflow command naming the
   failed step (resolve, provision, reconcile, inputs, timeout); exit code 1.
 - METRICS_TEXTFILE dumps the Prometheus registry before exiting.
 - Test shortcut: set ENTRYPOINT_TEST_MODE=1 to bootstrap without touching GitHub.

Usage (source):
  python entrypoint.py
"""
from __future__ import annotations
import asyncio, os, sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import ValidationError

from forker.bootstrap import bootstrap, write_metrics
from forker.core.errors import ForkError
from forker.core.orchestrator import fork_inputs


def error_annotation(step: str, message: str) -> str:
    # Workflow commands end at the first newline.
    escaped = message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
    return f"::error::{step}: {escaped}"


async def main() -> int:
    try:
        ctx = await bootstrap()
    except ValidationError as exc:
        print(error_annotation("inputs", str(exc)), flush=True)
        return 1

    if os.environ.get('ENTRYPOINT_TEST_MODE') == '1':
        ctx.logger.info("entrypoint_test_mode", detail="skipping fork")
        return 0

    try:
        await fork_inputs(ctx)
    except ForkError as exc:
        print(error_annotation(exc.step, str(exc)), flush=True)
        return 1
    finally:
        write_metrics(ctx.settings, ctx.logger)
    return 0


def run() -> int:
    try:
        return asyncio.run(main())
    except KeyboardInterrupt:
        print('\n[entrypoint] Interrupted')
        return 130


if __name__ == '__main__':
    sys.exit(run())
