"""Stateless helpers shared by the fork engine.

- Retry decorator wrapping Tenacity with a fixed backoff
- Latest-run selection (most recent ``created_at`` wins)
- Dispatch input coercion (GitHub only accepts string values)
- A small perf timer used for metrics
"""
from __future__ import annotations

import json
import time
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from domain.models import WorkflowRun

from .core.errors import TransientError


# ---------------------------------------------------------------------------
# Retry helper (wrapping Tenacity)
# ---------------------------------------------------------------------------
def retryable(
    *exc_types: type[BaseException],
    attempts: int = 3,
    backoff: float = 3.0,
):
    """Decorator factory for retry logic with a fixed backoff.

    Example:
        @retryable(TransientError, attempts=4, backoff=2)
        async def fragile(): ...

    The last exception is re-raised once attempts are exhausted.
    """
    if not exc_types:
        exc_types = (TransientError,)

    def _decorator(fn: Callable[..., Awaitable[Any]]):
        return retry(
            reraise=True,
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_fixed(max(0.0, backoff)),
            retry=retry_if_exception_type(exc_types),
        )(fn)

    return _decorator


# ---------------------------------------------------------------------------
# Workflow runs
# ---------------------------------------------------------------------------
def latest_run(runs: Iterable[WorkflowRun]) -> Optional[WorkflowRun]:
    """Return the most recently created run, ``None`` for an empty list.

    Equal timestamps fall back to the higher run id.
    """
    best: Optional[WorkflowRun] = None
    for run in runs:
        if best is None or (run.created_at, run.id) > (best.created_at, best.id):
            best = run
    return best


# ---------------------------------------------------------------------------
# Dispatch inputs
# ---------------------------------------------------------------------------
def stringify_inputs(inputs: Mapping[str, Any]) -> dict[str, str]:
    """Coerce dispatch inputs to strings; structured values become JSON."""
    out: dict[str, str] = {}
    for key, value in inputs.items():
        if isinstance(value, str):
            out[str(key)] = value
        elif isinstance(value, bool):
            out[str(key)] = "true" if value else "false"
        elif value is None:
            out[str(key)] = ""
        else:
            out[str(key)] = json.dumps(value, separators=(",", ":"))
    return out


def unique(items: Iterable[str]) -> tuple[str, ...]:
    """De-duplicate preserving first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return tuple(out)


class Timer:
    """Simple timer context for performance metrics."""

    def __init__(self) -> None:
        self._start: float | None = None
        self.elapsed: float | None = None

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc_info):
        if self._start is not None:
            self.elapsed = time.perf_counter() - self._start
        return False


__all__ = [
    "retryable",
    "latest_run",
    "stringify_inputs",
    "unique",
    "Timer",
]
