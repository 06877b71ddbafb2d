"""Check name namespacing.

Remote jobs are matched by their plain name; only the check runs created on
the local commit are namespaced, so that checks forked by concurrent
invocations (other workflows, other prefixes) never collide.
"""
from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SEPARATOR = " / "


@dataclass(frozen=True, slots=True)
class CheckNamespace:
    prefix: str = ""
    separator: str = DEFAULT_SEPARATOR

    def __post_init__(self) -> None:
        object.__setattr__(self, "prefix", (self.prefix or "").strip())

    def check_name(self, job: str) -> str:
        if not self.prefix:
            return job
        return f"{self.prefix}{self.separator}{job}"

    def check_names(self, jobs: tuple[str, ...] | list[str]) -> dict[str, str]:
        return {job: self.check_name(job) for job in jobs}


__all__ = ["CheckNamespace", "DEFAULT_SEPARATOR"]
