"""Action inputs -> ``ForkOptions``.

GitHub Actions hands every input over as a string, so the structured ones
(``jobs``, ``inputs``, ``needs``, ``labels``) arrive JSON encoded. Build
profiles derived from pull request labels are folded in here:

- ``useProfiles``: the dispatch inputs gain ``profiles``, always ``debug``
  plus ``release`` when the release label is present
- ``useMulti``: the dispatch inputs gain ``release``/``production`` flags
- with either switch every tracked job is expanded per profile, e.g.
  ``build`` -> ``build (debug)``, ``build (release)``
"""
from __future__ import annotations

import json
from typing import Any, Iterable, Optional

from domain.models import ForkOptions

from .bootstrap import Settings
from .core.errors import InputError
from .utils import stringify_inputs, unique

DEBUG_PROFILE = {"name": "debug", "flags": ""}
RELEASE_PROFILE = {"name": "release", "flags": "--release"}


def _load_json(name: str, raw: Optional[str], expected: type, default: Any) -> Any:
    if raw is None or not raw.strip():
        return default
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InputError(f"{name} is not valid JSON: {exc.msg}") from exc
    if not isinstance(value, expected):
        raise InputError(f"{name} must be a JSON {expected.__name__}")
    return value


def _string_list(name: str, raw: Optional[str]) -> list[str]:
    values = _load_json(name, raw, list, [])
    if not all(isinstance(v, str) for v in values):
        raise InputError(f"{name} must be a JSON list of strings")
    return [v.strip() for v in values if v.strip()]


def split_repo(full_name: str) -> tuple[str, str]:
    parts = (full_name or "").strip().split("/")
    if len(parts) != 2 or not all(parts):
        raise InputError("repo needs to be in the {owner}/{repository} format.")
    return parts[0], parts[1]


def derive_inputs(
    inputs: dict[str, Any],
    jobs: Iterable[str],
    labels: Iterable[str],
    *,
    use_profiles: bool = False,
    use_multi: bool = False,
    release_label: str = "E3-forcerelease",
    production_label: str = "E4-forceproduction",
) -> tuple[dict[str, Any], list[str]]:
    """Apply the label driven build profiles to dispatch inputs and jobs."""
    jobs = list(jobs)
    if not (use_profiles or use_multi):
        return dict(inputs), jobs

    labels = set(labels)
    release = release_label in labels
    production = production_label in labels
    derived = dict(inputs)

    if use_profiles:
        profiles = [dict(DEBUG_PROFILE)]
        if release:
            profiles.append(dict(RELEASE_PROFILE))
        derived["profiles"] = profiles

    if use_multi:
        if release:
            derived["release"] = "true"
        if production:
            derived["production"] = "true"

    expanded = [f"{job} (debug)" for job in jobs]
    if release:
        expanded += [f"{job} (release)" for job in jobs]
    return derived, expanded


def unpack_inputs(settings: Settings) -> ForkOptions:
    """Validate the configured inputs and build the fork options."""
    owner, repo = split_repo(settings.repo)
    for field_name in ("workflow_id", "ref", "head_sha"):
        if not getattr(settings, field_name):
            raise InputError(f"{field_name} is required")

    raw_inputs = _load_json("inputs", settings.inputs_raw, dict, {})
    jobs = _string_list("jobs", settings.jobs_raw)
    if not jobs:
        raise InputError("jobs must name at least one job")
    needs = _string_list("needs", settings.needs_raw)
    labels: list[str] = []
    if settings.use_profiles or settings.use_multi:
        labels = _string_list("labels", settings.labels_raw)

    derived, jobs = derive_inputs(
        raw_inputs,
        jobs,
        labels,
        use_profiles=settings.use_profiles,
        use_multi=settings.use_multi,
        release_label=settings.release_label,
        production_label=settings.production_label,
    )
    tracked = unique(jobs)
    overlap = set(tracked) & set(needs)
    if overlap:
        raise InputError(f"needs must not overlap jobs: {', '.join(sorted(overlap))}")

    return ForkOptions(
        owner=owner,
        repo=repo,
        ref=settings.ref,
        workflow_id=settings.workflow_id,
        inputs=stringify_inputs(derived),
        jobs=tracked,
        head_sha=settings.head_sha,
        prefix=settings.prefix,
        needs=unique(needs),
    )


__all__ = ["unpack_inputs", "derive_inputs", "split_repo"]
