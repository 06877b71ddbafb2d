"""Inspect and safely log the effective configuration.

Every ``Settings`` field is reported under the environment variable that
feeds it, together with where its value came from (``env`` or ``default``).
Values whose name looks secret (token, secret, pass, pwd, key,
authorization) are masked.

Unknown ``INPUT_*`` variables are reported separately: GitHub Actions turns
every ``with:`` entry into one, so a typo in the workflow file shows up here
instead of silently falling back to a default.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional
import os
import re

from pydantic import AliasChoices
from pydantic.fields import FieldInfo

SENSITIVE_PATTERN = re.compile(r"(token|secret|pass|pwd|key|authorization)", re.IGNORECASE)
INPUT_PREFIX = "INPUT_"


@dataclass(frozen=True, slots=True)
class ConfigRow:
    env: str
    value: Any
    source: str  # env | default


def is_sensitive(key: str) -> bool:
    return bool(SENSITIVE_PATTERN.search(key))


def mask_value(key: str, value: Any) -> Any:
    if value is None or value == "":
        return value
    if is_sensitive(key):
        if isinstance(value, str) and len(value) > 6:
            return value[:3] + "***" + value[-2:]
        return "***"
    return value


def env_names(name: str, field: FieldInfo) -> tuple[str, ...]:
    """Environment variable names a settings field is read from."""
    alias = field.validation_alias or field.alias
    if isinstance(alias, AliasChoices):
        return tuple(c for c in alias.choices if isinstance(c, str))
    if isinstance(alias, str):
        return (alias,)
    return (name.upper(),)


def settings_rows(settings) -> list[ConfigRow]:
    fields: Mapping[str, FieldInfo] = type(settings).model_fields
    rows = []
    for name, field in fields.items():
        env = env_names(name, field)[0]
        source = "env" if name in settings.model_fields_set else "default"
        rows.append(ConfigRow(env=env, value=mask_value(name, getattr(settings, name)), source=source))
    return sorted(rows, key=lambda r: r.env)


def unknown_inputs(settings, environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """``INPUT_*`` variables present in the environment that no field reads."""
    environ = os.environ if environ is None else environ
    known = {
        env.upper()
        for name, field in type(settings).model_fields.items()
        for env in env_names(name, field)
    }
    return sorted(k for k in environ if k.upper().startswith(INPUT_PREFIX) and k.upper() not in known)


def safe_snapshot(settings) -> Dict[str, Any]:
    """Masked ``{ENV_NAME: value}`` view of the effective settings."""
    return {row.env: row.value for row in settings_rows(settings)}


def format_snapshot(rows: Iterable[ConfigRow]) -> str:
    rows = list(rows)
    width = max((len(r.env) for r in rows), default=0)
    return "\n".join(f"{r.env.ljust(width)} = {r.value}  [{r.source}]" for r in rows)


def log_safe(logger, settings) -> None:
    logger.debug("runtime_config", config=safe_snapshot(settings))
    unknown = unknown_inputs(settings)
    if unknown:
        logger.warning("unknown_action_inputs", inputs=unknown)


__all__ = [
    "ConfigRow",
    "settings_rows",
    "unknown_inputs",
    "safe_snapshot",
    "format_snapshot",
    "log_safe",
    "mask_value",
]
