"""Bootstrap module for the fork engine.

Central responsibilities:
- Load and validate settings from the environment (GitHub Actions passes
  action inputs as ``INPUT_<NAME>`` variables; a local ``.env`` is honoured)
- Configure structured logging (structlog + optional rotating file handler)
- Expose Prometheus metric instruments (counters, histograms)
- Provide a shared context object for the orchestrator

Design notes:
- Idempotent initialization (``bootstrap()`` returns the cached context
  unless ``force=True``)
- Nothing here talks to GitHub; the API client is built by the orchestrator
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import asyncio
import logging
from logging.handlers import RotatingFileHandler
import sys

import structlog
from prometheus_client import REGISTRY, Counter, Histogram, write_to_textfile
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ------------------------------------------------------------
# Settings
# ------------------------------------------------------------

class Settings(BaseSettings):
    """Application settings loaded from environment.

    Action inputs use the names GitHub Actions exports for them
    (``INPUT_REPO``, ``INPUT_JOBS`` ...). Coordinates fall back to the
    default variables of the running workflow when the input is empty.
    """

    app_name: str = Field("check-forker", alias="APP_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: str = Field("json", alias="LOG_FORMAT")  # json | console
    log_file: str | None = Field(None, alias="LOG_FILE")
    log_max_bytes: int = Field(2_000_000, alias="LOG_MAX_BYTES")  # ~2MB
    log_backup_count: int = Field(5, alias="LOG_BACKUP_COUNT")

    # Action inputs
    token: Optional[str] = Field(None, validation_alias=AliasChoices("INPUT_TOKEN", "GITHUB_TOKEN"))
    repo: str = Field("", validation_alias=AliasChoices("INPUT_REPO", "GITHUB_REPOSITORY"))
    ref: str = Field("", validation_alias=AliasChoices("INPUT_REF", "GITHUB_REF_NAME"))
    workflow_id: str = Field("", alias="INPUT_WORKFLOW_ID")
    head_sha: str = Field("", validation_alias=AliasChoices("INPUT_HEAD_SHA", "GITHUB_SHA"))
    prefix: str = Field("", alias="INPUT_PREFIX")
    # JSON encoded payloads, decoded by forker.inputs
    inputs_raw: str = Field("{}", alias="INPUT_INPUTS")
    jobs_raw: str = Field("[]", alias="INPUT_JOBS")
    needs_raw: str = Field("[]", alias="INPUT_NEEDS")
    labels_raw: str = Field("[]", alias="INPUT_LABELS")
    use_profiles: bool = Field(False, alias="INPUT_USEPROFILES")
    use_multi: bool = Field(False, alias="INPUT_USEMULTI")
    release_label: str = Field("E3-forcerelease", alias="RELEASE_LABEL")
    production_label: str = Field("E4-forceproduction", alias="PRODUCTION_LABEL")

    # GitHub API
    api_url: str = Field("https://api.github.com", validation_alias=AliasChoices("GITHUB_API_URL"))
    api_version: str = Field("2022-11-28", alias="GITHUB_API_VERSION")
    httpx_timeout: int = Field(20, alias="HTTPX_TIMEOUT")
    request_attempts: int = Field(3, alias="REQUEST_ATTEMPTS")  # in-client attempts for idempotent reads
    retry_backoff_seconds: float = Field(3.0, alias="RETRY_BACKOFF_SECONDS")

    # Polling cadence & deadline
    run_poll_interval_seconds: float = Field(3.0, alias="RUN_POLL_INTERVAL_SECONDS")
    job_poll_interval_seconds: float = Field(10.0, alias="JOB_POLL_INTERVAL_SECONDS")
    create_check_attempts: int = Field(3, alias="CREATE_CHECK_ATTEMPTS")
    fork_timeout_seconds: float = Field(6 * 3600, alias="FORK_TIMEOUT_SECONDS")  # 0 disables the deadline
    failing_conclusions_raw: str = Field("failure", alias="FAILING_CONCLUSIONS")

    # Single-flight dispatch (same host only)
    dispatch_lock_file: str | None = Field(None, alias="DISPATCH_LOCK_FILE")
    dispatch_lock_timeout_seconds: float = Field(300.0, alias="DISPATCH_LOCK_TIMEOUT_SECONDS")

    # Metrics
    metrics_textfile: str | None = Field(None, alias="METRICS_TEXTFILE")

    @field_validator(
        "retry_backoff_seconds",
        "run_poll_interval_seconds",
        "job_poll_interval_seconds",
        "fork_timeout_seconds",
        "dispatch_lock_timeout_seconds",
    )
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("request_attempts", "create_check_attempts")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        return max(1, v)

    @field_validator("repo", "ref", "workflow_id", "head_sha", "prefix")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @property
    def failing_conclusions(self) -> frozenset[str]:
        return frozenset(c.strip() for c in self.failing_conclusions_raw.split(",") if c.strip())

    # Pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,  # unset action inputs arrive as empty INPUT_* variables
        case_sensitive=False,
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )


# ------------------------------------------------------------
# Logging configuration (structlog)
# ------------------------------------------------------------
SENSITIVE_LOG_KEYS = {"token", "authorization", "password", "secret"}


def redact_sensitive(logger, method_name, event_dict):  # noqa: D401
    """Replace token-like values in the event dict with a marker."""

    def _scrub(value):
        if isinstance(value, dict):
            out = {}
            for k, v in value.items():
                ks = str(k).lower()
                if any(sk in ks for sk in SENSITIVE_LOG_KEYS):
                    out[k] = "[REDACTED]"
                else:
                    out[k] = _scrub(v)
            return out
        if isinstance(value, (list, tuple)):
            return [_scrub(v) for v in value]
        return value

    return _scrub(event_dict)


def configure_logging(level: str = "INFO", settings: Settings | None = None) -> None:
    """Configure structured logging with structlog.

    JSON lines by default; ``LOG_FORMAT=console`` switches to the structlog
    console renderer, which reads better in the Actions log viewer.
    """
    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if settings is not None and settings.log_format.lower() == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    handlers.append(stream_handler)

    if settings and settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


# ------------------------------------------------------------
# Metrics instruments
# ------------------------------------------------------------
FORK_RUNS_TOTAL = Counter(
    "forker_runs_total", "Fork invocations by result", labelnames=("result",)
)
FORK_DURATION_SECONDS = Histogram(
    "forker_duration_seconds", "Wall-clock duration of a fork invocation in seconds"
)
FORK_DISPATCHES_TOTAL = Counter(
    "forker_dispatches_total", "Workflow dispatches issued"
)
FORK_REMOTE_ERRORS = Counter(
    "forker_remote_errors_total", "Remote API failures", labelnames=("operation", "kind")
)
FORK_REQUEST_DURATION = Histogram(
    "forker_request_duration_seconds", "Duration of GitHub API requests", labelnames=("operation",)
)
FORK_CHECKS_CREATED = Counter(
    "forker_checks_created_total", "Check runs created"
)
FORK_CHECK_UPDATES = Counter(
    "forker_check_updates_total", "Check run updates applied", labelnames=("status",)
)
FORK_POLL_ITERATIONS = Counter(
    "forker_poll_iterations_total", "Reconciliation loop iterations"
)


def write_metrics(settings: Settings, logger: structlog.BoundLogger | None = None) -> bool:
    """Dump the default registry for the node exporter textfile collector."""
    if not settings.metrics_textfile:
        return False
    path = Path(settings.metrics_textfile)
    path.parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(path), REGISTRY)
    if logger is not None:
        logger.debug("metrics_written", path=str(path))
    return True


# ------------------------------------------------------------
# Context dataclass
# ------------------------------------------------------------
@dataclass(slots=True)
class AppContext:
    settings: Settings
    logger: structlog.BoundLogger


_context_singleton: Optional[AppContext] = None
_context_lock = asyncio.Lock()


async def bootstrap(force: bool = False) -> AppContext:
    """Create (or return existing) application context.

    Args:
        force: Recreate the context even if already initialized (tests).
    """
    global _context_singleton
    if _context_singleton and not force:
        return _context_singleton

    async with _context_lock:
        if _context_singleton and not force:
            return _context_singleton

        settings = Settings()  # Loads from env automatically
        configure_logging(settings.log_level, settings)
        logger = structlog.get_logger().bind(component="bootstrap")
        from .config_inspect import log_safe  # local import to avoid a cycle

        log_safe(logger, settings)

        ctx = AppContext(settings=settings, logger=structlog.get_logger().bind(app=settings.app_name))
        logger.debug("bootstrap_complete", repo=settings.repo, workflow_id=settings.workflow_id)
        _context_singleton = ctx
        return ctx
