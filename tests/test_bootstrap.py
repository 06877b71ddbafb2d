from __future__ import annotations

import logging
import logging.handlers

import pytest

from forker.bootstrap import (
    FORK_DISPATCHES_TOTAL,
    Settings,
    bootstrap,
    configure_logging,
    redact_sensitive,
    write_metrics,
)
from forker.config_inspect import format_snapshot, mask_value, safe_snapshot, settings_rows, unknown_inputs


@pytest.mark.asyncio
async def test_bootstrap_basic(action_env):
    ctx = await bootstrap(force=True)
    assert ctx.settings.app_name == "check-forker"
    assert ctx.settings.repo == "acme/widgets"
    assert ctx.logger is not None
    assert await bootstrap() is ctx


def test_settings_defaults():
    settings = Settings()
    assert settings.fork_timeout_seconds == 6 * 3600
    assert settings.run_poll_interval_seconds == 3.0
    assert settings.job_poll_interval_seconds == 10.0
    assert settings.failing_conclusions == frozenset({"failure"})
    assert settings.api_url == "https://api.github.com"


def test_empty_inputs_fall_back_to_workflow_defaults(monkeypatch):
    monkeypatch.setenv("INPUT_REPO", "")
    monkeypatch.setenv("GITHUB_REPOSITORY", "octo/hello")
    assert Settings().repo == "octo/hello"


def test_failing_conclusions_list(monkeypatch):
    monkeypatch.setenv("FAILING_CONCLUSIONS", "failure, cancelled ,timed_out")
    assert Settings().failing_conclusions == frozenset({"failure", "cancelled", "timed_out"})


def test_negative_interval_rejected(monkeypatch):
    monkeypatch.setenv("JOB_POLL_INTERVAL_SECONDS", "-1")
    with pytest.raises(ValueError):
        Settings()


def test_redact_sensitive_nested():
    event = {"event": "x", "token": "abc", "headers": {"Authorization": "Bearer abc", "accept": "json"}}
    out = redact_sensitive(None, "info", event)
    assert out["token"] == "[REDACTED]"
    assert out["headers"]["Authorization"] == "[REDACTED]"
    assert out["headers"]["accept"] == "json"


def test_configure_logging_with_file(tmp_path, monkeypatch):
    log_file = tmp_path / "logs" / "forker.log"
    monkeypatch.setenv("LOG_FILE", str(log_file))
    monkeypatch.setenv("LOG_FORMAT", "console")
    configure_logging("DEBUG", Settings())
    handlers = logging.getLogger().handlers
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in handlers)
    assert log_file.parent.exists()


def test_write_metrics_textfile(tmp_path, monkeypatch):
    target = tmp_path / "metrics" / "forker.prom"
    assert write_metrics(Settings()) is False
    monkeypatch.setenv("METRICS_TEXTFILE", str(target))
    FORK_DISPATCHES_TOTAL.inc()
    assert write_metrics(Settings()) is True
    assert "forker_dispatches_total" in target.read_text()


def test_snapshot_masks_token(action_env):
    snap = safe_snapshot(Settings())
    assert snap["INPUT_TOKEN"] == "ghs***ue"
    assert snap["INPUT_REPO"] == "acme/widgets"
    assert mask_value("secret", "abc") == "***"


def test_rows_report_source(action_env):
    rows = {row.env: row for row in settings_rows(Settings())}
    assert rows["INPUT_REPO"].source == "env"
    assert rows["FORK_TIMEOUT_SECONDS"].source == "default"
    assert "INPUT_REPO" in format_snapshot(rows.values())


def test_unknown_inputs_are_reported(action_env, monkeypatch):
    monkeypatch.setenv("INPUT_WORKFLOWID", "typo.yml")
    assert unknown_inputs(Settings()) == ["INPUT_WORKFLOWID"]
