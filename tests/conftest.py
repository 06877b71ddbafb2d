from __future__ import annotations

import os

import pytest

# Variables the settings layer reads; cleared so the CI environment running
# the tests (itself a GitHub Actions job) never leaks into them.
ENV_PREFIXES = ("INPUT_", "GITHUB_")
ENV_KEYS = (
    "FORK_TIMEOUT_SECONDS",
    "FAILING_CONCLUSIONS",
    "METRICS_TEXTFILE",
    "DISPATCH_LOCK_FILE",
    "LOG_FILE",
    "LOG_FORMAT",
    "RUN_POLL_INTERVAL_SECONDS",
    "JOB_POLL_INTERVAL_SECONDS",
    "RETRY_BACKOFF_SECONDS",
    "ENTRYPOINT_TEST_MODE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.upper().startswith(ENV_PREFIXES) or key.upper() in ENV_KEYS:
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)  # no stray .env
    yield


@pytest.fixture
def action_env(monkeypatch):
    """Set a complete, fast set of action inputs; returns a setter for overrides."""
    base = {
        "INPUT_TOKEN": "ghs_test_token_value",
        "INPUT_REPO": "acme/widgets",
        "INPUT_REF": "main",
        "INPUT_WORKFLOW_ID": "ci.yml",
        "INPUT_HEAD_SHA": "abc123",
        "INPUT_JOBS": '["build", "test"]',
        "RUN_POLL_INTERVAL_SECONDS": "0",
        "JOB_POLL_INTERVAL_SECONDS": "0",
        "RETRY_BACKOFF_SECONDS": "0",
    }
    for k, v in base.items():
        monkeypatch.setenv(k, v)

    def _set(**overrides: str) -> None:
        for k, v in overrides.items():
            monkeypatch.setenv(k, v)

    return _set
