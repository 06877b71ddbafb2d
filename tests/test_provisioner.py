from __future__ import annotations

import asyncio

import pytest

from forker.core.errors import ProvisionError, RemoteError, TransientError
from forker.core.naming import CheckNamespace
from forker.runtime.provisioner import forked_summary, provision_checks
from fakes import FakeApi, make_run


@pytest.mark.asyncio
async def test_one_check_per_job_with_namespace():
    api = FakeApi()
    run = make_run(1)
    checks = await provision_checks(
        api, ["build", "test", "build"], "abc123", run=run, namespace=CheckNamespace("ci"), backoff=0
    )
    assert list(checks) == ["build", "test"]
    assert sorted(c.name for c in api.created) == ["ci / build", "ci / test"]
    assert all(c.head_sha == "abc123" for c in api.created)


@pytest.mark.asyncio
async def test_checks_are_created_concurrently():
    api = FakeApi()
    in_flight = 0
    peak = 0
    create = api.create_check

    async def slow_create(name, head_sha, **kw):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return await create(name, head_sha, **kw)

    api.create_check = slow_create
    await provision_checks(api, ["a", "b", "c"], "abc123", run=make_run(1), backoff=0)
    assert peak == 3


@pytest.mark.asyncio
async def test_transient_create_failure_is_retried():
    api = FakeApi(errors={"create_check": [TransientError("502")]})
    checks = await provision_checks(api, ["build"], "abc123", run=make_run(1), attempts=3, backoff=0)
    assert checks["build"].name == "build"


@pytest.mark.asyncio
async def test_persistent_failure_raises_provision_error():
    api = FakeApi(errors={"create_check": [RemoteError("403 forbidden", status_code=403)]})
    with pytest.raises(ProvisionError) as exc:
        await provision_checks(api, ["build"], "abc123", run=make_run(1), attempts=3, backoff=0)
    assert exc.value.jobs == ("build",)
    assert exc.value.step == "provision"


@pytest.mark.asyncio
async def test_exhausted_retries_raise_provision_error():
    api = FakeApi(errors={"create_check": [TransientError("502")] * 2})
    with pytest.raises(ProvisionError):
        await provision_checks(api, ["build"], "abc123", run=make_run(1), attempts=2, backoff=0)


def test_forked_summary():
    assert forked_summary("https://run") == "Forked from https://run"
    assert forked_summary(None) == ""
