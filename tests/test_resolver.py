from __future__ import annotations

import asyncio

import pytest
from filelock import FileLock

from forker.core.errors import NotFoundError, RemoteError, TransientError
from forker.runtime.resolver import RunResolver
from fakes import FakeApi, make_run, no_sleep


def resolver_for(api: FakeApi, **kw) -> RunResolver:
    kw.setdefault("sleep", no_sleep)
    return RunResolver(
        api,
        workflow_id="ci.yml",
        head_sha="abc123",
        ref="main",
        inputs={"env": "prod"},
        **kw,
    )


@pytest.mark.asyncio
async def test_existing_run_is_reused_without_dispatch():
    api = FakeApi(runs=[make_run(1, minutes=0), make_run(2, minutes=3)])
    resolver = resolver_for(api)
    run = await resolver.resolve()
    assert run.id == 2
    assert api.dispatches == []
    assert resolver.dispatched is False


@pytest.mark.asyncio
async def test_dispatches_once_and_waits_for_the_run():
    api = FakeApi(dispatch_run=make_run(50), run_delay=3)
    resolver = resolver_for(api)
    run = await resolver.resolve()
    assert run.id == 50
    assert api.dispatches == [("ci.yml", "main", {"env": "prod"})]
    assert api.list_runs_calls == 5  # empty, then 3 misses, then visible


@pytest.mark.asyncio
async def test_poll_interval_is_used_between_listings():
    api = FakeApi(run_delay=1)
    sleeps = []

    async def record(seconds):
        sleeps.append(seconds)

    await resolver_for(api, sleep=record, poll_interval=3.0).resolve()
    assert sleeps and all(s == 3.0 for s in sleeps)


@pytest.mark.asyncio
async def test_second_invocation_reuses_the_dispatched_run():
    api = FakeApi(run_delay=0)
    first = await resolver_for(api).resolve()
    second = await resolver_for(api).resolve()
    assert first.id == second.id
    assert len(api.dispatches) == 1


@pytest.mark.asyncio
async def test_transient_dispatch_failure_rechecks_before_redispatch():
    api = FakeApi(errors={"dispatch": [TransientError("timeout")]})
    # The failed dispatch did not reach the remote: the next listing is
    # empty again, so exactly one more dispatch is issued.
    run = await resolver_for(api).resolve()
    assert run.id == api.dispatch_run.id
    assert len(api.dispatches) == 1


@pytest.mark.asyncio
async def test_dispatch_that_reached_remote_is_not_repeated():
    api = FakeApi()
    real_dispatch = api.dispatch

    async def dispatch_then_fail(workflow_id, ref, inputs):
        await real_dispatch(workflow_id, ref, inputs)
        raise TransientError("response lost")

    api.dispatch = dispatch_then_fail
    run = await resolver_for(api).resolve()
    assert run.id == api.dispatch_run.id
    assert len(api.dispatches) == 1


@pytest.mark.asyncio
async def test_transient_and_not_found_listings_are_retried():
    api = FakeApi(
        runs=[make_run(9)],
        errors={"list_runs": [TransientError("502"), NotFoundError("404")]},
    )
    run = await resolver_for(api).resolve()
    assert run.id == 9
    assert api.list_runs_calls == 3
    assert api.dispatches == []


@pytest.mark.asyncio
async def test_fatal_dispatch_error_propagates():
    api = FakeApi(errors={"dispatch": [RemoteError("422 unexpected inputs", status_code=422)]})
    with pytest.raises(RemoteError):
        await resolver_for(api).resolve()


@pytest.mark.asyncio
async def test_single_flight_lock_is_released(tmp_path):
    lock_file = str(tmp_path / "dispatch.lock")
    api = FakeApi(run_delay=1)
    await resolver_for(api, lock_file=lock_file, lock_timeout=1).resolve()
    # A second resolver acquires the same lock immediately.
    run = await asyncio.wait_for(resolver_for(api, lock_file=lock_file, lock_timeout=1).resolve(), timeout=5)
    assert run.id == api.dispatch_run.id
    assert len(api.dispatches) == 1


@pytest.mark.asyncio
async def test_cancelled_lock_wait_leaves_lock_free(tmp_path):
    lock_file = str(tmp_path / "dispatch.lock")
    holder = FileLock(lock_file)
    holder.acquire()
    try:
        api = FakeApi(runs=[make_run(1)])
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(resolver_for(api, lock_file=lock_file, lock_timeout=30).resolve(), timeout=0.2)
    finally:
        holder.release()
    other = FileLock(lock_file)
    other.acquire(timeout=0)
    assert other.is_locked
    other.release()


@pytest.mark.asyncio
async def test_busy_lock_times_out_and_proceeds(tmp_path):
    lock_file = str(tmp_path / "dispatch.lock")
    holder = FileLock(lock_file)
    holder.acquire()
    try:
        api = FakeApi(runs=[make_run(7)])
        run = await asyncio.wait_for(
            resolver_for(api, lock_file=lock_file, lock_timeout=0.1).resolve(), timeout=5
        )
    finally:
        holder.release()
    assert run.id == 7
    assert api.dispatches == []
