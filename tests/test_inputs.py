from __future__ import annotations

import json

import pytest

from forker.bootstrap import Settings
from forker.core.errors import InputError
from forker.inputs import derive_inputs, split_repo, unpack_inputs


def test_unpack_plain_inputs(action_env):
    action_env(INPUT_INPUTS='{"env": "prod", "retries": 2}', INPUT_PREFIX="fork")
    options = unpack_inputs(Settings())
    assert (options.owner, options.repo) == ("acme", "widgets")
    assert options.workflow_id == "ci.yml"
    assert options.jobs == ("build", "test")
    assert options.inputs == {"env": "prod", "retries": "2"}
    assert options.prefix == "fork"
    assert options.needs == ()


def test_duplicate_jobs_are_collapsed(action_env):
    action_env(INPUT_JOBS='["build", "test", "build"]')
    assert unpack_inputs(Settings()).jobs == ("build", "test")


@pytest.mark.parametrize("repo", ["widgets", "acme/widgets/extra", "/widgets", "acme/"])
def test_repo_must_be_owner_slash_name(action_env, repo):
    action_env(INPUT_REPO=repo)
    with pytest.raises(InputError):
        unpack_inputs(Settings())


def test_split_repo():
    assert split_repo("octo/hello") == ("octo", "hello")


def test_invalid_json_is_an_input_error(action_env):
    action_env(INPUT_JOBS="[build")
    with pytest.raises(InputError) as exc:
        unpack_inputs(Settings())
    assert exc.value.step == "inputs"


def test_jobs_must_be_a_list_of_strings(action_env):
    action_env(INPUT_JOBS='{"build": true}')
    with pytest.raises(InputError):
        unpack_inputs(Settings())


def test_empty_jobs_rejected(action_env):
    action_env(INPUT_JOBS="[]")
    with pytest.raises(InputError):
        unpack_inputs(Settings())


def test_missing_workflow_rejected(action_env, monkeypatch):
    monkeypatch.delenv("INPUT_WORKFLOW_ID")
    with pytest.raises(InputError):
        unpack_inputs(Settings())


def test_needs_must_not_overlap_jobs(action_env):
    action_env(INPUT_NEEDS='["build"]')
    with pytest.raises(InputError):
        unpack_inputs(Settings())


def test_needs_are_carried(action_env):
    action_env(INPUT_NEEDS='["setup"]')
    assert unpack_inputs(Settings()).needs == ("setup",)


def test_github_defaults_fill_coordinates(monkeypatch):
    monkeypatch.setenv("GITHUB_REPOSITORY", "octo/hello")
    monkeypatch.setenv("GITHUB_REF_NAME", "feature")
    monkeypatch.setenv("GITHUB_SHA", "deadbeef")
    monkeypatch.setenv("INPUT_WORKFLOW_ID", "build.yml")
    monkeypatch.setenv("INPUT_JOBS", '["build"]')
    options = unpack_inputs(Settings())
    assert options.full_name == "octo/hello"
    assert options.ref == "feature"
    assert options.head_sha == "deadbeef"


def test_profiles_without_release_label(action_env):
    action_env(INPUT_USEPROFILES="true", INPUT_LABELS='["bug"]')
    options = unpack_inputs(Settings())
    assert json.loads(options.inputs["profiles"]) == [{"name": "debug", "flags": ""}]
    assert options.jobs == ("build (debug)", "test (debug)")


def test_profiles_with_release_label(action_env):
    action_env(INPUT_USEPROFILES="true", INPUT_LABELS='["E3-forcerelease"]')
    options = unpack_inputs(Settings())
    assert json.loads(options.inputs["profiles"]) == [
        {"name": "debug", "flags": ""},
        {"name": "release", "flags": "--release"},
    ]
    assert options.jobs == ("build (debug)", "test (debug)", "build (release)", "test (release)")


def test_multi_sets_release_and_production_flags(action_env):
    action_env(INPUT_USEMULTI="true", INPUT_LABELS='["E3-forcerelease", "E4-forceproduction"]')
    options = unpack_inputs(Settings())
    assert options.inputs["release"] == "true"
    assert options.inputs["production"] == "true"
    assert "profiles" not in options.inputs
    assert "test (release)" in options.jobs


def test_labels_ignored_without_switches(action_env):
    action_env(INPUT_LABELS='["E3-forcerelease"]')
    options = unpack_inputs(Settings())
    assert options.jobs == ("build", "test")
    assert options.inputs == {}


def test_derive_inputs_custom_labels():
    inputs, jobs = derive_inputs(
        {"a": "1"},
        ["build"],
        ["ship-it"],
        use_multi=True,
        release_label="ship-it",
    )
    assert inputs == {"a": "1", "release": "true"}
    assert jobs == ["build (debug)", "build (release)"]
