"""
CLI tests with click's CliRunner; git is replaced with fakes.
"""

import json
from unittest.mock import Mock

import pytest
from click.testing import CliRunner

from pushdeploy import cli
from pushdeploy.errors import DetachedOrUnresolvable, PushRejected
from pushdeploy.git import CodePusher, PushResult
from pushdeploy.state import list_deploys


CONFIG = """
environments:
  staging: remote-a
  production: remote-b
hooks:
  before_deploy:
    - echo "before1 $PUSHDEPLOY_BRANCH" >> hooks.log
    - echo "before2 $PUSHDEPLOY_REMOTE" >> hooks.log
  after_deploy:
    - echo "after1 $PUSHDEPLOY_ENVIRONMENT" >> hooks.log
"""


class FakeResolver:
    branch = "bugs"
    error = None

    def current_branch(self):
        if self.error:
            raise self.error
        return self.branch


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    config_path = tmp_path / "pushdeploy.yml"
    config_path.write_text(CONFIG)
    monkeypatch.setenv("PUSHDEPLOY_HOME", str(tmp_path / "records"))
    monkeypatch.setenv("PUSHDEPLOY_CONFIG", str(config_path))
    monkeypatch.setattr(FakeResolver, "branch", "bugs")
    monkeypatch.setattr(FakeResolver, "error", None)
    monkeypatch.setattr(cli, "BranchResolver", FakeResolver)
    return tmp_path


@pytest.fixture
def pusher(workspace, monkeypatch):
    mock = Mock(spec=CodePusher)

    def push(remote, branch):
        with open(workspace / "hooks.log", "a") as f:
            f.write(f"push {remote} {branch}\n")
        return PushResult(remote=remote, refspec=f"{branch}:master", output="")

    mock.push.side_effect = push
    monkeypatch.setattr(cli, "CodePusher", lambda default_branch: mock)
    return mock


def hook_log(workspace):
    path = workspace / "hooks.log"
    return path.read_text().splitlines() if path.exists() else []


def invoke(*args, input=None):
    return CliRunner().invoke(cli.main, list(args), input=input)


def test_deploy_staging_end_to_end(workspace, pusher):
    result = invoke("deploy", "staging")

    assert result.exit_code == 0, result.output
    assert hook_log(workspace) == ["before1 bugs", "before2 remote-a", "push remote-a bugs", "after1 staging"]
    assert "Deployed bugs to staging" in result.output
    assert "Continue?" not in result.output

    deploy_id = list_deploys()[0]
    assert f"Deploy ID: {deploy_id}" in result.output

    status = invoke("status", deploy_id, "--format", "json")
    assert status.exit_code == 0
    info = json.loads(status.output)
    assert info["status"] == "complete"
    assert info["environment"] == "staging"
    assert info["branch"] == "bugs"


def test_unknown_environment(workspace, pusher):
    result = invoke("deploy", "prod")
    assert result.exit_code == 2
    assert "Unknown environment" in result.output
    pusher.push.assert_not_called()
    assert hook_log(workspace) == []


def test_production_declined(workspace, pusher):
    result = invoke("deploy", "production", input="n\n")
    assert result.exit_code == 4
    assert "Continue?" in result.output
    pusher.push.assert_not_called()
    assert hook_log(workspace) == []


@pytest.mark.parametrize("answer", ["\n", "maybe\n", ""])
def test_production_non_affirmative_answers_abort(workspace, pusher, answer):
    result = invoke("deploy", "production", input=answer)
    assert result.exit_code == 4
    pusher.push.assert_not_called()


@pytest.mark.parametrize("answer", ["y\n", "YES\n"])
def test_production_confirmed(workspace, pusher, answer):
    result = invoke("deploy", "production", input=answer)
    assert result.exit_code == 0, result.output
    pusher.push.assert_called_once_with("remote-b", "bugs")


def test_production_yes_flag_skips_prompt(workspace, pusher):
    result = invoke("deploy", "production", "--yes")
    assert result.exit_code == 0, result.output
    assert "Continue?" not in result.output
    pusher.push.assert_called_once_with("remote-b", "bugs")


def test_production_master_needs_no_confirmation(workspace, pusher, monkeypatch):
    monkeypatch.setattr(FakeResolver, "branch", "master")
    result = invoke("deploy", "production")
    assert result.exit_code == 0, result.output
    assert "Continue?" not in result.output
    pusher.push.assert_called_once_with("remote-b", "master")


def test_detached_head(workspace, pusher, monkeypatch):
    monkeypatch.setattr(FakeResolver, "error", DetachedOrUnresolvable("HEAD is detached"))
    result = invoke("deploy", "staging")
    assert result.exit_code == 3
    pusher.push.assert_not_called()


def test_push_rejected(workspace, pusher):
    pusher.push.side_effect = PushRejected("remote-a", "bugs:master", "remote: denied")
    result = invoke("deploy", "staging")
    assert result.exit_code == 6
    assert "remote: denied" in result.output
    assert hook_log(workspace) == ["before1 bugs", "before2 remote-a"]


def test_before_hook_failure(workspace, pusher):
    (workspace / "pushdeploy.yml").write_text(
        "environments:\n  staging: remote-a\n"
        "hooks:\n  before_deploy:\n    - exit 3\n    - echo never >> hooks.log\n"
    )
    result = invoke("deploy", "staging")
    assert result.exit_code == 5
    assert "safe to run the deploy again" in result.output
    pusher.push.assert_not_called()
    assert hook_log(workspace) == []


def test_after_hook_failure_then_finish(workspace, pusher):
    (workspace / "pushdeploy.yml").write_text(
        "environments:\n  staging: remote-a\n"
        "hooks:\n  after_deploy:\n    - test -f ready || exit 1\n    - echo notified >> hooks.log\n"
    )
    result = invoke("deploy", "staging")
    assert result.exit_code == 7
    assert "pushdeploy finish" in result.output
    assert hook_log(workspace) == ["push remote-a bugs"]

    deploy_id = list_deploys()[0]
    status = json.loads(invoke("status", deploy_id, "--format", "json").output)
    assert status["status"] == "failed"
    assert "finish" in status["failure_hint"]

    (workspace / "ready").write_text("")
    finished = invoke("finish", "staging")
    assert finished.exit_code == 0, finished.output
    assert pusher.push.call_count == 1
    assert hook_log(workspace) == ["push remote-a bugs", "notified"]


def test_missing_config(workspace, pusher, tmp_path):
    result = invoke("--config", str(tmp_path / "absent.yml"), "deploy", "staging")
    assert result.exit_code == 8
    assert "Config file not found" in result.output
    assert list_deploys() == []


def test_envs(workspace):
    result = invoke("envs")
    assert result.exit_code == 0
    assert "staging: remote-a" in result.output
    assert "production (production): remote-b" in result.output

    data = json.loads(invoke("envs", "--format", "json").output)
    assert data["environments"] == {"staging": "remote-a", "production": "remote-b"}
    assert data["default_branch"] == "master"


def test_logs(workspace, pusher):
    invoke("deploy", "staging")
    deploy_id = list_deploys()[0]

    result = invoke("logs", deploy_id, "--format", "json")
    assert result.exit_code == 0
    types = [json.loads(line)["type"] for line in result.output.splitlines()]
    assert types[0] == "INIT"
    assert types[-1] == "DONE"
    assert types.count("HOOK_OK") == 3

    human = invoke("logs", deploy_id)
    assert "PUSH_DONE" in human.output


def test_status_unknown_deploy(workspace):
    assert invoke("status", "not-an-id").exit_code == 1
    assert invoke("status", "d-20240101-120000-abcd").exit_code == 1
    assert invoke("logs", "d-20240101-120000-abcd").exit_code == 1


def test_failing_plugin_is_config_error(workspace, pusher, monkeypatch):
    (workspace / "pd_plugin_cli_broken.py").write_text(
        "def register(pipeline):\n"
        "    raise ValueError('boom')\n"
    )
    monkeypatch.syspath_prepend(str(workspace))
    (workspace / "pushdeploy.yml").write_text(
        "environments:\n  staging: remote-a\nplugins:\n  - pd_plugin_cli_broken\n"
    )
    result = invoke("deploy", "staging")
    assert result.exit_code == 8
    assert "failed to register: boom" in result.output
    pusher.push.assert_not_called()


def test_repeated_environment_blocks_deploy(workspace, pusher):
    (workspace / "pushdeploy.yml").write_text(
        "environments: {production: remote-b, staging: remote-a, production: remote-a}\n"
    )
    result = invoke("deploy", "production", "--yes")
    assert result.exit_code == 8
    assert "Duplicate key 'production'" in result.output
    pusher.push.assert_not_called()


def test_list(workspace, pusher):
    assert "No deploys found" in invoke("list").output

    invoke("deploy", "staging")
    invoke("deploy", "prod")
    deploy_ids = list_deploys()
    assert len(deploy_ids) == 2

    data = json.loads(invoke("list", "--format", "json").output)
    assert [info["deploy_id"] for info in data] == deploy_ids
    assert sorted(info["status"] for info in data) == ["complete", "failed"]

    human = invoke("list")
    assert human.exit_code == 0
    assert all(deploy_id in human.output for deploy_id in deploy_ids)
