import logging

import pytest
from typer.testing import CliRunner

import clusterjoin.cli.app as cli
from clusterjoin.config.loader import load_deploy_config
from clusterjoin.utils.ssh_runner import CommandResult

from conftest import FakeTransport

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger = logging.getLogger("clusterjoin")
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = True


@pytest.fixture
def transport(monkeypatch):
    t = FakeTransport()
    monkeypatch.setattr(cli, "SSHTransport", lambda settings: t)
    return t


def _invoke(path, tmp_path, *agents):
    args = ["join", "--deploy-config", str(path), "--log-dir", str(tmp_path / "logs")]
    for a in agents:
        args += ["--agent", a]
    return runner.invoke(cli.app, args)


def test_join_success_prints_follow_up(make_config, tmp_path, transport):
    _, path = make_config()

    result = _invoke(path, tmp_path, "us-west-1:10.0.1.1", "10.0.1.2")

    assert result.exit_code == 0, result.output
    assert "agent node join completed. show command: 'kcctl get node'" in result.output
    assert load_deploy_config(path).agent_regions.root == {
        "default": ["10.0.1.2"],
        "us-west-1": ["10.0.1.1"],
    }
    assert transport.closed
    assert list((tmp_path / "logs").glob("*.jsonl"))


def test_agent_flag_is_required(make_config, tmp_path):
    _, path = make_config()
    result = runner.invoke(cli.app, ["join", "--deploy-config", str(path)])
    assert result.exit_code == 2


def test_already_joined_node_exits_non_zero(make_config, tmp_path, transport):
    _, path = make_config(agentRegions={"default": ["10.0.1.1"]})

    result = _invoke(path, tmp_path, "10.0.1.1")

    assert result.exit_code == 1
    assert "already deployed" in result.output
    assert transport.calls == []


def test_runtime_failure_exits_non_zero_with_stage(make_config, tmp_path, transport):
    _, path = make_config()
    transport.responses[("10.0.1.2", "tar -xvf")] = CommandResult(2, "", "corrupt archive")

    result = _invoke(path, tmp_path, "10.0.1.1,10.0.1.2")

    assert result.exit_code == 1
    assert "join agent node failed" in result.output
    assert "corrupt archive" in result.output
    assert load_deploy_config(path).agent_regions.list_addresses() == ["10.0.1.1"]


def test_missing_deploy_config_exits_non_zero(tmp_path, transport):
    result = _invoke(tmp_path / "absent.yaml", tmp_path, "10.0.1.1")
    assert result.exit_code == 1
    assert "does not exist" in result.output
