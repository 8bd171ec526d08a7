"""Tests for the CLI using Click's CliRunner."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from nozomi_tproxy.cli import EXIT_INCONSISTENT, main
from nozomi_tproxy.errors import CommandError, InconsistentKernelStateError, SetupError


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    monkeypatch.delenv("NOZOMI_TPROXY_PORT", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)


def test_help():
    result = CliRunner().invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "nozomi-tproxy" in result.output
    assert "--use-tproxy" in result.output
    assert "--pid" in result.output


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_command_required_without_pid():
    result = CliRunner().invoke(main, ["--port", "1081"])
    assert result.exit_code == 2
    assert "COMMAND" in result.output


def test_pid_and_command_conflict():
    result = CliRunner().invoke(main, ["--pid", "42", "curl", "x"])
    assert result.exit_code == 2


def test_port_range():
    result = CliRunner().invoke(main, ["--port", "70000", "curl"])
    assert result.exit_code == 2


def test_dry_run_attach_tproxy():
    result = CliRunner().invoke(main, ["--dry-run", "--use-tproxy", "--pid", "4242"])
    assert result.exit_code == 0
    assert "tproxy" in result.output
    assert "nozomi_tproxy_pre_4242" in result.output
    assert "nozomi_tproxy_out_4242" in result.output
    assert "Teardown" in result.output


@patch("nozomi_tproxy.cli.ProcessSupervisor")
def test_spawn_passes_trailing_command(mock_supervisor_cls: MagicMock):
    supervisor = MagicMock()
    supervisor.spawn.return_value = 0
    supervisor.session = None
    mock_supervisor_cls.return_value = supervisor

    result = CliRunner().invoke(main, ["--port", "1090", "curl", "-v", "http://example.com"])

    assert result.exit_code == 0
    supervisor.spawn.assert_called_once_with(("curl", "-v", "http://example.com"))
    config = mock_supervisor_cls.call_args.args[0]
    assert config.port == 1090
    assert config.use_tproxy is False


@patch("nozomi_tproxy.cli.ProcessSupervisor")
def test_spawn_exit_status_propagates(mock_supervisor_cls: MagicMock):
    supervisor = MagicMock()
    supervisor.spawn.return_value = 7
    supervisor.session = None
    mock_supervisor_cls.return_value = supervisor

    result = CliRunner().invoke(main, ["false"])
    assert result.exit_code == 7


@patch("nozomi_tproxy.cli.ProcessSupervisor")
def test_attach_mode(mock_supervisor_cls: MagicMock):
    supervisor = MagicMock()
    supervisor.session = None
    mock_supervisor_cls.return_value = supervisor

    result = CliRunner().invoke(main, ["--use-tproxy", "--pid", "4242"])

    assert result.exit_code == 0
    supervisor.attach.assert_called_once_with(4242)
    assert mock_supervisor_cls.call_args.args[0].use_tproxy is True


@patch("nozomi_tproxy.cli.ProcessSupervisor")
def test_setup_failure_exits_nonzero(mock_supervisor_cls: MagicMock):
    supervisor = MagicMock()
    supervisor.session = None
    supervisor.spawn.side_effect = SetupError(
        "create nat chain c", CommandError("iptables -t nat -N c", 1, "exists")
    )
    mock_supervisor_cls.return_value = supervisor

    result = CliRunner().invoke(main, ["curl", "http://example.com"])
    assert result.exit_code == 1
    assert "Error" in result.output


@patch("nozomi_tproxy.cli.ProcessSupervisor")
def test_teardown_failure_reports_leftovers(mock_supervisor_cls: MagicMock):
    supervisor = MagicMock()
    supervisor.session = None
    supervisor.attach.side_effect = InconsistentKernelStateError(
        "Teardown failed", leftover=["create mangle chain nozomi_tproxy_out_4242"]
    )
    mock_supervisor_cls.return_value = supervisor

    result = CliRunner().invoke(main, ["--pid", "4242"])
    assert result.exit_code == EXIT_INCONSISTENT
    assert "Inconsistent kernel state" in result.output
    assert "nozomi_tproxy_out_4242" in result.output


def test_invalid_config_file(tmp_path: Path):
    path = tmp_path / "bad.yaml"
    path.write_text("- not a mapping\n", encoding="utf-8")
    result = CliRunner().invoke(main, ["--config", str(path), "--dry-run", "--pid", "1"])
    assert result.exit_code == 2
    assert "Invalid configuration" in result.output


@patch("nozomi_tproxy.supervisor.psutil.pid_exists", side_effect=[True, False])
def test_attach_end_to_end_prints_summary(mock_exists: MagicMock, backend):
    with patch("nozomi_tproxy.redirect.guard.ShellBackend", return_value=backend):
        result = CliRunner().invoke(main, ["--use-tproxy", "--pid", "4242"])

    assert result.exit_code == 0
    assert backend.commands[0] == "ip rule add fwmark 4242 table 4242"
    assert backend.commands[-1] == "ip rule delete fwmark 4242 table 4242"
    assert "Session Summary" in result.output
    assert "nozomi_tproxy_4242" in result.output
    assert "stopped" in result.output


def test_env_port_out_of_range_is_usage_error(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("NOZOMI_TPROXY_PORT", "0")
    result = CliRunner().invoke(main, ["--dry-run", "--pid", "4242"])
    assert result.exit_code == 2
    assert "Invalid configuration" in result.output
    assert not isinstance(result.exception, ValueError)


def test_yaml_port_out_of_range_is_usage_error(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("port: 70000\n", encoding="utf-8")
    result = CliRunner().invoke(main, ["--config", str(path), "curl", "http://example.com"])
    assert result.exit_code == 2
    assert "port must be between 1 and 65535" in result.output
