"""
Tests for the typer command tree and the top-level error handler.
"""

import sys

import pytest
from typer.testing import CliRunner

import cli
from sonar_infra.commands import setup_cmd, verify_cmd
from sonar_infra.errors import PrivilegeError
from sonar_infra.polling import StageStatus

runner = CliRunner()


class TestSetupRun:
    def test_flags_reach_the_pipeline(self, monkeypatch):
        calls = []
        monkeypatch.setattr(setup_cmd, "run_setup", lambda *args: calls.append(args))

        result = runner.invoke(cli.app, ["setup", "run", "--skip-apply", "--skip-ingress", "--cpus", "4"])

        assert result.exit_code == 0, result.output
        options, versions, mk_cfg, deploy_cfg = calls[0]
        assert options.skip_apply and options.skip_ingress
        assert not options.skip_tools
        assert mk_cfg.cpus == 4

    def test_memory_override_is_validated(self, monkeypatch):
        monkeypatch.setattr(setup_cmd, "run_setup", lambda *args: None)

        result = runner.invoke(cli.app, ["setup", "run", "--memory-mb", "6144"])

        assert result.exit_code == 0, result.output


class TestVerifyCommands:
    def test_workloads_never_fail_the_command(self, monkeypatch):
        names = []

        def _wait(target):
            names.append(target.label)
            return StageStatus.DEGRADED

        monkeypatch.setattr(verify_cmd, "wait_for_workload_ready", _wait)

        result = runner.invoke(cli.app, ["verify", "workloads"])

        assert result.exit_code == 0, result.output
        assert names == ["PostgreSQL", "SonarQube"]


class TestMain:
    def test_setup_error_exits_one_with_hint(self, monkeypatch, capsys):
        def _bootstrap():
            raise PrivilegeError("docker group not effective", hint="Log out and back in.")

        monkeypatch.setattr(setup_cmd, "run_bootstrap", _bootstrap)
        monkeypatch.setattr(sys, "argv", ["cli.py", "setup", "bootstrap"])

        with pytest.raises(SystemExit) as exc:
            cli.main()

        assert exc.value.code == 1
        err = capsys.readouterr().err
        assert "docker group not effective" in err
        assert "Log out and back in." in err
