"""Tests for vmctl.cli module."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from vmctl import cli
from vmctl.database import Instance
from vmctl.exceptions import InstanceNotFoundError, LaunchError
from vmctl.models import CreateOptions, StartOverrides

NOW = datetime(2024, 1, 1, 12, 0, 0)


def _vm(**overrides) -> Instance:
    fields = dict(
        id="abc",
        name="alpha",
        status="RUNNING",
        pid=4242,
        cpus=2,
        memory="2G",
        bridge=None,
        port_forward="8080:80",
        created_at=NOW - timedelta(hours=2),
        updated_at=NOW - timedelta(minutes=5),
    )
    fields.update(overrides)
    return Instance(**fields)


@pytest.fixture
def fake_supervisor(settings):
    supervisor = MagicMock()
    with patch("vmctl.cli.load_settings", return_value=settings), patch(
        "vmctl.cli.open_session", return_value=MagicMock()
    ), patch("vmctl.cli.LifecycleSupervisor", return_value=supervisor):
        yield supervisor


class TestFormatting:
    def test_running_row(self):
        row = cli.format_row(_vm(), NOW.replace(tzinfo=timezone.utc))
        assert row == ["alpha", "2", "2G", "Up 5 minutes", "4242", "-", "8080->80", "2 hours ago"]

    def test_stopped_hides_pid(self):
        vm = _vm(status="STOPPED")
        assert cli.format_pid(vm) == "-"
        assert cli.format_status(vm, NOW.replace(tzinfo=timezone.utc)) == "Exited 5 minutes ago"

    def test_starting_status_is_shown_verbatim(self):
        assert cli.format_status(_vm(status="STARTING")) == "STARTING"

    def test_render_table_aligns_columns(self):
        table = cli.render_table([["alpha", "2"], ["b", "16"]], headers=["NAME", "VCPU"])
        assert table.splitlines() == ["NAME   VCPU", "alpha  2", "b      16"]


class TestParser:
    def test_start_flags(self):
        args = cli.build_parser().parse_args(
            ["start", "alpha", "--cpus", "4", "--memory", "4G", "-p", "2222:22", "--volume", "data", "-d"]
        )
        assert args.name == "alpha"
        assert args.detach is True
        assert args.volume == "data"
        overrides = cli.overrides_from_args(args)
        assert overrides == StartOverrides(memory="4G", cpus=4, port_forward="2222:22")

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestMain:
    def test_start_detached(self, fake_supervisor):
        assert cli.main(["start", "alpha", "-d"]) == 0
        name, overrides = fake_supervisor.start.call_args[0]
        assert name == "alpha"
        assert fake_supervisor.start.call_args[1] == {"detach": True, "volume": None}

    def test_domain_error_returns_one(self, fake_supervisor, capsys):
        fake_supervisor.stop.side_effect = InstanceNotFoundError("ghost")
        assert cli.main(["stop", "ghost"]) == 1
        assert "[ERROR]" in capsys.readouterr().out

    def test_attached_failure_returns_qemu_exit_code(self, fake_supervisor):
        fake_supervisor.start.side_effect = LaunchError("QEMU exited with code 3", exit_code=3)
        assert cli.main(["start", "alpha"]) == 3

    def test_detached_failure_returns_one(self, fake_supervisor):
        fake_supervisor.start.side_effect = LaunchError("died", exit_code=3)
        assert cli.main(["start", "alpha", "-d"]) == 1

    def test_unexpected_error_returns_one(self, fake_supervisor, capsys):
        fake_supervisor.remove.side_effect = ValueError("bug")
        assert cli.main(["rm", "alpha"]) == 1
        assert "Unexpected error" in capsys.readouterr().out

    @pytest.mark.parametrize("flag", [["--cpus", "0"], ["--cpus=-2"]])
    def test_start_rejects_cpu_count_below_one(self, fake_supervisor, capsys, flag):
        assert cli.main(["start", "alpha", *flag]) == 1
        fake_supervisor.start.assert_not_called()
        assert "[ERROR]" in capsys.readouterr().out

    def test_run_rejects_zero_cpus(self, fake_supervisor):
        with patch("vmctl.cli.kvm_available", return_value=True):
            assert cli.main(["run", "6.4.2", "--cpus", "0"]) == 1
        fake_supervisor.create.assert_not_called()

    def test_restart_and_rm(self, fake_supervisor):
        assert cli.main(["restart", "alpha"]) == 0
        assert cli.main(["rm", "alpha"]) == 0
        fake_supervisor.restart.assert_called_once_with("alpha")
        fake_supervisor.remove.assert_called_once_with("alpha")

    def test_ps(self, fake_supervisor, capsys):
        fake_supervisor.list_instances.return_value = [_vm()]
        assert cli.main(["ps", "--all"]) == 0
        fake_supervisor.list_instances.assert_called_once_with(all=True)
        out = capsys.readouterr().out
        assert out.splitlines()[0].split() == cli.PS_HEADERS
        assert "alpha" in out

    def test_inspect_prints_yaml(self, fake_supervisor, capsys):
        fake_supervisor.inspect.return_value = _vm(cpu="host", mac_address="52:54:00:aa:bb:cc", version="6.4.2")
        assert cli.main(["inspect", "alpha"]) == 0
        out = capsys.readouterr().out
        assert "name: alpha" in out
        assert "pid: 4242" in out

    def test_run_creates_instance(self, fake_supervisor, settings):
        with patch("vmctl.cli.prepare_boot_source", return_value="/isos/dfly.iso") as mock_prepare, patch(
            "vmctl.cli.kvm_available", return_value=True
        ):
            assert cli.main(["run", "6.4.2", "--name", "beta", "-d", "--memory", "4G"]) == 0
        mock_prepare.assert_called_once_with("6.4.2", image=None)
        options, iso_path = fake_supervisor.create.call_args[0]
        assert iso_path == "/isos/dfly.iso"
        assert options == CreateOptions(
            cpu="host", cpus=2, memory="4G", disk_format="raw", disk_size="20G", name="beta"
        )


class TestShowLogs:
    def test_cat(self, tmp_path):
        with patch("vmctl.cli.subprocess.run", return_value=MagicMock(returncode=0)) as mock_run:
            assert cli.show_logs(tmp_path / "logs", "alpha") == 0
        mock_run.assert_called_once_with(["cat", str(tmp_path / "logs" / "alpha.log")])
        assert (tmp_path / "logs").is_dir()

    def test_follow(self, tmp_path):
        with patch("vmctl.cli.subprocess.run", return_value=MagicMock(returncode=0)) as mock_run:
            cli.show_logs(tmp_path, "alpha", follow=True)
        assert mock_run.call_args[0][0] == ["tail", "-n", "100", "-f", str(tmp_path / "alpha.log")]

    def test_failing_viewer(self, tmp_path):
        with patch("vmctl.cli.subprocess.run", return_value=MagicMock(returncode=1)):
            with pytest.raises(cli.ManagerError):
                cli.show_logs(tmp_path, "alpha")
