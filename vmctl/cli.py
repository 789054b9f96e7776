"""CLI entry points for vmctl."""

from __future__ import annotations

import argparse
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vmctl.config import load_settings, validate_cpus, validate_memory
from vmctl.constants import DATABASE_PATH, STATUS_RUNNING, STATUS_STOPPED
from vmctl.database import Instance, open_session
from vmctl.exceptions import LaunchError, ManagerError
from vmctl.iso import prepare_boot_source
from vmctl.models import CreateOptions, Settings, StartOverrides
from vmctl.network import format_ports
from vmctl.store import SqlalchemyInstanceStore
from vmctl.supervisor import LifecycleSupervisor
from vmctl.utils import ensure_directory, kvm_available, log, relative_time, validate_disk_size
from vmctl.volumes import VolumeManager

PS_HEADERS = ["NAME", "VCPU", "MEMORY", "STATUS", "PID", "BRIDGE", "PORTS", "CREATED"]


def format_status(vm: Instance, now: Optional[datetime] = None) -> str:
    if vm.status == STATUS_RUNNING:
        return "Up " + relative_time(vm.updated_at, now).replace(" ago", "")
    if vm.status == STATUS_STOPPED:
        return f"Exited {relative_time(vm.updated_at, now)}"
    return vm.status


def format_pid(vm: Instance) -> str:
    if not vm.pid or vm.status != STATUS_RUNNING:
        return "-"
    return str(vm.pid)


def format_row(vm: Instance, now: Optional[datetime] = None) -> List[str]:
    return [
        vm.name,
        str(vm.cpus),
        vm.memory,
        format_status(vm, now),
        format_pid(vm),
        vm.bridge or "-",
        format_ports(vm.port_forward),
        relative_time(vm.created_at, now),
    ]


def render_table(rows: List[List[str]], headers: List[str] = PS_HEADERS, padding: int = 2) -> str:
    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]
    lines = []
    for row in [headers, *rows]:
        cells = [cell.ljust(width) for cell, width in zip(row, widths)]
        lines.append((" " * padding).join(cells).rstrip())
    return "\n".join(lines)


def show_logs(logs_dir: Path, name: str, follow: bool = False) -> int:
    """Print (or follow) an instance's log file with cat/tail."""
    ensure_directory(logs_dir)
    log_path = logs_dir / f"{name}.log"
    cmd = ["tail", "-n", "100", "-f", str(log_path)] if follow else ["cat", str(log_path)]
    try:
        proc = subprocess.run(cmd)
    except OSError as exc:
        raise ManagerError(f"Failed to run {cmd[0]}: {exc}") from exc
    except KeyboardInterrupt:
        return 0
    if proc.returncode != 0:
        raise ManagerError(f"Failed to read logs for {name} (exit code {proc.returncode})")
    return 0


def overrides_from_args(args: argparse.Namespace) -> StartOverrides:
    return StartOverrides(
        memory=validate_memory(args.memory) if args.memory else None,
        cpus=validate_cpus(args.cpus) if args.cpus is not None else None,
        cpu=args.cpu,
        disk_format=args.disk_format,
        port_forward=args.port_forward,
        drive_path=args.image,
        bridge=args.bridge,
        disk_size=validate_disk_size(args.size) if args.size else None,
    )


def _attached_exit(exc: LaunchError, detach: bool) -> int:
    log("ERROR", str(exc))
    if not detach and exc.exit_code is not None:
        return exc.exit_code
    return 1


def cmd_run(supervisor: LifecycleSupervisor, settings: Settings, args: argparse.Namespace) -> int:
    if not kvm_available():
        log("WARN", "KVM: NOT available (will use TCG, expect a much slower guest)")
    options = CreateOptions(
        cpu=args.cpu or settings.cpu,
        cpus=validate_cpus(args.cpus) if args.cpus is not None else settings.cpus,
        memory=validate_memory(args.memory) if args.memory else settings.memory,
        disk_format=args.disk_format or settings.disk_format,
        disk_size=validate_disk_size(args.size) if args.size else settings.disk_size,
        name=args.name,
        image=args.image,
        bridge=args.bridge,
        port_forward=args.port_forward,
        install=args.install,
    )
    iso_path = prepare_boot_source(args.source, image=args.image)
    try:
        supervisor.create(options, iso_path, detach=args.detach)
    except LaunchError as exc:
        return _attached_exit(exc, args.detach)
    return 0


def cmd_start(supervisor: LifecycleSupervisor, settings: Settings, args: argparse.Namespace) -> int:
    try:
        supervisor.start(args.name, overrides_from_args(args), detach=args.detach, volume=args.volume)
    except LaunchError as exc:
        return _attached_exit(exc, args.detach)
    return 0


def cmd_stop(supervisor: LifecycleSupervisor, settings: Settings, args: argparse.Namespace) -> int:
    supervisor.stop(args.name)
    return 0


def cmd_restart(supervisor: LifecycleSupervisor, settings: Settings, args: argparse.Namespace) -> int:
    supervisor.restart(args.name)
    return 0


def cmd_rm(supervisor: LifecycleSupervisor, settings: Settings, args: argparse.Namespace) -> int:
    supervisor.remove(args.name)
    return 0


def cmd_inspect(supervisor: LifecycleSupervisor, settings: Settings, args: argparse.Namespace) -> int:
    vm = supervisor.inspect(args.name)
    print(yaml.safe_dump(vm.to_dict(), sort_keys=False), end="")
    return 0


def cmd_ps(supervisor: LifecycleSupervisor, settings: Settings, args: argparse.Namespace) -> int:
    vms = supervisor.list_instances(all=args.all)
    print(render_table([format_row(vm) for vm in vms]))
    return 0


def cmd_logs(supervisor: LifecycleSupervisor, settings: Settings, args: argparse.Namespace) -> int:
    return show_logs(settings.logs_dir, args.name, follow=args.follow)


def _add_hardware_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--cpu", help="CPU model (e.g. host, qemu64)")
    parser.add_argument("--cpus", type=int, help="Number of virtual CPUs")
    parser.add_argument("--memory", "-m", help="Memory size (e.g. 2G, 512M)")
    parser.add_argument("--image", "-i", help="Path to the drive image")
    parser.add_argument("--disk-format", help="Drive image format (e.g. raw, qcow2)")
    parser.add_argument("--size", "-s", help="Drive image size (e.g. 20G)")
    parser.add_argument("--bridge", "-b", help="Host bridge interface to attach to")
    parser.add_argument("--port-forward", "-p", help="Port forwards as HOST:GUEST[,HOST:GUEST...]")
    parser.add_argument("--detach", "-d", action="store_true", help="Run in the background")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vmctl", description="Manage QEMU virtual machines")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Create and boot a new virtual machine")
    run.add_argument("source", nargs="?", help="ISO path, release version (e.g. 6.4.2) or ISO URL")
    run.add_argument("--name", "-n", help="Virtual machine name (generated when omitted)")
    run.add_argument("--install", action="store_true", help="Persist writes to the drive image")
    _add_hardware_args(run)
    run.set_defaults(handler=cmd_run)

    start = sub.add_parser("start", help="Start a stopped virtual machine")
    start.add_argument("name", help="Name or ID")
    start.add_argument("--volume", "-v", help="Boot from this volume, cloning it from the drive image if needed")
    _add_hardware_args(start)
    start.set_defaults(handler=cmd_start)

    for command, handler, help_text in (
        ("stop", cmd_stop, "Stop a running virtual machine"),
        ("restart", cmd_restart, "Restart a virtual machine in the background"),
        ("rm", cmd_rm, "Remove a virtual machine record"),
        ("inspect", cmd_inspect, "Show a virtual machine record"),
    ):
        p = sub.add_parser(command, help=help_text)
        p.add_argument("name", help="Name or ID")
        p.set_defaults(handler=handler)

    ps = sub.add_parser("ps", help="List virtual machines")
    ps.add_argument("--all", "-a", action="store_true", help="Include stopped virtual machines")
    ps.set_defaults(handler=cmd_ps)

    logs = sub.add_parser("logs", help="Show a virtual machine's log")
    logs.add_argument("name", help="Name")
    logs.add_argument("--follow", "-f", action="store_true", help="Follow log output")
    logs.set_defaults(handler=cmd_logs)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    session = None
    try:
        settings = load_settings()
        session = open_session(DATABASE_PATH)
        supervisor = LifecycleSupervisor(
            SqlalchemyInstanceStore(session),
            settings,
            volumes=VolumeManager(session),
        )
        return args.handler(supervisor, settings, args)
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
    finally:
        if session is not None:
            session.close()


def entrypoint() -> None:
    sys.exit(main())
