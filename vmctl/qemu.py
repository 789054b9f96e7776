"""QEMU command line composition for vmctl."""

from __future__ import annotations

import sys
from typing import List, Optional

from vmctl.constants import PRIVILEGE_WRAPPER, QEMU_BINARY
from vmctl.database import Instance
from vmctl.models import DriveSpec, QemuCommand, StartOverrides
from vmctl.network import build_device_arg, build_netdev_arg

# Headless: no display adapter, console on a serial port bound to stdio
_HEADLESS_ARGS = [
    "-display",
    "none",
    "-vga",
    "none",
    "-monitor",
    "none",
    "-chardev",
    "stdio,id=con0,signal=off",
    "-serial",
    "chardev:con0",
]


def hardware_acceleration_supported(platform: Optional[str] = None) -> bool:
    """KVM is only available when the host itself is Linux."""
    return (platform or sys.platform).startswith("linux")


def _pick(override, stored):
    return stored if override is None else override


def build_qemu_command(
    instance: Instance,
    overrides: Optional[StartOverrides] = None,
    *,
    drive: Optional[DriveSpec] = None,
    install: bool = True,
    qemu_binary: str = QEMU_BINARY,
    privilege_wrapper: str = PRIVILEGE_WRAPPER,
    platform: Optional[str] = None,
) -> QemuCommand:
    """Compose the hypervisor invocation for ``instance``.

    ``overrides`` apply to this invocation only and ``drive`` (a resolved
    volume) takes precedence over both the override image and the record's
    own drive. ``install=False`` adds ``-snapshot`` so writes are discarded.
    """
    overrides = overrides or StartOverrides()
    bridge = _pick(overrides.bridge, instance.bridge)
    port_forward = _pick(overrides.port_forward, instance.port_forward)

    if drive is None:
        drive_path = _pick(overrides.drive_path, instance.drive_path)
        if drive_path:
            drive = DriveSpec(drive_path, _pick(overrides.disk_format, instance.disk_format))

    args: List[str] = []
    if bridge:
        executable = privilege_wrapper
        args.append(qemu_binary)
    else:
        executable = qemu_binary

    if hardware_acceleration_supported(platform):
        args.append("-enable-kvm")

    args += [
        "-cpu",
        _pick(overrides.cpu, instance.cpu),
        "-m",
        _pick(overrides.memory, instance.memory),
        "-smp",
        str(_pick(overrides.cpus, instance.cpus)),
    ]
    if instance.iso_path:
        args += ["-cdrom", instance.iso_path]

    args += [
        "-netdev",
        build_netdev_arg(port_forward, bridge),
        "-device",
        build_device_arg(instance.mac_address),
    ]
    if not install:
        args.append("-snapshot")
    args += _HEADLESS_ARGS

    if drive is not None:
        args += ["-drive", f"file={drive.path},format={drive.format},if=virtio"]

    return QemuCommand(executable=executable, args=args)
