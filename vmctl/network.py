"""QEMU network argument generation for vmctl."""

from __future__ import annotations

from typing import List, Optional

from vmctl.models import PortForward

NETDEV_ID = "net0"
NIC_MODEL = "e1000"


def parse_port_forwards(port_forward: Optional[str]) -> List[PortForward]:
    """Split ``host:guest,...`` into pairs without validating them.

    A pair that lacks ``:`` yields an empty guest port.
    """
    if not port_forward:
        return []
    forwards = []
    for pair in port_forward.split(","):
        host_port, _, guest_port = pair.partition(":")
        forwards.append(PortForward(host_port, guest_port))
    return forwards


def port_forwarding_args(port_forward: Optional[str]) -> str:
    return ",".join(
        f"hostfwd=tcp::{pf.host_port}-:{pf.guest_port}" for pf in parse_port_forwards(port_forward)
    )


def build_netdev_arg(port_forward: Optional[str] = None, bridge: Optional[str] = None) -> str:
    """Return the ``-netdev`` backend; a bridge always wins over NAT forwards."""
    if bridge:
        return f"bridge,id={NETDEV_ID},br={bridge}"
    forwarding = port_forwarding_args(port_forward)
    if not forwarding:
        return f"user,id={NETDEV_ID}"
    return f"user,id={NETDEV_ID},{forwarding}"


def build_device_arg(mac_address: str) -> str:
    return f"{NIC_MODEL},netdev={NETDEV_ID},mac={mac_address}"


def format_ports(port_forward: Optional[str]) -> str:
    forwards = parse_port_forwards(port_forward)
    if not forwards:
        return "-"
    return ", ".join(f"{pf.host_port}->{pf.guest_port}" for pf in forwards)
