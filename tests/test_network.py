"""Tests for vmctl.network module."""

from __future__ import annotations

from vmctl.models import PortForward
from vmctl.network import (
    build_device_arg,
    build_netdev_arg,
    format_ports,
    parse_port_forwards,
    port_forwarding_args,
)


class TestParsePortForwards:
    def test_empty(self):
        assert parse_port_forwards(None) == []
        assert parse_port_forwards("") == []

    def test_pairs_in_order(self):
        assert parse_port_forwards("8080:80,2222:22") == [PortForward("8080", "80"), PortForward("2222", "22")]

    def test_missing_colon_yields_empty_guest(self):
        assert parse_port_forwards("8080") == [PortForward("8080", "")]


class TestBuildNetdevArg:
    def test_user_mode_without_forwards(self):
        assert build_netdev_arg() == "user,id=net0"

    def test_user_mode_with_forwards(self):
        arg = build_netdev_arg("8080:80,2222:22,5000:5000")
        assert arg == "user,id=net0,hostfwd=tcp::8080-:80,hostfwd=tcp::2222-:22,hostfwd=tcp::5000-:5000"
        assert arg.count("hostfwd=") == 3
        assert "br=" not in arg

    def test_bridge_ignores_port_forwards(self):
        assert build_netdev_arg("8080:80", bridge="br0") == "bridge,id=net0,br=br0"

    def test_malformed_pair_is_not_rejected(self):
        assert port_forwarding_args("8080") == "hostfwd=tcp::8080-:"


class TestDeviceAndPorts:
    def test_device_binds_mac(self):
        assert build_device_arg("52:54:00:aa:bb:cc") == "e1000,netdev=net0,mac=52:54:00:aa:bb:cc"

    def test_format_ports(self):
        assert format_ports("8080:80,2222:22") == "8080->80, 2222->22"

    def test_format_ports_empty(self):
        assert format_ports(None) == "-"
