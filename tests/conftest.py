"""Shared test fixtures."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import List, Optional

import pytest

from vmctl.constants import DEFAULT_VERSION, STATUS_STOPPED
from vmctl.database import Instance, open_session
from vmctl.exceptions import LaunchError
from vmctl.models import QemuCommand, Settings
from vmctl.store import SqlalchemyInstanceStore
from vmctl.supervisor import LifecycleSupervisor
from vmctl.volumes import VolumeManager


class FakeLauncher:
    """Records launches instead of spawning QEMU."""

    def __init__(self, pid: int = 4242, exit_code: int = 0, error: Optional[LaunchError] = None) -> None:
        self.pid = pid
        self.exit_code = exit_code
        self.error = error
        self.commands: List[QemuCommand] = []
        self.log_paths: List[Path] = []

    def launch_detached(self, command, log_path, on_spawn):
        self.commands.append(command)
        self.log_paths.append(log_path)
        on_spawn(self.pid)
        if self.error is not None:
            raise self.error
        return self.pid

    def launch_attached(self, command, on_spawn):
        self.commands.append(command)
        if self.error is not None and self.error.exit_code is None:
            raise self.error
        on_spawn(self.pid)
        return self.exit_code


class FakeTerminator:
    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.calls: List[tuple] = []

    def terminate(self, pid: int, privileged: bool = False) -> bool:
        self.calls.append((pid, privileged))
        return self.result


@pytest.fixture
def session():
    db = open_session()
    yield db
    db.close()


@pytest.fixture
def store(session):
    return SqlalchemyInstanceStore(session)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        qemu_binary="qemu-system-x86_64",
        privilege_wrapper="sudo",
        cpu="host",
        cpus=2,
        memory="2G",
        disk_format="raw",
        disk_size="20G",
        logs_dir=tmp_path / "logs",
    )


@pytest.fixture
def make_instance(store):
    """Insert an instance record, ``alpha`` by default."""

    def _make(**overrides) -> Instance:
        fields = dict(
            id=uuid.uuid4().hex,
            name="alpha",
            status=STATUS_STOPPED,
            cpu="host",
            cpus=2,
            memory="2G",
            disk_format="raw",
            disk_size="20G",
            drive_path=None,
            iso_path=None,
            bridge=None,
            port_forward=None,
            mac_address="52:54:00:aa:bb:cc",
            version=DEFAULT_VERSION,
        )
        fields.update(overrides)
        return store.insert(Instance(**fields))

    return _make


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def terminator() -> FakeTerminator:
    return FakeTerminator()


@pytest.fixture
def supervisor(store, session, settings, launcher, terminator, tmp_path) -> LifecycleSupervisor:
    return LifecycleSupervisor(
        store,
        settings,
        volumes=VolumeManager(session, volumes_dir=tmp_path / "volumes"),
        launcher=launcher,
        terminator=terminator,
        locks_dir=tmp_path / "locks",
        restart_delay=0,
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Clear every VMCTL_* variable that load_settings() reads."""
    for key in (
        "VMCTL_QEMU",
        "VMCTL_PRIVILEGE_WRAPPER",
        "VMCTL_CPU",
        "VMCTL_CPUS",
        "VMCTL_MEMORY",
        "VMCTL_DISK_FORMAT",
        "VMCTL_DISK_SIZE",
        "VMCTL_LOGS_DIR",
    ):
        monkeypatch.delenv(key, raising=False)
