"""Instance lifecycle orchestration for vmctl."""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import List, Optional

from vmctl.constants import (
    ACTIVE_STATUSES,
    DEFAULT_VERSION,
    LOCKS_DIR,
    RESTART_SETTLE_DELAY,
    STATUS_RUNNING,
    STATUS_STARTING,
    STATUS_STOPPED,
    VOLUME_DISK_FORMAT,
)
from vmctl.database import Instance
from vmctl.exceptions import (
    ConfigurationError,
    ImageNotFoundError,
    InstanceAlreadyRunningError,
    InstanceNotFoundError,
    InstanceNotRunningError,
    LaunchError,
    TerminationError,
)
from vmctl.launcher import ProcessLauncher
from vmctl.locks import InstanceLock
from vmctl.models import CreateOptions, DriveSpec, QemuCommand, Settings, StartOverrides
from vmctl.qemu import build_qemu_command
from vmctl.store import InstanceRepository
from vmctl.termination import TerminationController, process_alive
from vmctl.utils import generate_name, log, random_mac
from vmctl.volumes import VolumeManager, create_drive_image_if_needed


class LifecycleSupervisor:
    """Start, stop, restart, remove and inspect instances.

    Every operation re-reads the record from the store before acting.
    Transitions that spawn or kill a process run under a per-instance
    advisory lock, and entering ``STARTING`` is a compare-and-swap on the
    status read under that lock, so two invocations cannot both launch the
    same instance.
    """

    def __init__(
        self,
        store: InstanceRepository,
        settings: Settings,
        volumes: Optional[VolumeManager] = None,
        launcher: Optional[ProcessLauncher] = None,
        terminator: Optional[TerminationController] = None,
        locks_dir: Optional[Path] = None,
        restart_delay: float = RESTART_SETTLE_DELAY,
    ) -> None:
        self.store = store
        self.settings = settings
        self.volumes = volumes
        self.launcher = launcher or ProcessLauncher(privilege_wrapper=settings.privilege_wrapper)
        self.terminator = terminator or TerminationController(privilege_wrapper=settings.privilege_wrapper)
        self.locks_dir = locks_dir or LOCKS_DIR
        self.restart_delay = restart_delay

    # -- helpers ---------------------------------------------------------

    def _get_or_fail(self, key: str) -> Instance:
        vm = self.store.query(key)
        if vm is None:
            raise InstanceNotFoundError(key)
        return vm

    def _lock(self, vm: Instance) -> InstanceLock:
        return InstanceLock(self.locks_dir, vm.id)

    def log_path(self, name: str) -> Path:
        return self.settings.logs_dir / f"{name}.log"

    def _compose(
        self,
        vm: Instance,
        overrides: Optional[StartOverrides] = None,
        drive: Optional[DriveSpec] = None,
        install: bool = True,
    ) -> QemuCommand:
        return build_qemu_command(
            vm,
            overrides,
            drive=drive,
            install=install,
            qemu_binary=self.settings.qemu_binary,
            privilege_wrapper=self.settings.privilege_wrapper,
        )

    def _claim(self, vm: Instance) -> None:
        if not self.store.compare_and_set_status(vm.id, vm.status, STATUS_STARTING):
            raise InstanceAlreadyRunningError(vm.name)

    def _resolve_drive(self, vm: Instance, overrides: StartOverrides, volume_name: str) -> DriveSpec:
        if self.volumes is None:
            raise ConfigurationError("Volume support is not configured")
        volume = self.volumes.get_volume(volume_name)
        if volume is None:
            ref = overrides.drive_path or vm.drive_path
            if not ref:
                raise ConfigurationError(f"Cannot create volume {volume_name}: no drivePath defined")
            image = self.volumes.get_image(ref)
            if image is None:
                # the drive may itself be a volume; clone from its base image
                source = self.volumes.get_volume(ref)
                if source is not None:
                    image = source.base_image
            if image is None:
                raise ImageNotFoundError(f"Cannot create volume {volume_name}: image not found: {ref}")
            volume = self.volumes.create_volume(volume_name, image, overrides.disk_size)
        log("INFO", f"Using volume {volume.name} ({volume.path})")
        return DriveSpec(path=volume.path, format=VOLUME_DISK_FORMAT)

    def _launch(self, vm: Instance, command: QemuCommand, detach: bool, lock: InstanceLock) -> int:
        """Spawn ``command`` for ``vm``, whose record is already ``STARTING``.

        Attached runs release ``lock`` once the spawn is recorded so other
        invocations can stop the instance while this one waits.
        """

        spawned: List[int] = []

        def on_spawn(pid: int) -> None:
            spawned.append(pid)
            if detach:
                self.store.update(vm.id, pid=pid)
            else:
                self.store.update(vm.id, status=STATUS_RUNNING, pid=pid)
                lock.release()

        if detach:
            log_path = self.log_path(vm.name)
            try:
                pid = self.launcher.launch_detached(command, log_path, on_spawn)
            except LaunchError:
                self.store.update(vm.id, status=STATUS_STOPPED)
                raise
            self.store.update(vm.id, status=STATUS_RUNNING, pid=pid)
            log("SUCCESS", f"Virtual machine {vm.name} started in background (PID: {pid})")
            log("INFO", f"Logs will be written to: {log_path}")
            return pid

        try:
            returncode = self.launcher.launch_attached(command, on_spawn)
        finally:
            self._mark_attached_exit(vm, spawned[0] if spawned else None)
        if returncode != 0:
            raise LaunchError(f"QEMU exited with code {returncode}", exit_code=returncode)
        return returncode

    def _mark_attached_exit(self, vm: Instance, pid: Optional[int]) -> None:
        """Record that an attached run ended.

        The lock was released at spawn, so another invocation may have
        stopped and relaunched the instance meanwhile; its record is only
        touched while it still names our process.
        """
        if pid is None:
            self.store.compare_and_set_status(vm.id, STATUS_STARTING, STATUS_STOPPED)
            return
        current = self.store.query(vm.id)
        if current is not None and current.pid == pid:
            self.store.update(vm.id, status=STATUS_STOPPED)
        else:
            log("DEBUG", f"Record for {vm.name} no longer tracks PID {pid}; leaving it alone")

    # -- operations ------------------------------------------------------

    def start(
        self,
        name: str,
        overrides: Optional[StartOverrides] = None,
        detach: bool = False,
        volume: Optional[str] = None,
    ) -> int:
        """Launch a stopped instance.

        Returns the PID in detached mode and QEMU's exit code (always 0,
        failures raise ``LaunchError``) in attached mode.
        """
        overrides = overrides or StartOverrides()
        vm = self._get_or_fail(name)
        with self._lock(vm) as lock:
            vm = self._get_or_fail(vm.id)
            if vm.status in ACTIVE_STATUSES:
                raise InstanceAlreadyRunningError(vm.name)
            drive = self._resolve_drive(vm, overrides, volume) if volume else None
            command = self._compose(vm, overrides, drive)
            log("INFO", f"Starting virtual machine {vm.name} (ID: {vm.id})...")
            if overrides.as_dict():
                log("DEBUG", f"Overrides for this run: {overrides.as_dict()}")
            self._claim(vm)
            return self._launch(vm, command, detach, lock)

    def _stop_locked(self, vm: Instance) -> None:
        if vm.status == STATUS_STOPPED or vm.pid is None:
            raise InstanceNotRunningError(vm.name)
        log("INFO", f"Stopping virtual machine {vm.name} (ID: {vm.id})...")
        if not self.terminator.terminate(vm.pid, privileged=bool(vm.bridge)):
            raise TerminationError(vm.name, vm.pid)
        self.store.update(vm.id, status=STATUS_STOPPED)
        log("SUCCESS", f"Virtual machine {vm.name} stopped.")

    def stop(self, name: str) -> None:
        vm = self._get_or_fail(name)
        with self._lock(vm):
            self._stop_locked(self._get_or_fail(vm.id))

    def restart(self, name: str) -> int:
        """Stop if running, then start detached with the stored settings."""
        vm = self._get_or_fail(name)
        with self._lock(vm) as lock:
            vm = self._get_or_fail(vm.id)
            try:
                self._stop_locked(vm)
            except InstanceNotRunningError:
                log("INFO", f"Virtual machine {vm.name} is not running; starting it")
            else:
                time.sleep(self.restart_delay)
            vm = self._get_or_fail(vm.id)
            command = self._compose(vm)
            self._claim(vm)
            pid = self._launch(vm, command, True, lock)
        log("SUCCESS", f"{vm.name} restarted with PID {pid}.")
        return pid

    def remove(self, name: str) -> None:
        vm = self._get_or_fail(name)
        with self._lock(vm) as lock:
            log("INFO", f"Removing virtual machine {vm.name} (ID: {vm.id})...")
            self.store.delete(vm.id)
            lock.path.unlink(missing_ok=True)

    def inspect(self, name: str) -> Instance:
        return self.reconcile(self._get_or_fail(name))

    def list_instances(self, all: bool = False) -> List[Instance]:
        records = self.store.list(None if all else sorted(ACTIVE_STATUSES))
        reconciled = [self.reconcile(vm) for vm in records]
        if all:
            return reconciled
        return [vm for vm in reconciled if vm.status in ACTIVE_STATUSES]

    def reconcile(self, vm: Instance) -> Instance:
        """Downgrade an active record whose process is gone to ``STOPPED``.

        Records locked by another invocation are mid-transition and left
        alone.
        """
        if vm.status not in ACTIVE_STATUSES:
            return vm
        if vm.pid is not None and process_alive(vm.pid):
            return vm
        lock = self._lock(vm)
        if not lock.acquire(blocking=False):
            return vm
        try:
            current = self._get_or_fail(vm.id)
            if current.status in ACTIVE_STATUSES and (current.pid is None or not process_alive(current.pid)):
                if self.store.compare_and_set_status(current.id, current.status, STATUS_STOPPED):
                    log("WARN", f"Virtual machine {current.name} (PID {current.pid}) is no longer running")
                current = self._get_or_fail(vm.id)
            return current
        finally:
            lock.release()

    def create(self, options: CreateOptions, iso_path: Optional[str] = None, detach: bool = False) -> int:
        """Record a brand new instance and boot it.

        Without ``options.install`` the drive is attached with ``-snapshot``
        so the quickstart session leaves it untouched.
        """
        name = options.name or generate_name()
        if self.store.query(name) is not None:
            raise ConfigurationError(f"Virtual machine {name} already exists")
        drive_path = None
        if options.image:
            create_drive_image_if_needed(options.image, options.disk_format, options.disk_size)
            drive_path = str(Path(options.image).resolve())
        vm = Instance(
            id=uuid.uuid4().hex,
            name=name,
            status=STATUS_STARTING,
            cpu=options.cpu,
            cpus=options.cpus,
            memory=options.memory,
            disk_format=options.disk_format,
            disk_size=options.disk_size,
            drive_path=drive_path,
            iso_path=str(Path(iso_path).resolve()) if iso_path else None,
            bridge=options.bridge,
            port_forward=options.port_forward,
            mac_address=random_mac(),
            version=DEFAULT_VERSION,
        )
        self.store.insert(vm)
        command = self._compose(vm, install=options.install)
        with self._lock(vm) as lock:
            return self._launch(vm, command, detach, lock)
