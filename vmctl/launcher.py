"""Hypervisor process spawning for vmctl."""

from __future__ import annotations

import signal
import subprocess
import time
from pathlib import Path
from typing import Callable

from vmctl.constants import LAUNCH_SETTLE_DELAY, PRIVILEGE_WRAPPER
from vmctl.exceptions import LaunchError
from vmctl.models import QemuCommand
from vmctl.utils import ensure_directory, log, run

SpawnCallback = Callable[[int], None]


class ProcessLauncher:
    """Starts QEMU either in the foreground or detached with a log file."""

    def __init__(
        self,
        settle_delay: float = LAUNCH_SETTLE_DELAY,
        privilege_wrapper: str = PRIVILEGE_WRAPPER,
    ) -> None:
        self.settle_delay = settle_delay
        self.privilege_wrapper = privilege_wrapper

    def _spawn(self, command: QemuCommand, **kwargs) -> subprocess.Popen:
        log("DEBUG", f"Running: {' '.join(command.argv)}")
        try:
            return subprocess.Popen(command.argv, **kwargs)
        except OSError as exc:
            raise LaunchError(f"Failed to start {command.executable}: {exc}") from exc

    @staticmethod
    def _abandon(proc: subprocess.Popen) -> None:
        """Stop a child whose spawn could not be recorded."""
        if proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()

    def _notify(self, proc: subprocess.Popen, on_spawn: SpawnCallback) -> None:
        try:
            on_spawn(proc.pid)
        except Exception:
            self._abandon(proc)
            raise

    def _authenticate(self) -> None:
        """Refresh the wrapper's credentials while a terminal is still attached."""
        cmd = [self.privilege_wrapper, "-v"]
        try:
            run(cmd)
        except (subprocess.CalledProcessError, OSError) as exc:
            raise LaunchError(f"{self.privilege_wrapper} authentication failed: {exc}") from exc

    def launch_attached(self, command: QemuCommand, on_spawn: SpawnCallback) -> int:
        """Run QEMU on the current terminal and return its exit code."""
        proc = self._spawn(command)
        self._notify(proc, on_spawn)
        try:
            return proc.wait()
        except KeyboardInterrupt:
            proc.send_signal(signal.SIGINT)
            return proc.wait()

    def launch_detached(self, command: QemuCommand, log_path: Path, on_spawn: SpawnCallback) -> int:
        """Run QEMU in its own session with output appended to ``log_path``.

        Returns the PID once the settle delay has passed without the
        process failing.
        """
        if command.executable == self.privilege_wrapper:
            self._authenticate()
        ensure_directory(log_path.parent)
        with open(log_path, "ab") as log_file:
            proc = self._spawn(
                command,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        self._notify(proc, on_spawn)

        time.sleep(self.settle_delay)
        returncode = proc.poll()
        if returncode is not None and returncode != 0:
            raise LaunchError(
                f"{command.executable} exited with code {returncode} during startup (see {log_path})",
                exit_code=returncode,
            )
        if returncode == 0:
            log("WARN", f"Process {proc.pid} exited immediately (see {log_path})")
        return proc.pid
