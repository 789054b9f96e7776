"""Graceful-then-forceful termination of hypervisor processes."""

from __future__ import annotations

import os
import signal
import time

import psutil

from vmctl.constants import PRIVILEGE_WRAPPER, TERMINATION_GRACE_PERIOD
from vmctl.utils import log, run


def process_alive(pid: int) -> bool:
    """Zombies count as exited; a process we may not inspect counts as alive."""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True


class TerminationController:
    """Sends TERM, waits a bounded grace period, then KILL if needed."""

    def __init__(
        self,
        grace_period: float = TERMINATION_GRACE_PERIOD,
        privilege_wrapper: str = PRIVILEGE_WRAPPER,
    ) -> None:
        self.grace_period = grace_period
        self.privilege_wrapper = privilege_wrapper

    def send_signal(self, pid: int, sig: signal.Signals, privileged: bool = False) -> bool:
        """Deliver ``sig`` to ``pid`` and report whether delivery succeeded."""
        if privileged:
            cmd = [self.privilege_wrapper, "kill", f"-{sig.name[3:]}", str(pid)]
            try:
                result = run(cmd, check=False, capture_output=True)
            except OSError as exc:
                log("WARN", f"Failed to execute kill command: {' '.join(cmd)}: {exc}")
                return False
            return result.returncode == 0
        try:
            os.kill(pid, sig)
        except PermissionError:
            # e.g. a bridged run started through the wrapper by a one-off override
            log("DEBUG", f"{sig.name} to PID {pid} not permitted; retrying via {self.privilege_wrapper}")
            return self.send_signal(pid, sig, privileged=True)
        except OSError as exc:
            log("DEBUG", f"{sig.name} to PID {pid} failed: {exc}")
            return False
        return True

    def terminate(self, pid: int, privileged: bool = False) -> bool:
        if self.send_signal(pid, signal.SIGTERM, privileged):
            time.sleep(self.grace_period)
        else:
            log("DEBUG", f"SIGTERM not delivered to PID {pid}; skipping grace period")

        if not process_alive(pid):
            return True

        log("WARN", f"PID {pid} is still running; sending SIGKILL")
        return self.send_signal(pid, signal.SIGKILL, privileged)
