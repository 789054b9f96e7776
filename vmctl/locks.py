"""Per-instance advisory locks shared between vmctl invocations."""

from __future__ import annotations

import fcntl
import os
from pathlib import Path
from typing import Optional

from vmctl.utils import ensure_directory


class InstanceLock:
    """An ``flock`` on ``<locks_dir>/<instance id>.lock``.

    The lock is released when the holding process exits, so a crashed
    invocation never leaves an instance locked.
    """

    def __init__(self, locks_dir: Path, instance_id: str) -> None:
        self.path = locks_dir / f"{instance_id}.lock"
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self, blocking: bool = True) -> bool:
        if self._fd is not None:
            return True
        ensure_directory(self.path.parent)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
        try:
            fcntl.flock(fd, flags)
        except BlockingIOError:
            os.close(fd)
            return False
        self._fd = fd
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
