"""Custom exceptions for vmctl."""

from __future__ import annotations

from typing import Optional


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class InstanceNotFoundError(ManagerError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Virtual machine with name or ID {name} not found.")
        self.name = name


class InstanceAlreadyRunningError(ManagerError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Virtual machine {name} is already running.")
        self.name = name


class InstanceNotRunningError(ManagerError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Virtual machine {name} is not running.")
        self.name = name


class LaunchError(ManagerError):
    """The hypervisor could not be spawned or exited unsuccessfully.

    ``exit_code`` is only set when the process actually ran and returned a
    non-zero status; spawn failures leave it as ``None``.
    """

    def __init__(self, message: str, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class TerminationError(ManagerError):
    def __init__(self, name: str, pid: int) -> None:
        super().__init__(f"Failed to stop virtual machine {name} (PID {pid})")
        self.name = name
        self.pid = pid


class StoreError(ManagerError):
    """Raised when the instance database cannot be read or written."""


class ConfigurationError(ManagerError):
    """Raised for invalid settings or drive/volume parameters."""


class ImageNotFoundError(ManagerError):
    pass
