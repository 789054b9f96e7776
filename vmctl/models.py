"""Data models for vmctl."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional


class PortForward(NamedTuple):
    host_port: str
    guest_port: str


@dataclass
class StartOverrides:
    """Per-invocation hardware settings that supersede the stored record."""

    memory: Optional[str] = None
    cpus: Optional[int] = None
    cpu: Optional[str] = None
    disk_format: Optional[str] = None
    port_forward: Optional[str] = None
    drive_path: Optional[str] = None
    bridge: Optional[str] = None
    disk_size: Optional[str] = None

    def as_dict(self) -> Dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass
class DriveSpec:
    path: str
    format: str


@dataclass
class QemuCommand:
    executable: str
    args: List[str] = field(default_factory=list)

    @property
    def argv(self) -> List[str]:
        return [self.executable, *self.args]


@dataclass
class Settings:
    qemu_binary: str
    privilege_wrapper: str
    cpu: str
    cpus: int
    memory: str
    disk_format: str
    disk_size: str
    logs_dir: Path


@dataclass
class CreateOptions:
    """Hardware and boot options for a brand new instance."""

    cpu: str
    cpus: int
    memory: str
    disk_format: str
    disk_size: str
    name: Optional[str] = None
    image: Optional[str] = None
    bridge: Optional[str] = None
    port_forward: Optional[str] = None
    install: bool = False
