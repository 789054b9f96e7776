"""Configuration loading and environment variable parsing for vmctl."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vmctl.constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_CPU,
    DEFAULT_CPUS,
    DEFAULT_DISK_FORMAT,
    DEFAULT_DISK_SIZE,
    DEFAULT_MEMORY,
    LOGS_DIR,
    MEMORY_RE,
    PRIVILEGE_WRAPPER,
    QEMU_BINARY,
)
from vmctl.exceptions import ConfigurationError
from vmctl.models import Settings
from vmctl.utils import get_env, parse_int_env, validate_disk_size

_ENV_OVERRIDES = {
    "qemu_binary": "VMCTL_QEMU",
    "privilege_wrapper": "VMCTL_PRIVILEGE_WRAPPER",
    "cpu": "VMCTL_CPU",
    "cpus": "VMCTL_CPUS",
    "memory": "VMCTL_MEMORY",
    "disk_format": "VMCTL_DISK_FORMAT",
    "disk_size": "VMCTL_DISK_SIZE",
    "logs_dir": "VMCTL_LOGS_DIR",
}


def load_config_file(config_path: Optional[Path] = None) -> Dict[str, object]:
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return {}
    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid config file {config_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    unknown = sorted(set(data) - set(_ENV_OVERRIDES))
    if unknown:
        raise ConfigurationError(f"Unknown config keys in {config_path}: {', '.join(unknown)}")
    return data


def validate_memory(raw: str) -> str:
    if not MEMORY_RE.match(raw):
        raise ConfigurationError(f"Invalid memory size '{raw}'. Use a number with optional suffix: K, M, G, T (e.g. '2G')")
    return raw


def validate_cpus(count: int) -> int:
    if count < 1:
        raise ConfigurationError(f"Invalid CPU count {count}. At least 1 virtual CPU is required")
    return count


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Resolve settings from defaults, then the YAML file, then VMCTL_* variables."""
    data = load_config_file(config_path)

    def value(key: str, default: object) -> str:
        env = get_env(_ENV_OVERRIDES[key])
        if env is not None:
            return env
        return str(data.get(key, default))

    cpus_default = value("cpus", DEFAULT_CPUS)
    cpus = parse_int_env(_ENV_OVERRIDES["cpus"], cpus_default, min_val=1, max_val=255)

    return Settings(
        qemu_binary=value("qemu_binary", QEMU_BINARY),
        privilege_wrapper=value("privilege_wrapper", PRIVILEGE_WRAPPER),
        cpu=value("cpu", DEFAULT_CPU),
        cpus=cpus,
        memory=validate_memory(value("memory", DEFAULT_MEMORY)),
        disk_format=value("disk_format", DEFAULT_DISK_FORMAT),
        disk_size=validate_disk_size(value("disk_size", DEFAULT_DISK_SIZE)),
        logs_dir=Path(value("logs_dir", LOGS_DIR)).expanduser(),
    )
