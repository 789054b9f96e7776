"""Global constants and path configuration for vmctl."""

from __future__ import annotations

import os
import re
from pathlib import Path

# VMCTL_HOME provides a single directory for all persistent data.
# The database, logs, volumes, downloaded ISOs and lock files live under it.
_HOME = os.environ.get("VMCTL_HOME")
if _HOME:
    HOME_DIR = Path(_HOME)
else:
    HOME_DIR = Path.home() / ".vmctl"
DATABASE_PATH = HOME_DIR / "state.sqlite"
LOGS_DIR = HOME_DIR / "logs"
VOLUMES_DIR = HOME_DIR / "volumes"
ISO_DIR = HOME_DIR / "isos"
LOCKS_DIR = HOME_DIR / "locks"
DEFAULT_CONFIG_PATH = HOME_DIR / "config.yaml"

QEMU_BINARY = "qemu-system-x86_64"
PRIVILEGE_WRAPPER = "sudo"

DEFAULT_VERSION = "6.4.2"
DEFAULT_CPU = "host"
DEFAULT_CPUS = 2
DEFAULT_MEMORY = "2G"
DEFAULT_DISK_FORMAT = "raw"
DEFAULT_DISK_SIZE = "20G"
VOLUME_DISK_FORMAT = "qcow2"

# Seconds
LAUNCH_SETTLE_DELAY = 2.0
RESTART_SETTLE_DELAY = 2.0
TERMINATION_GRACE_PERIOD = 3.0

# du reports 1 KiB blocks; anything smaller is treated as a blank image
EMPTY_DISK_THRESHOLD_KB = 100

STATUS_RUNNING = "RUNNING"
STATUS_STOPPED = "STOPPED"
STATUS_STARTING = "STARTING"
ACTIVE_STATUSES = {STATUS_RUNNING, STATUS_STARTING}

TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("VMCTL_LOG_VERBOSE", "").lower() in TRUTHY

DISK_SIZE_RE = re.compile(r"^\d+[KMGTkmgt]?$")
MEMORY_RE = re.compile(r"^\d+[KMGTkmgt]?$")
VERSION_RE = re.compile(r"^\d{1,2}\.\d{1,2}\.\d{1,2}$")

ISO_MIRROR_URL = "https://mirror-master.dragonflybsd.org/iso-images/dfly-x86_64-{version}_REL.iso"

_NAME_ADJECTIVES = (
    "amber", "brisk", "calm", "dusty", "eager", "fuzzy", "gentle", "hidden",
    "icy", "jolly", "keen", "lucky", "misty", "nimble", "odd", "proud",
    "quiet", "rapid", "sunny", "tidy", "vivid", "witty",
)
_NAME_NOUNS = (
    "badger", "comet", "delta", "falcon", "glacier", "harbor", "island",
    "lagoon", "meadow", "nebula", "otter", "pebble", "quartz", "river",
    "summit", "tundra", "valley", "willow", "zephyr",
)
