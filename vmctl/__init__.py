"""vmctl package."""

__all__ = [
    "cli",
    "config",
    "constants",
    "database",
    "exceptions",
    "iso",
    "launcher",
    "locks",
    "models",
    "network",
    "qemu",
    "store",
    "supervisor",
    "termination",
    "utils",
    "volumes",
]
