"""Boot ISO resolution and download for vmctl."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from vmctl.constants import DEFAULT_VERSION, ISO_DIR, ISO_MIRROR_URL, VERSION_RE
from vmctl.utils import download_file, empty_disk_image, ensure_directory, is_valid_iso_url, log


def release_url(version: str) -> str:
    return ISO_MIRROR_URL.format(version=version)


def resolve_boot_source(source: Optional[str]) -> str:
    """Map ``run``'s argument to a URL or local path.

    Nothing means the default release, a bare ``N.N.N`` is a release
    version and anything else is returned unchanged.
    """
    if not source:
        log("INFO", f"No ISO path provided, defaulting to DragonflyBSD {DEFAULT_VERSION}...")
        return release_url(DEFAULT_VERSION)
    if VERSION_RE.match(source):
        log("INFO", f"Detected version {source}, constructing download URL...")
        return release_url(source)
    return source


def download_iso(url: str, iso_dir: Optional[Path] = None, image: Optional[str] = None) -> Optional[Path]:
    """Fetch ``url`` into ``iso_dir`` and return the local path.

    Returns None when ``image`` already holds data, since booting the
    installer again could overwrite it.
    """
    if image and not empty_disk_image(Path(image)):
        log("WARN", f"Drive image {image} is not empty, skipping ISO download to avoid overwriting existing data.")
        return None

    iso_dir = iso_dir or ISO_DIR
    destination = iso_dir / url.rsplit("/", 1)[-1]
    if destination.exists():
        log("WARN", f"File {destination} already exists, skipping download.")
        return destination
    ensure_directory(iso_dir)
    download_file(url, destination, label="Downloading ISO")
    return destination


def prepare_boot_source(source: Optional[str], image: Optional[str] = None, iso_dir: Optional[Path] = None) -> Optional[str]:
    resolved = resolve_boot_source(source)
    if is_valid_iso_url(resolved):
        path = download_iso(resolved, iso_dir, image)
        return str(path) if path is not None else None
    return resolved
