"""Image and volume management for vmctl."""

from __future__ import annotations

import subprocess
import uuid
from pathlib import Path
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vmctl.constants import VOLUME_DISK_FORMAT, VOLUMES_DIR
from vmctl.database import Image, Volume
from vmctl.exceptions import ConfigurationError, ManagerError, StoreError
from vmctl.utils import ensure_directory, log, run

_FORMAT_SUFFIXES = {".qcow2": "qcow2", ".img": "raw", ".raw": "raw", ".vmdk": "vmdk", ".vdi": "vdi"}


def guess_image_format(path: Path) -> str:
    return _FORMAT_SUFFIXES.get(path.suffix.lower(), "raw")


class VolumeManager:
    """Looks up images and volumes and clones new copy-on-write volumes."""

    def __init__(self, db_session: Session, volumes_dir: Optional[Path] = None) -> None:
        self.db = db_session
        self.volumes_dir = volumes_dir or VOLUMES_DIR

    def _save(self, record, label: str):
        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to save {label}: {exc}") from exc
        return record

    def get_volume(self, name: str) -> Optional[Volume]:
        try:
            return self.db.query(Volume).filter(or_(Volume.name == name, Volume.id == name)).first()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to query volume {name}: {exc}") from exc

    def get_image(self, ref: str) -> Optional[Image]:
        """Find an image by name, id or path.

        An unregistered path that exists on disk is registered on the fly.
        """
        try:
            image = (
                self.db.query(Image)
                .filter(or_(Image.name == ref, Image.id == ref, Image.path == ref))
                .first()
            )
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to query image {ref}: {exc}") from exc
        if image is not None:
            return image
        path = Path(ref)
        if path.is_file():
            return self.register_image(path.name, path)
        return None

    def register_image(self, name: str, path: Path, image_format: Optional[str] = None) -> Image:
        path = path.resolve()
        image = Image(
            id=uuid.uuid4().hex,
            name=name,
            path=str(path),
            format=image_format or guess_image_format(path),
            size=path.stat().st_size if path.exists() else None,
        )
        log("DEBUG", f"Registering image {name} ({image.path})")
        return self._save(image, f"image {name}")

    def create_volume(self, name: str, image: Image, size: Optional[str] = None) -> Volume:
        """Create a qcow2 overlay of ``image`` and record it."""
        ensure_directory(self.volumes_dir)
        target = self.volumes_dir / f"{name}.{VOLUME_DISK_FORMAT}"
        cmd = [
            "qemu-img",
            "create",
            "-f",
            VOLUME_DISK_FORMAT,
            "-F",
            image.format,
            "-b",
            image.path,
            str(target),
        ]
        if size:
            cmd.append(size)
        try:
            run(cmd, capture_output=True)
        except subprocess.CalledProcessError as exc:
            raise ManagerError(f"Failed to create volume {name}: {exc.stderr}") from exc
        except FileNotFoundError as exc:
            raise ManagerError("qemu-img command not found. Install qemu-utils.") from exc
        log("SUCCESS", f"Created volume {name} at {target}")
        volume = Volume(
            id=uuid.uuid4().hex,
            name=name,
            path=str(target),
            size=size,
            base_image_id=image.id,
        )
        return self._save(volume, f"volume {name}")


def create_drive_image_if_needed(path: Optional[str], disk_format: Optional[str], size: Optional[str]) -> None:
    """Create an empty drive image with qemu-img unless one already exists."""
    if not path or not disk_format or not size:
        raise ConfigurationError("Missing required parameters: image, disk format, or size")
    target = Path(path)
    if target.exists():
        log("WARN", f"Drive image {target} already exists, skipping creation.")
        return
    ensure_directory(target.parent)
    try:
        run(["qemu-img", "create", "-f", disk_format, str(target), size])
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        raise ManagerError(f"Failed to create drive image at {target}: {exc}") from exc
    log("SUCCESS", f"Created drive image at {target}")
